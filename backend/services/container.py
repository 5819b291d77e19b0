"""Process-wide service wiring."""
import logging
from dataclasses import dataclass
from typing import Optional

from supabase import Client, create_client

from config import SUPABASE_URL, SUPABASE_KEY
from services.backoff import BackoffPolicy
from services.conversation_manager import ConversationManager
from services.document_repository import DocumentRepository
from services.embedding_model import EmbeddingModel
from services.errors import ConfigurationError
from services.gemini_client import GeminiClient
from services.image_analyzer import ImageAnalyzer
from services.ingestion import IngestionOrchestrator
from services.llm_client import LLMClient
from services.object_storage import ObjectStorage
from services.retrieval_engine import RetrievalEngine
from services.vector_store import VectorStore

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Every collaborator an endpoint may need, built once per process."""
    client: Client
    documents: DocumentRepository
    storage: ObjectStorage
    vector_store: VectorStore
    embedder: EmbeddingModel
    gemini: GeminiClient
    image_analyzer: ImageAnalyzer
    ingestion: IngestionOrchestrator
    retrieval: RetrievalEngine
    llm: LLMClient
    conversations: ConversationManager

    def authenticate(self, token: str) -> Optional[str]:
        """Resolve a Supabase access token to a user id, or None if it is not valid."""
        try:
            response = self.client.auth.get_user(token)
        except Exception as e:
            logger.warning(f"Token verification failed: {e}")
            return None

        user = getattr(response, "user", None)
        return getattr(user, "id", None)


def build_services(client: Optional[Client] = None) -> ServiceContainer:
    """
    Create the Supabase client and all services sharing it.

    Raises:
        ConfigurationError: If Supabase credentials are missing
    """
    if client is None:
        if not SUPABASE_URL or not SUPABASE_KEY:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")
        client = create_client(SUPABASE_URL, SUPABASE_KEY)

    backoff = BackoffPolicy()
    documents = DocumentRepository(client)
    storage = ObjectStorage(client)
    vector_store = VectorStore(client)
    embedder = EmbeddingModel(backoff=backoff)
    gemini = GeminiClient(backoff=backoff)
    image_analyzer = ImageAnalyzer(gemini, backoff=backoff)

    services = ServiceContainer(
        client=client,
        documents=documents,
        storage=storage,
        vector_store=vector_store,
        embedder=embedder,
        gemini=gemini,
        image_analyzer=image_analyzer,
        ingestion=IngestionOrchestrator(
            documents=documents,
            storage=storage,
            gemini=gemini,
            image_analyzer=image_analyzer,
            embedder=embedder,
            vector_store=vector_store,
        ),
        retrieval=RetrievalEngine(vector_store, embedder, documents, query_embedder=gemini),
        llm=LLMClient(),
        conversations=ConversationManager(client),
    )
    logger.info("All services initialized successfully")
    return services
