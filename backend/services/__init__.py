"""Services for the Aera document intelligence backend."""
from .backoff import BackoffPolicy, is_rate_limit_error
from .chunking_engine import ChunkingEngine
from .embedding_model import EmbeddingModel, cosine_similarity, format_embedding_for_pgvector
from .gemini_client import GeminiClient
from .image_analyzer import ImageAnalyzer
from .document_loader import DocumentLoader
from .document_repository import DocumentRepository
from .object_storage import ObjectStorage
from .vector_store import VectorStore
from .ingestion import IngestionOrchestrator
from .retrieval_engine import RetrievalEngine
from .llm_client import LLMClient, LLMResponse, LLMError, LLMClientError, build_context
from .conversation_manager import ConversationManager
from .container import ServiceContainer, build_services
from .errors import (
    ConfigurationError,
    UpstreamError,
    EmbeddingDimensionError,
    AnalysisError,
    DocumentNotFoundError,
)

__all__ = [
    'BackoffPolicy', 'is_rate_limit_error', 'ChunkingEngine', 'EmbeddingModel',
    'cosine_similarity', 'format_embedding_for_pgvector', 'GeminiClient', 'ImageAnalyzer',
    'DocumentLoader', 'DocumentRepository', 'ObjectStorage', 'VectorStore',
    'IngestionOrchestrator', 'RetrievalEngine', 'LLMClient', 'LLMResponse', 'LLMError',
    'LLMClientError', 'build_context', 'ConversationManager', 'ServiceContainer',
    'build_services', 'ConfigurationError', 'UpstreamError', 'EmbeddingDimensionError',
    'AnalysisError', 'DocumentNotFoundError',
]
