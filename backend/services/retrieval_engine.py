"""Retrieval engine for orchestrating query embedding and passage retrieval."""
import logging
from typing import Any, Dict, List, Optional, Sequence

from config import CHAT_MATCH_COUNT
from models.chunk import RetrievalOutcome, SearchResult
from services.document_repository import DocumentRepository
from services.embedding_model import EmbeddingModel
from services.gemini_client import GeminiClient
from services.vector_store import VectorStore

logger = logging.getLogger(__name__)

SEMANTIC = "semantic"
TEXT = "text"
VISUAL = "visual"
WORKSPACE_SEARCH_TYPES = (SEMANTIC, TEXT, VISUAL)


class RetrievalEngine:
    """Semantic retrieval over the user's documents with a title-search fallback."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedding_model: EmbeddingModel,
        documents: DocumentRepository,
        query_embedder: Optional[GeminiClient] = None
    ):
        """
        Initialize the retrieval engine.

        Args:
            vector_store: VectorStore instance for similarity search
            embedding_model: EmbeddingModel instance for query embedding
            documents: Repository used for metadata enrichment and text search
            query_embedder: Embedder for workspace search; stored document and
                image embeddings live in its vector space
        """
        self.vector_store = vector_store
        self.embedding_model = embedding_model
        self.documents = documents
        self.query_embedder = query_embedder
        logger.info("Initialized RetrievalEngine")

    def search(self, query: str, limit: int, user_id: str) -> RetrievalOutcome:
        """
        Search the user's documents for a free-text query.

        Strategy:
        1. Embed the query and call the similarity RPC
        2. Enrich matches with document metadata (one query, joined in memory)
        3. If embedding or the RPC fails, fall back to a case-insensitive
           title search; those results carry search_type "text" and
           similarity 0, and the outcome is marked degraded

        Args:
            query: Search text
            limit: Maximum number of results
            user_id: Owner whose documents are searched

        Returns:
            RetrievalOutcome with results and the search type used

        Raises:
            RuntimeError: If the text fallback fails as well
        """
        if not query or not query.strip():
            logger.warning("Empty query string provided, returning empty results")
            return RetrievalOutcome()

        try:
            query_embedding = self.embedding_model.embed_text(query)
            results = self.vector_store.search(query_embedding, match_count=limit, user_id=user_id)
        except Exception as e:
            reason = f"Semantic search unavailable: {str(e)}"
            logger.warning(f"{reason}; falling back to title search")
            return self._text_search(query, limit, user_id, reason)

        self._enrich(results)
        logger.info(f"Semantic search returned {len(results)} results")
        return RetrievalOutcome(results=results, search_type=SEMANTIC)

    def retrieve_context(
        self,
        question: str,
        user_id: str,
        document_id: Optional[str] = None,
        match_count: int = CHAT_MATCH_COUNT
    ) -> RetrievalOutcome:
        """
        Retrieve passages to ground a chat answer.

        Failures never propagate: the chat still answers, without context,
        and the outcome records why.
        """
        try:
            query_embedding = self.embedding_model.embed_text(question)
            results = self.vector_store.search(
                query_embedding, match_count=match_count, user_id=user_id
            )
        except Exception as e:
            reason = f"Context retrieval failed: {str(e)}"
            logger.warning(f"{reason}; continuing without context")
            return RetrievalOutcome(degraded=True, reason=reason)

        if document_id:
            results = [r for r in results if r.document_id == document_id]

        logger.info(f"Retrieved {len(results)} context passages")
        return RetrievalOutcome(results=results, search_type=SEMANTIC)

    def search_workspace(
        self,
        workspace_id: str,
        query: str,
        search_types: Sequence[str] = WORKSPACE_SEARCH_TYPES,
        limit: int = 30
    ) -> RetrievalOutcome:
        """
        Search a workspace's documents and images.

        The query is embedded in the same space as `documents.embedding` and
        `image_embeddings`, then the `search_workspace` RPC combines semantic,
        visual and text matches. Without an embedding the RPC still runs its
        text matching and the outcome is marked degraded. If the RPC fails,
        title, description and searchable text are matched directly.

        Raises:
            RuntimeError: If the text fallback fails as well
        """
        if not query or not query.strip():
            return RetrievalOutcome()

        search_types = list(search_types)
        query_embedding = None
        reason = None

        if self.query_embedder is not None and (SEMANTIC in search_types or VISUAL in search_types):
            try:
                query_embedding = self.query_embedder.embed_text(query)
            except Exception as e:
                reason = f"Query embedding unavailable: {str(e)}"
                logger.warning(f"{reason}; searching text only")

        try:
            rows = self.documents.search_workspace(
                workspace_id, query, query_embedding, search_types, limit
            )
        except Exception as e:
            reason = f"Workspace search unavailable: {str(e)}"
            logger.warning(f"{reason}; falling back to field search")
            rows = self.documents.search_workspace_text(workspace_id, query, limit)
            results = [self._workspace_result(row, TEXT) for row in rows]
            return RetrievalOutcome(results=results, search_type=TEXT, degraded=True, reason=reason)

        results = _deduplicate([self._workspace_result(row) for row in rows])
        logger.info(f"Workspace search returned {len(results)} results")
        return RetrievalOutcome(
            results=results,
            search_type=SEMANTIC if query_embedding else TEXT,
            degraded=reason is not None,
            reason=reason,
        )

    @staticmethod
    def _workspace_result(row: Dict[str, Any], search_type: Optional[str] = None) -> SearchResult:
        return SearchResult(
            document_id=row.get("document_id") or row["id"],
            content=row.get("description") or "",
            similarity=float(row.get("similarity") or 0.0) if search_type is None else 0.0,
            search_type=search_type or row.get("search_type") or SEMANTIC,
            document=row,
        )

    def _enrich(self, results: List[SearchResult]) -> None:
        document_ids = list(dict.fromkeys(r.document_id for r in results))
        try:
            metadata = self.documents.fetch_metadata(document_ids)
        except Exception as e:
            logger.warning(f"Metadata enrichment failed: {e}")
            return

        for result in results:
            result.document = metadata.get(result.document_id)

    def _text_search(self, query: str, limit: int, user_id: str, reason: str) -> RetrievalOutcome:
        rows = self.documents.search_titles(query, user_id, limit)
        results = [
            SearchResult(
                document_id=row["id"],
                content="",
                similarity=0.0,
                search_type=TEXT,
                document=row,
            )
            for row in rows
        ]
        logger.info(f"Text search returned {len(results)} results")
        return RetrievalOutcome(results=results, search_type=TEXT, degraded=True, reason=reason)


def _deduplicate(results: List[SearchResult]) -> List[SearchResult]:
    """Keep the best-scoring result per document, best first."""
    best: Dict[str, SearchResult] = {}
    for result in results:
        existing = best.get(result.document_id)
        if existing is None or result.similarity > existing.similarity:
            best[result.document_id] = result
    return sorted(best.values(), key=lambda r: r.similarity, reverse=True)
