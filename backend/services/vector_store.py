"""Chunk embedding storage and similarity search using Supabase pgvector."""
import logging
from typing import List

from supabase import Client

from models.chunk import DocumentChunk, SearchResult
from services.embedding_model import format_embedding_for_pgvector

logger = logging.getLogger(__name__)


class VectorStore:
    """Store chunk embeddings and run the `match_documents` similarity RPC."""

    def __init__(
        self,
        client: Client,
        table_name: str = "document_embeddings",
        match_function: str = "match_documents"
    ):
        """
        Initialize the vector store.

        Args:
            client: Shared Supabase client
            table_name: Table holding one row per embedded chunk
            match_function: Name of the pgvector similarity RPC
        """
        self.client = client
        self.table_name = table_name
        self.match_function = match_function

        logger.info(f"Initialized VectorStore with table: {table_name}")

    def replace_document_chunks(
        self,
        document_id: str,
        chunks: List[DocumentChunk],
        embeddings: List[List[float]]
    ) -> int:
        """
        Replace all stored chunk embeddings of a document.

        Args:
            document_id: Owning document
            chunks: Chunks in document order
            embeddings: One vector per chunk, same order

        Returns:
            Number of rows written

        Raises:
            ValueError: If chunks and embeddings differ in length
            RuntimeError: If database operation fails
        """
        if len(chunks) != len(embeddings):
            raise ValueError("Each chunk needs exactly one embedding")

        records = [
            {
                "document_id": document_id,
                "chunk_index": chunk.id,
                "content": chunk.content,
                "embedding": format_embedding_for_pgvector(embedding),
            }
            for chunk, embedding in zip(chunks, embeddings)
        ]

        try:
            self.client.table(self.table_name).delete().eq("document_id", document_id).execute()
            if records:
                self.client.table(self.table_name).insert(records).execute()
        except Exception as e:
            error_msg = f"Failed to store chunks for document {document_id}: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e

        logger.info(f"Stored {len(records)} chunk embeddings for document {document_id}")
        return len(records)

    def search(
        self,
        query_embedding: List[float],
        match_count: int,
        user_id: str
    ) -> List[SearchResult]:
        """
        Find the user's passages most similar to the query embedding.

        Ranking happens inside the database function:
            match_documents(query_embedding vector(768), match_count int, user_id uuid)
            RETURNS TABLE (document_id uuid, content text, similarity float)

        Raises:
            ValueError: If query_embedding is empty or match_count is invalid
            RuntimeError: If the RPC fails
        """
        if not query_embedding:
            raise ValueError("Query embedding cannot be empty")

        if match_count <= 0:
            raise ValueError("match_count must be positive")

        try:
            response = self.client.rpc(
                self.match_function,
                {
                    "query_embedding": query_embedding,
                    "match_count": match_count,
                    "user_id": user_id,
                }
            ).execute()
        except Exception as e:
            error_msg = f"Failed to search vector store: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e

        results = [
            SearchResult(
                document_id=row["document_id"],
                content=row.get("content") or "",
                similarity=float(row.get("similarity") or 0.0),
            )
            for row in response.data or []
        ]
        logger.debug(f"Found {len(results)} matches for query")
        return results

    def delete_document_chunks(self, document_id: str) -> None:
        self.client.table(self.table_name).delete().eq("document_id", document_id).execute()

