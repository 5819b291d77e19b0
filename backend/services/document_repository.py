"""Data access for the `documents` and `image_embeddings` tables."""
import logging
from typing import Any, Dict, List, Optional

from supabase import Client

from models.document import Document
from services.embedding_model import format_embedding_for_pgvector

logger = logging.getLogger(__name__)

METADATA_COLUMNS = "id, title, type, subject, topic, created_at"
STATUS_COLUMNS = "id, title, mime_type, processed_at, analysis_model"
WORKSPACE_SEARCH_COLUMNS = (
    "id, title, mime_type, storage_path, thumbnail_path, description, tags, "
    "ai_summary, searchable_text, detailed_analysis, created_at"
)
TEXT_SEARCH_FIELDS = ("title", "description", "searchable_text")


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so the value is matched literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class DocumentRepository:
    """Thin wrapper around Supabase queries on document rows."""

    def __init__(self, client: Client, table_name: str = "documents"):
        self.client = client
        self.table_name = table_name

    def _table(self):
        return self.client.table(self.table_name)

    def get(self, document_id: str) -> Optional[Document]:
        """Fetch a document by id, or None if it does not exist."""
        response = self._table().select("*").eq("id", document_id).limit(1).execute()
        if not response.data:
            return None
        return Document.from_row(response.data[0])

    def create(self, row: Dict[str, Any]) -> Dict[str, Any]:
        response = self._table().insert(row).execute()
        if not response.data:
            raise RuntimeError("Document insert returned no row")
        return response.data[0]

    def update(self, document_id: str, fields: Dict[str, Any]) -> None:
        """Plain UPDATE ... WHERE id = ...; last writer wins."""
        self._table().update(fields).eq("id", document_id).execute()

    def delete(self, document_id: str) -> None:
        self._table().delete().eq("id", document_id).execute()

    def fetch_metadata(self, document_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        """Return document metadata keyed by id for in-memory joins."""
        if not document_ids:
            return {}
        response = self._table().select(METADATA_COLUMNS).in_("id", document_ids).execute()
        return {row["id"]: row for row in response.data or []}

    def search_titles(self, query: str, user_id: str, limit: int) -> List[Dict[str, Any]]:
        """Case-insensitive substring match on titles of the user's documents."""
        response = (
            self._table()
            .select(METADATA_COLUMNS)
            .eq("user_id", user_id)
            .ilike("title", f"%{escape_like(query)}%")
            .limit(limit)
            .execute()
        )
        return response.data or []

    def list_workspace_images(self, workspace_id: str, limit: int) -> List[Dict[str, Any]]:
        response = (
            self._table()
            .select("id, mime_type, processed_at")
            .eq("workspace_id", workspace_id)
            .like("mime_type", "image/%")
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return response.data or []

    def images_needing_analysis(self, workspace_id: str) -> List[Dict[str, Any]]:
        response = (
            self._table()
            .select(STATUS_COLUMNS)
            .eq("workspace_id", workspace_id)
            .like("mime_type", "image/%")
            .is_("detailed_analysis", "null")
            .execute()
        )
        return response.data or []

    def count_analyzed_images(self, workspace_id: str) -> int:
        response = (
            self._table()
            .select("id", count="exact")
            .eq("workspace_id", workspace_id)
            .like("mime_type", "image/%")
            .not_.is_("detailed_analysis", "null")
            .execute()
        )
        if response.count is not None:
            return response.count
        return len(response.data or [])

    def upsert_image_embedding(
        self,
        document_id: str,
        embedding: List[float],
        thumbnail_path: Optional[str] = None,
        frame_index: int = 0
    ) -> None:
        """Write the companion visual-search row keyed by (document_id, frame_index)."""
        self.client.table("image_embeddings").upsert(
            {
                "document_id": document_id,
                "frame_index": frame_index,
                "thumbnail_path": thumbnail_path,
                "embedding": format_embedding_for_pgvector(embedding),
            },
            on_conflict="document_id,frame_index",
        ).execute()

    def is_workspace_member(self, workspace_id: str, user_id: str) -> bool:
        """True when the user owns the workspace or is listed as a member."""
        owned = (
            self.client.table("workspaces")
            .select("id")
            .eq("id", workspace_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if owned.data:
            return True

        membership = (
            self.client.table("workspace_members")
            .select("role")
            .eq("workspace_id", workspace_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        return bool(membership.data)

    def search_workspace(
        self,
        workspace_id: str,
        query: str,
        query_embedding: Optional[List[float]],
        search_types: List[str],
        limit: int
    ) -> List[Dict[str, Any]]:
        """
        Call the combined workspace search RPC.

        The database function ranks document embeddings, image embeddings and
        text matches and returns rows with `document_id`, `similarity` and
        `search_type` alongside the document columns.
        """
        response = self.client.rpc(
            "search_workspace",
            {
                "p_workspace_id": workspace_id,
                "p_query": query,
                "p_query_embedding": (
                    format_embedding_for_pgvector(query_embedding) if query_embedding else None
                ),
                "p_search_types": search_types,
                "p_limit": limit,
            }
        ).execute()
        return response.data or []

    def search_workspace_text(self, workspace_id: str, query: str, limit: int) -> List[Dict[str, Any]]:
        """Substring match on title, description and searchable text, one query per field."""
        pattern = f"%{escape_like(query)}%"
        rows: Dict[str, Dict[str, Any]] = {}

        for field_name in TEXT_SEARCH_FIELDS:
            response = (
                self._table()
                .select(WORKSPACE_SEARCH_COLUMNS)
                .eq("workspace_id", workspace_id)
                .ilike(field_name, pattern)
                .limit(limit)
                .execute()
            )
            for row in response.data or []:
                rows.setdefault(row["id"], row)

        return list(rows.values())[:limit]
