"""Document data models."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

IMAGE = "image"
VIDEO = "video"
TEXT = "text"
OTHER = "other"

TEXT_MIME_TYPES = {"application/json", "application/pdf"}


def classify_mime_type(mime_type: Optional[str]) -> str:
    """Map a MIME type onto the ingestion branch that handles it."""
    mime_type = (mime_type or "").lower()
    if mime_type.startswith("image/"):
        return IMAGE
    if mime_type.startswith("video/"):
        return VIDEO
    if mime_type.startswith("text/") or mime_type in TEXT_MIME_TYPES:
        return TEXT
    return OTHER


@dataclass
class Document:
    """Represents an uploaded artifact stored in the `documents` table."""
    id: str
    title: str
    mime_type: str = ""
    storage_path: Optional[str] = None
    thumbnail_path: Optional[str] = None
    description: Optional[str] = None
    ai_summary: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    user_id: Optional[str] = None
    workspace_id: Optional[str] = None
    processed_at: Optional[str] = None

    @property
    def kind(self) -> str:
        return classify_mime_type(self.mime_type)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Document":
        return cls(
            id=row["id"],
            title=row.get("title") or "",
            mime_type=row.get("mime_type") or "",
            storage_path=row.get("storage_path"),
            thumbnail_path=row.get("thumbnail_path"),
            description=row.get("description"),
            ai_summary=row.get("ai_summary"),
            tags=row.get("tags") or [],
            user_id=row.get("user_id"),
            workspace_id=row.get("workspace_id"),
            processed_at=row.get("processed_at"),
        )
