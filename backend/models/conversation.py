"""Chat history data models."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ChatMessage:
    """A single persisted chat turn."""
    id: str
    session_id: str
    role: str
    content: str
    created_at: Optional[str] = None
    browsed_files: bool = False
    rating: Optional[int] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ChatMessage":
        return cls(
            id=row["id"],
            session_id=row.get("session_id", ""),
            role=row["role"],
            content=row["content"],
            created_at=row.get("created_at"),
            browsed_files=bool(row.get("browsed_files")),
            rating=row.get("rating"),
        )


@dataclass
class ChatSession:
    """A conversation belonging to a workspace."""
    id: str
    workspace_id: str
    title: str
    user_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    messages: List[ChatMessage] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ChatSession":
        messages = [
            ChatMessage.from_row({"session_id": row["id"], **message})
            for message in row.get("chat_messages") or []
        ]
        messages.sort(key=lambda m: m.created_at or "")
        return cls(
            id=row["id"],
            workspace_id=row.get("workspace_id", ""),
            title=row.get("title") or "New Chat",
            user_id=row.get("user_id"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            messages=messages,
        )
