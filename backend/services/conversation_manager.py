"""Conversation manager for chat sessions and messages stored in Supabase."""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from supabase import Client

from models.conversation import ChatMessage, ChatSession

logger = logging.getLogger(__name__)

SESSION_FIELDS = "id, workspace_id, user_id, title, created_at, updated_at"
SESSION_COLUMNS = (
    f"{SESSION_FIELDS}, "
    "chat_messages (id, role, content, created_at, browsed_files, rating)"
)
DEFAULT_TITLE = "New Chat"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConversationManager:
    """Manages chat session and message persistence."""

    def __init__(self, client: Client):
        self.client = client
        logger.info("ConversationManager initialized with Supabase")

    def get_session(self, session_id: str, user_id: str) -> Optional[ChatSession]:
        """Fetch a session without its messages, or None unless the user owns it."""
        result = (
            self.client.table("chat_sessions")
            .select(SESSION_FIELDS)
            .eq("id", session_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        return ChatSession.from_row(result.data[0])

    def list_sessions(self, workspace_id: str, user_id: str) -> List[ChatSession]:
        """
        List the user's sessions in a workspace, most recently active first.

        Args:
            workspace_id: Workspace whose sessions are listed
            user_id: Only this user's sessions are returned

        Returns:
            Sessions with their messages embedded in chronological order
        """
        result = (
            self.client.table("chat_sessions")
            .select(SESSION_COLUMNS)
            .eq("workspace_id", workspace_id)
            .eq("user_id", user_id)
            .order("updated_at", desc=True)
            .execute()
        )
        sessions = [ChatSession.from_row(row) for row in result.data or []]
        logger.debug(f"Retrieved {len(sessions)} chat sessions for workspace {workspace_id}")
        return sessions

    def create_session(self, workspace_id: str, user_id: str, title: Optional[str] = None) -> ChatSession:
        result = self.client.table("chat_sessions").insert({
            "workspace_id": workspace_id,
            "user_id": user_id,
            "title": title or DEFAULT_TITLE,
        }).execute()

        if not result.data:
            raise RuntimeError("Chat session insert returned no row")

        session = ChatSession.from_row(result.data[0])
        logger.info(f"Created chat session: {session.id}")
        return session

    def rename_session(self, session_id: str, user_id: str, title: str) -> Optional[ChatSession]:
        result = (
            self.client.table("chat_sessions")
            .update({"title": title, "updated_at": _now()})
            .eq("id", session_id)
            .eq("user_id", user_id)
            .execute()
        )
        if not result.data:
            return None
        return ChatSession.from_row(result.data[0])

    def delete_session(self, session_id: str, user_id: str) -> bool:
        """Delete one of the user's sessions; its messages go first. False if not owned."""
        if self.get_session(session_id, user_id) is None:
            return False

        self.client.table("chat_messages").delete().eq("session_id", session_id).execute()
        self.client.table("chat_sessions").delete().eq("id", session_id).eq("user_id", user_id).execute()
        logger.info(f"Deleted chat session: {session_id}")
        return True

    def add_message(
        self,
        session_id: str,
        user_id: str,
        role: str,
        content: str,
        browsed_files: bool = False
    ) -> Optional[ChatMessage]:
        """
        Append a message to one of the user's sessions and mark it recently active.

        Returns:
            The stored message, or None if the session is not the user's

        Raises:
            RuntimeError: If the insert returns no row
        """
        if self.get_session(session_id, user_id) is None:
            return None

        result = self.client.table("chat_messages").insert({
            "session_id": session_id,
            "role": role,
            "content": content,
            "browsed_files": browsed_files,
        }).execute()

        if not result.data:
            raise RuntimeError("Chat message insert returned no row")

        # Touching updated_at keeps the session list ordered by activity
        self.client.table("chat_sessions").update({"updated_at": _now()}).eq("id", session_id).execute()

        logger.info(f"Added {role} message to session {session_id}")
        return ChatMessage.from_row(result.data[0])

    def _owned_message_session(self, message_id: str, user_id: str) -> Optional[str]:
        """Session id of a message, or None unless that session belongs to the user."""
        result = (
            self.client.table("chat_messages")
            .select("session_id")
            .eq("id", message_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None

        session_id = result.data[0]["session_id"]
        if self.get_session(session_id, user_id) is None:
            return None
        return session_id

    def rate_message(self, message_id: str, user_id: str, rating: Optional[int]) -> Optional[ChatMessage]:
        if self._owned_message_session(message_id, user_id) is None:
            return None

        result = (
            self.client.table("chat_messages")
            .update({"rating": rating})
            .eq("id", message_id)
            .execute()
        )
        if not result.data:
            return None
        return ChatMessage.from_row(result.data[0])

    def delete_message(self, message_id: str, user_id: str) -> bool:
        if self._owned_message_session(message_id, user_id) is None:
            return False

        self.client.table("chat_messages").delete().eq("id", message_id).execute()
        return True

    def get_history(self, session_id: str, max_messages: int = 6) -> List[ChatMessage]:
        """
        Get the most recent messages of a session, oldest first.

        Failures are logged and yield an empty history so a chat can still
        be answered.
        """
        try:
            result = (
                self.client.table("chat_messages")
                .select("*")
                .eq("session_id", session_id)
                .order("created_at", desc=True)
                .limit(max_messages)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error retrieving history for session {session_id}: {e}")
            return []

        messages = [ChatMessage.from_row(row) for row in result.data or []]
        messages.reverse()
        return messages
