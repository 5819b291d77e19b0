"""Unit tests for ConversationManager."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import Mock, MagicMock, call
from services.conversation_manager import ConversationManager


@pytest.fixture
def mock_client():
    return MagicMock()


@pytest.fixture
def manager(mock_client):
    return ConversationManager(mock_client)


class TestConversationManager:

    def _owned_session(self, mock_client, data=None):
        select = mock_client.table.return_value.select.return_value
        select.eq.return_value.eq.return_value.limit.return_value.execute.return_value = Mock(
            data=[{"id": "s1", "workspace_id": "ws-1", "user_id": "u1"}] if data is None else data
        )

    def test_list_sessions_newest_first_with_sorted_messages(self, manager, mock_client):
        query = mock_client.table.return_value.select.return_value.eq.return_value.eq.return_value
        query.order.return_value.execute.return_value = Mock(data=[{
            "id": "s1",
            "workspace_id": "ws-1",
            "title": None,
            "chat_messages": [
                {"id": "m2", "role": "assistant", "content": "Hello!", "created_at": "2024-05-01T10:00:05Z"},
                {"id": "m1", "role": "user", "content": "Hi", "created_at": "2024-05-01T10:00:00Z"},
            ],
        }])

        sessions = manager.list_sessions("ws-1", "u1")

        mock_client.table.assert_called_with("chat_sessions")
        select = mock_client.table.return_value.select.return_value
        select.eq.assert_called_once_with("workspace_id", "ws-1")
        select.eq.return_value.eq.assert_called_once_with("user_id", "u1")
        query.order.assert_called_once_with("updated_at", desc=True)
        assert sessions[0].title == "New Chat"
        assert [m.id for m in sessions[0].messages] == ["m1", "m2"]
        assert sessions[0].messages[0].session_id == "s1"

    def test_get_session_of_another_user_is_none(self, manager, mock_client):
        self._owned_session(mock_client, data=[])

        assert manager.get_session("s1", "intruder") is None
        select = mock_client.table.return_value.select.return_value
        select.eq.return_value.eq.assert_called_once_with("user_id", "intruder")

    def test_create_session_default_title(self, manager, mock_client):
        mock_client.table.return_value.insert.return_value.execute.return_value = Mock(
            data=[{"id": "s1", "workspace_id": "ws-1", "user_id": "u1", "title": "New Chat"}]
        )

        session = manager.create_session("ws-1", "u1")

        assert session.id == "s1"
        mock_client.table.return_value.insert.assert_called_once_with(
            {"workspace_id": "ws-1", "user_id": "u1", "title": "New Chat"}
        )

    def test_rename_is_scoped_to_user(self, manager, mock_client):
        update = mock_client.table.return_value.update.return_value
        update.eq.return_value.eq.return_value.execute.return_value = Mock(data=[])

        assert manager.rename_session("s1", "intruder", "Q3") is None
        update.eq.assert_called_once_with("id", "s1")
        update.eq.return_value.eq.assert_called_once_with("user_id", "intruder")

    def test_add_message_touches_session(self, manager, mock_client):
        self._owned_session(mock_client)
        mock_client.table.return_value.insert.return_value.execute.return_value = Mock(
            data=[{"id": "m1", "session_id": "s1", "role": "user", "content": "Hi", "browsed_files": False}]
        )

        message = manager.add_message("s1", "u1", "user", "Hi")

        assert message.id == "m1"
        assert mock_client.table.call_args_list == [
            call("chat_sessions"), call("chat_messages"), call("chat_sessions")
        ]
        update_payload = mock_client.table.return_value.update.call_args[0][0]
        assert "updated_at" in update_payload
        mock_client.table.return_value.update.return_value.eq.assert_called_once_with("id", "s1")

    def test_add_message_to_foreign_session_is_refused(self, manager, mock_client):
        self._owned_session(mock_client, data=[])

        assert manager.add_message("s1", "intruder", "user", "Hi") is None
        mock_client.table.return_value.insert.assert_not_called()

    def test_add_message_without_row_raises(self, manager, mock_client):
        self._owned_session(mock_client)
        mock_client.table.return_value.insert.return_value.execute.return_value = Mock(data=[])

        with pytest.raises(RuntimeError):
            manager.add_message("s1", "u1", "user", "Hi")

    def test_delete_session_removes_messages_first(self, manager, mock_client):
        self._owned_session(mock_client)

        assert manager.delete_session("s1", "u1") is True

        assert mock_client.table.call_args_list == [
            call("chat_sessions"), call("chat_messages"), call("chat_sessions")
        ]
        eq = mock_client.table.return_value.delete.return_value.eq
        assert eq.call_args_list == [call("session_id", "s1"), call("id", "s1")]
        eq.return_value.eq.assert_called_once_with("user_id", "u1")

    def test_delete_foreign_session_deletes_nothing(self, manager, mock_client):
        self._owned_session(mock_client, data=[])

        assert manager.delete_session("s1", "intruder") is False
        mock_client.table.return_value.delete.assert_not_called()

    def test_rate_missing_message_returns_none(self, manager, mock_client):
        select = mock_client.table.return_value.select.return_value
        select.eq.return_value.limit.return_value.execute.return_value = Mock(data=[])

        assert manager.rate_message("m404", "u1", 1) is None
        mock_client.table.return_value.update.assert_not_called()

    def test_rate_message_in_own_session(self, manager, mock_client):
        select = mock_client.table.return_value.select.return_value
        select.eq.return_value.limit.return_value.execute.return_value = Mock(data=[{"session_id": "s1"}])
        self._owned_session(mock_client)
        update = mock_client.table.return_value.update.return_value
        update.eq.return_value.execute.return_value = Mock(
            data=[{"id": "m1", "session_id": "s1", "role": "assistant", "content": "x", "rating": 1}]
        )

        message = manager.rate_message("m1", "u1", 1)

        assert message.rating == 1
        mock_client.table.return_value.update.assert_called_once_with({"rating": 1})

    def test_delete_message_in_foreign_session_is_refused(self, manager, mock_client):
        select = mock_client.table.return_value.select.return_value
        select.eq.return_value.limit.return_value.execute.return_value = Mock(data=[{"session_id": "s1"}])
        self._owned_session(mock_client, data=[])

        assert manager.delete_message("m1", "intruder") is False
        mock_client.table.return_value.delete.assert_not_called()

    def test_get_history_oldest_first(self, manager, mock_client):
        query = mock_client.table.return_value.select.return_value.eq.return_value.order.return_value
        query.limit.return_value.execute.return_value = Mock(data=[
            {"id": "m3", "session_id": "s1", "role": "user", "content": "third"},
            {"id": "m2", "session_id": "s1", "role": "assistant", "content": "second"},
        ])

        history = manager.get_history("s1", max_messages=2)

        assert [m.content for m in history] == ["second", "third"]
        query.limit.assert_called_once_with(2)

    def test_get_history_failure_is_empty(self, manager, mock_client):
        mock_client.table.side_effect = Exception("connection reset")

        assert manager.get_history("s1") == []
