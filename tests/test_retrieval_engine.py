"""Unit tests for RetrievalEngine."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import Mock
from models.chunk import SearchResult
from services.errors import ConfigurationError
from services.retrieval_engine import RetrievalEngine


@pytest.fixture
def vector_store():
    return Mock()


@pytest.fixture
def embedding_model():
    model = Mock()
    model.embed_text.return_value = [0.1, 0.2, 0.3]
    return model


@pytest.fixture
def documents():
    return Mock()


@pytest.fixture
def engine(vector_store, embedding_model, documents):
    return RetrievalEngine(vector_store, embedding_model, documents)


class TestSearch:

    def test_semantic_results_are_enriched(self, engine, vector_store, documents):
        vector_store.search.return_value = [
            SearchResult(document_id="d1", content="Revenue grew", similarity=0.82),
            SearchResult(document_id="d1", content="Costs were flat", similarity=0.71),
            SearchResult(document_id="d2", content="Hiring plan", similarity=0.55),
        ]
        documents.fetch_metadata.return_value = {
            "d1": {"id": "d1", "title": "Quarterly Report"},
            "d2": {"id": "d2", "title": "Roadmap"},
        }

        outcome = engine.search("revenue", limit=5, user_id="user-1")

        vector_store.search.assert_called_once_with([0.1, 0.2, 0.3], match_count=5, user_id="user-1")
        documents.fetch_metadata.assert_called_once_with(["d1", "d2"])
        assert outcome.search_type == "semantic"
        assert outcome.degraded is False
        assert [r.document["title"] for r in outcome.results] == [
            "Quarterly Report", "Quarterly Report", "Roadmap"
        ]

    def test_rpc_failure_falls_back_to_title_search(self, engine, vector_store, documents):
        vector_store.search.side_effect = RuntimeError("Failed to search vector store: function does not exist")
        documents.search_titles.return_value = [
            {"id": "d9", "title": "Quarterly Report", "type": None, "subject": None, "topic": None},
        ]

        outcome = engine.search("quarterly", limit=10, user_id="user-1")

        documents.search_titles.assert_called_once_with("quarterly", "user-1", 10)
        assert outcome.search_type == "text"
        assert outcome.degraded is True
        assert "function does not exist" in outcome.reason
        assert len(outcome.results) == 1
        result = outcome.results[0]
        assert result.search_type == "text"
        assert result.similarity == 0.0
        assert "quarterly" in result.document["title"].lower()

    def test_embedding_failure_also_falls_back(self, engine, embedding_model, vector_store, documents):
        embedding_model.embed_text.side_effect = ConfigurationError("MISTRAL_API_KEY is not configured")
        documents.search_titles.return_value = []

        outcome = engine.search("anything", limit=3, user_id="user-1")

        vector_store.search.assert_not_called()
        assert outcome.search_type == "text"
        assert outcome.results == []

    def test_enrichment_failure_keeps_results(self, engine, vector_store, documents):
        vector_store.search.return_value = [SearchResult(document_id="d1", content="x", similarity=0.9)]
        documents.fetch_metadata.side_effect = RuntimeError("db down")

        outcome = engine.search("x", limit=1, user_id="user-1")

        assert outcome.results[0].document is None
        assert outcome.degraded is False

    def test_empty_query_returns_nothing(self, engine, embedding_model):
        outcome = engine.search("   ", limit=10, user_id="user-1")

        assert outcome.results == []
        embedding_model.embed_text.assert_not_called()


class TestRetrieveContext:

    def test_uses_chat_match_count(self, engine, vector_store):
        vector_store.search.return_value = []

        engine.retrieve_context("What happened in Q3?", "user-1")

        vector_store.search.assert_called_once_with([0.1, 0.2, 0.3], match_count=8, user_id="user-1")

    def test_filters_by_document(self, engine, vector_store):
        vector_store.search.return_value = [
            SearchResult(document_id="d1", content="a", similarity=0.9),
            SearchResult(document_id="d2", content="b", similarity=0.8),
        ]

        outcome = engine.retrieve_context("question", "user-1", document_id="d2")

        assert [r.content for r in outcome.results] == ["b"]

    def test_failure_yields_empty_degraded_outcome(self, engine, vector_store):
        vector_store.search.side_effect = RuntimeError("rpc failed")

        outcome = engine.retrieve_context("question", "user-1")

        assert outcome.results == []
        assert outcome.degraded is True
        assert "rpc failed" in outcome.reason


class TestWorkspaceSearch:

    @pytest.fixture
    def query_embedder(self):
        embedder = Mock()
        embedder.embed_text.return_value = [0.4, 0.6]
        return embedder

    @pytest.fixture
    def workspace_engine(self, vector_store, embedding_model, documents, query_embedder):
        return RetrievalEngine(vector_store, embedding_model, documents, query_embedder=query_embedder)

    def test_best_match_per_document_first(self, workspace_engine, documents, query_embedder):
        documents.search_workspace.return_value = [
            {"document_id": "img-1", "id": "img-1", "description": "A red bike", "similarity": 0.61,
             "search_type": "visual"},
            {"document_id": "doc-2", "id": "doc-2", "similarity": 0.72, "search_type": "semantic"},
            {"document_id": "img-1", "id": "img-1", "description": "A red bike", "similarity": 0.88,
             "search_type": "semantic"},
        ]

        outcome = workspace_engine.search_workspace("ws-1", "bike", ["semantic", "visual"], limit=10)

        query_embedder.embed_text.assert_called_once_with("bike")
        documents.search_workspace.assert_called_once_with("ws-1", "bike", [0.4, 0.6], ["semantic", "visual"], 10)
        assert [(r.document_id, r.similarity) for r in outcome.results] == [("img-1", 0.88), ("doc-2", 0.72)]
        assert outcome.results[0].content == "A red bike"
        assert outcome.search_type == "semantic"
        assert outcome.degraded is False

    def test_text_only_skips_embedding(self, workspace_engine, documents, query_embedder):
        documents.search_workspace.return_value = []

        outcome = workspace_engine.search_workspace("ws-1", "bike", ["text"])

        query_embedder.embed_text.assert_not_called()
        assert documents.search_workspace.call_args[0][2] is None
        assert outcome.search_type == "text"
        assert outcome.degraded is False

    def test_embedding_failure_searches_text_only(self, workspace_engine, documents, query_embedder):
        query_embedder.embed_text.side_effect = ConfigurationError("GEMINI_API_KEY is not configured")
        documents.search_workspace.return_value = [{"id": "d1", "title": "Bike", "search_type": "text"}]

        outcome = workspace_engine.search_workspace("ws-1", "bike")

        assert documents.search_workspace.call_args[0][2] is None
        assert outcome.results[0].similarity == 0.0
        assert outcome.search_type == "text"
        assert outcome.degraded is True
        assert "GEMINI_API_KEY" in outcome.reason

    def test_rpc_failure_falls_back_to_field_search(self, workspace_engine, documents):
        documents.search_workspace.side_effect = Exception("function search_workspace does not exist")
        documents.search_workspace_text.return_value = [{"id": "d1", "title": "Bike", "description": "Blue"}]

        outcome = workspace_engine.search_workspace("ws-1", "bike", limit=5)

        documents.search_workspace_text.assert_called_once_with("ws-1", "bike", 5)
        result = outcome.results[0]
        assert (result.document_id, result.content, result.similarity, result.search_type) == (
            "d1", "Blue", 0.0, "text"
        )
        assert outcome.degraded is True
        assert "does not exist" in outcome.reason

    def test_blank_query_returns_nothing(self, workspace_engine, documents):
        outcome = workspace_engine.search_workspace("ws-1", "  ")

        assert outcome.results == []
        documents.search_workspace.assert_not_called()
