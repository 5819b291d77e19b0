"""Chunk and search result data models."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class DocumentChunk:
    """Transient unit of embedding granularity; never persisted on its own."""
    id: int  # sequential position within the document
    content: str


@dataclass
class SearchResult:
    """Match returned by the similarity RPC or the text-search fallback."""
    document_id: str
    content: str
    similarity: float  # 0.0 for text matches
    search_type: str = "semantic"
    document: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "content": self.content,
            "similarity": self.similarity,
            "search_type": self.search_type,
            "document": self.document,
        }


@dataclass
class RetrievalOutcome:
    """Retrieved results plus an explicit record of any degradation."""
    results: list = field(default_factory=list)
    search_type: str = "semantic"
    degraded: bool = False
    reason: Optional[str] = None
