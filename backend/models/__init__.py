"""Data models for the Aera document intelligence backend."""
from .document import Document, classify_mime_type
from .chunk import DocumentChunk, SearchResult, RetrievalOutcome
from .conversation import ChatMessage, ChatSession
from .analysis import (
    DetailedAnalysis,
    ImageAnalysisResult,
    DocumentAnalysis,
    ImageAnalysis,
    TextAnalysis,
    VideoAnalysis,
    GenericAnalysis,
    IngestionReport,
)

__all__ = [
    "Document",
    "classify_mime_type",
    "DocumentChunk",
    "SearchResult",
    "RetrievalOutcome",
    "ChatMessage",
    "ChatSession",
    "DetailedAnalysis",
    "ImageAnalysisResult",
    "DocumentAnalysis",
    "ImageAnalysis",
    "TextAnalysis",
    "VideoAnalysis",
    "GenericAnalysis",
    "IngestionReport",
]
