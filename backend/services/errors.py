"""Error taxonomy shared by the service layer."""
from typing import Optional


class ConfigurationError(RuntimeError):
    """A required setting (usually an API key) is missing. Never retried."""


class UpstreamError(RuntimeError):
    """A hosted provider answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class EmbeddingDimensionError(ValueError):
    """A provider returned vectors whose width does not match the similarity RPC."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected {expected}-dimensional embedding, got {actual}")


class AnalysisError(RuntimeError):
    """Every configured image analysis provider failed."""


class DocumentNotFoundError(LookupError):
    """No document row exists for the requested id."""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")
