"""Request/response schemas validated at the HTTP boundary."""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

Quality = Literal["standard", "premium"]


class ChatRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=4000)
    document_id: Optional[str] = None
    session_id: Optional[str] = None


class ContextMatch(BaseModel):
    document_id: str
    content: str
    similarity: float


class ChatMetadata(BaseModel):
    model_used: str
    prompt_tokens: int
    latency_ms: int
    chunks_retrieved: int


class ChatResponse(BaseModel):
    answer: str
    context_used: Optional[List[ContextMatch]] = None
    degraded: bool = False
    reason: Optional[str] = None
    metadata: ChatMetadata


class DocumentSearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=500)
    limit: int = Field(10, ge=1, le=50)


class SearchResultItem(BaseModel):
    document_id: str
    content: str = ""
    similarity: float
    search_type: str
    document: Optional[Dict[str, Any]] = None


class DocumentSearchResponse(BaseModel):
    results: List[SearchResultItem]
    query: str
    search_type: str
    degraded: bool = False
    reason: Optional[str] = None


class ProcessRequest(BaseModel):
    document_id: str = Field(..., min_length=1)
    quality: Quality = "standard"


class ProcessResponse(BaseModel):
    success: bool = True
    document_id: str
    processed: Dict[str, Any]


class ReprocessRequest(BaseModel):
    document_id: Optional[str] = None
    workspace_id: Optional[str] = None
    quality: Quality = "standard"
    limit: int = Field(50, ge=1, le=500)

    @model_validator(mode="after")
    def require_target(self) -> "ReprocessRequest":
        if not self.document_id and not self.workspace_id:
            raise ValueError("Either document_id or workspace_id is required")
        return self


class ReprocessError(BaseModel):
    id: str
    error: str


class ReprocessResponse(BaseModel):
    success: bool = True
    processed: int
    errors: int
    processed_ids: List[str]
    error_details: List[ReprocessError]


class ReprocessStatusResponse(BaseModel):
    needs_reprocessing: int
    already_processed: int
    documents: List[Dict[str, Any]]


class UploadResponse(BaseModel):
    success: bool = True
    document: Dict[str, Any]


class CreateSessionRequest(BaseModel):
    workspace_id: str = Field(..., min_length=1)
    title: Optional[str] = None


class DeleteSessionRequest(BaseModel):
    session_id: str = Field(..., min_length=1)


class CreateMessageRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1)
    browsed_files: bool = False


class RateMessageRequest(BaseModel):
    message_id: str = Field(..., min_length=1)
    rating: Optional[int] = Field(None, ge=-1, le=1)


class RenameSessionRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)


class DeleteMessageRequest(BaseModel):
    message_id: str = Field(..., min_length=1)


SearchType = Literal["semantic", "text", "visual"]


class WorkspaceSearchRequest(BaseModel):
    workspace_id: str = Field(..., min_length=1)
    query: str = Field(..., min_length=1, max_length=500)
    search_types: List[SearchType] = Field(
        default_factory=lambda: ["semantic", "text", "visual"], min_length=1
    )
    limit: int = Field(30, ge=1, le=50)


class WorkspaceSearchItem(SearchResultItem):
    preview_url: Optional[str] = None
    thumbnail_url: Optional[str] = None


class WorkspaceSearchResponse(BaseModel):
    results: List[WorkspaceSearchItem]
    query: str
    search_type: str
    degraded: bool = False
    reason: Optional[str] = None
    total: int
