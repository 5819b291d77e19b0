"""Main entry point for the Aera document intelligence API."""
import json
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from config import PORT, LOG_LEVEL, LOG_FORMAT, CORS_ORIGINS
from logger import setup_logging
from models.api import (
    ChatMetadata,
    ChatRequest,
    ChatResponse,
    ContextMatch,
    CreateMessageRequest,
    CreateSessionRequest,
    DeleteMessageRequest,
    DeleteSessionRequest,
    DocumentSearchRequest,
    DocumentSearchResponse,
    ProcessRequest,
    ProcessResponse,
    RateMessageRequest,
    RenameSessionRequest,
    ReprocessRequest,
    ReprocessResponse,
    ReprocessStatusResponse,
    SearchResultItem,
    UploadResponse,
    WorkspaceSearchItem,
    WorkspaceSearchRequest,
    WorkspaceSearchResponse,
)
from models.document import Document
from services.container import ServiceContainer, build_services
from services.errors import ConfigurationError, DocumentNotFoundError
from services.llm_client import LLMClientError, build_context, count_prompt_tokens, get_encoder

# Initialize logging
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize services on startup."""
    setup_logging(LOG_LEVEL, LOG_FORMAT)
    logger.info("Initializing Aera services...")

    try:
        app.state.services = build_services()
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise

    # Load the tokenizer up front; chat reports 0 prompt tokens if it is unavailable
    get_encoder()

    yield


# Initialize FastAPI app
app = FastAPI(
    title="Aera Document Intelligence",
    description="Document ingestion, semantic search and grounded chat for Aera workspaces",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_current_user(
    authorization: Optional[str] = Header(None),
    services: ServiceContainer = Depends(get_services)
) -> str:
    """Resolve the Bearer token to a user id; 401 when missing or invalid."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized. Please log in.")

    user_id = services.authenticate(authorization[7:].strip())
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized. Please log in.")
    return user_id


def _llm_error_detail(e: LLMClientError) -> dict:
    return {
        "error": {
            "code": e.error.code,
            "message": e.error.message,
            "details": e.error.details
        }
    }


def _require_workspace_member(services: ServiceContainer, workspace_id: str, user_id: str) -> None:
    if not services.documents.is_workspace_member(workspace_id, user_id):
        raise HTTPException(status_code=403, detail="Not a member of this workspace")


def _require_document(
    services: ServiceContainer,
    document_id: str,
    user_id: str,
    owner_only: bool = False
) -> Document:
    """
    Load a document the caller may act on: their own, or (unless owner_only)
    one in a workspace they belong to. Anything else is reported as missing.
    """
    document = services.documents.get(document_id)
    if document is not None:
        if document.user_id and document.user_id == user_id:
            return document
        if not owner_only and document.workspace_id and services.documents.is_workspace_member(
            document.workspace_id, user_id
        ):
            return document
    raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")


def _session_history(services: ServiceContainer, session_id: Optional[str], user_id: str) -> list:
    """Recent messages of the caller's session; 404 if the session is someone else's."""
    if not session_id:
        return []
    try:
        session = services.conversations.get_session(session_id, user_id)
    except Exception as e:
        logger.warning(f"Session lookup failed for {session_id}, answering without history: {e}")
        return []
    if session is None:
        raise HTTPException(status_code=404, detail="Chat session not found")
    return services.conversations.get_history(session_id)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Aera Document Intelligence API"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "aera-document-intelligence",
        "version": "1.0.0"
    }


@app.post("/api/chat", response_model=ChatResponse)
def chat_endpoint(
    request: ChatRequest,
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
) -> ChatResponse:
    """
    Answer a question grounded in the user's documents.

    Pipeline:
    1. Retrieve passages via the similarity RPC (filtered by document_id if given)
    2. Assemble them into a bounded context
    3. Generate the answer with the chat model

    Retrieval problems never fail the request: the answer is generated
    without context and the response is marked degraded.

    Raises:
        HTTPException: 500 for a missing LLM key or a failed LLM call
    """
    start_time = time.time()
    logger.info(f"Processing chat question: {request.question[:100]}...")

    history = _session_history(services, request.session_id, user_id)
    outcome = services.retrieval.retrieve_context(
        request.question, user_id, document_id=request.document_id
    )
    context = build_context(outcome.results)
    prompt_tokens = count_prompt_tokens(request.question, context, history)

    try:
        llm_response = services.llm.answer(request.question, context, history)
    except ConfigurationError as e:
        logger.error(f"Chat unavailable: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    except LLMClientError as e:
        logger.error(f"LLM client error: {e.error.message}")
        raise HTTPException(status_code=500, detail=_llm_error_detail(e))

    total_latency_ms = int((time.time() - start_time) * 1000)
    context_used = [
        ContextMatch(document_id=r.document_id, content=r.content, similarity=r.similarity)
        for r in outcome.results
    ]

    logger.info(f"Chat answered in {total_latency_ms}ms with {len(context_used)} passages")
    return ChatResponse(
        answer=llm_response.text,
        context_used=context_used or None,
        degraded=outcome.degraded,
        reason=outcome.reason,
        metadata=ChatMetadata(
            model_used=llm_response.model_used,
            prompt_tokens=prompt_tokens,
            latency_ms=total_latency_ms,
            chunks_retrieved=len(context_used)
        )
    )


@app.post("/api/chat/stream")
def chat_stream_endpoint(
    request: ChatRequest,
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    """
    Streaming variant of /api/chat.

    Returns:
        StreamingResponse with SSE format:
        - data: {type: "token", content: "..."} for each token
        - data: {type: "metadata", data: {...}} once the answer is complete
        - data: {type: "error", error: {...}} if generation fails
    """
    start_time = time.time()
    history = _session_history(services, request.session_id, user_id)
    outcome = services.retrieval.retrieve_context(
        request.question, user_id, document_id=request.document_id
    )
    context = build_context(outcome.results)

    def generate_stream():
        try:
            for token in services.llm.answer_stream(request.question, context, history):
                yield f"data: {json.dumps({'type': 'token', 'content': token})}\n\n".encode("utf-8")

            final_metadata = {
                "type": "metadata",
                "data": {
                    "model_used": services.llm.model,
                    "prompt_tokens": count_prompt_tokens(request.question, context, history),
                    "latency_ms": int((time.time() - start_time) * 1000),
                    "chunks_retrieved": len(outcome.results),
                    "degraded": outcome.degraded,
                    "reason": outcome.reason,
                    "context_used": [
                        {"document_id": r.document_id, "content": r.content, "similarity": r.similarity}
                        for r in outcome.results
                    ],
                }
            }
            yield f"data: {json.dumps(final_metadata)}\n\n".encode("utf-8")

        except LLMClientError as e:
            logger.error(f"LLM client error during streaming: {e.error.message}")
            error_data = {"type": "error", **_llm_error_detail(e)}
            yield f"data: {json.dumps(error_data)}\n\n".encode("utf-8")
        except ConfigurationError as e:
            logger.error(f"Chat unavailable: {e}")
            error_data = {"type": "error", "error": {"code": "CONFIGURATION_ERROR", "message": str(e)}}
            yield f"data: {json.dumps(error_data)}\n\n".encode("utf-8")

    return StreamingResponse(
        generate_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no"  # Disable buffering in nginx
        }
    )


@app.get("/api/chat/sessions")
def list_sessions(
    workspace_id: Optional[str] = None,
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    if not workspace_id:
        raise HTTPException(status_code=400, detail="Workspace ID required")
    _require_workspace_member(services, workspace_id, user_id)

    sessions = services.conversations.list_sessions(workspace_id, user_id)
    return {"sessions": [asdict(s) for s in sessions]}


@app.post("/api/chat/sessions")
def create_session(
    request: CreateSessionRequest,
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    _require_workspace_member(services, request.workspace_id, user_id)

    session = services.conversations.create_session(request.workspace_id, user_id, request.title)
    return {"session": asdict(session)}


@app.patch("/api/chat/sessions")
def rename_session(
    request: RenameSessionRequest,
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    session = services.conversations.rename_session(request.session_id, user_id, request.title)
    if session is None:
        raise HTTPException(status_code=404, detail="Chat session not found")
    return {"session": asdict(session)}


@app.delete("/api/chat/sessions")
def delete_session(
    request: DeleteSessionRequest,
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    if not services.conversations.delete_session(request.session_id, user_id):
        raise HTTPException(status_code=404, detail="Chat session not found")
    return {"success": True}


@app.post("/api/chat/messages")
def create_message(
    request: CreateMessageRequest,
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    message = services.conversations.add_message(
        request.session_id, user_id, request.role, request.content, request.browsed_files
    )
    if message is None:
        raise HTTPException(status_code=404, detail="Chat session not found")
    return {"message": asdict(message)}


@app.patch("/api/chat/messages")
def rate_message(
    request: RateMessageRequest,
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    message = services.conversations.rate_message(request.message_id, user_id, request.rating)
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return {"message": asdict(message)}


@app.delete("/api/chat/messages")
def delete_message(
    request: DeleteMessageRequest,
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    if not services.conversations.delete_message(request.message_id, user_id):
        raise HTTPException(status_code=404, detail="Message not found")
    return {"success": True}


def _run_ingestion(services: ServiceContainer, document_id: str) -> None:
    """Background job scheduled after an upload."""
    try:
        services.ingestion.process(document_id)
    except Exception as e:
        logger.error(f"Background processing failed for {document_id}: {e}", exc_info=True)


@app.post("/api/documents/upload", response_model=UploadResponse)
def upload_document(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    workspace_id: Optional[str] = Form(None),
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
) -> UploadResponse:
    """
    Store an uploaded file, create its document row and schedule processing.

    Ingestion runs after the response is sent, so the returned document has
    no derived fields yet.
    """
    data = file.file.read()
    if not data:
        raise HTTPException(status_code=400, detail="No file provided")
    if workspace_id:
        _require_workspace_member(services, workspace_id, user_id)

    filename = file.filename or "upload"
    ext = os.path.splitext(filename)[1]
    storage_path = f"documents/uploads/{uuid.uuid4()}{ext}"
    content_type = file.content_type or "application/octet-stream"

    try:
        services.storage.upload(storage_path, data, content_type)
        inserted = services.documents.create({
            "title": filename,
            "storage_path": storage_path,
            "mime_type": content_type,
            "size_bytes": len(data),
            "user_id": user_id,
            "workspace_id": workspace_id,
        })
    except Exception as e:
        logger.error(f"Upload failed for {filename}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Upload failed: {str(e)}")

    background_tasks.add_task(_run_ingestion, services, inserted["id"])
    logger.info(f"Uploaded {filename} as document {inserted['id']}")
    return UploadResponse(document=inserted)


@app.post("/api/documents/process", response_model=ProcessResponse)
def process_document(
    request: ProcessRequest,
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
) -> ProcessResponse:
    _require_document(services, request.document_id, user_id)

    try:
        report = services.ingestion.process(request.document_id, quality=request.quality)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Processing failed for {request.document_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Processing failed: {str(e)}")

    return ProcessResponse(document_id=request.document_id, processed=report.to_dict())


@app.post("/api/documents/reprocess", response_model=ReprocessResponse)
def reprocess_documents(
    request: ReprocessRequest,
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
) -> ReprocessResponse:
    """Re-run analysis for one document, or for a workspace's images in sequence."""
    if request.document_id:
        _require_document(services, request.document_id, user_id)
        try:
            services.ingestion.process(request.document_id, quality=request.quality)
        except DocumentNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except Exception as e:
            logger.error(f"Reprocessing failed for {request.document_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Reprocessing failed: {str(e)}")

        return ReprocessResponse(
            processed=1, errors=0, processed_ids=[request.document_id], error_details=[]
        )

    _require_workspace_member(services, request.workspace_id, user_id)
    summary = services.ingestion.reprocess_workspace(
        request.workspace_id, quality=request.quality, limit=request.limit
    )
    return ReprocessResponse(**summary)


@app.get("/api/documents/reprocess", response_model=ReprocessStatusResponse)
def reprocess_status(
    workspace_id: Optional[str] = None,
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
) -> ReprocessStatusResponse:
    if not workspace_id:
        raise HTTPException(status_code=400, detail="workspace_id required")
    _require_workspace_member(services, workspace_id, user_id)

    return ReprocessStatusResponse(**services.ingestion.reprocess_status(workspace_id))


@app.post("/api/documents/index", response_model=DocumentSearchResponse)
def search_documents(
    request: DocumentSearchRequest,
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
) -> DocumentSearchResponse:
    """Semantic search over the user's documents, falling back to title search."""
    try:
        outcome = services.retrieval.search(request.query, request.limit, user_id)
    except Exception as e:
        logger.error(f"Search failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Search failed")

    return DocumentSearchResponse(
        results=[SearchResultItem(**r.to_dict()) for r in outcome.results],
        query=request.query,
        search_type=outcome.search_type,
        degraded=outcome.degraded,
        reason=outcome.reason
    )


def _with_preview_urls(services: ServiceContainer, result) -> WorkspaceSearchItem:
    document = result.document or {}
    preview_url = None
    thumbnail_url = None

    if document.get("storage_path"):
        preview_url = services.storage.create_signed_url(document["storage_path"])
    if document.get("thumbnail_path"):
        thumbnail_url = services.storage.create_signed_url(document["thumbnail_path"])

    return WorkspaceSearchItem(
        **result.to_dict(),
        preview_url=preview_url,
        thumbnail_url=thumbnail_url or preview_url,
    )


@app.post("/api/search", response_model=WorkspaceSearchResponse)
def search_workspace(
    request: WorkspaceSearchRequest,
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
) -> WorkspaceSearchResponse:
    """
    Search a workspace's documents and images by meaning, visual content and text.

    Uses the stored document embeddings, image embeddings and image analysis
    text. Falls back to field matching when the search function is
    unavailable; the response is then marked degraded.
    """
    _require_workspace_member(services, request.workspace_id, user_id)

    try:
        outcome = services.retrieval.search_workspace(
            request.workspace_id, request.query, request.search_types, request.limit
        )
    except Exception as e:
        logger.error(f"Workspace search failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Search failed")

    results = [_with_preview_urls(services, r) for r in outcome.results]
    return WorkspaceSearchResponse(
        results=results,
        query=request.query,
        search_type=outcome.search_type,
        degraded=outcome.degraded,
        reason=outcome.reason,
        total=len(results)
    )


@app.delete("/api/documents/{document_id}")
def delete_document(
    document_id: str,
    user_id: str = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    """Remove one of the caller's documents: stored objects, passage embeddings and row."""
    document = _require_document(services, document_id, user_id, owner_only=True)

    try:
        services.storage.remove_many([document.storage_path, document.thumbnail_path])
        services.vector_store.delete_document_chunks(document_id)
        services.documents.delete(document_id)
    except Exception as e:
        logger.error(f"Delete failed for {document_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Delete failed: {str(e)}")

    logger.info(f"Deleted document {document_id}")
    return {"success": True}


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting Aera Document Intelligence API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
