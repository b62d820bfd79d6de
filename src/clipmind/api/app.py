"""FastAPI backend for clipmind.

Usage:
    clipmind serve            (or)
    uvicorn clipmind.api.app:create_default_app --factory --port 3001

Endpoints (all under /api):
    POST   /chat                        - one RAG chat turn
    GET    /chat/threads                - threads, most recent first
    GET    /chat/threads/{id}/messages  - messages of a thread
    DELETE /chat/threads/{id}           - delete a thread and its messages
    POST   /library/save                - save a transcript (indexed in background)
    GET    /library/history             - saved transcripts
    DELETE /library/{id}                - delete a transcript
    PATCH  /library/{id}/tag            - set/clear a transcript's tag
    GET    /documents, POST /documents, DELETE /documents/{id},
    PATCH  /documents/{id}/tag          - document management
    GET    /tags, POST /tags, DELETE /tags/{id}
    POST   /transcribe                  - link → transcript + summary
    POST   /transcribe-file             - uploaded audio/video file → transcript + summary
    GET    /ping
"""

from __future__ import annotations

import logging
import tempfile
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import APIRouter, FastAPI, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clipmind.api.schemas import (
    ChatRequest,
    ChatResponse,
    DocumentOut,
    DocumentRequest,
    MessageOut,
    MessageResponse,
    SavedResponse,
    SaveTranscriptRequest,
    SourceOut,
    SuccessResponse,
    TagAssignment,
    TagOut,
    TagRequest,
    ThreadOut,
    TranscribeRequest,
    TranscribeResponse,
    TranscriptOut,
    UsageOut,
)
from clipmind.config import ClipmindConfig, load_config
from clipmind.db.models import DOCUMENT, TRANSCRIPT, Document, Transcript
from clipmind.errors import (
    ClipmindError,
    PersistenceFailure,
    ProviderFailure,
    RecordNotFound,
    ThreadNotFound,
    ValidationFailure,
)
from clipmind.ingest.transcriber import (
    TranscriptionResult,
    transcribe_and_summarize,
    transcribe_file_and_summarize,
)
from clipmind.rag.cost import format_cost
from clipmind.services import Services, build_services

logger = logging.getLogger(__name__)

_UPLOAD_CHUNK_BYTES = 64 * 1024


def _status_for(exc: ClipmindError) -> int:
    if isinstance(exc, (ThreadNotFound, RecordNotFound)):
        return 404
    if isinstance(exc, ValidationFailure):
        return 400
    if isinstance(exc, ProviderFailure):
        return 502
    if isinstance(exc, PersistenceFailure):
        return 500
    return 500


def _transcription_out(result: TranscriptionResult) -> TranscribeResponse:
    return TranscribeResponse(
        transcript=result.transcript,
        summary=result.summary,
        usage=UsageOut(**result.usage.to_dict()),
        cost=format_cost(result.cost),
    )


def _transcript_out(t: Transcript) -> TranscriptOut:
    return TranscriptOut(
        id=t.id,  # type: ignore[arg-type]
        url=t.url,
        transcript=t.transcript,
        summary=t.summary,
        tag_id=t.tag_id,
        cost=t.cost,
        indexed=t.is_indexed,
        created_at=t.created_at,
    )


def _document_out(d: Document) -> DocumentOut:
    return DocumentOut(
        id=d.id,  # type: ignore[arg-type]
        name=d.name,
        filename=d.filename,
        type=d.mime_type,
        tag_id=d.tag_id,
        indexed=d.is_indexed,
        created_at=d.created_at,
    )


def _router(services: Services) -> APIRouter:
    router = APIRouter(prefix="/api")
    chat = services.chat
    library = services.library

    @router.get("/ping")
    def ping() -> dict:
        return {"message": "pong", "timestamp": datetime.now(timezone.utc).isoformat()}

    # ---- Chat ----

    @router.post("/chat", response_model=ChatResponse)
    def post_chat(body: ChatRequest) -> ChatResponse:
        result = chat.send(
            body.message or "",
            thread_id=body.thread_id,
            provider=body.model,
            tag_id=body.tag_id,
        )
        return ChatResponse(
            thread_id=result.thread_id,
            answer=result.answer,
            sources=[SourceOut(**s.to_dict()) for s in result.sources],
            usage=UsageOut(**result.usage.to_dict()),
            cost=format_cost(result.cost),
        )

    @router.get("/chat/threads", response_model=list[ThreadOut])
    def get_threads() -> list[ThreadOut]:
        return [
            ThreadOut(id=t.id, title=t.title, updated_at=t.updated_at)  # type: ignore[arg-type]
            for t in chat.list_threads()
        ]

    @router.get("/chat/threads/{thread_id}/messages", response_model=list[MessageOut])
    def get_thread_messages(thread_id: int) -> list[MessageOut]:
        return [
            MessageOut(
                role=m.role,
                content=m.content,
                sources=[SourceOut(**s.to_dict()) for s in m.sources]
                if m.sources is not None
                else None,
                created_at=m.created_at,
            )
            for m in chat.get_messages(thread_id)
        ]

    @router.delete("/chat/threads/{thread_id}", response_model=MessageResponse)
    def delete_thread(thread_id: int) -> MessageResponse:
        if not chat.delete_thread(thread_id):
            raise ThreadNotFound(thread_id)
        return MessageResponse(message="Thread deleted")

    # ---- Library (transcripts) ----

    @router.post("/library/save", response_model=SavedResponse)
    def save_transcript(body: SaveTranscriptRequest) -> SavedResponse:
        record = library.save_transcript(
            url=body.url or "",
            transcript=body.transcript or "",
            summary=body.summary or "",
            tag_id=body.tag_id,
            cost=body.cost,
        )
        return SavedResponse(
            id=record.id,  # type: ignore[arg-type]
            message="Saved successfully, indexing in progress...",
        )

    @router.get("/library/history", response_model=list[TranscriptOut])
    def transcript_history() -> list[TranscriptOut]:
        return [_transcript_out(t) for t in library.history()]

    @router.delete("/library/{record_id}", response_model=MessageResponse)
    def delete_transcript(record_id: int) -> MessageResponse:
        library.delete(TRANSCRIPT, record_id)
        return MessageResponse(message="Deleted successfully")

    @router.patch("/library/{record_id}/tag", response_model=SuccessResponse)
    def tag_transcript(record_id: int, body: TagAssignment) -> SuccessResponse:
        library.set_tag(TRANSCRIPT, record_id, body.tag_id)
        return SuccessResponse()

    # ---- Documents ----

    @router.post("/documents", response_model=DocumentOut)
    def add_document(body: DocumentRequest) -> DocumentOut:
        record = library.add_document(
            name=body.name or "",
            content=body.content or "",
            filename=body.filename,
            mime_type=body.mime_type,
            tag_id=body.tag_id,
        )
        return _document_out(record)

    @router.get("/documents", response_model=list[DocumentOut])
    def list_documents() -> list[DocumentOut]:
        return [_document_out(d) for d in library.documents()]

    @router.delete("/documents/{record_id}", response_model=SuccessResponse)
    def delete_document(record_id: int) -> SuccessResponse:
        library.delete(DOCUMENT, record_id)
        return SuccessResponse()

    @router.patch("/documents/{record_id}/tag", response_model=SuccessResponse)
    def tag_document(record_id: int, body: TagAssignment) -> SuccessResponse:
        library.set_tag(DOCUMENT, record_id, body.tag_id)
        return SuccessResponse()

    # ---- Tags ----

    @router.get("/tags", response_model=list[TagOut])
    def list_tags() -> list[TagOut]:
        return [
            TagOut(id=t.id, name=t.name, created_at=t.created_at)  # type: ignore[arg-type]
            for t in library.tags()
        ]

    @router.post("/tags", response_model=TagOut)
    def create_tag(body: TagRequest) -> TagOut:
        tag = library.create_tag(body.name or "")
        return TagOut(id=tag.id, name=tag.name, created_at=tag.created_at)  # type: ignore[arg-type]

    @router.delete("/tags/{tag_id}", response_model=SuccessResponse)
    def delete_tag(tag_id: int) -> SuccessResponse:
        library.delete_tag(tag_id)
        return SuccessResponse()

    # ---- Transcription ----

    @router.post("/transcribe", response_model=TranscribeResponse)
    def post_transcribe(body: TranscribeRequest) -> TranscribeResponse:
        result = transcribe_and_summarize(
            services.transcriber,
            services.summarizer(body.model),
            body.url or "",
            long_form=body.long,
        )
        return _transcription_out(result)

    @router.post("/transcribe-file", response_model=TranscribeResponse)
    async def post_transcribe_file(
        file: UploadFile = File(..., description="Audio or video file"),
        model: str | None = Form(default=None),
        long: bool = Form(default=False),
    ) -> TranscribeResponse:
        summarizer = services.summarizer(model)
        suffix = Path(file.filename or "audio").suffix.lower()
        # Streamed to disk so large recordings never sit in memory.
        with tempfile.TemporaryDirectory(prefix="clipmind-upload-") as workdir:
            upload_path = Path(workdir) / f"upload{suffix}"
            with open(upload_path, "wb") as out:
                while True:
                    chunk = await file.read(_UPLOAD_CHUNK_BYTES)
                    if not chunk:
                        break
                    out.write(chunk)
            logger.info("Received upload '%s' for transcription.", file.filename)
            result = await run_in_threadpool(
                transcribe_file_and_summarize,
                services.transcriber,
                summarizer,
                upload_path,
                long,
            )
        return _transcription_out(result)

    return router


def create_app(services: Services, close_on_shutdown: bool = True) -> FastAPI:
    """Build the FastAPI app around an explicitly constructed service graph."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("clipmind API ready (db: %s).", services.config.database.path)
        yield
        if close_on_shutdown:
            logger.info("Shutting down: draining indexing queue...")
            services.close()

    app = FastAPI(
        title="clipmind API",
        description="Transcripts, documents and retrieval-augmented chat",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=services.config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ClipmindError)
    async def clipmind_error_handler(request: Request, exc: ClipmindError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status, content={"error": str(exc)})

    app.include_router(_router(services))
    return app


def create_default_app(config: ClipmindConfig | None = None) -> FastAPI:
    """uvicorn factory: load config and build services from it."""
    return create_app(build_services(config or load_config()))
