from __future__ import annotations

"""FastAPI application entrypoint for the document chat service."""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from docchat.app.dependencies import build_engine, get_engine, get_settings
from docchat.app.metrics import metrics_middleware, metrics_response, record_context_fallback
from docchat.app.schemas import (
    ChatRequest,
    ChatResponse,
    ConversationListResponse,
    ConversationOut,
    ConversationResponse,
    ConversationSummaryOut,
    ErrorResponse,
    HealthResponse,
    ReprocessResponse,
    TurnOut,
)
from docchat.app.settings import Settings, settings as default_settings
from docchat.loaders.text import load_documents_dir
from docchat.rag.errors import DocchatError
from docchat.rag.pipeline import ChatEngine

logger = logging.getLogger(__name__)
router = APIRouter()

_ERROR_RESPONSES = {400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}


def _configure_logging(level_name: str) -> None:
    """Configure root logging using environment settings."""
    level = getattr(logging, level_name.strip().upper(), logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logger.setLevel(level)


def _safe_error_message(exc: Exception) -> str:
    """Return a safe error type name for logs."""
    return type(exc).__name__


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message).model_dump(),
    )


async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report unparseable or mistyped bodies in the same envelope as other errors."""
    logger.info(
        "request_validation_failed",
        extra={"path": request.url.path, "errors": len(exc.errors())},
    )
    return _error(400, "Invalid request body")


def initialize_index(engine: ChatEngine, settings: Settings) -> int:
    """Load the documents directory and publish an index; returns the chunk count.

    An empty directory leaves the engine uninitialized.
    """
    directory = Path(settings.documents_dir)
    documents = load_documents_dir(directory)
    if not documents:
        logger.warning("no_documents_found", extra={"directory": str(directory)})
        return 0
    chunks = engine.process_documents(documents)
    logger.info(
        "documents_initialized",
        extra={"documents": len(documents), "chunks": chunks},
    )
    return chunks


@router.post("/api/chat", response_model=ChatResponse, responses=_ERROR_RESPONSES)
async def chat(payload: ChatRequest, engine: ChatEngine = Depends(get_engine)):
    """Answer one message, continuing the conversation when an id is supplied."""
    if not payload.message or not payload.message.strip():
        return _error(400, "No message provided in request")
    try:
        result = await engine.handle_turn(
            payload.message, conversation_id=payload.conversation_id
        )
    except Exception as exc:
        logger.error("chat_request_failed", extra={"error": _safe_error_message(exc)})
        return _error(500, "Internal server error")
    if not result.context_used:
        record_context_fallback()
    return ChatResponse(
        response=result.content,
        conversation_id=result.conversation_id,
        timestamp=result.timestamp,
    )


@router.get("/api/health", response_model=HealthResponse)
async def health(engine: ChatEngine = Depends(get_engine)) -> HealthResponse:
    return HealthResponse(status="healthy", initialized=engine.initialized)


@router.get(
    "/api/chat/{conversation_id}",
    response_model=ConversationResponse,
    responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def get_conversation(conversation_id: str, engine: ChatEngine = Depends(get_engine)):
    try:
        conversation = engine.conversations.store.get(conversation_id)
    except DocchatError as exc:
        logger.error("conversation_fetch_failed", extra={"error": _safe_error_message(exc)})
        return _error(500, "Internal server error")
    if conversation is None:
        return _error(404, "Conversation not found")
    return ConversationResponse(
        chat=ConversationOut(
            conversation_id=conversation.conversation_id,
            messages=[
                TurnOut(role=turn.role, content=turn.content, timestamp=turn.timestamp)
                for turn in conversation.turns
            ],
            context=conversation.context,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )
    )


@router.get("/api/chats", response_model=ConversationListResponse, responses=_ERROR_RESPONSES)
async def list_conversations(engine: ChatEngine = Depends(get_engine)):
    try:
        summaries = engine.conversations.store.list_summaries()
    except DocchatError as exc:
        logger.error("conversation_list_failed", extra={"error": _safe_error_message(exc)})
        return _error(500, "Internal server error")
    return ConversationListResponse(
        chats=[
            ConversationSummaryOut(
                conversation_id=summary.conversation_id,
                created_at=summary.created_at,
                updated_at=summary.updated_at,
                preview=summary.preview,
            )
            for summary in summaries
        ]
    )


@router.post(
    "/api/documents/reprocess", response_model=ReprocessResponse, responses=_ERROR_RESPONSES
)
async def reprocess_documents(
    engine: ChatEngine = Depends(get_engine),
    settings: Settings = Depends(get_settings),
):
    """Reload the documents directory and swap in a freshly built index."""
    directory = Path(settings.documents_dir)
    documents = await asyncio.to_thread(load_documents_dir, directory)
    if not documents:
        return _error(400, "No documents found to process")
    try:
        chunks = await asyncio.to_thread(engine.process_documents, documents)
    except DocchatError as exc:
        logger.error("document_reprocess_failed", extra={"error": _safe_error_message(exc)})
        return _error(500, "Internal server error")
    return ReprocessResponse(documents=len(documents), chunks=chunks)


@router.get("/metrics", include_in_schema=False)
async def metrics(request: Request):
    return metrics_response(request)


def create_app(
    settings: Settings | None = None,
    engine: ChatEngine | None = None,
    load_documents: bool = True,
) -> FastAPI:
    """Build the FastAPI app around an explicitly owned chat engine.

    Without an injected engine one is wired from settings at startup. When
    `load_documents` is set the documents directory is indexed during startup and
    any build failure aborts it.
    """
    settings = settings or default_settings
    _configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.engine is None:
            app.state.engine = build_engine(settings)
        if load_documents:
            await asyncio.to_thread(initialize_index, app.state.engine, settings)
        yield

    app = FastAPI(title="Docchat", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(metrics_middleware)
    app.add_exception_handler(RequestValidationError, _invalid_request)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=default_settings.port)
