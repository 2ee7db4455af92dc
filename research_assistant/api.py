"""research_assistant/api.py

FastAPI HTTP interface for the answer pipeline.

Endpoints:
  GET  /health          - liveness check
  POST /api/query       - answer a question, returns the response/error envelope
  POST /api/documents   - stage document passages for retrieval-augmented queries

The pipeline, its settings and the worker pool are created by the app
lifespan and released when the server shuts down.
"""

from __future__ import annotations

# Standard Library
import asyncio
import logging
from collections.abc import AsyncIterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Annotated, Any

# Third-Party Libraries
import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

# Local Modules
from research_assistant.config import AssistantSettings
from research_assistant.errors import ErrorKind, PipelineError
from research_assistant.models import RetrievedPassage
from research_assistant.pipeline import AnswerPipeline, build_pipeline, build_query
from research_assistant.validator import summarise_errors

logger = logging.getLogger(__name__)

PIPELINE_WORKERS: int = 4


# ---------------------------------------------------------------------------
# Lifespan and dependency providers
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the pipeline and worker pool on startup, release them on shutdown."""
    settings = AssistantSettings()
    app.state.settings = settings
    app.state.pipeline = build_pipeline(settings)
    # Thread pool for running the synchronous pipeline
    app.state.executor = ThreadPoolExecutor(
        max_workers=PIPELINE_WORKERS, thread_name_prefix="pipeline"
    )
    logger.info("Pipeline ready (model=%s)", settings.ollama_model)
    try:
        yield
    finally:
        app.state.executor.shutdown(wait=True, cancel_futures=True)
        app.state.pipeline.close()
        logger.info("Pipeline shut down")


def get_settings(request: Request) -> AssistantSettings:
    return request.app.state.settings


def get_pipeline(request: Request) -> AnswerPipeline:
    return request.app.state.pipeline


def get_executor(request: Request) -> ThreadPoolExecutor:
    return request.app.state.executor


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Research Assistant",
    version="0.1.0",
    description=(
        "Structured question answering over a local Ollama model, optionally "
        "grounded in a document index or live web search."
    ),
    lifespan=lifespan,
)

# The browser frontend is served from a different origin.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies with the standard error envelope."""
    error = PipelineError(ErrorKind.INVALID_INPUT, summarise_errors(exc.errors()))
    logger.warning("Rejected request to %s: %s", request.url.path, error.details)
    return JSONResponse(status_code=error.status_code, content=error.to_envelope())


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class QueryRequest(BaseModel):
    prompt: str | None = Field(None, description="The question to answer.")
    mode: str | None = Field(None, description="auto, zero-shot, one-shot or few-shot.")
    temperature: float | None = Field(None, ge=0.0)
    top_p: float | None = Field(None, gt=0.0, le=1.0)
    top_k: int | None = Field(None, ge=1)
    use_rag: bool = False
    use_tool: bool = False
    use_reasoning: bool = False
    debug: bool = False


class PassageIn(BaseModel):
    text: str = Field(..., min_length=1)
    source_id: str = Field(..., min_length=1)
    page_number: int | None = None


class DocumentsRequest(BaseModel):
    passages: list[PassageIn] = Field(..., min_length=1)


class DocumentsResponse(BaseModel):
    ids: list[str]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/health", tags=["meta"])
async def health() -> dict[str, str]:
    """Liveness check."""
    return {"status": "ok", "server": "research-assistant"}


@app.post("/api/query", tags=["pipeline"])
async def query(
    body: QueryRequest,
    pipeline: Annotated[AnswerPipeline, Depends(get_pipeline)],
    settings: Annotated[AssistantSettings, Depends(get_settings)],
    executor: Annotated[ThreadPoolExecutor, Depends(get_executor)],
) -> JSONResponse:
    """Answer a question.

    Returns ``{"response": {summary, key_points, source_links}}`` with status
    200, or ``{"error": kind, "details": ...}`` with the status mapped from
    the failure kind.
    """
    try:
        parsed = build_query(
            body.prompt,
            mode=body.mode,
            temperature=body.temperature,
            top_p=body.top_p,
            top_k=body.top_k,
            use_rag=body.use_rag,
            use_tool=body.use_tool,
            use_reasoning=body.use_reasoning,
            debug=body.debug,
            defaults=settings.default_sampling(),
        )
    except PipelineError as exc:
        return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())

    loop = asyncio.get_running_loop()
    status, envelope = await loop.run_in_executor(executor, pipeline.respond, parsed)
    return JSONResponse(status_code=status, content=envelope)


@app.post("/api/documents", response_model=DocumentsResponse, tags=["retrieval"])
async def add_documents(
    body: DocumentsRequest,
    pipeline: Annotated[AnswerPipeline, Depends(get_pipeline)],
    executor: Annotated[ThreadPoolExecutor, Depends(get_executor)],
) -> Any:
    """Embed and stage passages into the document index."""
    add_passages = getattr(pipeline.retriever, "add_passages", None)
    if add_passages is None:
        error = PipelineError(ErrorKind.BACKEND_UNAVAILABLE, "No document index is configured")
        return JSONResponse(status_code=error.status_code, content=error.to_envelope())

    passages = [
        RetrievedPassage(text=item.text, source_id=item.source_id, page_number=item.page_number)
        for item in body.passages
    ]
    loop = asyncio.get_running_loop()
    try:
        ids: list[str] = await loop.run_in_executor(executor, add_passages, passages)
    except PipelineError as exc:
        return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())
    except Exception as exc:
        logger.error("Document staging failed: %s", exc, exc_info=True)
        error = PipelineError(ErrorKind.BACKEND_UNAVAILABLE, "Document staging failed")
        return JSONResponse(status_code=error.status_code, content=error.to_envelope())
    return DocumentsResponse(ids=ids)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_api() -> None:
    """Start the FastAPI server via uvicorn."""
    settings = AssistantSettings()
    logger.info("Starting research-assistant API on %s:%d", settings.api_host, settings.api_port)
    uvicorn.run(
        "research_assistant.api:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level="info",
        reload=False,
    )
