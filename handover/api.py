"""FastAPI app with health, routers, and error handling.

Domain errors raised by the pipelines are mapped here to JSON responses of
the form ``{"error": ..., "detail": ...}``.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ai.llm import LLMError, LLMRateLimitError

from .config import settings
from .deps import AuthenticationError
from .logging_config import setup_logging
from .pipelines.documents import DocumentError
from .pipelines.handovers import HandoverError, NotFound
from .pipelines.ingest import IngestionError
from .policies import AccessDenied
from .routers import admin, handovers, insights, meetings, tasks
from .schemas import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Rate limit exceeded (429). Please wait a minute before trying again."


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    # Startup
    setup_logging()
    logger.info(f"{settings.app_name} starting up ({settings.environment.value})")

    yield

    # Shutdown
    logger.info(f"{settings.app_name} shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Knowledge transfer tracking for exiting employees and their successors",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request, exc: AuthenticationError):
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content=ErrorResponse(error="unauthorized", detail=str(exc)).model_dump(),
    )


@app.exception_handler(AccessDenied)
async def access_denied_handler(request, exc: AccessDenied):
    logger.info(f"Access denied on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content=ErrorResponse(error="forbidden", detail=str(exc)).model_dump(),
    )


@app.exception_handler(NotFound)
async def not_found_handler(request, exc: NotFound):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=ErrorResponse(error="not_found", detail=str(exc)).model_dump(),
    )


@app.exception_handler(HandoverError)
async def handover_error_handler(request, exc: HandoverError):
    """Rejected input or an impossible state change."""
    logger.warning(f"Handover error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(error="handover_error", detail=str(exc)).model_dump(),
    )


@app.exception_handler(IngestionError)
async def ingestion_error_handler(request, exc: IngestionError):
    logger.error(f"Ingestion error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Failed to insert AI insights", "details": str(exc)},
    )


@app.exception_handler(DocumentError)
async def document_error_handler(request, exc: DocumentError):
    logger.error(f"Document error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=ErrorResponse(error="document_error", detail=str(exc)).model_dump(),
    )


@app.exception_handler(LLMError)
async def llm_error_handler(request, exc: LLMError):
    """Configuration, upstream and parse failures of the LLM."""
    if isinstance(exc, LLMRateLimitError):
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": RATE_LIMIT_MESSAGE},
        )
    logger.error(f"LLM error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": str(exc)},
    )


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok", version=settings.version)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.version,
        "endpoints": {
            "health": "/health",
            "handovers": "/handovers",
            "handover_stats": "/handovers/stats",
            "insight_webhook": "/webhooks/ai-insights",
            "generate_insights": "/ai/insights",
            "task_summary": "/ai/task-summary",
            "my_insights": "/insights/me",
            "hr_insights": "/insights/hr",
            "meetings": "/meetings",
            "help_requests": "/help-requests",
            "documents": "/documents",
            "admin": "/admin",
            "docs": "/docs",
        },
    }


app.include_router(handovers.router)
app.include_router(tasks.router)
app.include_router(insights.router)
app.include_router(meetings.router)
app.include_router(admin.router)
