"""
Main FastAPI application for the document answering service.
Handles CORS, request logging middleware, lifespan events, and router registration.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.dependencies.services import get_llm_service, get_poller
from app.routers import documents, health, poller, webhooks
from app.services.exceptions import DocumentProcessingError

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Startup / shutdown helpers
# ---------------------------------------------------------------------------

def _check_configuration() -> None:
    """Log which credentials are configured.  Never raises."""
    if settings.OPENAI_API_KEY:
        logger.info("✓ OpenAI API key configured (detect=%s, answer=%s)",
                    settings.OPENAI_DETECT_MODEL, settings.OPENAI_ANSWER_MODEL)
    else:
        logger.warning("⚠ OPENAI_API_KEY missing - detection and answers will fail")

    if settings.has_google_credentials():
        logger.info("✓ Google service account: %s", settings.CLIENT_EMAIL)
    else:
        logger.warning("⚠ CLIENT_EMAIL / PRIVATE_KEY missing - documents cannot be read")

    approved = settings.get_approved_emails()
    if approved:
        logger.info("✓ %d approved owner(s)", len(approved))
    else:
        logger.warning("⚠ APPROVED_EMAILS is empty - every document will be rejected")


async def _check_llm() -> bool:
    """Verify the LLM API answers.  Never raises - warnings are logged instead."""
    try:
        reachable = await get_llm_service().check_health()
    except Exception as exc:
        logger.error("✗ LLM API check failed (%s)", exc)
        return False
    if reachable:
        logger.info("✓ LLM API reachable at %s", settings.OPENAI_BASE_URL)
    else:
        logger.warning("⚠ LLM API at %s did not answer with 200", settings.OPENAI_BASE_URL)
    return reachable


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting document answering service …")
    logger.info("=" * 60)

    # 1 - Credentials (optional; logs warnings but continues)
    _check_configuration()

    # 2 - LLM API (optional; logs warnings but continues)
    if settings.OPENAI_API_KEY:
        await _check_llm()

    # 3 - Drive poller
    if settings.POLL_ENABLED:
        get_poller().start()

    logger.info("=" * 60)
    logger.info("  Service ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("Shutting down …")
    if settings.POLL_ENABLED:
        await get_poller().stop()
    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Document Answerer API",
    description=(
        "Detects unanswered questions in Google Docs and writes generated "
        "answers back under each question.\n\n"
        "Key endpoints:\n"
        "- `POST /api/documents/{id}/process` - answer a document's questions\n"
        "- `POST /api/documents/{id}/process-async` - same, in the background\n"
        "- `POST /api/webhooks/document` - webhook trigger\n"
        "- `POST /api/poller/run` - run one Drive polling cycle\n"
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

_QUIET_PATHS = frozenset({"/", "/api/health/"})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log method, path, status and duration of each request, and report the
    duration in an ``X-Process-Time`` header.  Health probes are not logged.
    """
    started = time.monotonic()
    response = await call_next(request)
    duration_ms = (time.monotonic() - started) * 1000

    if request.url.path not in _QUIET_PATHS:
        logger.info(
            "%s %s → %d in %.1f ms",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )

    response.headers["X-Process-Time"] = f"{duration_ms:.2f}ms"
    return response


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

def _error_body(request: Request, detail: str, exc: Exception, **extra) -> dict:
    body = {
        "detail": detail,
        "error": str(exc),
        "path": request.url.path,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    body.update(extra)
    return body


@app.exception_handler(DocumentProcessingError)
async def document_error_handler(request: Request, exc: DocumentProcessingError):
    """Processing errors no router translated: the upstream Google or LLM API failed."""
    logger.error("✗ %s on %s %s", type(exc).__name__, request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=_error_body(
            request,
            "Document processing failed",
            exc,
            document_id=exc.document_id,
            kind=type(exc).__name__,
        ),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, "Internal server error", exc),
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,     prefix="/api/health",    tags=["Health"])
app.include_router(documents.router,  prefix="/api/documents", tags=["Documents"])
app.include_router(webhooks.router,   prefix="/api/webhooks",  tags=["Webhooks"])
app.include_router(poller.router,     prefix="/api/poller",    tags=["Poller"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root - returns basic service info."""
    return {
        "name": "Document Answerer API",
        "version": "0.1.0",
        "description": "Answers open questions in shared Google Docs",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "documents": "/api/documents",
            "webhooks": "/api/webhooks",
            "poller": "/api/poller",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )
