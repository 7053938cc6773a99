"""FastAPI application entry point."""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api import accounts, admin, banking, connections, dashboard, holdings, transactions
from api.deps import get_aggregator
from config import settings
from database import get_session_local
from logging_config import request_id_var, setup_logging
from services.cleanup_scheduler import CleanupScheduler
from services.encryption import encryption_key_available
from services.errors import ErrorCode, FlintError
from services.orphan_cleanup_service import OrphanCleanupService

setup_logging()
logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

_STATUS_CODES = {
    401: ErrorCode.UNAUTHORIZED,
    404: ErrorCode.NOT_FOUND,
    429: ErrorCode.RATE_LIMITED,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}


def build_cleanup_scheduler() -> CleanupScheduler:
    return CleanupScheduler(
        session_factory=get_session_local(),
        service_factory=lambda: OrphanCleanupService(get_aggregator()),
        interval_seconds=settings.ORPHAN_CLEANUP_INTERVAL_MINUTES * 60,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Check required settings and start the orphaned-identity sweep when enabled."""
    if not encryption_key_available():
        logger.warning("CREDENTIAL_ENCRYPTION_KEY is not set; linking accounts will fail")
    scheduler = build_cleanup_scheduler()
    app.state.cleanup_scheduler = scheduler
    if settings.ORPHAN_CLEANUP_ENABLED:
        scheduler.start()
    try:
        yield
    finally:
        scheduler.stop()


app = FastAPI(
    title="Flint",
    description="Unified bank, brokerage and crypto account dashboard",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    request.state.request_id = request_id
    token = request_id_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def error_response(
    request: Request,
    code: ErrorCode,
    message: str,
    status_code: int,
    retry_after: int | None = None,
    details: dict | None = None,
) -> JSONResponse:
    """Render the standard error body.

    ``details`` keys are merged at the top level so clients can read
    counters such as ``limit`` and ``current`` directly.
    """
    request_id = getattr(request.state, "request_id", None)
    body: dict = {
        "message": message,
        "error": {"code": code.value, "message": message, "requestId": request_id},
    }
    if details:
        body.update(details)
    headers = {}
    if request_id:
        headers[REQUEST_ID_HEADER] = request_id
    if retry_after is not None:
        body["retryAfter"] = retry_after
        headers["Retry-After"] = str(retry_after)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


@app.exception_handler(FlintError)
async def flint_error_handler(request: Request, exc: FlintError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.code.value)
    return error_response(
        request,
        exc.code,
        exc.message,
        exc.status_code,
        retry_after=exc.retry_after,
        details=exc.details,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request."
    if errors:
        location = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        message = f"Invalid request: {location} {errors[0].get('msg', '')}".strip()
    return error_response(request, ErrorCode.VALIDATION_ERROR, message, 400)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = _STATUS_CODES.get(exc.status_code, ErrorCode.VALIDATION_ERROR)
    if exc.status_code >= 500:
        code = ErrorCode.INTERNAL_ERROR
    return error_response(request, code, str(exc.detail), exc.status_code)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(
        request, ErrorCode.INTERNAL_ERROR, "An unexpected error occurred.", 500
    )


# Include API routers
app.include_router(accounts.router)
app.include_router(admin.router)
app.include_router(banking.router)
app.include_router(connections.router)
app.include_router(dashboard.router)
app.include_router(holdings.router)
app.include_router(transactions.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
