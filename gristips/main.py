"""Main FastAPI application."""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Annotated

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware

from gristips import __version__
from gristips.api import api_router
from gristips.auth.proconnect import ProConnectClient
from gristips.config import get_settings
from gristips.config_validation import build_proconnect_config, validate_configuration_at_startup
from gristips.constants import SESSION_COOKIE_NAME, SESSION_MAX_AGE
from gristips.db import close_db, get_db, init_db
from gristips.exceptions import AppError, ErrorType, RateLimitExceededError
from gristips.services.grist import GristApiClient
from gristips.utils.encryption import SecretCipher
from gristips.utils.http_client import create_http_client
from gristips.utils.logging import get_logger, log_error, setup_logging
from gristips.utils.rate_limiter import RateLimiters

settings = get_settings()
setup_logging()
logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id, echoed back in the response headers."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        response.headers["Content-Security-Policy"] = "default-src 'self'; frame-ancestors 'none';"
        # HSTS (only in production)
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    validate_configuration_at_startup(settings)
    await init_db()
    logger.info("Database initialized")

    yield

    await app.state.http_client.aclose()
    await close_db()
    logger.info("Application shutdown complete")


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    lifespan=lifespan,
)

# Services shared by all requests, reached through gristips.api.dependencies
app.state.http_client = create_http_client()
app.state.secret_cipher = SecretCipher(settings.encryption_key)
app.state.rate_limiters = RateLimiters()
app.state.grist_client = GristApiClient(
    settings.grist_base_url,
    timeout=settings.grist_timeout,
    http_client=app.state.http_client,
)
app.state.proconnect = ProConnectClient(
    build_proconnect_config(settings), app.state.http_client
)

# Middleware (order matters - first added = last executed)
app.add_middleware(SecurityHeadersMiddleware)

if settings.is_development:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:8080", "http://127.0.0.1:8080"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    # Production: only allow same origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.app_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", REQUEST_ID_HEADER],
    )

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.app_secret_key,
    session_cookie=SESSION_COOKIE_NAME,
    max_age=SESSION_MAX_AGE,
    same_site="lax",
    https_only=settings.is_production,
)
app.add_middleware(RequestIdMiddleware)

# Routers
app.include_router(api_router)


# ============== Error handlers ==============


def _error_response(request: Request, error: AppError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    headers = {}
    if isinstance(error, RateLimitExceededError) and error.retry_after is not None:
        headers["Retry-After"] = str(error.retry_after)
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(request_id, include_details=settings.is_development),
        headers=headers,
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render application errors as JSON."""
    log_error(exc, path=request.url.path, method=request.method)
    return _error_response(request, exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies and query strings are validation errors (400)."""
    details = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return _error_response(request, AppError(ErrorType.VALIDATION_ERROR, details=details))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Routing errors (unknown path, wrong method) in the application error format."""
    if exc.status_code == 405:
        error = AppError(
            ErrorType.METHOD_NOT_ALLOWED, details=f"Method {request.method} not allowed"
        )
    elif exc.status_code == 404:
        error = AppError(ErrorType.NOT_FOUND, details=str(exc.detail))
    else:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
    return _error_response(request, error)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unexpected becomes a generic server error."""
    log_error(exc, path=request.url.path, method=request.method)
    return _error_response(request, AppError(ErrorType.SERVER_ERROR, details=str(exc)))


# ============== Monitoring ==============

# Store app start time for uptime tracking
_app_start_time = datetime.now(UTC)


@app.get("/health", include_in_schema=True, tags=["monitoring"])
async def health_check(db: Annotated[AsyncSession, Depends(get_db)]) -> JSONResponse:
    """Health check endpoint for monitoring and load balancers.

    Returns:
        JSONResponse with status, uptime, and service health checks.
    """
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "uptime_seconds": (datetime.now(UTC) - _app_start_time).total_seconds(),
        "version": __version__,
        "checks": {},
    }

    # Check database connection
    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = {"status": "healthy"}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["checks"]["database"] = {"status": "unhealthy"}
        health_status["status"] = "degraded"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(content=health_status, status_code=status_code)
