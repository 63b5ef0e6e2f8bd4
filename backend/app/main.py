"""Inventory auth service - FastAPI application"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
import logging
import time
import uuid

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

from app.config import settings
from app.core.database import init_db, session_scope, check_db_connected
from app.core.exceptions import BaseAPIException
from app.schemas.response import ErrorResponse, HealthResponse
from app.api.deps import get_auth_config
from app.api.v1 import auth, users, admin
from app.services.auth_service import ensure_default_role
from app.services.rbac_seed import seed_rbac

# Logging goes to the configured file and stderr
_log_dir = Path(settings.get_log_file()).parent
_log_dir.mkdir(parents=True, exist_ok=True)
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(settings.get_log_file()),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)

REQUEST_COUNT = Counter(
    "inventory_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "inventory_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

_ERROR_RESPONSES = {code: {"model": ErrorResponse} for code in (400, 401, 403, 409, 429)}


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(request: Request, status_code: int, error: str, details: Optional[Any] = None) -> JSONResponse:
    """Uniform error body shared by every exception handler"""
    body = ErrorResponse(error=error, details=details, path=request.url.path, timestamp=_timestamp())
    return JSONResponse(status_code=status_code, content=body.model_dump())


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "X-Request-ID"],
)


@app.middleware("http")
async def add_headers_and_timing(request: Request, call_next):
    """Security headers, request id and request metrics"""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    start = time.perf_counter()
    response = await call_next(request)
    duration = time.perf_counter() - start

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Cache-Control"] = "no-store"
    response.headers["X-Request-ID"] = request_id

    REQUEST_COUNT.labels(request.method, request.url.path, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(request.method, request.url.path).observe(duration)

    if duration > 1.0:
        logger.warning(
            "Slow request: %s %s took %.2fs request_id=%s",
            request.method,
            request.url.path,
            duration,
            request_id,
        )

    return response


@app.exception_handler(BaseAPIException)
async def api_exception_handler(request: Request, exc: BaseAPIException):
    """Domain errors keep their own status and message"""
    logger.info(
        "%s %s -> %s %s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.message,
    )
    return _error(request, exc.status_code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Boundary validation failures are reported as 400 Bad Request"""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning("Validation error on %s: %s", request.url.path, errors)
    return _error(request, status.HTTP_400_BAD_REQUEST, "Validation failed", errors)


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "A database error occurred. Please try again later.",
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.critical("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred.")


@app.on_event("startup")
async def startup_event():
    """Validate configuration and the default role; refuse to start otherwise"""
    settings.validate_security_settings()
    config = get_auth_config()
    logger.info(
        "Starting %s v%s (%s), access TTL %s, refresh TTL %s",
        settings.APP_NAME,
        settings.APP_VERSION,
        settings.ENVIRONMENT,
        config.access_expires_in,
        config.refresh_expires_in,
    )

    try:
        init_db()
    except Exception:
        logger.exception("Failed to initialize database")
        raise

    with session_scope() as db:
        if settings.SEED_RBAC_ON_STARTUP:
            seed_rbac(db)
        role_id = ensure_default_role(db, config)
    logger.info("Default role '%s' resolved to %s", config.default_role_name, role_id)


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down %s", settings.APP_NAME)


@app.get("/health", response_model=HealthResponse)
def health_check():
    """Liveness plus a database round trip"""
    with session_scope() as db:
        db_ok = check_db_connected(db)

    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=settings.APP_VERSION,
        timestamp=_timestamp(),
        database=db_ok,
    )


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/api/docs" if settings.DEBUG else "disabled"
    }


app.include_router(auth.router, prefix="/api/v1/auth", tags=["Authentication"], responses=_ERROR_RESPONSES)
app.include_router(users.router, prefix="/api/v1/users", tags=["Users"], responses=_ERROR_RESPONSES)
app.include_router(admin.router, prefix="/api/v1/admin", tags=["Admin"], responses=_ERROR_RESPONSES)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS
    )
