"""FastAPI application for the ReviewPulse API.

Wires the brand, review-source, sync-job, review, activity and metrics
routers under /api/v1, maps DomainError subclasses to their registered
status codes and exposes /health for load balancers.
"""

import logging
import sys
import time as _time
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src.api.routes import activity, brands, jobs, metrics, reviews, sources
from src.config import get_config
from src.db.connection import get_db_context, init_db
from src.errors import DomainError, format_error, http_status_for

_server_config = get_config().server

# uvicorn only captures stdout; route the src.* loggers there.
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logging.getLogger("src").setLevel(_server_config.log_level.upper())

logger = logging.getLogger(__name__)

_started_at: float | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup."""
    global _started_at
    _started_at = _time.monotonic()
    init_db()
    logger.info("ReviewPulse API ready")
    yield


app = FastAPI(
    title="ReviewPulse API",
    description="Review aggregation: sources, sync scheduling, sentiment audit and success metrics",
    version="0.1.0",
    lifespan=lifespan,
)

_origins = _server_config.cors_origins()
if _origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-User-Id"],
    )


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Map a domain error to its registered status and structured body.

    Args:
        request: The incoming request.
        exc: The raised domain error.

    Returns:
        JSONResponse with code, title, message, remediation, details, retryable.
    """
    status_code = http_status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=format_error(exc))


for _module in (brands, sources, jobs, reviews, activity, metrics):
    app.include_router(_module.router, prefix="/api/v1")


@app.get("/health")
def health_check() -> dict:
    """Liveness plus a database round trip."""
    try:
        version = _pkg_version("reviewpulse")
    except PackageNotFoundError:
        version = "unknown"

    try:
        with get_db_context() as db:
            db.scalar(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Health check database query failed: %s", e)
        database = "unavailable"
    else:
        database = "ok"

    return {
        "status": "healthy" if database == "ok" else "degraded",
        "version": version,
        "uptime_seconds": int(_time.monotonic() - _started_at) if _started_at else 0,
        "database": database,
    }
