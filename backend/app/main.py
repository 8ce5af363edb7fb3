"""
Quote Costing API
FastAPI backend with async PostgreSQL: quotes, line items, costing clusters,
BOM / labour explosion and supplier pricing.
"""
import os
import sys
import logging
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env before anything reads the environment
load_dotenv()

from app.services.logging_config import setup_logging  # noqa: E402
from app.services.middleware import RequestTimingMiddleware  # noqa: E402
from app.services.perf_monitor import tracker as perf_tracker  # noqa: E402

_log_level = os.getenv("LOG_LEVEL", "INFO")
_json_logs = os.getenv("LOG_FORMAT", "json").lower() != "text"
setup_logging(level=_log_level, json_output=_json_logs)
logger = logging.getLogger("quotecost-api")

_PROCESS_START = time.monotonic()
APP_VERSION = "1.0.0"

if not os.getenv("DATABASE_URL"):
    logger.warning("MISSING env var: DATABASE_URL, running in dev mode")


@asynccontextmanager
async def lifespan(app: FastAPI):
    from app.db import engine, init_db
    try:
        await init_db()
    except Exception as e:
        logger.warning(f"Table init skipped (OK if using Alembic): {e}")
    yield
    await engine.dispose()


app = FastAPI(
    title="Quote Costing API",
    version=APP_VERSION,
    description="Costing breakdowns, markup clusters and supplier pricing for quote line items",
    lifespan=lifespan,
)

_cors_default = "http://localhost:3000,http://localhost:8000"
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With", "X-Request-ID"],
)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

# Routers
from app.api.quote_routes import router as quote_router  # noqa: E402
from app.api.catalog_routes import router as catalog_router  # noqa: E402

app.include_router(quote_router)
app.include_router(catalog_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": APP_VERSION,
        "db_configured": bool(os.getenv("DATABASE_URL")),
    }


@app.get("/metrics")
async def metrics():
    """
    Service metrics: uptime, process memory and per-operation timings from the
    in-process OperationTracker.
    """
    uptime_seconds = round(time.monotonic() - _PROCESS_START, 1)

    memory_mb = 0.0
    try:
        import resource  # Unix only
        usage = resource.getrusage(resource.RUSAGE_SELF)
        # ru_maxrss is in kilobytes on Linux, bytes on macOS
        if sys.platform == "darwin":
            memory_mb = round(usage.ru_maxrss / (1024 * 1024), 2)
        else:
            memory_mb = round(usage.ru_maxrss / 1024, 2)
    except ImportError:
        memory_mb = 0.0

    snapshot = perf_tracker.get_metrics()
    return {
        "uptime_seconds": uptime_seconds,
        "memory_usage_mb": memory_mb,
        **snapshot,
    }
