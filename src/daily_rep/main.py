"""FastAPI application entry point and console scripts."""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from daily_rep.api.routes import get_service, router
from daily_rep.config import get_settings
from daily_rep.storage.store import load_seed

# Configure structlog based on environment
is_production = os.getenv("ENV", "development").lower() == "production"

if is_production:
    # Production: JSON format for machine parsing
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
else:
    # Development: console format for human readability
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

logger = structlog.get_logger()
settings = get_settings()


def seed_if_empty() -> None:
    store = get_service().store
    if len(store.reps) == 0 and settings.seed_path.exists():
        load_seed(store, settings.seed_path)


@asynccontextmanager
async def lifespan(app: FastAPI):
    seed_if_empty()
    yield
    await get_service().drain_notifications()


app = FastAPI(title="Daily Rep", version="0.1.0", lifespan=lifespan)
_allowed_origins_env = os.getenv(
    "ALLOWED_ORIGINS", "http://localhost:8000,http://127.0.0.1:8000"
)
allowed_origins = [o.strip() for o in _allowed_origins_env.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(router)


@app.middleware("http")
async def auth_middleware(request: Request, call_next):
    """Optional APP_SECRET authentication middleware."""
    if not settings.app_secret:
        return await call_next(request)
    if request.url.path == "/api/health":
        return await call_next(request)
    secret = request.headers.get("X-App-Secret", "")
    if secret != settings.app_secret:
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    return await call_next(request)


def main() -> None:
    """Run the application."""
    uvicorn.run(
        "daily_rep.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level="info",
    )


def run_scheduler() -> None:
    """Run one scheduled batch (invoke hourly or daily from cron)."""
    seed_if_empty()
    report = asyncio.run(get_service().run_scheduled())
    logger.info(
        "scheduler_finished",
        processed=report.processed,
        assigned=report.assigned_count,
    )


def seed() -> None:
    """Load the catalog seed file into the store."""
    load_seed(get_service().store, settings.seed_path)


if __name__ == "__main__":
    main()
