"""FastAPI application factory and lifespan management."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from leadbroker.config import settings
from leadbroker.logging_config import configure_logging

# Configure logging at import time
configure_logging(log_level=settings.log_level, json_output=not settings.local_mode)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown resources."""
    from leadbroker.db.engine import create_db_engine, create_session_factory
    from leadbroker.events.notifier import Notifier
    from leadbroker.events.webhook_config import WebhookSubscription, webhook_registry

    db_url = settings.effective_database_url
    engine = create_db_engine(db_url)

    # Auto-create tables for SQLite (local dev, no migrations)
    if "sqlite" in db_url:
        from leadbroker.db.base import Base
        import leadbroker.db.models  # noqa: F401 - register all ORM models

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("SQLite tables created (local mode)")

    app.state.db_engine = engine
    app.state.db_session_factory = create_session_factory(engine)

    # Redis holds the sweep locks; optional and skipped in local mode
    app.state.redis = None
    if not settings.local_mode:
        try:
            import redis.asyncio as aioredis
            app.state.redis = aioredis.from_url(settings.redis_url, decode_responses=True)
        except Exception:
            logger.warning("Redis not available, sweep locking disabled")

    if settings.webhook_url:
        webhook_registry.register(WebhookSubscription(url=settings.webhook_url, secret=settings.webhook_secret))
        logger.info("Notification webhook registered: %s", settings.webhook_url)
    app.state.notifier = Notifier(app.state.db_session_factory)

    scheduler_task = None
    if settings.scheduler_enabled:
        from leadbroker.workers.scheduler import run_scheduler
        scheduler_task = asyncio.create_task(run_scheduler(app))
    app.state.scheduler_task = scheduler_task

    logger.info("LeadBroker API started (db=%s)", "sqlite" if "sqlite" in db_url else "postgresql")
    yield

    # Shutdown
    if scheduler_task is not None:
        scheduler_task.cancel()
        try:
            await scheduler_task
        except asyncio.CancelledError:
            pass
    if app.state.redis:
        await app.state.redis.close()
    await engine.dispose()
    logger.info("LeadBroker API shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="LeadBroker API",
        version="0.1.0",
        description="Job brokerage backend: lead access, final-price negotiation, commissions and disputes.",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Rate limiting sits inside auth so it can key on the caller
    from leadbroker.api.middleware.rate_limit import setup_rate_limiter
    setup_rate_limiter(app)

    # Add middleware (order matters: last added = first executed)
    from leadbroker.api.middleware.auth import AuthMiddleware
    from leadbroker.api.middleware.trace_id import TraceIdMiddleware
    app.add_middleware(AuthMiddleware)
    app.add_middleware(TraceIdMiddleware)

    from leadbroker.errors.handlers import register_exception_handlers
    register_exception_handlers(app)

    # Prometheus metrics (internal endpoint)
    try:
        from prometheus_fastapi_instrumentator import Instrumentator
        Instrumentator(
            should_group_status_codes=True,
            should_respect_env_var=False,
            excluded_handlers=["/api/v1/health.*", "/metrics"],
        ).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
    except ImportError:
        logger.debug("prometheus-fastapi-instrumentator not installed, /metrics disabled")

    from leadbroker.api.router import api_router
    app.include_router(api_router)

    return app


app = create_app()
