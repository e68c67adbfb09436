"""Rate limiting using slowapi."""

import logging

from fastapi import Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from leadbroker.config import settings

logger = logging.getLogger(__name__)


def get_rate_limit_key(request: Request) -> str:
    """Use the caller's subject when authenticated, the client address otherwise."""
    user = getattr(request.state, "user", {}) or {}
    sub = user.get("sub", "")
    if sub and sub != "anonymous":
        return f"user:{sub}"
    return get_remote_address(request)


def setup_rate_limiter(app) -> None:
    """Attach a slowapi limiter to the FastAPI app when enabled."""
    if not settings.rate_limit_enabled:
        return

    storage_uri = "memory://" if settings.local_mode else settings.redis_url
    limiter = Limiter(
        key_func=get_rate_limit_key,
        default_limits=[f"{settings.rate_limit_per_minute}/minute"],
        storage_uri=storage_uri,
    )
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
    logger.info("Rate limiter configured (%d/min, storage=%s)", settings.rate_limit_per_minute,
                storage_uri.split("://")[0])
