"""Health check endpoints."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

router = APIRouter()


@router.get("/health")
async def health_check():
    return {"status": "healthy", "service": "leadbroker-api", "version": "0.1.0"}


@router.get("/health/live")
async def liveness():
    return {"status": "alive"}


async def _check_database(request: Request) -> str:
    try:
        async with request.app.state.db_session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        return f"error: {exc}"
    return "ok"


async def _check_redis(request: Request) -> str:
    redis = getattr(request.app.state, "redis", None)
    if redis is None:
        return "disabled"
    try:
        await redis.ping()
    except Exception as exc:
        return f"error: {exc}"
    return "ok"


def _check_scheduler(request: Request) -> str:
    # Timeouts and overdue commissions only advance while the sweep task is alive
    task = getattr(request.app.state, "scheduler_task", None)
    if task is None:
        return "disabled"
    return "error: stopped" if task.done() else "ok"


@router.get("/health/ready")
async def readiness(request: Request):
    """Readiness probe covering the database, Redis and the sweep scheduler."""
    checks = {
        "database": await _check_database(request),
        "redis": await _check_redis(request),
        "scheduler": _check_scheduler(request),
    }
    ready = not any(v.startswith("error") for v in checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "not_ready", "checks": checks},
    )
