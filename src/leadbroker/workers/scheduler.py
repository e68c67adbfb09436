"""Background scheduler that runs the sweeps on their cadences."""

import asyncio
import logging
import time
from dataclasses import dataclass

from leadbroker.config import Settings, settings
from leadbroker.workers import sweeps

logger = logging.getLogger(__name__)

# Scheduler wake-up interval in seconds
_TICK_SECONDS = 30


@dataclass
class ScheduledSweep:
    name: str
    interval_seconds: int
    last_run: float | None = None

    def is_due(self, now: float) -> bool:
        return self.last_run is None or now - self.last_run >= self.interval_seconds


def build_schedule(cfg: Settings = settings) -> list[ScheduledSweep]:
    return [
        ScheduledSweep(sweeps.NEGOTIATION_TIMEOUTS, cfg.negotiation_sweep_interval_seconds),
        ScheduledSweep(sweeps.NEGOTIATION_REMINDERS, cfg.reminder_sweep_interval_seconds),
        ScheduledSweep(sweeps.COMMISSION_REMINDERS, cfg.reminder_sweep_interval_seconds),
        ScheduledSweep(sweeps.WEEKLY_CREDITS, cfg.credit_sweep_interval_seconds),
    ]


async def run_sweep(name: str, session_factory, notifier, redis=None, lock_seconds: int = 300):
    """Run one sweep by name, at most once at a time across instances when Redis is present.

    Returns the ``SweepReport``, or None when another instance holds the lock.
    The guarded writes inside each sweep keep overlapping runs safe even
    without the lock; the lock only saves duplicate work.
    """
    lock_key = f"leadbroker:sweep:lock:{name}"
    if redis is not None:
        locked = await redis.set(lock_key, "1", nx=True, ex=lock_seconds)
        if not locked:
            logger.debug("Sweep %s already running on another instance", name)
            return None
    try:
        return await sweeps.SWEEPS[name](session_factory, notifier)
    finally:
        if redis is not None:
            await redis.delete(lock_key)


async def run_scheduler(app) -> None:
    """Background task that runs each sweep when its interval has elapsed."""
    schedule = build_schedule()
    logger.info(
        "Sweep scheduler started (%s)",
        ", ".join(f"{s.name}={s.interval_seconds}s" for s in schedule),
    )

    while True:
        try:
            await asyncio.sleep(_TICK_SECONDS)

            session_factory = getattr(app.state, "db_session_factory", None)
            if not session_factory:
                continue
            redis = getattr(app.state, "redis", None)
            notifier = getattr(app.state, "notifier", None)

            for entry in schedule:
                now = time.monotonic()
                if not entry.is_due(now):
                    continue
                entry.last_run = now
                try:
                    await run_sweep(entry.name, session_factory, notifier, redis,
                                    lock_seconds=max(entry.interval_seconds, _TICK_SECONDS))
                except Exception as exc:
                    logger.exception("Sweep %s crashed: %s", entry.name, exc)

        except asyncio.CancelledError:
            logger.info("Sweep scheduler stopped")
            break
        except Exception as exc:
            logger.exception("Scheduler error: %s", exc)
