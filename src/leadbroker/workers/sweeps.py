"""Scheduled sweeps that drive jobs and commissions forward without a human.

Every sweep lists candidate ids in one short session, then handles each id
in its own session and transaction. Each step re-checks its guard inside the
write, so a sweep racing a user (or another sweep) loses cleanly instead of
double-processing. A failing item is logged and the batch carries on.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.errors.exceptions import LeadBrokerError
from leadbroker.logging_config import sweep_context
from leadbroker.repositories.commission_repo import CommissionRepository
from leadbroker.repositories.job_repo import JobRepository
from leadbroker.services import negotiation
from leadbroker.services.clock import utcnow
from leadbroker.services.commission_engine import REMINDER_LOOKAHEAD, CommissionEngine
from leadbroker.services.config_provider import ConfigProvider, SettingsStoreConfigProvider
from leadbroker.services.credits import CreditService
from leadbroker.services.events import DomainEvent, Outcome
from leadbroker.services.job_lifecycle import JobLifecycle

logger = logging.getLogger(__name__)

NEGOTIATION_TIMEOUTS = "negotiation_timeouts"
NEGOTIATION_REMINDERS = "negotiation_reminders"
COMMISSION_REMINDERS = "commission_reminders"
WEEKLY_CREDITS = "weekly_credits"


@dataclass
class SweepReport:
    sweep: str
    examined: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    failures: dict[str, str] = field(default_factory=dict)


ItemStep = Callable[[AsyncSession, ConfigProvider, str], Awaitable[Outcome | DomainEvent | None]]


def _config_for(session: AsyncSession, config: ConfigProvider | None) -> ConfigProvider:
    return config or SettingsStoreConfigProvider(session)


async def _run(
    name: str,
    session_factory,
    ids: list[str],
    step: ItemStep,
    notifier=None,
    config: ConfigProvider | None = None,
) -> SweepReport:
    report = SweepReport(sweep=name, examined=len(ids))
    with sweep_context(name):
        for item_id in ids:
            try:
                async with session_factory() as session:
                    result = await step(session, _config_for(session, config), item_id)
                    await session.commit()
            except LeadBrokerError as exc:
                # Lost a race or no longer eligible
                report.skipped += 1
                logger.info("Sweep %s skipped %s: %s", name, item_id, exc.message)
                continue
            except Exception as exc:
                report.failed += 1
                report.failures[item_id] = str(exc)
                logger.exception("Sweep %s failed on %s", name, item_id)
                continue

            if isinstance(result, DomainEvent):
                events = [result]
            else:
                events = result.events if result is not None else []
            if not events:
                report.skipped += 1
                continue
            report.processed += 1
            if notifier is not None:
                await notifier.dispatch(events)
        logger.info(
            "Sweep %s done: examined=%d processed=%d skipped=%d failed=%d",
            name, report.examined, report.processed, report.skipped, report.failed,
        )
    return report


async def sweep_negotiation_timeouts(
    session_factory, notifier=None, config: ConfigProvider | None = None, now: datetime | None = None
) -> SweepReport:
    """Auto-confirm every pending final price whose deadline has passed."""
    now = now or utcnow()
    async with session_factory() as session:
        ids = await JobRepository(session).list_negotiation_timeouts(now)

    async def step(session: AsyncSession, cfg: ConfigProvider, job_id: str):
        return await JobLifecycle(session, cfg).auto_confirm(job_id, now)

    return await _run(NEGOTIATION_TIMEOUTS, session_factory, ids, step, notifier, config)


async def sweep_negotiation_reminders(
    session_factory, notifier, config: ConfigProvider | None = None, now: datetime | None = None
) -> SweepReport:
    """Remind requesters about final prices approaching their deadline.

    De-duplication reads the stored notifications, so ``notifier`` is
    required here.
    """
    now = now or utcnow()
    async with session_factory() as session:
        jobs = await JobRepository(session).list_pending_negotiations(now)
        ids = [j.job_id for j in jobs]

    async def step(session: AsyncSession, cfg: ConfigProvider, job_id: str):
        return await negotiation.due_reminder(session, job_id, now)

    return await _run(NEGOTIATION_REMINDERS, session_factory, ids, step, notifier, config)


async def sweep_commission_reminders(
    session_factory, notifier=None, config: ConfigProvider | None = None, now: datetime | None = None
) -> SweepReport:
    """Send commission reminders and mark overdue commissions, suspending providers."""
    now = now or utcnow()
    async with session_factory() as session:
        ids = await CommissionRepository(session).list_pending_due_before(now + REMINDER_LOOKAHEAD)

    async def step(session: AsyncSession, cfg: ConfigProvider, commission_id: str):
        return await CommissionEngine(session, cfg).escalate(commission_id, now)

    return await _run(COMMISSION_REMINDERS, session_factory, ids, step, notifier, config)


async def sweep_weekly_credits(
    session_factory, notifier=None, config: ConfigProvider | None = None, now: datetime | None = None
) -> SweepReport:
    """Reset subscribed providers to the weekly credit allocation."""
    now = now or utcnow()
    async with session_factory() as session:
        ids = await CreditService(session, _config_for(session, config)).list_due_for_reset(now)

    async def step(session: AsyncSession, cfg: ConfigProvider, provider_id: str):
        allocation = await cfg.get_free_access_allocation()
        return await CreditService(session, cfg).reset_weekly(provider_id, allocation, now)

    return await _run(WEEKLY_CREDITS, session_factory, ids, step, notifier, config)


SWEEPS = {
    NEGOTIATION_TIMEOUTS: sweep_negotiation_timeouts,
    NEGOTIATION_REMINDERS: sweep_negotiation_reminders,
    COMMISSION_REMINDERS: sweep_commission_reminders,
    WEEKLY_CREDITS: sweep_weekly_credits,
}
