"""Tests for the scheduled sweeps.

Every setup is committed through its own session so each sweep item runs in
a fresh transaction, as it does in production.

Covers:
- Negotiation timeouts auto-confirm past-deadline jobs exactly once
- Negotiation reminders go out once per threshold
- Commission reminders and OVERDUE escalation with suspension
- Weekly credit resets
- One failing item does not stop the batch
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from leadbroker.models.enums import CommissionStatus, JobStatus, NotificationKind, ProviderStatus
from leadbroker.repositories.commission_repo import CommissionRepository
from leadbroker.repositories.job_repo import JobRepository
from leadbroker.repositories.notification_repo import NotificationRepository
from leadbroker.repositories.provider_repo import ProviderRepository
from leadbroker.services.clock import ensure_utc, utcnow
from leadbroker.workers import sweeps
from leadbroker.workers.scheduler import build_schedule, run_sweep


async def _committed(session_factory, scenario_for, build):
    """Run ``build(scenario)`` in its own session and commit it."""
    async with session_factory() as session:
        result = await build(scenario_for(session))
        await session.commit()
    return result


async def _job(session_factory, job_id):
    async with session_factory() as session:
        return await JobRepository(session).get(job_id)


# ---------------------------------------------------------------------------
# Negotiation timeouts
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_timeout_sweep_completes_expired_negotiation(session_factory, scenario_for, config, notifier):
    job, provider = await _committed(session_factory, scenario_for, lambda s: s.awaiting_settlement("1000"))
    after_deadline = ensure_utc(job.negotiation_deadline) + timedelta(minutes=5)

    report = await sweeps.sweep_negotiation_timeouts(session_factory, notifier, config, now=after_deadline)

    assert report.examined == 1
    assert report.processed == 1
    assert report.failed == 0
    stored = await _job(session_factory, job.job_id)
    assert stored.status == JobStatus.COMPLETED
    assert stored.final_amount == Decimal("1000")
    assert stored.confirmed_by == "system"
    async with session_factory() as session:
        assert await CommissionRepository(session).count_for_job(job.job_id) == 1
        inbox = await NotificationRepository(session).list_by_recipient(provider.provider_id)
    assert NotificationKind.FINAL_PRICE_AUTO_CONFIRMED in {n.kind for n in inbox}

    again = await sweeps.sweep_negotiation_timeouts(session_factory, notifier, config, now=after_deadline)
    assert again.examined == 0
    async with session_factory() as session:
        assert await CommissionRepository(session).count_for_job(job.job_id) == 1


@pytest.mark.asyncio
async def test_timeout_sweep_ignores_open_negotiations(session_factory, scenario_for, config):
    job, _ = await _committed(session_factory, scenario_for, lambda s: s.awaiting_settlement())
    before_deadline = ensure_utc(job.negotiation_deadline) - timedelta(hours=1)

    report = await sweeps.sweep_negotiation_timeouts(session_factory, None, config, now=before_deadline)

    assert report.examined == 0
    assert (await _job(session_factory, job.job_id)).status == JobStatus.AWAITING_SETTLEMENT


@pytest.mark.asyncio
async def test_timeout_sweep_continues_after_a_failure(session_factory, scenario_for, config, monkeypatch):
    first, _ = await _committed(session_factory, scenario_for, lambda s: s.awaiting_settlement("100"))
    second, _ = await _committed(session_factory, scenario_for, lambda s: s.awaiting_settlement("200"))
    later = ensure_utc(max(first.negotiation_deadline, second.negotiation_deadline)) + timedelta(minutes=1)

    from leadbroker.services.job_lifecycle import JobLifecycle

    original = JobLifecycle.auto_confirm

    async def flaky(self, job_id, now=None):
        if job_id == first.job_id:
            raise RuntimeError("database hiccup")
        return await original(self, job_id, now)

    monkeypatch.setattr(JobLifecycle, "auto_confirm", flaky)

    report = await sweeps.sweep_negotiation_timeouts(session_factory, None, config, now=later)

    assert report.examined == 2
    assert report.failed == 1
    assert report.processed == 1
    assert "database hiccup" in report.failures[first.job_id]
    assert (await _job(session_factory, first.job_id)).status == JobStatus.AWAITING_SETTLEMENT
    assert (await _job(session_factory, second.job_id)).status == JobStatus.COMPLETED


# ---------------------------------------------------------------------------
# Negotiation reminders
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_reminder_sweep_sends_once_per_threshold(session_factory, scenario_for, config, notifier):
    job, _ = await _committed(session_factory, scenario_for, lambda s: s.awaiting_settlement())
    deadline = ensure_utc(job.negotiation_deadline)

    first = await sweeps.sweep_negotiation_reminders(
        session_factory, notifier, config, now=deadline - timedelta(hours=5)
    )
    repeat = await sweeps.sweep_negotiation_reminders(
        session_factory, notifier, config, now=deadline - timedelta(hours=4)
    )
    closer = await sweeps.sweep_negotiation_reminders(
        session_factory, notifier, config, now=deadline - timedelta(minutes=50)
    )

    assert (first.processed, repeat.processed, closer.processed) == (1, 0, 1)
    async with session_factory() as session:
        inbox = await NotificationRepository(session).list_by_recipient(job.requester_id)
    reminders = [n for n in inbox if n.kind == NotificationKind.FINAL_PRICE_REMINDER]
    assert sorted(n.extra_data["threshold_hours"] for n in reminders) == [1, 6]


# ---------------------------------------------------------------------------
# Commission reminders and overdue
# ---------------------------------------------------------------------------


async def _commission(session_factory, scenario_for, config):
    job, provider = await _committed(session_factory, scenario_for, lambda s: s.completed("1000"))
    async with session_factory() as session:
        record = await CommissionRepository(session).get_by_job(job.job_id)
    return record, provider


@pytest.mark.asyncio
async def test_commission_sweep_reminds_then_suspends(session_factory, scenario_for, config, notifier):
    record, provider = await _commission(session_factory, scenario_for, config)
    due = ensure_utc(record.due_at)

    too_early = await sweeps.sweep_commission_reminders(session_factory, notifier, config, now=due - timedelta(days=3))
    reminded = await sweeps.sweep_commission_reminders(session_factory, notifier, config, now=due - timedelta(hours=20))
    overdue = await sweeps.sweep_commission_reminders(session_factory, notifier, config, now=due + timedelta(hours=1))

    assert too_early.examined == 0
    assert reminded.processed == 1
    assert overdue.processed == 1
    async with session_factory() as session:
        stored = await CommissionRepository(session).get(record.commission_id)
        account = await ProviderRepository(session).get(provider.provider_id)
    assert stored.status == CommissionStatus.OVERDUE
    assert stored.reminders_sent == 2
    assert account.status == ProviderStatus.SUSPENDED

    after = await sweeps.sweep_commission_reminders(session_factory, notifier, config, now=due + timedelta(hours=2))
    assert after.examined == 0


# ---------------------------------------------------------------------------
# Weekly credits
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_weekly_credit_sweep(session_factory, scenario_for, config):
    now = utcnow()

    async def build(s):
        provider = await s.provider(credits=0, subscription=True)
        provider.last_credit_reset_at = now - timedelta(days=8)
        return provider

    provider = await _committed(session_factory, scenario_for, build)

    report = await sweeps.sweep_weekly_credits(session_factory, None, config, now=now)
    again = await sweeps.sweep_weekly_credits(session_factory, None, config, now=now)

    assert report.processed == 1
    assert again.examined == 0
    async with session_factory() as session:
        assert (await ProviderRepository(session).get(provider.provider_id)).credits_balance == 3


# ---------------------------------------------------------------------------
# Scheduler plumbing
# ---------------------------------------------------------------------------


def test_schedule_covers_every_sweep():
    assert {entry.name for entry in build_schedule()} == set(sweeps.SWEEPS)


@pytest.mark.asyncio
async def test_run_sweep_skips_when_locked(session_factory):
    class LockedRedis:
        async def set(self, *args, **kwargs):
            return False

        async def delete(self, key):
            raise AssertionError("lock owned by another instance must not be released")

    assert await run_sweep(sweeps.NEGOTIATION_TIMEOUTS, session_factory, None, LockedRedis()) is None


@pytest.mark.asyncio
async def test_run_sweep_releases_lock(session_factory):
    released = []

    class FreeRedis:
        async def set(self, key, value, nx=False, ex=None):
            return True

        async def delete(self, key):
            released.append(key)

    report = await run_sweep(sweeps.WEEKLY_CREDITS, session_factory, None, FreeRedis())

    assert report.sweep == sweeps.WEEKLY_CREDITS
    assert released == ["leadbroker:sweep:lock:weekly_credits"]
