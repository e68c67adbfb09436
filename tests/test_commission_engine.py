"""Tests for commission settlement, reminders, payment and adjustment.

Covers:
- Worked example: 1000 at 5% -> 50 + 10 tax = 60
- Only CREDIT-funded access is charged; exemption still settles the job
- Settlement is idempotent and never creates a second record, even when racing
- Reminder thresholds are monotonic; past due -> OVERDUE + suspension
- Payment reactivates a suspended provider; adjustment and waiver
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from leadbroker.db.models.commission import CommissionRecordRow
from leadbroker.errors.exceptions import InvalidTransitionError
from leadbroker.models.enums import (
    AccessMethod,
    CommissionStatus,
    FinalPriceDecisionValue,
    JobStatus,
    NotificationKind,
    ProviderStatus,
    SettlementOutcome,
)
from leadbroker.repositories.commission_repo import CommissionRepository
from leadbroker.services.clock import ensure_utc
from leadbroker.services.commission_engine import (
    CommissionEngine,
    compute_commission,
    invoice_number,
    reminders_crossed,
)
from leadbroker.services.config_provider import StaticConfigProvider


# ---------------------------------------------------------------------------
# Pure calculations
# ---------------------------------------------------------------------------


def test_compute_commission_worked_example():
    quote = compute_commission(Decimal("1000"), 5)
    assert quote.commission_amount == Decimal("50.00")
    assert quote.tax_amount == Decimal("10.00")
    assert quote.total_due == Decimal("60.00")


def test_compute_commission_rounds_half_up_to_cents():
    quote = compute_commission(Decimal("333.33"), 5)
    assert quote.commission_amount == Decimal("16.67")
    assert quote.tax_amount == Decimal("3.33")
    assert quote.total_due == Decimal("20.00")


def test_invoice_number_format():
    at = datetime(2026, 10, 18, 12, 30, 5, tzinfo=timezone.utc)
    assert invoice_number("prov_abc123def456", at) == "COMM-20261018123005-DEF456"


@pytest.mark.parametrize(
    "hours_left,expected",
    [(40, 0), (36, 1), (30, 1), (24, 2), (13, 2), (12, 3), (6, 4), (2, 5), (0.5, 5)],
)
def test_reminders_crossed(hours_left, expected):
    now = datetime(2026, 10, 18, tzinfo=timezone.utc)
    assert reminders_crossed(now + timedelta(hours=hours_left), now) == expected


# ---------------------------------------------------------------------------
# settle
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_credit_funded_job_is_charged(scenario, db_session):
    job, provider = await scenario.completed("1000", AccessMethod.CREDIT)

    record = await CommissionRepository(db_session).get_by_job(job.job_id)

    assert job.commission_settled is True
    assert record.provider_id == provider.provider_id
    assert record.requester_id == scenario.requester.user_id
    assert record.final_amount == Decimal("1000")
    assert record.rate == 5.0
    assert record.commission_amount == Decimal("50")
    assert record.tax_amount == Decimal("10")
    assert record.total_due == Decimal("60")
    assert record.status == CommissionStatus.PENDING
    assert record.reminders_sent == 0
    assert ensure_utc(record.due_at) - ensure_utc(job.completed_at) == timedelta(days=7)
    assert record.invoice_number.endswith(provider.provider_id[-6:].upper())


@pytest.mark.asyncio
@pytest.mark.parametrize("method", [AccessMethod.PAID_LEAD, AccessMethod.SUBSCRIPTION_SLOT])
async def test_non_credit_access_is_exempt(scenario, db_session, method):
    provider = await scenario.provider(subscription=True)
    job = await scenario.job()
    await scenario.grant(job, provider, method)
    await scenario.lifecycle.select_provider(job.job_id, scenario.requester, provider.provider_id)
    await scenario.lifecycle.confirm_start(job.job_id, scenario.requester)
    await scenario.lifecycle.propose_final_price(job.job_id, scenario.actor_for(provider), Decimal("1000"))
    outcome = await scenario.lifecycle.confirm_final_price(
        job.job_id, scenario.requester, FinalPriceDecisionValue.ACCEPT
    )

    assert job.status == JobStatus.COMPLETED
    assert job.commission_settled is True
    assert await CommissionRepository(db_session).get_by_job(job.job_id) is None
    assert NotificationKind.COMMISSION_DUE not in {e.kind for e in outcome.events}


@pytest.mark.asyncio
async def test_settle_twice_is_already_settled(scenario, db_session, config):
    job, _ = await scenario.completed("1000")
    engine = CommissionEngine(db_session, config)

    outcome = await engine.settle(job, job.final_amount)

    assert outcome.value.outcome == SettlementOutcome.ALREADY_SETTLED
    assert outcome.events == []
    assert job.commission_settled is True
    assert await CommissionRepository(db_session).count_for_job(job.job_id) == 1


@pytest.mark.asyncio
async def test_rate_is_read_at_settlement(scenario, db_session):
    job, _ = await scenario.awaiting_settlement("200")
    scenario.lifecycle.commissions.config = StaticConfigProvider(commission_rate=10.0, free_access_allocation=3)

    await scenario.lifecycle.confirm_final_price(job.job_id, scenario.requester, FinalPriceDecisionValue.ACCEPT)

    record = await CommissionRepository(db_session).get_by_job(job.job_id)
    assert record.rate == 10.0
    assert record.commission_amount == Decimal("20")
    assert record.total_due == Decimal("24")


# ---------------------------------------------------------------------------
# escalate (reminder sweep step)
# ---------------------------------------------------------------------------


async def _commission(scenario, db_session):
    job, provider = await scenario.completed("1000")
    record = await CommissionRepository(db_session).get_by_job(job.job_id)
    return record, provider


@pytest.mark.asyncio
async def test_reminders_only_grow(scenario, db_session, config):
    record, provider = await _commission(scenario, db_session)
    engine = CommissionEngine(db_session, config)
    due = ensure_utc(record.due_at)

    first = await engine.escalate(record.commission_id, due - timedelta(hours=30))
    repeat = await engine.escalate(record.commission_id, due - timedelta(hours=29))
    later = await engine.escalate(record.commission_id, due - timedelta(hours=5))

    assert [e.kind for e in first.events] == [NotificationKind.COMMISSION_REMINDER]
    assert first.events[0].recipient == provider.provider_id
    assert repeat.events == []
    assert len(later.events) == 1
    assert record.reminders_sent == 4
    assert record.last_reminder_at is not None


@pytest.mark.asyncio
async def test_past_due_marks_overdue_and_suspends(scenario, db_session, config):
    record, provider = await _commission(scenario, db_session)
    engine = CommissionEngine(db_session, config)

    outcome = await engine.escalate(record.commission_id, ensure_utc(record.due_at) + timedelta(minutes=1))

    assert record.status == CommissionStatus.OVERDUE
    assert provider.status == ProviderStatus.SUSPENDED
    assert provider.suspension_reason.startswith("Commission")
    assert [e.kind for e in outcome.events] == [NotificationKind.ACCOUNT_SUSPENDED]

    again = await engine.escalate(record.commission_id, ensure_utc(record.due_at) + timedelta(hours=2))
    assert again.events == []


# ---------------------------------------------------------------------------
# record_payment / adjust
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_payment_reactivates_suspended_provider(scenario, db_session, config):
    record, provider = await _commission(scenario, db_session)
    engine = CommissionEngine(db_session, config)
    await engine.escalate(record.commission_id, ensure_utc(record.due_at) + timedelta(minutes=1))
    assert provider.status == ProviderStatus.SUSPENDED

    outcome = await engine.record_payment(record.commission_id, "pay_789")

    assert record.status == CommissionStatus.PAID
    assert record.paid_at is not None
    assert provider.status == ProviderStatus.ACTIVE
    assert provider.suspended_at is None
    assert [e.kind for e in outcome.events] == [NotificationKind.COMMISSION_PAID]


@pytest.mark.asyncio
async def test_paying_twice_is_rejected(scenario, db_session, config):
    record, _ = await _commission(scenario, db_session)
    engine = CommissionEngine(db_session, config)
    await engine.record_payment(record.commission_id)

    with pytest.raises(InvalidTransitionError):
        await engine.record_payment(record.commission_id)


@pytest.mark.asyncio
async def test_adjust_reprices_and_waives(scenario, db_session, config):
    record, _ = await _commission(scenario, db_session)
    engine = CommissionEngine(db_session, config)

    await engine.adjust(record.job_id, Decimal("25"))
    assert record.commission_amount == Decimal("25")
    assert record.tax_amount == Decimal("5")
    assert record.total_due == Decimal("30")
    assert record.status == CommissionStatus.PENDING

    await engine.adjust(record.job_id, Decimal("0"))
    assert record.total_due == Decimal("0")
    assert record.status == CommissionStatus.WAIVED


@pytest.mark.asyncio
async def test_adjust_paid_commission_is_rejected(scenario, db_session, config):
    record, _ = await _commission(scenario, db_session)
    engine = CommissionEngine(db_session, config)
    await engine.record_payment(record.commission_id)

    with pytest.raises(InvalidTransitionError):
        await engine.adjust(record.job_id, Decimal("10"))


@pytest.mark.asyncio
async def test_adjust_without_record_returns_none(scenario, db_session, config):
    job = await scenario.job()
    assert await CommissionEngine(db_session, config).adjust(job.job_id, Decimal("10")) is None


# ---------------------------------------------------------------------------
# Concurrent settlement
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_requester_accept_racing_timeout_sweep_settles_once(session_factory, scenario_for):
    async with session_factory() as setup:
        job, _ = await scenario_for(setup).awaiting_settlement("1000")
        job_id, deadline = job.job_id, job.negotiation_deadline
        await setup.commit()

    async with session_factory() as requester_session, session_factory() as sweep_session:
        requester_side = scenario_for(requester_session)
        # Requester loads the job while the proposal is still pending
        stale = await requester_side.lifecycle.get_job(job_id)
        assert stale.status == JobStatus.AWAITING_SETTLEMENT

        await scenario_for(sweep_session).lifecycle.auto_confirm(job_id, deadline + timedelta(minutes=1))
        await sweep_session.commit()

        with pytest.raises(InvalidTransitionError):
            await requester_side.lifecycle.confirm_final_price(
                job_id, requester_side.requester, FinalPriceDecisionValue.ACCEPT
            )

    async with session_factory() as check:
        assert await CommissionRepository(check).count_for_job(job_id) == 1


@pytest.mark.asyncio
async def test_second_commission_record_for_job_violates_uniqueness(scenario, db_session):
    job, _ = await scenario.completed("1000")
    repo = CommissionRepository(db_session)
    record = await repo.get_by_job(job.job_id)
    duplicate = {c.key: getattr(record, c.key) for c in CommissionRecordRow.__table__.columns}
    duplicate.update(commission_id="com_duplicate", invoice_number="COMM-DUPLICATE")

    with pytest.raises(IntegrityError):
        await repo.create(**duplicate)
