"""Commission engine: the platform fee on a completed job, charged at most once.

Settlement is claimed by flipping ``jobs.commission_settled`` with a guarded
update, and the record itself sits behind a unique ``job_id``. Either guard
alone stops a double charge; together they survive concurrent retries from
a sweep and a user confirming at the same moment.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.db.models.commission import CommissionRecordRow
from leadbroker.db.models.job import JobRow
from leadbroker.errors.exceptions import AlreadySettledError, InvalidTransitionError, NotFoundError
from leadbroker.models.enums import (
    AccessMethod,
    CommissionStatus,
    NotificationKind,
    ProviderStatus,
    SettlementOutcome,
)
from leadbroker.repositories.access_grant_repo import AccessGrantRepository
from leadbroker.repositories.commission_repo import CommissionRepository
from leadbroker.repositories.job_repo import JobRepository
from leadbroker.repositories.provider_repo import ProviderRepository
from leadbroker.services.clock import ensure_utc, utcnow
from leadbroker.services.config_provider import ConfigProvider
from leadbroker.services.events import Outcome
from leadbroker.services.id_generator import COMMISSION_PREFIX, generate_id

logger = logging.getLogger(__name__)

TAX_RATE = Decimal("0.20")
PAYMENT_WINDOW = timedelta(days=7)
REMINDER_LOOKAHEAD = timedelta(hours=48)
REMINDER_THRESHOLDS_HOURS: tuple[int, ...] = (36, 24, 12, 6, 2)

CENT = Decimal("0.01")


@dataclass(frozen=True)
class CommissionQuote:
    final_amount: Decimal
    rate: float
    commission_amount: Decimal
    tax_amount: Decimal
    total_due: Decimal


@dataclass
class Settlement:
    outcome: SettlementOutcome
    record: CommissionRecordRow | None = None


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_commission(final_amount: Decimal, rate: float) -> CommissionQuote:
    """Fee, tax and total for ``final_amount`` at ``rate`` percent."""
    final = Decimal(str(final_amount))
    commission = _money(final * Decimal(str(rate)) / Decimal(100))
    return quote_for_commission(final, rate, commission)


def quote_for_commission(final_amount: Decimal, rate: float, commission_amount: Decimal) -> CommissionQuote:
    commission = _money(Decimal(str(commission_amount)))
    tax = _money(commission * TAX_RATE)
    return CommissionQuote(
        final_amount=_money(Decimal(str(final_amount))),
        rate=rate,
        commission_amount=commission,
        tax_amount=tax,
        total_due=commission + tax,
    )


def invoice_number(provider_id: str, at: datetime) -> str:
    return f"COMM-{at.strftime('%Y%m%d%H%M%S')}-{provider_id[-6:].upper()}"


def reminders_crossed(due_at: datetime, now: datetime) -> int:
    """How many reminder thresholds lie at or behind ``now`` for a bill due at ``due_at``."""
    seconds_left = (ensure_utc(due_at) - ensure_utc(now)).total_seconds()
    hours_left = math.ceil(seconds_left / 3600)
    return sum(1 for h in REMINDER_THRESHOLDS_HOURS if hours_left <= h)


class CommissionEngine:
    def __init__(self, session: AsyncSession, config: ConfigProvider):
        self.session = session
        self.config = config
        self.jobs = JobRepository(session)
        self.grants = AccessGrantRepository(session)
        self.commissions = CommissionRepository(session)
        self.providers = ProviderRepository(session)

    async def _claim_settlement(self, job: JobRow) -> None:
        claimed = await self.jobs.guarded_update(
            job,
            [JobRow.commission_settled.is_(False)],
            commission_settled=True,
        )
        if not claimed:
            raise AlreadySettledError(job.job_id)

    async def settle(
        self, job: JobRow, final_amount: Decimal, now: datetime | None = None
    ) -> Outcome[Settlement]:
        """Evaluate the fee for a job entering COMPLETED.

        Runs inside the caller's transaction. A second call for the same job
        is a logged no-op reported as ``ALREADY_SETTLED``.
        """
        now = now or utcnow()
        try:
            await self._claim_settlement(job)
        except AlreadySettledError:
            logger.info("commission_already_settled job=%s", job.job_id)
            return Outcome(Settlement(SettlementOutcome.ALREADY_SETTLED))

        provider_id = job.assigned_provider_id
        grant = await self.grants.get_for(job.job_id, provider_id) if provider_id else None
        if grant is None or grant.method != AccessMethod.CREDIT:
            logger.info(
                "Commission exempt: job=%s provider=%s method=%s",
                job.job_id, provider_id, grant.method if grant else None,
            )
            return Outcome(Settlement(SettlementOutcome.EXEMPT))

        rate = await self.config.get_commission_rate()
        quote = compute_commission(final_amount, rate)
        record = await self.commissions.create(
            commission_id=generate_id(COMMISSION_PREFIX),
            job_id=job.job_id,
            provider_id=provider_id,
            requester_id=job.requester_id,
            invoice_number=invoice_number(provider_id, now),
            final_amount=quote.final_amount,
            rate=quote.rate,
            commission_amount=quote.commission_amount,
            tax_amount=quote.tax_amount,
            total_due=quote.total_due,
            status=CommissionStatus.PENDING,
            due_at=now + PAYMENT_WINDOW,
            reminders_sent=0,
        )
        logger.info(
            "Commission charged: job=%s provider=%s rate=%s total=%s",
            job.job_id, provider_id, rate, quote.total_due,
        )
        outcome = Outcome(Settlement(SettlementOutcome.CHARGED, record))
        outcome.emit(
            provider_id,
            NotificationKind.COMMISSION_DUE,
            job.job_id,
            at=now,
            commission_id=record.commission_id,
            total_due=str(quote.total_due),
            due_at=record.due_at.isoformat(),
        )
        return outcome

    async def get(self, commission_id: str) -> CommissionRecordRow:
        record = await self.commissions.get(commission_id)
        if not record:
            raise NotFoundError("Commission", commission_id)
        return record

    async def record_payment(
        self, commission_id: str, reference: str | None = None, now: datetime | None = None
    ) -> Outcome[CommissionRecordRow]:
        """Mark a PENDING or OVERDUE commission as PAID.

        A provider suspended for non-payment is reactivated once no OVERDUE
        commission remains.
        """
        now = now or utcnow()
        record = await self.get(commission_id)
        paid = await self.commissions.guarded_update(
            record,
            [CommissionRecordRow.status.in_((CommissionStatus.PENDING, CommissionStatus.OVERDUE))],
            status=CommissionStatus.PAID,
            paid_at=now,
        )
        if not paid:
            raise InvalidTransitionError(
                f"Commission is '{record.status}' and cannot be paid", record.status, "record_payment"
            )
        logger.info("Commission paid: commission=%s job=%s ref=%s", commission_id, record.job_id, reference)

        outcome = Outcome(record)
        outcome.emit(record.provider_id, NotificationKind.COMMISSION_PAID, record.job_id, at=now,
                     commission_id=commission_id)

        provider = await self.providers.get(record.provider_id)
        if (
            provider
            and provider.status == ProviderStatus.SUSPENDED
            and await self.commissions.count_overdue_for_provider(provider.provider_id) == 0
        ):
            await self.providers.reactivate(provider)
            logger.info("Provider reactivated after payment: provider=%s", provider.provider_id)
        return outcome

    async def adjust(self, job_id: str, commission_amount: Decimal) -> CommissionRecordRow | None:
        """Re-price an unpaid commission; zero waives it. Returns None if the job has no record."""
        record = await self.commissions.get_by_job(job_id)
        if record is None:
            return None
        if record.status == CommissionStatus.PAID:
            raise InvalidTransitionError("A paid commission cannot be adjusted", record.status, "adjust")

        quote = quote_for_commission(record.final_amount, record.rate, commission_amount)
        status = CommissionStatus.WAIVED if quote.commission_amount == 0 else record.status
        await self.commissions.update(
            record,
            commission_amount=quote.commission_amount,
            tax_amount=quote.tax_amount,
            total_due=quote.total_due,
            status=status,
        )
        logger.info("Commission adjusted: job=%s amount=%s status=%s", job_id, quote.commission_amount, status)
        return record

    async def escalate(self, commission_id: str, now: datetime) -> Outcome[CommissionRecordRow | None]:
        """One reminder-sweep step for a PENDING commission.

        Past ``due_at`` the record goes OVERDUE and the provider is suspended
        in the same transaction. Before that, one reminder is sent whenever a
        new threshold has been crossed; ``reminders_sent`` only grows.
        """
        record = await self.commissions.get(commission_id)
        outcome: Outcome[CommissionRecordRow | None] = Outcome(record)
        if record is None or record.status != CommissionStatus.PENDING:
            return outcome

        if ensure_utc(now) >= ensure_utc(record.due_at):
            await self._mark_overdue(record, now, outcome)
            return outcome

        crossed = reminders_crossed(record.due_at, now)
        if crossed <= record.reminders_sent:
            return outcome
        sent = await self.commissions.guarded_update(
            record,
            [
                CommissionRecordRow.status == CommissionStatus.PENDING,
                CommissionRecordRow.reminders_sent < crossed,
            ],
            reminders_sent=crossed,
            last_reminder_at=now,
        )
        if sent:
            hours_left = math.ceil((ensure_utc(record.due_at) - ensure_utc(now)).total_seconds() / 3600)
            outcome.emit(
                record.provider_id,
                NotificationKind.COMMISSION_REMINDER,
                record.job_id,
                at=now,
                commission_id=record.commission_id,
                total_due=str(record.total_due),
                hours_left=hours_left,
            )
            logger.info("Commission reminder %d sent: commission=%s", crossed, commission_id)
        return outcome

    async def _mark_overdue(self, record: CommissionRecordRow, now: datetime, outcome: Outcome) -> None:
        flipped = await self.commissions.guarded_update(
            record,
            [CommissionRecordRow.status == CommissionStatus.PENDING],
            status=CommissionStatus.OVERDUE,
        )
        if not flipped:
            return
        provider = await self.providers.get(record.provider_id)
        if provider and provider.status != ProviderStatus.SUSPENDED:
            await self.providers.suspend(provider, f"Commission {record.invoice_number} overdue", now)
        logger.warning(
            "Commission overdue, provider suspended: commission=%s provider=%s",
            record.commission_id, record.provider_id,
        )
        outcome.emit(
            record.provider_id,
            NotificationKind.ACCOUNT_SUSPENDED,
            record.job_id,
            at=now,
            commission_id=record.commission_id,
            total_due=str(record.total_due),
        )
