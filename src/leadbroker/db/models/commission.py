"""Commission record table."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from leadbroker.db.base import Base, Money, TimestampMixin


class CommissionRecordRow(Base, TimestampMixin):
    __tablename__ = "commission_records"

    commission_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    # unique=True is the last line of defence against double charging
    job_id: Mapped[str] = mapped_column(String(128), ForeignKey("jobs.job_id"), nullable=False, unique=True)
    provider_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("providers.provider_id"), nullable=False, index=True
    )
    requester_id: Mapped[str] = mapped_column(String(128), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(64), nullable=False)
    final_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    rate: Mapped[float] = mapped_column(Float, nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_due: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    due_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reminders_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reminder_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
