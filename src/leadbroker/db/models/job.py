"""Job table."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from leadbroker.db.base import Base, Money, TimestampMixin


class JobRow(Base, TimestampMixin):
    __tablename__ = "jobs"
    __table_args__ = (
        Index("ix_jobs_status_negotiation_deadline", "status", "negotiation_deadline"),
    )

    job_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    requester_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    assigned_provider_id: Mapped[str | None] = mapped_column(
        String(128), ForeignKey("providers.provider_id"), nullable=True, index=True
    )
    budget: Mapped[Decimal | None] = mapped_column(Money, nullable=True)

    # Final-price negotiation
    proposed_final_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    proposed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    negotiation_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    final_price_rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    final_price_rejection_reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    final_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    requester_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    override_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    override_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    override_reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    commission_settled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Status to restore when the last open dispute is resolved
    status_before_dispute: Mapped[str | None] = mapped_column(String(50), nullable=True)
