"""Access grant table: one row per (job, provider) that obtained bidding rights."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from leadbroker.db.base import Base


class AccessGrantRow(Base):
    __tablename__ = "access_grants"
    __table_args__ = (
        UniqueConstraint("job_id", "provider_id", name="uq_access_grants_job_provider"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(String(128), ForeignKey("jobs.job_id"), nullable=False, index=True)
    provider_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("providers.provider_id"), nullable=False, index=True
    )
    method: Mapped[str] = mapped_column(String(50), nullable=False)
    credit_consumed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payment_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    claimed_win: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Dispute reversal annotations; the grant itself is never deleted
    reversed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reversal_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
