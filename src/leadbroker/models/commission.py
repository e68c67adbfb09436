"""Pydantic models for commission records."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from leadbroker.models.enums import CommissionStatus


class CommissionPayment(BaseModel):
    model_config = ConfigDict(extra="forbid")

    payment_reference: str | None = Field(None, max_length=200)


class CommissionResponse(BaseModel):
    commission_id: str
    job_id: str
    provider_id: str
    requester_id: str
    invoice_number: str
    final_amount: Decimal
    rate: float
    commission_amount: Decimal
    tax_amount: Decimal
    total_due: Decimal
    status: CommissionStatus
    due_at: datetime
    paid_at: datetime | None
    reminders_sent: int
    last_reminder_at: datetime | None

    model_config = {"from_attributes": True}
