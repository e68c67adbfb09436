"""Pydantic models for disputes and dispute responses."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from leadbroker.db.base import MAX_MONEY
from leadbroker.models.enums import DisputeResolution, DisputeStatus, DisputeType


# ── Request models ─────────────────────────────────────────────────────────────

class DisputeCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dispute_type: DisputeType
    title: str = Field(min_length=1, max_length=300)
    description: str = Field(min_length=1, max_length=10000)
    priority: str = Field("medium", pattern=r"^(low|medium|high|urgent)$")


class DisputeResponseCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    message: str = Field(min_length=1, max_length=10000)
    internal: bool = False


class DisputeResolve(BaseModel):
    model_config = ConfigDict(extra="forbid")

    resolution: DisputeResolution
    notes: str | None = Field(None, max_length=10000)
    reverse_credit: bool = False
    commission_amount: Decimal | None = Field(None, ge=0, le=MAX_MONEY)
    complete_job: bool = False
    reopen_job: bool = False


# ── Response models ────────────────────────────────────────────────────────────

class DisputeOut(BaseModel):
    dispute_id: str
    job_id: str
    raised_by: str
    role: str
    dispute_type: DisputeType
    title: str
    description: str
    priority: str
    status: DisputeStatus
    resolution: DisputeResolution | None
    resolution_notes: str | None
    resolved_by: str | None
    resolved_at: datetime | None
    credit_refunded: bool
    commission_adjusted_to: Decimal | None
    created_at: datetime

    model_config = {"from_attributes": True}


class DisputeResponseOut(BaseModel):
    id: int
    dispute_id: str
    author_id: str
    author_role: str
    message: str
    internal: bool
    created_at: datetime

    model_config = {"from_attributes": True}
