"""Pydantic models for jobs and final-price negotiation."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from leadbroker.db.base import MAX_MONEY
from leadbroker.models.enums import FinalPriceDecisionValue, JobAction, JobStatus
from leadbroker.services import state_machine


# ── Request models ─────────────────────────────────────────────────────────────

class JobCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1, max_length=300)
    description: str | None = Field(None, max_length=10000)
    budget: Decimal | None = Field(None, ge=0, le=MAX_MONEY)


class ProviderChoice(BaseModel):
    model_config = ConfigDict(extra="forbid")

    provider_id: str


class WinnerConfirmation(BaseModel):
    """``provider_id`` may be omitted when exactly one provider has claimed."""

    model_config = ConfigDict(extra="forbid")

    provider_id: str | None = None


class FinalPriceProposal(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Positivity is a transition guard, checked by the lifecycle service
    amount: Decimal = Field(le=MAX_MONEY)


class FinalPriceDecision(BaseModel):
    model_config = ConfigDict(extra="forbid")

    decision: FinalPriceDecisionValue
    reason: str | None = Field(None, max_length=2000)


class FinalPriceOverride(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: str = Field(min_length=1, max_length=2000)


# ── Response models ────────────────────────────────────────────────────────────

class JobResponse(BaseModel):
    job_id: str
    requester_id: str
    title: str
    description: str | None
    status: JobStatus
    assigned_provider_id: str | None
    budget: Decimal | None
    proposed_final_amount: Decimal | None
    proposed_at: datetime | None
    negotiation_deadline: datetime | None
    final_price_rejected_at: datetime | None
    final_price_rejection_reason: str | None
    final_amount: Decimal | None
    confirmed_at: datetime | None
    confirmed_by: str | None
    requester_confirmed: bool
    override_by: str | None
    override_at: datetime | None
    override_reason: str | None
    commission_settled: bool
    allowed_actions: list[JobAction] = []
    assigned_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @classmethod
    def from_row(cls, job) -> "JobResponse":
        out = cls.model_validate(job)
        out.allowed_actions = state_machine.allowed_actions(out.status)
        return out
