"""Pydantic models for provider accounts and access grants."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from leadbroker.models.enums import AccessMethod


# ── Request models ─────────────────────────────────────────────────────────────

class ProviderCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    business_name: str = Field(min_length=1, max_length=300)
    subscription_active: bool = False


class AccessGrantCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    method: AccessMethod
    payment_reference: str | None = Field(None, max_length=200)


# ── Response models ────────────────────────────────────────────────────────────

class ProviderResponse(BaseModel):
    provider_id: str
    user_id: str
    business_name: str
    status: str
    credits_balance: int
    subscription_active: bool
    last_credit_reset_at: datetime | None
    suspended_at: datetime | None
    suspension_reason: str | None

    model_config = {"from_attributes": True}


class AccessGrantResponse(BaseModel):
    job_id: str
    provider_id: str
    method: AccessMethod
    credit_consumed: bool
    payment_reference: str | None
    claimed_win: bool
    claimed_at: datetime | None
    granted_at: datetime
    reversed_at: datetime | None
    reversal_reference: str | None

    model_config = {"from_attributes": True}
