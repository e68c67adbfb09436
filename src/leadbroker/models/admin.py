"""Pydantic models for platform settings and manual sweep runs."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CommissionRateSetting(BaseModel):
    model_config = ConfigDict(extra="forbid")

    rate: float = Field(ge=0, le=100)


class FreeAccessAllocationSetting(BaseModel):
    model_config = ConfigDict(extra="forbid")

    credits: int = Field(ge=0)


class SettingResponse(BaseModel):
    key: str
    value: dict
    updated_by: str | None
    updated_at: datetime

    model_config = {"from_attributes": True}


class SweepReportResponse(BaseModel):
    sweep: str
    examined: int
    processed: int
    skipped: int
    failed: int
    failures: dict[str, str] = {}
