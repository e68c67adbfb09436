"""Arbitrator-only platform settings and manual sweep triggers."""

from dataclasses import asdict

from fastapi import APIRouter, Body, Depends, Request
from pydantic import ValidationError as PydanticValidationError

from leadbroker.dependencies import DBSession, EventNotifier, RequireArbitrator
from leadbroker.errors.exceptions import NotFoundError, ValidationError
from leadbroker.models.admin import (
    CommissionRateSetting,
    FreeAccessAllocationSetting,
    SettingResponse,
    SweepReportResponse,
)
from leadbroker.repositories.notification_repo import PlatformSettingRepository
from leadbroker.services.actors import Actor
from leadbroker.services.config_provider import COMMISSION_RATE_KEY, FREE_ACCESS_ALLOCATION_KEY
from leadbroker.workers import sweeps
from leadbroker.workers.scheduler import run_sweep

router = APIRouter(tags=["Admin"])

_SETTING_MODELS = {
    COMMISSION_RATE_KEY: CommissionRateSetting,
    FREE_ACCESS_ALLOCATION_KEY: FreeAccessAllocationSetting,
}


@router.put("/settings/{key}", response_model=SettingResponse)
async def put_setting(
    key: str,
    db: DBSession,
    value: dict = Body(...),
    actor: Actor = RequireArbitrator,
):
    model = _SETTING_MODELS.get(key)
    if model is None:
        raise NotFoundError("Setting", key)
    try:
        parsed = model.model_validate(value)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid value for setting '{key}'", exc.errors(include_url=False)) from exc

    row = await PlatformSettingRepository(db).put(key, parsed.model_dump(), updated_by=actor.user_id)
    await db.commit()
    return SettingResponse.model_validate(row)


@router.post("/sweeps/{name}", response_model=SweepReportResponse)
async def trigger_sweep(
    name: str,
    request: Request,
    notifier: EventNotifier,
    actor: Actor = RequireArbitrator,
):
    if name not in sweeps.SWEEPS:
        raise NotFoundError("Sweep", name)
    report = await run_sweep(
        name,
        request.app.state.db_session_factory,
        notifier,
        getattr(request.app.state, "redis", None),
    )
    if report is None:
        raise ValidationError(f"Sweep '{name}' is already running")
    return SweepReportResponse(**asdict(report))
