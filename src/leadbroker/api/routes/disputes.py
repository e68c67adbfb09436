"""Dispute escalation endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.dependencies import CurrentActor, DBSession, EventNotifier, require_role
from leadbroker.events.notifier import commit_and_notify
from leadbroker.models.dispute import (
    DisputeCreate,
    DisputeOut,
    DisputeResolve,
    DisputeResponseCreate,
    DisputeResponseOut,
)
from leadbroker.services.actors import Actor
from leadbroker.services.config_provider import SettingsStoreConfigProvider
from leadbroker.services.disputes import DisputeService

router = APIRouter(tags=["Disputes"])


def _service(db: AsyncSession) -> DisputeService:
    return DisputeService(db, SettingsStoreConfigProvider(db))


@router.post("/jobs/{job_id}/disputes", response_model=DisputeOut, status_code=201)
async def raise_dispute(
    job_id: str, body: DisputeCreate, db: DBSession, notifier: EventNotifier, actor: CurrentActor
):
    outcome = await _service(db).raise_dispute(
        job_id, actor, body.dispute_type, body.title, body.description, body.priority
    )
    await commit_and_notify(db, notifier, outcome)
    return DisputeOut.model_validate(outcome.value)


@router.get("/disputes/{dispute_id}", response_model=DisputeOut)
async def get_dispute(dispute_id: str, db: DBSession, actor: CurrentActor):
    return DisputeOut.model_validate(await _service(db).get_dispute(dispute_id, actor))


@router.post("/disputes/{dispute_id}/responses", response_model=DisputeResponseOut, status_code=201)
async def add_response(
    dispute_id: str, body: DisputeResponseCreate, db: DBSession, notifier: EventNotifier, actor: CurrentActor
):
    outcome = await _service(db).add_response(dispute_id, actor, body.message, body.internal)
    await commit_and_notify(db, notifier, outcome)
    return DisputeResponseOut.model_validate(outcome.value)


@router.get("/disputes/{dispute_id}/responses", response_model=list[DisputeResponseOut])
async def list_responses(dispute_id: str, db: DBSession, actor: CurrentActor):
    responses = await _service(db).list_responses(dispute_id, actor)
    return [DisputeResponseOut.model_validate(r) for r in responses]


@router.post("/disputes/{dispute_id}/resolve", response_model=DisputeOut)
async def resolve_dispute(
    dispute_id: str,
    body: DisputeResolve,
    db: DBSession,
    notifier: EventNotifier,
    actor: Actor = Depends(require_role("arbitrator")),
):
    outcome = await _service(db).resolve_dispute(
        dispute_id,
        actor,
        body.resolution,
        notes=body.notes,
        reverse_credit=body.reverse_credit,
        commission_amount=body.commission_amount,
        complete_job=body.complete_job,
        reopen_job=body.reopen_job,
    )
    await commit_and_notify(db, notifier, outcome)
    return DisputeOut.model_validate(outcome.value)
