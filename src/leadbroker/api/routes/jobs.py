"""Job lifecycle endpoints: posting, winner selection, start and final price."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.dependencies import CurrentActor, DBSession, EventNotifier, require_role
from leadbroker.errors.exceptions import AuthorizationError, NotFoundError
from leadbroker.events.notifier import commit_and_notify
from leadbroker.models.commission import CommissionResponse
from leadbroker.models.job import (
    FinalPriceDecision,
    FinalPriceOverride,
    FinalPriceProposal,
    JobCreate,
    JobResponse,
    ProviderChoice,
    WinnerConfirmation,
)
from leadbroker.repositories.commission_repo import CommissionRepository
from leadbroker.services.actors import Actor
from leadbroker.services.config_provider import SettingsStoreConfigProvider
from leadbroker.services.job_lifecycle import JobLifecycle

router = APIRouter(tags=["Jobs"])


def _lifecycle(db: AsyncSession) -> JobLifecycle:
    return JobLifecycle(db, SettingsStoreConfigProvider(db))


@router.post("/jobs", response_model=JobResponse, status_code=201)
async def post_job(
    body: JobCreate,
    db: DBSession,
    notifier: EventNotifier,
    actor: Actor = Depends(require_role("requester")),
):
    outcome = await _lifecycle(db).post_job(actor, body.title, body.description, body.budget)
    await commit_and_notify(db, notifier, outcome)
    return JobResponse.from_row(outcome.value)


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, db: DBSession, actor: CurrentActor):
    lifecycle = _lifecycle(db)
    job = await lifecycle.get_job(job_id)
    if (
        actor.user_id != job.requester_id
        and not actor.is_arbitrator
        and not await lifecycle.ledger.has_access(job_id, actor.provider_id)
    ):
        raise AuthorizationError("No access to this job")
    return JobResponse.from_row(job)


@router.post("/jobs/{job_id}/select-provider", response_model=JobResponse)
async def select_provider(
    job_id: str, body: ProviderChoice, db: DBSession, notifier: EventNotifier, actor: CurrentActor
):
    outcome = await _lifecycle(db).select_provider(job_id, actor, body.provider_id)
    await commit_and_notify(db, notifier, outcome)
    return JobResponse.from_row(outcome.value)


@router.post("/jobs/{job_id}/confirm-winner", response_model=JobResponse)
async def confirm_winner(
    job_id: str, body: WinnerConfirmation, db: DBSession, notifier: EventNotifier, actor: CurrentActor
):
    outcome = await _lifecycle(db).confirm_winner(job_id, actor, body.provider_id)
    await commit_and_notify(db, notifier, outcome)
    return JobResponse.from_row(outcome.value)


@router.post("/jobs/{job_id}/start", response_model=JobResponse)
async def confirm_start(job_id: str, db: DBSession, notifier: EventNotifier, actor: CurrentActor):
    outcome = await _lifecycle(db).confirm_start(job_id, actor)
    await commit_and_notify(db, notifier, outcome)
    return JobResponse.from_row(outcome.value)


@router.post("/jobs/{job_id}/final-price", response_model=JobResponse)
async def propose_final_price(
    job_id: str, body: FinalPriceProposal, db: DBSession, notifier: EventNotifier, actor: CurrentActor
):
    outcome = await _lifecycle(db).propose_final_price(job_id, actor, body.amount)
    await commit_and_notify(db, notifier, outcome)
    return JobResponse.from_row(outcome.value)


@router.post("/jobs/{job_id}/final-price/decision", response_model=JobResponse)
async def decide_final_price(
    job_id: str, body: FinalPriceDecision, db: DBSession, notifier: EventNotifier, actor: CurrentActor
):
    outcome = await _lifecycle(db).confirm_final_price(job_id, actor, body.decision, body.reason)
    await commit_and_notify(db, notifier, outcome)
    return JobResponse.from_row(outcome.value)


@router.post("/jobs/{job_id}/final-price/override", response_model=JobResponse)
async def override_final_price(
    job_id: str,
    body: FinalPriceOverride,
    db: DBSession,
    notifier: EventNotifier,
    actor: Actor = Depends(require_role("arbitrator")),
):
    outcome = await _lifecycle(db).admin_override_final_price(job_id, actor, body.reason)
    await commit_and_notify(db, notifier, outcome)
    return JobResponse.from_row(outcome.value)


@router.get("/jobs/{job_id}/commission", response_model=CommissionResponse)
async def get_job_commission(job_id: str, db: DBSession, actor: CurrentActor):
    job = await _lifecycle(db).get_job(job_id)
    if not (
        actor.is_arbitrator
        or actor.user_id == job.requester_id
        or (actor.provider_id and actor.provider_id == job.assigned_provider_id)
    ):
        raise AuthorizationError("No access to this job's commission")
    record = await CommissionRepository(db).get_by_job(job_id)
    if not record:
        raise NotFoundError("Commission for job", job_id)
    return CommissionResponse.model_validate(record)
