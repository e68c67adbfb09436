"""Access ledger endpoints: grants and win claims."""

from fastapi import APIRouter

from leadbroker.dependencies import CurrentActor, DBSession, EventNotifier
from leadbroker.errors.exceptions import AuthorizationError
from leadbroker.events.notifier import commit_and_notify
from leadbroker.models.provider import AccessGrantCreate, AccessGrantResponse
from leadbroker.services.access_ledger import AccessLedger
from leadbroker.services.actors import Actor

router = APIRouter(tags=["Access"])


def _require_provider(actor: Actor) -> str:
    if not actor.provider_id:
        raise AuthorizationError("A provider profile is required")
    return actor.provider_id


@router.post("/jobs/{job_id}/access", response_model=AccessGrantResponse, status_code=201)
async def grant_access(
    job_id: str, body: AccessGrantCreate, db: DBSession, notifier: EventNotifier, actor: CurrentActor
):
    """Record the caller's access after the payment or credit subsystem approved it."""
    provider_id = _require_provider(actor)
    outcome = await AccessLedger(db).grant_access(job_id, provider_id, body.method, body.payment_reference)
    await commit_and_notify(db, notifier, outcome)
    return AccessGrantResponse.model_validate(outcome.value)


@router.get("/jobs/{job_id}/access", response_model=list[AccessGrantResponse])
async def list_access(job_id: str, db: DBSession, actor: CurrentActor):
    """Requester and arbitrators see every grant; a provider sees only their own."""
    ledger = AccessLedger(db)
    job = await ledger.get_job(job_id)
    grants = await ledger.list_grants(job_id)
    if actor.user_id != job.requester_id and not actor.is_arbitrator:
        grants = [g for g in grants if actor.provider_id and g.provider_id == actor.provider_id]
    return [AccessGrantResponse.model_validate(g) for g in grants]


@router.post("/jobs/{job_id}/claim", response_model=AccessGrantResponse)
async def claim_win(job_id: str, db: DBSession, notifier: EventNotifier, actor: CurrentActor):
    provider_id = _require_provider(actor)
    outcome = await AccessLedger(db).claim_win(job_id, provider_id)
    await commit_and_notify(db, notifier, outcome)
    return AccessGrantResponse.model_validate(outcome.value)


@router.get("/jobs/{job_id}/claims", response_model=list[AccessGrantResponse])
async def list_claims(job_id: str, db: DBSession, actor: CurrentActor):
    ledger = AccessLedger(db)
    job = await ledger.get_job(job_id)
    if actor.user_id != job.requester_id and not actor.is_arbitrator:
        raise AuthorizationError("Only the requester can list win claims")
    return [AccessGrantResponse.model_validate(g) for g in await ledger.list_claims(job_id)]
