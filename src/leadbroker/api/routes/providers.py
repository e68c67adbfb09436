"""Provider account endpoints."""

from fastapi import APIRouter, Depends

from leadbroker.dependencies import CurrentActor, DBSession, EventNotifier, require_role
from leadbroker.errors.exceptions import AuthorizationError
from leadbroker.events.notifier import commit_and_notify
from leadbroker.models.provider import ProviderCreate, ProviderResponse
from leadbroker.services.actors import Actor
from leadbroker.services.config_provider import SettingsStoreConfigProvider
from leadbroker.services.credits import CreditService

router = APIRouter(tags=["Providers"])


@router.post("/providers", response_model=ProviderResponse, status_code=201)
async def register_provider(
    body: ProviderCreate,
    db: DBSession,
    notifier: EventNotifier,
    actor: Actor = Depends(require_role("provider")),
):
    service = CreditService(db, SettingsStoreConfigProvider(db))
    outcome = await service.register_provider(actor, body.business_name, body.subscription_active)
    await commit_and_notify(db, notifier, outcome)
    return ProviderResponse.model_validate(outcome.value)


@router.get("/providers/{provider_id}", response_model=ProviderResponse)
async def get_provider(provider_id: str, db: DBSession, actor: CurrentActor):
    if actor.provider_id != provider_id and not actor.is_arbitrator:
        raise AuthorizationError("Providers can only view their own account")
    provider = await CreditService(db, SettingsStoreConfigProvider(db)).get_provider(provider_id)
    return ProviderResponse.model_validate(provider)
