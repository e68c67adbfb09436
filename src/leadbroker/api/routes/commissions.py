"""Commission payment confirmation."""

from fastapi import APIRouter, Depends

from leadbroker.dependencies import DBSession, EventNotifier, require_role
from leadbroker.events.notifier import commit_and_notify
from leadbroker.models.commission import CommissionPayment, CommissionResponse
from leadbroker.services.actors import Actor
from leadbroker.services.commission_engine import CommissionEngine
from leadbroker.services.config_provider import SettingsStoreConfigProvider

router = APIRouter(tags=["Commissions"])


@router.post("/commissions/{commission_id}/pay", response_model=CommissionResponse)
async def record_commission_payment(
    commission_id: str,
    body: CommissionPayment,
    db: DBSession,
    notifier: EventNotifier,
    actor: Actor = Depends(require_role("arbitrator", "system")),
):
    """Called once the payment subsystem has confirmed the provider paid."""
    engine = CommissionEngine(db, SettingsStoreConfigProvider(db))
    outcome = await engine.record_payment(commission_id, body.payment_reference)
    await commit_and_notify(db, notifier, outcome)
    return CommissionResponse.model_validate(outcome.value)
