"""Notification dispatch for domain events.

Runs after the business transaction has committed. Each event becomes an
in-app ``NotificationRow`` (its own short transaction) and a signed webhook.
Every failure is logged and swallowed here: delivery is best effort and must
never undo or fail the transition that produced the event.
"""

import logging

import httpx

from leadbroker.db.models.notification import NotificationRow
from leadbroker.events.webhook_config import WebhookRegistry, webhook_registry
from leadbroker.events.webhook_emitter import build_envelope, emit_event
from leadbroker.models.enums import NotificationKind
from leadbroker.services.events import DomainEvent
from leadbroker.services.id_generator import NOTIFICATION_PREFIX, generate_id

logger = logging.getLogger(__name__)

TITLES = {
    NotificationKind.ACCESS_GRANTED: "Access granted",
    NotificationKind.WIN_CLAIMED: "A provider claims to have won your job",
    NotificationKind.PROVIDER_SELECTED: "You have been selected",
    NotificationKind.JOB_STARTED: "Work can start",
    NotificationKind.FINAL_PRICE_PROPOSED: "Final price proposed",
    NotificationKind.FINAL_PRICE_REJECTED: "Final price rejected",
    NotificationKind.FINAL_PRICE_REMINDER: "Final price awaiting your confirmation",
    NotificationKind.JOB_COMPLETED: "Job completed",
    NotificationKind.FINAL_PRICE_AUTO_CONFIRMED: "Final price confirmed automatically",
    NotificationKind.FINAL_PRICE_OVERRIDDEN: "Final price confirmed by an arbitrator",
    NotificationKind.COMMISSION_DUE: "Commission due",
    NotificationKind.COMMISSION_REMINDER: "Commission payment reminder",
    NotificationKind.COMMISSION_PAID: "Commission paid",
    NotificationKind.ACCOUNT_SUSPENDED: "Account suspended",
    NotificationKind.CREDITS_ALLOCATED: "Credits added",
    NotificationKind.CREDIT_REFUNDED: "Credit refunded",
    NotificationKind.DISPUTE_RAISED: "Dispute raised",
    NotificationKind.DISPUTE_RESPONSE: "New dispute response",
    NotificationKind.DISPUTE_RESOLVED: "Dispute resolved",
}


def build_body(event: DomainEvent) -> str:
    payload = event.payload
    job = f" on job {event.job_id}" if event.job_id else ""
    if event.kind == NotificationKind.FINAL_PRICE_PROPOSED:
        return f"The provider proposed {payload.get('amount')}{job}. Confirm before {payload.get('deadline')}."
    if event.kind == NotificationKind.FINAL_PRICE_REMINDER:
        return f"About {payload.get('threshold_hours')}h left to respond to the final price{job}."
    if event.kind == NotificationKind.FINAL_PRICE_REJECTED:
        return f"The requester rejected the final price{job}: {payload.get('reason')}"
    if event.kind in (NotificationKind.COMMISSION_DUE, NotificationKind.COMMISSION_REMINDER):
        return f"Commission of {payload.get('total_due')} is due{job}."
    if event.kind == NotificationKind.ACCOUNT_SUSPENDED:
        return f"Your account was suspended: commission of {payload.get('total_due')} is overdue{job}."
    if event.kind in (NotificationKind.CREDITS_ALLOCATED, NotificationKind.CREDIT_REFUNDED):
        return f"{payload.get('credits')} credit(s) added to your balance{job}."
    if "final_amount" in payload:
        return f"{TITLES.get(event.kind, event.kind)}{job} at {payload['final_amount']}."
    return f"{TITLES.get(event.kind, event.kind)}{job}."


class Notifier:
    """Fire-and-forget delivery of ``DomainEvent`` lists."""

    def __init__(
        self,
        session_factory,
        registry: WebhookRegistry = webhook_registry,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.session_factory = session_factory
        self.registry = registry
        self.transport = transport

    async def notify(self, recipient: str, kind: NotificationKind, job_id: str | None = None, **payload) -> None:
        await self.dispatch([DomainEvent(recipient=recipient, kind=kind, job_id=job_id, payload=payload)])

    async def dispatch(self, events: list[DomainEvent]) -> int:
        """Deliver ``events``; returns how many were stored in-app."""
        stored = 0
        for event in events:
            if await self._store(event):
                stored += 1
            await self._emit_webhook(event)
        return stored

    async def _store(self, event: DomainEvent) -> bool:
        try:
            async with self.session_factory() as session:
                session.add(
                    NotificationRow(
                        notification_id=generate_id(NOTIFICATION_PREFIX),
                        recipient=event.recipient,
                        job_id=event.job_id,
                        kind=event.kind,
                        title=TITLES.get(event.kind, str(event.kind)),
                        body=build_body(event),
                        read=False,
                        extra_data=event.payload,
                        created_at=event.occurred_at,
                    )
                )
                await session.commit()
            return True
        except Exception as exc:
            logger.warning("Failed to store notification %s for %s: %s", event.kind, event.recipient, exc)
            return False

    async def _emit_webhook(self, event: DomainEvent) -> None:
        try:
            envelope = build_envelope(
                str(event.kind), event.recipient, event.payload, event.occurred_at, event.job_id
            )
            for result in await emit_event(envelope, self.registry, self.transport):
                if result["error"]:
                    logger.warning("Webhook %s to %s failed: %s", event.kind, result["url"], result["error"])
        except Exception as exc:
            logger.warning("Webhook emission for %s failed: %s", event.kind, exc)


async def commit_and_notify(session, notifier: Notifier | None, outcome) -> None:
    """Commit the business transaction, then hand its events to the notifier."""
    await session.commit()
    if notifier is not None and outcome.events:
        await notifier.dispatch(outcome.events)
