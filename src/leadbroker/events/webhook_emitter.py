"""Webhook delivery with HMAC-SHA256 signing."""

import hashlib
import hmac
import json
import logging
from datetime import datetime

import httpx

from leadbroker.models.webhook import WebhookEnvelope
from leadbroker.services.id_generator import EVENT_PREFIX, generate_id

from .webhook_config import WebhookSubscription, WebhookRegistry, webhook_registry

logger = logging.getLogger(__name__)

SOURCE_SYSTEM = "leadbroker-api"
MAX_ATTEMPTS = 3


def sign_payload(body: bytes, secret: str) -> str:
    """HMAC-SHA256 over the raw JSON body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def build_envelope(
    event_type: str,
    recipient: str,
    payload: dict,
    occurred_at: datetime,
    job_id: str | None = None,
) -> WebhookEnvelope:
    """Unsigned envelope; the signature is added per subscriber."""
    return WebhookEnvelope(
        schema_version="1.0",
        event_type=event_type,
        event_id=generate_id(EVENT_PREFIX),
        occurred_at=occurred_at,
        source_system=SOURCE_SYSTEM,
        recipient=recipient,
        job_id=job_id,
        payload=payload,
    )


async def emit_event(
    envelope: WebhookEnvelope,
    registry: WebhookRegistry = webhook_registry,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[dict]:
    """Deliver ``envelope`` to every matching subscriber.

    Returns one result dict (url, status, error) per subscriber. Delivery
    failures are reported in the results, never raised.
    """
    results = []
    for sub in registry.get_subscribers(envelope.event_type):
        results.append(await _deliver(envelope, sub, transport))
    return results


async def _deliver(
    envelope: WebhookEnvelope,
    sub: WebhookSubscription,
    transport: httpx.AsyncBaseTransport | None,
) -> dict:
    body_dict = envelope.model_dump(mode="json")
    body_bytes = json.dumps(body_dict, separators=(",", ":")).encode("utf-8")
    signature = sign_payload(body_bytes, sub.secret)
    body_dict["signature"] = signature
    signed_body = json.dumps(body_dict, separators=(",", ":")).encode("utf-8")

    headers = {
        "Content-Type": "application/json",
        "X-LeadBroker-Signature": signature,
        "X-LeadBroker-Event": envelope.event_type,
    }

    for attempt in range(MAX_ATTEMPTS):
        last = attempt == MAX_ATTEMPTS - 1
        try:
            async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
                resp = await client.post(sub.url, content=signed_body, headers=headers)
            if resp.status_code < 300:
                return {"url": sub.url, "status": resp.status_code, "error": None}
            if resp.status_code >= 500 and not last:
                continue
            return {"url": sub.url, "status": resp.status_code, "error": f"HTTP {resp.status_code}"}
        except httpx.HTTPError as exc:
            if not last:
                continue
            logger.warning("Webhook delivery failed to %s: %s", sub.url, exc)
            return {"url": sub.url, "status": None, "error": str(exc)}

    return {"url": sub.url, "status": None, "error": "max retries exceeded"}
