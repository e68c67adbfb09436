"""Webhook subscriber registry."""

from dataclasses import dataclass, field


@dataclass
class WebhookSubscription:
    """A registered webhook endpoint; empty ``event_types`` means every kind."""

    url: str
    secret: str
    event_types: list[str] = field(default_factory=list)
    active: bool = True


class WebhookRegistry:
    def __init__(self) -> None:
        self._subscriptions: list[WebhookSubscription] = []

    def register(self, subscription: WebhookSubscription) -> None:
        self.unregister(subscription.url)
        self._subscriptions.append(subscription)

    def unregister(self, url: str) -> None:
        self._subscriptions = [s for s in self._subscriptions if s.url != url]

    def get_subscribers(self, event_type: str) -> list[WebhookSubscription]:
        return [
            s
            for s in self._subscriptions
            if s.active and (not s.event_types or event_type in s.event_types)
        ]

    def clear(self) -> None:
        self._subscriptions = []


# Module-level singleton, filled from settings at startup
webhook_registry = WebhookRegistry()
