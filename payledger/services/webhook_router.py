"""Type-based dispatch of webhook events to handler functions."""
from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional

from payledger.services.webhook_events import (
    EV_CS_EXPIRED,
    EV_CS_FINISHED,
    EV_PI_FAILED,
    EV_PI_PENDING,
    EV_PI_SUCCEEDED,
    EV_REFUND_GENERIC,
    WebhookEvent,
)

logger = logging.getLogger(__name__)

Handler = Callable[[WebhookEvent, Any], None]

PAYMENT_INTENT_STATUS_EVENTS = {
    "succeeded": EV_PI_SUCCEEDED,
    "failed": EV_PI_FAILED,
    "rejected": EV_PI_FAILED,
    "expired": EV_PI_FAILED,
    "pending": EV_PI_PENDING,
}

CHECKOUT_SESSION_STATUS_EVENTS = {
    "finished": EV_CS_FINISHED,
    "expired": EV_CS_EXPIRED,
}


def infer_event_type(obj: Mapping[str, Any]) -> Optional[str]:
    """Guess the event name from the business object's shape and status."""

    kind = obj.get("object")
    if not isinstance(kind, str):
        return None
    status = str(obj.get("status") or "")
    if kind == "payment_intent":
        return PAYMENT_INTENT_STATUS_EVENTS.get(status)
    if kind == "checkout_session":
        return CHECKOUT_SESSION_STATUS_EVENTS.get(status)
    if "refund" in kind:
        return EV_REFUND_GENERIC
    return None


class WebhookRouter:
    """Maps event names to handlers; unknown events are logged and ignored."""

    def __init__(self, handlers: Mapping[str, Handler]) -> None:
        self.handlers = dict(handlers)

    def resolve(self, event: WebhookEvent) -> tuple[Optional[str], Optional[Handler]]:
        if event.event_type and event.event_type in self.handlers:
            return event.event_type, self.handlers[event.event_type]
        guessed = infer_event_type(event.object)
        if guessed and guessed in self.handlers:
            return guessed, self.handlers[guessed]
        return None, None

    def dispatch(self, event: WebhookEvent, ctx: Any) -> Optional[str]:
        """Run the matching handler and return its event name, or ``None`` when ignored."""

        name, handler = self.resolve(event)
        if handler is None:
            logger.warning(
                "Unhandled webhook event",
                extra={
                    "event_id": event.event_id,
                    "event_type": event.event_type,
                    "keys": sorted(event.object.keys()),
                },
            )
            return None
        logger.info(
            "Dispatching webhook event",
            extra={"event_id": event.event_id, "event_type": event.event_type, "handler": name},
        )
        handler(event, ctx)
        return name


__all__ = [
    "CHECKOUT_SESSION_STATUS_EVENTS",
    "Handler",
    "PAYMENT_INTENT_STATUS_EVENTS",
    "WebhookRouter",
    "infer_event_type",
]
