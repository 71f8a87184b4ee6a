"""Canonical webhook event and payload normalisation."""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from payledger.utils.errors import PayloadInvalid

EV_PI_SUCCEEDED = "payment_intent.succeeded"
EV_PI_FAILED = "payment_intent.failed"
EV_PI_PENDING = "payment_intent.pending"
EV_CS_FINISHED = "checkout_session.finished"
EV_CS_EXPIRED = "checkout_session.expired"
EV_REFUND_SUCCEEDED = "refund.succeeded"
EV_REFUND_FAILED = "refund.failed"
EV_REFUND_IN_PROGRESS = "refund.in_progress"
EV_REFUND_GENERIC = "refund.event"

# Metadata keys that may carry the order reference, in priority order.
META_ORDER_KEYS = (
    "ecommerceOrderId",
    "ecommerce_order_id",
    "order",
    "order_id",
    "order_increment_id",
)

PAYMENT_INTENT_ALIASES = {
    "payment_type": "paymentType",
    "reference_id": "referenceId",
    "transaction_date": "transactionDate",
    "sender_account": "senderAccount",
    "error_reason": "errorReason",
}

_SNAKE_RE = re.compile(r"_([a-z])")


@dataclass(slots=True)
class WebhookEvent:
    """One provider notification after normalisation.

    ``object`` is never empty of meaning: it falls back to the full payload
    when no nested business object is present.
    """

    event_id: str | None
    event_type: str | None
    object: dict[str, Any]
    full_payload: dict[str, Any] = field(repr=False)

    @property
    def object_kind(self) -> str | None:
        kind = self.object.get("object")
        return kind if isinstance(kind, str) else None

    @property
    def metadata(self) -> dict[str, Any]:
        metadata = self.object.get("metadata")
        return metadata if isinstance(metadata, dict) else {}


def camelize(key: str) -> str:
    return _SNAKE_RE.sub(lambda m: m.group(1).upper(), key)


def normalize_metadata(metadata: Mapping[str, Any]) -> dict[str, Any]:
    """Add camelCase duplicates of snake_case keys; originals are kept."""

    normalized: dict[str, Any] = {}
    for key, value in metadata.items():
        normalized[key] = value
        camel = camelize(str(key))
        if camel != key and camel not in metadata:
            normalized[camel] = value
    return normalized


def normalize_payment_intent(pi: Mapping[str, Any]) -> dict[str, Any]:
    """Expose known snake_case payment-intent fields under their camelCase names."""

    normalized = dict(pi)
    for snake, camel in PAYMENT_INTENT_ALIASES.items():
        if normalized.get(camel) is None and normalized.get(snake) is not None:
            normalized[camel] = normalized[snake]
    return normalized


def _extract_event_id(data: Mapping[str, Any]) -> str | None:
    event_id = data.get("id")
    if isinstance(event_id, str) and event_id:
        return event_id
    envelope = data.get("data")
    if isinstance(envelope, Mapping):
        nested = envelope.get("id")
        if isinstance(nested, str) and nested:
            return nested
    return None


def _extract_object(data: dict[str, Any]) -> dict[str, Any]:
    envelope = data.get("data")
    if isinstance(envelope, dict):
        nested = envelope.get("object")
        if isinstance(nested, dict):
            return dict(nested)
        return dict(envelope)
    top_level = data.get("object")
    if isinstance(top_level, dict):
        return dict(top_level)
    return dict(data)


def parse_webhook_payload(raw_body: bytes | str) -> WebhookEvent:
    """Decode a verified webhook body into a ``WebhookEvent``."""

    if isinstance(raw_body, bytes):
        try:
            raw_body = raw_body.decode("utf-8")
        except UnicodeDecodeError:
            raise PayloadInvalid("Invalid webhook JSON") from None
    if not raw_body or not raw_body.strip():
        raise PayloadInvalid("Empty webhook body")
    try:
        data = json.loads(raw_body)
    except ValueError:
        raise PayloadInvalid("Invalid webhook JSON") from None
    if not isinstance(data, dict):
        raise PayloadInvalid("Invalid webhook JSON")

    event_type = data.get("type") if isinstance(data.get("type"), str) else None
    obj = _extract_object(data)
    if isinstance(obj.get("metadata"), Mapping):
        obj["metadata"] = normalize_metadata(obj["metadata"])

    return WebhookEvent(
        event_id=_extract_event_id(data),
        event_type=event_type or None,
        object=obj,
        full_payload=data,
    )


__all__ = [
    "EV_PI_SUCCEEDED",
    "EV_PI_FAILED",
    "EV_PI_PENDING",
    "EV_CS_FINISHED",
    "EV_CS_EXPIRED",
    "EV_REFUND_SUCCEEDED",
    "EV_REFUND_FAILED",
    "EV_REFUND_IN_PROGRESS",
    "EV_REFUND_GENERIC",
    "META_ORDER_KEYS",
    "WebhookEvent",
    "camelize",
    "normalize_metadata",
    "normalize_payment_intent",
    "parse_webhook_payload",
]
