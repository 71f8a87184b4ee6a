"""Tests for webhook payload parsing and normalisation."""
import json

import pytest

from payledger.services.webhook_events import (
    camelize,
    normalize_metadata,
    normalize_payment_intent,
    parse_webhook_payload,
)
from payledger.utils.errors import PayloadInvalid


def test_envelope_with_nested_object():
    body = json.dumps(
        {
            "id": "evt_1",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_1", "object": "payment_intent", "metadata": {"order_id": "100"}}},
        }
    )

    event = parse_webhook_payload(body.encode())

    assert event.event_id == "evt_1"
    assert event.event_type == "payment_intent.succeeded"
    assert event.object["id"] == "pi_1"
    assert event.object_kind == "payment_intent"
    assert event.metadata["orderId"] == "100"
    assert event.full_payload["data"]["object"]["id"] == "pi_1"


def test_data_without_object_is_the_business_object():
    event = parse_webhook_payload(b'{"type": "refund.succeeded", "data": {"id": "re_1", "status": "succeeded"}}')

    assert event.object == {"id": "re_1", "status": "succeeded"}
    assert event.event_id == "re_1"


def test_bare_object_falls_back_to_full_payload():
    event = parse_webhook_payload(b'{"object": "refund", "id": "re_2", "status": "failed"}')

    assert event.event_type is None
    assert event.object["id"] == "re_2"
    assert event.event_id == "re_2"


@pytest.mark.parametrize(
    "raw, message",
    [
        (b"", "Empty webhook body"),
        (b"   ", "Empty webhook body"),
        (b"{not json", "Invalid webhook JSON"),
        (b"[1, 2]", "Invalid webhook JSON"),
        (b"\xff\xfe", "Invalid webhook JSON"),
    ],
)
def test_invalid_bodies(raw, message):
    with pytest.raises(PayloadInvalid) as exc:
        parse_webhook_payload(raw)
    assert exc.value.message == message


def test_normalize_metadata_keeps_existing_camel_keys():
    metadata = {"ecommerce_order_id": "A", "ecommerceOrderId": "B", "plain": 1}

    normalized = normalize_metadata(metadata)

    assert normalized["ecommerceOrderId"] == "B"
    assert normalized["ecommerce_order_id"] == "A"
    assert normalized["plain"] == 1


def test_camelize():
    assert camelize("sender_account") == "senderAccount"
    assert camelize("id") == "id"


def test_normalize_payment_intent_aliases():
    pi = normalize_payment_intent({"reference_id": "R1", "error_reason": "insufficient_funds", "referenceId": None})

    assert pi["referenceId"] == "R1"
    assert pi["errorReason"] == "insufficient_funds"
    assert pi["reference_id"] == "R1"
