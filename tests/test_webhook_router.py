from payledger.services.webhook_events import WebhookEvent
from payledger.services.webhook_router import WebhookRouter, infer_event_type


def _event(event_type, obj):
    return WebhookEvent(event_id=None, event_type=event_type, object=obj, full_payload={"data": obj})


def test_explicit_type_wins():
    calls = []
    router = WebhookRouter({"payment_intent.succeeded": lambda event, ctx: calls.append(ctx)})

    handled = router.dispatch(_event("payment_intent.succeeded", {}), "ctx")

    assert handled == "payment_intent.succeeded"
    assert calls == ["ctx"]


def test_type_inferred_from_object_shape():
    calls = []
    router = WebhookRouter({"payment_intent.failed": lambda event, ctx: calls.append(event.object["id"])})

    handled = router.dispatch(_event(None, {"object": "payment_intent", "status": "rejected", "id": "pi_9"}), None)

    assert handled == "payment_intent.failed"
    assert calls == ["pi_9"]


def test_unhandled_event_is_ignored(caplog):
    router = WebhookRouter({})

    assert router.dispatch(_event("customer.created", {"id": "cus_1"}), None) is None
    assert "Unhandled webhook event" in caplog.text


def test_infer_event_type():
    assert infer_event_type({"object": "checkout_session", "status": "expired"}) == "checkout_session.expired"
    assert infer_event_type({"object": "refund", "status": "anything"}) == "refund.event"
    assert infer_event_type({"object": "payment_intent", "status": "weird"}) is None
    assert infer_event_type({"status": "succeeded"}) is None
