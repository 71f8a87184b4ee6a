from payledger.models import Transaction, TransactionStatus, TransactionType
from payledger.services.idempotency import (
    MARKER_ACTOR,
    WebhookIdempotencyLedger,
    get_existing_by_key,
    get_or_create_idempotent,
)


def test_mark_seen_then_seen(db_session):
    ledger = WebhookIdempotencyLedger(db_session)

    assert ledger.seen("evt_1") is False
    ledger.mark_seen("evt_1")
    assert ledger.seen("evt_1") is True

    marker = get_existing_by_key(db_session, Transaction, "evt_1")
    assert marker.type == TransactionType.WEBHOOK
    assert marker.status == TransactionStatus.SUCCESS
    assert marker.created_by == MARKER_ACTOR
    assert marker.order_reference is None


def test_mark_seen_twice_keeps_one_marker(db_session):
    ledger = WebhookIdempotencyLedger(db_session)

    ledger.mark_seen("evt_2")
    ledger.mark_seen("evt_2")

    assert db_session.query(Transaction).filter_by(transaction_id="evt_2").count() == 1


def test_missing_event_id_is_never_seen(db_session):
    ledger = WebhookIdempotencyLedger(db_session)

    ledger.mark_seen(None)
    assert ledger.seen(None) is False
    assert ledger.seen("") is False
    assert db_session.query(Transaction).count() == 0


def test_mark_seen_failure_is_swallowed(db_session, monkeypatch, caplog):
    from sqlalchemy.exc import OperationalError

    def _boom():
        raise OperationalError("INSERT", {}, Exception("db locked"))

    monkeypatch.setattr(db_session, "commit", _boom)

    WebhookIdempotencyLedger(db_session).mark_seen("evt_3")

    assert "Failed to record webhook idempotency marker" in caplog.text


def test_get_or_create_returns_existing(db_session):
    built = []

    def _build():
        built.append(1)
        return Transaction(
            transaction_id="key_1",
            type=TransactionType.CAPTURE,
            status=TransactionStatus.SUCCESS,
            currency="CLP",
        )

    first = get_or_create_idempotent(db_session, Transaction, "key_1", _build)
    second = get_or_create_idempotent(db_session, Transaction, "key_1", _build)

    assert first.id == second.id
    assert built == [1]
