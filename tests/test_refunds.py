"""Tests for refund orchestration."""
import json
from decimal import Decimal

import pytest

from payledger.models import TransactionStatus, TransactionType
from payledger.services.refunds import (
    RefundService,
    build_idempotency_key,
    create_refund_for_reference,
    sanitize_refund_metadata,
)
from payledger.services.refunds_api import RefundCancellation, RefundCreated
from payledger.utils.errors import (
    ExceedsRefundable,
    InvalidAmount,
    MissingPaymentIdentifier,
    NothingToRefund,
    OrderNotFound,
    PartialNotAllowed,
    RefundApiFailure,
    RefundsDisabled,
    WrongPaymentMethod,
)


class FakeRefundsApi:
    def __init__(self, external_id="re_new", canceled=True):
        self.external_id = external_id
        self.canceled = canceled
        self.created = []
        self.cancelled = []

    def create_refund(self, payment_id, amount_minor, currency, metadata, idempotency_key):
        self.created.append(
            {
                "payment_id": payment_id,
                "amount": amount_minor,
                "currency": currency,
                "metadata": dict(metadata),
                "idempotency_key": idempotency_key,
            }
        )
        return RefundCreated(external_id=self.external_id, status="pending", response={"id": self.external_id})

    def cancel_refund(self, external_id):
        self.cancelled.append(external_id)
        status = "canceled" if self.canceled else "succeeded"
        return RefundCancellation(canceled=self.canceled, response={"status": status})


@pytest.fixture
def refunds_enabled(settings, monkeypatch):
    monkeypatch.setattr(settings, "refunds_enabled", True)
    monkeypatch.setattr(settings, "refunds_allow_partial", True)
    return settings


@pytest.fixture
def api():
    return FakeRefundsApi()


@pytest.fixture
def service(api, transactions, repository, settings):
    return RefundService(api, transactions, repository, settings)


@pytest.fixture
def paid_order(make_order):
    return make_order(total_paid="100.00", payment_info={"payment_id": "pi_paid"})


def _refund_row(transactions, order, refund_id, amount, status):
    return transactions.create_refund_transaction(
        refund_id, order_id=order.id, order_reference=order.reference, amount=amount, currency="CLP", status=status
    )


def test_refundable_amount_subtracts_success_and_pending(service, transactions, paid_order):
    _refund_row(transactions, paid_order, "re_a", "40.00", TransactionStatus.SUCCESS)
    _refund_row(transactions, paid_order, "re_b", "20.00", TransactionStatus.PENDING)
    _refund_row(transactions, paid_order, "re_c", "30.00", TransactionStatus.FAILED)
    _refund_row(transactions, paid_order, "re_d", "30.00", TransactionStatus.CANCELED)

    assert service.get_refundable_amount(paid_order) == Decimal("40.00")


def test_refundable_amount_falls_back_to_grand_total(service, make_order):
    order = make_order(grand_total="75.50", total_paid="0")

    assert service.get_refundable_amount(order) == Decimal("75.50")


def test_refundable_amount_never_negative(service, transactions, paid_order):
    _refund_row(transactions, paid_order, "re_big", "150.00", TransactionStatus.SUCCESS)

    assert service.get_refundable_amount(paid_order) == Decimal("0.00")


def test_full_refund_records_remaining_amount(refunds_enabled, service, api, transactions, paid_order):
    _refund_row(transactions, paid_order, "re_a", "40.00", TransactionStatus.SUCCESS)
    _refund_row(transactions, paid_order, "re_b", "20.00", TransactionStatus.PENDING)

    tx = service.request_refund(paid_order)

    assert tx.transaction_id == "re_new"
    assert tx.type == TransactionType.REFUND
    assert tx.status == TransactionStatus.PENDING
    assert tx.amount == Decimal("40.00")
    assert tx.created_by == "admin"
    call = api.created[0]
    assert call["amount"] is None
    assert call["payment_id"] == "pi_paid"
    assert call["metadata"] == {"mode": "full", "ecommerce_order_id": paid_order.reference}
    assert call["idempotency_key"] == build_idempotency_key("pi_paid", None, "CLP", "full")
    request = json.loads(tx.request_data)
    assert request["payment_intent_id"] == "pi_paid"
    assert request["idempotency_key"] == call["idempotency_key"]
    assert service.get_refundable_amount(paid_order) == Decimal("0.00")


def test_refund_over_refundable_is_rejected(refunds_enabled, service, api, transactions, paid_order):
    _refund_row(transactions, paid_order, "re_a", "40.00", TransactionStatus.SUCCESS)
    _refund_row(transactions, paid_order, "re_b", "20.00", TransactionStatus.PENDING)

    with pytest.raises(ExceedsRefundable) as exc:
        service.request_refund(paid_order, Decimal("50"))
    assert exc.value.details["refundable"] == "40.00"
    assert api.created == []


def test_partial_refund_sends_minor_units(refunds_enabled, service, api, paid_order):
    tx = service.request_refund(paid_order, "12.34", metadata={"reason": "damaged", "restock": True, "qtys": {"1": 1}})

    assert tx.amount == Decimal("12.34")
    call = api.created[0]
    assert call["amount"] == 1234
    assert call["metadata"] == {
        "reason": "damaged",
        "restock": "true",
        "qtys": '{"1":1}',
        "ecommerce_order_id": paid_order.reference,
    }
    assert call["idempotency_key"] == build_idempotency_key("pi_paid", 1234, "CLP")


def test_partial_refund_disabled(refunds_enabled, service, paid_order, monkeypatch):
    monkeypatch.setattr(refunds_enabled, "refunds_allow_partial", False)

    with pytest.raises(PartialNotAllowed):
        service.request_refund(paid_order, "10")

    tx = service.request_refund(paid_order, "100")
    assert tx.amount == Decimal("100.00")


def test_amount_within_epsilon_is_accepted(refunds_enabled, service, paid_order):
    tx = service.request_refund(paid_order, "100.00005")

    assert tx.amount == Decimal("100.00")


@pytest.mark.parametrize("amount", ["0", "-5", "abc"])
def test_invalid_amounts(refunds_enabled, service, paid_order, amount):
    with pytest.raises(InvalidAmount):
        service.request_refund(paid_order, amount)


def test_refunds_disabled(service, paid_order):
    with pytest.raises(RefundsDisabled):
        service.request_refund(paid_order)


def test_wrong_payment_method(refunds_enabled, service, make_order):
    order = make_order(payment_method="checkmo", total_paid="100.00")

    with pytest.raises(WrongPaymentMethod):
        service.request_refund(order)


def test_nothing_to_refund(refunds_enabled, service, transactions, paid_order):
    _refund_row(transactions, paid_order, "re_all", "100.00", TransactionStatus.SUCCESS)

    with pytest.raises(NothingToRefund):
        service.request_refund(paid_order)


def test_missing_payment_identifier(refunds_enabled, service, make_order):
    order = make_order(total_paid="100.00")

    with pytest.raises(MissingPaymentIdentifier):
        service.request_refund(order)


def test_payment_identifier_from_latest_transaction(service, transactions, make_order):
    order = make_order(total_paid="100.00")
    transactions.create_capture_transaction(
        "pi_from_ledger", order_id=order.id, order_reference=order.reference, amount=100, currency="CLP"
    )

    assert service.resolve_payment_identifier(order) == "pi_from_ledger"


def test_empty_external_id_is_an_api_failure(refunds_enabled, transactions, repository, settings, paid_order):
    service = RefundService(FakeRefundsApi(external_id=""), transactions, repository, settings)

    with pytest.raises(RefundApiFailure):
        service.request_refund(paid_order)
    assert transactions.get_transaction_history_for_order(paid_order.reference) == []


class KeyedRefundsApi(FakeRefundsApi):
    """Answers a repeated idempotency key with the refund it already created."""

    def __init__(self):
        super().__init__()
        self.by_key = {}

    def create_refund(self, payment_id, amount_minor, currency, metadata, idempotency_key):
        self.external_id = self.by_key.setdefault(idempotency_key, f"re_{len(self.by_key) + 1}")
        return super().create_refund(payment_id, amount_minor, currency, metadata, idempotency_key)


def test_retried_refund_request_returns_recorded_row(refunds_enabled, transactions, repository, settings, paid_order):
    api = KeyedRefundsApi()
    service = RefundService(api, transactions, repository, settings)

    first = service.request_refund(paid_order, "40")
    second = service.request_refund(paid_order, "40")

    assert second.id == first.id
    assert second.transaction_id == "re_1"
    assert second.status == TransactionStatus.PENDING
    assert len(api.created) == 2
    assert api.created[0]["idempotency_key"] == api.created[1]["idempotency_key"]
    refunds = [
        tx
        for tx in transactions.get_transaction_history_for_order(paid_order.reference)
        if tx.type == TransactionType.REFUND
    ]
    assert len(refunds) == 1


def test_cancel_refund_updates_local_row(service, api, transactions, paid_order):
    _refund_row(transactions, paid_order, "re_cancel", "10.00", TransactionStatus.PENDING)

    assert service.cancel_refund("re_cancel") is True

    tx = transactions.repository.get_by_transaction_id("re_cancel")
    assert tx.status == TransactionStatus.CANCELED
    assert json.loads(tx.response_data) == {"status": "canceled"}


def test_cancel_refund_not_canceled_marks_failed(transactions, repository, settings, paid_order):
    service = RefundService(FakeRefundsApi(canceled=False), transactions, repository, settings)
    _refund_row(transactions, paid_order, "re_keep", "10.00", TransactionStatus.PENDING)

    assert service.cancel_refund("re_keep") is False
    assert transactions.repository.get_by_transaction_id("re_keep").status == TransactionStatus.FAILED


def test_cancel_refund_without_local_row(service, caplog):
    assert service.cancel_refund("re_ghost") is True
    assert "no local transaction found" in caplog.text


def test_create_refund_for_reference(refunds_enabled, service, orders, paid_order):
    tx = create_refund_for_reference(service, orders, paid_order.reference)
    assert tx.order_reference == paid_order.reference

    with pytest.raises(OrderNotFound):
        create_refund_for_reference(service, orders, "nope")


def test_idempotency_key_is_deterministic():
    key = build_idempotency_key("pi_1", 1000, "CLP")

    assert key == build_idempotency_key("pi_1", 1000, "CLP")
    assert key.startswith("payledger-")
    assert len(key) == len("payledger-") + 32
    assert key != build_idempotency_key("pi_1", 1001, "CLP")
    assert key != build_idempotency_key("pi_1", None, "CLP")
    assert build_idempotency_key("pi_1", None, "CLP", "full") != build_idempotency_key("pi_1", None, "CLP")


def test_sanitize_refund_metadata():
    assert sanitize_refund_metadata({"a": None, "b": False, "c": 3, "d": [1, 2]}) == {
        "b": "false",
        "c": "3",
        "d": "[1,2]",
    }
    assert sanitize_refund_metadata(None) == {}
