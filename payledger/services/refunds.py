"""Refund orchestration: validation, provider call, pending ledger row."""
from __future__ import annotations

import hashlib
import json
import logging
from decimal import Decimal
from typing import Any, Mapping, Optional

from payledger.config import Settings
from payledger.models import Order, Transaction, TransactionStatus, TransactionType
from payledger.services.orders import OrderGateway
from payledger.services.refunds_api import RefundsApi
from payledger.services.transaction_repository import TransactionRepository
from payledger.services.transactions import TransactionService
from payledger.utils.amounts import major_to_minor, quantize, to_decimal
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

logger = logging.getLogger(__name__)

IDEMPOTENCY_KEY_PREFIX = "payledger-"
REFUND_ACTOR = "admin"
COUNTED_REFUND_STATUSES = (TransactionStatus.SUCCESS, TransactionStatus.PENDING)


def build_idempotency_key(
    payment_id: str,
    amount_minor: int | None,
    currency: str,
    mode: str | None = None,
) -> str:
    """Stable key per ``(payment, amount or "full", currency, mode)``."""

    parts = f"{payment_id}|{amount_minor if amount_minor is not None else 'full'}|{currency}"
    if mode:
        parts += f"|{mode}"
    return IDEMPOTENCY_KEY_PREFIX + hashlib.sha1(parts.encode("utf-8")).hexdigest()[:32]


def sanitize_refund_metadata(metadata: Mapping[str, Any] | None) -> dict[str, str]:
    """Flatten metadata to ``str -> str`` as the provider accepts it."""

    sanitized: dict[str, str] = {}
    for key, value in (metadata or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            sanitized[str(key)] = "true" if value else "false"
        elif isinstance(value, (dict, list, tuple)):
            sanitized[str(key)] = json.dumps(value, default=str, separators=(",", ":"))
        else:
            sanitized[str(key)] = str(value)
    return sanitized


class RefundService:
    """Validates refund requests and records them as pending until the provider confirms."""

    def __init__(
        self,
        api: RefundsApi,
        transactions: TransactionService,
        repository: TransactionRepository,
        settings: Settings,
    ) -> None:
        self.api = api
        self.transactions = transactions
        self.repository = repository
        self.settings = settings

    def get_refundable_amount(self, order: Order) -> Decimal:
        """Paid total minus refunds already succeeded or pending, never below zero."""

        paid = to_decimal(order.total_paid) if order.total_paid is not None else Decimal("0")
        if paid <= 0:
            paid = to_decimal(order.grand_total or 0)

        refunded = Decimal("0")
        for tx in self.transactions.get_transaction_history_for_order(order.reference):
            if tx.type == TransactionType.REFUND and tx.status in COUNTED_REFUND_STATUSES:
                refunded += to_decimal(tx.amount or 0)
        return quantize(max(Decimal("0"), paid - refunded))

    def resolve_payment_identifier(self, order: Order) -> Optional[str]:
        payment_id = (order.payment_info or {}).get("payment_id")
        if isinstance(payment_id, str) and payment_id:
            return payment_id
        latest = self.transactions.get_latest_transaction_for_order(order.reference)
        if latest is not None and latest.type != TransactionType.REFUND:
            return latest.transaction_id
        return None

    def request_refund(
        self,
        order: Order,
        amount: Decimal | int | str | None = None,
        currency: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Transaction:
        """Validate, call the provider and persist a pending refund transaction."""

        currency = (currency or order.currency).upper()
        metadata = sanitize_refund_metadata(metadata)

        if not self.settings.refunds_enabled:
            raise RefundsDisabled()
        if order.payment_method != self.settings.payment_method_code:
            raise WrongPaymentMethod()

        refundable = self.get_refundable_amount(order)
        send_minor: int | None = None
        if amount is not None:
            try:
                requested = to_decimal(amount)
            except ValueError:
                raise InvalidAmount() from None
            if requested <= 0:
                raise InvalidAmount()
            if not self.settings.refunds_allow_partial and requested < refundable:
                raise PartialNotAllowed(
                    f"Partial refunds are disabled; you must refund the full refundable amount ({refundable})",
                    refundable=str(refundable),
                )
            if requested - refundable > self.settings.refund_amount_epsilon:
                raise ExceedsRefundable(
                    f"Refund amount exceeds refundable amount ({refundable})",
                    refundable=str(refundable),
                )
            record_amount = quantize(requested)
            send_minor = major_to_minor(record_amount)
        else:
            if refundable <= 0:
                raise NothingToRefund()
            record_amount = refundable
            metadata.setdefault("mode", "full")

        payment_id = self.resolve_payment_identifier(order)
        if not payment_id:
            raise MissingPaymentIdentifier()

        metadata["ecommerce_order_id"] = order.reference
        key = build_idempotency_key(payment_id, send_minor, currency, metadata.get("mode"))

        logger.info(
            "Requesting refund",
            extra={
                "order_reference": order.reference,
                "payment_id": payment_id,
                "amount": str(record_amount),
                "currency": currency,
                "idempotency_key": key,
            },
        )
        result = self.api.create_refund(payment_id, send_minor, currency, metadata, key)
        if not result.external_id:
            raise RefundApiFailure("Refund API did not return a valid external ID", status_code=502)

        # A repeated idempotency key makes the provider hand back the refund it already created.
        existing = self.repository.get_by_transaction_id(result.external_id)
        if existing is not None:
            logger.info(
                "Refund request replayed; returning the recorded transaction",
                extra={
                    "order_reference": order.reference,
                    "refund_id": result.external_id,
                    "idempotency_key": key,
                    "status": existing.status.value,
                },
            )
            return existing

        return self.transactions.create_refund_transaction(
            result.external_id,
            order_id=order.id,
            order_reference=order.reference,
            amount=record_amount,
            currency=currency,
            status=TransactionStatus.PENDING,
            request_data={
                "payment_intent_id": payment_id,
                "metadata": metadata,
                "idempotency_key": key,
            },
            response_data=result.response,
            actor=REFUND_ACTOR,
        )

    def cancel_refund(self, external_refund_id: str) -> bool:
        result = self.api.cancel_refund(external_refund_id)

        transaction = self.repository.get_by_transaction_id(external_refund_id)
        if transaction is None:
            logger.error(
                "Refund canceled at provider but no local transaction found",
                extra={"refund_id": external_refund_id, "canceled": result.canceled},
            )
            return result.canceled

        self.transactions.update_transaction_status(
            transaction,
            TransactionStatus.CANCELED if result.canceled else TransactionStatus.FAILED,
            actor=REFUND_ACTOR,
            response=result.response,
        )
        return result.canceled


def create_refund_for_reference(
    service: RefundService,
    orders: OrderGateway,
    order_reference: str,
    amount: Decimal | int | str | None = None,
    currency: str | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> Transaction:
    """Look the order up by reference and delegate to ``RefundService.request_refund``."""

    order = orders.load_by_reference(order_reference)
    if order is None:
        raise OrderNotFound(order_reference)
    return service.request_refund(order, amount, currency, metadata)


__all__ = [
    "COUNTED_REFUND_STATUSES",
    "IDEMPOTENCY_KEY_PREFIX",
    "RefundService",
    "build_idempotency_key",
    "create_refund_for_reference",
    "sanitize_refund_metadata",
]
