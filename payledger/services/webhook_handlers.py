"""Webhook event handlers.

Every handler is a plain function ``handler(event, ctx)``. They share one
pattern: resolve the order from the object's metadata, upsert the order's
transaction into the target status, append the raw payload to its audit
trail, then run order side effects through ``run_side_effect`` so a failing
side effect never undoes the committed status.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional

from payledger.config import Settings
from payledger.models import Order, OrderState, Transaction, TransactionStatus, TransactionType
from payledger.services.orders import OrderGateway
from payledger.services.transaction_repository import TransactionRepository
from payledger.services.transactions import TransactionService
from payledger.services.webhook_events import (
    EV_CS_EXPIRED,
    EV_CS_FINISHED,
    EV_PI_FAILED,
    EV_PI_PENDING,
    EV_PI_SUCCEEDED,
    EV_REFUND_FAILED,
    EV_REFUND_GENERIC,
    EV_REFUND_IN_PROGRESS,
    EV_REFUND_SUCCEEDED,
    META_ORDER_KEYS,
    WebhookEvent,
    normalize_payment_intent,
)
from payledger.utils.amounts import is_numeric, minor_to_major, to_decimal
from payledger.utils.errors import OrderNotFound, OrderReferenceMissing
from payledger.utils.time import utc_timestamp

module_logger = logging.getLogger(__name__)

WEBHOOK_ACTOR = "webhook"
FULFILLED_STATES = {OrderState.PROCESSING, OrderState.COMPLETE, OrderState.CLOSED}

REFUND_STATUS_EVENTS = {
    "succeeded": EV_REFUND_SUCCEEDED,
    "failed": EV_REFUND_FAILED,
    "rejected": EV_REFUND_FAILED,
    "canceled": EV_REFUND_FAILED,
    "cancelled": EV_REFUND_FAILED,
    "pending": EV_REFUND_IN_PROGRESS,
    "in_progress": EV_REFUND_IN_PROGRESS,
}


@dataclass
class HandlerContext:
    """Collaborators handed to every handler."""

    transactions: TransactionService
    repository: TransactionRepository
    orders: OrderGateway
    settings: Settings
    logger: logging.Logger = field(default=module_logger)
    # Handler map the router dispatches with; ``None`` means ``DEFAULT_HANDLERS``.
    handlers: Optional[Mapping[str, Callable[[WebhookEvent, HandlerContext], None]]] = None


# --- shared helpers ---------------------------------------------------------


def extract_order_reference(obj: Mapping[str, Any]) -> Optional[str]:
    metadata = obj.get("metadata")
    if not isinstance(metadata, Mapping):
        return None
    for key in META_ORDER_KEYS:
        value = metadata.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def require_order_reference(obj: Mapping[str, Any], kind: str) -> str:
    reference = extract_order_reference(obj)
    if reference is None:
        metadata = obj.get("metadata")
        raise OrderReferenceMissing(
            f"No order ID found in {kind} metadata: {json.dumps(metadata, default=str)}"
        )
    return reference


def load_order_or_fail(ctx: HandlerContext, reference: str) -> Order:
    order = ctx.orders.load_by_reference(reference)
    if order is None:
        raise OrderNotFound(reference)
    return order


def find_order_transaction(ctx: HandlerContext, reference: str) -> Optional[Transaction]:
    """Latest payment-side transaction for the order; refund rows are left alone."""

    return ctx.transactions.get_latest_transaction_for_order(
        reference, exclude_type=TransactionType.REFUND
    )


def append_webhook_payload(
    ctx: HandlerContext, transaction: Transaction, event: WebhookEvent, default_type: str
) -> Transaction:
    return ctx.transactions.append_webhook_data(
        transaction, event.event_type or default_type, event.full_payload
    )


def upsert_and_append(
    ctx: HandlerContext,
    order: Order,
    event: WebhookEvent,
    *,
    status: TransactionStatus,
    default_type: str,
    external_id: str | None,
    amount: Decimal | None,
    currency: str | None,
    reference: str | None = None,
    error_message: str | None = None,
) -> Transaction:
    """Transition the order's transaction, or create it, then record the payload."""

    existing = find_order_transaction(ctx, order.reference)
    if existing is not None:
        ctx.transactions.update_transaction_status(
            existing,
            status,
            actor=WEBHOOK_ACTOR,
            error_message=error_message,
            reference=reference,
        )
        return append_webhook_payload(ctx, existing, event, default_type)

    return ctx.transactions.create_webhook_transaction(
        external_id or f"wh_{uuid.uuid4().hex}",
        status=status,
        order_id=order.id,
        order_reference=order.reference,
        amount=amount,
        currency=currency or order.currency,
        reference=reference,
        event_type=event.event_type or default_type,
        payload=event.full_payload,
        error_message=error_message,
        actor=WEBHOOK_ACTOR,
    )


def run_side_effect(ctx: HandlerContext, name: str, func: Callable[..., Any], *args: Any, **context: Any) -> Any:
    """Call ``func``; failures are logged as critical and swallowed."""

    try:
        return func(*args)
    except Exception:  # noqa: BLE001
        ctx.logger.critical(
            "Webhook side effect failed",
            extra={"side_effect": name, **context},
            exc_info=True,
        )
        return None


def _pi_payment_info(pi: Mapping[str, Any], **extra: Any) -> dict[str, Any]:
    info = {
        "payment_id": pi.get("id"),
        "payment_status": pi.get("status"),
        "payment_amount": pi.get("amount"),
        "payment_currency": pi.get("currency"),
        "payment_type": pi.get("paymentType"),
        "reference_id": pi.get("referenceId"),
        "transaction_date": pi.get("transactionDate"),
    }
    info.update(extra)
    return info


def _money(amount: Any, currency: Any) -> str:
    major = minor_to_major(amount)
    if major is None:
        return "N/A"
    return f"{major} {currency or ''}".strip()


# --- payment intents -------------------------------------------------------


def handle_payment_intent_succeeded(event: WebhookEvent, ctx: HandlerContext) -> None:
    pi = normalize_payment_intent(event.object)
    reference = require_order_reference(pi, "payment intent")
    order = load_order_or_fail(ctx, reference)

    if order.state in FULFILLED_STATES:
        existing = find_order_transaction(ctx, reference)
        if existing is not None:
            append_webhook_payload(ctx, existing, event, EV_PI_SUCCEEDED)
        else:
            ctx.logger.warning(
                "Order already processed but has no payment transaction; payload not recorded",
                extra={"order_reference": reference, "payment_id": pi.get("id"), "state": order.state.value},
            )
        ctx.logger.info(
            "Order already processed; payment success recorded as audit only",
            extra={"order_reference": reference, "payment_id": pi.get("id")},
        )
        return

    upsert_and_append(
        ctx,
        order,
        event,
        status=TransactionStatus.SUCCESS,
        default_type=EV_PI_SUCCEEDED,
        external_id=pi.get("id"),
        amount=minor_to_major(pi.get("amount")),
        currency=pi.get("currency"),
        reference=pi.get("referenceId"),
    )

    log_ctx = {"order_reference": reference, "payment_id": pi.get("id")}
    run_side_effect(
        ctx,
        "payment_info",
        ctx.orders.set_payment_info,
        order,
        _pi_payment_info(pi, sender_account=pi.get("senderAccount")),
        **log_ctx,
    )
    run_side_effect(
        ctx,
        "history_comment",
        ctx.orders.add_history_comment,
        order,
        "Payment succeeded. ID: {}, Amount: {}, Ref: {}".format(
            pi.get("id") or "N/A", _money(pi.get("amount"), pi.get("currency")), pi.get("referenceId") or "N/A"
        ),
        **log_ctx,
    )
    if run_side_effect(ctx, "can_invoice", ctx.orders.can_invoice, order, **log_ctx):
        invoice_id = run_side_effect(ctx, "invoice", ctx.orders.create_invoice, order, **log_ctx)
        if invoice_id:
            run_side_effect(
                ctx,
                "history_comment",
                ctx.orders.add_history_comment,
                order,
                f"Invoice #{invoice_id} created",
                **log_ctx,
            )

    ctx.logger.info(
        "Payment succeeded and order processed",
        extra={**log_ctx, "amount": pi.get("amount"), "currency": pi.get("currency")},
    )


def _failure_reason(pi: Mapping[str, Any]) -> str:
    if pi.get("errorReason"):
        return str(pi["errorReason"])
    last_error = pi.get("last_payment_error")
    if isinstance(last_error, Mapping) and last_error.get("message"):
        return str(last_error["message"])
    return "Payment failed or canceled"


def handle_payment_intent_failed(event: WebhookEvent, ctx: HandlerContext) -> None:
    pi = normalize_payment_intent(event.object)
    reference = require_order_reference(pi, "payment intent")
    order = load_order_or_fail(ctx, reference)
    log_ctx = {"order_reference": reference, "payment_id": pi.get("id")}

    if order.state == OrderState.CANCELED:
        existing = find_order_transaction(ctx, reference)
        if existing is not None:
            append_webhook_payload(ctx, existing, event, EV_PI_FAILED)
        run_side_effect(ctx, "restore_cart", ctx.orders.restore_cart, order, **log_ctx)
        return

    error = _failure_reason(pi)
    upsert_and_append(
        ctx,
        order,
        event,
        status=TransactionStatus.FAILED,
        default_type=EV_PI_FAILED,
        external_id=pi.get("id"),
        amount=minor_to_major(pi.get("amount")),
        currency=pi.get("currency"),
        reference=pi.get("referenceId"),
        error_message=error,
    )

    run_side_effect(
        ctx,
        "payment_info",
        ctx.orders.set_payment_info,
        order,
        _pi_payment_info(pi, error_reason=pi.get("errorReason"), failed_at=utc_timestamp()),
        **log_ctx,
    )
    run_side_effect(ctx, "cancel", ctx.orders.cancel, order, **log_ctx)
    run_side_effect(
        ctx,
        "history_comment",
        ctx.orders.add_history_comment,
        order,
        "Payment failed. ID: {}, Amount: {}, Status: {}: {}".format(
            pi.get("id") or "N/A", _money(pi.get("amount"), pi.get("currency")), pi.get("status") or "failed", error
        ),
        **log_ctx,
    )
    run_side_effect(ctx, "restore_cart", ctx.orders.restore_cart, order, **log_ctx)

    ctx.logger.info(
        "Payment failed and order canceled",
        extra={**log_ctx, "status": pi.get("status") or "failed", "error_reason": pi.get("errorReason")},
    )


def handle_payment_intent_pending(event: WebhookEvent, ctx: HandlerContext) -> None:
    pi = normalize_payment_intent(event.object)
    reference = require_order_reference(pi, "payment intent")
    order = load_order_or_fail(ctx, reference)
    log_ctx = {"order_reference": reference, "payment_id": pi.get("id")}

    upsert_and_append(
        ctx,
        order,
        event,
        status=TransactionStatus.PENDING,
        default_type=EV_PI_PENDING,
        external_id=pi.get("id"),
        amount=minor_to_major(pi.get("amount")),
        currency=pi.get("currency"),
        reference=pi.get("referenceId"),
    )

    run_side_effect(
        ctx,
        "payment_info",
        ctx.orders.set_payment_info,
        order,
        _pi_payment_info(pi, pending_at=utc_timestamp()),
        **log_ctx,
    )
    run_side_effect(
        ctx,
        "history_comment",
        ctx.orders.add_history_comment,
        order,
        "Payment pending. ID: {}, Amount: {}".format(pi.get("id") or "N/A", _money(pi.get("amount"), pi.get("currency"))),
        **log_ctx,
    )
    ctx.logger.info("Payment intent pending recorded", extra=log_ctx)


# --- checkout sessions -----------------------------------------------------


def handle_checkout_session_finished(event: WebhookEvent, ctx: HandlerContext) -> None:
    reference = require_order_reference(event.object, "checkout session")
    existing = find_order_transaction(ctx, reference)
    if existing is not None:
        append_webhook_payload(ctx, existing, event, EV_CS_FINISHED)
    ctx.logger.info("Checkout session finished traced", extra={"order_reference": reference})


def handle_checkout_session_expired(event: WebhookEvent, ctx: HandlerContext) -> None:
    session = event.object
    reference = require_order_reference(session, "checkout session")
    order = load_order_or_fail(ctx, reference)
    log_ctx = {"order_reference": reference, "session_id": session.get("id")}

    upsert_and_append(
        ctx,
        order,
        event,
        status=TransactionStatus.CANCELED,
        default_type=EV_CS_EXPIRED,
        external_id=session.get("id"),
        amount=minor_to_major(session.get("amount")),
        currency=session.get("currency"),
        reference=session.get("referenceId") or session.get("reference_id"),
        error_message="Checkout session expired",
    )

    run_side_effect(
        ctx,
        "payment_info",
        ctx.orders.set_payment_info,
        order,
        {
            "checkout_session_id": session.get("id"),
            "checkout_session_status": "expired",
            "checkout_session_expired_at": utc_timestamp(),
        },
        **log_ctx,
    )
    run_side_effect(ctx, "cancel", ctx.orders.cancel, order, **log_ctx)
    run_side_effect(
        ctx,
        "history_comment",
        ctx.orders.add_history_comment,
        order,
        f"Checkout session expired. Session ID: {session.get('id') or 'N/A'}",
        **log_ctx,
    )
    run_side_effect(ctx, "restore_cart", ctx.orders.restore_cart, order, **log_ctx)
    ctx.logger.info("Checkout session expired and order canceled", extra=log_ctx)


# --- refunds ---------------------------------------------------------------


def _refund_transaction(ctx: HandlerContext, refund_id: str) -> Optional[Transaction]:
    return ctx.repository.get_by_transaction_id(refund_id) if refund_id else None


def _fallback_transaction(
    ctx: HandlerContext, reference: str, refund_id: str, event_type: str
) -> Optional[Transaction]:
    """Most recent transaction of the order; may misattribute with concurrent refunds."""

    ctx.logger.warning(
        "Refund transaction not found by id; falling back to the most recent order transaction",
        extra={"refund_id": refund_id, "order_reference": reference, "event_type": event_type},
    )
    return ctx.transactions.get_latest_transaction_for_order(reference)


def build_credit_memo_data(metadata: Mapping[str, Any], amount: Decimal | None) -> dict[str, Any]:
    """Translate refund metadata into credit memo parameters."""

    mode = metadata.get("mode", metadata.get("Mode"))
    raw_qtys = metadata.get("qtys", metadata.get("Qtys"))
    qtys: Any = {}
    if isinstance(raw_qtys, str) and raw_qtys:
        try:
            qtys = json.loads(raw_qtys)
        except ValueError:
            qtys = {}
    elif isinstance(raw_qtys, Mapping):
        qtys = raw_qtys

    normalized: dict[str, float] = {}
    if isinstance(qtys, Mapping):
        for item_id, qty in qtys.items():
            if is_numeric(qty) and to_decimal(qty) > 0:
                normalized[str(item_id)] = float(qty)

    data: dict[str, Any] = {"mode": "full"}
    if mode == "items" and normalized:
        data = {"mode": "items", "qtys": normalized}
        for key in ("shipping_amount", "adjustment_positive", "adjustment_negative"):
            if is_numeric(metadata.get(key)):
                data[key] = float(metadata[key])
    if amount is not None:
        data["amount"] = str(amount)
    return data


def handle_refund_succeeded(event: WebhookEvent, ctx: HandlerContext) -> None:
    refund = event.object
    reference = require_order_reference(refund, "refund")
    order = load_order_or_fail(ctx, reference)
    refund_id = str(refund.get("id") or "")
    log_ctx = {"order_reference": reference, "refund_id": refund_id}

    tx = _refund_transaction(ctx, refund_id)
    if tx is not None and tx.status == TransactionStatus.SUCCESS:
        append_webhook_payload(ctx, tx, event, EV_REFUND_SUCCEEDED)
        ctx.logger.info("Refund already settled; recorded as audit only", extra=log_ctx)
        return

    if tx is not None:
        ctx.transactions.update_transaction_status(tx, TransactionStatus.SUCCESS, actor=WEBHOOK_ACTOR)
        append_webhook_payload(ctx, tx, event, EV_REFUND_SUCCEEDED)
    else:
        tx = _fallback_transaction(ctx, reference, refund_id, EV_REFUND_SUCCEEDED)
        if tx is not None:
            if tx.type == TransactionType.REFUND and tx.status == TransactionStatus.PENDING:
                ctx.transactions.update_transaction_status(tx, TransactionStatus.SUCCESS, actor=WEBHOOK_ACTOR)
            append_webhook_payload(ctx, tx, event, EV_REFUND_SUCCEEDED)

    memo_id = None
    if ctx.settings.refunds_auto_creditmemo and run_side_effect(
        ctx, "can_credit", ctx.orders.can_credit, order, **log_ctx
    ):
        metadata = refund.get("metadata") if isinstance(refund.get("metadata"), Mapping) else {}
        memo_id = run_side_effect(
            ctx,
            "credit_memo",
            ctx.orders.create_credit_memo,
            order,
            build_credit_memo_data(metadata, minor_to_major(refund.get("amount"))),
            **log_ctx,
        )

    comment = f"Refund succeeded. Refund ID: {refund_id or 'N/A'}, Amount: {_money(refund.get('amount'), refund.get('currency'))}"
    if memo_id:
        comment += f", Credit Memo: #{memo_id}"
    if tx is not None:
        comment += f", Transaction: {tx.status.value}"
    run_side_effect(ctx, "history_comment", ctx.orders.add_history_comment, order, comment, **log_ctx)
    ctx.logger.info("Refund succeeded processed", extra={**log_ctx, "credit_memo_id": memo_id})


def handle_refund_failed(event: WebhookEvent, ctx: HandlerContext) -> None:
    refund = event.object
    reference = require_order_reference(refund, "refund")
    order = load_order_or_fail(ctx, reference)
    refund_id = str(refund.get("id") or "")
    failure_code = refund.get("failure_code") or refund.get("error_code")
    failure_message = refund.get("error_reason") or refund.get("error_message")
    log_ctx = {"order_reference": reference, "refund_id": refund_id}

    tx = _refund_transaction(ctx, refund_id)
    if tx is not None:
        ctx.transactions.update_transaction_status(
            tx,
            TransactionStatus.FAILED,
            actor=WEBHOOK_ACTOR,
            error_code=failure_code if isinstance(failure_code, str) else None,
            error_message=failure_message if isinstance(failure_message, str) else None,
        )
        append_webhook_payload(ctx, tx, event, EV_REFUND_FAILED)
    else:
        fallback = _fallback_transaction(ctx, reference, refund_id, EV_REFUND_FAILED)
        if fallback is not None:
            append_webhook_payload(ctx, fallback, event, EV_REFUND_FAILED)

    comment = f"Refund failed. Refund ID: {refund_id or 'N/A'}, Amount: {_money(refund.get('amount'), refund.get('currency'))}"
    if failure_message or failure_code:
        comment += f", Reason: {failure_message or ''}"
        if failure_code:
            comment += f" ({failure_code})"
    run_side_effect(ctx, "history_comment", ctx.orders.add_history_comment, order, comment, **log_ctx)
    ctx.logger.info("Refund failed recorded", extra={**log_ctx, "failure_code": failure_code})


def handle_refund_in_progress(event: WebhookEvent, ctx: HandlerContext) -> None:
    refund = event.object
    reference = require_order_reference(refund, "refund")
    order = load_order_or_fail(ctx, reference)
    refund_id = str(refund.get("id") or "")
    log_ctx = {"order_reference": reference, "refund_id": refund_id}

    tx = _refund_transaction(ctx, refund_id)
    if tx is None:
        tx = _fallback_transaction(ctx, reference, refund_id, EV_REFUND_IN_PROGRESS)
    if tx is not None:
        append_webhook_payload(ctx, tx, event, EV_REFUND_IN_PROGRESS)

    run_side_effect(
        ctx,
        "history_comment",
        ctx.orders.add_history_comment,
        order,
        f"Refund in progress. Refund ID: {refund_id or 'N/A'}, Amount: {_money(refund.get('amount'), refund.get('currency'))}",
        **log_ctx,
    )
    ctx.logger.info("Refund in progress traced", extra=log_ctx)


def handle_refund_event(event: WebhookEvent, ctx: HandlerContext) -> None:
    """Untyped refund notification: route on the refund's own status."""

    status = str(event.object.get("status") or "")
    name = REFUND_STATUS_EVENTS.get(status)
    if name is None:
        ctx.logger.warning(
            "Unhandled refund status",
            extra={"event_id": event.event_id, "status": status or None},
        )
        return
    handlers = ctx.handlers if ctx.handlers is not None else DEFAULT_HANDLERS
    handler = handlers.get(name)
    if handler is None:
        ctx.logger.warning(
            "No handler registered for refund status",
            extra={"event_id": event.event_id, "status": status, "handler": name},
        )
        return
    handler(event, ctx)


DEFAULT_HANDLERS: dict[str, Callable[[WebhookEvent, HandlerContext], None]] = {
    EV_PI_SUCCEEDED: handle_payment_intent_succeeded,
    EV_PI_FAILED: handle_payment_intent_failed,
    EV_PI_PENDING: handle_payment_intent_pending,
    EV_CS_FINISHED: handle_checkout_session_finished,
    EV_CS_EXPIRED: handle_checkout_session_expired,
    EV_REFUND_SUCCEEDED: handle_refund_succeeded,
    EV_REFUND_FAILED: handle_refund_failed,
    EV_REFUND_IN_PROGRESS: handle_refund_in_progress,
    EV_REFUND_GENERIC: handle_refund_event,
}


__all__ = [
    "DEFAULT_HANDLERS",
    "FULFILLED_STATES",
    "HandlerContext",
    "REFUND_STATUS_EVENTS",
    "append_webhook_payload",
    "build_credit_memo_data",
    "extract_order_reference",
    "find_order_transaction",
    "handle_checkout_session_expired",
    "handle_checkout_session_finished",
    "handle_payment_intent_failed",
    "handle_payment_intent_pending",
    "handle_payment_intent_succeeded",
    "handle_refund_event",
    "handle_refund_failed",
    "handle_refund_in_progress",
    "handle_refund_succeeded",
    "load_order_or_fail",
    "require_order_reference",
    "run_side_effect",
    "upsert_and_append",
]
