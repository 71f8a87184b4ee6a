"""Transaction state machine and audit trail."""
from __future__ import annotations

import json
import logging
import uuid
from decimal import Decimal
from typing import Any, Mapping, Optional

from payledger.models import Transaction, TransactionStatus, TransactionType
from payledger.services.transaction_repository import TransactionCriteria, TransactionRepository
from payledger.utils.amounts import quantize
from payledger.utils.time import utc_timestamp

logger = logging.getLogger(__name__)

PREVIOUS_INVALID_KEY = "__previous_invalid__"
DEFAULT_ACTOR = "system"


def _dump(data: Any) -> str | None:
    if data is None:
        return None
    if isinstance(data, str):
        return data
    return json.dumps(data, default=str, separators=(",", ":"))


def decode_status_history(transaction: Transaction) -> list[dict[str, Any]]:
    """Return the ``{from, to, timestamp, actor}`` entries recorded on ``transaction``."""

    if not transaction.status_history:
        return []
    try:
        history = json.loads(transaction.status_history)
    except ValueError:
        logger.error(
            "Unreadable status history",
            extra={"transaction_id": transaction.transaction_id},
        )
        return []
    return history if isinstance(history, list) else []


def decode_webhook_data(transaction: Transaction) -> dict[str, Any]:
    """Return webhook payloads grouped by event type."""

    if not transaction.webhook_data:
        return {}
    try:
        data = json.loads(transaction.webhook_data)
    except ValueError:
        return {PREVIOUS_INVALID_KEY: transaction.webhook_data}
    if not isinstance(data, dict):
        return {PREVIOUS_INVALID_KEY: transaction.webhook_data}
    return data


def _status_value(status: TransactionStatus | str | None) -> str | None:
    if status is None:
        return None
    return status.value if isinstance(status, TransactionStatus) else str(status)


class TransactionService:
    """Creates ledger rows and moves them through their statuses.

    ``update_transaction_status`` is the only way a stored status changes: it
    re-reads the row under a row lock, writes ``previous_status`` and appends
    exactly one history entry before committing.
    """

    def __init__(self, repository: TransactionRepository) -> None:
        self.repository = repository

    # --- creation -------------------------------------------------------

    def _create(
        self,
        *,
        type_: TransactionType,
        transaction_id: str,
        status: TransactionStatus,
        order_id: int | None = None,
        order_reference: str | None = None,
        amount: Decimal | int | str | None = None,
        currency: str | None = None,
        reference: str | None = None,
        request_data: Any = None,
        response_data: Any = None,
        webhook_data: Mapping[str, Any] | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
        actor: str = DEFAULT_ACTOR,
    ) -> Transaction:
        transaction = Transaction(
            transaction_id=transaction_id,
            order_id=order_id,
            order_reference=order_reference,
            type=type_,
            status=status,
            previous_status=None,
            amount=quantize(amount) if amount is not None else None,
            currency=(currency or "USD").upper(),
            reference=reference,
            request_data=_dump(request_data),
            response_data=_dump(response_data),
            webhook_data=_dump(dict(webhook_data)) if webhook_data else None,
            status_history=json.dumps([]),
            error_code=error_code,
            error_message=error_message,
            retry_attempts=0,
            created_by=actor,
            updated_by=actor,
        )
        self.repository.save(transaction)
        logger.info(
            "Transaction created",
            extra={
                "transaction_id": transaction.transaction_id,
                "type": type_.value,
                "status": status.value,
                "order_reference": order_reference,
            },
        )
        return transaction

    def create_authorization_transaction(
        self,
        *,
        order_id: int | None,
        order_reference: str | None,
        amount: Decimal | int | str | None,
        currency: str | None,
        transaction_id: str | None = None,
        request_data: Any = None,
        actor: str = DEFAULT_ACTOR,
    ) -> Transaction:
        """Pending authorization leg recorded when a checkout starts."""

        return self._create(
            type_=TransactionType.AUTHORIZATION,
            transaction_id=transaction_id or f"auth_{uuid.uuid4().hex}",
            status=TransactionStatus.PENDING,
            order_id=order_id,
            order_reference=order_reference,
            amount=amount,
            currency=currency,
            request_data=request_data,
            actor=actor,
        )

    def create_capture_transaction(
        self,
        transaction_id: str,
        *,
        order_id: int | None,
        order_reference: str | None,
        amount: Decimal | int | str | None,
        currency: str | None,
        status: TransactionStatus = TransactionStatus.SUCCESS,
        reference: str | None = None,
        response_data: Any = None,
        actor: str = DEFAULT_ACTOR,
    ) -> Transaction:
        return self._create(
            type_=TransactionType.CAPTURE,
            transaction_id=transaction_id,
            status=status,
            order_id=order_id,
            order_reference=order_reference,
            amount=amount,
            currency=currency,
            reference=reference,
            response_data=response_data,
            actor=actor,
        )

    def create_refund_transaction(
        self,
        transaction_id: str,
        *,
        order_id: int | None,
        order_reference: str | None,
        amount: Decimal | int | str | None,
        currency: str | None,
        status: TransactionStatus = TransactionStatus.PENDING,
        reference: str | None = None,
        request_data: Any = None,
        response_data: Any = None,
        actor: str = DEFAULT_ACTOR,
    ) -> Transaction:
        return self._create(
            type_=TransactionType.REFUND,
            transaction_id=transaction_id,
            status=status,
            order_id=order_id,
            order_reference=order_reference,
            amount=amount,
            currency=currency,
            reference=reference,
            request_data=request_data,
            response_data=response_data,
            actor=actor,
        )

    def create_void_transaction(
        self,
        transaction_id: str,
        *,
        order_id: int | None,
        order_reference: str | None,
        amount: Decimal | int | str | None = None,
        currency: str | None = None,
        status: TransactionStatus = TransactionStatus.SUCCESS,
        actor: str = DEFAULT_ACTOR,
    ) -> Transaction:
        return self._create(
            type_=TransactionType.VOID,
            transaction_id=transaction_id,
            status=status,
            order_id=order_id,
            order_reference=order_reference,
            amount=amount,
            currency=currency,
            actor=actor,
        )

    def create_webhook_transaction(
        self,
        transaction_id: str,
        *,
        status: TransactionStatus,
        order_id: int | None = None,
        order_reference: str | None = None,
        amount: Decimal | int | str | None = None,
        currency: str | None = None,
        reference: str | None = None,
        event_type: str | None = None,
        payload: Mapping[str, Any] | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
        actor: str = "webhook",
    ) -> Transaction:
        """Row created from a provider notification; ``payload`` seeds the audit trail."""

        webhook_data = {event_type: [dict(payload)]} if event_type and payload is not None else None
        return self._create(
            type_=TransactionType.WEBHOOK,
            transaction_id=transaction_id,
            status=status,
            order_id=order_id,
            order_reference=order_reference,
            amount=amount,
            currency=currency,
            reference=reference,
            webhook_data=webhook_data,
            error_code=error_code,
            error_message=error_message,
            actor=actor,
        )

    # --- transitions ----------------------------------------------------

    def _lock(self, transaction: Transaction) -> Transaction:
        locked = self.repository.get_by_transaction_id(transaction.transaction_id, for_update=True)
        return locked if locked is not None else transaction

    def update_transaction_status(
        self,
        transaction: Transaction,
        status: TransactionStatus,
        *,
        actor: str = DEFAULT_ACTOR,
        error_code: str | None = None,
        error_message: str | None = None,
        response: Any = None,
        amount: Decimal | int | str | None = None,
        reference: str | None = None,
    ) -> Transaction:
        """Move ``transaction`` to ``status`` and record the transition."""

        locked = self._lock(transaction)
        current = _status_value(locked.status)
        history = decode_status_history(locked)
        history.append(
            {
                "from": current,
                "to": status.value,
                "timestamp": utc_timestamp(),
                "actor": actor,
            }
        )

        locked.previous_status = current
        locked.status = status
        locked.status_history = json.dumps(history)
        locked.updated_by = actor
        if error_code is not None:
            locked.error_code = error_code
        if error_message is not None:
            locked.error_message = error_message
        if response is not None:
            locked.response_data = _dump(response)
        if amount is not None:
            locked.amount = quantize(amount)
        if reference is not None:
            locked.reference = reference

        self.repository.save(locked)
        logger.info(
            "Transaction status updated",
            extra={
                "transaction_id": locked.transaction_id,
                "from": current,
                "to": status.value,
                "actor": actor,
            },
        )
        return locked

    def append_webhook_data(
        self,
        transaction: Transaction,
        event_type: str,
        payload: Mapping[str, Any],
    ) -> Transaction:
        """Append ``payload`` under ``event_type``; earlier deliveries stay untouched."""

        locked = self._lock(transaction)
        grouped = decode_webhook_data(locked)
        if PREVIOUS_INVALID_KEY in grouped and len(grouped) == 1:
            logger.warning(
                "Previous webhook data was not a JSON object; preserving it",
                extra={"transaction_id": locked.transaction_id},
            )
        entries = grouped.get(event_type)
        if not isinstance(entries, list):
            entries = [] if entries is None else [entries]
        entries.append(dict(payload))
        grouped[event_type] = entries
        locked.webhook_data = _dump(grouped)
        self.repository.save(locked)
        return locked

    # --- queries --------------------------------------------------------

    def get_transaction_history_for_order(self, order_reference: str) -> list[Transaction]:
        return self.repository.get_list(
            TransactionCriteria(order_reference=order_reference, newest_first=False)
        )

    def get_latest_transaction_for_order(
        self,
        order_reference: str,
        *,
        type_: TransactionType | None = None,
        exclude_type: TransactionType | None = None,
    ) -> Optional[Transaction]:
        rows = self.repository.get_list(
            TransactionCriteria(
                order_reference=order_reference,
                type=type_,
                exclude_type=exclude_type,
                limit=1,
            )
        )
        return rows[0] if rows else None


__all__ = [
    "PREVIOUS_INVALID_KEY",
    "TransactionService",
    "decode_status_history",
    "decode_webhook_data",
]
