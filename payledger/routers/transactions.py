"""Transaction ledger read endpoints."""
from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from payledger.db import get_db
from payledger.models import Transaction, TransactionStatus, TransactionType
from payledger.schemas.transaction import StatusHistoryEntry, TransactionDetail, TransactionRead
from payledger.security import require_api_key
from payledger.services.transaction_repository import TransactionCriteria, TransactionRepository
from payledger.services.transactions import decode_status_history, decode_webhook_data
from payledger.utils.errors import TransactionNotFound

router = APIRouter(prefix="/transactions", tags=["transactions"])


def _json_or_raw(value: str | None) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except ValueError:
        return value


@router.get("", response_model=list[TransactionRead])
def list_transactions(
    order_reference: str | None = None,
    type: TransactionType | None = None,
    status: TransactionStatus | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: str = Depends(require_api_key),
) -> list[Transaction]:
    """List ledger rows, newest first (admin only)."""

    criteria = TransactionCriteria(
        order_reference=order_reference,
        type=type,
        statuses=[status] if status else None,
        limit=limit,
        offset=offset,
    )
    return TransactionRepository(db).get_list(criteria)


@router.get("/{transaction_id}", response_model=TransactionDetail)
def get_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(require_api_key),
) -> TransactionDetail:
    """Retrieve one transaction with its status history and webhook payloads (admin only)."""

    transaction = TransactionRepository(db).get_by_transaction_id(transaction_id)
    if transaction is None:
        raise TransactionNotFound(transaction_id)

    base = TransactionRead.model_validate(transaction)
    return TransactionDetail(
        **base.model_dump(),
        status_history=[StatusHistoryEntry.from_entry(e) for e in decode_status_history(transaction)],
        webhook_data=decode_webhook_data(transaction),
        request_data=_json_or_raw(transaction.request_data),
        response_data=_json_or_raw(transaction.response_data),
    )


__all__ = ["router"]
