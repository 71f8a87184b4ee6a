"""Order-level read endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from payledger.db import get_db
from payledger.routers.refunds import get_refund_service
from payledger.schemas.refund import RefundableRead
from payledger.schemas.transaction import TransactionRead
from payledger.security import require_api_key
from payledger.services.orders import SqlOrderGateway
from payledger.services.refunds import RefundService
from payledger.services.transaction_repository import TransactionRepository
from payledger.services.transactions import TransactionService
from payledger.utils.errors import OrderNotFound

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/{order_reference}/refundable", response_model=RefundableRead)
def get_refundable(
    order_reference: str,
    db: Session = Depends(get_db),
    service: RefundService = Depends(get_refund_service),
    actor: str = Depends(require_api_key),
) -> RefundableRead:
    """Amount still refundable for the order, derived from the ledger (admin only)."""

    order = SqlOrderGateway(db).load_by_reference(order_reference)
    if order is None:
        raise OrderNotFound(order_reference)
    return RefundableRead(
        order_reference=order.reference,
        refundable=service.get_refundable_amount(order),
        currency=order.currency,
    )


@router.get("/{order_reference}/transactions", response_model=list[TransactionRead])
def get_order_transactions(
    order_reference: str,
    db: Session = Depends(get_db),
    actor: str = Depends(require_api_key),
):
    """Ledger rows of the order, oldest first (admin only)."""

    return TransactionService(TransactionRepository(db)).get_transaction_history_for_order(order_reference)


__all__ = ["router"]
