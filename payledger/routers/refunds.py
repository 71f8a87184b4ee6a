"""Admin refund endpoints."""
from __future__ import annotations

from collections.abc import Generator

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from payledger.config import Settings, get_settings
from payledger.db import get_db
from payledger.models import Transaction
from payledger.schemas.refund import RefundCancelRead, RefundCreate
from payledger.schemas.transaction import TransactionRead
from payledger.security import require_api_key
from payledger.services.orders import SqlOrderGateway
from payledger.services.refunds import RefundService, create_refund_for_reference
from payledger.services.refunds_api import RefundsApi, RefundsApiClient
from payledger.services.transaction_repository import TransactionRepository
from payledger.services.transactions import TransactionService

router = APIRouter(prefix="/refunds", tags=["refunds"])


def get_refunds_api(settings: Settings = Depends(get_settings)) -> Generator[RefundsApi, None, None]:
    client = RefundsApiClient(settings)
    try:
        yield client
    finally:
        client.close()


def get_refund_service(
    db: Session = Depends(get_db),
    api: RefundsApi = Depends(get_refunds_api),
    settings: Settings = Depends(get_settings),
) -> RefundService:
    repository = TransactionRepository(db)
    return RefundService(api, TransactionService(repository), repository, settings)


@router.post("", response_model=TransactionRead, status_code=status.HTTP_201_CREATED)
def create_refund(
    payload: RefundCreate,
    db: Session = Depends(get_db),
    service: RefundService = Depends(get_refund_service),
    actor: str = Depends(require_api_key),
) -> Transaction:
    """Request a refund at the provider and record it as pending (admin only)."""

    return create_refund_for_reference(
        service,
        SqlOrderGateway(db),
        payload.order_reference,
        amount=payload.amount,
        currency=payload.currency,
        metadata=payload.metadata,
    )


@router.post("/{refund_id}/cancel", response_model=RefundCancelRead)
def cancel_refund(
    refund_id: str,
    service: RefundService = Depends(get_refund_service),
    actor: str = Depends(require_api_key),
) -> RefundCancelRead:
    """Ask the provider to cancel a refund (admin only)."""

    return RefundCancelRead(refund_id=refund_id, canceled=service.cancel_refund(refund_id))


__all__ = ["router", "get_refunds_api", "get_refund_service"]
