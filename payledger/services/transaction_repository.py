"""SQLAlchemy persistence for ledger transactions."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payledger.models import Transaction, TransactionStatus, TransactionType

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TransactionCriteria:
    """Filters accepted by ``TransactionRepository.get_list``."""

    order_reference: str | None = None
    order_id: int | None = None
    type: TransactionType | None = None
    statuses: Sequence[TransactionStatus] | None = None
    exclude_type: TransactionType | None = None
    newest_first: bool = True
    limit: int | None = None
    offset: int = 0


class TransactionRepository:
    """CRUD access to ``transactions``; uniqueness of ``transaction_id`` is enforced by the table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def save(self, transaction: Transaction) -> Transaction:
        self.db.add(transaction)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning(
                "Transaction id already stored",
                extra={"transaction_id": transaction.transaction_id},
            )
            raise
        self.db.refresh(transaction)
        return transaction

    def get_by_transaction_id(self, transaction_id: str | None, *, for_update: bool = False) -> Optional[Transaction]:
        if not transaction_id:
            return None
        stmt = select(Transaction).where(Transaction.transaction_id == transaction_id).limit(1)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.scalars(stmt).first()

    def get_by_order_reference(self, order_reference: str) -> list[Transaction]:
        return self.get_list(TransactionCriteria(order_reference=order_reference))

    def get_by_order_id(self, order_id: int) -> list[Transaction]:
        return self.get_list(TransactionCriteria(order_id=order_id))

    def get_list(self, criteria: TransactionCriteria | None = None) -> list[Transaction]:
        criteria = criteria or TransactionCriteria()
        stmt = select(Transaction)
        if criteria.order_reference is not None:
            stmt = stmt.where(Transaction.order_reference == criteria.order_reference)
        if criteria.order_id is not None:
            stmt = stmt.where(Transaction.order_id == criteria.order_id)
        if criteria.type is not None:
            stmt = stmt.where(Transaction.type == criteria.type)
        if criteria.exclude_type is not None:
            stmt = stmt.where(Transaction.type != criteria.exclude_type)
        if criteria.statuses:
            stmt = stmt.where(Transaction.status.in_(list(criteria.statuses)))
        if criteria.newest_first:
            stmt = stmt.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        else:
            stmt = stmt.order_by(Transaction.created_at.asc(), Transaction.id.asc())
        if criteria.offset:
            stmt = stmt.offset(criteria.offset)
        if criteria.limit is not None:
            stmt = stmt.limit(criteria.limit)
        return list(self.db.scalars(stmt).all())

    def delete(self, transaction: Transaction) -> None:
        """Administrative removal; the ledger core never calls this."""

        self.db.delete(transaction)
        self.db.commit()


__all__ = ["TransactionCriteria", "TransactionRepository"]
