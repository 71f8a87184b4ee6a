"""Idempotency helpers and the webhook dedup ledger."""
import json
import logging
from typing import Callable, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from payledger.models import Transaction, TransactionStatus, TransactionType

T = TypeVar("T")

logger = logging.getLogger(__name__)

MARKER_ACTOR = "webhook-idem"


def get_existing_by_key(
    db: Session,
    model: Type[T],
    key_value: str | None,
    *,
    key_field: str = "transaction_id",
) -> Optional[T]:
    """Return existing record for a given idempotency key if present."""
    if not key_value:
        return None
    if not hasattr(model, key_field):
        raise AttributeError(f"{model.__name__} has no field '{key_field}'")

    column = getattr(model, key_field)
    stmt = select(model).where(column == key_value).limit(1)
    return db.scalars(stmt).first()


def get_or_create_idempotent(
    db: Session,
    model: Type[T],
    key_value: str,
    build_instance: Callable[[], T],
    *,
    key_field: str = "transaction_id",
) -> Optional[T]:
    """Try to get an existing record by idempotency key, or create it atomically."""
    existing = get_existing_by_key(db, model, key_value, key_field=key_field)
    if existing:
        return existing
    instance = build_instance()
    try:
        db.add(instance)
        db.commit()
        db.refresh(instance)
        return instance
    except IntegrityError:
        db.rollback()
        # concurrent insert won; re-read it
        return get_existing_by_key(db, model, key_value, key_field=key_field)


class WebhookIdempotencyLedger:
    """Presence check on ``transactions.transaction_id`` for provider event ids.

    ``seen`` followed by ``mark_seen`` is not atomic; concurrent duplicate
    deliveries are absorbed by the handlers' upsert logic.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def seen(self, event_id: str | None) -> bool:
        if not event_id:
            return False
        return get_existing_by_key(self.db, Transaction, event_id) is not None

    def _marker(self, event_id: str) -> Transaction:
        return Transaction(
            transaction_id=event_id,
            order_id=None,
            order_reference=None,
            type=TransactionType.WEBHOOK,
            status=TransactionStatus.SUCCESS,
            currency="USD",
            status_history=json.dumps([]),
            retry_attempts=0,
            created_by=MARKER_ACTOR,
            updated_by=MARKER_ACTOR,
        )

    def mark_seen(self, event_id: str | None) -> None:
        """Best effort: a failure is logged and never propagated."""

        if not event_id:
            return
        try:
            get_or_create_idempotent(self.db, Transaction, event_id, lambda: self._marker(event_id))
        except SQLAlchemyError:
            self.db.rollback()
            logger.warning(
                "Failed to record webhook idempotency marker",
                extra={"event_id": event_id},
                exc_info=True,
            )


__all__ = [
    "MARKER_ACTOR",
    "WebhookIdempotencyLedger",
    "get_existing_by_key",
    "get_or_create_idempotent",
]
