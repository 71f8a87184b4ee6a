"""Order collaborator used by webhook handlers and refunds."""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from payledger.models import Order, OrderState
from payledger.utils.time import utc_timestamp

logger = logging.getLogger(__name__)


class OrderGateway(Protocol):
    """Operations the ledger core needs from the order subsystem."""

    def load_by_reference(self, reference: str) -> Optional[Order]: ...

    def cancel(self, order: Order) -> None: ...

    def add_history_comment(self, order: Order, text: str) -> None: ...

    def restore_cart(self, order: Order) -> None: ...

    def set_payment_info(self, order: Order, data: Mapping[str, Any]) -> None: ...

    def can_invoice(self, order: Order) -> bool: ...

    def create_invoice(self, order: Order) -> str: ...

    def can_credit(self, order: Order) -> bool: ...

    def create_credit_memo(self, order: Order, data: Mapping[str, Any]) -> str: ...


class SqlOrderGateway:
    """Reference gateway over the local ``orders`` table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _commit(self, order: Order) -> None:
        self.db.add(order)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def load_by_reference(self, reference: str) -> Optional[Order]:
        if not reference:
            return None
        stmt = select(Order).where(Order.reference == reference).limit(1)
        return self.db.scalars(stmt).first()

    def cancel(self, order: Order) -> None:
        if order.state == OrderState.CANCELED:
            return
        order.state = OrderState.CANCELED
        self._commit(order)
        logger.info("Order canceled", extra={"order_reference": order.reference})

    def add_history_comment(self, order: Order, text: str) -> None:
        order.history.append({"comment": text, "created_at": utc_timestamp()})
        self._commit(order)

    def restore_cart(self, order: Order) -> None:
        """Reactivate the shopping cart so the customer can retry checkout."""

        if order.cart_active:
            return
        order.cart_active = True
        self._commit(order)
        logger.info("Cart restored for order", extra={"order_reference": order.reference})

    def set_payment_info(self, order: Order, data: Mapping[str, Any]) -> None:
        """Merge non-null values into the order's payment information."""

        changed = False
        for key, value in data.items():
            if value is None:
                continue
            order.payment_info[key] = value
            changed = True
        if changed:
            self._commit(order)

    def can_invoice(self, order: Order) -> bool:
        return order.invoice_id is None and order.state not in {OrderState.CANCELED, OrderState.CLOSED}

    def create_invoice(self, order: Order) -> str:
        invoice_id = f"INV-{order.reference}"
        order.invoice_id = invoice_id
        order.total_paid = order.grand_total
        order.state = OrderState.PROCESSING
        order.cart_active = False
        self._commit(order)
        logger.info(
            "Invoice created",
            extra={"order_reference": order.reference, "invoice_id": invoice_id},
        )
        return invoice_id

    def can_credit(self, order: Order) -> bool:
        return order.invoice_id is not None and order.state not in {OrderState.CANCELED, OrderState.CLOSED}

    def create_credit_memo(self, order: Order, data: Mapping[str, Any]) -> str:
        memo_id = f"CM-{order.reference}-{len(order.credit_memos) + 1}"
        order.credit_memos.append({"id": memo_id, "created_at": utc_timestamp(), **dict(data)})
        if not data.get("qtys"):
            order.state = OrderState.CLOSED
        self._commit(order)
        logger.info(
            "Credit memo created",
            extra={"order_reference": order.reference, "credit_memo_id": memo_id},
        )
        return memo_id


__all__ = ["OrderGateway", "SqlOrderGateway"]
