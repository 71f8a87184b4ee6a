"""ORM models package."""
from .base import Base
from .order import Order, OrderState
from .transaction import Transaction, TransactionStatus, TransactionType

__all__ = [
    "Base",
    "Order",
    "OrderState",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
]
