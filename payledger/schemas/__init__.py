"""Schema package exports."""
from .refund import RefundableRead, RefundCancelRead, RefundCreate
from .transaction import StatusHistoryEntry, TransactionDetail, TransactionRead

__all__ = [
    "RefundableRead",
    "RefundCancelRead",
    "RefundCreate",
    "StatusHistoryEntry",
    "TransactionDetail",
    "TransactionRead",
]
