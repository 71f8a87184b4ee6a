"""Transaction schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict

from payledger.models.transaction import TransactionStatus, TransactionType


class TransactionRead(BaseModel):
    id: int
    transaction_id: str
    order_id: int | None = None
    order_reference: str | None = None
    type: TransactionType
    status: TransactionStatus
    previous_status: str | None = None
    amount: Decimal | None = None
    currency: str
    reference: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    retry_attempts: int = 0
    created_by: str | None = None
    updated_by: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StatusHistoryEntry(BaseModel):
    """One recorded transition."""

    from_status: str | None = None
    to_status: str
    timestamp: str
    actor: str | None = None

    @classmethod
    def from_entry(cls, entry: dict[str, Any]) -> "StatusHistoryEntry":
        return cls(
            from_status=entry.get("from"),
            to_status=str(entry.get("to")),
            timestamp=str(entry.get("timestamp")),
            actor=entry.get("actor"),
        )


class TransactionDetail(TransactionRead):
    status_history: list[StatusHistoryEntry] = []
    webhook_data: dict[str, Any] = {}
    request_data: Any = None
    response_data: Any = None
