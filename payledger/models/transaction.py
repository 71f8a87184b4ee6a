"""Transaction ledger model."""
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import Enum as SqlEnum, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class TransactionType(str, PyEnum):
    """Kinds of ledger rows."""

    AUTHORIZATION = "authorization"
    CAPTURE = "capture"
    REFUND = "refund"
    VOID = "void"
    WEBHOOK = "webhook"


class TransactionStatus(str, PyEnum):
    """Possible transaction statuses."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELED = "canceled"


class Transaction(Base):
    """One provider-side money movement (or webhook marker) as seen locally.

    ``status`` only changes through ``TransactionService.update_transaction_status``,
    which keeps ``previous_status`` and the append-only ``status_history`` in step.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_created_at", "created_at"),
        Index("ix_transactions_status", "status"),
        Index("ix_transactions_order_reference", "order_reference"),
        Index("ix_transactions_order_type", "order_id", "type"),
    )

    transaction_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    order_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    order_reference: Mapped[str | None] = mapped_column(String(64), nullable=True)
    type: Mapped[TransactionType] = mapped_column(
        SqlEnum(TransactionType, values_callable=lambda e: [m.value for m in e]), nullable=False
    )
    status: Mapped[TransactionStatus] = mapped_column(
        SqlEnum(TransactionStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=TransactionStatus.PENDING,
    )
    previous_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    reference: Mapped[str | None] = mapped_column(String(128), nullable=True)

    request_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    webhook_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    status_history: Mapped[str | None] = mapped_column(Text, nullable=True)

    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)
