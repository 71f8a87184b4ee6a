"""Order model used by the SQL order gateway."""
import enum
from decimal import Decimal

from sqlalchemy import Boolean, Enum as SqlEnum, JSON, Numeric, String
from sqlalchemy.ext.mutable import MutableDict, MutableList
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class OrderState(str, enum.Enum):
    """Lifecycle states of a merchant order."""

    NEW = "new"
    PENDING_PAYMENT = "pending_payment"
    PROCESSING = "processing"
    COMPLETE = "complete"
    CANCELED = "canceled"
    CLOSED = "closed"


class Order(Base):
    """Minimal merchant order: the fields the webhook and refund flows read or touch."""

    __tablename__ = "orders"

    reference: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    state: Mapped[OrderState] = mapped_column(
        SqlEnum(OrderState, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=OrderState.PENDING_PAYMENT,
    )
    payment_method: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payment_info: Mapped[dict] = mapped_column(MutableDict.as_mutable(JSON), nullable=False, default=dict)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="CLP")
    grand_total: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    total_paid: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    cart_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    invoice_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    credit_memos: Mapped[list] = mapped_column(MutableList.as_mutable(JSON), nullable=False, default=list)
    history: Mapped[list] = mapped_column(MutableList.as_mutable(JSON), nullable=False, default=list)
