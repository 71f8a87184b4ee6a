"""Refund request and response schemas."""
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, field_validator


class RefundCreate(BaseModel):
    order_reference: str = Field(min_length=1, max_length=64)
    amount: Decimal | None = None
    currency: str | None = Field(default=None, pattern="^[A-Za-z]{3}$")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str | None) -> str | None:
        return value.upper() if value else value


class RefundCancelRead(BaseModel):
    refund_id: str
    canceled: bool


class RefundableRead(BaseModel):
    order_reference: str
    refundable: Decimal
    currency: str
