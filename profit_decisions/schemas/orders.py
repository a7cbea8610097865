"""
Order input records.

Shape of the order data handed to the engine by whatever fetched it from
the store platform. Money fields accept the numeric strings platform APIs
return ("19.99") as well as plain numbers.
"""
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC; normalise aware inputs to match"""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class RefundLineItem(BaseModel):
    line_item_id: str
    quantity: int = 0
    subtotal: float = 0.0


class RefundRecord(BaseModel):
    id: str
    created_at: Optional[datetime] = None
    total_refunded: float = 0.0
    refund_line_items: List[RefundLineItem] = Field(default_factory=list)

    @field_validator("created_at")
    @classmethod
    def normalise_created_at(cls, value):
        return _to_naive_utc(value)


class LineItem(BaseModel):
    id: str
    name: str = ""
    quantity: int = 0
    price: float = 0.0  # list unit price
    discounted_price: float = 0.0  # unit price after line-level discounts
    variant_id: Optional[str] = None
    product_id: Optional[str] = None
    sku: Optional[str] = None


class OrderRecord(BaseModel):
    """An order as fetched from the platform (immutable once fetched)"""
    id: str
    name: str = ""
    created_at: datetime
    total_price: float = 0.0
    subtotal_price: float = 0.0
    total_discounts: float = 0.0
    financial_status: str = ""
    line_items: List[LineItem] = Field(default_factory=list)
    refunds: List[RefundRecord] = Field(default_factory=list)

    model_config = {"frozen": True}

    @field_validator("created_at")
    @classmethod
    def normalise_created_at(cls, value):
        return _to_naive_utc(value)

    @property
    def is_paid(self) -> bool:
        return self.financial_status.lower() == "paid"


class VariantCostRecord(BaseModel):
    """Cost of one variant as reported by the platform"""
    variant_id: str
    sku: Optional[str] = None
    cost: Optional[float] = None
