"""
Variant Cost Data Model

Unit cost per product variant, used by the profit calculator.
One row per (shop, variant); the source tag decides which writes may
replace an existing cost.
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, UniqueConstraint
from datetime import datetime

from profit_decisions.models.base import Base


COST_SOURCE_PLATFORM = "platform"
COST_SOURCE_IMPORT = "import"
COST_SOURCE_MANUAL = "manual"

# Higher wins: a manual cost is never replaced by an import or a platform sync
COST_SOURCE_PRECEDENCE = {
    COST_SOURCE_PLATFORM: 0,
    COST_SOURCE_IMPORT: 1,
    COST_SOURCE_MANUAL: 2,
}


class VariantCost(Base):
    """Unit cost for a single variant in a single shop"""
    __tablename__ = "variant_costs"
    __table_args__ = (
        UniqueConstraint("shop", "variant_id", name="uq_variant_costs_shop_variant"),
    )

    id = Column(Integer, primary_key=True, index=True)
    shop = Column(String, index=True, nullable=False)
    variant_id = Column(String, index=True, nullable=False)
    sku = Column(String, nullable=True)

    unit_cost = Column(Float, nullable=False)
    source = Column(String, nullable=False, default=COST_SOURCE_PLATFORM)  # platform, import, manual

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def can_be_replaced_by(self, source: str) -> bool:
        """True if a write from `source` is allowed to overwrite this cost"""
        return COST_SOURCE_PRECEDENCE.get(source, 0) >= COST_SOURCE_PRECEDENCE.get(self.source, 0)
