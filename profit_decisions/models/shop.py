"""
Shop (merchant) configuration and run state
"""
from sqlalchemy import Column, Integer, String, Float, DateTime
from datetime import datetime

from profit_decisions.models.base import Base


class Shop(Base):
    """
    One row per merchant.

    Holds the merchant-configurable knobs the engine reads (shipping
    assumption, minimum impact, currency) and the state each run writes back
    (last order count, last analysed timestamp).
    """
    __tablename__ = "shops"

    id = Column(Integer, primary_key=True, index=True)
    shop = Column(String, unique=True, index=True, nullable=False)  # e.g. store.myshopify.com

    # Display
    currency = Column(String, default="GBP")
    currency_symbol = Column(String, default="£")

    # Engine configuration
    assumed_shipping_cost = Column(Float, default=3.50)  # per order
    min_impact_threshold = Column(Float, nullable=True)  # currency/month, floored by system minimum

    # Run state
    last_order_count = Column(Integer, nullable=True)
    last_analyzed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
