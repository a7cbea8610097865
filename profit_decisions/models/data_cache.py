"""Keyed, expiring cache of fetched platform data."""
from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint
from datetime import datetime

from profit_decisions.models.base import Base


class DataCache(Base):
    __tablename__ = "data_cache"
    __table_args__ = (
        UniqueConstraint("shop", "cache_key", name="uq_data_cache_shop_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    shop = Column(String, index=True, nullable=False)
    cache_key = Column(String, nullable=False)
    data_json = Column(JSON, nullable=False)
    expires_at = Column(DateTime, index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
