"""
Shop settings service.

A ShopProfile is the explicit per-merchant configuration and state record:
loaded before a run, handed to the rules, and returned (updated) by the run.
"""
from dataclasses import dataclass, asdict, replace
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.orm import Session

from profit_decisions.config import get_settings
from profit_decisions.models.shop import Shop
from profit_decisions.utils.helpers import currency_symbol_for
from profit_decisions.utils.logger import log

settings = get_settings()


@dataclass(frozen=True)
class ShopProfile:
    shop: str
    currency: str = "GBP"
    currency_symbol: str = "£"
    assumed_shipping_cost: float = 3.50
    min_impact_threshold: Optional[float] = None
    last_order_count: Optional[int] = None
    last_analyzed_at: Optional[datetime] = None

    @property
    def effective_min_impact(self) -> float:
        """Merchant minimum, never below the system floor"""
        configured = self.min_impact_threshold
        if configured is None:
            configured = settings.system_min_impact
        return max(configured, settings.system_min_impact)

    def with_run_state(self, order_count: int, analyzed_at: datetime) -> "ShopProfile":
        return replace(self, last_order_count=order_count, last_analyzed_at=analyzed_at)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["effective_min_impact"] = self.effective_min_impact
        if self.last_analyzed_at:
            data["last_analyzed_at"] = self.last_analyzed_at.isoformat()
        return data


def _to_profile(row: Shop) -> ShopProfile:
    return ShopProfile(
        shop=row.shop,
        currency=row.currency or settings.default_currency,
        currency_symbol=row.currency_symbol or currency_symbol_for(row.currency or settings.default_currency),
        assumed_shipping_cost=(
            row.assumed_shipping_cost if row.assumed_shipping_cost is not None
            else settings.default_shipping_cost
        ),
        min_impact_threshold=row.min_impact_threshold,
        last_order_count=row.last_order_count,
        last_analyzed_at=row.last_analyzed_at,
    )


class ShopSettingsService:
    """Read and write the per-shop configuration row"""

    def __init__(self, db: Session):
        self.db = db

    def _get_or_create(self, shop: str) -> Shop:
        row = self.db.query(Shop).filter_by(shop=shop).first()
        if row is None:
            row = Shop(
                shop=shop,
                currency=settings.default_currency,
                currency_symbol=currency_symbol_for(settings.default_currency),
                assumed_shipping_cost=settings.default_shipping_cost,
            )
            self.db.add(row)
            self.db.flush()
            log.info(f"Created default settings for {shop}")
        return row

    def get_profile(self, shop: str) -> ShopProfile:
        """Load the shop profile, creating default settings if absent"""
        return _to_profile(self._get_or_create(shop))

    def update_settings(
        self,
        shop: str,
        currency: Optional[str] = None,
        assumed_shipping_cost: Optional[float] = None,
        min_impact_threshold: Optional[float] = None,
    ) -> ShopProfile:
        """Apply merchant edits and commit"""
        row = self._get_or_create(shop)

        if currency:
            row.currency = currency.upper()
            row.currency_symbol = currency_symbol_for(row.currency)
        if assumed_shipping_cost is not None:
            if assumed_shipping_cost < 0:
                raise ValueError("Assumed shipping cost cannot be negative")
            row.assumed_shipping_cost = assumed_shipping_cost
        if min_impact_threshold is not None:
            if min_impact_threshold < 0:
                raise ValueError("Minimum impact threshold cannot be negative")
            row.min_impact_threshold = min_impact_threshold

        self.db.commit()
        log.info(f"Updated settings for {shop}")
        return _to_profile(row)

    def save_run_state(self, profile: ShopProfile) -> None:
        """Write a run's state back to the shop row (caller commits)"""
        row = self._get_or_create(profile.shop)
        row.last_order_count = profile.last_order_count
        row.last_analyzed_at = profile.last_analyzed_at
