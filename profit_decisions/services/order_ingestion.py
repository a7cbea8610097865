"""
Order ingestion - reads the order window through the data cache.

Fetching from the store platform is not done here: an OrderSource
implementation is injected. On a cache miss (or a forced refresh) the
source is called and the result cached for `order_cache_hours`.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Sequence

from sqlalchemy.orm import Session

from profit_decisions.config import get_settings
from profit_decisions.schemas.orders import OrderRecord, VariantCostRecord
from profit_decisions.services.cost_service import CostService
from profit_decisions.services.data_cache import DataCacheService
from profit_decisions.utils.logger import log

settings = get_settings()

ORDERS_CACHE_KEY = "orders_window"
VARIANT_COSTS_CACHE_KEY = "variant_costs"


def cache_order_window(db: Session, shop: str, orders: Sequence[OrderRecord]) -> None:
    """Store the order window so scheduled jobs can reuse it without a fetch"""
    DataCacheService(db).set(
        shop, ORDERS_CACHE_KEY,
        [o.model_dump(mode="json") for o in orders],
        settings.order_cache_hours,
    )


class OrderSource(ABC):
    """Platform adapter that can fetch a shop's orders and variant costs"""

    @abstractmethod
    async def fetch_orders(self, shop: str, days: int) -> List[OrderRecord]:
        """Orders placed in the trailing `days`"""

    @abstractmethod
    async def fetch_variant_costs(self, shop: str) -> List[VariantCostRecord]:
        """Platform-reported unit costs"""


@dataclass
class IngestionResult:
    orders_count: int
    variants_count: int
    costs_imported: int
    costs_skipped: int
    cached: bool


class OrderIngestionService:
    def __init__(self, db: Session, source: OrderSource):
        self.db = db
        self.source = source
        self.cache = DataCacheService(db)

    async def get_orders(self, shop: str, force_refresh: bool = False) -> List[OrderRecord]:
        if not force_refresh:
            cached = self.cache.get(shop, ORDERS_CACHE_KEY)
            if cached is not None:
                return [OrderRecord.model_validate(o) for o in cached]

        orders = await self.source.fetch_orders(shop, settings.analysis_window_days)
        cache_order_window(self.db, shop, orders)
        log.info(f"Fetched {len(orders)} orders for {shop}")
        return orders

    async def get_variant_costs(self, shop: str, force_refresh: bool = False) -> List[VariantCostRecord]:
        if not force_refresh:
            cached = self.cache.get(shop, VARIANT_COSTS_CACHE_KEY)
            if cached is not None:
                return [VariantCostRecord.model_validate(c) for c in cached]

        costs = await self.source.fetch_variant_costs(shop)
        self.cache.set(
            shop, VARIANT_COSTS_CACHE_KEY,
            [c.model_dump(mode="json") for c in costs],
            settings.order_cache_hours,
        )
        return costs

    async def ingest(self, shop: str, force_refresh: bool = False) -> IngestionResult:
        """Load orders and costs, syncing platform costs into the cost table"""
        cached = not force_refresh and self.cache.get(shop, ORDERS_CACHE_KEY) is not None

        orders = await self.get_orders(shop, force_refresh)
        variant_costs = await self.get_variant_costs(shop, force_refresh)
        synced = CostService(self.db).sync_platform_costs(shop, variant_costs)

        return IngestionResult(
            orders_count=len(orders),
            variants_count=len(variant_costs),
            costs_imported=synced["imported"],
            costs_skipped=synced["skipped"],
            cached=cached,
        )

    def get_cached_orders(self, shop: str) -> List[OrderRecord]:
        """Orders from the cache only; empty when nothing is cached"""
        cached = self.cache.get(shop, ORDERS_CACHE_KEY)
        return [OrderRecord.model_validate(o) for o in cached] if cached else []
