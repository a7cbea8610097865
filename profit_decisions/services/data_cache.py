"""
Data cache service - expiring per-shop payloads keyed by name.

Used to avoid refetching the order window from the platform on every
refresh. Expired rows are deleted when read.
"""
from datetime import datetime, timedelta
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from profit_decisions.models.data_cache import DataCache
from profit_decisions.utils.logger import log


class DataCacheService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, shop: str, cache_key: str, now: Optional[datetime] = None) -> Optional[Any]:
        """Cached payload, or None when missing or expired"""
        entry = self.db.query(DataCache).filter_by(shop=shop, cache_key=cache_key).first()
        if entry is None:
            return None

        if (now or datetime.utcnow()) > entry.expires_at:
            self.db.delete(entry)
            self.db.commit()
            return None

        return entry.data_json

    def set(self, shop: str, cache_key: str, data: Any, expiry_hours: int = 24,
            now: Optional[datetime] = None) -> None:
        expires_at = (now or datetime.utcnow()) + timedelta(hours=expiry_hours)

        entry = self.db.query(DataCache).filter_by(shop=shop, cache_key=cache_key).first()
        if entry is None:
            self.db.add(DataCache(shop=shop, cache_key=cache_key, data_json=data, expires_at=expires_at))
        else:
            entry.data_json = data
            entry.expires_at = expires_at
        self.db.commit()

    def clear_expired(self, now: Optional[datetime] = None) -> int:
        """Delete every expired entry (all shops)"""
        deleted = self.db.query(DataCache).filter(
            DataCache.expires_at < (now or datetime.utcnow()),
        ).delete(synchronize_session=False)
        self.db.commit()
        if deleted:
            log.info(f"Cleared {deleted} expired cache entries")
        return deleted

    def clear_shop(self, shop: str) -> int:
        deleted = self.db.query(DataCache).filter(DataCache.shop == shop).delete(synchronize_session=False)
        self.db.commit()
        return deleted

    def shops_with_key(self, cache_key: str) -> List[str]:
        rows = self.db.query(DataCache.shop).filter(DataCache.cache_key == cache_key).distinct().all()
        return [shop for (shop,) in rows]
