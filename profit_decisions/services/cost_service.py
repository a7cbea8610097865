"""
Variant cost service.

Unit costs come from three places, in increasing order of trust:
platform-reported costs, bulk imports, and costs typed in by the merchant.
A write from a lower-precedence source never replaces a higher one.
"""
import math
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from profit_decisions.models.variant_cost import (
    VariantCost,
    COST_SOURCE_PLATFORM,
    COST_SOURCE_IMPORT,
    COST_SOURCE_MANUAL,
)
from profit_decisions.schemas.orders import VariantCostRecord
from profit_decisions.utils.logger import log


class CostService:
    def __init__(self, db: Session):
        self.db = db

    def get_cost_lookup(self, shop: str) -> Dict[str, float]:
        """
        variant_id -> unit cost for every variant with a known cost.
        Variants missing from the mapping have an unknown cost.
        """
        rows = self.db.query(VariantCost.variant_id, VariantCost.unit_cost).filter(
            VariantCost.shop == shop,
        ).all()
        return {variant_id: unit_cost for variant_id, unit_cost in rows}

    def get_variant_cost(self, shop: str, variant_id: str) -> Optional[float]:
        row = self.db.query(VariantCost).filter_by(shop=shop, variant_id=variant_id).first()
        return row.unit_cost if row else None

    def list_costs(self, shop: str) -> List[Dict]:
        rows = self.db.query(VariantCost).filter_by(shop=shop).order_by(VariantCost.variant_id).all()
        return [
            {
                "variant_id": r.variant_id,
                "sku": r.sku,
                "unit_cost": r.unit_cost,
                "source": r.source,
                "updated_at": r.updated_at.isoformat() if r.updated_at else None,
            }
            for r in rows
        ]

    def _upsert(self, shop: str, variant_id: str, unit_cost: float, source: str,
                sku: Optional[str] = None) -> bool:
        """Insert or update one cost; returns False when precedence blocks the write"""
        row = self.db.query(VariantCost).filter_by(shop=shop, variant_id=variant_id).first()
        if row is None:
            self.db.add(VariantCost(
                shop=shop, variant_id=variant_id, sku=sku,
                unit_cost=unit_cost, source=source,
            ))
            self.db.flush()
            return True

        if not row.can_be_replaced_by(source):
            return False

        row.unit_cost = unit_cost
        row.source = source
        row.updated_at = datetime.utcnow()
        if sku:
            row.sku = sku
        return True

    def set_manual_cost(self, shop: str, variant_id: str, unit_cost: float) -> None:
        """Merchant-entered cost; always wins"""
        if not math.isfinite(unit_cost):
            raise ValueError("Unit cost must be a finite number")
        if unit_cost < 0:
            raise ValueError("Unit cost cannot be negative")
        try:
            self._upsert(shop, variant_id, unit_cost, COST_SOURCE_MANUAL)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        log.info(f"Set manual cost for {shop} variant {variant_id}: {unit_cost:.2f}")

    def bulk_import_costs(self, shop: str, rows: Iterable[Dict]) -> Dict:
        """
        Import parsed rows of {variant_id, unit_cost[, sku]}.

        Bad rows are collected as errors instead of aborting the import.
        Rows that would overwrite a manual cost are counted as skipped.
        """
        imported = 0
        skipped = 0
        errors: List[str] = []

        try:
            for index, row in enumerate(rows, 1):
                variant_id = str(row.get("variant_id") or "").strip()
                raw_cost = row.get("unit_cost")
                if not variant_id:
                    errors.append(f"Row {index}: missing variant_id")
                    continue
                try:
                    unit_cost = float(raw_cost)
                except (TypeError, ValueError):
                    unit_cost = math.nan
                if not math.isfinite(unit_cost):
                    errors.append(f"Row {index}: invalid cost {raw_cost!r} for variant {variant_id}")
                    continue
                if unit_cost < 0:
                    errors.append(f"Row {index}: negative cost for variant {variant_id}")
                    continue

                if self._upsert(shop, variant_id, unit_cost, COST_SOURCE_IMPORT, sku=row.get("sku")):
                    imported += 1
                else:
                    skipped += 1

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        log.info(f"Imported {imported} costs for {shop} ({skipped} skipped, {len(errors)} errors)")
        return {"imported": imported, "skipped": skipped, "errors": errors}

    def sync_platform_costs(self, shop: str, variant_costs: Iterable[VariantCostRecord]) -> Dict:
        """Store platform-reported costs; empty or zero costs are not imported"""
        imported = 0
        skipped = 0

        try:
            for variant in variant_costs:
                if not variant.cost or not math.isfinite(variant.cost):
                    skipped += 1
                    continue
                if self._upsert(shop, variant.variant_id, variant.cost, COST_SOURCE_PLATFORM, sku=variant.sku):
                    imported += 1
                else:
                    skipped += 1

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        log.info(f"Synced platform costs for {shop}: {imported} imported, {skipped} skipped")
        return {"imported": imported, "skipped": skipped}
