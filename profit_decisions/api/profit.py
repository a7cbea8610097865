"""
Profit Report Endpoints

Answers "which products are actually making me money?" for the order
window supplied, using the shop's known costs and shipping assumption.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from profit_decisions.models.base import get_db
from profit_decisions.schemas.orders import OrderRecord
from profit_decisions.services.cost_service import CostService
from profit_decisions.services.profit_calculator import (
    calculate_order_profit,
    calculate_variant_profits,
    get_top_selling_variants,
    get_losing_variants,
    get_high_refund_variants,
    get_high_discount_variants,
)
from profit_decisions.services.shop_settings import ShopSettingsService
from profit_decisions.utils.helpers import safe_divide
from profit_decisions.utils.logger import log

router = APIRouter(prefix="/profit", tags=["profit"])


class ProfitReportRequest(BaseModel):
    """Orders to analyse for one shop"""
    shop: str
    orders: List[OrderRecord] = []


@router.post("/report")
async def get_profit_report(
    request: ProfitReportRequest,
    limit: int = Query(10, ge=1, le=50, description="Variants per list"),
    db = Depends(get_db)
):
    """
    Profit summary for the supplied orders

    Shows:
    - Order-level revenue, costs and net profit
    - Best sellers and the variants losing money
    - Variants with high refund or discount rates
    - How many variants still have no known cost
    """
    try:
        profile = ShopSettingsService(db).get_profile(request.shop)
        cost_lookup = CostService(db).get_cost_lookup(request.shop)

        order_profits = [
            calculate_order_profit(order, cost_lookup, profile.assumed_shipping_cost)
            for order in request.orders
        ]
        variants = calculate_variant_profits(request.orders, cost_lookup, profile.assumed_shipping_cost)

        revenue = sum(o.revenue for o in order_profits)
        net_profit = sum(o.net_profit for o in order_profits)

        return {
            "shop": request.shop,
            "currency": profile.currency,
            "summary": {
                "orders": len(order_profits),
                "revenue": round(revenue, 2),
                "cost": round(sum(o.cost for o in order_profits), 2),
                "shipping": round(sum(o.shipping for o in order_profits), 2),
                "discounts": round(sum(o.discounts for o in order_profits), 2),
                "refunds": round(sum(o.refunds for o in order_profits), 2),
                "net_profit": round(net_profit, 2),
                "margin_percent": round(safe_divide(net_profit, revenue) * 100, 1),
                "variants": len(variants),
                "variants_missing_cost": sum(1 for v in variants.values() if not v.cost_known),
            },
            "top_sellers": [v.to_dict() for v in get_top_selling_variants(variants, limit)],
            "losing": [v.to_dict() for v in get_losing_variants(variants)[:limit]],
            "high_refund": [v.to_dict() for v in get_high_refund_variants(variants)[:limit]],
            "high_discount": [v.to_dict() for v in get_high_discount_variants(variants)[:limit]],
        }
    except Exception as e:
        log.error(f"Error building profit report: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
