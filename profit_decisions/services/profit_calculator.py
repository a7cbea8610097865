"""
Profit Calculator

Turns raw orders into per-order and per-variant profit figures:
- Revenue after line-level discounts
- Cost of goods (only where a unit cost is known)
- Assumed shipping, shared evenly across an order's line items
- Discounts and refunds

A variant without a known cost is not treated as free. Its cost simply
doesn't accumulate, and `cost_known` stays False so cost-dependent rules
can leave it out.
"""
from dataclasses import dataclass, asdict
from typing import Dict, List, Mapping, Optional, Sequence

from profit_decisions.schemas.orders import OrderRecord
from profit_decisions.utils.helpers import safe_divide
from profit_decisions.utils.logger import log


CostLookup = Mapping[str, float]


@dataclass
class VariantProfitMetrics:
    variant_id: str
    sku: Optional[str] = None
    product_name: str = ""

    # Volume
    units_sold: int = 0
    orders_count: int = 0

    # Revenue
    revenue: float = 0.0
    average_price: float = 0.0

    # Cost
    unit_cost: Optional[float] = None
    cost_known: bool = False
    total_cost: float = 0.0
    assumed_shipping: float = 0.0

    # Discounts (% of revenue)
    total_discounts: float = 0.0
    discount_rate: float = 0.0

    # Refunds (% of revenue)
    refunded_revenue: float = 0.0
    refunded_units: int = 0
    refund_rate: float = 0.0

    # Profit
    gross_profit: float = 0.0  # revenue - cost
    net_profit: float = 0.0  # revenue - cost - shipping - discounts - refunds
    margin_percent: float = 0.0

    @property
    def display_name(self) -> str:
        """Product name without the " - Variant" suffix"""
        return self.product_name.split(" - ")[0] if self.product_name else (self.sku or self.variant_id)

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class OrderProfitMetrics:
    order_id: str
    order_name: str
    created_at: str

    revenue: float
    cost: float
    shipping: float
    discounts: float
    refunds: float

    gross_profit: float
    net_profit: float
    margin_percent: float


def calculate_order_profit(
    order: OrderRecord,
    cost_lookup: CostLookup,
    assumed_shipping_cost: float = 3.50,
) -> OrderProfitMetrics:
    """
    Profit for a single order.

    Uses the order's gross total as revenue; refunds are the sum of refund
    totals and are subtracted once.
    """
    revenue = order.total_price
    discounts = order.total_discounts
    refunds = sum(refund.total_refunded for refund in order.refunds)

    total_cost = 0.0
    for item in order.line_items:
        if not item.variant_id:
            continue
        unit_cost = cost_lookup.get(item.variant_id)
        if unit_cost is not None:
            total_cost += unit_cost * item.quantity

    shipping = assumed_shipping_cost
    net_profit = revenue - total_cost - shipping - discounts - refunds

    return OrderProfitMetrics(
        order_id=order.id,
        order_name=order.name,
        created_at=order.created_at.isoformat(),
        revenue=revenue,
        cost=total_cost,
        shipping=shipping,
        discounts=discounts,
        refunds=refunds,
        gross_profit=revenue - total_cost,
        net_profit=net_profit,
        margin_percent=safe_divide(net_profit, revenue) * 100,
    )


def calculate_variant_profits(
    orders: Sequence[OrderRecord],
    cost_lookup: CostLookup,
    assumed_shipping_cost: float = 3.50,
) -> Dict[str, VariantProfitMetrics]:
    """
    Profit metrics for every variant that appears in at least one line item.

    Pure function of its inputs.
    """
    variant_metrics: Dict[str, VariantProfitMetrics] = {}
    skipped = 0

    for order in orders:
        # Refunds by line item
        refunds_by_line_item: Dict[str, List[float]] = {}
        for refund in order.refunds:
            for refund_line in refund.refund_line_items:
                totals = refunds_by_line_item.setdefault(refund_line.line_item_id, [0.0, 0])
                totals[0] += refund_line.subtotal
                totals[1] += refund_line.quantity

        line_items_count = len(order.line_items)

        for item in order.line_items:
            if not item.variant_id:
                skipped += 1
                continue

            metrics = variant_metrics.get(item.variant_id)
            if metrics is None:
                unit_cost = cost_lookup.get(item.variant_id)
                metrics = VariantProfitMetrics(
                    variant_id=item.variant_id,
                    sku=item.sku,
                    product_name=item.name,
                    unit_cost=unit_cost,
                    cost_known=unit_cost is not None,
                )
                variant_metrics[item.variant_id] = metrics

            refunded_revenue, refunded_units = refunds_by_line_item.get(item.id, (0.0, 0))

            metrics.units_sold += item.quantity
            metrics.orders_count += 1
            metrics.revenue += item.discounted_price * item.quantity
            metrics.total_discounts += (item.price - item.discounted_price) * item.quantity
            metrics.refunded_revenue += refunded_revenue
            metrics.refunded_units += refunded_units

            if metrics.cost_known:
                metrics.total_cost += metrics.unit_cost * item.quantity

            # Shipping is per order, shared across its line items
            metrics.assumed_shipping += assumed_shipping_cost / line_items_count

    for metrics in variant_metrics.values():
        metrics.average_price = safe_divide(metrics.revenue, metrics.units_sold)
        metrics.discount_rate = safe_divide(metrics.total_discounts, metrics.revenue) * 100
        metrics.refund_rate = safe_divide(metrics.refunded_revenue, metrics.revenue) * 100
        metrics.gross_profit = metrics.revenue - metrics.total_cost
        metrics.net_profit = (
            metrics.revenue
            - metrics.total_cost
            - metrics.assumed_shipping
            - metrics.total_discounts
            - metrics.refunded_revenue
        )
        metrics.margin_percent = safe_divide(metrics.net_profit, metrics.revenue) * 100

    if skipped:
        log.debug(f"Skipped {skipped} line items without a variant reference")

    return variant_metrics


def get_top_selling_variants(
    variant_metrics: Mapping[str, VariantProfitMetrics],
    limit: int = 10,
) -> List[VariantProfitMetrics]:
    """Top variants by units sold"""
    return sorted(variant_metrics.values(), key=lambda v: v.units_sold, reverse=True)[:limit]


def get_losing_variants(variant_metrics: Mapping[str, VariantProfitMetrics]) -> List[VariantProfitMetrics]:
    """Variants with negative net profit, biggest loss first"""
    return sorted(
        (v for v in variant_metrics.values() if v.net_profit < 0),
        key=lambda v: v.net_profit,
    )


def get_high_refund_variants(
    variant_metrics: Mapping[str, VariantProfitMetrics],
    min_refund_rate: float = 20,
) -> List[VariantProfitMetrics]:
    return sorted(
        (v for v in variant_metrics.values() if v.refund_rate >= min_refund_rate and v.units_sold >= 5),
        key=lambda v: v.refund_rate,
        reverse=True,
    )


def get_high_discount_variants(
    variant_metrics: Mapping[str, VariantProfitMetrics],
    min_discount_rate: float = 30,
) -> List[VariantProfitMetrics]:
    return sorted(
        (v for v in variant_metrics.values() if v.discount_rate >= min_discount_rate and v.units_sold >= 5),
        key=lambda v: v.discount_rate,
        reverse=True,
    )
