"""
Detection rules.

Each rule looks at one run's data and proposes at most one decision:

  1. Best-seller loss       - high-volume variants that lose money
  2. Free-shipping trap     - orders bunching just under a shipping threshold
  3. Discount-refund hit    - discounted variants that then get refunded

Rules are pure functions of a RuleContext. Returning None is not a
failure; it means the store looks healthy on that dimension.

All impacts are a monthly rate: the loss (or saving) seen over the
analysis window is scaled by 30 / window_days.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from profit_decisions.schemas.orders import OrderRecord
from profit_decisions.services.profit_calculator import VariantProfitMetrics, get_top_selling_variants
from profit_decisions.services.shop_settings import ShopProfile
from profit_decisions.utils.helpers import format_currency


class DecisionType(str, Enum):
    BEST_SELLER_LOSS = "best_seller_loss"
    FREE_SHIPPING_TRAP = "free_shipping_trap"
    DISCOUNT_REFUND_HIT = "discount_refund_hit"


CONFIDENCE_HIGH = "high"
CONFIDENCE_MEDIUM = "medium"
CONFIDENCE_LOW = "low"

# Best-seller loss
BEST_SELLER_POOL_SIZE = 20
MIN_BEST_SELLER_UNITS = 10
LOW_MARGIN_PCT = 5

# Free-shipping trap
FREE_SHIPPING_THRESHOLDS = (30, 35, 40, 45, 50, 60, 75, 100)
NEAR_MISS_BAND = 5
MIN_PAID_ORDERS = 30
MIN_CLUSTER_PCT = 15

# Discount-refund hit
MIN_DISCOUNT_RATE = 20
MIN_REFUND_RATE = 15
MIN_DOUBLE_HIT_UNITS = 10


@dataclass(frozen=True)
class DecisionKey:
    """
    Stable identity of a finding across runs.

    Variant rules key on the variant id, the free-shipping rule on the
    threshold it tested; the type prefix keeps rules from colliding.
    """
    type: DecisionType
    subject: str

    @classmethod
    def for_variant(cls, decision_type: DecisionType, variant_id: str) -> "DecisionKey":
        return cls(decision_type, str(variant_id))

    @classmethod
    def for_threshold(cls, decision_type: DecisionType, threshold: float) -> "DecisionKey":
        subject = str(int(threshold)) if float(threshold).is_integer() else str(threshold)
        return cls(decision_type, subject)

    @classmethod
    def parse(cls, value: str) -> "DecisionKey":
        type_part, _, subject = value.partition(":")
        return cls(DecisionType(type_part), subject)

    def __str__(self) -> str:
        return f"{self.type.value}:{self.subject}"


@dataclass
class DecisionCandidate:
    type: DecisionType
    headline: str
    action_title: str
    reason: str
    impact: float  # currency/month, never negative
    confidence: str
    evidence: Dict
    decision_key: DecisionKey
    seasonal_context: Optional[str] = None
    sales_pace_context: Optional[str] = None
    run_rate_context: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "type": self.type.value,
            "decision_key": str(self.decision_key),
            "headline": self.headline,
            "action_title": self.action_title,
            "reason": self.reason,
            "impact": round(self.impact, 2),
            "confidence": self.confidence,
            "seasonal_context": self.seasonal_context,
            "sales_pace_context": self.sales_pace_context,
            "run_rate_context": self.run_rate_context,
            "evidence": self.evidence,
        }


@dataclass
class RuleContext:
    profile: ShopProfile
    orders: Sequence[OrderRecord]
    variant_metrics: Mapping[str, VariantProfitMetrics]
    window_days: int = 90

    @property
    def currency_symbol(self) -> str:
        return self.profile.currency_symbol

    @property
    def shipping_cost(self) -> float:
        return self.profile.assumed_shipping_cost

    def monthly(self, amount: float) -> float:
        """Scale an amount observed over the window to a 30-day rate"""
        return abs(amount) * 30 / self.window_days


def _variant_evidence(v: VariantProfitMetrics) -> Dict:
    return {
        "revenue": v.revenue,
        "cost": v.total_cost,
        "discounts": v.total_discounts,
        "refunds": v.refunded_revenue,
        "shipping": v.assumed_shipping,
        "net_profit": v.net_profit,
        "variant_id": v.variant_id,
        "sku": v.sku or "",
        "product_name": v.product_name,
        "units_sold": v.units_sold,
        "orders_count": v.orders_count,
        "margin_percent": v.margin_percent,
    }


def detect_best_seller_loss(ctx: RuleContext) -> Optional[DecisionCandidate]:
    """Popular variants that are actually losing money"""
    top_sellers = get_top_selling_variants(ctx.variant_metrics, BEST_SELLER_POOL_SIZE)

    losing = [
        v for v in top_sellers
        if v.cost_known
        and (v.net_profit < 0 or v.margin_percent < LOW_MARGIN_PCT)
        and v.units_sold >= MIN_BEST_SELLER_UNITS
    ]
    if not losing:
        return None

    # Severity weighted by volume
    worst = max(losing, key=lambda v: v.units_sold * abs(v.net_profit))

    monthly_loss = ctx.monthly(worst.net_profit)
    per_unit_loss = abs(worst.net_profit) / worst.units_sold
    sym = ctx.currency_symbol

    if worst.units_sold >= 20:
        confidence = CONFIDENCE_HIGH
    elif worst.units_sold >= MIN_BEST_SELLER_UNITS:
        confidence = CONFIDENCE_MEDIUM
    else:
        confidence = CONFIDENCE_LOW

    return DecisionCandidate(
        type=DecisionType.BEST_SELLER_LOSS,
        headline=f"{format_currency(monthly_loss, sym)}/month at risk",
        action_title=(
            f"Stop pushing {worst.display_name} "
            f"(or raise price by {format_currency(per_unit_loss, sym)} per unit)"
        ),
        reason=(
            f"Made {format_currency(worst.revenue, sym)} revenue but lost "
            f"{format_currency(worst.net_profit, sym)} after COGS ({format_currency(worst.total_cost, sym)}), "
            f"refunds ({format_currency(worst.refunded_revenue, sym)}), "
            f"and shipping ({format_currency(worst.assumed_shipping, sym)})"
        ),
        impact=monthly_loss,
        confidence=confidence,
        evidence=_variant_evidence(worst),
        decision_key=DecisionKey.for_variant(DecisionType.BEST_SELLER_LOSS, worst.variant_id),
    )


def near_miss_orders(orders: Sequence[OrderRecord], threshold: float) -> List[OrderRecord]:
    """Paid orders whose subtotal sits in the band just below `threshold`"""
    return [
        o for o in orders
        if o.is_paid and threshold - NEAR_MISS_BAND <= o.subtotal_price < threshold
    ]


def detect_free_shipping_trap(ctx: RuleContext) -> Optional[DecisionCandidate]:
    """Orders clustering just below a round-number free-shipping threshold"""
    paid_subtotals = sorted(o.subtotal_price for o in ctx.orders if o.is_paid)
    if len(paid_subtotals) < MIN_PAID_ORDERS:
        return None

    best_threshold = None
    best_cluster: List[float] = []
    for threshold in FREE_SHIPPING_THRESHOLDS:
        cluster = [v for v in paid_subtotals if threshold - NEAR_MISS_BAND <= v < threshold]
        if len(cluster) > len(best_cluster):
            best_threshold, best_cluster = threshold, cluster

    cluster_rate = len(best_cluster) / len(paid_subtotals) * 100
    if best_threshold is None or cluster_rate < MIN_CLUSTER_PCT:
        return None

    cluster_count = len(best_cluster)
    avg_gap = best_threshold - sum(best_cluster) / cluster_count
    period_savings = cluster_count * ctx.shipping_cost
    monthly_savings = ctx.monthly(period_savings)
    suggested = best_threshold - NEAR_MISS_BAND
    sym = ctx.currency_symbol

    if cluster_rate >= 25:
        confidence = CONFIDENCE_HIGH
    elif cluster_rate >= 18:
        confidence = CONFIDENCE_MEDIUM
    else:
        confidence = CONFIDENCE_LOW

    return DecisionCandidate(
        type=DecisionType.FREE_SHIPPING_TRAP,
        headline=f"{format_currency(monthly_savings, sym)}/month opportunity",
        action_title=f"Lower free shipping to {sym}{suggested:.0f} (from assumed {sym}{best_threshold})",
        reason=(
            f"{cluster_count} orders ({cluster_rate:.0f}%) are "
            f"{format_currency(avg_gap, sym)} below free shipping"
        ),
        impact=monthly_savings,
        confidence=confidence,
        evidence={
            "revenue": 0.0,
            "cost": 0.0,
            "discounts": 0.0,
            "refunds": 0.0,
            "shipping": period_savings,
            "net_profit": period_savings,
            "current_threshold": best_threshold,
            "suggested_threshold": suggested,
            "near_miss_count": cluster_count,
            "total_orders": len(paid_subtotals),
            "cluster_rate": cluster_rate,
            "avg_gap": avg_gap,
        },
        decision_key=DecisionKey.for_threshold(DecisionType.FREE_SHIPPING_TRAP, best_threshold),
    )


def detect_discount_refund_hit(ctx: RuleContext) -> Optional[DecisionCandidate]:
    """Variants sold at a discount that then get refunded, and lose money"""
    double_hit = [
        v for v in ctx.variant_metrics.values()
        if v.cost_known
        and v.discount_rate >= MIN_DISCOUNT_RATE
        and v.refund_rate >= MIN_REFUND_RATE
        and v.units_sold >= MIN_DOUBLE_HIT_UNITS
        and v.net_profit < 0
    ]
    if not double_hit:
        return None

    worst = min(double_hit, key=lambda v: v.net_profit)
    total_loss = abs(worst.net_profit)
    monthly_loss = ctx.monthly(total_loss)
    sym = ctx.currency_symbol

    if worst.units_sold >= 20:
        confidence = CONFIDENCE_HIGH
    elif worst.units_sold >= 15:
        confidence = CONFIDENCE_MEDIUM
    else:
        confidence = CONFIDENCE_LOW

    evidence = _variant_evidence(worst)
    evidence.update({
        "refunded_units": worst.refunded_units,
        "discount_rate": worst.discount_rate,
        "refund_rate": worst.refund_rate,
    })

    return DecisionCandidate(
        type=DecisionType.DISCOUNT_REFUND_HIT,
        headline=f"{format_currency(monthly_loss, sym)}/month at risk",
        action_title=(
            f"Stop discounting {worst.display_name} "
            f"({worst.discount_rate:.0f}% off + {worst.refund_rate:.0f}% refunded)"
        ),
        reason=(
            f"Discounted {worst.discount_rate:.0f}% on average, then {worst.refund_rate:.0f}% were refunded - "
            f"lost {format_currency(total_loss, sym)} total on {worst.units_sold} units "
            f"(discounts: {format_currency(worst.total_discounts, sym)}, "
            f"refunds: {format_currency(worst.refunded_revenue, sym)})"
        ),
        impact=monthly_loss,
        confidence=confidence,
        evidence=evidence,
        decision_key=DecisionKey.for_variant(DecisionType.DISCOUNT_REFUND_HIT, worst.variant_id),
    )


DetectionRule = Callable[[RuleContext], Optional[DecisionCandidate]]

# Evaluated in this order; results are combined and re-sorted by impact
DETECTION_RULES: Tuple[Tuple[str, DetectionRule], ...] = (
    (DecisionType.BEST_SELLER_LOSS.value, detect_best_seller_loss),
    (DecisionType.FREE_SHIPPING_TRAP.value, detect_free_shipping_trap),
    (DecisionType.DISCOUNT_REFUND_HIT.value, detect_discount_refund_hit),
)
