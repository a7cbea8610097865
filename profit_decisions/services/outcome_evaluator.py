"""
Outcome Evaluator - grades decisions the merchant acted on.

Lifecycle of an outcome:
  1. mark_done()           - baseline copied from the decision's evidence
  2. tracking              - nothing happens until the window has elapsed
  3. evaluate_outcomes()   - post-window metrics, verdict, evaluated_at

evaluated_at is written once. Re-running the pass before a window elapses,
or after an outcome was graded, changes nothing.
"""
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Dict, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from profit_decisions.config import get_settings
from profit_decisions.models.decision import Decision, DecisionOutcome, DECISION_STATUS_DONE
from profit_decisions.schemas.orders import OrderRecord
from profit_decisions.services.cost_service import CostService
from profit_decisions.services.decision_rules import DecisionType, near_miss_orders
from profit_decisions.services.profit_calculator import CostLookup, calculate_variant_profits
from profit_decisions.services.shop_settings import ShopSettingsService
from profit_decisions.utils.helpers import safe_divide
from profit_decisions.utils.logger import log

settings = get_settings()

OUTCOME_IMPROVED = "improved"
OUTCOME_NO_CHANGE = "no_change"
OUTCOME_WORSENED = "worsened"

# Deltas smaller than these are noise
PROFIT_TOLERANCE = 0.5  # currency per order
REFUND_RATE_TOLERANCE = 2  # percentage points
SHIPPING_TOLERANCE = 0.5  # currency per order


@dataclass
class OutcomeMetrics:
    net_profit_per_order: float = 0.0
    refund_rate: float = 0.0
    shipping_loss_per_order: float = 0.0
    orders_count: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Mapping]) -> "OutcomeMetrics":
        data = data or {}
        return cls(
            net_profit_per_order=float(data.get("net_profit_per_order") or 0),
            refund_rate=float(data.get("refund_rate") or 0),
            shipping_loss_per_order=float(data.get("shipping_loss_per_order") or 0),
            orders_count=int(data.get("orders_count") or 0),
        )


def evaluate_outcome_status(baseline: OutcomeMetrics, post: OutcomeMetrics) -> str:
    """
    Two of three signals moving the same way decide the verdict:
    profit per order (up is good), refund rate and shipping loss (down is good).
    """
    profit_delta = post.net_profit_per_order - baseline.net_profit_per_order
    refund_delta = baseline.refund_rate - post.refund_rate
    shipping_delta = baseline.shipping_loss_per_order - post.shipping_loss_per_order

    improvements = sum([
        profit_delta >= PROFIT_TOLERANCE,
        refund_delta >= REFUND_RATE_TOLERANCE,
        shipping_delta >= SHIPPING_TOLERANCE,
    ])
    worsenings = sum([
        profit_delta <= -PROFIT_TOLERANCE,
        refund_delta <= -REFUND_RATE_TOLERANCE,
        shipping_delta <= -SHIPPING_TOLERANCE,
    ])

    if improvements >= 2:
        return OUTCOME_IMPROVED
    if worsenings >= 2:
        return OUTCOME_WORSENED
    return OUTCOME_NO_CHANGE


def filter_orders_by_date(orders: Sequence[OrderRecord], start: datetime, end: datetime) -> List[OrderRecord]:
    return [o for o in orders if start <= o.created_at <= end]


def calculate_order_cohort_metrics(
    orders: Sequence[OrderRecord],
    cost_lookup: CostLookup,
    assumed_shipping_cost: float,
) -> Optional[OutcomeMetrics]:
    """Whole-order metrics for a cohort (used for the free-shipping rule)"""
    if not orders:
        return None

    revenue = discounts = refunds = cost = shipping = 0.0
    for order in orders:
        revenue += order.total_price
        discounts += order.total_discounts
        shipping += assumed_shipping_cost
        refunds += sum(r.total_refunded for r in order.refunds)
        for item in order.line_items:
            if not item.variant_id:
                continue
            unit_cost = cost_lookup.get(item.variant_id)
            if unit_cost is not None:
                cost += unit_cost * item.quantity

    net_profit = revenue - cost - shipping - discounts - refunds
    return OutcomeMetrics(
        net_profit_per_order=net_profit / len(orders),
        refund_rate=safe_divide(refunds, revenue) * 100,
        shipping_loss_per_order=shipping / len(orders),
        orders_count=len(orders),
    )


def calculate_variant_scope_metrics(
    orders: Sequence[OrderRecord],
    variant_id: str,
    cost_lookup: CostLookup,
    assumed_shipping_cost: float,
) -> Optional[OutcomeMetrics]:
    metrics = calculate_variant_profits(orders, cost_lookup, assumed_shipping_cost).get(variant_id)
    if metrics is None or metrics.orders_count == 0:
        return None

    return OutcomeMetrics(
        net_profit_per_order=metrics.net_profit / metrics.orders_count,
        refund_rate=metrics.refund_rate,
        shipping_loss_per_order=metrics.assumed_shipping / metrics.orders_count,
        orders_count=metrics.orders_count,
    )


def compute_outcome_metrics(
    decision_type: str,
    evidence: Mapping,
    orders: Sequence[OrderRecord],
    cost_lookup: CostLookup,
    assumed_shipping_cost: float,
) -> Optional[OutcomeMetrics]:
    """Metrics scoped to what the decision targeted: a variant or a threshold cohort"""
    if decision_type == DecisionType.FREE_SHIPPING_TRAP.value:
        threshold = evidence.get("current_threshold")
        if not threshold:
            return None
        return calculate_order_cohort_metrics(
            near_miss_orders(orders, float(threshold)), cost_lookup, assumed_shipping_cost,
        )

    variant_id = evidence.get("variant_id")
    if not variant_id:
        return None
    return calculate_variant_scope_metrics(orders, variant_id, cost_lookup, assumed_shipping_cost)


def build_outcome_baseline_metrics(
    decision_type: str,
    evidence: Mapping,
    orders: Sequence[OrderRecord],
    cost_lookup: CostLookup,
    assumed_shipping_cost: float,
) -> Optional[OutcomeMetrics]:
    """
    Baseline for a new decision.

    Variant rules already carry their figures in the evidence; the
    free-shipping rule is measured over its near-miss cohort.
    """
    if decision_type != DecisionType.FREE_SHIPPING_TRAP.value:
        orders_count = int(evidence.get("orders_count") or 0)
        if orders_count > 0:
            revenue = float(evidence.get("revenue") or 0)
            return OutcomeMetrics(
                net_profit_per_order=float(evidence.get("net_profit") or 0) / orders_count,
                refund_rate=safe_divide(float(evidence.get("refunds") or 0), revenue) * 100,
                shipping_loss_per_order=float(evidence.get("shipping") or 0) / orders_count,
                orders_count=orders_count,
            )

    return compute_outcome_metrics(decision_type, evidence, orders, cost_lookup, assumed_shipping_cost)


class OutcomeEvaluator:
    """Scans done decisions with un-graded outcomes and grades those whose window has elapsed"""

    def __init__(self, db: Session):
        self.db = db

    def evaluate_outcomes(
        self,
        shop: str,
        orders: Sequence[OrderRecord],
        now: Optional[datetime] = None,
    ) -> int:
        """
        Grade every outcome whose window has elapsed.
        Returns the number of outcomes evaluated in this pass.
        """
        now = now or datetime.utcnow()

        pending = self.db.query(Decision, DecisionOutcome).join(
            DecisionOutcome, DecisionOutcome.decision_id == Decision.id,
        ).filter(
            Decision.shop == shop,
            Decision.status == DECISION_STATUS_DONE,
            Decision.completed_at.isnot(None),
            DecisionOutcome.evaluated_at.is_(None),
        ).all()

        if not pending:
            return 0

        profile = ShopSettingsService(self.db).get_profile(shop)
        cost_lookup = CostService(self.db).get_cost_lookup(shop)

        updated = 0
        try:
            for decision, outcome in pending:
                window_days = outcome.window_days or settings.outcome_window_days
                window_end = decision.completed_at + timedelta(days=window_days)
                if now < window_end:
                    continue

                window_orders = filter_orders_by_date(orders, decision.completed_at, window_end)
                post = compute_outcome_metrics(
                    decision.type, decision.data_json or {}, window_orders,
                    cost_lookup, profile.assumed_shipping_cost,
                )

                if post is None or post.orders_count < settings.min_outcome_orders:
                    # Too little post-window evidence to grade
                    status = OUTCOME_NO_CHANGE
                else:
                    status = evaluate_outcome_status(OutcomeMetrics.from_dict(outcome.baseline_metrics), post)

                outcome.post_metrics = post.to_dict() if post else None
                outcome.outcome_status = status
                outcome.evaluated_at = now
                updated += 1

                log.debug(f"Outcome for decision {decision.id} ({decision.type}): {status}")

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        log.info(f"Evaluated {updated} decision outcomes for {shop}")
        return updated
