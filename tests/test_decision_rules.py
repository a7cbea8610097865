"""
Detection rule tests.

Each rule is exercised directly through a RuleContext, including the
reference scenarios:
  - 5 small orders: nothing fires
  - 40 orders of one variant losing 40 in total: best-seller loss, ~13.33/month, high
  - 35 paid orders, 12 of them just under 50: free-shipping trap, ~34%, high
"""
import pytest

from profit_decisions.services.decision_rules import (
    CONFIDENCE_HIGH,
    CONFIDENCE_MEDIUM,
    DETECTION_RULES,
    DecisionKey,
    DecisionType,
    RuleContext,
    detect_best_seller_loss,
    detect_discount_refund_hit,
    detect_free_shipping_trap,
)
from profit_decisions.services.profit_calculator import calculate_variant_profits
from profit_decisions.services.shop_settings import ShopProfile


def _ctx(orders, costs=None, shipping=3.5):
    profile = ShopProfile(shop="test.myshopify.com", assumed_shipping_cost=shipping)
    metrics = calculate_variant_profits(orders, costs or {}, shipping)
    return RuleContext(profile=profile, orders=orders, variant_metrics=metrics, window_days=90)


def _single_variant_orders(make_order, count, price, quantity=1, **line):
    return [
        make_order(lines=[dict({
            "name": "Linen Shirt - Blue / M",
            "quantity": quantity,
            "price": price,
            "variant_id": "v-shirt",
            "sku": "SHIRT-BLU-M",
        }, **line)])
        for _ in range(count)
    ]


# ────────────────────────────────────────────
# BEST-SELLER LOSS
# ────────────────────────────────────────────


class TestBestSellerLoss:

    def test_five_orders_is_quiet(self, make_order):
        orders = _single_variant_orders(make_order, 5, 100.0)
        ctx = _ctx(orders, {"v-shirt": 90.0})

        for _, rule in DETECTION_RULES:
            assert rule(ctx) is None

    def test_forty_order_reference_scenario(self, make_order):
        # revenue 4000, cost 3900, shipping 140 -> net -40, margin -1%
        orders = _single_variant_orders(make_order, 40, 100.0)
        ctx = _ctx(orders, {"v-shirt": 97.5})

        candidate = detect_best_seller_loss(ctx)

        assert candidate is not None
        assert candidate.type == DecisionType.BEST_SELLER_LOSS
        assert candidate.impact == pytest.approx(40 * 30 / 90, abs=0.01)
        assert candidate.confidence == CONFIDENCE_HIGH
        assert str(candidate.decision_key) == "best_seller_loss:v-shirt"
        assert candidate.evidence["net_profit"] == pytest.approx(-40.0)
        assert candidate.evidence["margin_percent"] == pytest.approx(-1.0)
        assert candidate.headline == "£13.33/month at risk"
        assert "Stop pushing Linen Shirt" in candidate.action_title
        assert "£1.00 per unit" in candidate.action_title

    def test_thin_margin_fires_even_when_profitable(self, make_order):
        # 100 - 93 - 3.5 = 3.5 per unit -> 3.5% margin
        orders = _single_variant_orders(make_order, 20, 100.0)
        candidate = detect_best_seller_loss(_ctx(orders, {"v-shirt": 93.0}))

        assert candidate is not None
        assert candidate.impact > 0

    def test_healthy_margin_is_quiet(self, make_order):
        orders = _single_variant_orders(make_order, 40, 100.0)
        assert detect_best_seller_loss(_ctx(orders, {"v-shirt": 50.0})) is None

    def test_unknown_cost_is_never_reported(self, make_order):
        orders = _single_variant_orders(make_order, 40, 1.0)
        assert detect_best_seller_loss(_ctx(orders)) is None

    def test_medium_confidence_below_twenty_units(self, make_order):
        orders = _single_variant_orders(make_order, 12, 100.0)
        candidate = detect_best_seller_loss(_ctx(orders, {"v-shirt": 110.0}))

        assert candidate.confidence == CONFIDENCE_MEDIUM

    def test_worst_is_volume_weighted(self, make_order):
        orders = []
        # Small loss on many units
        orders += [
            make_order(lines=[{"name": "Mug", "quantity": 5, "price": 10.0, "variant_id": "mug"}])
            for _ in range(10)
        ]
        # Big per-unit loss, low volume
        orders += [
            make_order(lines=[{"name": "Lamp", "quantity": 1, "price": 100.0, "variant_id": "lamp"}])
            for _ in range(10)
        ]
        ctx = _ctx(orders, {"mug": 11.0, "lamp": 105.0}, shipping=0.0)

        # mug: 50 units x -50 total; lamp: 10 units x -50 total
        assert detect_best_seller_loss(ctx).evidence["variant_id"] == "mug"


# ────────────────────────────────────────────
# FREE-SHIPPING TRAP
# ────────────────────────────────────────────


def _subtotal_orders(make_order, subtotals, financial_status="paid"):
    return [make_order(subtotal=s, financial_status=financial_status) for s in subtotals]


class TestFreeShippingTrap:

    def test_thirty_five_order_reference_scenario(self, make_order):
        near_miss = [46.0, 47.0, 48.0, 49.0] * 3
        orders = _subtotal_orders(make_order, near_miss + [120.0] * 23)

        candidate = detect_free_shipping_trap(_ctx(orders))

        assert candidate is not None
        assert candidate.confidence == CONFIDENCE_HIGH
        assert candidate.evidence["cluster_rate"] == pytest.approx(12 / 35 * 100)
        assert candidate.evidence["current_threshold"] == 50
        assert candidate.evidence["suggested_threshold"] == 45
        assert candidate.evidence["near_miss_count"] == 12
        assert candidate.evidence["total_orders"] == 35
        assert candidate.evidence["avg_gap"] == pytest.approx(2.5)
        # 12 orders x 3.50 over 90 days -> 14.00 a month
        assert candidate.impact == pytest.approx(14.0)
        assert str(candidate.decision_key) == "free_shipping_trap:50"
        assert candidate.reason == "12 orders (34%) are £2.50 below free shipping"

    def test_needs_thirty_paid_orders(self, make_order):
        orders = _subtotal_orders(make_order, [47.0] * 12 + [120.0] * 13)
        orders += _subtotal_orders(make_order, [120.0] * 10, financial_status="pending")

        assert detect_free_shipping_trap(_ctx(orders)) is None

    def test_unpaid_orders_not_in_cluster(self, make_order):
        orders = _subtotal_orders(make_order, [120.0] * 35)
        orders += _subtotal_orders(make_order, [47.0] * 20, financial_status="refunded")

        assert detect_free_shipping_trap(_ctx(orders)) is None

    def test_small_cluster_is_quiet(self, make_order):
        orders = _subtotal_orders(make_order, [47.0] * 4 + [120.0] * 31)
        assert detect_free_shipping_trap(_ctx(orders)) is None

    def test_band_excludes_threshold_itself(self, make_order):
        orders = _subtotal_orders(make_order, [50.0] * 12 + [120.0] * 23)
        assert detect_free_shipping_trap(_ctx(orders)) is None

    def test_tie_goes_to_lowest_threshold(self, make_order):
        orders = _subtotal_orders(make_order, [27.0] * 6 + [47.0] * 6 + [120.0] * 23)
        candidate = detect_free_shipping_trap(_ctx(orders))

        assert candidate.evidence["current_threshold"] == 30


# ────────────────────────────────────────────
# DISCOUNT-REFUND HIT
# ────────────────────────────────────────────


class TestDiscountRefundHit:

    @staticmethod
    def _orders(make_order, refunded=4, count=20):
        orders = []
        for index in range(count):
            line = {
                "name": "Silk Scarf - Green",
                "quantity": 1,
                "price": 50.0,
                "discounted_price": 35.0,
                "variant_id": "v-scarf",
            }
            if index < refunded:
                line.update(refund_quantity=1, refund_subtotal=35.0)
            orders.append(make_order(lines=[line]))
        return orders

    def test_discounted_and_refunded_variant(self, make_order):
        # revenue 700, cost 400, shipping 70, discounts 300, refunds 140 -> -210
        ctx = _ctx(self._orders(make_order), {"v-scarf": 20.0})

        candidate = detect_discount_refund_hit(ctx)

        assert candidate is not None
        assert candidate.type == DecisionType.DISCOUNT_REFUND_HIT
        assert candidate.evidence["net_profit"] == pytest.approx(-210.0)
        assert candidate.evidence["refunded_units"] == 4
        assert candidate.evidence["refund_rate"] == pytest.approx(20.0)
        assert candidate.impact == pytest.approx(70.0)
        assert candidate.confidence == CONFIDENCE_HIGH
        assert "Stop discounting Silk Scarf" in candidate.action_title

    def test_low_refund_rate_is_quiet(self, make_order):
        ctx = _ctx(self._orders(make_order, refunded=1), {"v-scarf": 20.0})
        assert detect_discount_refund_hit(ctx) is None

    def test_unknown_cost_is_never_reported(self, make_order):
        assert detect_discount_refund_hit(_ctx(self._orders(make_order))) is None


# ────────────────────────────────────────────
# KEYS AND REGISTRY
# ────────────────────────────────────────────


class TestDecisionKey:

    def test_variant_key(self):
        key = DecisionKey.for_variant(DecisionType.BEST_SELLER_LOSS, "123")
        assert str(key) == "best_seller_loss:123"

    def test_threshold_key_drops_trailing_zero(self):
        assert str(DecisionKey.for_threshold(DecisionType.FREE_SHIPPING_TRAP, 50.0)) == "free_shipping_trap:50"
        assert str(DecisionKey.for_threshold(DecisionType.FREE_SHIPPING_TRAP, 47.5)) == "free_shipping_trap:47.5"

    def test_parse(self):
        key = DecisionKey.parse("discount_refund_hit:gid://shopify/ProductVariant/9")
        assert key.type == DecisionType.DISCOUNT_REFUND_HIT
        assert key.subject == "gid://shopify/ProductVariant/9"


def test_registry_covers_every_decision_type():
    assert [name for name, _ in DETECTION_RULES] == [t.value for t in DecisionType]


def test_monthly_scales_window_to_thirty_days():
    ctx = _ctx([])
    assert ctx.monthly(-90.0) == pytest.approx(30.0)
