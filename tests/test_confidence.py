"""
Confidence calibration tests.
"""
from datetime import datetime

import pytest

from profit_decisions.models.decision import Decision, DecisionOutcome, DECISION_STATUS_DONE
from profit_decisions.services.confidence import (
    ConfidenceStats,
    calibrate_confidence,
    get_confidence_history_stats,
)


class TestCalibrateConfidence:

    def test_no_history_keeps_base(self):
        result = calibrate_confidence("medium")
        assert result.confidence == "medium"
        assert result.success_rate is None
        assert result.total is None

    def test_too_little_history_keeps_base(self):
        result = calibrate_confidence("medium", ConfidenceStats(total=4, improved=4))
        assert result.confidence == "medium"
        assert result.total is None

    @pytest.mark.parametrize("base, improved, expected", [
        ("medium", 7, "high"),
        ("medium", 3, "low"),
        ("medium", 5, "medium"),
        ("low", 7, "medium"),
        ("low", 0, "low"),
        ("high", 0, "high"),
    ])
    def test_adjustments(self, base, improved, expected):
        result = calibrate_confidence(base, ConfidenceStats(total=10, improved=improved))

        assert result.confidence == expected
        assert result.success_rate == pytest.approx(improved / 10)
        assert result.total == 10


def _evaluated_decision(db, decision_type, base_confidence, outcome_status, shop="test.myshopify.com"):
    decision = Decision(
        shop=shop,
        type=decision_type,
        decision_key=f"{decision_type}:x",
        status=DECISION_STATUS_DONE,
        headline="h",
        action_title="a",
        reason="r",
        impact=100.0,
        confidence="high",
        base_confidence=base_confidence,
        data_json={},
        completed_at=datetime(2026, 1, 1),
    )
    db.add(decision)
    db.flush()
    db.add(DecisionOutcome(
        decision_id=decision.id,
        baseline_metrics={},
        outcome_status=outcome_status,
        evaluated_at=datetime(2026, 2, 1) if outcome_status else None,
    ))
    db.commit()


class TestHistoryStats:

    def test_buckets_by_type_and_base_confidence(self, db):
        for status in ("improved", "improved", "worsened"):
            _evaluated_decision(db, "best_seller_loss", "medium", status)
        _evaluated_decision(db, "best_seller_loss", "low", "no_change")
        _evaluated_decision(db, "free_shipping_trap", "medium", "improved")
        # Pending outcomes are not history yet
        _evaluated_decision(db, "best_seller_loss", "medium", None)
        # Other shops never count
        _evaluated_decision(db, "best_seller_loss", "medium", "improved", shop="other.myshopify.com")

        stats = get_confidence_history_stats(db, "test.myshopify.com")

        assert stats[("best_seller_loss", "medium")].total == 3
        assert stats[("best_seller_loss", "medium")].improved == 2
        assert stats[("best_seller_loss", "low")].total == 1
        assert stats[("best_seller_loss", "low")].improved == 0
        assert stats[("free_shipping_trap", "medium")].success_rate == 1.0
        assert len(stats) == 3

    def test_falls_back_to_stored_confidence(self, db):
        _evaluated_decision(db, "discount_refund_hit", None, "improved")

        stats = get_confidence_history_stats(db, "test.myshopify.com")

        assert ("discount_refund_hit", "high") in stats
