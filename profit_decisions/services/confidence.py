"""
Confidence calibration from the store's own track record.

Each evaluated outcome is bucketed by (decision type, confidence at the
time). Once a bucket has enough history its success rate nudges the
confidence of new decisions of the same kind:

  medium -> high  at >= 70% improved
  medium -> low   at <= 30% improved
  low    -> medium at >= 70% improved
  high   stays high (treated as a floor)
"""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from profit_decisions.models.decision import Decision, DecisionOutcome
from profit_decisions.services.decision_rules import CONFIDENCE_HIGH, CONFIDENCE_MEDIUM, CONFIDENCE_LOW


MIN_HISTORY_OUTCOMES = 5
PROMOTE_AT = 0.7
DEMOTE_AT = 0.3

OUTCOME_IMPROVED = "improved"


@dataclass
class ConfidenceStats:
    total: int = 0
    improved: int = 0

    @property
    def success_rate(self) -> float:
        return self.improved / self.total if self.total > 0 else 0.0


@dataclass
class Calibration:
    confidence: str
    success_rate: Optional[float] = None
    total: Optional[int] = None


def calibrate_confidence(base_confidence: str, history: Optional[ConfidenceStats] = None) -> Calibration:
    """Adjust a rule's base confidence; no-op until the bucket has enough outcomes"""
    if history is None or history.total < MIN_HISTORY_OUTCOMES:
        return Calibration(confidence=base_confidence)

    rate = history.success_rate
    confidence = base_confidence

    if base_confidence == CONFIDENCE_MEDIUM:
        if rate >= PROMOTE_AT:
            confidence = CONFIDENCE_HIGH
        elif rate <= DEMOTE_AT:
            confidence = CONFIDENCE_LOW
    elif base_confidence == CONFIDENCE_LOW:
        if rate >= PROMOTE_AT:
            confidence = CONFIDENCE_MEDIUM

    return Calibration(confidence=confidence, success_rate=rate, total=history.total)


def get_confidence_history_stats(db: Session, shop: str) -> Dict[Tuple[str, str], ConfidenceStats]:
    """
    Success statistics per (type, base confidence) bucket from evaluated
    outcomes. Rows written before base_confidence existed fall back to the
    stored confidence.
    """
    rows = db.query(
        Decision.type,
        func.coalesce(Decision.base_confidence, Decision.confidence),
        DecisionOutcome.outcome_status,
    ).join(
        DecisionOutcome, DecisionOutcome.decision_id == Decision.id,
    ).filter(
        Decision.shop == shop,
        DecisionOutcome.outcome_status.isnot(None),
    ).all()

    stats: Dict[Tuple[str, str], ConfidenceStats] = {}
    for decision_type, confidence, outcome_status in rows:
        bucket = stats.setdefault((decision_type, confidence), ConfidenceStats())
        bucket.total += 1
        if outcome_status == OUTCOME_IMPROVED:
            bucket.improved += 1

    return stats
