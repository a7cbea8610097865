"""Decision runs, decision records and outcome tracking models."""
from sqlalchemy import Column, Integer, String, Float, DateTime, Text, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from profit_decisions.models.base import Base


DECISION_STATUS_ACTIVE = "active"
DECISION_STATUS_DONE = "done"
DECISION_STATUS_IGNORED = "ignored"


class DecisionRun(Base):
    """
    One row per engine invocation.
    Exists so decision history can be grouped by the run that produced it.
    """
    __tablename__ = "decision_runs"

    id = Column(Integer, primary_key=True, index=True)
    shop = Column(String, index=True, nullable=False)
    created_at = Column(DateTime, index=True, default=datetime.utcnow)
    order_count = Column(Integer, default=0)
    window_days = Column(Integer, default=90)

    decisions = relationship("Decision", back_populates="run")


class Decision(Base):
    """
    A persisted decision.

    Every candidate of a run is written; only the surfaced subset is
    `active`, the rest are written `done` so history shows what the engine saw.
    """
    __tablename__ = "decisions"

    id = Column(Integer, primary_key=True, index=True)
    shop = Column(String, index=True, nullable=False)
    run_id = Column(Integer, ForeignKey("decision_runs.id"), index=True, nullable=True)

    type = Column(String, index=True, nullable=False)  # best_seller_loss, free_shipping_trap, discount_refund_hit
    decision_key = Column(String, index=True, nullable=False)  # e.g. best_seller_loss:gid://...
    status = Column(String, index=True, default=DECISION_STATUS_ACTIVE)  # active, done, ignored

    headline = Column(String, nullable=False)
    action_title = Column(String, nullable=False)
    reason = Column(Text, nullable=False)
    impact = Column(Float, nullable=False)  # projected currency/month
    confidence = Column(String, nullable=False)  # high, medium, low
    base_confidence = Column(String, nullable=True)  # rule confidence before calibration

    data_json = Column(JSON, nullable=False, default=dict)  # evidence payload + context

    created_at = Column(DateTime, index=True, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
    ignored_at = Column(DateTime, nullable=True)
    resurfaced_at = Column(DateTime, nullable=True)  # set at most once

    run = relationship("DecisionRun", back_populates="decisions")
    outcome = relationship("DecisionOutcome", back_populates="decision", uselist=False)


class DecisionOutcome(Base):
    """
    Baseline captured when a decision is marked done; post-window metrics
    and verdict filled in by the outcome evaluator exactly once.
    """
    __tablename__ = "decision_outcomes"
    __table_args__ = (
        UniqueConstraint("decision_id", name="uq_decision_outcomes_decision"),
    )

    id = Column(Integer, primary_key=True, index=True)
    decision_id = Column(Integer, ForeignKey("decisions.id"), index=True, nullable=False)

    baseline_metrics = Column(JSON, nullable=False)
    post_metrics = Column(JSON, nullable=True)
    outcome_status = Column(String, nullable=True)  # improved, no_change, worsened
    window_days = Column(Integer, default=30)

    created_at = Column(DateTime, default=datetime.utcnow)
    evaluated_at = Column(DateTime, nullable=True)

    decision = relationship("Decision", back_populates="outcome")
