"""
Decision Engine - runs the rules and manages the decision lifecycle.

One run:
  1. Record the run and retire the previous run's active decisions
  2. Stay quiet below the minimum order count
  3. Compute variant profits, run every detection rule concurrently
  4. Attach seasonal / sales-pace context, calibrate confidence,
     attach the outcome baseline
  5. Rank by impact, apply the minimum-impact threshold, cap the active set
  6. Resurface an ignored finding whose impact has grown materially
  7. Persist every candidate (active set `active`, the rest `done`)

A run writes in a single transaction. The caller is responsible for never
running two refreshes for the same shop at once.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from profit_decisions.config import get_settings
from profit_decisions.models.decision import (
    Decision,
    DecisionOutcome,
    DecisionRun,
    DECISION_STATUS_ACTIVE,
    DECISION_STATUS_DONE,
    DECISION_STATUS_IGNORED,
)
from profit_decisions.schemas.orders import OrderRecord
from profit_decisions.services.confidence import calibrate_confidence, get_confidence_history_stats
from profit_decisions.services.cost_service import CostService
from profit_decisions.services.decision_rules import (
    DETECTION_RULES,
    DecisionCandidate,
    DetectionRule,
    RuleContext,
)
from profit_decisions.services.outcome_evaluator import OutcomeMetrics, build_outcome_baseline_metrics
from profit_decisions.services.profit_calculator import calculate_variant_profits
from profit_decisions.services.seasonality import calculate_recent_sales_pace, get_seasonal_context
from profit_decisions.services.shop_settings import ShopProfile, ShopSettingsService
from profit_decisions.utils.helpers import build_outcome_metrics_line, format_currency
from profit_decisions.utils.logger import log

settings = get_settings()

RESURFACE_GROWTH_FACTOR = 1.5
SALES_PACE_DAYS = 30


class DecisionNotFoundError(Exception):
    """Raised when a lifecycle transition targets an unknown decision"""


@dataclass
class RunResult:
    created: int
    active_decisions: List[DecisionCandidate]
    profile: ShopProfile
    run_id: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "created": self.created,
            "run_id": self.run_id,
            "active_decisions": [c.to_dict() for c in self.active_decisions],
            "shop": self.profile.to_dict(),
        }


@dataclass
class ResurfacingCandidate:
    candidate: DecisionCandidate
    ignored: Decision
    ignored_impact: float = field(init=False)

    def __post_init__(self):
        self.ignored_impact = self.ignored.impact


def pick_resurfacing_candidate(
    candidates: Sequence[DecisionCandidate],
    ignored_decisions: Iterable[Decision],
) -> Optional[ResurfacingCandidate]:
    """
    Strongest new candidate that matches an ignored, never-resurfaced
    decision and has grown to at least 1.5x its ignored impact.
    Ties go to the highest new impact.
    """
    ignored_by_key: Dict[str, Decision] = {}
    for ignored in ignored_decisions:
        if ignored.resurfaced_at is not None:
            continue
        current = ignored_by_key.get(ignored.decision_key)
        # Most recently written record wins when a key was ignored more than once
        if current is None or (ignored.id or 0) > (current.id or 0):
            ignored_by_key[ignored.decision_key] = ignored

    best: Optional[ResurfacingCandidate] = None
    for candidate in candidates:
        ignored = ignored_by_key.get(str(candidate.decision_key))
        if ignored is None:
            continue
        if candidate.impact < ignored.impact * RESURFACE_GROWTH_FACTOR:
            continue
        if best is None or candidate.impact > best.candidate.impact:
            best = ResurfacingCandidate(candidate=candidate, ignored=ignored)

    return best


def decision_to_dict(decision: Decision, currency_symbol: str = "£") -> Dict:
    outcome = decision.outcome
    return {
        "id": decision.id,
        "run_id": decision.run_id,
        "type": decision.type,
        "decision_key": decision.decision_key,
        "status": decision.status,
        "headline": decision.headline,
        "action_title": decision.action_title,
        "reason": decision.reason,
        "impact": round(decision.impact, 2),
        "confidence": decision.confidence,
        "data": decision.data_json,
        "created_at": decision.created_at.isoformat() if decision.created_at else None,
        "completed_at": decision.completed_at.isoformat() if decision.completed_at else None,
        "ignored_at": decision.ignored_at.isoformat() if decision.ignored_at else None,
        "resurfaced_at": decision.resurfaced_at.isoformat() if decision.resurfaced_at else None,
        "outcome": {
            "status": outcome.outcome_status,
            "baseline": outcome.baseline_metrics,
            "post": outcome.post_metrics,
            "window_days": outcome.window_days,
            "evaluated_at": outcome.evaluated_at.isoformat() if outcome.evaluated_at else None,
            "summary": build_outcome_metrics_line(outcome.baseline_metrics, outcome.post_metrics, currency_symbol),
        } if outcome else None,
    }


class DecisionEngine:
    """Orchestrates decision runs and lifecycle transitions for one database session"""

    def __init__(
        self,
        db: Session,
        rules: Sequence[Tuple[str, DetectionRule]] = DETECTION_RULES,
    ):
        self.db = db
        self.rules = rules
        self.max_active = settings.max_active_decisions

    async def run(
        self,
        shop: str,
        orders: Sequence[OrderRecord],
        now: Optional[datetime] = None,
    ) -> RunResult:
        """Full decision run for one shop over the given order window"""
        now = now or datetime.utcnow()
        settings_service = ShopSettingsService(self.db)

        try:
            profile = settings_service.get_profile(shop).with_run_state(len(orders), now)
            settings_service.save_run_state(profile)

            run = DecisionRun(
                shop=shop,
                created_at=now,
                order_count=len(orders),
                window_days=settings.analysis_window_days,
            )
            self.db.add(run)
            self.db.flush()

            superseded = self.db.query(Decision).filter(
                Decision.shop == shop,
                Decision.status == DECISION_STATUS_ACTIVE,
            ).update(
                {Decision.status: DECISION_STATUS_DONE, Decision.completed_at: now},
                synchronize_session=False,
            )
            if superseded:
                log.info(f"Superseded {superseded} active decisions for {shop}")

            if len(orders) < settings.min_orders_for_decisions:
                self.db.commit()
                log.info(
                    f"Only {len(orders)} orders for {shop} "
                    f"(need {settings.min_orders_for_decisions}); no decisions generated"
                )
                return RunResult(created=0, active_decisions=[], profile=profile, run_id=run.id)

            cost_lookup = CostService(self.db).get_cost_lookup(shop)
            variant_metrics = calculate_variant_profits(orders, cost_lookup, profile.assumed_shipping_cost)
            ctx = RuleContext(
                profile=profile,
                orders=orders,
                variant_metrics=variant_metrics,
                window_days=settings.analysis_window_days,
            )

            candidates = await self._run_rules(ctx)

            self._contextualize(candidates, orders, profile, now)
            self._calibrate(shop, candidates)
            for candidate in candidates:
                baseline = build_outcome_baseline_metrics(
                    candidate.type.value, candidate.evidence, orders,
                    cost_lookup, profile.assumed_shipping_cost,
                )
                candidate.evidence["outcome_baseline"] = (baseline or OutcomeMetrics()).to_dict()

            ranked = sorted(candidates, key=lambda c: c.impact, reverse=True)
            active = self._select_active(shop, ranked, profile.effective_min_impact, now)

            active_ids = {id(c) for c in active}
            for candidate in ranked:
                is_active = id(candidate) in active_ids
                self.db.add(self._to_record(shop, run.id, candidate, is_active, now))

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        log.info(
            f"Decision run {run.id} for {shop}: {len(ranked)} candidates, "
            f"{len(active)} active (min impact {profile.effective_min_impact:.2f})"
        )
        return RunResult(created=len(ranked), active_decisions=active, profile=profile, run_id=run.id)

    async def _run_rules(self, ctx: RuleContext) -> List[DecisionCandidate]:
        """Run all rules concurrently; combine in registry order"""
        results = await asyncio.gather(*(asyncio.to_thread(rule, ctx) for _, rule in self.rules))

        candidates = []
        for (name, _), candidate in zip(self.rules, results):
            if candidate is None:
                log.debug(f"Rule {name}: no finding")
                continue
            candidates.append(candidate)
        return candidates

    def _contextualize(self, candidates: List[DecisionCandidate], orders: Sequence[OrderRecord],
                       profile: ShopProfile, now: datetime) -> None:
        seasonal = get_seasonal_context(orders, now)
        pace = calculate_recent_sales_pace(orders, SALES_PACE_DAYS, now)
        pace_message = f"At your current sales pace ({pace} orders in {SALES_PACE_DAYS} days)"

        for candidate in candidates:
            candidate.sales_pace_context = pace_message
            if seasonal.has_enough_data and seasonal.seasonal_message:
                candidate.seasonal_context = seasonal.seasonal_message
            quarter = format_currency(candidate.impact * 3, profile.currency_symbol)
            candidate.run_rate_context = f"{pace_message}, this adds up to {quarter} over the next quarter"

    def _calibrate(self, shop: str, candidates: List[DecisionCandidate]) -> None:
        history = get_confidence_history_stats(self.db, shop)
        for candidate in candidates:
            base = candidate.confidence
            calibration = calibrate_confidence(base, history.get((candidate.type.value, base)))
            candidate.confidence = calibration.confidence
            candidate.evidence["base_confidence"] = base
            candidate.evidence["confidence_history_rate"] = calibration.success_rate
            candidate.evidence["confidence_history_total"] = calibration.total

    def _select_active(
        self,
        shop: str,
        ranked: List[DecisionCandidate],
        min_impact: float,
        now: datetime,
    ) -> List[DecisionCandidate]:
        """Threshold, cap, then force-include a resurfaced finding"""
        active = [c for c in ranked if c.impact >= min_impact][:self.max_active]

        keys = [str(c.decision_key) for c in ranked]
        ignored = []
        if keys:
            ignored = self.db.query(Decision).filter(
                Decision.shop == shop,
                Decision.status == DECISION_STATUS_IGNORED,
                Decision.decision_key.in_(keys),
            ).all()

        resurfacing = pick_resurfacing_candidate(ranked, ignored)
        if resurfacing is None or resurfacing.candidate.impact < min_impact:
            return active

        candidate = resurfacing.candidate
        candidate.evidence["is_resurfaced"] = True
        candidate.evidence["resurfaced_from_impact"] = resurfacing.ignored_impact
        candidate.evidence["resurfaced_from_decision_id"] = resurfacing.ignored.id
        resurfacing.ignored.resurfaced_at = now
        log.info(
            f"Resurfacing {candidate.decision_key} for {shop}: "
            f"{resurfacing.ignored_impact:.2f} -> {candidate.impact:.2f}"
        )

        if not any(c is candidate for c in active):
            if len(active) < self.max_active:
                active.append(candidate)
            else:
                active[-1] = candidate
            active.sort(key=lambda c: c.impact, reverse=True)

        return active

    def _to_record(self, shop: str, run_id: int, candidate: DecisionCandidate,
                   is_active: bool, now: datetime) -> Decision:
        data = dict(candidate.evidence)
        data["seasonal_context"] = candidate.seasonal_context
        data["sales_pace_context"] = candidate.sales_pace_context
        data["run_rate_context"] = candidate.run_rate_context

        return Decision(
            shop=shop,
            run_id=run_id,
            type=candidate.type.value,
            decision_key=str(candidate.decision_key),
            status=DECISION_STATUS_ACTIVE if is_active else DECISION_STATUS_DONE,
            headline=candidate.headline,
            action_title=candidate.action_title,
            reason=candidate.reason,
            impact=candidate.impact,
            confidence=candidate.confidence,
            base_confidence=candidate.evidence.get("base_confidence"),
            data_json=data,
            created_at=now,
            completed_at=None if is_active else now,
        )

    # ── Lifecycle transitions ──────────────────────────────────

    def _get(self, decision_id: int) -> Decision:
        decision = self.db.get(Decision, decision_id)
        if decision is None:
            raise DecisionNotFoundError(f"Decision {decision_id} not found")
        return decision

    def mark_done(self, decision_id: int, now: Optional[datetime] = None) -> Decision:
        """
        Merchant acted on a decision: mark it done and seed its outcome
        baseline from the evidence captured at run time.
        """
        now = now or datetime.utcnow()
        decision = self._get(decision_id)

        decision.status = DECISION_STATUS_DONE
        decision.completed_at = now

        baseline = (decision.data_json or {}).get("outcome_baseline") or OutcomeMetrics().to_dict()
        outcome = decision.outcome
        if outcome is None:
            self.db.add(DecisionOutcome(
                decision_id=decision.id,
                baseline_metrics=baseline,
                window_days=settings.outcome_window_days,
                created_at=now,
            ))
        elif outcome.evaluated_at is None:
            outcome.baseline_metrics = baseline
            outcome.post_metrics = None
            outcome.outcome_status = None
        # An evaluated outcome is final

        self.db.commit()
        log.info(f"Decision {decision_id} marked done")
        return decision

    def mark_ignored(self, decision_id: int, now: Optional[datetime] = None) -> Decision:
        decision = self._get(decision_id)
        decision.status = DECISION_STATUS_IGNORED
        decision.ignored_at = now or datetime.utcnow()
        self.db.commit()
        log.info(f"Decision {decision_id} ignored")
        return decision

    # ── Queries ────────────────────────────────────────────────

    def get_active_decisions(self, shop: str) -> List[Decision]:
        return self.db.query(Decision).filter(
            Decision.shop == shop,
            Decision.status == DECISION_STATUS_ACTIVE,
        ).order_by(Decision.impact.desc()).all()

    def get_decision_history(self, shop: str, limit_runs: int = 10, currency_symbol: str = "£") -> List[Dict]:
        """Recent runs, newest first, each with every decision it produced"""
        runs = self.db.query(DecisionRun).filter(
            DecisionRun.shop == shop,
        ).order_by(DecisionRun.created_at.desc(), DecisionRun.id.desc()).limit(limit_runs).all()

        return [
            {
                "run_id": run.id,
                "created_at": run.created_at.isoformat() if run.created_at else None,
                "order_count": run.order_count,
                "window_days": run.window_days,
                "decisions": [
                    decision_to_dict(d, currency_symbol)
                    for d in sorted(run.decisions, key=lambda d: d.impact, reverse=True)
                ],
            }
            for run in runs
        ]
