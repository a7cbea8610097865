"""
Decision API Endpoints

Run the engine for a shop, list what to do next, and record what the
merchant did with each decision.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from profit_decisions.models.base import get_db
from profit_decisions.schemas.orders import OrderRecord
from profit_decisions.services.confidence import get_confidence_history_stats
from profit_decisions.services.decision_engine import DecisionEngine, DecisionNotFoundError, decision_to_dict
from profit_decisions.services.order_ingestion import cache_order_window
from profit_decisions.services.outcome_evaluator import OutcomeEvaluator
from profit_decisions.services.shop_settings import ShopSettingsService
from profit_decisions.utils.helpers import format_refresh_error_message
from profit_decisions.utils.logger import log

router = APIRouter(prefix="/decisions", tags=["decisions"])

# One refresh at a time per shop; entries live only while a request holds or awaits them
_shop_locks: Dict[str, asyncio.Lock] = {}
_shop_lock_users: Dict[str, int] = {}


@asynccontextmanager
async def shop_lock(shop: str):
    lock = _shop_locks.setdefault(shop, asyncio.Lock())
    _shop_lock_users[shop] = _shop_lock_users.get(shop, 0) + 1
    try:
        async with lock:
            yield
    finally:
        _shop_lock_users[shop] -= 1
        if not _shop_lock_users[shop]:
            del _shop_lock_users[shop]
            del _shop_locks[shop]


class OrderWindowRequest(BaseModel):
    """Orders for one shop over the analysis window"""
    shop: str
    orders: List[OrderRecord] = []


@router.post("/run")
async def run_decisions(
    request: OrderWindowRequest,
    db = Depends(get_db)
):
    """
    Run every detection rule over the supplied orders

    Replaces the shop's active decisions with the new ranked set
    (at most three, each above the shop's minimum impact). The order
    window is cached for the daily outcome job, and outcomes whose window
    has elapsed are graded against it.
    """
    async with shop_lock(request.shop):
        try:
            cache_order_window(db, request.shop, request.orders)
            result = await DecisionEngine(db).run(request.shop, request.orders)
            outcomes_evaluated = OutcomeEvaluator(db).evaluate_outcomes(request.shop, request.orders)
        except Exception as e:
            log.error(f"Decision run failed for {request.shop}: {str(e)}")
            raise HTTPException(status_code=500, detail=format_refresh_error_message(str(e)))

    body = result.to_dict()
    body["outcomes_evaluated"] = outcomes_evaluated
    return body


@router.get("/active")
async def get_active_decisions(
    shop: str = Query(..., description="Shop domain"),
    db = Depends(get_db)
):
    """Current decisions, highest impact first"""
    try:
        symbol = ShopSettingsService(db).get_profile(shop).currency_symbol
        decisions = DecisionEngine(db).get_active_decisions(shop)
        return {
            "shop": shop,
            "count": len(decisions),
            "decisions": [decision_to_dict(d, symbol) for d in decisions]
        }
    except Exception as e:
        log.error(f"Error loading active decisions: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/history")
async def get_decision_history(
    shop: str = Query(..., description="Shop domain"),
    limit: int = Query(10, ge=1, le=100, description="Number of runs"),
    db = Depends(get_db)
):
    """Past runs with every decision each one produced"""
    try:
        symbol = ShopSettingsService(db).get_profile(shop).currency_symbol
        return {
            "shop": shop,
            "runs": DecisionEngine(db).get_decision_history(shop, limit_runs=limit, currency_symbol=symbol)
        }
    except Exception as e:
        log.error(f"Error loading decision history: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{decision_id}/done")
async def mark_decision_done(decision_id: int, db = Depends(get_db)):
    """Merchant acted on the decision; starts outcome tracking"""
    try:
        decision = DecisionEngine(db).mark_done(decision_id)
        return decision_to_dict(decision)
    except DecisionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        log.error(f"Error marking decision {decision_id} done: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{decision_id}/ignore")
async def mark_decision_ignored(decision_id: int, db = Depends(get_db)):
    """Merchant dismissed the decision; it may resurface if its impact grows"""
    try:
        decision = DecisionEngine(db).mark_ignored(decision_id)
        return decision_to_dict(decision)
    except DecisionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        log.error(f"Error ignoring decision {decision_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/outcomes/evaluate")
async def evaluate_outcomes(
    request: OrderWindowRequest,
    db = Depends(get_db)
):
    """Grade done decisions whose outcome window has elapsed"""
    async with shop_lock(request.shop):
        try:
            updated = OutcomeEvaluator(db).evaluate_outcomes(request.shop, request.orders)
        except Exception as e:
            log.error(f"Outcome evaluation failed for {request.shop}: {str(e)}")
            raise HTTPException(status_code=500, detail=str(e))

    return {"shop": request.shop, "updated": updated}


@router.get("/confidence")
async def get_confidence_stats(
    shop: str = Query(..., description="Shop domain"),
    db = Depends(get_db)
):
    """Track record per decision type and confidence level"""
    try:
        stats = get_confidence_history_stats(db, shop)
        return {
            "shop": shop,
            "buckets": [
                {
                    "type": decision_type,
                    "confidence": confidence,
                    "total": bucket.total,
                    "improved": bucket.improved,
                    "success_rate": round(bucket.success_rate, 3),
                }
                for (decision_type, confidence), bucket in sorted(stats.items())
            ]
        }
    except Exception as e:
        log.error(f"Error loading confidence stats: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
