"""
API tests through FastAPI's TestClient with the database dependency
pointed at the in-memory test session.
"""
import asyncio
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from profit_decisions import scheduler
from profit_decisions.api import decisions
from profit_decisions.main import app
from profit_decisions.models.base import get_db
from profit_decisions.models.decision import DecisionOutcome
from profit_decisions.services.cost_service import CostService
from profit_decisions.services.data_cache import DataCacheService
from profit_decisions.services.decision_engine import DecisionEngine
from profit_decisions.services.order_ingestion import ORDERS_CACHE_KEY

SHOP = "test.myshopify.com"


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def orders_payload(losing_best_seller_orders):
    return [o.model_dump(mode="json") for o in losing_best_seller_orders()]


def _run_with_cost(client, orders_payload):
    client.put("/costs/v-shirt", json={"shop": SHOP, "unit_cost": 110.0})
    return client.post("/decisions/run", json={"shop": SHOP, "orders": orders_payload})


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_run_and_list_active(client, orders_payload):
    response = _run_with_cost(client, orders_payload)

    assert response.status_code == 200
    body = response.json()
    assert body["created"] == 1
    assert body["active_decisions"][0]["type"] == "best_seller_loss"
    assert body["shop"]["last_order_count"] == 40
    assert body["outcomes_evaluated"] == 0

    active = client.get("/decisions/active", params={"shop": SHOP}).json()
    assert active["count"] == 1
    assert active["decisions"][0]["status"] == "active"

    history = client.get("/decisions/history", params={"shop": SHOP}).json()
    assert len(history["runs"]) == 1
    assert history["runs"][0]["order_count"] == 40


def test_run_with_too_few_orders(client, orders_payload):
    response = client.post("/decisions/run", json={"shop": SHOP, "orders": orders_payload[:5]})

    assert response.status_code == 200
    assert response.json()["created"] == 0


def test_done_and_ignore(client, orders_payload):
    _run_with_cost(client, orders_payload)
    decision_id = client.get("/decisions/active", params={"shop": SHOP}).json()["decisions"][0]["id"]

    done = client.post(f"/decisions/{decision_id}/done")
    assert done.status_code == 200
    assert done.json()["status"] == "done"
    assert done.json()["outcome"]["status"] is None
    assert done.json()["outcome"]["summary"] is None

    ignored = client.post(f"/decisions/{decision_id}/ignore")
    assert ignored.json()["status"] == "ignored"


def test_unknown_decision_is_404(client):
    assert client.post("/decisions/999/done").status_code == 404
    assert client.post("/decisions/999/ignore").status_code == 404


def test_evaluate_outcomes_without_pending(client):
    response = client.post("/decisions/outcomes/evaluate", json={"shop": SHOP, "orders": []})

    assert response.status_code == 200
    assert response.json() == {"shop": SHOP, "updated": 0}


def test_confidence_stats_empty(client):
    response = client.get("/decisions/confidence", params={"shop": SHOP})
    assert response.json() == {"shop": SHOP, "buckets": []}


def test_costs(client):
    assert client.put("/costs/v-1", json={"shop": SHOP, "unit_cost": 4.5}).json()["unit_cost"] == 4.5
    assert client.put("/costs/v-1", json={"shop": SHOP, "unit_cost": -1}).status_code == 400

    imported = client.post("/costs/import", json={"shop": SHOP, "rows": [
        {"variant_id": "v-1", "unit_cost": 9.0},
        {"variant_id": 2, "unit_cost": "3.25"},
        {"variant_id": "v-3", "unit_cost": "n/a"},
    ]}).json()
    assert imported["imported"] == 1
    assert imported["skipped"] == 1
    assert len(imported["errors"]) == 1

    costs = client.get("/costs", params={"shop": SHOP}).json()
    assert {c["variant_id"]: c["unit_cost"] for c in costs["costs"]} == {"v-1": 4.5, "2": 3.25}


def test_settings(client):
    assert client.get(f"/settings/{SHOP}").json()["currency"] == "GBP"

    updated = client.put(f"/settings/{SHOP}", json={"currency": "USD", "min_impact_threshold": 120})
    assert updated.status_code == 200
    assert updated.json()["currency_symbol"] == "$"
    assert updated.json()["effective_min_impact"] == 120

    assert client.put(f"/settings/{SHOP}", json={"assumed_shipping_cost": -2}).status_code == 400


def test_profit_report(client, orders_payload):
    client.put("/costs/v-shirt", json={"shop": SHOP, "unit_cost": 110.0})

    report = client.post("/profit/report", json={"shop": SHOP, "orders": orders_payload}).json()

    assert report["summary"]["orders"] == 40
    assert report["summary"]["revenue"] == 12000.0
    assert report["summary"]["net_profit"] == -1340.0
    assert report["summary"]["variants_missing_cost"] == 0
    assert [v["variant_id"] for v in report["losing"]] == ["v-shirt"]


def test_cost_import_with_nan_is_a_row_error(client):
    response = client.post("/costs/import", json={"shop": SHOP, "rows": [
        {"variant_id": "v1", "unit_cost": "nan"},
        {"variant_id": "v2", "unit_cost": 2.0},
    ]})

    assert response.status_code == 200
    assert response.json()["imported"] == 1
    assert response.json()["errors"] == ["Row 1: invalid cost 'nan' for variant v1"]
    assert client.put("/costs/v1", json={"shop": SHOP, "unit_cost": "nan"}).status_code == 400


# ────────────────────────────────────────────
# REFRESH AND SCHEDULED EVALUATION
# ────────────────────────────────────────────


@pytest.fixture
def completed_at():
    # Far enough back that the 30-day outcome window has elapsed
    return datetime.utcnow() - timedelta(days=40)


@pytest.fixture
def done_decision(db, losing_best_seller_orders, completed_at):
    CostService(db).set_manual_cost(SHOP, "v-shirt", 110.0)
    engine = DecisionEngine(db)
    asyncio.run(engine.run(SHOP, losing_best_seller_orders(), now=completed_at))
    decision = engine.get_active_decisions(SHOP)[0]
    engine.mark_done(decision.id, now=completed_at)
    return decision


@pytest.fixture
def post_orders_payload(make_order, completed_at):
    return [
        make_order(
            lines=[
                {"name": "Linen Shirt - Blue / M", "quantity": 3, "price": 130.0, "variant_id": "v-shirt"},
                {"name": "Gift card", "quantity": 1, "price": 10.0, "variant_id": "v-card"},
            ],
            created_at=completed_at + timedelta(days=5),
        ).model_dump(mode="json")
        for _ in range(12)
    ]


def test_run_caches_order_window(client, db, orders_payload):
    _run_with_cost(client, orders_payload)

    assert DataCacheService(db).shops_with_key(ORDERS_CACHE_KEY) == [SHOP]


def test_run_grades_elapsed_outcomes(client, db, done_decision, post_orders_payload):
    response = client.post("/decisions/run", json={"shop": SHOP, "orders": post_orders_payload})

    assert response.status_code == 200
    assert response.json()["outcomes_evaluated"] == 1
    outcome = db.query(DecisionOutcome).filter_by(decision_id=done_decision.id).one()
    assert outcome.outcome_status == "improved"


def test_scheduled_evaluation_uses_orders_cached_by_run(client, db, post_orders_payload,
                                                        losing_best_seller_orders, completed_at,
                                                        monkeypatch):
    client.put("/costs/v-shirt", json={"shop": SHOP, "unit_cost": 110.0})
    client.post("/decisions/run", json={"shop": SHOP, "orders": post_orders_payload})

    # Marked done after the refresh, so only the daily job can grade it
    engine = DecisionEngine(db)
    asyncio.run(engine.run(SHOP, losing_best_seller_orders(), now=completed_at))
    decision_id = engine.get_active_decisions(SHOP)[0].id
    engine.mark_done(decision_id, now=completed_at)

    monkeypatch.setattr(scheduler, "SessionLocal", lambda: db)
    asyncio.run(scheduler.evaluate_all_outcomes())

    outcome = db.query(DecisionOutcome).filter_by(decision_id=decision_id).one()
    assert outcome.evaluated_at is not None
    assert outcome.outcome_status == "improved"


# ────────────────────────────────────────────
# PER-SHOP LOCKS
# ────────────────────────────────────────────


def test_shop_locks_released_after_request(client, orders_payload):
    _run_with_cost(client, orders_payload)
    client.post("/decisions/run", json={"shop": "other.myshopify.com", "orders": []})

    assert decisions._shop_locks == {}


def test_shop_lock_serialises_one_shop():
    events = []

    async def refresh(name):
        async with decisions.shop_lock(SHOP):
            events.append(f"{name} start")
            await asyncio.sleep(0)
            events.append(f"{name} end")

    async def main():
        await asyncio.gather(refresh("first"), refresh("second"))

    asyncio.run(main())

    assert events == ["first start", "first end", "second start", "second end"]
    assert decisions._shop_locks == {}
