#!/usr/bin/env python3
"""
Decision Engine Runner

Runs the decision engine (or the outcome evaluation pass) for one shop
from a JSON export of its orders.

Usage:
    python scripts/run_engine.py --shop store.myshopify.com --orders orders.json
    python scripts/run_engine.py --shop store.myshopify.com --orders orders.json --evaluate
"""
import sys
import json
import asyncio
import argparse
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from profit_decisions.models.base import SessionLocal, init_db
from profit_decisions.schemas.orders import OrderRecord
from profit_decisions.services.decision_engine import DecisionEngine
from profit_decisions.services.outcome_evaluator import OutcomeEvaluator


def load_orders(path: Path):
    with open(path) as f:
        payload = json.load(f)
    # Accept either a bare list or {"orders": [...]}
    if isinstance(payload, dict):
        payload = payload.get("orders", [])
    return [OrderRecord.model_validate(o) for o in payload]


def main():
    parser = argparse.ArgumentParser(description='Run the profit decision engine for a shop')
    parser.add_argument('--shop', required=True, help='Shop domain')
    parser.add_argument('--orders', required=True, help='JSON file of orders')
    parser.add_argument('--evaluate', action='store_true', help='Evaluate outcomes instead of running the engine')

    args = parser.parse_args()

    orders = load_orders(Path(args.orders))
    print(f"Loaded {len(orders)} orders for {args.shop}")

    init_db()
    db = SessionLocal()
    try:
        if args.evaluate:
            updated = OutcomeEvaluator(db).evaluate_outcomes(args.shop, orders)
            print(f"Evaluated {updated} outcomes")
            return

        result = asyncio.run(DecisionEngine(db).run(args.shop, orders))
        print(f"Created {result.created} decisions (run {result.run_id})")
        for candidate in result.active_decisions:
            print(f"\n  [{candidate.confidence}] {candidate.headline}")
            print(f"    {candidate.action_title}")
            print(f"    {candidate.reason}")
    finally:
        db.close()


if __name__ == '__main__':
    main()
