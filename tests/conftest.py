"""
Shared fixtures: a throwaway in-memory database per test and order builders.
"""
import os

# Must be set before the package reads its settings
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("ENABLE_SCHEDULER", "false")

from datetime import datetime, timedelta
from itertools import count

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from profit_decisions.models.base import Base, init_db
from profit_decisions.schemas.orders import LineItem, OrderRecord, RefundLineItem, RefundRecord

NOW = datetime(2026, 6, 1, 12, 0, 0)


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_order():
    """Build an OrderRecord with sensible defaults"""
    ids = count(1)

    def _make(
        lines=None,
        created_at=None,
        subtotal=None,
        financial_status="paid",
        total_discounts=0.0,
        refunds=None,
    ):
        order_id = next(ids)
        line_items = []
        refund_records = list(refunds or [])
        for index, line in enumerate(lines or [], 1):
            line = dict(line)
            refund_quantity = line.pop("refund_quantity", 0)
            refund_subtotal = line.pop("refund_subtotal", 0.0)
            line.setdefault("id", f"{order_id}-{index}")
            line.setdefault("discounted_price", line.get("price", 0.0))
            line_items.append(LineItem(**line))

            if refund_quantity:
                refund_records.append(RefundRecord(
                    id=f"r-{line['id']}",
                    created_at=NOW,
                    total_refunded=refund_subtotal,
                    refund_line_items=[RefundLineItem(
                        line_item_id=line["id"], quantity=refund_quantity, subtotal=refund_subtotal,
                    )],
                ))

        line_total = sum(item.discounted_price * item.quantity for item in line_items)
        return OrderRecord(
            id=str(order_id),
            name=f"#{1000 + order_id}",
            created_at=created_at or NOW - timedelta(days=order_id % 60),
            total_price=line_total,
            subtotal_price=subtotal if subtotal is not None else line_total,
            total_discounts=total_discounts,
            financial_status=financial_status,
            line_items=line_items,
            refunds=refund_records,
        )

    return _make


@pytest.fixture
def losing_best_seller_orders(make_order):
    """
    40 orders of one variant, 3 units each at 100 with a unit cost of 110:
    net profit -1340 over the window, roughly 446.67 a month.
    """
    def _make(quantity=3, price=100.0, orders=40, created_at=None):
        return [
            make_order(
                lines=[{
                    "name": "Linen Shirt - Blue / M",
                    "quantity": quantity,
                    "price": price,
                    "variant_id": "v-shirt",
                    "sku": "SHIRT-BLU-M",
                }],
                created_at=created_at,
            )
            for _ in range(orders)
        ]

    return _make
