"""
Seasonality and sales-pace context.

Purely advisory: the messages produced here are attached to decisions but
never decide whether a decision is shown.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional, Sequence, Tuple

from profit_decisions.schemas.orders import OrderRecord


MIN_HISTORY_WEEKS = 12
MIN_SEASONAL_DEVIATION_PCT = 10


@dataclass
class WeeklyBaseline:
    year: int
    week_of_year: int
    order_count: int = 0
    revenue: float = 0.0


@dataclass
class SeasonalContext:
    has_enough_data: bool = False
    current_week_orders: int = 0
    baseline_average: float = 0.0
    percent_difference: float = 0.0
    seasonal_message: Optional[str] = None


def calculate_weekly_baselines(orders: Sequence[OrderRecord]) -> Dict[Tuple[int, int], WeeklyBaseline]:
    """Order count and revenue per ISO (year, week)"""
    baselines: Dict[Tuple[int, int], WeeklyBaseline] = {}
    for order in orders:
        iso = order.created_at.isocalendar()
        key = (iso[0], iso[1])
        baseline = baselines.get(key)
        if baseline is None:
            baseline = baselines[key] = WeeklyBaseline(year=key[0], week_of_year=key[1])
        baseline.order_count += 1
        baseline.revenue += order.total_price
    return baselines


def get_seasonal_context(orders: Sequence[OrderRecord], now: Optional[datetime] = None) -> SeasonalContext:
    """
    Compare this week's order count with the same ISO week in prior years.

    Needs an entry for the current week, at least 12 distinct weeks of
    history and at least one prior-year data point for the same week.
    """
    if not orders:
        return SeasonalContext()

    iso = (now or datetime.utcnow()).isocalendar()
    current_year, current_week = iso[0], iso[1]

    baselines = calculate_weekly_baselines(orders)
    current = baselines.get((current_year, current_week))
    if current is None:
        return SeasonalContext()

    same_week_previous_years = [
        b.order_count for b in baselines.values()
        if b.week_of_year == current_week and b.year < current_year
    ]

    if len(baselines) < MIN_HISTORY_WEEKS or not same_week_previous_years:
        return SeasonalContext(current_week_orders=current.order_count)

    baseline_average = sum(same_week_previous_years) / len(same_week_previous_years)
    percent_difference = (current.order_count - baseline_average) / baseline_average * 100

    message = None
    if abs(percent_difference) >= MIN_SEASONAL_DEVIATION_PCT:
        direction = "worse" if percent_difference < 0 else "better"
        message = f"{abs(percent_difference):.0f}% {direction} than usual for this time of year"

    return SeasonalContext(
        has_enough_data=True,
        current_week_orders=current.order_count,
        baseline_average=baseline_average,
        percent_difference=percent_difference,
        seasonal_message=message,
    )


def calculate_recent_sales_pace(
    orders: Sequence[OrderRecord],
    days: int = 30,
    now: Optional[datetime] = None,
) -> int:
    """Number of orders placed in the trailing `days`"""
    cutoff = (now or datetime.utcnow()) - timedelta(days=days)
    return sum(1 for order in orders if order.created_at >= cutoff)
