"""Database models for Profit Decisions"""

from profit_decisions.models.shop import Shop
from profit_decisions.models.variant_cost import VariantCost
from profit_decisions.models.decision import Decision, DecisionRun, DecisionOutcome
from profit_decisions.models.data_cache import DataCache

__all__ = [
    "Shop",
    "VariantCost",
    "Decision",
    "DecisionRun",
    "DecisionOutcome",
    "DataCache",
]
