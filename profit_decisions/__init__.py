"""Profit Decisions - ranked, explainable profit decisions from order history"""

__version__ = "1.0.0"
