"""
Helper utilities
"""
from typing import Any, Dict, Optional
import json


CURRENCY_SYMBOLS = {
    "USD": "$", "EUR": "€", "GBP": "£", "CAD": "C$", "AUD": "A$",
    "JPY": "¥", "CNY": "¥", "INR": "₹", "AED": "د.إ", "SAR": "﷼",
    "SEK": "kr", "NOK": "kr", "DKK": "kr", "CHF": "CHF", "NZD": "NZ$",
    "SGD": "S$", "HKD": "HK$", "MXN": "Mex$", "BRL": "R$", "ZAR": "R",
    "KRW": "₩", "THB": "฿", "MYR": "RM", "PLN": "zł",
}

EMPTY_RESPONSE_SNIPPET = '"size":0'


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safely divide two numbers"""
    try:
        return numerator / denominator if denominator != 0 else default
    except (TypeError, ZeroDivisionError):
        return default


def currency_symbol_for(currency: str) -> str:
    """Map an ISO currency code to its display symbol (falls back to the code)"""
    return CURRENCY_SYMBOLS.get(currency, currency)


def format_currency(amount: float, symbol: str = "£") -> str:
    """Format the magnitude of an amount; sign is carried by the wording"""
    return f"{symbol}{abs(amount):.2f}"


def format_signed_currency(amount: float, symbol: str = "£") -> str:
    formatted = format_currency(amount, symbol)
    return f"-{formatted}" if amount < 0 else formatted


def build_outcome_metrics_line(
    baseline: Optional[Dict[str, Any]],
    post: Optional[Dict[str, Any]],
    symbol: str,
) -> Optional[str]:
    """
    Render a before/after line for an evaluated outcome, e.g.
    "Profit per order: -£0.26 → £0.18 · Refund rate: 12% → 6%"
    """
    if not baseline or not post:
        return None

    parts = []
    if baseline.get("net_profit_per_order") is not None and post.get("net_profit_per_order") is not None:
        parts.append(
            f"Profit per order: {format_signed_currency(baseline['net_profit_per_order'], symbol)}"
            f" → {format_signed_currency(post['net_profit_per_order'], symbol)}"
        )
    if baseline.get("refund_rate") is not None and post.get("refund_rate") is not None:
        parts.append(f"Refund rate: {baseline['refund_rate']:.0f}% → {post['refund_rate']:.0f}%")
    if baseline.get("shipping_loss_per_order") is not None and post.get("shipping_loss_per_order") is not None:
        parts.append(
            f"Shipping loss per order: {format_signed_currency(baseline['shipping_loss_per_order'], symbol)}"
            f" → {format_signed_currency(post['shipping_loss_per_order'], symbol)}"
        )

    return " · ".join(parts) if parts else None


def format_refresh_error_message(raw: Any) -> str:
    """Turn whatever a failed refresh raised into a message a merchant can act on"""
    if isinstance(raw, str):
        message = raw
    elif isinstance(raw, Exception):
        message = str(raw)
    else:
        message = json.dumps(raw if raw is not None else "", default=str)

    if EMPTY_RESPONSE_SNIPPET in message:
        return "The store platform returned an empty response. Please retry."

    return message or "Unexpected error during refresh. Please retry."
