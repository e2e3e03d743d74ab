"""
Shared numeric primitives.
"""

from arbengine.errors import InvalidInput


# Monetary figures are rounded to this many decimals everywhere
MONEY_DECIMALS = 6


def to_precision(value: float, decimals: int = MONEY_DECIMALS) -> float:
    """Round a figure to fixed precision so cross-component comparisons are stable."""
    return round(value, decimals)


def spread_percentage(price_a: float, price_b: float) -> float:
    """Relative difference between two prices, in percent of the lower one."""
    if price_a is None or price_b is None or price_a <= 0 or price_b <= 0:
        raise InvalidInput(
            f"Prices must be positive for spread calculation (got {price_a}, {price_b})"
        )
    return abs(price_b - price_a) / min(price_a, price_b) * 100


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))
