"""
Ranking helpers over a set of price quotes.

All functions are pure and recomputed from the full quote list on every
call. Ties are broken by encounter order (Python's sort is stable).
"""

import re
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from models.models import PriceQuote

# Leading integer, optional "-N" range, then a unit word: "2-3 days", "1 day".
_DELIVERY_TIME_RE = re.compile(r"(\d+)(?:-(\d+))?\s+(\w+)")

UNKNOWN_DELIVERY_TIME = 999

# Tunable policy: one day of delivery weighs as much as 1000 currency units.
PRICE_WEIGHT_DIVISOR = 500
TIME_WEIGHT = 2


def delivery_time_value(delivery_time: Optional[str]) -> int:
    """Lower bound of a delivery estimate, UNKNOWN_DELIVERY_TIME when unparseable."""
    if not delivery_time:
        return UNKNOWN_DELIVERY_TIME
    match = _DELIVERY_TIME_RE.search(delivery_time)
    if not match:
        return UNKNOWN_DELIVERY_TIME
    return int(match.group(1))


def _final_charge(quote: PriceQuote) -> float:
    if quote.final_charge is None:
        return float("inf")
    return float(quote.final_charge)


def score(quote: PriceQuote) -> float:
    """Weighted price/speed score, lower is better."""
    return _final_charge(quote) / PRICE_WEIGHT_DIVISOR + delivery_time_value(quote.delivery_time) * TIME_WEIGHT


def cheapest(quotes: Iterable[PriceQuote]) -> Optional[PriceQuote]:
    ordered = sorted(quotes, key=_final_charge)
    return ordered[0] if ordered else None


def fastest(quotes: Iterable[PriceQuote]) -> Optional[PriceQuote]:
    ordered = sorted(quotes, key=lambda q: delivery_time_value(q.delivery_time))
    return ordered[0] if ordered else None


def best(quotes: Iterable[PriceQuote]) -> Optional[PriceQuote]:
    ordered = sorted(quotes, key=score)
    return ordered[0] if ordered else None


def filter_by_price_range(quotes: Iterable[PriceQuote], low: float = 0,
                          high: float = 5000) -> List[PriceQuote]:
    """Quotes whose final charge lies in [low, high]; quotes without one are dropped."""
    low, high = Decimal(str(low)), Decimal(str(high))
    return [
        q for q in quotes
        if q.final_charge is not None and low <= q.final_charge <= high
    ]


def summarize(quotes: Iterable[PriceQuote]) -> Dict[str, Optional[PriceQuote]]:
    quotes = list(quotes)
    return {
        "cheapest": cheapest(quotes),
        "fastest": fastest(quotes),
        "best": best(quotes),
    }
