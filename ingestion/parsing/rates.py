"""Free-text rate parsing.

Turns the text scraped from a quote widget into a buy/sell pair. The parser is
pure: it never raises for bad input and returns a ``ParseFailure`` instead.

Strategies, first match wins:

1. labeled tokens (``Compra: 6,86  Venta: 6,96``),
2. numeric runs: two or more runs are buy then sell, a single run is taken as
   a midpoint and widened by a synthetic 1% spread when it falls inside the
   configured plausibility band.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Optional, Union

SINGLE_VALUE_BUY_FACTOR = 0.995
SINGLE_VALUE_SELL_FACTOR = 1.005

_LABEL_GAP = r"\s*[:=\-]?\s*(?:bs\.?|\$|usd)?\s*"
_NUMBER = r"(\d[\d.,]*)"
_BUY_RE = re.compile(r"\b(?:compra|buy)\b" + _LABEL_GAP + _NUMBER, re.IGNORECASE)
_SELL_RE = re.compile(r"\b(?:venta|sell)\b" + _LABEL_GAP + _NUMBER, re.IGNORECASE)
_NOT_NUMERIC_RE = re.compile(r"[^\d.,\s]")
_RUN_RE = re.compile(r"[\d.,]*\d[\d.,]*")


@dataclass(frozen=True)
class RatePlausibilityBand:
    """Open interval a lone midpoint must fall in; ``None`` leaves a side unbounded."""

    minimum: Optional[float] = None
    maximum: Optional[float] = None

    def contains(self, value: float) -> bool:
        if self.minimum is not None and value <= self.minimum:
            return False
        if self.maximum is not None and value >= self.maximum:
            return False
        return True


@dataclass(frozen=True)
class ParsedRate:
    buy: float
    sell: float
    strategy: str


@dataclass(frozen=True)
class ParseFailure:
    reason: str
    text: str

    def __bool__(self) -> bool:
        return False


ParseResult = Union[ParsedRate, ParseFailure]


def to_number(token: str) -> Optional[float]:
    """Convert a numeric run to float, treating every comma as a decimal point."""
    cleaned = token.strip(".,").replace(",", ".")
    if not cleaned:
        return None
    try:
        value = float(cleaned)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def numeric_runs(text: str) -> list[str]:
    stripped = _NOT_NUMERIC_RE.sub("", text)
    return _RUN_RE.findall(stripped)


def parse_rate_text(text: str, *, band: Optional[RatePlausibilityBand] = None) -> ParseResult:
    text = (text or "").strip()
    if not text:
        return ParseFailure("empty text", text)

    buy_match = _BUY_RE.search(text)
    sell_match = _SELL_RE.search(text)
    if buy_match and sell_match:
        buy = to_number(buy_match.group(1))
        sell = to_number(sell_match.group(1))
        if buy is not None and sell is not None:
            return _checked(buy, sell, "labeled", text)

    runs = numeric_runs(text)
    if not runs:
        return ParseFailure("no numeric content", text)

    if len(runs) >= 2:
        buy = to_number(runs[0])
        sell = to_number(runs[1])
        if buy is None or sell is None:
            return ParseFailure("unparseable numeric runs", text)
        return _checked(buy, sell, "pair", text)

    mid = to_number(runs[0])
    if mid is None:
        return ParseFailure("unparseable numeric run", text)
    if band is not None and not band.contains(mid):
        return ParseFailure(f"single value {mid} outside plausible band", text)
    return _checked(mid * SINGLE_VALUE_BUY_FACTOR, mid * SINGLE_VALUE_SELL_FACTOR, "midpoint", text)


def _checked(buy: float, sell: float, strategy: str, text: str) -> ParseResult:
    if buy <= 0 or sell <= 0:
        return ParseFailure("non-positive price", text)
    if sell < buy:
        return ParseFailure(f"sell {sell} lower than buy {buy}", text)
    return ParsedRate(buy=buy, sell=sell, strategy=strategy)
