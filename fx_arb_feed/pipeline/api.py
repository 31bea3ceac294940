from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlencode

import httpx

from ..config import (
    BROWSER_USER_AGENT,
    DEPTH_LIMIT,
    DEPTH_TIMEOUT_S,
    DEPTH_URL,
    FOREX_TIMEOUT_S,
    FOREX_URL,
    MAX_LEVELS,
    PROXY_URL,
    PairConfig,
)
from .validation import DepthResult, ForexResult, RawBook, validate_depth_payload, validate_forex_payload


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceLevel:
    price: float
    volume: float

    def to_dict(self) -> Dict[str, float]:
        return {"price": self.price, "volume": self.volume}


def _build_depth_url(symbol: str, limit: int = DEPTH_LIMIT) -> str:
    qs = urlencode({"symbol": symbol, "limit": limit})
    return f"{DEPTH_URL}?{qs}"


async def fetch_forex_prices(
    client: httpx.AsyncClient,
    symbols: Sequence[str],
    api_key: Optional[str],
    timeout: float = FOREX_TIMEOUT_S,
) -> ForexResult:
    """Fetch the latest price for every symbol in one batched request."""
    params = {"symbol": ",".join(symbols), "apikey": api_key or ""}
    try:
        resp = await client.get(FOREX_URL, params=params, timeout=timeout)
        resp.raise_for_status()
        payload = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("forex request failed: %s", e)
        return ForexResult(False, f"request failed: {e}")
    result = validate_forex_payload(payload, list(symbols))
    if not result.ok:
        logger.warning("forex response rejected: %s", result.reason)
    return result


async def fetch_depth(
    client: httpx.AsyncClient,
    symbol: str,
    timeout: float = DEPTH_TIMEOUT_S,
) -> DepthResult:
    """Fetch the top of one order book through the CORS relay."""
    params = {"quest": _build_depth_url(symbol)}
    headers = {"User-Agent": BROWSER_USER_AGENT}
    try:
        resp = await client.get(PROXY_URL, params=params, headers=headers, timeout=timeout)
        resp.raise_for_status()
        payload = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("depth request for %s failed: %s", symbol, e)
        return DepthResult(False, f"request failed: {e}")
    result = validate_depth_payload(payload)
    if not result.ok:
        logger.warning("depth response for %s rejected: %s", symbol, result.reason)
    return result


def map_lines(rows: Optional[List[Any]], inverted: bool = False) -> List[PriceLevel]:
    """Map raw [price, volume] rows into at most MAX_LEVELS price levels.

    Inverted pairs quote the reciprocal price. Malformed rows are dropped, as
    are zero prices on inverted pairs and non-finite numbers.
    """
    if not rows:
        return []
    levels: List[PriceLevel] = []
    for row in rows[:MAX_LEVELS]:
        try:
            price = float(row[0])
            volume = float(row[1])
        except (TypeError, ValueError, IndexError):
            continue
        if inverted:
            if price == 0:
                continue
            price = 1 / price
        if not (math.isfinite(price) and math.isfinite(volume)):
            continue
        levels.append(PriceLevel(price=price, volume=volume))
    return levels


def book_sides(book: Optional[RawBook], pair: PairConfig) -> Tuple[List[PriceLevel], List[PriceLevel]]:
    """Return (bids, asks) for the pair, swapping sides on inverted markets."""
    if book is None:
        return [], []
    if pair.inverted:
        return map_lines(book.asks, True), map_lines(book.bids, True)
    return map_lines(book.bids), map_lines(book.asks)


def compute_mode(bids: List[PriceLevel], asks: List[PriceLevel]) -> Optional[float]:
    if bids:
        return bids[0].price
    if asks:
        return asks[0].price
    return None
