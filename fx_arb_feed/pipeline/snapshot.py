from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from ..config import FOREX_CACHE_TTL_MS, PAIRS, PairConfig
from .api import PriceLevel, book_sides, compute_mode, fetch_depth, fetch_forex_prices
from .db import HistoryRecord, HistoryStore, StoreError, run_blocking, utcnow


logger = logging.getLogger(__name__)


def to_epoch_ms(ts: datetime) -> int:
    return int(ts.timestamp() * 1000)


@dataclass(frozen=True)
class ForexQuote:
    prices: Optional[Dict[str, float]]
    fx_timestamp: int
    source: str  # "cache", "api", "stale-cache" or "none"


@dataclass(frozen=True)
class PairSnapshot:
    forex: Optional[float]
    bids: List[PriceLevel]
    asks: List[PriceLevel]
    crypto_ref: Optional[float]

    @property
    def resolved(self) -> bool:
        return self.forex is not None or self.crypto_ref is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "forex": self.forex,
            "bids": [lvl.to_dict() for lvl in self.bids],
            "asks": [lvl.to_dict() for lvl in self.asks],
            "cryptoRef": self.crypto_ref,
        }


@dataclass(frozen=True)
class FullSnapshot:
    fx_timestamp: int
    prices: Optional[Dict[str, float]]
    pairs: Dict[str, PairSnapshot] = field(default_factory=dict)

    @property
    def resolved_count(self) -> int:
        return sum(1 for p in self.pairs.values() if p.resolved)

    @property
    def is_persistable(self) -> bool:
        return self.resolved_count > 0

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "meta": {"fxTimestamp": self.fx_timestamp},
            "prices": self.prices,
        }
        for pair_id, snap in self.pairs.items():
            out[pair_id] = snap.to_dict()
        return out


async def _latest_record(store: HistoryStore) -> Optional[HistoryRecord]:
    try:
        latest = await run_blocking(store.select_latest, 1)
    except StoreError as e:
        logger.error("store read failed, continuing without cache: %s", e)
        return None
    return latest[0] if latest else None


def _cached_forex(record: Optional[HistoryRecord]) -> Tuple[Optional[Dict[str, float]], int]:
    if record is None:
        return None, 0
    meta = record.data.get("meta")
    ts = 0
    if isinstance(meta, dict):
        try:
            ts = int(meta.get("fxTimestamp") or 0)
        except (TypeError, ValueError):
            ts = 0
    prices = record.data.get("prices")
    return (prices if isinstance(prices, dict) else None), ts


async def get_forex_quote(
    store: HistoryStore,
    client: httpx.AsyncClient,
    api_key: Optional[str],
    pairs: Sequence[PairConfig] = PAIRS,
    now: Optional[datetime] = None,
) -> ForexQuote:
    """Return forex prices, reusing the last stored set while it is fresh.

    The forex API is metered, so a stored quote younger than the cache TTL is
    served as-is. When the API call fails, the last stored prices are served
    whatever their age.
    """
    now_ms = to_epoch_ms(now or utcnow())
    cached_prices, cached_ts = _cached_forex(await _latest_record(store))

    if cached_ts and now_ms - cached_ts < FOREX_CACHE_TTL_MS:
        logger.info("forex cache hit (age %ds)", (now_ms - cached_ts) // 1000)
        return ForexQuote(cached_prices, cached_ts, "cache")

    result = await fetch_forex_prices(client, [p.forex for p in pairs], api_key)
    if result.ok:
        return ForexQuote(result.prices, now_ms, "api")
    if cached_prices is not None:
        logger.warning("forex unavailable (%s), serving stale prices from %d", result.reason, cached_ts)
        return ForexQuote(cached_prices, cached_ts, "stale-cache")
    return ForexQuote(None, 0, "none")


async def build_pair(
    client: httpx.AsyncClient,
    pair: PairConfig,
    prices: Optional[Dict[str, float]],
) -> Tuple[str, PairSnapshot]:
    fx = prices.get(pair.forex) if prices else None
    depth = await fetch_depth(client, pair.binance)
    bids, asks = book_sides(depth.book if depth.ok else None, pair)
    return pair.id, PairSnapshot(forex=fx, bids=bids, asks=asks, crypto_ref=compute_mode(bids, asks))


async def assemble_snapshot(
    client: httpx.AsyncClient,
    quote: ForexQuote,
    pairs: Sequence[PairConfig] = PAIRS,
) -> FullSnapshot:
    """Fetch every pair's book concurrently and merge with the forex quote."""
    results = await asyncio.gather(*(build_pair(client, pair, quote.prices) for pair in pairs))
    snapshot = FullSnapshot(fx_timestamp=quote.fx_timestamp, prices=quote.prices, pairs=dict(results))
    logger.debug("snapshot assembled: %d/%d pairs resolved", snapshot.resolved_count, len(pairs))
    return snapshot
