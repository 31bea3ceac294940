from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class ForexResult:
    ok: bool
    reason: str
    prices: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class RawBook:
    """Order-book rows exactly as the exchange sent them: [price, volume] strings."""

    bids: List[List[Any]]
    asks: List[List[Any]]


@dataclass(frozen=True)
class DepthResult:
    ok: bool
    reason: str
    book: Optional[RawBook] = None


def _to_float(value: Any) -> Optional[float]:
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(out):
        return None
    return out


def validate_forex_payload(payload: Any, symbols: List[str]) -> ForexResult:
    """Decode a batched price response into {symbol: price}.

    - A top-level ``code`` field is a provider error (the API answers 200 with
      an error body on quota or key problems).
    - A single-symbol request is answered with a bare ``{"price": ...}``.
    - Entries without a parseable price are dropped; no usable entry at all is
      an error.
    """
    if not isinstance(payload, dict):
        return ForexResult(False, "payload is not an object")
    if "code" in payload and payload.get("code") not in (None, 200):
        msg = payload.get("message") or payload.get("status") or "unknown"
        return ForexResult(False, f"provider error {payload.get('code')}: {msg}")

    if "price" in payload and len(symbols) == 1:
        payload = {symbols[0]: payload}

    prices: Dict[str, float] = {}
    for key, val in payload.items():
        if not isinstance(val, dict):
            continue
        price = _to_float(val.get("price"))
        if price is not None:
            prices[key] = price

    if not prices:
        return ForexResult(False, "no quotes in response")
    return ForexResult(True, "ok", prices)


def validate_depth_payload(payload: Any) -> DepthResult:
    if not isinstance(payload, dict):
        return DepthResult(False, "payload is not an object")
    bids = payload.get("bids")
    asks = payload.get("asks")
    if not bids and not asks:
        if "code" in payload or "msg" in payload:
            return DepthResult(False, f"exchange error {payload.get('code')}: {payload.get('msg')}")
        return DepthResult(False, "no bids or asks in response")
    if (bids is not None and not isinstance(bids, list)) or (asks is not None and not isinstance(asks, list)):
        return DepthResult(False, "bids/asks are not lists")
    return DepthResult(True, "ok", RawBook(bids=list(bids or []), asks=list(asks or [])))
