from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from fx_arb_feed.pipeline.db import InMemoryHistoryStore, StoreError


NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

FOREX_PAYLOAD = {
    "USD/PLN": {"price": "3.9512"},
    "USD/RON": {"price": "4.5501"},
    "USD/CZK": {"price": "23.1100"},
    "USD/EUR": {"price": "0.9201"},
}

BOOKS = {
    "USDCPLN": {
        "bids": [["3.9600", "100.0"], ["3.9590", "90.0"], ["3.9580", "80.0"], ["3.9570", "70.0"], ["3.9560", "60.0"]],
        "asks": [["3.9650", "10.0"], ["3.9660", "20.0"]],
    },
    "USDCRON": {"bids": [["4.5600", "5.0"]], "asks": [["4.5700", "6.0"]]},
    "USDCCZK": {"bids": [], "asks": [["23.2000", "1.5"]]},
    "EURUSDC": {"bids": [["1.0800", "50.0"]], "asks": [["1.0900", "40.0"]]},
}


class FakeUpstream:
    """Routes forex and relay requests to canned payloads and records every call."""

    def __init__(self):
        self.forex_payload: Any = FOREX_PAYLOAD
        self.forex_error: Optional[Exception] = None
        self.books: Dict[str, Any] = dict(BOOKS)
        self.failing_symbols: set = set()
        self.forex_calls = 0
        self.forex_params: List[Dict[str, str]] = []
        self.depth_calls: List[str] = []
        self.user_agents: List[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.twelvedata.com":
            self.forex_calls += 1
            self.forex_params.append(dict(request.url.params))
            if self.forex_error is not None:
                raise self.forex_error
            return httpx.Response(200, json=self.forex_payload)
        if request.url.host == "api.codetabs.com":
            target = httpx.URL(request.url.params["quest"])
            symbol = target.params["symbol"]
            self.depth_calls.append(symbol)
            self.user_agents.append(request.headers.get("user-agent", ""))
            if symbol in self.failing_symbols:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, json=self.books.get(symbol, {"code": -1121, "msg": "Invalid symbol."}))
        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class BrokenStore(InMemoryHistoryStore):
    def __init__(self, fail_reads: bool = True, fail_writes: bool = True, **kw):
        super().__init__(**kw)
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    def select_latest(self, n):
        if self.fail_reads:
            raise StoreError("connection refused")
        return super().select_latest(n)

    def select_page(self, offset, size):
        if self.fail_reads:
            raise StoreError("connection refused")
        return super().select_page(offset, size)

    def select_since(self, since):
        if self.fail_reads:
            raise StoreError("connection refused")
        return super().select_since(since)

    def insert(self, data):
        if self.fail_writes:
            raise StoreError("disk full")
        return super().insert(data)


def snapshot_data(fx_ts: int, forex: Optional[float] = 3.95, crypto_ref: Optional[float] = 3.96) -> Dict[str, Any]:
    """A stored payload shaped like FullSnapshot.to_dict()."""
    data: Dict[str, Any] = {
        "meta": {"fxTimestamp": fx_ts},
        "prices": {"USD/PLN": 3.95, "USD/RON": 4.55, "USD/CZK": 23.11, "USD/EUR": 0.92},
    }
    for pid in ("USDCPLN", "USDCRON", "USDCCZK", "USDCEUR"):
        data[pid] = {
            "forex": forex,
            "bids": [{"price": crypto_ref, "volume": 12.0}] if crypto_ref is not None else [],
            "asks": [{"price": 4.0, "volume": 3.0}],
            "cryptoRef": crypto_ref,
        }
    return data


