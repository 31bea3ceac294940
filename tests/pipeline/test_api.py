from __future__ import annotations

import asyncio

import httpx
import pytest

from fx_arb_feed.config import PAIRS, PairConfig
from fx_arb_feed.pipeline.api import (
    PriceLevel,
    book_sides,
    compute_mode,
    fetch_depth,
    fetch_forex_prices,
    map_lines,
)
from fx_arb_feed.pipeline.validation import RawBook


EURUSDC = PairConfig("USDCEUR", "USD/EUR", "EURUSDC", inverted=True)
USDCPLN = PairConfig("USDCPLN", "USD/PLN", "USDCPLN")


def test_map_lines_keeps_first_four_levels():
    rows = [["3.96", "100"], ["3.95", "90"], ["3.94", "80"], ["3.93", "70"], ["3.92", "60"]]
    levels = map_lines(rows)
    assert [lvl.price for lvl in levels] == [3.96, 3.95, 3.94, 3.93]
    assert levels[0] == PriceLevel(price=3.96, volume=100.0)


def test_map_lines_empty_and_malformed():
    assert map_lines(None) == []
    assert map_lines([]) == []
    levels = map_lines([["abc", "1"], ["1.5"], ["2.0", "3.0"]])
    assert levels == [PriceLevel(2.0, 3.0)]


@pytest.mark.parametrize("raw", ["1.0800", "0.5", "1.25", "7.3"])
def test_inverted_levels_are_reciprocal(raw):
    [lvl] = map_lines([[raw, "2.0"]], inverted=True)
    assert lvl.price == pytest.approx(1 / float(raw))
    assert lvl.volume == 2.0


def test_inverted_skips_zero_price():
    assert map_lines([["0", "1"], ["2", "1"]], inverted=True) == [PriceLevel(0.5, 1.0)]


def test_map_lines_drops_non_finite_numbers():
    rows = [["inf", "1"], ["2", "-inf"], ["nan", "1"], ["3", "1"]]
    assert map_lines(rows) == [PriceLevel(3.0, 1.0)]
    assert map_lines([["2", "nan"], ["4", "1"]], inverted=True) == [PriceLevel(0.25, 1.0)]


def test_inverted_pair_swaps_sides():
    book = RawBook(bids=[["1.0800", "50"]], asks=[["1.0900", "40"]])
    bids, asks = book_sides(book, EURUSDC)
    # raw asks feed output bids, raw bids feed output asks
    assert bids[0].price == pytest.approx(1 / 1.09)
    assert bids[0].volume == 40.0
    assert asks[0].price == pytest.approx(1 / 1.08)
    assert asks[0].volume == 50.0


def test_regular_pair_keeps_sides():
    book = RawBook(bids=[["3.96", "1"]], asks=[["3.97", "2"]])
    bids, asks = book_sides(book, USDCPLN)
    assert bids == [PriceLevel(3.96, 1.0)]
    assert asks == [PriceLevel(3.97, 2.0)]
    assert book_sides(None, USDCPLN) == ([], [])


def test_compute_mode_prefers_best_bid():
    bids = [PriceLevel(1.0, 1.0), PriceLevel(2.0, 1.0)]
    asks = [PriceLevel(3.0, 1.0)]
    assert compute_mode(bids, asks) == 1.0
    assert compute_mode([], asks) == 3.0
    assert compute_mode([], []) is None
    # a zero best bid is still the best bid
    assert compute_mode([PriceLevel(0.0, 1.0)], asks) == 0.0


def test_fetch_depth_goes_through_relay(upstream, with_client):
    res = with_client(lambda c: fetch_depth(c, "USDCPLN"))
    assert res.ok
    assert len(res.book.bids) == 5
    assert upstream.depth_calls == ["USDCPLN"]
    assert upstream.user_agents == ["Mozilla/5.0"]


def test_fetch_depth_passes_limit():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        target = httpx.URL(request.url.params["quest"])
        seen.update(target.params)
        return httpx.Response(200, json={"bids": [["1", "1"]], "asks": []})

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetch_depth(client, "USDCRON")

    assert asyncio.run(go()).ok
    assert seen == {"symbol": "USDCRON", "limit": "10"}


def test_fetch_depth_failure_is_isolated(upstream, with_client):
    upstream.failing_symbols.add("USDCRON")
    res = with_client(lambda c: fetch_depth(c, "USDCRON"))
    assert not res.ok and res.book is None
    assert "request failed" in res.reason


def test_fetch_depth_exchange_error(upstream, with_client):
    res = with_client(lambda c: fetch_depth(c, "NOPE"))
    assert not res.ok
    assert "-1121" in res.reason


def test_fetch_forex_prices_batches_symbols(upstream, with_client):
    symbols = [p.forex for p in PAIRS]
    res = with_client(lambda c: fetch_forex_prices(c, symbols, "secret"))
    assert res.ok
    assert res.prices["USD/PLN"] == 3.9512
    assert upstream.forex_calls == 1
    assert upstream.forex_params[0] == {"symbol": "USD/PLN,USD/RON,USD/CZK,USD/EUR", "apikey": "secret"}


def test_fetch_forex_prices_provider_error(upstream, with_client):
    upstream.forex_payload = {"code": 429, "message": "You have run out of API credits", "status": "error"}
    res = with_client(lambda c: fetch_forex_prices(c, ["USD/PLN"], "k"))
    assert not res.ok
    assert "429" in res.reason


def test_fetch_forex_prices_timeout(upstream, with_client):
    upstream.forex_error = httpx.ConnectTimeout("timed out")
    res = with_client(lambda c: fetch_forex_prices(c, ["USD/PLN"], "k"))
    assert not res.ok
