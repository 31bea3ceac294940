from __future__ import annotations

import asyncio
from datetime import datetime

import httpx
import pytest

from fx_arb_feed.pipeline.db import InMemoryHistoryStore

from fakes import NOW, FakeUpstream


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def store(now) -> InMemoryHistoryStore:
    return InMemoryHistoryStore(clock=lambda: now)


@pytest.fixture
def with_client(upstream):
    """Run ``fn(client)`` inside an event loop with the fake upstream wired in."""

    def run(fn):
        async def go():
            async with httpx.AsyncClient(transport=upstream.transport) as client:
                return await fn(client)

        return asyncio.run(go())

    return run
