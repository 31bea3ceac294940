from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Sequence

import httpx

from ..config import PAIRS, PairConfig, Settings
from .db import HistoryStore, run_blocking
from .history import load_history
from .persistence import SaveResult, attempt_save
from .snapshot import assemble_snapshot, get_forex_quote


logger = logging.getLogger(__name__)

CRON_STATUS = "Cron executed"
JSON_HEADERS = {"Content-Type": "application/json"}
CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}


@dataclass(frozen=True)
class RequestParams:
    cron: bool = False
    force: bool = False
    since: Optional[datetime] = None

    @classmethod
    def from_query(cls, query: Mapping[str, Any]) -> "RequestParams":
        since = None
        raw_since = query.get("since")
        if raw_since not in (None, ""):
            try:
                since = datetime.fromtimestamp(int(raw_since) / 1000, tz=timezone.utc)
            except (TypeError, ValueError, OverflowError, OSError):
                logger.warning("ignoring invalid since=%r", raw_since)
        return cls(
            cron=query.get("cron") == "true",
            force=query.get("force") == "true",
            since=since,
        )


@dataclass(frozen=True)
class HandlerResponse:
    status_code: int
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)


async def handle_request(
    query: Mapping[str, Any],
    store: HistoryStore,
    client: httpx.AsyncClient,
    settings: Settings,
    pairs: Sequence[PairConfig] = PAIRS,
    now: Optional[datetime] = None,
) -> HandlerResponse:
    """Build a fresh snapshot, persist it if due, and answer the caller.

    Scheduled callers (``cron=true``) get a small status body; everyone else
    gets the live snapshot plus the reduced history.
    """
    params = RequestParams.from_query(query)

    quote = await get_forex_quote(store, client, settings.twelvedata_api_key, pairs=pairs, now=now)
    snapshot = await assemble_snapshot(client, quote, pairs=pairs)

    if snapshot.is_persistable:
        saved = await run_blocking(attempt_save, store, snapshot, force=params.force, now=now)
    else:
        logger.warning("no pair resolved, snapshot not persisted")
        saved = SaveResult(ok=False, skipped=True, reason="empty")

    if params.cron:
        body = {"status": CRON_STATUS, "saved": saved.ok, "savedResult": saved.to_dict()}
        return HandlerResponse(200, body, dict(JSON_HEADERS))

    history = await run_blocking(
        load_history,
        store,
        since=params.since,
        target=settings.history_target,
        page_size=settings.page_size,
        max_pages=settings.max_pages,
        pairs=pairs,
    )
    body = {"live": snapshot.to_dict(), "history": history}
    return HandlerResponse(200, body, {**JSON_HEADERS, **CORS_HEADERS})
