from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..config import HISTORY_TARGET, MAX_HISTORY_PAGES, PAIRS, STORE_PAGE_SIZE, PairConfig
from .db import HistoryRecord, HistoryStore, StoreError


logger = logging.getLogger(__name__)


def fetch_history(
    store: HistoryStore,
    since: Optional[datetime] = None,
    page_size: int = STORE_PAGE_SIZE,
    max_pages: int = MAX_HISTORY_PAGES,
) -> List[HistoryRecord]:
    """Read stored records newest first.

    With ``since`` the whole range comes back from one query. Without it the
    table is walked page by page, stopping on an empty or short page or after
    ``max_pages`` pages.
    """
    if since is not None:
        try:
            return store.select_since(since)
        except StoreError as e:
            logger.error("history read failed: %s", e)
            return []

    page_size = max(1, min(page_size, store.max_page_size))
    out: List[HistoryRecord] = []
    for page_no in range(max_pages):
        try:
            page = store.select_page(len(out), page_size)
        except StoreError as e:
            logger.error("history page %d failed: %s", page_no, e)
            break
        if not page:
            break
        out.extend(page)
        if len(page) < page_size:
            break
    else:
        logger.warning("history scan stopped at %d pages (%d records)", max_pages, len(out))
    return out


def downsample(records: Sequence[HistoryRecord], target: int = HISTORY_TARGET) -> List[HistoryRecord]:
    """Keep every step-th record so that at most ``target`` remain."""
    if target <= 0 or len(records) <= target:
        return list(records)
    step = math.ceil(len(records) / target)
    return list(records[::step])


def _top_volume(levels: Any) -> Optional[float]:
    if isinstance(levels, list) and levels and isinstance(levels[0], dict):
        return levels[0].get("volume")
    return None


def project_record(record: HistoryRecord, pairs: Sequence[PairConfig] = PAIRS) -> Dict[str, Any]:
    data = record.data if isinstance(record.data, dict) else {}
    meta = data.get("meta")
    fx_ts = meta.get("fxTimestamp") if isinstance(meta, dict) else None

    out_pairs: Dict[str, Dict[str, Any]] = {}
    for pair in pairs:
        entry = data.get(pair.id)
        if not isinstance(entry, dict):
            entry = {}
        out_pairs[pair.id] = {
            "forex": entry.get("forex"),
            "cryptoRef": entry.get("cryptoRef"),
            "bid1Vol": _top_volume(entry.get("bids")),
            "ask1Vol": _top_volume(entry.get("asks")),
        }

    return {
        "id": record.id,
        "created_at": record.created_at.isoformat(),
        "fxTimestamp": fx_ts or None,
        "pairs": out_pairs,
    }


def reduce_history(
    records: Sequence[HistoryRecord],
    target: int = HISTORY_TARGET,
    pairs: Sequence[PairConfig] = PAIRS,
) -> List[Dict[str, Any]]:
    return [project_record(r, pairs) for r in downsample(records, target)]


def load_history(
    store: HistoryStore,
    since: Optional[datetime] = None,
    target: int = HISTORY_TARGET,
    page_size: int = STORE_PAGE_SIZE,
    max_pages: int = MAX_HISTORY_PAGES,
    pairs: Sequence[PairConfig] = PAIRS,
) -> List[Dict[str, Any]]:
    records = fetch_history(store, since=since, page_size=page_size, max_pages=max_pages)
    reduced = reduce_history(records, target=target, pairs=pairs)
    logger.debug("history: fetched=%d returned=%d", len(records), len(reduced))
    return reduced
