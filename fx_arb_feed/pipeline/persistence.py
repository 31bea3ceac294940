from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ..config import SAVE_DEBOUNCE_S
from .db import HistoryStore, StoreError, utcnow
from .snapshot import FullSnapshot


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaveResult:
    ok: bool
    skipped: bool = False
    reason: Optional[str] = None
    error: Optional[str] = None
    record_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"ok": self.ok}
        if self.skipped:
            out["skipped"] = True
        if self.reason is not None:
            out["reason"] = self.reason
        if self.error is not None:
            out["error"] = self.error
        if self.record_id is not None:
            out["id"] = self.record_id
        return out


def attempt_save(
    store: HistoryStore,
    snapshot: FullSnapshot,
    force: bool = False,
    now: Optional[datetime] = None,
    debounce_s: int = SAVE_DEBOUNCE_S,
) -> SaveResult:
    """Append the snapshot unless another one was written within the debounce window.

    The read-then-write is not atomic: two callers racing inside the window can
    both insert. Store failures come back in the result and are never raised.
    """
    now = now or utcnow()
    try:
        if not force:
            latest = store.select_latest(1)
            if latest:
                age = now - latest[0].created_at
                if age < timedelta(seconds=debounce_s):
                    logger.info("save skipped: last write %.1fs ago", age.total_seconds())
                    return SaveResult(ok=False, skipped=True, reason="debounce")
        rec = store.insert(snapshot.to_dict())
    except StoreError as e:
        logger.error("save failed: %s", e)
        return SaveResult(ok=False, error=str(e))
    logger.info("snapshot saved id=%s", rec.id)
    return SaveResult(ok=True, record_id=rec.id)
