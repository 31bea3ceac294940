from __future__ import annotations

import asyncio
import functools
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

import duckdb  # type: ignore
import pandas as pd

from ..config import STORE_PAGE_SIZE, Settings


TABLE_NAME = "arb_history"

Clock = Callable[[], datetime]


class StoreError(RuntimeError):
    """A read or write against the history store failed."""


class StoreNotConfigured(StoreError):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def run_blocking(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a blocking store call in the default executor so the event loop keeps serving."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))


def _to_naive_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


def _to_aware_utc(ts: Any) -> datetime:
    t = pd.Timestamp(ts)
    if t.tzinfo is None:
        t = t.tz_localize("UTC")
    return t.tz_convert("UTC").to_pydatetime()


@dataclass(frozen=True)
class HistoryRecord:
    id: int
    created_at: datetime  # UTC-aware
    data: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "created_at": self.created_at.isoformat(), "data": self.data}


class HistoryStore(Protocol):
    """Append-only sequence of snapshots, newest first on every read."""

    max_page_size: int

    def insert(self, data: Dict[str, Any]) -> HistoryRecord: ...

    def select_latest(self, n: int) -> List[HistoryRecord]: ...

    def select_since(self, since: datetime) -> List[HistoryRecord]: ...

    def select_page(self, offset: int, size: int) -> List[HistoryRecord]: ...


class DuckDBHistoryStore:
    def __init__(self, path: Path, clock: Optional[Clock] = None, max_page_size: int = STORE_PAGE_SIZE):
        self.path = Path(path)
        self.clock = clock or utcnow
        self.max_page_size = max_page_size

    def _connect(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return duckdb.connect(str(self.path))

    def ensure_table(self) -> None:
        try:
            con = self._connect()
            try:
                con.execute(f"CREATE SEQUENCE IF NOT EXISTS {TABLE_NAME}_id_seq START 1;")
                con.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                      id BIGINT DEFAULT nextval('{TABLE_NAME}_id_seq') PRIMARY KEY,
                      created_at TIMESTAMP NOT NULL,
                      data VARCHAR NOT NULL
                    );
                    """
                )
                con.execute(f"CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_created_at ON {TABLE_NAME}(created_at);")
            finally:
                con.close()
        except duckdb.Error as e:
            raise StoreError(f"ensure_table failed: {e}") from e

    def _select(self, where: str, params: List[Any], tail: str = "") -> List[HistoryRecord]:
        q = f"""
            SELECT id, created_at, data
            FROM {TABLE_NAME}
            {where}
            ORDER BY created_at DESC, id DESC
            {tail}
        """
        try:
            con = self._connect()
            try:
                df = con.execute(q, params).fetch_df()
            finally:
                con.close()
        except duckdb.Error as e:
            raise StoreError(f"select failed: {e}") from e
        return _records_from_frame(df)

    def insert(self, data: Dict[str, Any]) -> HistoryRecord:
        created_at = self.clock()
        try:
            con = self._connect()
            try:
                row = con.execute(
                    f"INSERT INTO {TABLE_NAME} (created_at, data) VALUES (?, ?) RETURNING id;",
                    [_to_naive_utc(created_at), json.dumps(data)],
                ).fetchone()
            finally:
                con.close()
        except (duckdb.Error, TypeError, ValueError) as e:
            raise StoreError(f"insert failed: {e}") from e
        return HistoryRecord(id=int(row[0]), created_at=_to_aware_utc(created_at), data=data)

    def select_latest(self, n: int) -> List[HistoryRecord]:
        return self._select("", [n], "LIMIT ?")

    def select_since(self, since: datetime) -> List[HistoryRecord]:
        return self._select("WHERE created_at >= ?", [_to_naive_utc(since)])

    def select_page(self, offset: int, size: int) -> List[HistoryRecord]:
        size = min(size, self.max_page_size)
        return self._select("", [size, offset], "LIMIT ? OFFSET ?")

    def count(self) -> int:
        try:
            con = self._connect()
            try:
                return int(con.execute(f"SELECT COUNT(*) FROM {TABLE_NAME}").fetchone()[0])
            finally:
                con.close()
        except duckdb.Error as e:
            raise StoreError(f"count failed: {e}") from e


def _records_from_frame(df: pd.DataFrame) -> List[HistoryRecord]:
    records: List[HistoryRecord] = []
    for row in df.itertuples(index=False):
        try:
            data = json.loads(row.data)
        except (TypeError, ValueError):
            data = {}
        records.append(HistoryRecord(id=int(row.id), created_at=_to_aware_utc(row.created_at), data=data))
    return records


class InMemoryHistoryStore:
    """List-backed store with the same ordering rules as the DuckDB one."""

    def __init__(self, clock: Optional[Clock] = None, max_page_size: int = STORE_PAGE_SIZE):
        self.clock = clock or utcnow
        self.max_page_size = max_page_size
        self.records: List[HistoryRecord] = []
        self.inserts = 0

    def _ordered(self) -> List[HistoryRecord]:
        return sorted(self.records, key=lambda r: (r.created_at, r.id), reverse=True)

    def add(self, data: Dict[str, Any], created_at: datetime) -> HistoryRecord:
        """Seed a record at an explicit time (fixtures, imports)."""
        rec = HistoryRecord(id=len(self.records) + 1, created_at=_to_aware_utc(created_at), data=data)
        self.records.append(rec)
        return rec

    def insert(self, data: Dict[str, Any]) -> HistoryRecord:
        self.inserts += 1
        return self.add(data, self.clock())

    def select_latest(self, n: int) -> List[HistoryRecord]:
        return self._ordered()[:n]

    def select_since(self, since: datetime) -> List[HistoryRecord]:
        since = _to_aware_utc(since)
        return [r for r in self._ordered() if r.created_at >= since]

    def select_page(self, offset: int, size: int) -> List[HistoryRecord]:
        size = min(size, self.max_page_size)
        return self._ordered()[offset:offset + size]


class NullHistoryStore:
    """Stand-in when no store is configured: reads are empty, writes fail."""

    max_page_size = STORE_PAGE_SIZE

    def insert(self, data: Dict[str, Any]) -> HistoryRecord:
        raise StoreNotConfigured("history store is not configured")

    def select_latest(self, n: int) -> List[HistoryRecord]:
        return []

    def select_since(self, since: datetime) -> List[HistoryRecord]:
        return []

    def select_page(self, offset: int, size: int) -> List[HistoryRecord]:
        return []


def open_store(settings: Settings, clock: Optional[Clock] = None) -> HistoryStore:
    if settings.duckdb_path is None:
        return NullHistoryStore()
    store = DuckDBHistoryStore(settings.duckdb_path, clock=clock, max_page_size=settings.page_size)
    store.ensure_table()
    return store
