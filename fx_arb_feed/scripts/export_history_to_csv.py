#!/usr/bin/env python3
from __future__ import annotations

"""
Export stored snapshots to a flat CSV, one row per (record, pair).

Usage:
  python -m fx_arb_feed.scripts.export_history_to_csv \
    --duckdb data/arb_history.duckdb --out data/arb_history.csv --overwrite

Notes:
  - Columns: id, created_at, pair, forex, cryptoRef, bid1, ask1, fxTimestamp
  - created_at is UTC; rows are sorted oldest first
  - By default prevents overwriting unless --overwrite is passed
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import pandas as pd

from fx_arb_feed.config import PAIRS, MAX_HISTORY_PAGES, PairConfig
from fx_arb_feed.pipeline.db import DuckDBHistoryStore, HistoryRecord
from fx_arb_feed.pipeline.history import fetch_history


COLUMNS = ["id", "created_at", "pair", "forex", "cryptoRef", "bid1", "ask1", "fxTimestamp"]


def _top_price(levels) -> Optional[float]:
    if isinstance(levels, list) and levels and isinstance(levels[0], dict):
        return levels[0].get("price")
    return None


def history_to_frame(records: Sequence[HistoryRecord], pairs: Sequence[PairConfig] = PAIRS) -> pd.DataFrame:
    rows: List[dict] = []
    for rec in records:
        meta = rec.data.get("meta") if isinstance(rec.data, dict) else None
        fx_ts = meta.get("fxTimestamp") if isinstance(meta, dict) else None
        for pair in pairs:
            entry = rec.data.get(pair.id) if isinstance(rec.data, dict) else None
            if not isinstance(entry, dict):
                entry = {}
            rows.append({
                "id": rec.id,
                "created_at": pd.Timestamp(rec.created_at).tz_convert(None),
                "pair": pair.id,
                "forex": entry.get("forex"),
                "cryptoRef": entry.get("cryptoRef"),
                "bid1": _top_price(entry.get("bids")),
                "ask1": _top_price(entry.get("asks")),
                "fxTimestamp": fx_ts,
            })
    if not rows:
        return pd.DataFrame(columns=COLUMNS)
    df = pd.DataFrame(rows, columns=COLUMNS)
    return df.sort_values(["created_at", "id", "pair"], kind="mergesort").reset_index(drop=True)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Export stored snapshots to CSV")
    parser.add_argument("--duckdb", type=Path, required=True, help="Path to DuckDB file")
    parser.add_argument("--out", type=Path, default=Path("data") / "arb_history.csv", help="Output CSV path")
    parser.add_argument("--max-pages", type=int, default=MAX_HISTORY_PAGES, help="Page ceiling for the history scan")
    parser.add_argument("--overwrite", action="store_true", help="Allow overwriting existing output file")
    args = parser.parse_args(argv)

    out_path: Path = args.out
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if out_path.exists() and not args.overwrite:
        print(f"ERROR: Output exists: {out_path}. Pass --overwrite to replace.")
        return 2

    store = DuckDBHistoryStore(args.duckdb)
    store.ensure_table()
    records = fetch_history(store, page_size=store.max_page_size, max_pages=args.max_pages)
    df = history_to_frame(records)
    if df.empty:
        print("WARN: No rows fetched from DuckDB; writing empty CSV with header.")

    df.to_csv(out_path, index=False)
    if not df.empty:
        print(f"Wrote {len(df):,} rows to {out_path}")
        print(f"Range: {df['created_at'].iloc[0]} .. {df['created_at'].iloc[-1]}")
    else:
        print(f"Wrote empty CSV to {out_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
