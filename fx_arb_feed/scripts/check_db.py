#!/usr/bin/env python3
from __future__ import annotations

"""
Print the most recent snapshots stored in the history table.

Usage:
  python -m fx_arb_feed.scripts.check_db --duckdb data/arb_history.duckdb --limit 5
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from fx_arb_feed.config import Settings
from fx_arb_feed.pipeline.db import DuckDBHistoryStore, StoreError


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Show the latest stored snapshots")
    parser.add_argument("--duckdb", type=Path, default=None, help="Path to DuckDB file (defaults to FX_ARB_DUCKDB)")
    parser.add_argument("--limit", type=int, default=5, help="Number of rows to show")
    args = parser.parse_args(argv)

    db_path = args.duckdb or Settings.from_env().duckdb_path
    if db_path is None:
        print("ERROR: no store configured; pass --duckdb or set FX_ARB_DUCKDB", file=sys.stderr)
        return 1
    if not Path(db_path).exists():
        print(f"ERROR: DuckDB file not found: {db_path}", file=sys.stderr)
        return 1

    store = DuckDBHistoryStore(Path(db_path))
    try:
        rows = store.select_latest(args.limit)
    except StoreError as e:
        print(f"ERROR: select failed: {e}", file=sys.stderr)
        return 1

    print(f"Latest rows (count): {len(rows)}")
    print(json.dumps([r.to_dict() for r in rows], indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
