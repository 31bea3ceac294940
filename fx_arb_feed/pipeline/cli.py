from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from ..config import Settings
from .db import HistoryStore, open_store
from .handler import HandlerResponse, handle_request


logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_S = 61


@dataclass
class RunConfig:
    duckdb_path: Optional[Path] = None
    force: bool = False
    loop: bool = False
    interval_s: int = DEFAULT_INTERVAL_S
    debug: bool = False


async def _call_handler(
    cfg: RunConfig,
    settings: Settings,
    store: HistoryStore,
    transport: Optional[httpx.AsyncBaseTransport],
) -> HandlerResponse:
    query = {"cron": "true"}
    if cfg.force:
        query["force"] = "true"
    async with httpx.AsyncClient(transport=transport) as client:
        return await handle_request(query, store, client, settings)


def run_once(
    cfg: RunConfig,
    settings: Optional[Settings] = None,
    store: Optional[HistoryStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    settings = settings or Settings.from_env()
    if cfg.duckdb_path is not None:
        settings = dataclasses.replace(settings, duckdb_path=cfg.duckdb_path)
    store = store if store is not None else open_store(settings)

    resp = asyncio.run(_call_handler(cfg, settings, store, transport))
    result = resp.body.get("savedResult", {})

    print(
        f"status={resp.body.get('status')} saved={resp.body.get('saved')} "
        f"skipped={result.get('skipped', False)} reason={result.get('reason')} "
        f"error={result.get('error')} id={result.get('id')}"
    )
    if result.get("error") or result.get("reason") == "empty":
        return 1
    return 0


def run_loop(
    cfg: RunConfig,
    settings: Optional[Settings] = None,
    store: Optional[HistoryStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    max_ticks: Optional[int] = None,
    sleep=time.sleep,
) -> int:
    """Call the handler every ``interval_s`` seconds; a failing tick does not stop the loop."""
    settings = settings or Settings.from_env()
    if cfg.duckdb_path is not None:
        settings = dataclasses.replace(settings, duckdb_path=cfg.duckdb_path)
    store = store if store is not None else open_store(settings)

    logger.info("starting loop every %d sec", cfg.interval_s)
    ticks = 0
    while max_ticks is None or ticks < max_ticks:
        if ticks:
            sleep(cfg.interval_s)
        ticks += 1
        try:
            run_once(cfg, settings=settings, store=store, transport=transport)
        except Exception as e:  # keep the schedule alive
            logger.error("tick %d failed: %s", ticks, e)
            if cfg.debug:
                raise
    return 0


def parse_args(argv: Optional[list[str]] = None) -> RunConfig:
    p = argparse.ArgumentParser(description="Poll forex and order-book feeds and store a snapshot")
    mode = p.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="Run a single tick (default)")
    mode.add_argument("--loop", action="store_true", help="Run forever, one tick per interval")
    p.add_argument("--interval", "-i", type=int, default=DEFAULT_INTERVAL_S, help="Seconds between ticks in --loop mode")
    p.add_argument("--force", action="store_true", help="Bypass the save debounce")
    p.add_argument("--duckdb", type=Path, default=None, help="Path to DuckDB file (overrides FX_ARB_DUCKDB)")
    p.add_argument("--debug", action="store_true", help="Verbose logging")
    args = p.parse_args(argv)

    if args.interval <= 0:
        p.error("--interval must be positive")

    return RunConfig(
        duckdb_path=args.duckdb,
        force=args.force,
        loop=args.loop,
        interval_s=args.interval,
        debug=args.debug,
    )


def main(argv: Optional[list[str]] = None) -> int:
    cfg = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if cfg.debug else logging.INFO, format="[%(levelname)s] %(message)s")
    try:
        if cfg.loop:
            return run_loop(cfg)
        return run_once(cfg)
    except KeyboardInterrupt:
        return 0
    except Exception as e:  # surface clear error message
        print(f"[ERROR] {e}", file=sys.stderr)
        if cfg.debug:
            raise
        return 3


if __name__ == "__main__":
    raise SystemExit(main())
