"""HTTP surface: one GET endpoint in front of the request handler."""

from __future__ import annotations

import argparse
import logging
import os
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import Settings
from .db import HistoryStore, open_store
from .handler import handle_request


logger = logging.getLogger(__name__)

API_PATHS = ("/api", "/.netlify/functions/api")


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[HistoryStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    store = store if store is not None else open_store(settings)

    app = FastAPI(title="FX Arb Feed", version=__version__)

    async def snapshot_endpoint(request: Request) -> JSONResponse:
        async with httpx.AsyncClient(transport=transport) as client:
            resp = await handle_request(dict(request.query_params), store, client, settings)
        return JSONResponse(resp.body, status_code=resp.status_code, headers=resp.headers)

    for path in API_PATHS:
        app.add_api_route(path, snapshot_endpoint, methods=["GET"])
    return app


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(description="Serve live USDC/fiat snapshots and history")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=int(os.getenv("DEV_PORT", "3000")))
    p.add_argument("--debug", action="store_true", help="Verbose logging")
    args = p.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO, format="[%(levelname)s] %(message)s")
    app = create_app()
    logger.info("serving on http://%s:%d%s", args.host, args.port, API_PATHS[0])
    uvicorn.run(app, host=args.host, port=args.port, log_level="debug" if args.debug else "info")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
