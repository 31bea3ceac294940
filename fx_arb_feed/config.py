from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv


FOREX_URL = "https://api.twelvedata.com/price"
DEPTH_URL = "https://api.binance.com/api/v3/depth"
PROXY_URL = "https://api.codetabs.com/v1/proxy"
BROWSER_USER_AGENT = "Mozilla/5.0"

FOREX_TIMEOUT_S = 5.0
DEPTH_TIMEOUT_S = 8.0
DEPTH_LIMIT = 10
MAX_LEVELS = 4

FOREX_CACHE_TTL_MS = 10 * 60 * 1000
SAVE_DEBOUNCE_S = 50

HISTORY_TARGET = 5000
STORE_PAGE_SIZE = 1000
MAX_HISTORY_PAGES = 50


@dataclass(frozen=True)
class PairConfig:
    id: str
    forex: str
    binance: str
    inverted: bool = False


PAIRS: Tuple[PairConfig, ...] = (
    PairConfig("USDCPLN", "USD/PLN", "USDCPLN"),
    PairConfig("USDCRON", "USD/RON", "USDCRON"),
    PairConfig("USDCCZK", "USD/CZK", "USDCCZK"),
    PairConfig("USDCEUR", "USD/EUR", "EURUSDC", inverted=True),
)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """Process-level settings, loaded once at start-up.

    An unset ``duckdb_path`` leaves the pipeline without a store: reads come
    back empty and saves fail, but quotes are still served.
    """

    twelvedata_api_key: Optional[str] = None
    duckdb_path: Optional[Path] = None
    history_target: int = HISTORY_TARGET
    page_size: int = STORE_PAGE_SIZE
    max_pages: int = MAX_HISTORY_PAGES

    @classmethod
    def from_env(cls, dotenv_path: Optional[Path] = None) -> "Settings":
        load_dotenv(dotenv_path)
        db = os.getenv("FX_ARB_DUCKDB")
        return cls(
            twelvedata_api_key=os.getenv("TWELVEDATA_API_KEY") or None,
            duckdb_path=Path(db) if db else None,
            history_target=_env_int("FX_ARB_HISTORY_TARGET", HISTORY_TARGET),
            page_size=_env_int("FX_ARB_PAGE_SIZE", STORE_PAGE_SIZE),
            max_pages=_env_int("FX_ARB_MAX_PAGES", MAX_HISTORY_PAGES),
        )
