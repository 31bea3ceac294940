"""USDC/fiat snapshot pipeline.

Fetches forex quotes and crypto order books, assembles a per-pair snapshot,
persists it behind a debounce, and serves the live view plus a reduced history.
"""

__all__ = [
    "api",
    "db",
    "handler",
    "history",
    "persistence",
    "snapshot",
    "validation",
]
