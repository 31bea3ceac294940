"""FX Arb Feed - USDC vs. forex price snapshots.

Provides:
- Forex + order-book snapshot pipeline with a DuckDB history store
- Cron runner CLI and an HTTP endpoint
- Scripts for inspecting and exporting stored history
"""

__version__ = "0.1.0"

__all__ = ["pipeline", "scripts", "__version__"]
