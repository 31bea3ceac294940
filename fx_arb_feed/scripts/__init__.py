"""CLI scripts for inspecting the stored snapshot history.

Scripts:
- check_db: Print the latest stored snapshots as JSON
- export_history_to_csv: Flatten stored snapshots to a per-pair CSV

Usage:
    python -m fx_arb_feed.scripts.check_db --help
    python -m fx_arb_feed.scripts.export_history_to_csv --help
"""

__all__ = [
    "check_db",
    "export_history_to_csv",
]
