"""Project-wide constants with environment overrides for deployment values."""
from __future__ import annotations

import os
from pathlib import Path

GRID_ROWS = 300
GRID_COLS = 50
FIXED_COLUMN_COUNT = 9
DAYS_PER_SUBTOTAL = 7

DEBOUNCE_SECONDS = 0.8
RETRY_MAX_ATTEMPTS = 5
RETRY_MAX_DELAY = 30.0

APP_DIR = Path(os.getenv("LEDGERGRID_HOME") or Path.home() / ".ledgergrid")
DB_PATH = Path(os.getenv("LEDGERGRID_DB") or APP_DIR / "documents.db")
LOCAL_SHEETS_DIR = APP_DIR / "sheets"


def primary_identities() -> dict[str, str]:
    """Return the designated primary identity per format, from the environment."""
    out = {}
    for fmt in ("weekly", "daily"):
        value = os.getenv(f"LEDGERGRID_PRIMARY_{fmt.upper()}", "").strip()
        if value:
            out[fmt] = value
    return out


__all__ = [
    "GRID_ROWS",
    "GRID_COLS",
    "FIXED_COLUMN_COUNT",
    "DAYS_PER_SUBTOTAL",
    "DEBOUNCE_SECONDS",
    "RETRY_MAX_ATTEMPTS",
    "RETRY_MAX_DELAY",
    "APP_DIR",
    "DB_PATH",
    "LOCAL_SHEETS_DIR",
    "primary_identities",
]
