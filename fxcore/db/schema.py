"""Database schema DDL definitions and initialization utilities.

Tables:
  - exchange_rates: rate snapshots, one row per (from, to, created_at);
    automated provider fetches and admin-entered ``manual`` rows side by side
  - metadata: key/value store (schema_version)
"""

from __future__ import annotations
import sqlite3
from typing import Sequence
from pathlib import Path

BASIC_UTC_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"

EXCHANGE_RATES_DDL = """
CREATE TABLE IF NOT EXISTS exchange_rates (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    from_currency TEXT NOT NULL,
    to_currency TEXT NOT NULL,
    rate TEXT NOT NULL, -- Decimal serialized as text, never REAL
    source TEXT NOT NULL, -- provider name or 'manual'
    created_at TEXT NOT NULL, -- ISO timestamp (UTC)
    valid_until TEXT NOT NULL, -- created_at + ttl
    CHECK (from_currency != to_currency),
    UNIQUE(from_currency, to_currency, created_at)
);
"""

METADATA_DDL = f"""
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

RATES_PAIR_INDEX_DDL = (
    "CREATE INDEX IF NOT EXISTS idx_exchange_rates_pair "
    "ON exchange_rates(from_currency, to_currency, created_at);"
)
RATES_CREATED_INDEX_DDL = (
    "CREATE INDEX IF NOT EXISTS idx_exchange_rates_created_at "
    "ON exchange_rates(created_at);"
)

ALL_DDL: Sequence[str] = (
    EXCHANGE_RATES_DDL,
    METADATA_DDL,
    RATES_PAIR_INDEX_DDL,
    RATES_CREATED_INDEX_DDL,
)


def init_db(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        for ddl in ALL_DDL:
            cur.executescript(ddl)
        conn.commit()
    finally:
        conn.close()
