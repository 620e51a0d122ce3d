"""Rate store migrations.

The metadata table records ``schema_version``; ``apply_migrations`` brings an
existing database up to ``CURRENT_SCHEMA_VERSION`` one step at a time. Steps
only touch ``exchange_rates`` and must be safe to re-run.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Callable, Dict, Optional

from fxcore.models.constants import RESTRICTED_CURRENCIES
from . import schema as schema_def
from .schema import init_db

logger = logging.getLogger("fxcore.db.migrate")

CURRENT_SCHEMA_VERSION = 3
SCHEMA_VERSION_KEY = "schema_version"


def _get_schema_version(conn: sqlite3.Connection) -> Optional[int]:
    try:
        row = conn.execute(
            "SELECT value FROM metadata WHERE key=?", (SCHEMA_VERSION_KEY,)
        ).fetchone()
    except sqlite3.OperationalError:
        # metadata table missing on a pre-versioned database
        return None
    return int(row[0]) if row else None


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute(
        "INSERT INTO metadata (key, value) VALUES (?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value=excluded.value, "
        f"updated_at=({schema_def.BASIC_UTC_NOW})",
        (SCHEMA_VERSION_KEY, str(version)),
    )


def _migrate_to_v2(conn: sqlite3.Connection) -> None:
    """Index on source so manual-rate listing avoids a table scan."""
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_exchange_rates_source "
        "ON exchange_rates(source)"
    )


def _migrate_to_v3(conn: sqlite3.Connection) -> None:
    """Upper-case legacy currency codes and purge restricted-currency rows."""
    conn.execute(
        """
        UPDATE OR IGNORE exchange_rates
        SET from_currency = UPPER(from_currency), to_currency = UPPER(to_currency)
        WHERE from_currency != UPPER(from_currency) OR to_currency != UPPER(to_currency)
        """
    )
    # rows left behind collided with an existing upper-case row
    conn.execute(
        "DELETE FROM exchange_rates "
        "WHERE from_currency != UPPER(from_currency) OR to_currency != UPPER(to_currency)"
    )
    codes = sorted(RESTRICTED_CURRENCIES)
    marks = ",".join("?" for _ in codes)
    cur = conn.execute(
        f"DELETE FROM exchange_rates WHERE from_currency IN ({marks}) "
        f"OR to_currency IN ({marks})",
        (*codes, *codes),
    )
    if cur.rowcount:
        logger.warning("purged %d restricted-currency rates", cur.rowcount)


MIGRATIONS: Dict[int, Callable[[sqlite3.Connection], None]] = {
    2: _migrate_to_v2,
    3: _migrate_to_v3,
}


def apply_migrations(db_path: Path) -> int:
    """Create missing tables, run pending steps and return the resulting version."""
    init_db(db_path)
    conn = sqlite3.connect(db_path)
    try:
        version = _get_schema_version(conn) or 1
        for target in sorted(MIGRATIONS):
            if version >= target:
                continue
            try:
                MIGRATIONS[target](conn)
                _set_schema_version(conn, target)
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            logger.info("rate store migrated to schema v%d", target)
            version = target
        if _get_schema_version(conn) is None:
            _set_schema_version(conn, version)
            conn.commit()
        return version
    finally:
        conn.close()
