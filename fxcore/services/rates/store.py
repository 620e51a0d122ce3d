"""Persistent backing store for the rate cache.

The cache only needs keyed get/put/delete-expired over rate rows, so the store
is a small protocol with one SQLite implementation. Every ``sqlite3.Error`` is
re-raised as ``PersistenceError``; the cache decides whether to swallow it.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, Protocol

from fxcore.models.constants import MANUAL_SOURCE
from fxcore.models.rates import ExchangeRate
from .exceptions import PersistenceError

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def to_db_timestamp(dt: datetime) -> str:
    """Fixed-width UTC text so SQL string comparison orders chronologically."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(_TS_FORMAT)


def from_db_timestamp(value: str) -> datetime:
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


class RateStore(Protocol):
    def upsert(self, rate: ExchangeRate) -> None: ...

    def select_latest(
        self,
        from_currency: str,
        to_currency: str,
        *,
        created_after: datetime,
        fresh_at: Optional[datetime] = None,
        live_at: Optional[datetime] = None,
    ) -> Optional[ExchangeRate]: ...

    def delete_older_than(self, cutoff: datetime) -> int: ...

    def delete_manual(self, from_currency: str, to_currency: str) -> int: ...

    def list_manual(self, now: datetime) -> List[ExchangeRate]: ...


class SQLiteRateStore:
    def __init__(self, db_path: Path):
        self.db_path = db_path

    # ------------------------------------------------------------------
    # Connection helpers
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=5.0)
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def _row_to_rate(row: sqlite3.Row) -> ExchangeRate:
        created = from_db_timestamp(row["created_at"])
        return ExchangeRate(
            from_currency=row["from_currency"],
            to_currency=row["to_currency"],
            rate=Decimal(row["rate"]),
            source=row["source"],
            timestamp=created,
            ttl=from_db_timestamp(row["valid_until"]) - created,
        )

    # ------------------------------------------------------------------
    # Writes
    def upsert(self, rate: ExchangeRate) -> None:
        # A manual row is only ever replaced by another manual row.
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO exchange_rates (
                        from_currency, to_currency, rate, source, created_at, valid_until
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(from_currency, to_currency, created_at) DO UPDATE SET
                        rate = excluded.rate,
                        source = excluded.source,
                        valid_until = excluded.valid_until
                    WHERE exchange_rates.source != ? OR excluded.source = ?
                    """,
                    (
                        rate.from_currency,
                        rate.to_currency,
                        str(rate.rate),
                        rate.source,
                        to_db_timestamp(rate.timestamp),
                        to_db_timestamp(rate.expires_at),
                        MANUAL_SOURCE,
                        MANUAL_SOURCE,
                    ),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"failed to store rate: {e}") from e

    def delete_older_than(self, cutoff: datetime) -> int:
        try:
            with self._connect() as conn:
                cur = conn.execute(
                    "DELETE FROM exchange_rates WHERE created_at < ?",
                    (to_db_timestamp(cutoff),),
                )
                return cur.rowcount
        except sqlite3.Error as e:
            raise PersistenceError(f"failed to delete expired rates: {e}") from e

    def delete_manual(self, from_currency: str, to_currency: str) -> int:
        try:
            with self._connect() as conn:
                cur = conn.execute(
                    """
                    DELETE FROM exchange_rates
                    WHERE from_currency = ? AND to_currency = ? AND source = ?
                    """,
                    (from_currency, to_currency, MANUAL_SOURCE),
                )
                return cur.rowcount
        except sqlite3.Error as e:
            raise PersistenceError(f"failed to delete manual rate: {e}") from e

    # ------------------------------------------------------------------
    # Reads
    def select_latest(
        self,
        from_currency: str,
        to_currency: str,
        *,
        created_after: datetime,
        fresh_at: Optional[datetime] = None,
        live_at: Optional[datetime] = None,
    ) -> Optional[ExchangeRate]:
        """Newest row for the pair, manual rows first.

        ``created_after`` bounds the age of the row; ``fresh_at`` (when given)
        additionally requires ``valid_until >= fresh_at``. With ``live_at`` a
        manual row only outranks newer rows while it is still valid at that
        instant; once lapsed it competes on ``created_at`` like any other.
        """
        query = """
            SELECT * FROM exchange_rates
            WHERE from_currency = ? AND to_currency = ? AND created_at >= ?
        """
        params: list = [from_currency, to_currency, to_db_timestamp(created_after)]
        if fresh_at is not None:
            query += " AND valid_until >= ?"
            params.append(to_db_timestamp(fresh_at))
        if live_at is not None:
            query += " ORDER BY (source = ? AND valid_until >= ?) DESC"
            params.extend([MANUAL_SOURCE, to_db_timestamp(live_at)])
        else:
            query += " ORDER BY (source = ?) DESC"
            params.append(MANUAL_SOURCE)
        query += ", created_at DESC LIMIT 1"
        try:
            with self._connect() as conn:
                row = conn.execute(query, params).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"failed to read rate: {e}") from e
        return self._row_to_rate(row) if row else None

    def list_manual(self, now: datetime) -> List[ExchangeRate]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM exchange_rates
                    WHERE source = ? AND valid_until >= ?
                    ORDER BY from_currency, to_currency, created_at DESC
                    """,
                    (MANUAL_SOURCE, to_db_timestamp(now)),
                ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"failed to list manual rates: {e}") from e
        return [self._row_to_rate(r) for r in rows]
