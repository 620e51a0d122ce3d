from __future__ import annotations

"""Two-layer rate cache (memory + persistent store).

Freshness model:
    - ``ttl`` (per pair; longer for pegged pairs) decides whether a cached rate
      may be served without asking a provider.
    - ``stale_threshold`` bounds the age of anything ever served. Entries past
      their TTL but not yet stale are only handed out on request
      (``allow_expired=True``), which the engine does once every network
      provider has failed.
    - ``retention`` governs physical deletion in ``sweep_expired``; it is
      independent of both windows above because reads are always
      time-filtered.

Reverse pairs:
    A missing ``from -> to`` entry is answered from a live ``to -> from`` entry
    via ``derive_reciprocal``. Derived rates are never written back, so the
    audit trail still points at the original fetch.

Concurrency:
    The in-memory map is guarded by one lock. Concurrent misses on the same
    pair may both fetch; ``put`` is last-write-wins, which is harmless because
    both writers carry the same provider rate.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from fxcore.models.constants import MANUAL_SOURCE
from fxcore.models.rates import ExchangeRate
from fxcore.services.currency import is_stable_pair, normalize_code
from fxcore.services.money import Number, reciprocal, to_decimal
from .exceptions import PersistenceError
from .store import RateStore

logger = logging.getLogger("fxcore.rates.cache")

Clock = Callable[[], datetime]
PairKey = Tuple[str, str]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RateCache:
    def __init__(
        self,
        store: Optional[RateStore] = None,
        *,
        ttl: timedelta = timedelta(hours=1),
        stable_ttl: timedelta = timedelta(hours=6),
        stale_threshold: timedelta = timedelta(hours=24),
        retention: timedelta = timedelta(days=7),
        clock: Clock = utcnow,
    ):
        self._store = store
        self.ttl = ttl
        self.stable_ttl = stable_ttl
        self.stale_threshold = stale_threshold
        self.retention = retention
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: Dict[PairKey, ExchangeRate] = {}

    # Internal --------------------------------------------------
    def now(self) -> datetime:
        return self._clock()

    def ttl_for(self, from_currency: str, to_currency: str) -> timedelta:
        return self.stable_ttl if is_stable_pair(from_currency, to_currency) else self.ttl

    def is_stale(self, rate: ExchangeRate, now: Optional[datetime] = None) -> bool:
        now = now or self.now()
        return rate.age(now) > self.stale_threshold

    def is_expired(self, rate: ExchangeRate, now: Optional[datetime] = None) -> bool:
        now = now or self.now()
        return rate.age(now) > rate.ttl

    def _usable(self, rate: ExchangeRate, now: datetime, allow_expired: bool) -> bool:
        if self.is_stale(rate, now):
            return False
        return allow_expired or not self.is_expired(rate, now)

    def _keep_existing(self, existing: Optional[ExchangeRate], new: ExchangeRate) -> bool:
        if existing is None:
            return False
        # Live manual rates are never displaced by automated fetches.
        if (
            existing.source == MANUAL_SOURCE
            and new.source != MANUAL_SOURCE
            and not self.is_expired(existing)
        ):
            return True
        return existing.timestamp > new.timestamp

    def _remember(self, rate: ExchangeRate) -> None:
        key = (rate.from_currency, rate.to_currency)
        with self._lock:
            if not self._keep_existing(self._entries.get(key), rate):
                self._entries[key] = rate

    def _lookup_direct(
        self, from_currency: str, to_currency: str, now: datetime, allow_expired: bool
    ) -> Optional[ExchangeRate]:
        with self._lock:
            entry = self._entries.get((from_currency, to_currency))
        if entry is not None and self._usable(entry, now, allow_expired):
            return entry
        if self._store is None:
            return None
        try:
            row = self._store.select_latest(
                from_currency,
                to_currency,
                created_after=now - self.stale_threshold,
                fresh_at=None if allow_expired else now,
                live_at=now,
            )
        except PersistenceError:
            logger.warning(
                "rate store read failed for %s-%s; treating as miss",
                from_currency,
                to_currency,
                exc_info=True,
            )
            return None
        if row is None or not self._usable(row, now, allow_expired):
            return None
        self._remember(row)
        return row

    # Public API -----------------------------------------------
    def get(
        self, from_currency: str, to_currency: str, *, allow_expired: bool = False
    ) -> Optional[ExchangeRate]:
        """Cached ``from -> to`` rate, or None on miss.

        Memory first, then the persistent store, then the reciprocal of a live
        ``to -> from`` entry.
        """
        from_currency = normalize_code(from_currency)
        to_currency = normalize_code(to_currency)
        if from_currency == to_currency:
            return None
        now = self.now()
        hit = self._lookup_direct(from_currency, to_currency, now, allow_expired)
        if hit is not None:
            return hit
        reverse = self._lookup_direct(to_currency, from_currency, now, allow_expired)
        if reverse is not None:
            logger.debug(
                "serving %s-%s as reciprocal of %s row",
                from_currency,
                to_currency,
                reverse.source,
            )
            return self.derive_reciprocal(reverse)
        return None

    def derive_reciprocal(self, rate: ExchangeRate) -> ExchangeRate:
        """Read-time inverse of ``rate``; keeps the original source and timestamp."""
        return ExchangeRate(
            from_currency=rate.to_currency,
            to_currency=rate.from_currency,
            rate=reciprocal(rate.rate),
            source=rate.source,
            timestamp=rate.timestamp,
            ttl=rate.ttl,
            inverse=not rate.inverse,
            from_expired_cache=rate.from_expired_cache,
        )

    def put(self, rate: ExchangeRate) -> None:
        if rate.from_currency == rate.to_currency:
            logger.debug("ignoring identity rate %s", rate.from_currency)
            return
        if rate.inverse:
            raise ValueError("derived reciprocal rates are never cached")
        self._remember(rate)
        if self._store is None:
            return
        try:
            self._store.upsert(rate)
        except PersistenceError:
            logger.warning(
                "rate store write failed for %s-%s; kept in memory only",
                rate.from_currency,
                rate.to_currency,
                exc_info=True,
            )

    def sweep_expired(self) -> int:
        """Delete persisted rows past retention and drop stale memory entries.

        Returns the number of rows and entries removed.
        """
        now = self.now()
        removed_rows = 0
        if self._store is not None:
            try:
                removed_rows = self._store.delete_older_than(now - self.retention)
            except PersistenceError:
                logger.warning("rate store sweep failed", exc_info=True)
        with self._lock:
            stale_keys = [k for k, v in self._entries.items() if self.is_stale(v, now)]
            for k in stale_keys:
                self._entries.pop(k, None)
        logger.info(
            "swept %d persisted rates and %d stale cache entries",
            removed_rows,
            len(stale_keys),
        )
        return removed_rows + len(stale_keys)

    # Manual rates ---------------------------------------------
    def set_manual_rate(
        self, from_currency: str, to_currency: str, rate: Number, ttl_seconds: int
    ) -> ExchangeRate:
        from_currency = normalize_code(from_currency)
        to_currency = normalize_code(to_currency)
        if from_currency == to_currency:
            raise ValueError("manual rate requires two different currencies")
        if ttl_seconds <= 0:
            raise ValueError("manual rate ttl must be positive seconds")
        value = to_decimal(rate)
        if value <= 0:
            raise ValueError("manual rate must be positive")
        record = ExchangeRate(
            from_currency=from_currency,
            to_currency=to_currency,
            rate=value,
            source=MANUAL_SOURCE,
            timestamp=self.now(),
            ttl=timedelta(seconds=ttl_seconds),
        )
        self.put(record)
        return record

    def clear_manual_rate(self, from_currency: str, to_currency: str) -> bool:
        key = (normalize_code(from_currency), normalize_code(to_currency))
        removed = False
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.source == MANUAL_SOURCE:
                self._entries.pop(key)
                removed = True
        if self._store is not None:
            try:
                removed = self._store.delete_manual(*key) > 0 or removed
            except PersistenceError:
                logger.warning("failed to delete manual rate %s-%s", *key, exc_info=True)
        return removed

    def list_manual_rates(self) -> List[ExchangeRate]:
        now = self.now()
        found: Dict[PairKey, ExchangeRate] = {}
        if self._store is not None:
            try:
                for r in self._store.list_manual(now):
                    found.setdefault((r.from_currency, r.to_currency), r)
            except PersistenceError:
                logger.warning("failed to list manual rates", exc_info=True)
        with self._lock:
            for key, entry in self._entries.items():
                if entry.source == MANUAL_SOURCE and not self.is_expired(entry, now):
                    current = found.get(key)
                    if current is None or current.timestamp < entry.timestamp:
                        found[key] = entry
        return [found[k] for k in sorted(found)]

    # Introspection --------------------------------------------
    def snapshot(self) -> List[ExchangeRate]:
        now = self.now()
        with self._lock:
            entries = list(self._entries.values())
        return [
            e.model_copy(update={"is_stale": self.is_stale(e, now)})
            for e in sorted(entries, key=lambda e: (e.from_currency, e.to_currency))
        ]

    def statistics(self) -> Dict[str, object]:
        entries = self.snapshot()
        return {
            "total_rates": len(entries),
            "stale_rates": sum(1 for e in entries if e.is_stale),
            "providers": sorted({e.source for e in entries}),
            "last_update": max((e.timestamp for e in entries), default=None),
        }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
