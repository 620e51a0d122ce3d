"""Smoke script for the rate cache.

Demonstrates:
 1. First lookup misses and goes to the provider chain.
 2. A second lookup inside the TTL is served from memory (same timestamp).
 3. Moving the clock past the TTL forces a refetch.
 4. The reverse pair is answered as a reciprocal without a fetch.

NOTE: This is a lightweight diagnostic and not a formal test. Uses a
memory-only cache and the static Fallback provider, so it runs offline.
"""

from datetime import timedelta
from pprint import pprint

from fxcore.services.rates.cache_service import RateCache, utcnow
from fxcore.services.rates.conversion import ConversionEngine
from fxcore.services.rates.providers import FallbackProvider


def run():
    now = [utcnow()]
    cache = RateCache(clock=lambda: now[0])
    engine = ConversionEngine([FallbackProvider()], cache)
    out = {}

    for label in ("initial", "second"):
        rate = engine.get_exchange_rate("USD", "INR")
        out[label] = {"rate": str(rate.rate), "fetched_at": rate.timestamp.isoformat()}

    # Push the clock beyond the TTL
    now[0] += cache.ttl + timedelta(seconds=5)
    rate = engine.get_exchange_rate("USD", "INR")
    out["forced_refresh"] = {"rate": str(rate.rate), "fetched_at": rate.timestamp.isoformat()}

    reverse = engine.get_exchange_rate("INR", "USD")
    out["reverse"] = {"rate": str(reverse.rate), "inverse": reverse.inverse}
    out["stats"] = engine.statistics()

    pprint(out)


if __name__ == "__main__":
    run()
