import json
import tempfile
from decimal import Decimal
from pathlib import Path

from fastapi.testclient import TestClient
from fxcore.core.config import Settings
from fxcore.main import create_app
from fxcore.services.rates.base import RateProvider
from fxcore.services.rates.exceptions import ProviderError
from fxcore.services.rates.providers import FallbackProvider

"""Smoke test for provider failover.

Runs the same conversion twice: once with a healthy primary provider and once
with a primary that always errors, showing conversion_source switch to
'Fallback' while the request still succeeds.
"""


class _Flaky(RateProvider):
    name = "Flaky"
    priority = 1

    _RATES = {("USD", "INR"): Decimal("83.10"), ("USD", "EUR"): Decimal("0.921")}

    def __init__(self, healthy: bool):
        self.healthy = healthy

    def is_available(self) -> bool:
        return True

    def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        if not self.healthy:
            raise ProviderError(self.name, "simulated outage")
        try:
            return self._RATES[(from_currency, to_currency)]
        except KeyError:
            raise ProviderError(self.name, f"no rate for {to_currency}") from None

    def get_all_rates(self, base: str):
        raise ProviderError(self.name, "not supported")


def run():
    payload = {
        "amount": "250",
        "entered_currency": "USD",
        "account_currency": "INR",
        "primary_currency": "EUR",
        "include_fees": True,
    }
    out = {}
    with tempfile.TemporaryDirectory() as d:
        for label, healthy in (("healthy", True), ("outage", False)):
            settings = Settings(
                db_path=Path(d) / f"{label}.db", rates_sweep_interval_seconds=0
            )
            app = create_app(
                settings_override=settings,
                providers=[_Flaky(healthy), FallbackProvider()],
            )
            with TestClient(app) as client:
                out[label] = client.post("/convert", json=payload).json()
    print(json.dumps(out, indent=2))


if __name__ == "__main__":
    run()
