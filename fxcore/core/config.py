from datetime import timedelta
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment with defaults.

    Environment variable mapping follows pydantic's rules (e.g., DEBUG,
    DATA_DIR, FIXER_IO_API_KEY, RATES_CACHE_TTL_SECONDS).
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Basic app metadata
    app_name: str = "FX Conversion Core"
    debug: bool = False
    version: str = "0.1.0"

    # Data & persistence
    data_dir: Path = Path("data")
    db_filename: str = "rates.sqlite3"
    db_path: Optional[Path] = None  # derived if not provided

    # Rate providers; a missing key leaves that provider out of the chain
    exchange_rate_api_key: Optional[str] = None
    fixer_io_api_key: Optional[str] = None
    open_exchange_api_key: Optional[str] = None
    availability_timeout_seconds: float = 5.0
    fetch_timeout_seconds: float = 15.0
    http_retries: int = 0  # extra attempts; each one gets its own fetch timeout

    # Rate cache
    rates_cache_ttl_seconds: int = 3600  # 1 hour
    stable_rate_ttl_seconds: int = 6 * 3600  # pegged pairs
    rates_stale_threshold_seconds: int = 24 * 3600
    rates_retention_days: int = 7
    rates_sweep_interval_seconds: int = 3600  # 0 disables background sweep

    # Conversion
    default_fee_percentage: Decimal = Decimal("0.0025")  # 0.25%

    # Feature toggles
    enable_manual_rates: bool = True

    def init_post_load(self) -> None:
        """Finalize derived fields and ensure directories exist."""
        if self.db_path is None:
            self.db_path = self.data_dir / self.db_filename
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        if self.rates_cache_ttl_seconds <= 0 or self.stable_rate_ttl_seconds <= 0:
            raise ValueError("rate TTLs must be positive")
        if self.rates_stale_threshold_seconds < self.rates_cache_ttl_seconds:
            raise ValueError(
                "rates_stale_threshold_seconds must not be shorter than rates_cache_ttl_seconds"
            )

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(seconds=self.rates_cache_ttl_seconds)

    @property
    def stable_ttl(self) -> timedelta:
        return timedelta(seconds=self.stable_rate_ttl_seconds)

    @property
    def stale_threshold(self) -> timedelta:
        return timedelta(seconds=self.rates_stale_threshold_seconds)

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.rates_retention_days)


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    settings.init_post_load()
    return settings
