from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .constants import DEFAULT_PRECISION

CURRENCY_PATTERN = r"^[A-Z]{3,4}$"


def _upper(v: str) -> str:
    if not isinstance(v, str):
        raise ValueError("currency code must be a string")
    return v.strip().upper()


class ExchangeRate(BaseModel):
    """Immutable rate snapshot as fetched (or derived) at ``timestamp``.

    ``is_stale`` is evaluated by the rate cache at read time; ``inverse`` marks
    a reciprocal synthesized from the stored ``to -> from`` row and
    ``from_expired_cache`` a past-TTL entry served because every network
    provider failed.
    """

    model_config = ConfigDict(frozen=True)

    from_currency: str = Field(..., pattern=CURRENCY_PATTERN)
    to_currency: str = Field(..., pattern=CURRENCY_PATTERN)
    rate: Decimal = Field(..., gt=0)
    source: str
    timestamp: datetime
    ttl: timedelta
    is_stale: bool = False
    inverse: bool = False
    from_expired_cache: bool = False

    @field_validator("from_currency", "to_currency", mode="before")
    @classmethod
    def normalize_codes(cls, v: str) -> str:
        return _upper(v)

    @property
    def expires_at(self) -> datetime:
        return self.timestamp + self.ttl

    def age(self, now: datetime) -> timedelta:
        return now - self.timestamp


class ConversionRequest(BaseModel):
    amount: Decimal
    entered_currency: str = Field(..., pattern=CURRENCY_PATTERN)
    account_currency: str = Field(..., pattern=CURRENCY_PATTERN)
    primary_currency: str = Field(..., pattern=CURRENCY_PATTERN)
    include_fees: bool = False
    fee_percentage: Optional[Decimal] = Field(None, ge=0)
    audit_context: str = "manual_conversion"

    @field_validator(
        "entered_currency", "account_currency", "primary_currency", mode="before"
    )
    @classmethod
    def normalize_codes(cls, v: str) -> str:
        return _upper(v)

    @field_validator("amount")
    @classmethod
    def finite_amount(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError("amount must be finite")
        return v


class ConversionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    entered_amount: Decimal
    entered_currency: str
    entered_symbol: str

    account_amount: Decimal
    account_currency: str
    account_symbol: str

    primary_amount: Decimal
    primary_currency: str
    primary_symbol: str

    exchange_rate: Decimal
    exchange_rate_used: Decimal
    conversion_source: str
    conversion_timestamp: datetime
    conversion_case: str

    conversion_fee: Decimal
    total_cost: Decimal

    rate_record: ExchangeRate
    account_rate_record: ExchangeRate
    primary_rate_record: ExchangeRate
    audit_id: str


class ManualRatePayload(BaseModel):
    from_currency: str = Field(..., pattern=CURRENCY_PATTERN)
    to_currency: str = Field(..., pattern=CURRENCY_PATTERN)
    rate: Decimal = Field(..., gt=0)
    ttl_seconds: int = Field(
        86400, gt=0, le=7 * 86400, description="Validity window (default 24h)"
    )

    @field_validator("from_currency", "to_currency", mode="before")
    @classmethod
    def normalize_codes(cls, v: str) -> str:
        return _upper(v)

    @model_validator(mode="after")
    def distinct_currencies(self) -> "ManualRatePayload":
        if self.from_currency == self.to_currency:
            raise ValueError("to_currency cannot equal from_currency")
        return self


class AggregateItem(BaseModel):
    amount: Decimal
    currency: str = Field(..., pattern=CURRENCY_PATTERN)

    @field_validator("currency", mode="before")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return _upper(v)


class AggregateRequest(BaseModel):
    items: List[AggregateItem]
    primary_currency: str = Field(..., pattern=CURRENCY_PATTERN)

    @field_validator("primary_currency", mode="before")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return _upper(v)


class CurrencyBreakdown(BaseModel):
    currency: str
    count: int
    amount: Decimal
    converted_amount: Decimal
    rate: Decimal
    source: str
    percentage: Decimal


class AggregateResult(BaseModel):
    primary_currency: str
    total: Decimal
    breakdown: List[CurrencyBreakdown]


class CurrencyInfo(BaseModel):
    code: str
    precision: int = DEFAULT_PRECISION
    symbol: str
    restricted: bool
    stable: bool
    note: Optional[str] = None
