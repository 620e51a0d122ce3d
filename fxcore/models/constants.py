"""Currency reference tables.

Static lookups only; nothing here performs I/O. Codes are upper-case and a
missing entry falls back to the ``DEFAULT_*`` values.
"""

from typing import Dict, FrozenSet

DEFAULT_PRECISION = 2
DEFAULT_SYMBOL = "$"

# Minor-unit digits per currency.
CURRENCY_PRECISION: Dict[str, int] = {
    # Majors
    "USD": 2, "EUR": 2, "GBP": 2, "CAD": 2, "AUD": 2, "CHF": 2, "NZD": 2,
    # Zero-decimal currencies
    "JPY": 0, "KRW": 0, "VND": 0, "IDR": 0, "CLP": 0, "COP": 0, "ISK": 0,
    # Asia
    "CNY": 2, "HKD": 2, "SGD": 2, "THB": 2, "MYR": 2, "PHP": 2,
    "INR": 2, "PKR": 2, "BDT": 2, "LKR": 2, "NPR": 2,
    # Americas
    "BRL": 2, "ARS": 2, "MXN": 2,
    # Europe
    "RUB": 2, "UAH": 2, "PLN": 2, "CZK": 2, "HUF": 2,
    "SEK": 2, "NOK": 2, "DKK": 2,
    # Africa
    "ZAR": 2, "EGP": 2, "NGN": 2, "KES": 2,
    # Gulf
    "AED": 2, "SAR": 2, "QAR": 2, "KWD": 3, "BHD": 3, "OMR": 3, "JOD": 3,
    # Crypto
    "BTC": 8, "ETH": 8, "USDC": 6, "USDT": 6,
}

CURRENCY_SYMBOLS: Dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CNY": "¥",
    "INR": "₹",
    "KRW": "₩",
    "THB": "฿",
    "VND": "₫",
    "BTC": "₿",
    "ETH": "Ξ",
    "USDC": "USDC",
    "USDT": "USDT",
}

# Sanctioned currencies; never converted to or from.
RESTRICTED_CURRENCIES: FrozenSet[str] = frozenset(
    {
        "IRR",  # Iranian rial
        "KPW",  # North Korean won
        "SYP",  # Syrian pound
        "VES",  # Venezuelan bolivar
        "CUP",  # Cuban peso
        "MMK",  # Myanmar kyat
        "AFN",  # Afghan afghani
    }
)

# Pegged to USD (or tightly managed); rates move slowly so cache them longer.
STABLE_CURRENCIES: FrozenSet[str] = frozenset(
    {"USD", "AED", "SAR", "HKD", "QAR", "BHD", "OMR", "JOD", "DKK", "BND"}
)

SAME_CURRENCY_SOURCE = "same_currency"
MANUAL_SOURCE = "manual"
