"""Currency-related utilities: minor-unit exponents, validation, and formatting."""

import os


DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "INR")

# Number of decimal places in the minor unit of each supported currency
CURRENCY_EXPONENTS = {
    "INR": 2,
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "CAD": 2,
    "HKD": 2,
    "CNY": 2,
    "JPY": 0,
}

# Currency symbols for formatting
CURRENCY_SYMBOLS = {
    "INR": "₹",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CAD": "CA$",
    "CNY": "¥",
    "HKD": "HK$"
}


def is_supported_currency(currency: str) -> bool:
    return currency in CURRENCY_EXPONENTS


def get_exponent(currency: str) -> int:
    """Return the minor-unit exponent for a currency (2 for paise/cents)."""
    if currency not in CURRENCY_EXPONENTS:
        raise ValueError(f"Unsupported currency: {currency}")
    return CURRENCY_EXPONENTS[currency]


def format_currency(amount_minor: int, currency: str) -> str:
    """
    Format an amount in minor units as a currency string with symbol.

    Args:
        amount_minor: Amount in minor units (e.g., 1234 for ₹12.34)
        currency: Currency code (e.g., "INR", "USD")

    Returns:
        Formatted string with symbol (e.g., "₹12.34", "-$0.05", "¥500")
    """
    symbol = CURRENCY_SYMBOLS.get(currency, currency)
    exponent = CURRENCY_EXPONENTS.get(currency, 2)
    sign = "-" if amount_minor < 0 else ""
    major, minor = divmod(abs(amount_minor), 10 ** exponent)

    if exponent == 0:
        return f"{sign}{symbol}{major}"
    return f"{sign}{symbol}{major}.{minor:0{exponent}d}"
