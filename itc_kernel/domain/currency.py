"""ISO 4217 codes accepted on purchase invoices, with their minor-unit places."""

from types import MappingProxyType

# Code -> decimal places. INR for domestic supplies; the rest appear on
# import invoices.
MINOR_UNITS = MappingProxyType(
    {
        "INR": 2,
        "USD": 2,
        "EUR": 2,
        "GBP": 2,
        "AED": 2,
        "SGD": 2,
        "CNY": 2,
        "CHF": 2,
        "JPY": 0,
        "KRW": 0,
        "BHD": 3,
        "KWD": 3,
        "OMR": 3,
    }
)


def normalize_code(code: object) -> str | None:
    """Upper-cased, stripped code, or None when ``code`` is not a known currency."""
    if not isinstance(code, str):
        return None
    normalized = code.strip().upper()
    return normalized if normalized in MINOR_UNITS else None


def minor_units(code: str) -> int:
    """Decimal places for ``code``; raises KeyError for unknown codes."""
    return MINOR_UNITS[code.strip().upper()]
