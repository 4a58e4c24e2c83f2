"""Formatting and parsing helpers for money, quantities and dates."""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

TWO_PLACES = Decimal('0.01')
# Larger than any amount or quantity the Numeric/Integer columns can hold
MAX_MAGNITUDE = Decimal('10') ** 12
MAX_INT = 2_147_483_647


def to_decimal(value: Any, field: str = 'value', default: Optional[Decimal] = None) -> Decimal:
    """
    Convert a JSON/form value to Decimal.

    Floats go through str() so 0.1 stays 0.1. Empty values return `default`
    when given, otherwise raise ValueError naming the field.
    """
    if value is None or value == '':
        if default is not None:
            return default
        raise ValueError(f'{field} is required')
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f'{field} must be a number')
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f'{field} must be a number')
    if not number.is_finite():
        raise ValueError(f'{field} must be a number')
    if abs(number) >= MAX_MAGNITUDE:
        raise ValueError(f'{field} is too large')
    return number


def to_int(value: Any, field: str = 'value', default: Optional[int] = None) -> int:
    """Convert a JSON/form value to int, rejecting fractional quantities."""
    if value is None or value == '':
        if default is not None:
            return default
        raise ValueError(f'{field} is required')
    if isinstance(value, bool):
        raise ValueError(f'{field} must be a whole number')
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f'{field} must be a whole number')
    if not number.is_finite():
        raise ValueError(f'{field} must be a number')
    try:
        fractional = number % 1 != 0
    except InvalidOperation:
        raise ValueError(f'{field} must be a number')
    if fractional:
        raise ValueError(f'{field} must be a whole number')
    if abs(number) > MAX_INT:
        raise ValueError(f'{field} is too large')
    return int(number)


def quantize_money(value: Any) -> Decimal:
    """Round a monetary amount to 2 decimal places (half up)."""
    if value is None:
        return Decimal('0.00')
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def money(value: Any) -> float:
    """Monetary amount as a JSON number with 2 decimals."""
    return float(quantize_money(value))


def money_display(value: Any, symbol: str = '') -> str:
    """Human readable amount, e.g. ₹1,234.50."""
    amount = quantize_money(value)
    sign = '-' if amount < 0 else ''
    return f"{sign}{symbol}{abs(amount):,.2f}"


def iso(value: Optional[Any]) -> Optional[str]:
    """ISO-8601 string for dates and datetimes, None passthrough."""
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def parse_date(value: Optional[str], field: str = 'date') -> Optional[date]:
    """Parse YYYY-MM-DD (or a full ISO datetime) into a date."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value)).date()
    except ValueError:
        raise ValueError(f'{field} must be a date in YYYY-MM-DD format')
