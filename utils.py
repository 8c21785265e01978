# utils.py
"""
Normalization helpers shared by manual contact entry and the spreadsheet import.
"""

import re
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

import pytz
from dateutil import parser as date_parser

HOME_COUNTRY_CODE = '49'
STUDIO_TIMEZONE = 'Europe/Berlin'

MIN_PHONE_DIGITS = 8
MAX_PHONE_DIGITS = 16

_SCIENTIFIC_NOTATION = re.compile(r'[eE]\+')


def is_scientific_notation(value: Optional[str]) -> bool:
    """True for phone cells Excel rendered as e.g. ``4.91512E+11``."""
    return bool(value and _SCIENTIFIC_NOTATION.search(value))


def normalize_phone(raw: Optional[str], country_code: str = HOME_COUNTRY_CODE) -> Optional[str]:
    """
    Canonicalize a free-text phone number to ``+`` followed by 8-16 digits.

    National numbers (single leading ``0``) are assumed to belong to the
    studio's home country.

    Examples:
        "0151 2345678"     -> "+491512345678"
        "0049 151 2345678" -> "+491512345678"
        "491512345678"     -> "+491512345678"
        "123"              -> None

    Args:
        raw: Phone number as typed or exported
        country_code: Country code used for national numbers

    Returns:
        Canonical phone string or None if the input cannot be normalized
    """
    if not raw:
        return None

    value = raw.strip()
    if not value:
        return None

    # Excel already destroyed the trailing digits
    if is_scientific_notation(value):
        return None

    # Numeric spreadsheet cells come through as floats
    if value.endswith('.0'):
        value = value[:-2]

    digits = re.sub(r'[^\d+]', '', value)

    if digits.startswith('00'):
        digits = '+' + digits[2:]
    elif digits.startswith('0'):
        digits = f'+{country_code}{digits[1:]}'
    elif digits.startswith(country_code):
        digits = '+' + digits

    numeric = re.sub(r'\D', '', digits)
    if not MIN_PHONE_DIGITS <= len(numeric) <= MAX_PHONE_DIGITS:
        return None

    return f'+{numeric}'


def parse_euro_cents(value: Optional[str]) -> Optional[int]:
    """
    Parse a German formatted euro amount into integer cents.

    Examples:
        "1.234,50"  -> 123450
        "150 €"     -> 15000
        "99,999"    -> 10000
    """
    if value is None:
        return None

    cleaned = (
        str(value)
        .replace('€', '')
        .replace('.', '')
        .replace(',', '.')
    )
    cleaned = re.sub(r'\s', '', cleaned)
    if not cleaned:
        return None

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None

    if not amount.is_finite():
        return None

    return int((amount * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    # ISO first: dateutil's dayfirst mode would swap month and day in "2024-03-05"
    try:
        return date_parser.isoparse(text)
    except (ValueError, OverflowError):
        pass

    try:
        return date_parser.parse(text, dayfirst=True)
    except (ValueError, OverflowError):
        return None


def parse_optional_date(value: Optional[str]) -> Optional[str]:
    """Parse a date cell to ``YYYY-MM-DD``; unparseable input yields None."""
    parsed = _parse_datetime(value)
    if parsed is None:
        return None
    return parsed.date().isoformat()


def parse_optional_datetime(value: Optional[str], tz_name: str = STUDIO_TIMEZONE) -> Optional[str]:
    """
    Parse a date/time cell to an ISO-8601 UTC timestamp.

    Naive values are interpreted in the studio's local time zone.
    """
    parsed = _parse_datetime(value)
    if parsed is None:
        return None

    try:
        if parsed.tzinfo is None:
            parsed = pytz.timezone(tz_name).localize(parsed)
        return parsed.astimezone(pytz.utc).isoformat()
    except (ValueError, OverflowError):
        # Years at the edge of the calendar cannot be shifted to UTC
        return None


def to_naive_utc(value: Optional[str]) -> Optional[datetime]:
    """Convert an ISO timestamp to the naive UTC datetime stored in the database."""
    parsed = _parse_datetime(value)
    if parsed is None:
        return None
    if parsed.tzinfo is not None:
        try:
            parsed = parsed.astimezone(pytz.utc).replace(tzinfo=None)
        except (ValueError, OverflowError):
            return None
    return parsed


def to_date(value: Optional[str]):
    """Convert an ISO date string to a ``date`` or None."""
    parsed = _parse_datetime(value)
    return parsed.date() if parsed else None


def parse_id(value) -> Optional[int]:
    """Positive integer id from a JSON value or query string; None otherwise."""
    if isinstance(value, bool):
        return None
    text = str(value).strip() if value is not None else ''
    if not re.fullmatch(r'[0-9]+', text) or int(text) == 0:
        return None
    return int(text)
