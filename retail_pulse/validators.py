"""
validators.py – Input normalisation shared by the calculators and the service layer.

The calculators are total functions: anything that cannot be read as a
number is treated as the documented default rather than raising.  The
helpers here do that coercion in one place.

Normalisation steps
-------------------
* Strip commas / currency symbols from numeric fields and cast to float.
* Parse dates and datetimes (ISO strings, common formats) with dateutil.
* De-duplicate list fields while keeping first-seen order.
"""
from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from typing import Any, Iterable

from dateutil import parser as dateutil_parser


def to_float(value: Any, default: float | None = None) -> float | None:
    """
    Try to convert *value* to float.

    Strips commas, spaces, and common currency prefixes/suffixes before
    conversion.  Returns *default* on failure, for NaN, and for booleans.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        cleaned = re.sub(r"[,$€£¥%\s]", "", value)
        try:
            result = float(cleaned)
        except ValueError:
            return default
    else:
        try:
            result = float(value)
        except (TypeError, ValueError):
            return default
    if math.isnan(result) or math.isinf(result):
        return default
    return result


def to_number(value: Any, default: float = 0.0) -> float:
    """Like to_float() but never returns None."""
    result = to_float(value)
    return default if result is None else result


def to_non_negative(value: Any, default: float = 0.0) -> float:
    """Numeric value clamped at zero; unreadable values give *default*."""
    return max(0.0, to_number(value, default))


def to_datetime(value: Any) -> datetime | None:
    """
    Parse *value* into a timezone-aware datetime (UTC when no zone is given).

    Accepts datetime/date objects, ISO strings and common formats such as
    ``MM/DD/YYYY``.  Returns None on failure.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            dt = dateutil_parser.parse(text, dayfirst=False)
        except (ValueError, OverflowError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def unique(values: Iterable[Any] | None) -> list[Any]:
    """Drop duplicates and empty entries, keeping first-seen order."""
    seen: set = set()
    result: list[Any] = []
    for v in values or ():
        if v is None or v == "" or v in seen:
            continue
        seen.add(v)
        result.append(v)
    return result
