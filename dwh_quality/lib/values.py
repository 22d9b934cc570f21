"""Value coercion for warehouse columns.

Bronze tables hold whatever the source systems sent: dates arrive as ISO
strings, ``datetime`` objects or ``yyyymmdd`` integers, amounts as strings,
ints or floats. Rules coerce on read and let ``ValueError`` escape so the
engine can record a malformed value against the rule that tripped on it.
"""

from __future__ import annotations

import math
import numbers
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import pandas as pd

__all__ = [
    "coerce_date",
    "coerce_number",
    "is_missing",
    "to_plain",
    "yyyymmdd_digits",
]


def is_missing(value: Any) -> bool:
    """True for None, NaN and NaT."""
    if value is None or value is pd.NaT:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return False


def yyyymmdd_digits(value: Any) -> Optional[str]:
    """Return the digit string of an integer-style date, or None.

    ``20250115``, ``"20250115"`` and ``20250115.0`` all yield ``"20250115"``.
    Anything else (ISO strings, date objects) yields None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, numbers.Integral):
        return str(int(value))
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, Decimal) and value == value.to_integral_value():
        return str(int(value))
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return text
    return None


def coerce_date(value: Any) -> Optional[date]:
    """Coerce a column value to a ``date``.

    Raises:
        ValueError: value is present but cannot be read as a date
    """
    if is_missing(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    digits = yyyymmdd_digits(value)
    if digits is not None:
        if len(digits) != 8:
            raise ValueError(f"Cannot read {value!r} as a yyyymmdd date")
        return datetime.strptime(digits, "%Y%m%d").date()

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            raise ValueError(f"Cannot read {value!r} as a date") from None

    raise ValueError(f"Cannot read {type(value).__name__} {value!r} as a date")


def coerce_number(value: Any) -> Optional[Decimal]:
    """Coerce a column value to ``Decimal``.

    Floats go through ``str`` so 10.1 stays 10.1 rather than its binary
    expansion.

    Raises:
        ValueError: value is present but not numeric
    """
    if is_missing(value):
        return None
    if isinstance(value, bool):
        raise ValueError(f"Cannot read boolean {value!r} as a number")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, str) and not value.strip():
        return None
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Cannot read {value!r} as a number") from None


def to_plain(value: Any) -> Any:
    """Convert a value to a JSON-friendly primitive for reports."""
    if is_missing(value):
        return None
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return str(value)
    if hasattr(value, "item"):
        # numpy scalars
        return value.item()
    return value
