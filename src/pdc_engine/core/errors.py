"""Error types for the PDC engine."""

from datetime import MAXYEAR, MINYEAR, date, datetime
from typing import Any


class PDCEngineError(Exception):
    """Base class for engine errors."""
    pass


class InvalidArgumentError(PDCEngineError, ValueError):
    """Raised for impossible numeric or typed inputs. Fail-closed behavior."""
    pass


def require_non_negative_int(name: str, value: Any) -> int:
    """Return ``value`` if it is a non-negative integer, else raise."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidArgumentError(f"{name} must be >= 0, got {value}")
    return value


def require_date(name: str, value: Any) -> date:
    """Return ``value`` as a plain date; datetimes lose their time part."""
    if isinstance(value, datetime):
        return value.date()
    if not isinstance(value, date):
        raise InvalidArgumentError(f"{name} must be a date, got {value!r}")
    return value


def require_bool(name: str, value: Any) -> bool:
    """Return ``value`` if it is a real bool; truthy strings and ints are rejected."""
    if not isinstance(value, bool):
        raise InvalidArgumentError(f"{name} must be a bool, got {value!r}")
    return value


def require_measurement_year(value: Any) -> int:
    """Return ``value`` if it is a year whose Jan 1 and Dec 31 are representable dates."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"measurement_year must be an integer, got {value!r}")
    if not MINYEAR <= value <= MAXYEAR:
        raise InvalidArgumentError(f"measurement_year must be between {MINYEAR} and {MAXYEAR}, got {value}")
    return value
