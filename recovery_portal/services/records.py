"""Field access helpers shared by the derivation services.

Cases, payments and messages reach the services either as ORM rows (server
side) or as decoded JSON dicts (portal client). Both are read through
``field`` so one implementation serves both, and missing values fall back to
``0`` / ``""`` instead of raising.
"""
from collections.abc import Mapping
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

ZERO = Decimal("0")
CENT = Decimal("0.01")


def field(record: Any, name: str, default: Any = None) -> Any:
    if record is None:
        return default
    if isinstance(record, Mapping):
        value = record.get(name, default)
    else:
        value = getattr(record, name, default)
    return default if value is None else value


def text(record: Any, name: str) -> str:
    value = field(record, name, "")
    return value if isinstance(value, str) else str(value)


def to_decimal(value: Any) -> Decimal:
    """Coerce API/ORM money values to Decimal; blanks and junk count as zero"""
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return ZERO
    if isinstance(value, float):
        value = repr(value)
    try:
        result = Decimal(str(value).strip().replace(",", ""))
    except (InvalidOperation, ValueError):
        return ZERO
    if not result.is_finite():
        return ZERO
    return result


def money(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENT)


def coerce_datetime(value: Any) -> Optional[datetime]:
    """Datetimes come back naive UTC; ISO strings and dates are accepted too"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        return datetime.combine(value, time.min)
    elif isinstance(value, str):
        candidate = value.strip()
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            result = datetime.fromisoformat(candidate)
        except ValueError:
            return None
    else:
        return None
    if result.tzinfo is not None:
        result = result.astimezone(timezone.utc).replace(tzinfo=None)
    return result


def range_start(value: Any) -> Optional[datetime]:
    return coerce_datetime(value)


def range_end(value: Any) -> Optional[datetime]:
    """Upper bounds given as a bare date include that whole day"""
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.max)
    if isinstance(value, str) and len(value.strip()) == 10:
        parsed = coerce_datetime(value)
        return datetime.combine(parsed.date(), time.max) if parsed else None
    return coerce_datetime(value)


def within_range(value: Any, date_from: Any = None, date_to: Any = None) -> bool:
    """Inclusive date bound check; a missing timestamp never matches a bounded range"""
    start = range_start(date_from)
    end = range_end(date_to)
    if start is None and end is None:
        return True
    moment = coerce_datetime(value)
    if moment is None:
        return False
    if start is not None and moment < start:
        return False
    if end is not None and moment > end:
        return False
    return True
