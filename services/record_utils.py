"""
Helpers for reading loosely-typed CRM records
"""
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from services.company_ref import CompanyRef, filter_company_records


def to_datetime(value: Any) -> Optional[datetime]:
    """Coerce a stored timestamp into an aware UTC datetime.

    Handles Firestore timestamps (DatetimeWithNanoseconds inherits from
    datetime), plain datetimes/dates, ISO-8601 strings, epoch seconds or
    milliseconds, and the {"_seconds": ...} shape the JS SDK exports.
    Anything unparseable returns None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return to_datetime(datetime.fromisoformat(text))
        except ValueError:
            return None
    if isinstance(value, dict):
        seconds = value.get("_seconds", value.get("seconds"))
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            nanos = value.get("_nanoseconds", value.get("nanoseconds")) or 0
            return to_datetime(seconds + nanos / 1e9)
        return None
    timestamp = getattr(value, "timestamp", None)
    if callable(timestamp):
        try:
            return datetime.fromtimestamp(timestamp(), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            return None
    return None


def first_value(record: Dict[str, Any], fields: Sequence[str]) -> Any:
    """Return the first non-empty value among the candidate field names."""
    for field in fields:
        value = record.get(field)
        if value is not None and value != "":
            return value
    return None


def first_datetime(record: Dict[str, Any], fields: Sequence[str]) -> Optional[datetime]:
    for field in fields:
        parsed = to_datetime(record.get(field))
        if parsed is not None:
            return parsed
    return None


def in_range(moment: Optional[datetime], start: datetime, end: datetime) -> bool:
    """Inclusive range check; records without a usable timestamp are out."""
    if moment is None:
        return False
    return start <= moment <= end


def to_amount(value: Any) -> float:
    """Parse a stored amount; malformed values count as zero."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if isinstance(value, str):
        cleaned = value.replace(",", "").strip()
        try:
            return float(cleaned)
        except ValueError:
            return 0.0
    return 0.0


def percent_of(part: float, total: float) -> int:
    """Whole-number percentage, halves rounded up; 0 when total is 0."""
    if not total:
        return 0
    share = Decimal(str(part * 100 / total))
    return int(share.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_json_safe(obj: Any) -> Any:
    """Convert Decimal, datetime and Firestore references to JSON-safe values"""
    if isinstance(obj, Decimal):
        return int(obj) if obj % 1 == 0 else float(obj)
    if isinstance(obj, datetime):
        return to_datetime(obj).isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {str(key): to_json_safe(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [to_json_safe(item) for item in obj]
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    path = getattr(obj, "path", None)
    if isinstance(path, str):
        # DocumentReference
        return path
    return str(obj)


def sorted_by_time(
    records: Iterable[Dict[str, Any]],
    fields: Sequence[str],
    descending: bool = False,
) -> list:
    """Sort records by their first usable timestamp, id as tie-breaker."""
    keyed = [
        (first_datetime(record, fields), str(record.get("id", "")), record)
        for record in records
    ]
    keyed = [item for item in keyed if item[0] is not None]
    keyed.sort(key=lambda item: (item[0], item[1]), reverse=descending)
    return [record for _, _, record in keyed]


def apply_record_filters(
    records: Iterable[Dict[str, Any]],
    company_ref: Optional[CompanyRef],
    date_fields: Optional[Sequence[str]] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    equals: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    """Client-side equivalent of the server-side record query.

    Shared by the Firestore and in-memory stores so both return the same set.
    An open bound (None) is not checked.
    """
    result = list(records)
    if company_ref is not None:
        result = filter_company_records(result, company_ref)
    if equals:
        result = [
            record for record in result
            if all(record.get(field) == value for field, value in equals.items())
        ]
    if date_fields and (start is not None or end is not None):
        filtered = []
        for record in result:
            moment = first_datetime(record, date_fields)
            if moment is None:
                continue
            if start is not None and moment < start:
                continue
            if end is not None and moment > end:
                continue
            filtered.append(record)
        result = filtered
    return result
