"""
Timestamp coercion and display formatting shared by the stores, the
scheduler and the summary builders.
"""

import logging
from datetime import datetime, date, time, timezone
from typing import Any, Optional

import pytz
from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

# Epoch numbers above this are taken as milliseconds (JS clients write those)
_EPOCH_MILLIS_THRESHOLD = 100_000_000_000


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_datetime(value: Any) -> Optional[datetime]:
    """
    Coerce a stored timestamp into an aware UTC datetime.

    Accepts datetimes (naive values are read as UTC), dates, Firestore /
    protobuf timestamps, ISO-8601 strings and epoch numbers. Anything that
    cannot be parsed returns None.
    """
    if value is None or value == '':
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)

    if hasattr(value, 'ToDatetime'):
        try:
            return to_datetime(value.ToDatetime())
        except Exception:
            return None

    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if abs(value) >= _EPOCH_MILLIS_THRESHOLD else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        try:
            return to_datetime(date_parser.isoparse(value.strip()))
        except (ValueError, OverflowError):
            return None

    return None


def get_timezone(tz_name: Optional[str]):
    """Resolve a timezone name, falling back to UTC"""
    try:
        return pytz.timezone(tz_name) if tz_name else pytz.UTC
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone {tz_name}, using UTC")
        return pytz.UTC


def format_due_time(value: Any, tz_name: Optional[str]) -> str:
    """Short "dd.mm HH:MM" label used in push notification bodies"""
    moment = to_datetime(value)
    if not moment:
        return ''
    return moment.astimezone(get_timezone(tz_name)).strftime('%d.%m %H:%M')


def format_datetime(value: Any, tz_name: Optional[str] = None) -> str:
    moment = to_datetime(value)
    if not moment:
        return '-'
    return moment.astimezone(get_timezone(tz_name)).strftime('%d.%m.%Y %H:%M')


def format_date(value: Any, tz_name: Optional[str] = None) -> str:
    moment = to_datetime(value)
    if not moment:
        return '-'
    return moment.astimezone(get_timezone(tz_name)).strftime('%d.%m.%Y')
