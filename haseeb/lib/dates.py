import functools
import re
from collections.abc import Iterator
from datetime import date, datetime, timedelta

from dateutil import parser as dateutil_parser
from dateutil.parser import ParserError
from hijridate import Gregorian

from . import clock

_WEEKDAYS = {"mon": 0, "tue": 1, "wed": 2, "thu": 3, "fri": 4, "sat": 5, "sun": 6}


def parse_iso_date(val: object) -> date | None:
    """Parse a stored date that may be a date, an ISO date or an ISO timestamp."""
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    if isinstance(val, str) and val:
        try:
            return date.fromisoformat(val.split("T")[0])
        except ValueError:
            return None
    return None


def parse_day(text: str) -> date:
    """Parse user input like 'today', 'yesterday', 'mon' or '2024-03-10'.

    Weekday names resolve to the most recent such day (today included), since
    habits are logged for days that already happened.
    """
    lowered = text.strip().lower()
    today = clock.today()
    if lowered == "today":
        return today
    if lowered == "yesterday":
        return today - timedelta(days=1)
    short = lowered[:3]
    if lowered.isalpha() and short in _WEEKDAYS:
        days_back = (today.weekday() - _WEEKDAYS[short]) % 7
        return today - timedelta(days=days_back)
    if re.match(r"^-\d+$", lowered):
        return today + timedelta(days=int(lowered))
    try:
        return dateutil_parser.parse(
            text, default=datetime(today.year, today.month, today.day)
        ).date()
    except (ParserError, ValueError, OverflowError) as e:
        raise ValueError(f"unrecognised date '{text}'") from e


def days_back(start: date, stop: date | None = None) -> Iterator[date]:
    """Yield start, start-1, ... down to stop inclusive (forever if stop is None)."""
    current = start
    while stop is None or current >= stop:
        yield current
        current -= timedelta(days=1)


def date_range(start: date, end: date) -> list[date]:
    if end < start:
        return []
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


@functools.lru_cache(maxsize=4096)
def hijri_day(on: date) -> int | None:
    """Day of the Umm al-Qura month for a Gregorian date, None outside the table."""
    try:
        return Gregorian(on.year, on.month, on.day).to_hijri().day
    except (OverflowError, ValueError):
        return None
