# app/services/nl_dates.py
#
# Free-form period descriptions to an inclusive (start, end) datetime pair:
# "yesterday", "last month", "this quarter", "last 30 days", "March 2024",
# "2024-03-05", "from 1 March to 15 April 2024", "since January".
# Known phrases are matched first; anything else goes through dateutil.

import re
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta
import structlog

from app.services.dates import DURATIONS, end_of_day, start_of_day

logger = structlog.get_logger(__name__)

DateRange = Tuple[datetime, datetime]


# ---- Calendar windows (weeks start on Monday) ----

def _day(d: date) -> DateRange:
    return start_of_day(d), end_of_day(d)


def _week(d: date) -> DateRange:
    start = d - timedelta(days=d.weekday())
    return start_of_day(start), end_of_day(start + timedelta(days=6))


def _month(d: date) -> DateRange:
    start = d.replace(day=1)
    return start_of_day(start), end_of_day(start + relativedelta(months=1, days=-1))


def _quarter(d: date) -> DateRange:
    start = d.replace(month=(d.month - 1) // 3 * 3 + 1, day=1)
    return start_of_day(start), end_of_day(start + relativedelta(months=3, days=-1))


def _year(d: date) -> DateRange:
    return start_of_day(date(d.year, 1, 1)), end_of_day(date(d.year, 12, 31))


KEYWORDS: Dict[str, Callable[[date], DateRange]] = {
    "today": _day,
    "yesterday": lambda d: _day(d - timedelta(days=1)),
    "tomorrow": lambda d: _day(d + timedelta(days=1)),
    "this week": _week,
    "current week": _week,
    "last week": lambda d: _week(d - timedelta(weeks=1)),
    "previous week": lambda d: _week(d - timedelta(weeks=1)),
    "next week": lambda d: _week(d + timedelta(weeks=1)),
    "this month": _month,
    "current month": _month,
    "last month": lambda d: _month(d - relativedelta(months=1)),
    "previous month": lambda d: _month(d - relativedelta(months=1)),
    "next month": lambda d: _month(d + relativedelta(months=1)),
    "this quarter": _quarter,
    "current quarter": _quarter,
    "last quarter": lambda d: _quarter(d - relativedelta(months=3)),
    "previous quarter": lambda d: _quarter(d - relativedelta(months=3)),
    "this year": _year,
    "current year": _year,
    "last year": lambda d: _year(d - relativedelta(years=1)),
    "previous year": lambda d: _year(d - relativedelta(years=1)),
    "next year": lambda d: _year(d + relativedelta(years=1)),
}

TRAILING = re.compile(r"^(?:last|past|previous) (\d+) (day|week|month|year)s?$")
SINCE = re.compile(r"^since (.+)$")
SPANS = (
    re.compile(r"^(\d{4}-\d{2}-\d{2})\s*,\s*(\d{4}-\d{2}-\d{2})$"),
    re.compile(r"^between (.+) and (.+)$"),
    re.compile(r"^(?:from )?(.+?) (?:to|until|till|through) (.+)$"),
    re.compile(r"^(.+?) - (.+)$"),
)
FILLER = re.compile(r"^(?:in|on|during|for|of) ")


def _phrase(text: str, today: date, year: Optional[int] = None) -> Optional[DateRange]:
    """One period phrase (no span separators) to its window."""
    text = FILLER.sub("", text.strip())
    if text in KEYWORDS:
        return KEYWORDS[text](today)

    match = TRAILING.match(text)
    if match:
        count, unit = int(match.group(1)), match.group(2)
        start = today - relativedelta(**{f"{unit}s": count}) + timedelta(days=1)
        return start_of_day(start), end_of_day(today)

    # Parsing against two different defaults shows which parts the text left out
    base_year = year or today.year
    try:
        low = date_parser.parse(text, default=datetime(base_year, 1, 1))
        high = date_parser.parse(text, default=datetime(base_year, 12, 28))
    except (ValueError, OverflowError):
        return None

    if low.month != high.month:
        return _year(low.date())
    if low.day != high.day:
        return _month(low.date())
    return _day(low.date())


def _span(text: str, today: date) -> Optional[DateRange]:
    match = SINCE.match(text)
    if match:
        found = _phrase(match.group(1), today)
        return (found[0], end_of_day(today)) if found else None

    for pattern in SPANS:
        match = pattern.match(text)
        if match is None:
            continue
        right = _phrase(match.group(2), today)
        if right is None:
            return None
        left = _phrase(match.group(1), today, year=right[0].year)
        if left is None:
            return None
        return left[0], right[1]
    return None


def parse_date_range(description: Optional[str], reference: Optional[datetime] = None) -> Optional[DateRange]:
    """
    Resolve a period description relative to `reference` (default now).

    Returns (start_of_day, end_of_day) datetimes, swapped into order when the
    description runs backwards, or None when nothing sensible was found.
    """
    if not description or not description.strip():
        return None

    today = (reference or datetime.now()).date()
    text = " ".join(description.lower().split())

    found = _span(text, today) or _phrase(text, today)
    if found is None:
        logger.info("date_range_unparsed", description=description)
        return None

    start, end = found
    if start > end:
        start, end = start_of_day(end), end_of_day(start)
    return start, end


def to_duration(found: DateRange) -> str:
    """A range as a duration value: 'YYYY-MM-DD' for one day, else 'start,end'."""
    start, end = found[0].date(), found[1].date()
    if start == end:
        return start.isoformat()
    return f"{start.isoformat()},{end.isoformat()}"


def resolve_duration(value: Optional[str], reference: Optional[datetime] = None) -> Optional[str]:
    """
    Duration keywords pass through unchanged; anything else is parsed as a
    description. None when the value is empty or cannot be understood.
    """
    if not value or not value.strip():
        return None
    if value in DURATIONS:
        return value
    found = parse_date_range(value, reference)
    return to_duration(found) if found else None
