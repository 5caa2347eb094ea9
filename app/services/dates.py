# app/services/dates.py
#
# Date-window helpers shared by transactions, accounts, budgets and debts:
# named durations ("thisMonth", "all", "2024-03-05", "2024-01-01,2024-03-31") to concrete
# [start, end] datetimes, the preceding window for period-over-period
# comparisons, and chart bucket granularity.

from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple

from dateutil.relativedelta import relativedelta
from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from models import Transaction

DURATIONS = ("today", "thisWeek", "thisMonth", "thisYear", "all")


# ---- Day boundaries ----

def start_of_day(d) -> datetime:
    if isinstance(d, datetime):
        d = d.date()
    return datetime.combine(d, time.min)


def end_of_day(d) -> datetime:
    if isinstance(d, datetime):
        d = d.date()
    return datetime.combine(d, time.max)


def month_range(year: int, month: int) -> Tuple[datetime, datetime]:
    """
    Returns (start, end_exclusive) for the given calendar month:
    the first day of the month and the first day of the next month.
    """
    start = datetime(year, month, 1)
    if month == 12:
        end_exclusive = datetime(year + 1, 1, 1)
    else:
        end_exclusive = datetime(year, month + 1, 1)
    return start, end_exclusive


def parse_day(value: str) -> Optional[date]:
    """'YYYY-MM-DD' (or an ISO datetime) to a date; None when unparsable."""
    if not value:
        return None
    value = value.strip()
    try:
        return datetime.strptime(value[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_custom_range(duration: str) -> Optional[Tuple[date, date]]:
    if not duration or "," not in duration:
        return None
    start_str, _, end_str = duration.partition(",")
    start, end = parse_day(start_str), parse_day(end_str)
    if start is None or end is None:
        return None
    return start, end


def parse_single_day(duration: Optional[str]) -> Optional[date]:
    """A bare 'YYYY-MM-DD' duration names that one day."""
    if not duration or len(duration) != 10 or "," in duration:
        return None
    return parse_day(duration)


# ---- Named durations ----

def get_interval(
    duration: Optional[str],
    db: Optional[Session] = None,
    owner: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """
    Resolve a duration to (start, end), both inclusive.

    'all' starts at the beginning of the year of the first transaction
    (scoped to `owner` when given) and ends today. Unknown values fall back
    to the current month. A bare day names that day; a custom range must be
    ordered start < end.
    """
    now = now or datetime.now()
    today = now.date()

    if duration and "," in duration:
        parsed = parse_custom_range(duration)
        if parsed is None or parsed[0] >= parsed[1]:
            raise HTTPException(status_code=400, detail="Invalid custom date range format or order.")
        return start_of_day(parsed[0]), end_of_day(parsed[1])

    single = parse_single_day(duration)
    if single is not None:
        return start_of_day(single), end_of_day(single)

    if duration == "today":
        return start_of_day(today), end_of_day(today)

    if duration == "thisWeek":
        # Weeks start on Sunday
        week_start = today - timedelta(days=(today.weekday() + 1) % 7)
        return start_of_day(week_start), end_of_day(week_start + timedelta(days=6))

    if duration == "thisYear":
        return datetime(today.year, 1, 1), end_of_day(date(today.year, 12, 31))

    if duration == "all":
        first = None
        if db is not None:
            q = db.query(func.min(Transaction.created_at))
            if owner:
                q = q.filter(Transaction.owner == owner)
            first = q.scalar()
        year = first.year if first else today.year
        return datetime(year, 1, 1), end_of_day(today)

    start, end_exclusive = month_range(today.year, today.month)
    return start, end_of_day(end_exclusive.date() - timedelta(days=1))


def get_previous_interval(start: datetime, end: datetime) -> Tuple[datetime, datetime]:
    """
    The window immediately before [start, end], shifted by a calendar unit
    that matches its length: a day, a week, a month, a year, or the whole
    number of years it spans.
    """
    days = (end - start).days

    if days <= 1:
        shift = relativedelta(days=1)
    elif days <= 7:
        shift = relativedelta(weeks=1)
    elif days <= 31:
        shift = relativedelta(months=1)
    elif days <= 366:
        shift = relativedelta(years=1)
    else:
        shift = relativedelta(years=relativedelta(end, start).years)

    return start - shift, end - shift


# ---- Chart buckets ----

def get_bucket(duration: Optional[str]) -> str:
    """Chart granularity for a duration: 'hour', 'day', 'month' or 'year'."""
    if parse_single_day(duration) is not None:
        return "hour"

    parsed = parse_custom_range(duration) if duration else None
    if parsed:
        days = (parsed[1] - parsed[0]).days
        if days <= 31:
            return "day"
        if days <= 366:
            return "month"
        return "year"

    return {
        "today": "hour",
        "thisWeek": "day",
        "thisMonth": "day",
        "thisYear": "month",
        "all": "year",
    }.get(duration or "", "day")


def bucket_start(moment: datetime, bucket: str) -> datetime:
    if bucket == "hour":
        return moment.replace(minute=0, second=0, microsecond=0)
    if bucket == "month":
        return datetime(moment.year, moment.month, 1)
    if bucket == "year":
        return datetime(moment.year, 1, 1)
    return start_of_day(moment)


BUCKET_LABELS = {
    "hour": "%I:%M %p",
    "day": "%b %d",
    "month": "%b %Y",
    "year": "%Y",
}


def bucket_label(moment: datetime, bucket: str) -> str:
    return moment.strftime(BUCKET_LABELS.get(bucket, "%b %d"))


def recurrence_step(recurrence_type: str) -> relativedelta:
    return {
        "daily": relativedelta(days=1),
        "weekly": relativedelta(weeks=1),
        "monthly": relativedelta(months=1),
        "yearly": relativedelta(years=1),
    }[recurrence_type]
