"""
Unit tests for the pure calculators: percentage change, interest,
budget progress, date windows, period descriptions and recurrence stepping.
"""

from datetime import date, datetime, time

import pytest
from fastapi import HTTPException

from app.services.analytics import calculate_percentage_change
from app.services.budgets import progress_percent
from app.services.dates import get_bucket, get_interval, get_previous_interval, month_range
from app.services.debts import calculate_interest, duration_in_years
from app.services.nl_dates import parse_date_range, resolve_duration
from app.services.recurring import next_due_date
from app.services.transactions import create_transaction
from conftest import make_user
from models import Account, Transaction


class TestPercentageChange:
    def test_growth(self):
        assert calculate_percentage_change(100, 150) == 50.0

    def test_decline(self):
        assert calculate_percentage_change(200, 50) == -75.0

    def test_zero_base(self):
        """From zero: 100 for a positive value, 0 otherwise."""
        assert calculate_percentage_change(0, 10) == 100.0
        assert calculate_percentage_change(0, 0) == 0.0
        assert calculate_percentage_change(None, -5) == 0.0

    def test_negative_base_uses_magnitude(self):
        assert calculate_percentage_change(-100, -50) == 50.0


class TestInterest:
    def test_simple_interest_in_years(self):
        result = calculate_interest(1000, 10, "year", "simple", frequency=2)
        assert result == {"interest": 200.0, "total_amount": 1200.0}

    def test_simple_interest_in_months(self):
        result = calculate_interest(1200, 12, "month", "simple", frequency=6)
        assert result == {"interest": 72.0, "total_amount": 1272.0}

    def test_compound_interest_monthly(self):
        result = calculate_interest(1000, 12, "year", "compound", compounding_frequency=12, frequency=1)
        assert result["total_amount"] == 1126.83
        assert result["interest"] == 126.83

    def test_date_range_duration(self):
        years = duration_in_years("2024-01-01,2025-01-01")
        assert years == pytest.approx(366 / 365.25)

    def test_plain_number_of_years(self):
        assert duration_in_years("1.5") == 1.5
        assert duration_in_years(2) == 2.0

    def test_unit_without_frequency_is_rejected(self):
        with pytest.raises(HTTPException) as exc:
            calculate_interest(1000, 10, "year", "simple")
        assert exc.value.status_code == 400

    def test_reversed_range_is_rejected(self):
        with pytest.raises(HTTPException) as exc:
            duration_in_years("2025-01-01,2024-01-01")
        assert exc.value.status_code == 400

    def test_invalid_inputs(self):
        with pytest.raises(HTTPException):
            calculate_interest(0, 10, "year", "simple", frequency=1)
        with pytest.raises(HTTPException):
            calculate_interest(100, -1, "year", "simple", frequency=1)
        with pytest.raises(HTTPException):
            calculate_interest(100, 5, "year", "continuous", frequency=1)


class TestBudgetProgress:
    def test_partial(self):
        assert progress_percent(200, 50) == 25.0

    def test_clamped_at_hundred(self):
        assert progress_percent(100, 250) == 100.0

    def test_zero_budget(self):
        assert progress_percent(0, 10) == 100.0
        assert progress_percent(0, 0) == 0.0


class TestDateWindows:
    def test_month_range_december(self):
        start, end = month_range(2024, 12)
        assert start == datetime(2024, 12, 1)
        assert end == datetime(2025, 1, 1)

    def test_this_month(self):
        start, end = get_interval("thisMonth", now=datetime(2024, 2, 10, 12, 0))
        assert start == datetime(2024, 2, 1)
        assert end.date() == date(2024, 2, 29)

    def test_custom_range(self):
        start, end = get_interval("2024-01-01,2024-01-31")
        assert start == datetime(2024, 1, 1)
        assert end.date() == date(2024, 1, 31)

    def test_custom_range_must_be_ordered(self):
        with pytest.raises(HTTPException) as exc:
            get_interval("2024-02-01,2024-01-01")
        assert exc.value.status_code == 400

    def test_previous_interval_shifts_by_a_month(self):
        start, end = datetime(2024, 1, 11), datetime(2024, 1, 20, 23, 59, 59)
        prev_start, prev_end = get_previous_interval(start, end)
        assert prev_start == datetime(2023, 12, 11)
        assert prev_end == datetime(2023, 12, 20, 23, 59, 59)

    def test_previous_interval_of_a_day(self):
        start, end = datetime(2024, 3, 1), datetime(2024, 3, 1, 23, 59, 59)
        assert get_previous_interval(start, end) == (datetime(2024, 2, 29), datetime(2024, 2, 29, 23, 59, 59))

    def test_this_week_starts_on_sunday(self):
        start, end = get_interval("thisWeek", now=datetime(2024, 3, 13, 12, 0))
        assert start == datetime(2024, 3, 10)
        assert end.date() == date(2024, 3, 16)

    def test_this_year(self):
        start, end = get_interval("thisYear", now=datetime(2024, 3, 13, 12, 0))
        assert start == datetime(2024, 1, 1)
        assert end.date() == date(2024, 12, 31)

    def test_all_without_transactions_starts_this_year(self):
        start, end = get_interval("all", now=datetime(2024, 3, 13, 12, 0))
        assert start == datetime(2024, 1, 1)
        assert end == datetime.combine(date(2024, 3, 13), time.max)

    def test_all_starts_at_the_year_of_the_first_transaction(self, db):
        carol = make_user(db)
        account = db.query(Account).filter(Account.owner == carol.id).one()
        payload = {"text": "Old salary", "amount": 10, "is_income": True, "account": account.id, "created_at": datetime(2021, 6, 1)}
        create_transaction(db, carol.id, payload)

        start, _ = get_interval("all", db, carol.id, now=datetime(2024, 3, 13))
        assert start == datetime(2021, 1, 1)

    def test_single_day(self):
        start, end = get_interval("2024-03-05")
        assert start == datetime(2024, 3, 5)
        assert end.date() == date(2024, 3, 5)

    def test_previous_interval_of_a_week(self):
        start, end = datetime(2024, 3, 10), datetime(2024, 3, 16, 23, 59, 59)
        assert get_previous_interval(start, end) == (datetime(2024, 3, 3), datetime(2024, 3, 9, 23, 59, 59))

    def test_previous_interval_of_a_year(self):
        start, end = datetime(2024, 1, 1), datetime(2024, 12, 31, 23, 59, 59)
        assert get_previous_interval(start, end) == (datetime(2023, 1, 1), datetime(2023, 12, 31, 23, 59, 59))

    def test_previous_interval_over_several_years(self):
        start, end = datetime(2021, 1, 1), datetime(2024, 3, 13, 23, 59, 59)
        assert get_previous_interval(start, end) == (datetime(2018, 1, 1), datetime(2021, 3, 13, 23, 59, 59))

    @pytest.mark.parametrize(
        "duration, bucket",
        [
            ("today", "hour"),
            ("2024-03-05", "hour"),
            ("thisWeek", "day"),
            ("thisMonth", "day"),
            (None, "day"),
            ("thisYear", "month"),
            ("all", "year"),
            ("2024-01-01,2024-01-20", "day"),
            ("2024-01-01,2024-06-30", "month"),
            ("2020-01-01,2024-01-01", "year"),
        ],
    )
    def test_bucket(self, duration, bucket):
        assert get_bucket(duration) == bucket


class TestPeriodDescriptions:
    # A Wednesday
    NOW = datetime(2024, 3, 13, 10, 0)

    def days(self, description):
        found = parse_date_range(description, self.NOW)
        return (found[0].date(), found[1].date()) if found else None

    @pytest.mark.parametrize(
        "description, start, end",
        [
            ("yesterday", date(2024, 3, 12), date(2024, 3, 12)),
            ("Last Week", date(2024, 3, 4), date(2024, 3, 10)),
            ("last month", date(2024, 2, 1), date(2024, 2, 29)),
            ("this quarter", date(2024, 1, 1), date(2024, 3, 31)),
            ("last quarter", date(2023, 10, 1), date(2023, 12, 31)),
            ("last 30 days", date(2024, 2, 13), date(2024, 3, 13)),
            ("March 2023", date(2023, 3, 1), date(2023, 3, 31)),
            ("2023", date(2023, 1, 1), date(2023, 12, 31)),
            ("2024-03-05", date(2024, 3, 5), date(2024, 3, 5)),
            ("from 1 March to 15 April 2023", date(2023, 3, 1), date(2023, 4, 15)),
            ("2024-01-01,2024-02-15", date(2024, 1, 1), date(2024, 2, 15)),
            ("since January", date(2024, 1, 1), date(2024, 3, 13)),
        ],
    )
    def test_descriptions(self, description, start, end):
        assert self.days(description) == (start, end)

    def test_bounds_cover_whole_days(self):
        start, end = parse_date_range("yesterday", self.NOW)
        assert start == datetime(2024, 3, 12)
        assert end == datetime.combine(date(2024, 3, 12), time.max)

    def test_unparsable(self):
        assert parse_date_range("someday soon", self.NOW) is None
        assert parse_date_range("   ", self.NOW) is None

    def test_resolve_duration(self):
        assert resolve_duration("thisMonth", self.NOW) == "thisMonth"
        assert resolve_duration("yesterday", self.NOW) == "2024-03-12"
        assert resolve_duration("last month", self.NOW) == "2024-02-01,2024-02-29"
        assert resolve_duration("someday soon", self.NOW) is None


class TestRecurrence:
    def _template(self, recurrence_type, created_at):
        return Transaction(
            text="Rent",
            amount=500.0,
            is_income=False,
            recurring=True,
            recurrence_type=recurrence_type,
            created_at=created_at,
        )

    def test_monthly_from_template(self):
        template = self._template("monthly", datetime(2024, 1, 31, 15, 30))
        assert next_due_date(template, None) == datetime(2024, 2, 29)

    def test_from_last_instance(self):
        template = self._template("weekly", datetime(2024, 1, 1, 9, 0))
        assert next_due_date(template, datetime(2024, 1, 15, 0, 0)) == datetime(2024, 1, 22)

    def test_unknown_type(self):
        template = self._template("hourly", datetime(2024, 1, 1))
        assert next_due_date(template, None) is None
