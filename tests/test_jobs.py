"""Scheduled jobs: notifications, recurring generation and import cleanup."""

from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from app import jobs
from app.services import categories, goals, import_cleanup, notifications, recurring
from app.services.budgets import create_budget
from app.services.transactions import create_transaction
from conftest import make_user
from models import Account, ImportData, Transaction

NOW = datetime(2024, 3, 15, 9, 30)


@pytest.fixture
def carol(db):
    return make_user(db)


@pytest.fixture
def carol_account(db, carol):
    return db.query(Account).filter(Account.owner == carol.id, Account.is_default.is_(True)).one()


def record(db, user, account, text, amount, is_income, **extra):
    payload = {"text": text, "amount": amount, "is_income": is_income, "account": account.id, **extra}
    return create_transaction(db, user.id, payload, bypass_owner_check=True)["data"]


def templates_named(db, text):
    return db.query(Transaction).filter(Transaction.text == text, Transaction.recurring.is_(False)).all()


class TestBudgetAlerts:
    def test_approaching_and_exceeded(self, db, carol, carol_account, sent_emails):
        food = categories.create_category(db, carol.id, "Food")
        fuel = categories.create_category(db, carol.id, "Fuel")
        books = categories.create_category(db, carol.id, "Books")
        for category in (food, fuel, books):
            create_budget(db, carol.id, category["id"], 3, 2024, 100)

        march = datetime(2024, 3, 10)
        record(db, carol, carol_account, "Salary", 1000, True, created_at=march)
        record(db, carol, carol_account, "Groceries", 95, False, category=food["id"], created_at=march)
        record(db, carol, carol_account, "Petrol", 150, False, category=fuel["id"], created_at=march)
        record(db, carol, carol_account, "Novel", 20, False, category=books["id"], created_at=march)
        # Spend from February does not count against March
        record(db, carol, carol_account, "Old novels", 90, False, category=books["id"], created_at=datetime(2024, 2, 20))

        result = notifications.check_budget_alerts(db, now=NOW)
        assert result == {"alerted": 2, "errors": 0}

        alerts = {m["context"]["category_name"]: m["context"]["alert_type"] for m in sent_emails if m["template"] == "budget_alert"}
        assert alerts == {"Food": "approaching", "Fuel": "exceeded"}

    def test_other_months_are_ignored(self, db, carol, sent_emails):
        food = categories.create_category(db, carol.id, "Food")
        create_budget(db, carol.id, food["id"], 4, 2024, 100)
        assert notifications.check_budget_alerts(db, now=NOW)["alerted"] == 0


class TestGoalReminders:
    def test_only_unfinished_goals_due_soon(self, db, carol, sent_emails):
        goals.create_goal(db, carol.id, "Concert", 200, datetime(2024, 3, 20))
        goals.create_goal(db, carol.id, "Holiday", 2000, datetime(2024, 6, 1))
        done = goals.create_goal(db, carol.id, "Shoes", 80, datetime(2024, 3, 18))
        goals.add_amount(db, done["id"], carol.id, 80)

        assert notifications.check_goal_reminders(db, now=NOW) == {"reminded": 1, "errors": 0}

        reminder = [m for m in sent_emails if m["template"] == "goal_reminder"][0]
        assert reminder["context"]["goal_name"] == "Concert"
        assert reminder["context"]["remaining"] == 200
        assert reminder["to"] == "carol@example.com"

    def test_failed_lookup_is_counted(self, db, carol, sent_emails, monkeypatch):
        goals.create_goal(db, carol.id, "Concert", 200, datetime(2024, 3, 20))

        def broken(db, goal):
            raise OperationalError("SELECT users", {}, Exception("database is locked"))

        monkeypatch.setattr(notifications, "_goal_owner", broken)
        assert notifications.check_goal_reminders(db, now=NOW) == {"reminded": 0, "errors": 1}
        assert sent_emails == []


class TestBillReminders:
    def test_upcoming_recurring_expense(self, db, carol, carol_account, sent_emails):
        record(db, carol, carol_account, "Salary", 1000, True, created_at=datetime(2024, 2, 1))
        record(
            db, carol, carol_account, "Internet", 40, False,
            recurring=True, recurrence_type="monthly", created_at=datetime(2024, 2, 16, 8, 0),
        )
        record(
            db, carol, carol_account, "Gym", 25, False,
            recurring=True, recurrence_type="monthly", created_at=datetime(2024, 2, 28, 8, 0),
        )

        assert notifications.check_bill_reminders(db, now=NOW) == {"reminded": 1, "errors": 0}
        bill = [m for m in sent_emails if m["template"] == "bill_reminder"][0]
        assert bill["context"]["description"] == "Internet"
        assert bill["context"]["due_date"] == "March 16, 2024"

    def test_recurring_income_is_not_a_bill(self, db, carol, carol_account, sent_emails):
        record(
            db, carol, carol_account, "Salary", 1000, True,
            recurring=True, recurrence_type="monthly", created_at=datetime(2024, 2, 16),
        )
        assert notifications.check_bill_reminders(db, now=NOW)["reminded"] == 0


class TestRecurringGeneration:
    def test_one_instance_per_run(self, db, carol, carol_account):
        record(
            db, carol, carol_account, "Pocket money", 10, True,
            recurring=True, recurrence_type="weekly", created_at=datetime(2024, 2, 1, 12, 0),
        )

        assert recurring.generate_due_transactions(db, now=NOW) == {"generated": 1, "skipped": 0, "errors": 0}
        assert [t.created_at for t in templates_named(db, "Pocket money")] == [datetime(2024, 2, 8)]

        recurring.generate_due_transactions(db, now=NOW)
        dates = sorted(t.created_at for t in templates_named(db, "Pocket money"))
        assert dates == [datetime(2024, 2, 8), datetime(2024, 2, 15)]

        db.refresh(carol_account)
        assert carol_account.balance == 30

    def test_not_yet_due(self, db, carol, carol_account):
        record(
            db, carol, carol_account, "Rent", 500, True,
            recurring=True, recurrence_type="monthly", created_at=datetime(2024, 3, 1),
        )
        assert recurring.generate_due_transactions(db, now=NOW) == {"generated": 0, "skipped": 1, "errors": 0}

    def test_ended_template_is_ignored(self, db, carol, carol_account):
        record(
            db, carol, carol_account, "Trial plan", 5, True,
            recurring=True, recurrence_type="daily",
            created_at=datetime(2024, 3, 1), recurrence_end_date=datetime(2024, 3, 5),
        )
        assert recurring.generate_due_transactions(db, now=NOW)["generated"] == 0
        assert templates_named(db, "Trial plan") == []

    def test_expense_instance_may_overdraw(self, db, carol, carol_account):
        record(
            db, carol, carol_account, "Streaming", 12, False,
            recurring=True, recurrence_type="monthly", created_at=datetime(2024, 2, 10),
        )
        assert recurring.generate_due_transactions(db, now=NOW)["generated"] == 1
        db.refresh(carol_account)
        assert carol_account.balance == -24


class TestImportCleanup:
    def _draft(self, db, user, account, created_at, is_imported=False):
        db.add(
            ImportData(
                account=account.id,
                user=user.id,
                data="[]",
                total_records=0,
                error_records=0,
                is_imported=is_imported,
                created_at=created_at,
            )
        )
        db.commit()

    def test_removes_only_old_unconfirmed_drafts(self, db, carol, carol_account):
        self._draft(db, carol, carol_account, datetime(2024, 1, 1))
        self._draft(db, carol, carol_account, datetime(2024, 1, 1), is_imported=True)
        self._draft(db, carol, carol_account, datetime(2024, 3, 14))

        assert import_cleanup.cleanup_stale_imports(db, now=NOW) == 1
        assert db.query(ImportData).count() == 2

    def test_custom_age(self, db, carol, carol_account):
        self._draft(db, carol, carol_account, datetime(2024, 3, 14))
        assert import_cleanup.cleanup_stale_imports(db, max_age_days=0, now=NOW) == 1


class TestJobsCli:
    def test_runs_named_job_against_session(self, monkeypatch, engine, session_factory, db, carol, carol_account, capsys):
        monkeypatch.setattr(jobs, "SessionLocal", session_factory)
        monkeypatch.setattr(jobs, "engine", engine)
        db.add(
            ImportData(
                account=carol_account.id,
                user=carol.id,
                data="[]",
                total_records=0,
                error_records=0,
                created_at=datetime(2000, 1, 1),
            )
        )
        db.commit()

        assert jobs.main(["cleanup-imports", "--log-level", "WARNING"]) == 0
        assert '"removed": 1' in capsys.readouterr().out

    def test_unknown_job(self):
        with pytest.raises(SystemExit):
            jobs.main(["nope"])
