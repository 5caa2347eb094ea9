# app/services/assistant_tools.py
#
# Function-calling tools for the assistant, built per user over the regular
# services. Every tool returns a JSON-able dict; service errors come back as
# {"success": False, "error": ...} so the model can explain them.
#
# Destructive tools come in pairs: an identify/find tool that locates the
# record and asks for confirmation, and an execute_confirmed_* tool that acts
# on the id the user confirmed.

import json
from datetime import date
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import structlog

from app.services import (
    accounts,
    budgets,
    categories,
    debts,
    finance,
    goals,
    investment_accounts,
    investments,
    transactions,
)
from app.services.dates import end_of_day, parse_day, start_of_day
from app.services.nl_dates import parse_date_range, resolve_duration, to_duration
from models import Account, Budget, Category, Debt, Investment, InvestmentAccount, SavingGoal, Transaction, User

logger = structlog.get_logger(__name__)


class ToolError(Exception):
    """A tool could not resolve its arguments (unknown or ambiguous name)."""

    def __init__(self, message: str, options: Optional[List[dict]] = None):
        super().__init__(message)
        self.message = message
        self.options = options or []


class Tool(NamedTuple):
    spec: dict
    handler: Callable[..., dict]


def _spec(name: str, description: str, properties: Dict[str, dict], required: List[str] = ()) -> dict:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": list(required),
            },
        },
    }


def _str(description: str) -> dict:
    return {"type": "string", "description": description}


def _num(description: str) -> dict:
    return {"type": "number", "description": description}


def _int(description: str) -> dict:
    return {"type": "integer", "description": description}


def _bool(description: str) -> dict:
    return {"type": "boolean", "description": description}


def _enum(description: str, values) -> dict:
    return {"type": "string", "enum": list(values), "description": description}


DURATION = _str(
    "thisMonth, today, thisWeek, thisYear, all, a day, 'YYYY-MM-DD,YYYY-MM-DD', or a description "
    "such as 'last month', 'last 30 days' or 'March 2024'. Defaults to thisMonth."
)
DAY = _str("A day: YYYY-MM-DD or a description such as 'yesterday' or 'March 5'")


# -------------------------------------------------------------------
# Name resolution
# -------------------------------------------------------------------

def _resolve(rows: List[Any], identifier: str, label: str, key: str = "name") -> str:
    """
    Pick one row out of name matches: a single match or an exact
    (case-insensitive) match wins, several matches ask for clarification.
    """
    if not rows:
        raise ToolError(f'{label} like "{identifier}" not found.')
    if len(rows) == 1:
        return rows[0].id
    wanted = identifier.strip().lower()
    for row in rows:
        if (getattr(row, key) or "").lower() == wanted:
            return row.id
    raise ToolError(
        f'Several {label.lower()}s match "{identifier}". Which one did you mean?',
        options=[{"id": row.id, "name": getattr(row, key)} for row in rows],
    )


def _like(identifier: str) -> str:
    if not identifier or not identifier.strip():
        raise ToolError("An identifier is required.")
    return f"%{identifier.strip()}%"


def resolve_account_id(db: Session, user_id: str, identifier: str) -> str:
    by_id = db.query(Account).filter(Account.id == identifier, Account.owner == user_id).first()
    if by_id is not None:
        return by_id.id
    rows = db.query(Account).filter(Account.owner == user_id, Account.name.ilike(_like(identifier))).limit(5).all()
    return _resolve(rows, identifier, "Account")


def resolve_category_id(db: Session, user_id: str, identifier: str) -> str:
    rows = (
        db.query(Category)
        .filter(Category.owner == user_id, Category.name.ilike(_like(identifier)))
        .limit(5)
        .all()
    )
    return _resolve(rows, identifier, "Category")


def resolve_investment_account_id(db: Session, user_id: str, identifier: str) -> str:
    rows = (
        db.query(InvestmentAccount)
        .filter(InvestmentAccount.user_id == user_id, InvestmentAccount.name.ilike(_like(identifier)))
        .limit(5)
        .all()
    )
    return _resolve(rows, identifier, "Investment account")


def resolve_user_id(db: Session, identifier: str) -> str:
    by_email = db.query(User).filter(User.email == identifier.strip().lower()).first()
    if by_email is not None:
        return by_email.id
    rows = db.query(User).filter(User.name.ilike(_like(identifier))).limit(5).all()
    return _resolve(rows, identifier, "User")


def _confirm(message: str, record_id: str, details: dict) -> dict:
    return {"success": True, "confirmation_needed": True, "id": record_id, "message": message, "details": details}


# ---- Date arguments ----

def _period(value: Optional[str]) -> Optional[str]:
    """A duration keyword or a described period ("last month") as a duration value."""
    if not value:
        return None
    duration = resolve_duration(value)
    if duration is None:
        raise ToolError(f'Could not understand the period "{value}". Try "last month", "this year" or "2024-01-01 to 2024-03-31".')
    return duration


def _single_day(value: Optional[str]) -> Optional[str]:
    """A described day ("yesterday", "March 5") as YYYY-MM-DD."""
    if not value:
        return None
    found = parse_date_range(value)
    if found is None:
        raise ToolError(f'Could not understand the date "{value}". Use a day like "yesterday" or 2024-03-05.')
    if found[0].date() != found[1].date():
        raise ToolError(f'"{value}" is a period, not a single day. Please name one day.')
    return found[0].date().isoformat()


def _month_year(month: Optional[int], year: Optional[int], period: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """Explicit month/year win; otherwise the month a described period starts in."""
    if period and (month is None or year is None):
        found = parse_date_range(period)
        if found is None:
            raise ToolError(f'Could not understand the period "{period}".')
        month = month if month is not None else found[0].month
        year = year if year is not None else found[0].year
    return month, year


# -------------------------------------------------------------------
# Tool sets
# -------------------------------------------------------------------

def _account_tools(db: Session, user: User) -> Dict[str, Tool]:
    def create_account(name: str, balance: float = 0.0, currency: Optional[str] = None) -> dict:
        result = accounts.create_account(db, user.id, name, balance, currency or user.preferred_currency)
        return {"success": True, **result}

    def list_accounts(q: str = "") -> dict:
        result = accounts.list_accounts(db, user.id, page=1, page_size=50, q=q)
        rows = [{"id": a["id"], "name": a["name"], "balance": a["balance"], "currency": a["currency"]} for a in result["accounts"]]
        return {"success": True, "data": rows}

    def get_account_balance(account: str) -> dict:
        row = accounts.get_account(db, resolve_account_id(db, user.id, account), user.id)
        return {"success": True, "data": {"name": row["name"], "balance": row["balance"], "currency": row["currency"]}}

    def identify_account_for_action(account: str) -> dict:
        account_id = resolve_account_id(db, user.id, account)
        row = db.query(Account).filter(Account.id == account_id).one()
        return _confirm(
            f'Found account "{row.name}" (balance {row.balance} {row.currency}). Please confirm the action.',
            row.id,
            {"name": row.name, "balance": row.balance},
        )

    def execute_confirmed_delete_account(account_id: str) -> dict:
        return {"success": True, **accounts.delete_account(db, account_id, user.id)}

    def execute_confirmed_update_account_name(account_id: str, new_name: str) -> dict:
        return {"success": True, **accounts.update_account(db, account_id, user.id, name=new_name)}

    return {
        "create_account": Tool(
            _spec(
                "create_account",
                "Creates a new account with an optional opening balance.",
                {"name": _str("Account name"), "balance": _num("Opening balance"), "currency": _str("3-letter currency code")},
                ["name"],
            ),
            create_account,
        ),
        "list_accounts": Tool(
            _spec("list_accounts", "Lists the user's accounts with balances.", {"q": _str("Optional name filter")}),
            list_accounts,
        ),
        "get_account_balance": Tool(
            _spec(
                "get_account_balance",
                "Retrieves the current balance of an account by name or id.",
                {"account": _str("Account name or id")},
                ["account"],
            ),
            get_account_balance,
        ),
        "identify_account_for_action": Tool(
            _spec(
                "identify_account_for_action",
                "Finds an account before updating or deleting it and returns its id for confirmation.",
                {"account": _str("Account name or id")},
                ["account"],
            ),
            identify_account_for_action,
        ),
        "execute_confirmed_delete_account": Tool(
            _spec(
                "execute_confirmed_delete_account",
                "Deletes an account. Only after the user confirmed the id.",
                {"account_id": _str("Confirmed account id")},
                ["account_id"],
            ),
            execute_confirmed_delete_account,
        ),
        "execute_confirmed_update_account_name": Tool(
            _spec(
                "execute_confirmed_update_account_name",
                "Renames an account. Only after the user confirmed the id.",
                {"account_id": _str("Confirmed account id"), "new_name": _str("New name")},
                ["account_id", "new_name"],
            ),
            execute_confirmed_update_account_name,
        ),
    }


def _category_tools(db: Session, user: User) -> Dict[str, Tool]:
    def create_category(name: str) -> dict:
        return {"success": True, "data": categories.create_category(db, user.id, name)}

    def list_categories(q: str = "") -> dict:
        result = categories.list_categories(db, user.id, page=1, page_size=100, q=q)
        return {"success": True, "data": [{"id": c["id"], "name": c["name"]} for c in result["categories"]]}

    def identify_category_for_action(category: str) -> dict:
        category_id = resolve_category_id(db, user.id, category)
        row = db.query(Category).filter(Category.id == category_id).one()
        return _confirm(f'Found category "{row.name}". Please confirm the action.', row.id, {"name": row.name})

    def execute_confirmed_delete_category(category_id: str) -> dict:
        return {"success": True, **categories.delete_category(db, category_id, user.id)}

    def execute_confirmed_update_category_name(category_id: str, new_name: str) -> dict:
        return {"success": True, **categories.update_category(db, category_id, user.id, new_name)}

    return {
        "create_category": Tool(
            _spec("create_category", "Creates a transaction category.", {"name": _str("Category name")}, ["name"]),
            create_category,
        ),
        "list_categories": Tool(
            _spec("list_categories", "Lists the user's categories.", {"q": _str("Optional name filter")}),
            list_categories,
        ),
        "identify_category_for_action": Tool(
            _spec(
                "identify_category_for_action",
                "Finds a category before renaming or deleting it and returns its id for confirmation.",
                {"category": _str("Category name")},
                ["category"],
            ),
            identify_category_for_action,
        ),
        "execute_confirmed_delete_category": Tool(
            _spec(
                "execute_confirmed_delete_category",
                "Deletes a category. Only after the user confirmed the id.",
                {"category_id": _str("Confirmed category id")},
                ["category_id"],
            ),
            execute_confirmed_delete_category,
        ),
        "execute_confirmed_update_category_name": Tool(
            _spec(
                "execute_confirmed_update_category_name",
                "Renames a category. Only after the user confirmed the id.",
                {"category_id": _str("Confirmed category id"), "new_name": _str("New name")},
                ["category_id", "new_name"],
            ),
            execute_confirmed_update_category_name,
        ),
    }


def _transaction_tools(db: Session, user: User) -> Dict[str, Tool]:
    def add_transaction(
        account: str,
        text: str,
        amount: float,
        type: str,
        category: Optional[str] = None,
        transfer: Optional[str] = None,
        date: Optional[str] = None,
    ) -> dict:
        payload = {
            "account": resolve_account_id(db, user.id, account),
            "text": text,
            "amount": amount,
            "is_income": type == "income",
            "transfer": transfer,
            "category": resolve_category_id(db, user.id, category) if category else None,
            "created_at": _single_day(date),
        }
        return {"success": True, **transactions.create_transaction(db, user.id, payload)}

    def list_transactions(
        account: Optional[str] = None,
        duration: Optional[str] = None,
        q: Optional[str] = None,
        type: Optional[str] = None,
        category: Optional[str] = None,
        limit: int = 10,
    ) -> dict:
        result = transactions.list_transactions(
            db,
            user.id,
            account_id=resolve_account_id(db, user.id, account) if account else None,
            duration=_period(duration),
            q=q,
            is_income=None if type is None else type == "income",
            category_id=resolve_category_id(db, user.id, category) if category else None,
            page=1,
            page_size=max(1, min(int(limit), 100)),
        )
        rows = [
            {
                "id": t["id"],
                "text": t["text"],
                "amount": t["amount"],
                "type": "income" if t["is_income"] else "expense",
                "category": (t["category"] or {}).get("name"),
                "date": t["created_at"],
            }
            for t in result["transactions"]
        ]
        return {"success": True, "data": rows, "total": result["pagination"]["total"]}

    def identify_transaction_for_action(text: str, amount: Optional[float] = None, date: Optional[str] = None) -> dict:
        query = db.query(Transaction).filter(Transaction.owner == user.id, Transaction.text.ilike(_like(text)))
        if amount is not None:
            query = query.filter(Transaction.amount == abs(float(amount)))
        day = parse_day(_single_day(date)) if date else None
        if day is not None:
            query = query.filter(Transaction.created_at >= start_of_day(day), Transaction.created_at <= end_of_day(day))
        rows = query.order_by(Transaction.created_at.desc()).limit(5).all()
        if not rows:
            raise ToolError(f'No transaction like "{text}" found.')
        if len(rows) > 1:
            raise ToolError(
                "Several transactions match. Which one did you mean?",
                options=[
                    {"id": t.id, "name": t.text, "details": f"{t.amount} on {t.created_at.date().isoformat()}"}
                    for t in rows
                ],
            )
        t = rows[0]
        return _confirm(
            f'Found "{t.text}" ({t.amount}, {"income" if t.is_income else "expense"}) on {t.created_at.date().isoformat()}. Please confirm.',
            t.id,
            {"text": t.text, "amount": t.amount, "is_income": t.is_income},
        )

    def execute_confirmed_update_transaction(
        transaction_id: str,
        text: Optional[str] = None,
        amount: Optional[float] = None,
        type: Optional[str] = None,
        category: Optional[str] = None,
        date: Optional[str] = None,
    ) -> dict:
        payload: Dict[str, Any] = {}
        if text is not None:
            payload["text"] = text
        if amount is not None:
            payload["amount"] = amount
        if type is not None:
            payload["is_income"] = type == "income"
        if category is not None:
            payload["category"] = resolve_category_id(db, user.id, category)
        if date is not None:
            payload["created_at"] = _single_day(date)
        return {"success": True, **transactions.update_transaction(db, transaction_id, user.id, payload)}

    def execute_confirmed_delete_transaction(transaction_id: str) -> dict:
        return {"success": True, **transactions.delete_transaction(db, transaction_id, user.id)}

    def get_extreme_transaction(kind: str, account: Optional[str] = None, duration: Optional[str] = None) -> dict:
        account_id = resolve_account_id(db, user.id, account) if account else None
        return {"success": True, "data": transactions.extreme_transaction(db, user.id, kind, account_id, _period(duration))}

    kind = _enum("Transaction direction", ("income", "expense"))
    return {
        "add_transaction": Tool(
            _spec(
                "add_transaction",
                "Records an income or expense. The amount is always positive; the type gives the direction.",
                {
                    "account": _str("Account name or id"),
                    "text": _str("Description, at least 3 characters"),
                    "amount": _num("Positive amount"),
                    "type": kind,
                    "category": _str("Category name"),
                    "transfer": _str("Counterparty or source"),
                    "date": _str("Day of the transaction, YYYY-MM-DD or e.g. 'yesterday'. Defaults to today"),
                },
                ["account", "text", "amount", "type"],
            ),
            add_transaction,
        ),
        "list_transactions": Tool(
            _spec(
                "list_transactions",
                "Lists recent transactions with optional filters.",
                {
                    "account": _str("Account name or id"),
                    "duration": DURATION,
                    "q": _str("Text search"),
                    "type": kind,
                    "category": _str("Category name"),
                    "limit": _int("How many to return (1-100)"),
                },
            ),
            list_transactions,
        ),
        "identify_transaction_for_action": Tool(
            _spec(
                "identify_transaction_for_action",
                "Finds a single transaction before updating or deleting it and returns its id for confirmation.",
                {"text": _str("Description to look for"), "amount": _num("Exact amount"), "date": DAY},
                ["text"],
            ),
            identify_transaction_for_action,
        ),
        "execute_confirmed_update_transaction": Tool(
            _spec(
                "execute_confirmed_update_transaction",
                "Updates a transaction. Only after the user confirmed the id.",
                {
                    "transaction_id": _str("Confirmed transaction id"),
                    "text": _str("New description"),
                    "amount": _num("New positive amount"),
                    "type": kind,
                    "category": _str("New category name"),
                    "date": DAY,
                },
                ["transaction_id"],
            ),
            execute_confirmed_update_transaction,
        ),
        "execute_confirmed_delete_transaction": Tool(
            _spec(
                "execute_confirmed_delete_transaction",
                "Deletes a transaction. Only after the user confirmed the id.",
                {"transaction_id": _str("Confirmed transaction id")},
                ["transaction_id"],
            ),
            execute_confirmed_delete_transaction,
        ),
        "get_extreme_transaction": Tool(
            _spec(
                "get_extreme_transaction",
                "Finds the highest or lowest income or expense in a period.",
                {
                    "kind": _enum("Which extreme", transactions.EXTREMES),
                    "account": _str("Account name or id"),
                    "duration": DURATION,
                },
                ["kind"],
            ),
            get_extreme_transaction,
        ),
    }


def _budget_tools(db: Session, user: User) -> Dict[str, Tool]:
    def _which_month(month: Optional[int], year: Optional[int], period: Optional[str]) -> Tuple[int, int]:
        month, year = _month_year(month, year, period)
        if month is None or year is None:
            raise ToolError("Which month and year is the budget for?")
        return month, year

    def create_budget(
        category: str,
        amount: float,
        month: Optional[int] = None,
        year: Optional[int] = None,
        period: Optional[str] = None,
    ) -> dict:
        category_id = resolve_category_id(db, user.id, category)
        month, year = _which_month(month, year, period)
        return {"success": True, "data": budgets.create_budget(db, user.id, category_id, month, year, amount)}

    def list_budgets(month: Optional[int] = None, year: Optional[int] = None, period: Optional[str] = None) -> dict:
        month, year = _month_year(month, year, period)
        return {"success": True, "data": budgets.list_budgets(db, user.id, 1, 100, month, year)["data"]}

    def get_budget_progress(category: str) -> dict:
        return {"success": True, "data": budgets.progress_by_category_name(db, user.id, category)}

    def get_budget_summary(month: Optional[int] = None, year: Optional[int] = None, period: Optional[str] = None) -> dict:
        month, year = _month_year(month, year, period)
        return {"success": True, "data": budgets.budget_summary(db, user.id, month, year)}

    def identify_budget_for_action(
        category: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
        period: Optional[str] = None,
    ) -> dict:
        category_id = resolve_category_id(db, user.id, category)
        month, year = _which_month(month, year, period)
        row = (
            db.query(Budget)
            .filter(
                Budget.user_id == user.id,
                Budget.category == category_id,
                Budget.month == month,
                Budget.year == year,
            )
            .first()
        )
        if row is None:
            raise ToolError(f"No budget for {category} in {month}/{year}.")
        return _confirm(
            f"Found the {category} budget for {month}/{year} ({row.amount}). Please confirm the action.",
            row.id,
            {"amount": row.amount},
        )

    def execute_confirmed_update_budget(budget_id: str, amount: float) -> dict:
        return {"success": True, **budgets.update_budget(db, budget_id, user.id, amount)}

    def execute_confirmed_delete_budget(budget_id: str) -> dict:
        return {"success": True, **budgets.delete_budget(db, budget_id, user.id)}

    period = {
        "month": _int("Month 1-12"),
        "year": _int("Year, e.g. 2025"),
        "period": _str("The month in words when no number was given, e.g. 'next month' or 'March 2025'"),
    }
    return {
        "create_budget": Tool(
            _spec(
                "create_budget",
                "Sets a monthly budget for a category.",
                {"category": _str("Category name"), "amount": _num("Positive amount"), **period},
                ["category", "amount"],
            ),
            create_budget,
        ),
        "list_budgets": Tool(_spec("list_budgets", "Lists budgets, optionally for one month.", period), list_budgets),
        "get_budget_progress": Tool(
            _spec(
                "get_budget_progress",
                "Spending against this month's budget of a category.",
                {"category": _str("Category name")},
                ["category"],
            ),
            get_budget_progress,
        ),
        "get_budget_summary": Tool(
            _spec("get_budget_summary", "Budgeted versus actual spend per category for a month.", period),
            get_budget_summary,
        ),
        "identify_budget_for_action": Tool(
            _spec(
                "identify_budget_for_action",
                "Finds a budget before updating or deleting it and returns its id for confirmation.",
                {"category": _str("Category name"), **period},
                ["category"],
            ),
            identify_budget_for_action,
        ),
        "execute_confirmed_update_budget": Tool(
            _spec(
                "execute_confirmed_update_budget",
                "Changes a budget amount. Only after the user confirmed the id.",
                {"budget_id": _str("Confirmed budget id"), "amount": _num("New amount")},
                ["budget_id", "amount"],
            ),
            execute_confirmed_update_budget,
        ),
        "execute_confirmed_delete_budget": Tool(
            _spec(
                "execute_confirmed_delete_budget",
                "Deletes a budget. Only after the user confirmed the id.",
                {"budget_id": _str("Confirmed budget id")},
                ["budget_id"],
            ),
            execute_confirmed_delete_budget,
        ),
    }


def _goal_tools(db: Session, user: User) -> Dict[str, Tool]:
    def create_saving_goal(name: str, target_amount: float, target_date: Optional[str] = None) -> dict:
        return {"success": True, "data": goals.create_goal(db, user.id, name, target_amount, _single_day(target_date))}

    def list_saving_goals() -> dict:
        return {"success": True, "data": goals.list_goals(db, user.id, 1, 100)["data"]}

    def find_saving_goal(name: str) -> dict:
        rows = (
            db.query(SavingGoal)
            .filter(SavingGoal.user_id == user.id, SavingGoal.name.ilike(_like(name)))
            .limit(5)
            .all()
        )
        goal_id = _resolve(rows, name, "Saving goal")
        goal = next(g for g in rows if g.id == goal_id)
        return _confirm(
            f'Found goal "{goal.name}" ({goal.saved_amount} of {goal.target_amount} saved). Please confirm the action.',
            goal.id,
            {"saved_amount": goal.saved_amount, "target_amount": goal.target_amount},
        )

    def execute_confirmed_update_goal(
        goal_id: str,
        name: Optional[str] = None,
        target_amount: Optional[float] = None,
        target_date: Optional[str] = None,
    ) -> dict:
        payload = {k: v for k, v in (("name", name), ("target_amount", target_amount), ("target_date", _single_day(target_date))) if v is not None}
        return {"success": True, **goals.update_goal(db, goal_id, user.id, payload)}

    def execute_add_amount_to_goal(goal_id: str, amount: float) -> dict:
        return {"success": True, **goals.add_amount(db, goal_id, user.id, amount)}

    def execute_withdraw_amount_from_goal(goal_id: str, amount: float) -> dict:
        return {"success": True, **goals.withdraw_amount(db, goal_id, user.id, amount)}

    def execute_confirmed_delete_goal(goal_id: str) -> dict:
        return {"success": True, **goals.delete_goal(db, goal_id, user.id)}

    goal_id = {"goal_id": _str("Confirmed goal id")}
    return {
        "create_saving_goal": Tool(
            _spec(
                "create_saving_goal",
                "Creates a saving goal.",
                {"name": _str("Goal name"), "target_amount": _num("Positive target"), "target_date": DAY},
                ["name", "target_amount"],
            ),
            create_saving_goal,
        ),
        "list_saving_goals": Tool(_spec("list_saving_goals", "Lists saving goals.", {}), list_saving_goals),
        "find_saving_goal": Tool(
            _spec(
                "find_saving_goal",
                "Finds a goal by name and returns its id for confirmation.",
                {"name": _str("Goal name")},
                ["name"],
            ),
            find_saving_goal,
        ),
        "execute_confirmed_update_goal": Tool(
            _spec(
                "execute_confirmed_update_goal",
                "Updates a goal. Only after the user confirmed the id.",
                {**goal_id, "name": _str("New name"), "target_amount": _num("New target"), "target_date": DAY},
                ["goal_id"],
            ),
            execute_confirmed_update_goal,
        ),
        "execute_add_amount_to_goal": Tool(
            _spec(
                "execute_add_amount_to_goal",
                "Adds savings to a goal.",
                {**goal_id, "amount": _num("Positive amount")},
                ["goal_id", "amount"],
            ),
            execute_add_amount_to_goal,
        ),
        "execute_withdraw_amount_from_goal": Tool(
            _spec(
                "execute_withdraw_amount_from_goal",
                "Withdraws savings from a goal.",
                {**goal_id, "amount": _num("Positive amount")},
                ["goal_id", "amount"],
            ),
            execute_withdraw_amount_from_goal,
        ),
        "execute_confirmed_delete_goal": Tool(
            _spec("execute_confirmed_delete_goal", "Deletes a goal. Only after the user confirmed the id.", goal_id, ["goal_id"]),
            execute_confirmed_delete_goal,
        ),
    }


def _investment_tools(db: Session, user: User) -> Dict[str, Tool]:
    def create_investment_account(name: str, platform: Optional[str] = None, currency: Optional[str] = None) -> dict:
        data = investment_accounts.create_account(db, user.id, name, platform, currency or user.preferred_currency)
        return {"success": True, "data": data}

    def list_investment_accounts() -> dict:
        return {"success": True, "data": investment_accounts.list_accounts(db, user.id, 1, 100)["data"]}

    def identify_investment_account_for_action(account: str) -> dict:
        row = investment_accounts.get_owned(db, resolve_investment_account_id(db, user.id, account), user.id)
        return _confirm(f'Found investment account "{row.name}". Please confirm the action.', row.id, {"name": row.name})

    def execute_confirmed_update_investment_account(account_id: str, name: Optional[str] = None, platform: Optional[str] = None) -> dict:
        return {"success": True, **investment_accounts.update_account(db, account_id, user.id, name, platform)}

    def execute_confirmed_delete_investment_account(account_id: str) -> dict:
        return {"success": True, **investment_accounts.delete_account(db, account_id, user.id)}

    def add_investment(account: str, symbol: str, shares: float, purchase_price: float, purchase_date: Optional[str] = None) -> dict:
        account_id = resolve_investment_account_id(db, user.id, account)
        when = _single_day(purchase_date) or date.today().isoformat()
        return {"success": True, **investments.create_investment(db, user.id, account_id, symbol, shares, purchase_price, when)}

    def list_investments(account: str) -> dict:
        account_id = resolve_investment_account_id(db, user.id, account)
        return {"success": True, "data": investments.list_investments(db, account_id, user.id, 1, 100)["data"]}

    def identify_investment_for_action(account: str, symbol: str) -> dict:
        account_id = resolve_investment_account_id(db, user.id, account)
        rows = (
            db.query(Investment)
            .filter(Investment.account == account_id, Investment.symbol == symbol.strip().upper())
            .limit(5)
            .all()
        )
        investment_id = _resolve(rows, symbol, "Investment", key="symbol")
        inv = next(i for i in rows if i.id == investment_id)
        return _confirm(
            f"Found {inv.shares} shares of {inv.symbol} bought at {inv.purchase_price}. Please confirm the action.",
            inv.id,
            {"shares": inv.shares, "purchase_price": inv.purchase_price},
        )

    def execute_confirmed_update_investment(investment_id: str, shares: float, purchase_price: float, purchase_date: str) -> dict:
        result = investments.update_investment(db, investment_id, user.id, shares, purchase_price, _single_day(purchase_date))
        return {"success": True, **result}

    def execute_confirmed_update_dividend(investment_id: str, dividend: float) -> dict:
        return {"success": True, **investments.update_dividend(db, investment_id, user.id, dividend)}

    def execute_confirmed_delete_investment(investment_id: str) -> dict:
        return {"success": True, **investments.delete_investment(db, investment_id, user.id)}

    def get_portfolio_summary() -> dict:
        return {"success": True, "data": investments.portfolio_summary(db, user.id)}

    account_ref = {"account": _str("Investment account name")}
    investment_id = {"investment_id": _str("Confirmed investment id")}
    return {
        "create_investment_account": Tool(
            _spec(
                "create_investment_account",
                "Creates an investment (brokerage) account.",
                {"name": _str("Account name"), "platform": _str("Broker or platform"), "currency": _str("3-letter code")},
                ["name"],
            ),
            create_investment_account,
        ),
        "list_investment_accounts": Tool(
            _spec("list_investment_accounts", "Lists investment accounts.", {}), list_investment_accounts
        ),
        "identify_investment_account_for_action": Tool(
            _spec(
                "identify_investment_account_for_action",
                "Finds an investment account before updating or deleting it.",
                account_ref,
                ["account"],
            ),
            identify_investment_account_for_action,
        ),
        "execute_confirmed_update_investment_account": Tool(
            _spec(
                "execute_confirmed_update_investment_account",
                "Renames or re-platforms an investment account. Only after confirmation.",
                {"account_id": _str("Confirmed id"), "name": _str("New name"), "platform": _str("New platform")},
                ["account_id"],
            ),
            execute_confirmed_update_investment_account,
        ),
        "execute_confirmed_delete_investment_account": Tool(
            _spec(
                "execute_confirmed_delete_investment_account",
                "Deletes an investment account and its holdings. Only after confirmation.",
                {"account_id": _str("Confirmed id")},
                ["account_id"],
            ),
            execute_confirmed_delete_investment_account,
        ),
        "add_investment": Tool(
            _spec(
                "add_investment",
                "Adds a holding to an investment account.",
                {
                    **account_ref,
                    "symbol": _str("Ticker symbol"),
                    "shares": _num("Positive number of shares"),
                    "purchase_price": _num("Price per share"),
                    "purchase_date": _str("Purchase day, YYYY-MM-DD or e.g. 'March 5'. Defaults to today"),
                },
                ["account", "symbol", "shares", "purchase_price"],
            ),
            add_investment,
        ),
        "list_investments": Tool(
            _spec("list_investments", "Lists holdings of an investment account.", account_ref, ["account"]),
            list_investments,
        ),
        "identify_investment_for_action": Tool(
            _spec(
                "identify_investment_for_action",
                "Finds a holding before updating or deleting it.",
                {**account_ref, "symbol": _str("Ticker symbol")},
                ["account", "symbol"],
            ),
            identify_investment_for_action,
        ),
        "execute_confirmed_update_investment": Tool(
            _spec(
                "execute_confirmed_update_investment",
                "Updates a holding. Only after confirmation.",
                {
                    **investment_id,
                    "shares": _num("Shares"),
                    "purchase_price": _num("Price per share"),
                    "purchase_date": DAY,
                },
                ["investment_id", "shares", "purchase_price", "purchase_date"],
            ),
            execute_confirmed_update_investment,
        ),
        "execute_confirmed_update_dividend": Tool(
            _spec(
                "execute_confirmed_update_dividend",
                "Sets the dividend received on a holding. Only after confirmation.",
                {**investment_id, "dividend": _num("Dividend amount")},
                ["investment_id", "dividend"],
            ),
            execute_confirmed_update_dividend,
        ),
        "execute_confirmed_delete_investment": Tool(
            _spec(
                "execute_confirmed_delete_investment",
                "Deletes a holding. Only after confirmation.",
                investment_id,
                ["investment_id"],
            ),
            execute_confirmed_delete_investment,
        ),
        "get_portfolio_summary": Tool(
            _spec("get_portfolio_summary", "Invested amount, market value and gain/loss across holdings.", {}),
            get_portfolio_summary,
        ),
    }


def _debt_tools(db: Session, user: User) -> Dict[str, Tool]:
    def add_debt(
        other_party: str,
        amount: float,
        type: str,
        account: str,
        percentage: float = 0.0,
        interest_type: str = "simple",
        duration: Optional[str] = None,
        frequency: Optional[str] = None,
        description: Optional[str] = None,
    ) -> dict:
        payload = {
            "user_id": resolve_user_id(db, other_party),
            "account": resolve_account_id(db, user.id, account),
            "amount": amount,
            "type": type,
            "percentage": percentage,
            "interest_type": interest_type,
            "duration": duration,
            "frequency": frequency,
            "description": description,
        }
        return {"success": True, **debts.create_debt(db, user.id, payload)}

    def list_debts(type: Optional[str] = None, is_paid: Optional[bool] = None, q: Optional[str] = None) -> dict:
        result = debts.list_debts(db, user.id, duration="all", q=q, debt_type=type, is_paid=is_paid, page=1, page_size=50)
        return {"success": True, "data": result["data"]}

    def identify_debt_for_action(description: Optional[str] = None, amount: Optional[float] = None) -> dict:
        query = db.query(Debt).filter(Debt.created_by == user.id)
        if description:
            query = query.filter(Debt.description.ilike(_like(description)))
        if amount is not None:
            query = query.filter(Debt.amount == float(amount))
        rows = query.limit(5).all()
        debt_id = _resolve(rows, description or str(amount), "Debt", key="description")
        debt = next(d for d in rows if d.id == debt_id)
        return _confirm(
            f'Found debt "{debt.description or debt.id}" of {debt.amount} ({debt.type}). Please confirm the action.',
            debt.id,
            {"amount": debt.amount, "is_paid": debt.is_paid},
        )

    def execute_confirmed_mark_debt_paid(debt_id: str) -> dict:
        return {"success": True, **debts.mark_paid(db, debt_id, user.id)}

    def execute_confirmed_delete_debt(debt_id: str) -> dict:
        return {"success": True, **debts.delete_debt(db, debt_id, user.id)}

    def calculate_interest(amount: float, percentage: float, duration: str, interest_type: str = "simple", frequency: Optional[str] = None) -> dict:
        return {"success": True, "data": debts.calculate_interest(amount, percentage, duration, interest_type, frequency=frequency)}

    debt_id = {"debt_id": _str("Confirmed debt id")}
    return {
        "add_debt": Tool(
            _spec(
                "add_debt",
                "Records money given to or taken from another user.",
                {
                    "other_party": _str("Email or name of the other user"),
                    "amount": _num("Positive principal"),
                    "type": _enum("given or taken", ("given", "taken")),
                    "account": _str("Account name or id"),
                    "percentage": _num("Annual interest rate in percent"),
                    "interest_type": _enum("Interest type", ("simple", "compound")),
                    "duration": _str("'YYYY-MM-DD,YYYY-MM-DD', a unit (year/month/week/day) or years"),
                    "frequency": _str("Number of units when duration is a unit"),
                    "description": _str("Short description"),
                },
                ["other_party", "amount", "type", "account"],
            ),
            add_debt,
        ),
        "list_debts": Tool(
            _spec(
                "list_debts",
                "Lists debts the user created or is part of.",
                {
                    "type": _enum("given or taken", ("given", "taken")),
                    "is_paid": _bool("Filter on paid state"),
                    "q": _str("Description search"),
                },
            ),
            list_debts,
        ),
        "identify_debt_for_action": Tool(
            _spec(
                "identify_debt_for_action",
                "Finds a debt before marking it paid or deleting it.",
                {"description": _str("Description"), "amount": _num("Principal")},
            ),
            identify_debt_for_action,
        ),
        "execute_confirmed_mark_debt_paid": Tool(
            _spec("execute_confirmed_mark_debt_paid", "Marks a debt paid. Only after confirmation.", debt_id, ["debt_id"]),
            execute_confirmed_mark_debt_paid,
        ),
        "execute_confirmed_delete_debt": Tool(
            _spec("execute_confirmed_delete_debt", "Deletes a debt. Only after confirmation.", debt_id, ["debt_id"]),
            execute_confirmed_delete_debt,
        ),
        "calculate_interest": Tool(
            _spec(
                "calculate_interest",
                "Computes simple or compound interest without saving anything.",
                {
                    "amount": _num("Principal"),
                    "percentage": _num("Annual rate in percent"),
                    "duration": _str("'YYYY-MM-DD,YYYY-MM-DD', a unit or years"),
                    "interest_type": _enum("Interest type", ("simple", "compound")),
                    "frequency": _str("Number of units when duration is a unit"),
                },
                ["amount", "percentage", "duration"],
            ),
            calculate_interest,
        ),
    }


def _analysis_tools(db: Session, user: User) -> Dict[str, Tool]:
    def _account_id(account: Optional[str]) -> Optional[str]:
        return resolve_account_id(db, user.id, account) if account else None

    def get_spending_by_category(account: Optional[str] = None, duration: Optional[str] = None) -> dict:
        return {"success": True, "data": transactions.category_chart(db, user.id, _account_id(account), _period(duration))}

    def get_income_expense_trends(account: Optional[str] = None, duration: Optional[str] = None) -> dict:
        return {"success": True, "data": transactions.income_expense_chart(db, user.id, _account_id(account), _period(duration))}

    def get_account_analytics_summary(account: str, duration: Optional[str] = None) -> dict:
        account_id = resolve_account_id(db, user.id, account)
        return {"success": True, "data": accounts.custom_analytics(db, account_id, user.id, _period(duration))}

    def search_stock_symbols(q: str) -> dict:
        return {"success": True, "data": finance.search_symbols(q)}

    def get_current_stock_price(symbol: str) -> dict:
        return {"success": True, "data": finance.get_quote(symbol)}

    def get_historical_stock_price(symbol: str, day: str) -> dict:
        return {"success": True, "data": finance.price_on(symbol, parse_day(_single_day(day)))}

    def parse_period(description: str) -> dict:
        found = parse_date_range(description)
        if found is None:
            raise ToolError(f'Could not parse a date range from "{description}". Try "last month", "June 2023" or "2023-01-01 to 2023-01-15".')
        start, end = found[0].date().isoformat(), found[1].date().isoformat()
        return {
            "success": True,
            "message": f'Parsed "{description}" as {start} to {end}.',
            "data": {"start_date": start, "end_date": end, "duration": to_duration(found)},
        }

    scoped = {"account": _str("Account name or id"), "duration": DURATION}
    return {
        "get_spending_by_category": Tool(
            _spec("get_spending_by_category", "Income and expense totals per category.", scoped),
            get_spending_by_category,
        ),
        "get_income_expense_trends": Tool(
            _spec("get_income_expense_trends", "Bucketed income, expense and balance over a period.", scoped),
            get_income_expense_trends,
        ),
        "get_account_analytics_summary": Tool(
            _spec(
                "get_account_analytics_summary",
                "Income, expense and balance of an account compared with the previous period.",
                scoped,
                ["account"],
            ),
            get_account_analytics_summary,
        ),
        "search_stock_symbols": Tool(
            _spec("search_stock_symbols", "Searches ticker symbols by company name.", {"q": _str("Search text")}, ["q"]),
            search_stock_symbols,
        ),
        "get_current_stock_price": Tool(
            _spec("get_current_stock_price", "Current market price of a symbol.", {"symbol": _str("Ticker")}, ["symbol"]),
            get_current_stock_price,
        ),
        "get_historical_stock_price": Tool(
            _spec(
                "get_historical_stock_price",
                "Closing price of a symbol on a given day.",
                {"symbol": _str("Ticker"), "day": DAY},
                ["symbol", "day"],
            ),
            get_historical_stock_price,
        ),
        "parse_period": Tool(
            _spec(
                "parse_period",
                "Turns a described period ('last quarter', 'January 2023', 'from March 1 to April 10') into start and end days.",
                {"description": _str("The period as the user said it")},
                ["description"],
            ),
            parse_period,
        ),
    }


TOOL_SETS = (
    _account_tools,
    _category_tools,
    _transaction_tools,
    _budget_tools,
    _goal_tools,
    _investment_tools,
    _debt_tools,
    _analysis_tools,
)


def build_tools(db: Session, user: User) -> Dict[str, Tool]:
    tools: Dict[str, Tool] = {}
    for tool_set in TOOL_SETS:
        tools.update(tool_set(db, user))
    return tools


# -------------------------------------------------------------------
# Execution
# -------------------------------------------------------------------

def run_tool(db: Session, tools: Dict[str, Tool], name: str, raw_arguments: str) -> dict:
    """Execute one tool call from the model and return its result."""
    tool = tools.get(name)
    if tool is None:
        return {"success": False, "error": f"Unknown tool: {name}"}

    try:
        arguments = json.loads(raw_arguments or "{}")
    except ValueError:
        return {"success": False, "error": "Tool arguments were not valid JSON."}
    if not isinstance(arguments, dict):
        return {"success": False, "error": "Tool arguments must be an object."}

    try:
        return tool.handler(**arguments)
    except ToolError as exc:
        result = {"success": False, "error": exc.message}
        if exc.options:
            result["clarification_needed"] = True
            result["options"] = exc.options
        return result
    except HTTPException as exc:
        db.rollback()
        logger.info("assistant_tool_rejected", tool=name, status=exc.status_code, detail=exc.detail)
        return {"success": False, "error": exc.detail}
    except (TypeError, ValueError) as exc:
        db.rollback()
        logger.warning("assistant_tool_bad_arguments", tool=name, error=str(exc))
        return {"success": False, "error": f"Invalid arguments for {name}: {exc}"}
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("assistant_tool_db_error", tool=name, error=str(exc))
        return {"success": False, "error": "A database error occurred while running the tool."}
