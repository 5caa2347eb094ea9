# app/services/analytics.py
#
# Running per-account aggregates.
#
# Every transaction write goes through one of the helpers below so that
# analytics.income/expense/balance and account.balance stay in step. None of
# them commit: callers run them inside their own unit of work and commit once.

from typing import Iterable, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy import case, func
from sqlalchemy.orm import Session
import structlog

from models import Account, Analytics, Transaction

logger = structlog.get_logger(__name__)


def calculate_percentage_change(old_value: Optional[float], new_value: Optional[float]) -> float:
    """
    Percentage change from old to new.

    From a zero base: 100 when the new value is positive, 0 otherwise.
    """
    old = float(old_value or 0)
    new = float(new_value or 0)
    if old == 0:
        return 100.0 if new > 0 else 0.0
    return (new - old) / abs(old) * 100


def get_analytics(db: Session, account_id: str) -> Optional[Analytics]:
    return db.query(Analytics).filter(Analytics.account == account_id).first()


def create_opening_analytics(db: Session, account_id: str, user_id: str, opening: float) -> Analytics:
    """Analytics row for a brand-new account with the given opening balance."""
    income = opening if opening >= 0 else 0.0
    expense = -opening if opening < 0 else 0.0
    row = Analytics(
        account=account_id,
        user=user_id,
        income=income,
        expense=expense,
        balance=opening,
        income_percentage_change=100.0 if income > 0 else 0.0,
        expenses_percentage_change=100.0 if expense > 0 else 0.0,
    )
    db.add(row)
    db.flush()
    return row


def _account_or_error(db: Session, account_id: str) -> Account:
    account = db.query(Account).filter(Account.id == account_id).first()
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found.")
    return account


def apply_transaction(db: Session, account_id: str, amount: float, is_income: bool) -> float:
    """
    Fold one new transaction into the account aggregates.

    previous_income / previous_expenses record this transaction's amount,
    previous_balance the balance before it. Returns the new balance, which is
    also written to account.balance.
    """
    amount = float(amount)
    account = _account_or_error(db, account_id)
    current = get_analytics(db, account_id)

    if current is None:
        logger.warning("analytics_missing_creating", account_id=account_id)
        income = amount if is_income else 0.0
        expense = 0.0 if is_income else amount
        balance = income - expense
        db.add(
            Analytics(
                account=account_id,
                user=account.owner,
                income=income,
                expense=expense,
                balance=balance,
                income_percentage_change=100.0 if income > 0 else 0.0,
                expenses_percentage_change=100.0 if expense > 0 else 0.0,
            )
        )
        db.flush()
    else:
        old_income, old_expense, old_balance = current.income or 0.0, current.expense or 0.0, current.balance or 0.0
        new_income = old_income + (amount if is_income else 0.0)
        new_expense = old_expense + (0.0 if is_income else amount)
        balance = old_balance + (amount if is_income else -amount)

        current.income = new_income
        current.expense = new_expense
        current.balance = balance
        if is_income:
            current.previous_income = amount
        else:
            current.previous_expenses = amount
        current.previous_balance = old_balance
        current.income_percentage_change = calculate_percentage_change(old_income, new_income)
        current.expenses_percentage_change = calculate_percentage_change(old_expense, new_expense)

    account.balance = balance
    return balance


def apply_bulk(db: Session, account_id: str, rows: Iterable[Tuple[float, bool]]) -> Optional[float]:
    """
    Fold a batch of (amount, is_income) pairs into the aggregates at once.

    previous_* hold the totals from before the batch. Returns the new balance,
    or None when the batch changes nothing.
    """
    income_change = 0.0
    expense_change = 0.0
    for amount, is_income in rows:
        if is_income:
            income_change += float(amount)
        else:
            expense_change += float(amount)

    if income_change == 0 and expense_change == 0:
        return None

    account = _account_or_error(db, account_id)
    current = get_analytics(db, account_id)
    balance_change = income_change - expense_change

    if current is None:
        logger.warning("analytics_missing_creating", account_id=account_id, bulk=True)
        db.add(
            Analytics(
                account=account_id,
                user=account.owner,
                income=income_change,
                expense=expense_change,
                balance=balance_change,
                income_percentage_change=100.0 if income_change > 0 else 0.0,
                expenses_percentage_change=100.0 if expense_change > 0 else 0.0,
            )
        )
        db.flush()
        account.balance = balance_change
        return balance_change

    old_income, old_expense, old_balance = current.income or 0.0, current.expense or 0.0, current.balance or 0.0
    current.income = old_income + income_change
    current.expense = old_expense + expense_change
    current.balance = old_balance + balance_change
    current.previous_income = old_income
    current.previous_expenses = old_expense
    current.previous_balance = old_balance
    current.income_percentage_change = calculate_percentage_change(old_income, current.income)
    current.expenses_percentage_change = calculate_percentage_change(old_expense, current.expense)

    account.balance = current.balance
    return current.balance


def apply_change(
    db: Session,
    account_id: str,
    income_change: float,
    expense_change: float,
    balance_change: float,
) -> None:
    """
    Adjust totals after a transaction was edited or removed.

    Only touches the analytics row; the caller moves account.balance itself.
    """
    if income_change == 0 and expense_change == 0 and balance_change == 0:
        return

    current = get_analytics(db, account_id)
    if current is None:
        logger.error("analytics_missing_on_change", account_id=account_id)
        raise HTTPException(status_code=404, detail="Analytics record not found for account.")

    old_income, old_expense, old_balance = current.income or 0.0, current.expense or 0.0, current.balance or 0.0
    current.income = old_income + income_change
    current.expense = old_expense + expense_change
    current.balance = old_balance + balance_change
    current.previous_income = old_income
    current.previous_expenses = old_expense
    current.previous_balance = old_balance
    current.income_percentage_change = calculate_percentage_change(old_income, current.income)
    current.expenses_percentage_change = calculate_percentage_change(old_expense, current.expense)


def serialize(row: Optional[Analytics]) -> Optional[dict]:
    if row is None:
        return None
    return {
        "income": row.income,
        "expense": row.expense,
        "balance": row.balance,
        "previous_income": row.previous_income,
        "previous_expenses": row.previous_expenses,
        "previous_balance": row.previous_balance,
        "income_percentage_change": row.income_percentage_change,
        "expenses_percentage_change": row.expenses_percentage_change,
    }


# ---- SQL aggregates over transactions ----

def income_sum():
    return func.coalesce(func.sum(case((Transaction.is_income.is_(True), Transaction.amount), else_=0.0)), 0.0)


def expense_sum():
    return func.coalesce(func.sum(case((Transaction.is_income.is_(False), Transaction.amount), else_=0.0)), 0.0)
