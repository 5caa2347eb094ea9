# app/services/transactions.py
#
# Ledger entries: filtered lists, CRUD that keeps account balance and
# analytics in step, chart aggregates, recurring templates and export.

import io
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, aliased
import structlog

from app import config
from app.services import accounts as account_service
from app.services.analytics import apply_change, apply_transaction, expense_sum, income_sum
from app.services.categories import get_owned as get_owned_category
from app.services.charts import income_expense_frame, labelled_series
from app.services.common import (
    check_pagination,
    check_sort_order,
    iso,
    ordered,
    pagination_meta,
)
from app.services.dates import get_bucket, get_interval
from models import RECURRENCE_TYPES, Account, Category, Transaction, User

logger = structlog.get_logger(__name__)

EXPORT_FORMATS = {
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv",
}

EXTREMES = {
    "highest_income": (True, "max"),
    "lowest_income": (True, "min"),
    "highest_expense": (False, "max"),
    "lowest_expense": (False, "min"),
}


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------

def _person(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "email": user.email, "profile_pic": user.profile_pic}


def serialize(
    t: Transaction,
    category: Optional[Category] = None,
    created_by: Optional[User] = None,
    updated_by: Optional[User] = None,
) -> dict:
    data = {
        "id": t.id,
        "text": t.text,
        "amount": t.amount,
        "is_income": t.is_income,
        "transfer": t.transfer,
        "account": t.account,
        "owner": t.owner,
        "category": {"id": category.id, "name": category.name} if category else None,
        "recurring": t.recurring,
        "recurrence_type": t.recurrence_type,
        "recurrence_end_date": iso(t.recurrence_end_date),
        "currency": t.currency,
        "created_at": iso(t.created_at),
        "updated_at": iso(t.updated_at),
    }
    if created_by is not None or updated_by is not None:
        data["created_by"] = _person(created_by)
        data["updated_by"] = _person(updated_by)
    return data


def _parse_moment(value: Any, field: str) -> Optional[datetime]:
    """Datetime from a datetime, a date or an ISO string; 400 when unparsable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if hasattr(value, "year") and hasattr(value, "month"):
        return datetime(value.year, value.month, value.day)
    try:
        return datetime.fromisoformat(str(value).replace("Z", ""))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {field} format.")


def _parse_amount(value: Any) -> float:
    try:
        amount = abs(float(value))
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid transaction amount.")
    if amount == 0:
        raise HTTPException(status_code=400, detail="Amount must be greater than zero.")
    return amount


def _check_text(text: Any) -> str:
    text = (text or "").strip()
    if len(text) < 3:
        raise HTTPException(status_code=400, detail="Description must be at least 3 characters long.")
    return text


def _check_recurrence_type(value: Optional[str]) -> str:
    if not value:
        raise HTTPException(status_code=400, detail="Recurrence type is required for recurring transactions.")
    if value not in RECURRENCE_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid recurrence type (one of {', '.join(RECURRENCE_TYPES)}).",
        )
    return value


def scope_filters(db: Session, user_id: str, account_id: Optional[str]) -> list:
    """Rows of one accessible account, or every row the user owns."""
    if account_id:
        account_service.require_accessible(db, account_id, user_id)
        return [Transaction.account == account_id]
    return [Transaction.owner == user_id]


def _owned_transaction(db: Session, transaction_id: str, user_id: str) -> Transaction:
    t = (
        db.query(Transaction)
        .filter(Transaction.id == transaction_id, Transaction.owner == user_id)
        .first()
    )
    if t is None:
        raise HTTPException(status_code=404, detail="Transaction not found or access denied.")
    return t


# -------------------------------------------------------------------
# Lists
# -------------------------------------------------------------------

def _filter_conditions(
    start: datetime,
    end: datetime,
    q: Optional[str] = None,
    is_income: Optional[bool] = None,
    category_id: Optional[str] = None,
    min_amount: Optional[float] = None,
    max_amount: Optional[float] = None,
) -> list:
    conditions = [Transaction.created_at >= start, Transaction.created_at <= end]

    if q and q.strip():
        pattern = f"%{q.strip()}%"
        search = [
            Transaction.text.ilike(pattern),
            Transaction.transfer.ilike(pattern),
            Category.name.ilike(pattern),
        ]
        try:
            search.append(Transaction.amount == float(q))
        except ValueError:
            pass
        conditions.append(or_(*search))

    if is_income is not None:
        conditions.append(Transaction.is_income.is_(is_income))
    if category_id:
        conditions.append(Transaction.category == category_id)
    if min_amount is not None:
        conditions.append(Transaction.amount >= min_amount)
    if max_amount is not None:
        conditions.append(Transaction.amount <= max_amount)
    return conditions


def list_transactions(
    db: Session,
    user_id: str,
    account_id: Optional[str] = None,
    duration: Optional[str] = None,
    q: Optional[str] = None,
    is_income: Optional[bool] = None,
    category_id: Optional[str] = None,
    min_amount: Optional[float] = None,
    max_amount: Optional[float] = None,
    page: int = 1,
    page_size: int = 10,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    check_pagination(page, page_size)
    order = check_sort_order(sort_order)

    scope = scope_filters(db, user_id, account_id)
    start, end = get_interval(duration, db, user_id)
    conditions = scope + _filter_conditions(start, end, q, is_income, category_id, min_amount, max_amount)

    creator = aliased(User)
    updater = aliased(User)
    sortable = {
        "created_at": Transaction.created_at,
        "amount": Transaction.amount,
        "text": Transaction.text,
        "category_name": Category.name,
        "created_by_name": creator.name,
        "updated_by_name": updater.name,
    }

    query = (
        db.query(Transaction, Category, creator, updater)
        .outerjoin(Category, Category.id == Transaction.category)
        .outerjoin(creator, creator.id == Transaction.created_by)
        .outerjoin(updater, updater.id == Transaction.updated_by)
        .filter(*conditions)
    )
    total = query.order_by(None).count()
    query = ordered(query, sortable.get(sort_by, Transaction.created_at), order)
    rows = query.limit(page_size).offset(page_size * (page - 1)).all()

    min_date, max_date = db.query(func.min(Transaction.created_at), func.max(Transaction.created_at)).filter(*scope).one()

    return {
        "transactions": [serialize(t, c, cb, ub) for t, c, cb, ub in rows],
        "pagination": pagination_meta(total, page, page_size),
        "filters": {
            "duration": duration,
            "q": q,
            "is_income": is_income,
            "category_id": category_id,
            "min_amount": min_amount,
            "max_amount": max_amount,
            "sort_by": sort_by if sort_by in sortable else "created_at",
            "sort_order": order,
        },
        "interval": {"start_date": start.isoformat(), "end_date": end.isoformat()},
        "date_range": {"min_date": iso(min_date), "max_date": iso(max_date)},
    }


def get_transaction(db: Session, transaction_id: str, user_id: str) -> dict:
    creator = aliased(User)
    updater = aliased(User)
    row = (
        db.query(Transaction, Category, creator, updater)
        .outerjoin(Category, Category.id == Transaction.category)
        .outerjoin(creator, creator.id == Transaction.created_by)
        .outerjoin(updater, updater.id == Transaction.updated_by)
        .filter(Transaction.id == transaction_id, Transaction.owner == user_id)
        .first()
    )
    if row is None:
        raise HTTPException(status_code=404, detail="Transaction not found or access denied.")
    return serialize(*row)


# -------------------------------------------------------------------
# Writes
# -------------------------------------------------------------------

def create_transaction(
    db: Session,
    user_id: str,
    payload: Dict[str, Any],
    bypass_owner_check: bool = False,
) -> dict:
    """
    Record a transaction and fold it into the account balance and analytics
    in the same commit.

    `bypass_owner_check` is for internal callers (the recurring job): the
    account only has to exist and the balance check is skipped.
    """
    text = _check_text(payload.get("text"))
    amount = _parse_amount(payload.get("amount"))
    is_income = bool(payload.get("is_income"))
    account_id = payload.get("account")

    if bypass_owner_check:
        account = db.query(Account).filter(Account.id == account_id).first()
        if account is None:
            raise HTTPException(status_code=404, detail=f"Account {account_id} not found.")
    else:
        account = account_service.require_accessible(db, account_id, user_id)
        if not is_income and (account.balance or 0.0) < amount:
            raise HTTPException(status_code=400, detail="Insufficient balance for this expense.")

    category_id = payload.get("category")
    if category_id:
        get_owned_category(db, category_id, account.owner, "use")

    recurring = bool(payload.get("recurring"))
    recurrence_type = None
    recurrence_end_date = None
    if recurring:
        recurrence_type = _check_recurrence_type(payload.get("recurrence_type"))
        recurrence_end_date = _parse_moment(payload.get("recurrence_end_date"), "recurrence end date")

    t = Transaction(
        text=text,
        amount=amount,
        is_income=is_income,
        transfer=payload.get("transfer"),
        category=category_id or None,
        account=account.id,
        owner=account.owner,
        created_by=user_id,
        updated_by=user_id,
        recurring=recurring,
        recurrence_type=recurrence_type,
        recurrence_end_date=recurrence_end_date,
        currency=payload.get("currency") or account.currency or config.DEFAULT_CURRENCY,
        created_at=_parse_moment(payload.get("created_at"), "date") or datetime.now(),
    )
    db.add(t)
    db.flush()

    apply_transaction(db, account.id, amount, is_income)
    db.commit()
    db.refresh(t)

    logger.info(
        "transaction_created",
        user_id=user_id,
        account_id=account.id,
        transaction_id=t.id,
        is_income=is_income,
        recurring=recurring,
    )
    return {"message": "Transaction created successfully", "data": serialize(t)}


UPDATABLE = ("text", "amount", "is_income", "transfer", "category", "created_at", "recurring", "currency")
# A null for these means "leave unchanged", never "clear"
NOT_NULLABLE = ("text", "amount", "is_income", "created_at", "recurring", "currency")


def update_transaction(db: Session, transaction_id: str, user_id: str, payload: Dict[str, Any]) -> dict:
    """
    Apply a partial update. Keys absent from `payload` are left alone; an
    amount or direction change moves the account balance and analytics by
    the difference between the old and the new effect.
    """
    t = _owned_transaction(db, transaction_id, user_id)
    changes: Dict[str, Any] = {
        k: payload[k] for k in UPDATABLE if k in payload and not (k in NOT_NULLABLE and payload[k] is None)
    }

    if "text" in changes:
        changes["text"] = _check_text(changes["text"])
    if "amount" in changes:
        changes["amount"] = _parse_amount(changes["amount"])
    if "created_at" in changes:
        changes["created_at"] = _parse_moment(changes["created_at"], "date") or t.created_at
    if "is_income" in changes:
        changes["is_income"] = bool(changes["is_income"])

    recurring = changes.get("recurring", t.recurring)
    if recurring:
        if "recurrence_type" in payload:
            changes["recurrence_type"] = _check_recurrence_type(payload["recurrence_type"])
        elif not t.recurrence_type:
            raise HTTPException(status_code=400, detail="Recurrence type is required when transaction is recurring.")
        if "recurrence_end_date" in payload:
            changes["recurrence_end_date"] = _parse_moment(payload["recurrence_end_date"], "recurrence end date")
    elif "recurring" in changes:
        changes["recurrence_type"] = None
        changes["recurrence_end_date"] = None

    if changes.get("category") and changes["category"] != t.category:
        get_owned_category(db, changes["category"], user_id, "use")

    if not changes:
        return {"message": "No changes detected.", "data": serialize(t)}

    old_amount, old_income = t.amount, t.is_income
    new_amount = changes.get("amount", old_amount)
    new_income = changes.get("is_income", old_income)
    moves_balance = new_amount != old_amount or new_income != old_income

    if moves_balance:
        old_effect = old_amount if old_income else -old_amount
        new_effect = new_amount if new_income else -new_amount
        balance_change = new_effect - old_effect

        income_change = (new_amount if new_income else 0.0) - (old_amount if old_income else 0.0)
        expense_change = (0.0 if new_income else new_amount) - (0.0 if old_income else old_amount)

        account = db.query(Account).filter(Account.id == t.account).first()
        if account is None:
            raise HTTPException(status_code=404, detail="Account associated with transaction not found.")
        if (account.balance or 0.0) + balance_change < 0 and not new_income:
            raise HTTPException(status_code=400, detail="Insufficient balance after update.")

        account.balance = (account.balance or 0.0) + balance_change
        apply_change(db, t.account, income_change, expense_change, balance_change)

    for key, value in changes.items():
        setattr(t, key, value)
    t.updated_by = user_id

    db.commit()
    db.refresh(t)
    logger.info("transaction_updated", user_id=user_id, transaction_id=t.id, moved_balance=moves_balance)
    return {"message": "Transaction updated successfully", "data": serialize(t)}


def delete_transaction(db: Session, transaction_id: str, user_id: str) -> dict:
    t = _owned_transaction(db, transaction_id, user_id)

    amount, is_income, account_id = t.amount, t.is_income, t.account
    balance_change = -amount if is_income else amount

    account = db.query(Account).filter(Account.id == account_id).first()
    if account is not None:
        account.balance = (account.balance or 0.0) + balance_change
    apply_change(
        db,
        account_id,
        income_change=-amount if is_income else 0.0,
        expense_change=0.0 if is_income else -amount,
        balance_change=balance_change,
    )

    db.delete(t)
    db.commit()
    logger.info("transaction_deleted", user_id=user_id, transaction_id=transaction_id, account_id=account_id)
    return {"message": "Transaction deleted successfully", "id": transaction_id}


# -------------------------------------------------------------------
# Charts and totals
# -------------------------------------------------------------------

def category_chart(db: Session, user_id: str, account_id: Optional[str] = None, duration: Optional[str] = None) -> dict:
    """Income and expense totals per category name over the interval."""
    scope = scope_filters(db, user_id, account_id)
    start, end = get_interval(duration, db, user_id)

    rows = (
        db.query(Category.name, income_sum(), expense_sum())
        .join(Transaction, Transaction.category == Category.id)
        .filter(*scope, Transaction.created_at >= start, Transaction.created_at <= end)
        .group_by(Category.name)
        .order_by(Category.name.asc())
        .all()
    )
    return {
        "name": [name for name, _, _ in rows],
        "total_income": [float(income) for _, income, _ in rows],
        "total_expense": [float(expense) for _, _, expense in rows],
    }


def income_expense_totals(
    db: Session, user_id: str, account_id: Optional[str] = None, duration: Optional[str] = None
) -> dict:
    scope = scope_filters(db, user_id, account_id)
    start, end = get_interval(duration, db, user_id)

    income, expense = (
        db.query(income_sum(), expense_sum())
        .filter(*scope, Transaction.created_at >= start, Transaction.created_at <= end)
        .one()
    )
    return {"income": float(income), "expense": float(expense)}


def income_expense_chart(
    db: Session, user_id: str, account_id: Optional[str] = None, duration: Optional[str] = None
) -> dict:
    scope = scope_filters(db, user_id, account_id)
    start, end = get_interval(duration, db, user_id)
    bucket = get_bucket(duration)

    rows = (
        db.query(Transaction.created_at, Transaction.amount, Transaction.is_income)
        .filter(*scope, Transaction.created_at >= start, Transaction.created_at <= end)
        .all()
    )
    series = labelled_series(income_expense_frame(rows, bucket), bucket)
    return {
        "date": [p["date"] for p in series],
        "income": [p["income"] for p in series],
        "expense": [p["expense"] for p in series],
        "balance": [p["balance"] for p in series],
    }


def extreme_transaction(
    db: Session,
    user_id: str,
    kind: str,
    account_id: Optional[str] = None,
    duration: Optional[str] = None,
) -> Optional[dict]:
    """The highest or lowest income or expense in the interval, or None."""
    if kind not in EXTREMES:
        raise HTTPException(status_code=400, detail=f"Invalid type (one of {', '.join(EXTREMES)}).")
    is_income, agg = EXTREMES[kind]

    scope = scope_filters(db, user_id, account_id)
    start, end = get_interval(duration, db, user_id)
    conditions = scope + [
        Transaction.created_at >= start,
        Transaction.created_at <= end,
        Transaction.is_income.is_(is_income),
    ]

    value = db.query(getattr(func, agg)(Transaction.amount)).filter(*conditions).scalar()
    if value is None:
        return None

    row = (
        db.query(Transaction, Category, Account)
        .outerjoin(Category, Category.id == Transaction.category)
        .outerjoin(Account, Account.id == Transaction.account)
        .filter(*conditions, Transaction.amount == value)
        .order_by(Transaction.created_at.desc())
        .first()
    )
    t, category, account = row
    data = serialize(t, category)
    data["account_name"] = account.name if account else None
    data["account_currency"] = account.currency if account else None
    return data


def extreme_transactions(
    db: Session, user_id: str, account_id: Optional[str] = None, duration: Optional[str] = None
) -> dict:
    return {kind: extreme_transaction(db, user_id, kind, account_id, duration) for kind in EXTREMES}


# -------------------------------------------------------------------
# Recurring templates
# -------------------------------------------------------------------

def _recurring_template(db: Session, transaction_id: str, user_id: str) -> Transaction:
    t = (
        db.query(Transaction)
        .filter(
            Transaction.id == transaction_id,
            Transaction.owner == user_id,
            Transaction.recurring.is_(True),
        )
        .first()
    )
    if t is None:
        raise HTTPException(status_code=404, detail="Recurring transaction not found or access denied.")
    return t


def list_recurring(db: Session, user_id: str, page: int = 1, page_size: int = 10) -> dict:
    check_pagination(page, page_size)
    query = (
        db.query(Transaction, Category)
        .outerjoin(Category, Category.id == Transaction.category)
        .filter(Transaction.owner == user_id, Transaction.recurring.is_(True))
    )
    total = query.order_by(None).count()
    rows = (
        query.order_by(Transaction.created_at.desc())
        .limit(page_size)
        .offset(page_size * (page - 1))
        .all()
    )
    return {
        "transactions": [serialize(t, c) for t, c in rows],
        "pagination": pagination_meta(total, page, page_size),
    }


def get_recurring(db: Session, transaction_id: str, user_id: str) -> dict:
    t = _recurring_template(db, transaction_id, user_id)
    category = db.query(Category).filter(Category.id == t.category).first() if t.category else None
    return serialize(t, category)


def update_recurring(db: Session, transaction_id: str, user_id: str, payload: Dict[str, Any]) -> dict:
    _recurring_template(db, transaction_id, user_id)
    if payload.get("recurring") is False:
        raise HTTPException(
            status_code=400,
            detail="Use the transaction update to turn off recurrence for this template.",
        )
    return update_transaction(db, transaction_id, user_id, payload)


def delete_recurring(db: Session, transaction_id: str, user_id: str) -> dict:
    _recurring_template(db, transaction_id, user_id)
    return delete_transaction(db, transaction_id, user_id)


def skip_next_occurrence(db: Session, transaction_id: str, user_id: str) -> dict:
    t = _recurring_template(db, transaction_id, user_id)
    t.updated_at = datetime.now()
    db.commit()
    logger.info("recurring_skip_noted", user_id=user_id, transaction_id=transaction_id)
    return {"message": "Recurring transaction skip noted"}


# -------------------------------------------------------------------
# Export
# -------------------------------------------------------------------

def _export_frame(rows: List[Tuple[Transaction, Optional[str], Optional[str]]]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Date": t.created_at.strftime("%Y-%m-%d %H:%M:%S") if t.created_at else "N/A",
                "Description": t.text,
                "Amount": t.amount if t.is_income else -t.amount,
                "Type": "Income" if t.is_income else "Expense",
                "Category": category_name or "Uncategorized",
                "Account": account_name or "N/A",
                "Currency": t.currency,
                "Transfer": t.transfer or "",
            }
            for t, category_name, account_name in rows
        ]
    )


def export_transactions(
    db: Session,
    user_id: str,
    account_id: Optional[str] = None,
    duration: Optional[str] = None,
    export_format: str = "xlsx",
    q: Optional[str] = None,
    is_income: Optional[bool] = None,
    category_id: Optional[str] = None,
) -> Tuple[bytes, str, str]:
    """
    Returns (file bytes, filename, content type) for the matching
    transactions, newest first.
    """
    export_format = (export_format or "xlsx").lower()
    if export_format not in EXPORT_FORMATS:
        raise HTTPException(status_code=400, detail="Invalid export format (xlsx/csv).")

    scope = scope_filters(db, user_id, account_id)
    start, end = get_interval(duration, db, user_id)
    conditions = scope + _filter_conditions(start, end, q, is_income, category_id)

    rows = (
        db.query(Transaction, Category.name, Account.name)
        .outerjoin(Category, Category.id == Transaction.category)
        .outerjoin(Account, Account.id == Transaction.account)
        .filter(*conditions)
        .order_by(Transaction.created_at.desc())
        .all()
    )
    if not rows:
        raise HTTPException(status_code=404, detail="No transactions found matching the specified criteria.")

    df = _export_frame(rows)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filename = f"transactions_{stamp}.{export_format}"

    if export_format == "csv":
        data = df.to_csv(index=False).encode("utf-8")
    else:
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name="Transactions", index=False)
        data = buffer.getvalue()

    logger.info("transactions_exported", user_id=user_id, rows=len(rows), format=export_format)
    return data, filename, EXPORT_FORMATS[export_format]
