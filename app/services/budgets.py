# app/services/budgets.py
#
# Monthly per-category spending limits and how much of each has been used.

from datetime import datetime
from typing import Dict, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session
import structlog

from app.services.categories import get_owned as get_owned_category
from app.services.common import check_pagination, check_sort_order, iso, ordered, pagination_meta
from app.services.dates import get_interval, month_range
from models import Budget, Category, Transaction

logger = structlog.get_logger(__name__)

SORTABLE = {
    "created_at": Budget.created_at,
    "amount": Budget.amount,
    "month": Budget.month,
    "year": Budget.year,
    "category_name": Category.name,
}


def _check_period(month: int, year: int) -> None:
    if not (1 <= int(month) <= 12) or not (1900 <= int(year) <= 2100):
        raise HTTPException(status_code=400, detail="Invalid month or year.")


def _check_amount(amount) -> float:
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid budget amount.")
    if value < 0:
        raise HTTPException(status_code=400, detail="Invalid budget amount.")
    return value


def _owned_budget(db: Session, budget_id: str, user_id: str) -> Budget:
    budget = db.query(Budget).filter(Budget.id == budget_id, Budget.user_id == user_id).first()
    if budget is None:
        raise HTTPException(status_code=404, detail="Budget not found or access denied.")
    return budget


def serialize(budget: Budget, category: Optional[Category] = None) -> dict:
    return {
        "id": budget.id,
        "category": {"id": category.id, "name": category.name} if category else budget.category,
        "month": budget.month,
        "year": budget.year,
        "amount": budget.amount,
        "created_at": iso(budget.created_at),
        "updated_at": iso(budget.updated_at),
    }


def spent_in_category(db: Session, user_id: str, category_id: str, start: datetime, end_exclusive: datetime) -> float:
    """Expense total of one category in [start, end_exclusive)."""
    value = (
        db.query(func.coalesce(func.sum(Transaction.amount), 0.0))
        .filter(
            Transaction.category == category_id,
            Transaction.owner == user_id,
            Transaction.is_income.is_(False),
            Transaction.created_at >= start,
            Transaction.created_at < end_exclusive,
        )
        .scalar()
    )
    return float(value or 0.0)


def progress_percent(budgeted: float, spent: float) -> float:
    """Share of the budget used, clamped to 0-100. A zero budget with any spend is 100."""
    if budgeted > 0:
        return round(max(0.0, min(spent / budgeted * 100, 100.0)), 2)
    return 100.0 if spent > 0 else 0.0


# -------------------------------------------------------------------
# CRUD
# -------------------------------------------------------------------

def create_budget(db: Session, user_id: str, category_id: str, month: int, year: int, amount: float) -> dict:
    amount = _check_amount(amount)
    _check_period(month, year)
    get_owned_category(db, category_id, user_id, "budget")

    existing = (
        db.query(Budget.id)
        .filter(
            Budget.user_id == user_id,
            Budget.category == category_id,
            Budget.month == month,
            Budget.year == year,
        )
        .first()
    )
    if existing:
        raise HTTPException(
            status_code=409,
            detail="A budget for this category and period already exists. Update the existing one instead.",
        )

    budget = Budget(user_id=user_id, category=category_id, month=month, year=year, amount=amount)
    db.add(budget)
    db.commit()
    db.refresh(budget)

    logger.info("budget_created", user_id=user_id, budget_id=budget.id, month=month, year=year)
    return {"message": "Budget created successfully", "data": serialize(budget)}


def update_budget(db: Session, budget_id: str, user_id: str, amount: float) -> dict:
    amount = _check_amount(amount)
    budget = _owned_budget(db, budget_id, user_id)
    budget.amount = amount
    db.commit()
    db.refresh(budget)
    return {"message": "Budget updated successfully", "data": serialize(budget)}


def delete_budget(db: Session, budget_id: str, user_id: str) -> dict:
    budget = _owned_budget(db, budget_id, user_id)
    db.delete(budget)
    db.commit()
    return {"message": "Budget deleted successfully", "id": budget_id}


def list_budgets(
    db: Session,
    user_id: str,
    page: int = 1,
    page_size: int = 10,
    month: Optional[int] = None,
    year: Optional[int] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    check_pagination(page, page_size)
    order = check_sort_order(sort_order)

    query = (
        db.query(Budget, Category)
        .outerjoin(Category, Category.id == Budget.category)
        .filter(Budget.user_id == user_id)
    )
    if month is not None:
        query = query.filter(Budget.month == month)
    if year is not None:
        query = query.filter(Budget.year == year)

    total = query.order_by(None).count()
    query = ordered(query, SORTABLE.get(sort_by, Budget.created_at), order)
    rows = query.limit(page_size).offset(page_size * (page - 1)).all()

    return {
        "data": [serialize(b, c) for b, c in rows],
        "pagination": pagination_meta(total, page, page_size),
    }


# -------------------------------------------------------------------
# Summary and progress
# -------------------------------------------------------------------

def _summary_window(
    db: Session,
    user_id: str,
    month: Optional[int],
    year: Optional[int],
    duration: Optional[str],
) -> Tuple[datetime, datetime, bool]:
    """(start, end, restrict_to_month); the end is exclusive only for a month."""
    if month is not None and year is not None:
        _check_period(month, year)
        start, end_exclusive = month_range(year, month)
        return start, end_exclusive, True

    start, end = get_interval(duration or "thisMonth", db, user_id)
    return start, end, False


def budget_summary(
    db: Session,
    user_id: str,
    month: Optional[int] = None,
    year: Optional[int] = None,
    duration: Optional[str] = None,
) -> dict:
    """
    Budgeted amount against actual expense for each budget. With month and
    year only that month's budgets are compared against that month; otherwise
    every budget is compared against the spend in `duration`.
    """
    start, end, by_month = _summary_window(db, user_id, month, year, duration)

    spend_rows = (
        db.query(Transaction.category, func.coalesce(func.sum(Transaction.amount), 0.0))
        .filter(
            Transaction.owner == user_id,
            Transaction.is_income.is_(False),
            Transaction.created_at >= start,
            Transaction.created_at < end if by_month else Transaction.created_at <= end,
        )
        .group_by(Transaction.category)
        .all()
    )
    spend: Dict[str, float] = {category_id: float(total) for category_id, total in spend_rows}

    query = (
        db.query(Budget, Category)
        .join(Category, Category.id == Budget.category)
        .filter(Budget.user_id == user_id)
    )
    if by_month:
        query = query.filter(Budget.month == month, Budget.year == year)

    items = []
    for budget, category in query.order_by(Budget.amount.desc()).all():
        actual = spend.get(budget.category, 0.0)
        items.append(
            {
                "budget_id": budget.id,
                "category": budget.category,
                "category_name": category.name,
                "month": budget.month,
                "year": budget.year,
                "budgeted_amount": float(budget.amount),
                "actual_spend": actual,
                "remaining_amount": round(float(budget.amount) - actual, 2),
                "progress": progress_percent(float(budget.amount), actual),
            }
        )

    return {
        "data": items,
        "total_budgeted": round(sum(i["budgeted_amount"] for i in items), 2),
        "total_spent": round(sum(i["actual_spend"] for i in items), 2),
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
    }


def budget_progress(db: Session, budget_id: str, user_id: str) -> dict:
    budget = _owned_budget(db, budget_id, user_id)
    category = db.query(Category).filter(Category.id == budget.category).first()

    start, end_exclusive = month_range(budget.year, budget.month)
    spent = spent_in_category(db, user_id, budget.category, start, end_exclusive)
    budgeted = float(budget.amount or 0.0)

    return {
        "budget_id": budget.id,
        "category_name": category.name if category else None,
        "month": budget.month,
        "year": budget.year,
        "budgeted_amount": budgeted,
        "total_spent": spent,
        "remaining_amount": round(budgeted - spent, 2),
        "progress": progress_percent(budgeted, spent),
    }


def progress_by_category_name(db: Session, user_id: str, name: str, now: Optional[datetime] = None) -> dict:
    """Progress of the current month's budget for the category called `name`."""
    now = now or datetime.now()
    category = (
        db.query(Category)
        .filter(Category.owner == user_id, func.lower(Category.name) == (name or "").strip().lower())
        .first()
    )
    if category is None:
        raise HTTPException(status_code=404, detail=f'Category "{name}" not found.')

    budget = (
        db.query(Budget)
        .filter(
            Budget.user_id == user_id,
            Budget.category == category.id,
            Budget.month == now.month,
            Budget.year == now.year,
        )
        .first()
    )
    if budget is None:
        raise HTTPException(
            status_code=404,
            detail=f'No budget found for "{category.name}" in {now.strftime("%B %Y")}.',
        )
    return budget_progress(db, budget.id, user_id)
