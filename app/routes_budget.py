# routes_budget.py
"""
Monthly category budgets, the budget-vs-actual summary and progress.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.deps import get_current_user, get_db
from app.schemas import BudgetCreateIn, BudgetUpdateIn
from app.services import budgets
from models import User

router = APIRouter(prefix="/budget", tags=["budget"])


@router.get("/all")
def list_budgets(
    page: int = Query(1),
    page_size: int = Query(10),
    month: Optional[int] = Query(None),
    year: Optional[int] = Query(None),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return budgets.list_budgets(db, user.id, page, page_size, month, year, sort_by, sort_order)


@router.get("/summary")
def budget_summary(
    month: Optional[int] = Query(None),
    year: Optional[int] = Query(None),
    duration: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return budgets.budget_summary(db, user.id, month, year, duration)


@router.get("/progress/by-category")
def progress_by_category(
    name: str = Query(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return budgets.progress_by_category_name(db, user.id, name)


@router.post("/", status_code=201)
def create_budget(body: BudgetCreateIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return budgets.create_budget(db, user.id, body.category_id, body.month, body.year, body.amount)


@router.get("/{budget_id}/progress")
def budget_progress(budget_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return budgets.budget_progress(db, budget_id, user.id)


@router.put("/{budget_id}")
def update_budget(
    budget_id: str,
    body: BudgetUpdateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return budgets.update_budget(db, budget_id, user.id, body.amount)


@router.delete("/{budget_id}")
def delete_budget(budget_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return budgets.delete_budget(db, budget_id, user.id)
