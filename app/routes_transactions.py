# routes_transactions.py
"""
Routes for transactions: filtered lists, CRUD, chart aggregates, recurring
templates and export.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.deps import get_current_user, get_db
from app.routes_accounts import attachment
from app.schemas import TransactionCreateIn, TransactionUpdateIn
from app.services import transactions
from models import User

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.get("/")
def list_transactions(
    account_id: Optional[str] = Query(None),
    duration: Optional[str] = Query(None),
    q: Optional[str] = Query(None),
    is_income: Optional[bool] = Query(None),
    category_id: Optional[str] = Query(None),
    min_amount: Optional[float] = Query(None),
    max_amount: Optional[float] = Query(None),
    page: int = Query(1),
    page_size: int = Query(10),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return transactions.list_transactions(
        db,
        user.id,
        account_id=account_id,
        duration=duration,
        q=q,
        is_income=is_income,
        category_id=category_id,
        min_amount=min_amount,
        max_amount=max_amount,
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("/export")
def export_transactions(
    format: str = Query("xlsx"),
    account_id: Optional[str] = Query(None),
    duration: Optional[str] = Query(None),
    q: Optional[str] = Query(None),
    is_income: Optional[bool] = Query(None),
    category_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    data, filename, media_type = transactions.export_transactions(
        db, user.id, account_id, duration, format, q, is_income, category_id
    )
    return attachment(data, filename, media_type)


# ---- Aggregates ----

@router.get("/by/category/chart")
def category_chart(
    account_id: Optional[str] = Query(None),
    duration: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return transactions.category_chart(db, user.id, account_id, duration)


@router.get("/by/income/expense")
def income_expense_totals(
    account_id: Optional[str] = Query(None),
    duration: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return transactions.income_expense_totals(db, user.id, account_id, duration)


@router.get("/by/income/expense/chart")
def income_expense_chart(
    account_id: Optional[str] = Query(None),
    duration: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return transactions.income_expense_chart(db, user.id, account_id, duration)


@router.get("/extremes")
def extremes(
    account_id: Optional[str] = Query(None),
    duration: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return transactions.extreme_transactions(db, user.id, account_id, duration)


# ---- Recurring templates ----

@router.get("/recurring")
def list_recurring(
    page: int = Query(1),
    page_size: int = Query(10),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return transactions.list_recurring(db, user.id, page, page_size)


@router.get("/recurring/{transaction_id}")
def get_recurring(transaction_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return transactions.get_recurring(db, transaction_id, user.id)


@router.put("/recurring/{transaction_id}")
def update_recurring(
    transaction_id: str,
    body: TransactionUpdateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return transactions.update_recurring(db, transaction_id, user.id, body.model_dump(exclude_unset=True))


@router.delete("/recurring/{transaction_id}")
def delete_recurring(transaction_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return transactions.delete_recurring(db, transaction_id, user.id)


@router.post("/recurring/{transaction_id}/skip")
def skip_next(transaction_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return transactions.skip_next_occurrence(db, transaction_id, user.id)


# ---- CRUD ----

@router.get("/{transaction_id}")
def get_transaction(transaction_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return transactions.get_transaction(db, transaction_id, user.id)


@router.post("/", status_code=201)
def create_transaction(
    body: TransactionCreateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return transactions.create_transaction(db, user.id, body.model_dump())


@router.put("/{transaction_id}")
def update_transaction(
    transaction_id: str,
    body: TransactionUpdateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return transactions.update_transaction(db, transaction_id, user.id, body.model_dump(exclude_unset=True))


@router.delete("/{transaction_id}")
def delete_transaction(transaction_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return transactions.delete_transaction(db, transaction_id, user.id)
