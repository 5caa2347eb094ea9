# routes_interest.py
"""
Interest calculator (public) and debts between users.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.deps import get_current_user, get_db
from app.schemas import DebtCreateIn, DebtUpdateIn, InterestIn
from app.services import debts
from models import User

router = APIRouter(prefix="/interest", tags=["interest"])


@router.post("/calculate")
def calculate(body: InterestIn):
    return debts.calculate_interest(
        body.amount,
        body.percentage,
        body.duration,
        body.type,
        compounding_frequency=body.compounding_frequency,
        frequency=body.frequency,
    )


@router.post("/debts", status_code=201)
def create_debt(body: DebtCreateIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return debts.create_debt(db, user.id, body.model_dump())


@router.get("/debts")
def list_debts(
    duration: Optional[str] = Query(None),
    q: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    is_paid: Optional[bool] = Query(None),
    page: int = Query(1),
    page_size: int = Query(10),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return debts.list_debts(db, user.id, duration, q, type, is_paid, page, page_size, sort_by, sort_order)


@router.get("/debts/{debt_id}/schedule")
def schedule(debt_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return debts.amortization_schedule(db, debt_id, user.id)


@router.put("/debts/{debt_id}/mark-paid")
def mark_paid(debt_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return debts.mark_paid(db, debt_id, user.id)


@router.put("/debts/{debt_id}")
def update_debt(
    debt_id: str,
    body: DebtUpdateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return debts.update_debt(db, debt_id, user.id, body.model_dump(exclude_unset=True))


@router.delete("/debts/{debt_id}")
def delete_debt(debt_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return debts.delete_debt(db, debt_id, user.id)
