# routes_investment_accounts.py

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.deps import get_current_user, get_db
from app.schemas import InvestmentAccountCreateIn, InvestmentAccountUpdateIn
from app.services import investment_accounts
from models import User

router = APIRouter(prefix="/investmentAccount", tags=["investment accounts"])


@router.get("/all")
def list_accounts(
    page: int = Query(1),
    page_size: int = Query(10),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return investment_accounts.list_accounts(db, user.id, page, page_size, sort_by, sort_order)


@router.post("/", status_code=201)
def create_account(
    body: InvestmentAccountCreateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    currency = body.currency or user.preferred_currency
    return investment_accounts.create_account(db, user.id, body.name, body.platform, currency)


@router.get("/{account_id}/summary")
def account_summary(account_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return investment_accounts.account_summary(db, account_id, user.id)


@router.get("/{account_id}")
def get_account(account_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return investment_accounts.get_account(db, account_id, user.id)


@router.put("/{account_id}")
def update_account(
    account_id: str,
    body: InvestmentAccountUpdateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return investment_accounts.update_account(db, account_id, user.id, body.name, body.platform)


@router.delete("/{account_id}")
def delete_account(account_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return investment_accounts.delete_account(db, account_id, user.id)
