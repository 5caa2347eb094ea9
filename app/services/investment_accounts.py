# app/services/investment_accounts.py
#
# Brokerage-style accounts that hold investments. The balance is the sum of
# invested_amount over the holdings and is maintained by app/services/investments.py.

from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session
import structlog

from app import config
from app.services.common import check_pagination, check_sort_order, ordered, paginate, to_dict
from models import Investment, InvestmentAccount

logger = structlog.get_logger(__name__)

SORTABLE = {
    "created_at": InvestmentAccount.created_at,
    "name": InvestmentAccount.name,
    "platform": InvestmentAccount.platform,
    "balance": InvestmentAccount.balance,
    "currency": InvestmentAccount.currency,
}


def get_owned(db: Session, account_id: str, user_id: str) -> InvestmentAccount:
    account = (
        db.query(InvestmentAccount)
        .filter(InvestmentAccount.id == account_id, InvestmentAccount.user_id == user_id)
        .first()
    )
    if account is None:
        raise HTTPException(status_code=404, detail="Investment account not found or access denied.")
    return account


def _name_taken(db: Session, user_id: str, name: str, exclude_id: Optional[str] = None) -> bool:
    query = db.query(InvestmentAccount.id).filter(
        InvestmentAccount.user_id == user_id, InvestmentAccount.name == name
    )
    if exclude_id:
        query = query.filter(InvestmentAccount.id != exclude_id)
    return query.first() is not None


def list_accounts(
    db: Session,
    user_id: str,
    page: int = 1,
    page_size: int = 10,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    check_pagination(page, page_size)
    order = check_sort_order(sort_order)

    query = db.query(InvestmentAccount).filter(InvestmentAccount.user_id == user_id)
    query = ordered(query, SORTABLE.get(sort_by, InvestmentAccount.created_at), order)
    rows, pagination = paginate(query, page, page_size)
    return {"data": [to_dict(a) for a in rows], "pagination": pagination}


def get_account(db: Session, account_id: str, user_id: str) -> dict:
    return to_dict(get_owned(db, account_id, user_id))


def create_account(
    db: Session,
    user_id: str,
    name: str,
    platform: Optional[str] = None,
    currency: Optional[str] = None,
) -> dict:
    name = (name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Investment account name cannot be empty.")
    if _name_taken(db, user_id, name):
        raise HTTPException(status_code=409, detail=f'An investment account named "{name}" already exists.')

    currency = (currency or config.DEFAULT_CURRENCY).strip().upper()
    if len(currency) != 3:
        raise HTTPException(status_code=400, detail="Invalid currency code (must be 3 letters).")

    account = InvestmentAccount(user_id=user_id, name=name, platform=platform, currency=currency, balance=0.0)
    db.add(account)
    db.commit()
    db.refresh(account)

    logger.info("investment_account_created", user_id=user_id, account_id=account.id)
    return to_dict(account)


def update_account(
    db: Session,
    account_id: str,
    user_id: str,
    name: Optional[str] = None,
    platform: Optional[str] = None,
) -> dict:
    account = get_owned(db, account_id, user_id)
    changed = False

    if name is not None and name.strip() and name.strip() != account.name:
        name = name.strip()
        if _name_taken(db, user_id, name, exclude_id=account_id):
            raise HTTPException(status_code=409, detail=f'Another investment account named "{name}" already exists.')
        account.name = name
        changed = True

    if platform is not None and platform != account.platform:
        account.platform = platform
        changed = True

    if not changed:
        return {"message": "No changes detected.", "id": account_id}

    db.commit()
    return {"message": "Investment Account updated successfully", "id": account_id}


def delete_account(db: Session, account_id: str, user_id: str) -> dict:
    get_owned(db, account_id, user_id)

    db.query(Investment).filter(Investment.account == account_id).delete(synchronize_session=False)
    db.query(InvestmentAccount).filter(InvestmentAccount.id == account_id).delete(synchronize_session=False)
    db.commit()

    logger.info("investment_account_deleted", user_id=user_id, account_id=account_id)
    return {"message": "Investment Account and associated investments deleted successfully!"}


def account_summary(db: Session, account_id: str, user_id: str) -> dict:
    """Invested total, dividends and their sum (book value, no market prices)."""
    account = get_owned(db, account_id, user_id)

    invested, dividend = (
        db.query(
            func.coalesce(func.sum(Investment.invested_amount), 0.0),
            func.coalesce(func.sum(Investment.dividend), 0.0),
        )
        .filter(Investment.account == account_id)
        .one()
    )
    invested, dividend = float(invested), float(dividend)

    return {
        "account_id": account.id,
        "account_name": account.name,
        "currency": account.currency,
        "platform": account.platform,
        "total_investment": invested,
        "total_dividend": dividend,
        "total_value": invested + dividend,
    }
