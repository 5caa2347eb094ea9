# routes_investments.py
"""
Holdings, portfolio valuation and market data lookups.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.deps import get_current_user, get_db
from app.schemas import DividendIn, InvestmentCreateIn, InvestmentUpdateIn
from app.services import finance, investments
from models import User

router = APIRouter(prefix="/investment", tags=["investments"])


# ---- Market data ----

@router.get("/stocks/search")
def search_stocks(q: str = Query(""), user: User = Depends(get_current_user)):
    return {"data": finance.search_symbols(q)}


@router.get("/stocks/price/{symbol}")
def stock_price(symbol: str, user: User = Depends(get_current_user)):
    return finance.get_quote(symbol)


@router.get("/stocks/historical-price/{symbol}")
def historical_price(
    symbol: str,
    on: Optional[date] = Query(None, alias="date"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    user: User = Depends(get_current_user),
):
    """Close on one day (?date=) or a daily series (?start_date=&end_date=)."""
    if on is not None:
        return finance.price_on(symbol, on)
    if start_date is None or end_date is None:
        raise HTTPException(status_code=400, detail="Provide either date or start_date and end_date.")
    return finance.get_history(symbol, start_date, end_date)


# ---- Portfolio ----

@router.get("/portfolio-summary")
def portfolio_summary(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return investments.portfolio_summary(db, user.id)


@router.get("/portfolio-historical")
def portfolio_historical(
    period: Optional[str] = Query("30d"),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    symbol: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return investments.historical_portfolio(db, user.id, period, start_date, end_date, symbol)


# ---- Holdings ----

@router.get("/details/{investment_id}")
def get_investment(investment_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return investments.get_investment(db, investment_id, user.id)


@router.post("/", status_code=201)
def create_investment(body: InvestmentCreateIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return investments.create_investment(
        db, user.id, body.account, body.symbol, body.shares, body.purchase_price, body.purchase_date
    )


@router.put("/{investment_id}/update-dividend")
def update_dividend(
    investment_id: str,
    body: DividendIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return investments.update_dividend(db, investment_id, user.id, body.dividend)


@router.get("/{account_id}")
def list_investments(
    account_id: str,
    page: int = Query(1),
    page_size: int = Query(10),
    sort_by: str = Query("purchase_date"),
    sort_order: str = Query("desc"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return investments.list_investments(db, account_id, user.id, page, page_size, sort_by, sort_order)


@router.put("/{investment_id}")
def update_investment(
    investment_id: str,
    body: InvestmentUpdateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return investments.update_investment(
        db, investment_id, user.id, body.shares, body.purchase_price, body.purchase_date
    )


@router.delete("/{investment_id}")
def delete_investment(investment_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return investments.delete_investment(db, investment_id, user.id)
