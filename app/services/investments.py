# app/services/investments.py
#
# Holdings inside investment accounts, plus portfolio valuation against
# market quotes from app/services/finance.py.
#
# Every create/update/delete moves the parent account balance by the change
# in invested_amount (shares * purchase_price).

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
from fastapi import HTTPException
from sqlalchemy.orm import Session
import structlog

from app.services import finance
from app.services.common import check_pagination, check_sort_order, ordered, paginate, to_dict
from app.services.dates import parse_day
from app.services.investment_accounts import get_owned as get_owned_account
from models import Investment, InvestmentAccount, User

logger = structlog.get_logger(__name__)

SORTABLE = {
    "purchase_date": Investment.purchase_date,
    "symbol": Investment.symbol,
    "shares": Investment.shares,
    "purchase_price": Investment.purchase_price,
    "invested_amount": Investment.invested_amount,
    "dividend": Investment.dividend,
    "created_at": Investment.created_at,
}

PERIODS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}


# -------------------------------------------------------------------
# Validation helpers
# -------------------------------------------------------------------

def _check_position(shares: Any, purchase_price: Any, purchase_date: Any) -> Tuple[float, float, datetime]:
    try:
        shares = float(shares)
    except (TypeError, ValueError):
        shares = 0.0
    if shares <= 0:
        raise HTTPException(status_code=400, detail="Invalid shares amount.")

    try:
        price = float(purchase_price)
    except (TypeError, ValueError):
        price = -1.0
    if price < 0:
        raise HTTPException(status_code=400, detail="Invalid purchase price.")

    if isinstance(purchase_date, datetime):
        when = purchase_date
    elif isinstance(purchase_date, date):
        when = datetime(purchase_date.year, purchase_date.month, purchase_date.day)
    else:
        day = parse_day(purchase_date) if purchase_date else None
        if day is None:
            raise HTTPException(status_code=400, detail="Invalid purchase date.")
        when = datetime(day.year, day.month, day.day)

    return shares, price, when


def _owned_investment(db: Session, investment_id: str, user_id: str) -> Tuple[Investment, InvestmentAccount]:
    row = (
        db.query(Investment, InvestmentAccount)
        .join(InvestmentAccount, InvestmentAccount.id == Investment.account)
        .filter(Investment.id == investment_id)
        .first()
    )
    if row is None:
        raise HTTPException(status_code=404, detail="Investment not found.")
    investment, account = row
    if account.user_id != user_id:
        raise HTTPException(status_code=403, detail="Permission denied.")
    return investment, account


# -------------------------------------------------------------------
# CRUD
# -------------------------------------------------------------------

def list_investments(
    db: Session,
    account_id: str,
    user_id: str,
    page: int = 1,
    page_size: int = 10,
    sort_by: str = "purchase_date",
    sort_order: str = "desc",
) -> dict:
    check_pagination(page, page_size)
    order = check_sort_order(sort_order)
    get_owned_account(db, account_id, user_id)

    query = db.query(Investment).filter(Investment.account == account_id)
    query = ordered(query, SORTABLE.get(sort_by, Investment.purchase_date), order)
    rows, pagination = paginate(query, page, page_size)
    return {"data": [to_dict(i) for i in rows], "pagination": pagination}


def get_investment(db: Session, investment_id: str, user_id: str) -> dict:
    investment = (
        db.query(Investment)
        .join(InvestmentAccount, InvestmentAccount.id == Investment.account)
        .filter(Investment.id == investment_id, InvestmentAccount.user_id == user_id)
        .first()
    )
    if investment is None:
        raise HTTPException(status_code=404, detail="Investment data not found or access denied.")
    return to_dict(investment)


def create_investment(
    db: Session,
    user_id: str,
    account_id: str,
    symbol: str,
    shares: Any,
    purchase_price: Any,
    purchase_date: Any,
) -> dict:
    symbol = (symbol or "").strip().upper()
    if not symbol:
        raise HTTPException(status_code=400, detail="Symbol is required")
    shares, price, when = _check_position(shares, purchase_price, purchase_date)
    account = get_owned_account(db, account_id, user_id)

    invested = shares * price
    investment = Investment(
        account=account.id,
        symbol=symbol,
        shares=shares,
        purchase_price=price,
        purchase_date=when,
        invested_amount=invested,
        dividend=0.0,
    )
    db.add(investment)
    account.balance = (account.balance or 0.0) + invested
    db.commit()
    db.refresh(investment)

    logger.info("investment_created", user_id=user_id, account_id=account.id, symbol=symbol, invested=invested)
    return {
        "message": "Investment created and account balance updated successfully",
        "data": to_dict(investment),
    }


def update_investment(
    db: Session,
    investment_id: str,
    user_id: str,
    shares: Any,
    purchase_price: Any,
    purchase_date: Any,
) -> dict:
    shares, price, when = _check_position(shares, purchase_price, purchase_date)
    investment, account = _owned_investment(db, investment_id, user_id)

    invested = shares * price
    account.balance = (account.balance or 0.0) + invested - (investment.invested_amount or 0.0)

    investment.shares = shares
    investment.purchase_price = price
    investment.purchase_date = when
    investment.invested_amount = invested
    db.commit()
    return {"message": "Investment record Updated successfully", "id": investment_id}


def delete_investment(db: Session, investment_id: str, user_id: str) -> dict:
    investment, account = _owned_investment(db, investment_id, user_id)

    account.balance = (account.balance or 0.0) - (investment.invested_amount or 0.0)
    db.delete(investment)
    db.commit()

    logger.info("investment_deleted", user_id=user_id, investment_id=investment_id)
    return {"message": "Investment record Deleted Successfully!"}


def update_dividend(db: Session, investment_id: str, user_id: str, dividend: Any) -> dict:
    try:
        value = float(dividend)
    except (TypeError, ValueError):
        value = -1.0
    if value < 0:
        raise HTTPException(status_code=400, detail="Invalid dividend value.")

    investment = (
        db.query(Investment)
        .join(InvestmentAccount, InvestmentAccount.id == Investment.account)
        .filter(Investment.id == investment_id, InvestmentAccount.user_id == user_id)
        .first()
    )
    if investment is None:
        raise HTTPException(status_code=404, detail="Investment not found or permission denied.")

    investment.dividend = value
    db.commit()
    return {"message": "Investment dividend updated successfully", "id": investment_id}


# -------------------------------------------------------------------
# Portfolio valuation
# -------------------------------------------------------------------

def _holdings(db: Session, user_id: str, symbol: Optional[str] = None) -> List[Tuple[Investment, InvestmentAccount]]:
    query = (
        db.query(Investment, InvestmentAccount)
        .join(InvestmentAccount, InvestmentAccount.id == Investment.account)
        .filter(InvestmentAccount.user_id == user_id)
    )
    if symbol:
        query = query.filter(Investment.symbol == symbol.strip().upper())
    return query.all()


def _preferred_currency(db: Session, user_id: str) -> str:
    user = db.query(User).filter(User.id == user_id).first()
    return (user.preferred_currency if user else None) or "USD"


def _quotes(symbols: List[str]) -> Dict[str, Optional[dict]]:
    """Current quote per symbol; None where the provider has nothing usable."""
    quotes: Dict[str, Optional[dict]] = {}
    for symbol in symbols:
        try:
            quotes[symbol] = finance.get_quote(symbol)
        except HTTPException as exc:
            logger.warning("quote_unavailable", symbol=symbol, status=exc.status_code, detail=exc.detail)
            quotes[symbol] = None
    return quotes


def portfolio_summary(db: Session, user_id: str) -> dict:
    """
    Invested amount, market value and gain/loss across every holding.

    Holdings without a quote are valued at cost. `is_estimate` is set when
    that happens or when more than one currency is involved.
    """
    currency = _preferred_currency(db, user_id)
    account_count = db.query(InvestmentAccount).filter(InvestmentAccount.user_id == user_id).count()
    holdings = _holdings(db, user_id)

    if not holdings:
        return {
            "total_invested_amount": 0.0,
            "current_market_value": 0.0,
            "total_dividends": 0.0,
            "overall_gain_loss": 0.0,
            "overall_gain_loss_percentage": 0.0,
            "number_of_accounts": account_count,
            "number_of_holdings": 0,
            "currency": currency,
            "is_estimate": False,
        }

    quotes = _quotes(sorted({inv.symbol for inv, _ in holdings}))

    invested = market = dividends = 0.0
    is_estimate = False
    currencies = set()

    for inv, account in holdings:
        invested += inv.invested_amount or 0.0
        dividends += inv.dividend or 0.0
        if account.currency:
            currencies.add(account.currency)

        quote = quotes.get(inv.symbol)
        if quote is None:
            market += inv.invested_amount or 0.0
            is_estimate = True
            continue

        market += quote["price"] * inv.shares
        if quote["currency"] != "N/A":
            currencies.add(quote["currency"])
            if account.currency and quote["currency"] != account.currency:
                is_estimate = True

    if len(currencies) > 1 or (len(currencies) == 1 and currency not in currencies):
        is_estimate = True

    gain = market - invested
    return {
        "total_invested_amount": round(invested, 2),
        "current_market_value": round(market, 2),
        "total_dividends": round(dividends, 2),
        "overall_gain_loss": round(gain, 2),
        "overall_gain_loss_percentage": round(gain / invested * 100, 2) if invested else 0.0,
        "number_of_accounts": account_count,
        "number_of_holdings": len(holdings),
        "currency": currency,
        "is_estimate": is_estimate,
    }


def _history_window(period: Optional[str], start: Optional[str], end: Optional[str], today: date) -> Tuple[date, date]:
    if start and end:
        start_day, end_day = parse_day(start), parse_day(end)
        if start_day is None or end_day is None or start_day >= end_day:
            raise HTTPException(status_code=400, detail="Invalid custom date range.")
        return start_day, min(end_day, today)
    return today - timedelta(days=PERIODS.get(period or "30d", 30)), today


def historical_portfolio(
    db: Session,
    user_id: str,
    period: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    symbol: Optional[str] = None,
    today: Optional[date] = None,
) -> dict:
    """
    Daily market value of the holdings over a window ('7d', '30d', '90d',
    '1y' or start/end), on weekdays with at least one close price. A holding
    counts from its purchase date on.
    """
    today = today or date.today()
    start_day, end_day = _history_window(period, start, end, today)

    holdings = _holdings(db, user_id, symbol)
    currency = _preferred_currency(db, user_id)
    if not holdings:
        return {"data": [], "currency": currency, "is_estimate": False}

    is_estimate = len({account.currency for _, account in holdings}) > 1

    prices: Dict[str, Dict[str, Optional[float]]] = {}
    for sym in sorted({inv.symbol for inv, _ in holdings}):
        try:
            prices[sym] = finance.close_prices(sym, start_day, end_day)
        except HTTPException as exc:
            logger.warning("history_unavailable", symbol=sym, status=exc.status_code, detail=exc.detail)
            prices[sym] = {}
            is_estimate = True

    points = []
    for day in pd.bdate_range(start_day, end_day):
        key = day.strftime("%Y-%m-%d")
        total = 0.0
        priced = False
        for inv, _ in holdings:
            if inv.purchase_date is None or inv.purchase_date.date() > day.date():
                continue
            close = prices.get(inv.symbol, {}).get(key)
            if close is not None:
                total += inv.shares * close
                priced = True
        if priced:
            points.append({"date": key, "value": round(total, 2)})

    return {"data": points, "currency": currency, "is_estimate": is_estimate}
