# app/services/accounts.py
#
# Accounts: CRUD, sharing with other users, lists, the dashboard summary,
# quick search and period-over-period analytics.

from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session
import structlog

from app.services import mailer
from app.services.analytics import (
    calculate_percentage_change,
    create_opening_analytics,
    expense_sum,
    income_sum,
    serialize,
)
from app.services.categories import ensure_category
from app.services.charts import epoch_series, income_expense_frame
from app.services.common import (
    check_pagination,
    check_sort_order,
    iso,
    ordered,
    pagination_meta,
)
from app.services.dates import get_interval, get_previous_interval
from models import Account, Analytics, Category, Debt, ImportData, Transaction, User, UserAccount

logger = structlog.get_logger(__name__)

OPENING_BALANCE_CATEGORY = "Opening Balance"


# -------------------------------------------------------------------
# Access helpers
# -------------------------------------------------------------------

def shared_account_ids(db: Session, user_id: str):
    return select(UserAccount.account_id).where(UserAccount.user_id == user_id)


def accessible_account(db: Session, account_id: str, user_id: str) -> Optional[Account]:
    """The account when `user_id` owns it or it was shared with them."""
    return (
        db.query(Account)
        .filter(
            Account.id == account_id,
            or_(Account.owner == user_id, Account.id.in_(shared_account_ids(db, user_id))),
        )
        .first()
    )


def require_accessible(db: Session, account_id: str, user_id: str) -> Account:
    account = accessible_account(db, account_id, user_id)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found or access denied.")
    return account


def require_owned(db: Session, account_id: str, user_id: str, message: str) -> Account:
    account = db.query(Account).filter(Account.id == account_id, Account.owner == user_id).first()
    if account is None:
        raise HTTPException(status_code=403, detail=message)
    return account


def _owner_info(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "email": user.email, "profile_pic": user.profile_pic}


def _check_currency(currency: str) -> str:
    code = (currency or "").strip().upper()
    if len(code) != 3:
        raise HTTPException(status_code=400, detail="Invalid currency code (must be 3 letters).")
    return code


# -------------------------------------------------------------------
# CRUD
# -------------------------------------------------------------------

def create_account(db: Session, user_id: str, name: str, balance: float, currency: str) -> dict:
    """
    Create an account with its analytics row. A non-zero opening balance is
    also recorded as an "Opening Balance" transaction so the ledger sums to
    the account balance.
    """
    name = (name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Account name cannot be empty.")
    currency = _check_currency(currency)
    opening = float(balance)

    exists = db.query(Account.id).filter(Account.name == name, Account.owner == user_id).first()
    if exists:
        raise HTTPException(status_code=409, detail="An account with this name already exists.")

    account = Account(name=name, owner=user_id, balance=opening, currency=currency)
    db.add(account)
    db.flush()

    create_opening_analytics(db, account.id, user_id, opening)
    category = ensure_category(db, user_id, OPENING_BALANCE_CATEGORY)

    if opening != 0:
        db.add(
            Transaction(
                text="Opening Balance",
                amount=abs(opening),
                is_income=opening >= 0,
                transfer="self",
                category=category.id,
                account=account.id,
                owner=user_id,
                created_by=user_id,
                updated_by=user_id,
                currency=currency,
            )
        )

    db.commit()
    db.refresh(account)
    logger.info("account_created", user_id=user_id, account_id=account.id, opening=opening)

    return {
        "message": "Account created successfully",
        "data": {
            "id": account.id,
            "name": account.name,
            "balance": account.balance,
            "currency": account.currency,
            "owner": account.owner,
            "created_at": iso(account.created_at),
        },
    }


def get_account(db: Session, account_id: str, user_id: str) -> dict:
    account = require_accessible(db, account_id, user_id)
    owner = db.query(User).filter(User.id == account.owner).first()
    analytics = db.query(Analytics).filter(Analytics.account == account.id).first()
    return {
        "id": account.id,
        "name": account.name,
        "balance": account.balance,
        "currency": account.currency,
        "is_default": account.is_default,
        "created_at": iso(account.created_at),
        "updated_at": iso(account.updated_at),
        "owner": _owner_info(owner),
        "analytics": serialize(analytics),
    }


def update_account(
    db: Session,
    account_id: str,
    user_id: str,
    name: Optional[str] = None,
    balance: Optional[float] = None,
    currency: Optional[str] = None,
) -> dict:
    account = require_owned(db, account_id, user_id, "Account not found or you don't have permission to edit.")
    changed = False

    if name is not None and name.strip() and name.strip() != account.name:
        name = name.strip()
        conflict = (
            db.query(Account.id)
            .filter(Account.name == name, Account.owner == user_id, Account.id != account_id)
            .first()
        )
        if conflict:
            raise HTTPException(status_code=409, detail=f'Another account named "{name}" already exists.')
        account.name = name
        changed = True

    if currency is not None and len(currency.strip()) == 3 and currency.strip().upper() != account.currency:
        account.currency = currency.strip().upper()
        changed = True

    if balance is not None and float(balance) != (account.balance or 0.0):
        account.balance = float(balance)
        analytics = db.query(Analytics).filter(Analytics.account == account_id).first()
        if analytics is not None:
            analytics.balance = float(balance)
        changed = True

    if not changed:
        return {"message": "No changes detected."}

    db.commit()
    return {"message": "Account updated successfully"}


def delete_account(db: Session, account_id: str, user_id: str) -> dict:
    require_owned(db, account_id, user_id, "Account not found or you don't have permission to delete.")

    db.query(UserAccount).filter(UserAccount.account_id == account_id).delete(synchronize_session=False)
    db.query(Transaction).filter(Transaction.account == account_id).delete(synchronize_session=False)
    db.query(Analytics).filter(Analytics.account == account_id).delete(synchronize_session=False)
    db.query(Debt).filter(Debt.account == account_id).delete(synchronize_session=False)
    db.query(ImportData).filter(ImportData.account == account_id).delete(synchronize_session=False)
    db.query(Account).filter(Account.id == account_id).delete(synchronize_session=False)
    db.commit()

    logger.info("account_deleted", user_id=user_id, account_id=account_id)
    return {"message": "Account and related data deleted successfully"}


# -------------------------------------------------------------------
# Lists
# -------------------------------------------------------------------

ACCOUNT_SORT = {
    "name": Account.name,
    "balance": Account.balance,
    "created_at": Account.created_at,
    "updated_at": Account.updated_at,
    "currency": Account.currency,
    "owner_name": User.name,
}


def _search_accounts(query, q: str):
    if not q:
        return query
    pattern = f"%{q.strip()}%"
    conditions = [Account.name.ilike(pattern), Account.currency.ilike(pattern)]
    try:
        conditions.append(Account.balance == float(q))
    except ValueError:
        pass
    return query.filter(or_(*conditions))


def list_accounts(
    db: Session,
    user_id: str,
    page: int = 1,
    page_size: int = 10,
    q: str = "",
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    check_pagination(page, page_size)
    order = check_sort_order(sort_order)

    base = _search_accounts(db.query(Account).filter(Account.owner == user_id), q)
    total = base.count()

    query = (
        db.query(Account, User, Analytics)
        .outerjoin(User, User.id == Account.owner)
        .outerjoin(Analytics, Analytics.account == Account.id)
        .filter(Account.owner == user_id)
    )
    query = ordered(_search_accounts(query, q), ACCOUNT_SORT.get(sort_by, Account.created_at), order)
    rows = query.limit(page_size).offset(page_size * (page - 1)).all()

    accounts = []
    for account, owner, analytics in rows:
        accounts.append(
            {
                "id": account.id,
                "name": account.name,
                "balance": account.balance,
                "currency": account.currency,
                "is_default": account.is_default,
                "created_at": iso(account.created_at),
                "updated_at": iso(account.updated_at),
                "owner": _owner_info(owner),
                "analytics": serialize(analytics),
            }
        )

    return {"accounts": accounts, "pagination": pagination_meta(total, page, page_size)}


def list_dropdown(db: Session, user_id: str) -> List[dict]:
    """Own accounts first, then accounts shared with the user."""
    own = db.query(Account).filter(Account.owner == user_id).order_by(Account.name.asc()).all()
    shared = (
        db.query(Account)
        .filter(Account.id.in_(shared_account_ids(db, user_id)))
        .order_by(Account.name.asc())
        .all()
    )
    return [
        {"id": a.id, "name": a.name, "currency": a.currency, "shared": a.owner != user_id}
        for a in own + shared
    ]


def users_dropdown(db: Session, user_id: str) -> List[dict]:
    users = (
        db.query(User)
        .filter(User.role == "user", User.id != user_id, User.is_active.is_(True))
        .order_by(User.name.asc())
        .all()
    )
    return [{"id": u.id, "name": u.name, "email": u.email, "profile_pic": u.profile_pic} for u in users]


# -------------------------------------------------------------------
# Sharing
# -------------------------------------------------------------------

def share_account(db: Session, account_id: str, target_user_id: str, owner: User) -> dict:
    if not account_id or not target_user_id:
        raise HTTPException(status_code=400, detail="Account ID and target User ID are required")

    account = require_owned(db, account_id, owner.id, "Account not found or you do not have permission to share it.")

    target = db.query(User).filter(User.id == target_user_id).first()
    if target is None:
        raise HTTPException(status_code=404, detail="Target user not found")
    if target.id == owner.id:
        raise HTTPException(status_code=400, detail="You cannot share an account with yourself.")

    existing = (
        db.query(UserAccount)
        .filter(UserAccount.account_id == account_id, UserAccount.user_id == target_user_id)
        .first()
    )
    if existing:
        raise HTTPException(status_code=409, detail="Account already shared with this user")

    db.add(UserAccount(account_id=account_id, user_id=target_user_id))
    db.commit()

    logger.info("account_shared", account_id=account_id, owner_id=owner.id, target_id=target_user_id)
    mailer.send_share_notification(target.email, account.name, owner.name)
    return {"message": "Account shared successfully"}


def revoke_share(db: Session, account_id: str, target_user_id: str, owner_id: str) -> dict:
    require_owned(db, account_id, owner_id, "Account not found or you do not own this account.")

    if db.query(User.id).filter(User.id == target_user_id).first() is None:
        raise HTTPException(status_code=404, detail="User to revoke access from not found.")

    removed = (
        db.query(UserAccount)
        .filter(UserAccount.account_id == account_id, UserAccount.user_id == target_user_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    if not removed:
        logger.warning("revoke_share_no_record", account_id=account_id, target_id=target_user_id)
    return {"message": "Access revoked successfully"}


def previous_shares(db: Session, account_id: str, owner_id: str) -> List[dict]:
    require_owned(db, account_id, owner_id, "Account not found or you don't own it.")
    users = (
        db.query(User)
        .join(UserAccount, UserAccount.user_id == User.id)
        .filter(UserAccount.account_id == account_id)
        .all()
    )
    return [_owner_info(u) for u in users]


SHARED_SORT = {
    "name": Account.name,
    "balance": Account.balance,
    "created_at": Account.created_at,
    "owner_name": User.name,
}


def shared_accounts(
    db: Session,
    user_id: str,
    page: int = 1,
    page_size: int = 10,
    q: str = "",
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    check_pagination(page, page_size)
    order = check_sort_order(sort_order)

    query = (
        db.query(Account, User)
        .outerjoin(User, User.id == Account.owner)
        .filter(Account.id.in_(shared_account_ids(db, user_id)))
    )
    query = _search_accounts(query, q)
    total = query.order_by(None).count()
    query = ordered(query, SHARED_SORT.get(sort_by, Account.created_at), order)
    rows = query.limit(page_size).offset(page_size * (page - 1)).all()

    data = [
        {
            "id": account.id,
            "name": account.name,
            "balance": account.balance,
            "currency": account.currency,
            "created_at": iso(account.created_at),
            "owner": _owner_info(owner),
        }
        for account, owner in rows
    ]
    return {"data": data, "pagination": pagination_meta(total, page, page_size)}


# -------------------------------------------------------------------
# Dashboard, search, custom analytics
# -------------------------------------------------------------------

def dashboard(db: Session, user_id: str) -> dict:
    accounts_info = [
        {
            "id": account_id,
            "name": name,
            "balance": float(balance or 0.0),
            "income": float(income or 0.0),
            "expense": float(expense or 0.0),
        }
        for account_id, name, balance, income, expense in (
            db.query(Account.id, Account.name, Account.balance, Analytics.income, Analytics.expense)
            .outerjoin(Analytics, Analytics.account == Account.id)
            .filter(Account.owner == user_id)
            .order_by(Analytics.balance.desc())
            .all()
        )
    ]

    counts = dict(
        db.query(Account.name, func.count(Transaction.id))
        .outerjoin(Transaction, Transaction.account == Account.id)
        .filter(Account.owner == user_id)
        .group_by(Account.name)
        .all()
    )

    empty = len(accounts_info) < 2 and all(a["income"] == 0 and a["expense"] == 0 for a in accounts_info)
    if empty:
        return {
            "accounts_info": accounts_info,
            "transactions_count_by_account": counts,
            "total_transaction": 0,
            "most_expensive_expense": 0,
            "cheapest_expense": 0,
            "most_expensive_income": 0,
            "cheapest_income": 0,
            "income_chart_data": [],
            "expense_chart_data": [],
            "balance_chart_data": [],
            "overall_income": 0,
            "overall_expense": 0,
            "overall_balance": 0,
            "overall_income_change": 0,
            "overall_expense_change": 0,
        }

    total = db.query(func.count(Transaction.id)).filter(Transaction.owner == user_id).scalar() or 0

    def _extreme(agg, is_income: bool) -> float:
        value = (
            db.query(agg(Transaction.amount))
            .filter(Transaction.owner == user_id, Transaction.is_income.is_(is_income))
            .scalar()
        )
        return float(value or 0.0)

    rows = (
        db.query(Transaction.created_at, Transaction.amount, Transaction.is_income)
        .filter(Transaction.owner == user_id)
        .all()
    )
    frame = income_expense_frame(rows, "day")

    overall = (
        db.query(
            func.coalesce(func.sum(Analytics.income), 0.0),
            func.coalesce(func.sum(Analytics.expense), 0.0),
            func.coalesce(func.sum(Analytics.balance), 0.0),
            func.coalesce(func.avg(Analytics.income_percentage_change), 0.0),
            func.coalesce(func.avg(Analytics.expenses_percentage_change), 0.0),
        )
        .join(Account, Account.id == Analytics.account)
        .filter(Account.owner == user_id)
        .one()
    )

    return {
        "accounts_info": accounts_info,
        "transactions_count_by_account": counts,
        "total_transaction": int(total),
        "most_expensive_expense": _extreme(func.max, False),
        "cheapest_expense": _extreme(func.min, False),
        "most_expensive_income": _extreme(func.max, True),
        "cheapest_income": _extreme(func.min, True),
        "income_chart_data": epoch_series(frame, "income") if not frame.empty else [],
        "expense_chart_data": epoch_series(frame, "expense") if not frame.empty else [],
        "balance_chart_data": epoch_series(frame, "balance") if not frame.empty else [],
        "overall_income": float(overall[0]),
        "overall_expense": float(overall[1]),
        "overall_balance": float(overall[2]),
        "overall_income_change": round(float(overall[3]), 2),
        "overall_expense_change": round(float(overall[4]), 2),
    }


def search_term(db: Session, user_id: str, q: Optional[str]) -> List[dict]:
    if not q or not q.strip():
        raise HTTPException(status_code=400, detail="Search query is required")

    pattern = f"%{q.strip()}%"
    conditions = [
        Transaction.text.ilike(pattern),
        Transaction.transfer.ilike(pattern),
        Category.name.ilike(pattern),
    ]
    try:
        conditions.append(Transaction.amount == float(q))
    except ValueError:
        pass

    rows = (
        db.query(Transaction, Category.name)
        .outerjoin(Category, Category.id == Transaction.category)
        .filter(Transaction.owner == user_id, or_(*conditions))
        .order_by(Transaction.created_at.desc())
        .limit(20)
        .all()
    )
    return [
        {
            "id": t.id,
            "created_at": iso(t.created_at),
            "updated_at": iso(t.updated_at),
            "text": t.text,
            "amount": t.amount,
            "is_income": t.is_income,
            "transfer": t.transfer,
            "account": t.account,
            "category_name": category_name,
        }
        for t, category_name in rows
    ]


def _period_totals(db: Session, account_id: str, start, end):
    income, expense = (
        db.query(income_sum(), expense_sum())
        .filter(
            Transaction.account == account_id,
            Transaction.created_at >= start,
            Transaction.created_at <= end,
        )
        .one()
    )
    income, expense = float(income), float(expense)
    return income, expense, income - expense


def _change_vs_previous(previous: float, current: float) -> float:
    # An empty previous period counts as a full 100% change when anything happened since
    if not previous:
        return 100.0 if current > 0 else 0.0
    return round(calculate_percentage_change(previous, current), 2)


def custom_analytics(db: Session, account_id: str, user_id: str, duration: Optional[str]) -> dict:
    require_accessible(db, account_id, user_id)

    start, end = get_interval(duration, db, user_id)
    prev_start, prev_end = get_previous_interval(start, end)

    income, expense, balance = _period_totals(db, account_id, start, end)
    p_income, p_expense, p_balance = _period_totals(db, account_id, prev_start, prev_end)

    return {
        "income": income,
        "expense": expense,
        "balance": balance,
        "balance_percentage_change": _change_vs_previous(p_balance, balance),
        "income_percentage_change": _change_vs_previous(p_income, income),
        "expense_percentage_change": _change_vs_previous(p_expense, expense),
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
    }
