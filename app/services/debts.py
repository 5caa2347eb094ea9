# app/services/debts.py
#
# Money lent to or borrowed from another user, plus the interest and
# repayment-schedule calculators behind the /interest endpoints.

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from dateutil.relativedelta import relativedelta
from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session
import structlog

from app.services.common import check_pagination, check_sort_order, iso, ordered, pagination_meta
from app.services.dates import get_interval, parse_custom_range
from models import DEBT_TYPES, INTEREST_TYPES, Account, Debt, User

logger = structlog.get_logger(__name__)

DURATION_UNITS = ("year", "month", "week", "day")

# Installment spacing for the even-split schedule
SCHEDULE_STEPS = {
    "day": relativedelta(days=1),
    "daily": relativedelta(days=1),
    "week": relativedelta(weeks=1),
    "weekly": relativedelta(weeks=1),
    "year": relativedelta(years=1),
    "yearly": relativedelta(years=1),
}


# -------------------------------------------------------------------
# Calculators
# -------------------------------------------------------------------

def duration_in_years(duration: Union[str, float, int, None], frequency: Any = None) -> float:
    """
    Length of a loan in years.

    `duration` is either "YYYY-MM-DD,YYYY-MM-DD" (days / 365.25), a unit
    ("year", "month", "week", "day") counted `frequency` times, or a plain
    number of years.
    """
    if isinstance(duration, (int, float)) and not isinstance(duration, bool):
        return float(duration)

    if isinstance(duration, str) and "," in duration:
        parsed = parse_custom_range(duration)
        if parsed is None or parsed[0] >= parsed[1]:
            raise HTTPException(
                status_code=400,
                detail="Invalid date range format or start date is not before end date",
            )
        return (parsed[1] - parsed[0]).days / 365.25

    if isinstance(duration, str) and duration in DURATION_UNITS:
        try:
            count = float(frequency)
        except (TypeError, ValueError):
            count = 0.0
        if count <= 0:
            raise HTTPException(
                status_code=400,
                detail="Frequency number is required when duration is a unit (year, month, etc.).",
            )
        return {
            "year": count,
            "month": count / 12,
            "week": count * 7 / 365.25,
            "day": count / 365.25,
        }[duration]

    if isinstance(duration, str):
        try:
            return float(duration)
        except ValueError:
            pass
    raise HTTPException(status_code=400, detail="Invalid or missing duration.")


def calculate_interest(
    amount: float,
    percentage: float,
    duration: Union[str, float, int, None],
    interest_type: str,
    compounding_frequency: int = 12,
    frequency: Any = None,
) -> Dict[str, float]:
    """
    Simple: I = P * r/100 * t. Compound: A = P * (1 + r/100/n) ** (n * t).
    Both results are rounded to 2 decimals.
    """
    try:
        principal = float(amount)
        rate = float(percentage)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid amount or percentage.")
    if principal <= 0 or rate < 0:
        raise HTTPException(status_code=400, detail="Invalid amount or percentage.")
    if interest_type not in INTEREST_TYPES:
        raise HTTPException(status_code=400, detail="Invalid interest type (simple/compound).")
    if interest_type == "compound" and (not compounding_frequency or compounding_frequency <= 0):
        raise HTTPException(
            status_code=400,
            detail="Compounding frequency must be a positive number for compound interest.",
        )

    years = duration_in_years(duration, frequency)

    if interest_type == "simple":
        interest = principal * (rate / 100) * years
        total = principal + interest
    else:
        n = compounding_frequency
        total = principal * (1 + rate / 100 / n) ** (n * years)
        interest = total - principal

    return {"interest": round(interest, 2), "total_amount": round(total, 2)}


def _installment_status(is_paid: bool, when: datetime, today: datetime) -> str:
    if is_paid:
        return "settled"
    return "due" if today > when else "upcoming"


def _installment_count(debt: Debt) -> int:
    if debt.frequency:
        try:
            count = int(float(debt.frequency))
        except ValueError:
            count = 0
        if count > 0:
            return count
        raise HTTPException(status_code=400, detail="Invalid frequency for schedule generation.")

    # Date-range debts have no frequency: one installment per whole month
    span = relativedelta(debt.due_date, debt.created_at.date())
    return max(1, span.years * 12 + span.months)


def _row(when: datetime, status: str, installment: float, principal: float, interest: float,
         cum_principal: float, cum_interest: float, remaining: float) -> dict:
    return {
        "date": when.isoformat(),
        "status": status,
        "installment_amount": round(installment, 2),
        "principal_for_period": round(principal, 2),
        "interest_for_period": round(interest, 2),
        "cumulative_principal_paid": round(cum_principal, 2),
        "cumulative_interest_paid": round(cum_interest, 2),
        "remaining_principal": round(max(0.0, remaining), 2),
    }


def _compound_schedule(debt: Debt, installments: int, today: datetime) -> Optional[List[dict]]:
    """Monthly EMI schedule; None when the EMI does not compute."""
    i = debt.percentage / 1200
    growth = (1 + i) ** installments
    if growth == 1:
        return None
    emi = debt.amount * i * growth / (growth - 1)

    schedule = []
    remaining = debt.amount
    cum_principal = cum_interest = 0.0
    for k in range(1, installments + 1):
        interest = remaining * i
        principal = emi - interest
        if k == installments:
            # Last installment clears what is left after rounding
            principal = remaining
        remaining -= principal
        cum_principal += principal
        cum_interest += interest

        when = debt.created_at + relativedelta(months=k)
        schedule.append(
            _row(when, _installment_status(debt.is_paid, when, today), emi, principal, interest,
                 cum_principal, cum_interest, remaining)
        )
    return schedule


def _simple_schedule(debt: Debt, installments: int, today: datetime) -> List[dict]:
    """Even principal split with simple interest over created_at..due_date."""
    start = debt.created_at.date()
    total_interest = 0.0
    if debt.due_date > start and debt.percentage > 0:
        total_interest = calculate_interest(
            debt.amount,
            debt.percentage,
            f"{start.isoformat()},{debt.due_date.isoformat()}",
            "simple",
        )["interest"]

    principal = debt.amount / installments
    interest = total_interest / installments
    step = SCHEDULE_STEPS.get(debt.duration or "", relativedelta(months=1))

    schedule = []
    cum_principal = cum_interest = 0.0
    for k in range(1, installments + 1):
        cum_principal += principal
        cum_interest += interest
        when = debt.created_at + step * k
        schedule.append(
            _row(when, _installment_status(debt.is_paid, when, today), principal + interest, principal,
                 interest, cum_principal, cum_interest, debt.amount - cum_principal)
        )
    return schedule


def amortization_schedule(db: Session, debt_id: str, user_id: str, now: Optional[datetime] = None) -> dict:
    """
    Installment plan for a debt the user created or is party to.

    Compound debts with a positive rate get a monthly EMI plan; everything
    else is an even split with simple interest. The response ends with the
    totals of principal and interest over the plan.
    """
    today = now or datetime.now()
    debt = (
        db.query(Debt)
        .filter(Debt.id == debt_id, or_(Debt.created_by == user_id, Debt.user_id == user_id))
        .first()
    )
    if debt is None:
        raise HTTPException(status_code=404, detail="Debt record not found or access denied.")
    if debt.due_date is None or debt.created_at is None:
        raise HTTPException(
            status_code=400,
            detail="Debt record is missing necessary details for schedule generation.",
        )

    installments = _installment_count(debt)

    schedule = None
    if debt.interest_type == "compound" and debt.percentage > 0:
        schedule = _compound_schedule(debt, installments, today)
    if schedule is None:
        schedule = _simple_schedule(debt, installments, today)

    return {
        "schedule": schedule,
        "totals": {
            "total_principal_paid": round(sum(p["principal_for_period"] for p in schedule), 2),
            "total_interest_paid": round(sum(p["interest_for_period"] for p in schedule), 2),
            "installments": len(schedule),
        },
    }


# -------------------------------------------------------------------
# Debts
# -------------------------------------------------------------------

def _due_date(duration: Optional[str], frequency: Any, today: date) -> Optional[date]:
    if not duration:
        return None
    if "," in duration:
        parsed = parse_custom_range(duration)
        if parsed is None or parsed[0] >= parsed[1]:
            raise HTTPException(status_code=400, detail="Invalid date range format or order.")
        return parsed[1]
    if duration in DURATION_UNITS:
        try:
            count = int(float(frequency))
        except (TypeError, ValueError):
            count = 0
        if count <= 0:
            raise HTTPException(
                status_code=400,
                detail="Frequency (number of units) required for duration units.",
            )
        return today + {
            "year": relativedelta(years=count),
            "month": relativedelta(months=count),
            "week": relativedelta(weeks=count),
            "day": relativedelta(days=count),
        }[duration]
    raise HTTPException(status_code=400, detail="Invalid duration format.")


def serialize(debt: Debt, account: Optional[Account] = None, user: Optional[User] = None) -> dict:
    return {
        "id": debt.id,
        "amount": debt.amount,
        "premium_amount": debt.premium_amount,
        "description": debt.description,
        "due_date": iso(debt.due_date),
        "duration": debt.duration,
        "percentage": debt.percentage,
        "frequency": debt.frequency,
        "is_paid": debt.is_paid,
        "type": debt.type,
        "interest_type": debt.interest_type,
        "created_by": debt.created_by,
        "user_id": debt.user_id,
        "created_at": iso(debt.created_at),
        "updated_at": iso(debt.updated_at),
        "account": {"id": account.id, "name": account.name, "currency": account.currency} if account else debt.account,
        "user": (
            {"id": user.id, "name": user.name, "email": user.email, "profile_pic": user.profile_pic}
            if user
            else None
        ),
    }


def create_debt(db: Session, user_id: str, payload: Dict[str, Any], now: Optional[datetime] = None) -> dict:
    now = now or datetime.now()

    try:
        amount = float(payload.get("amount"))
    except (TypeError, ValueError):
        amount = 0.0
    if amount <= 0:
        raise HTTPException(status_code=400, detail="Invalid amount.")

    percentage = float(payload.get("percentage") or 0.0)
    if percentage < 0:
        raise HTTPException(status_code=400, detail="Invalid percentage.")

    debt_type = payload.get("type")
    if debt_type not in DEBT_TYPES:
        raise HTTPException(status_code=400, detail="Invalid debt type (given/taken).")
    interest_type = payload.get("interest_type") or "simple"
    if interest_type not in INTEREST_TYPES:
        raise HTTPException(status_code=400, detail="Invalid interest type (simple/compound).")

    duration = payload.get("duration") or None
    frequency = payload.get("frequency")
    due_date = _due_date(duration, frequency, now.date())
    if duration in DURATION_UNITS:
        frequency = str(int(float(frequency)))
    elif duration:
        frequency = None
    elif frequency is not None:
        frequency = str(frequency)

    premium = payload.get("premium_amount")
    if premium is None:
        if duration and percentage > 0:
            premium = calculate_interest(amount, percentage, duration, interest_type, frequency=frequency)["total_amount"]
        else:
            premium = amount
    premium = float(premium)
    if premium < 0:
        raise HTTPException(status_code=400, detail="Invalid premium amount.")

    involved = payload.get("user_id")
    if not involved or db.query(User.id).filter(User.id == involved).first() is None:
        raise HTTPException(status_code=404, detail="Involved user not found.")

    account_id = payload.get("account")
    if account_id:
        owned = db.query(Account.id).filter(Account.id == account_id, Account.owner == user_id).first()
        if owned is None:
            raise HTTPException(status_code=404, detail="Associated account not found or does not belong to you.")

    debt = Debt(
        amount=amount,
        premium_amount=premium,
        created_by=user_id,
        description=payload.get("description"),
        due_date=due_date,
        duration=duration,
        percentage=percentage,
        frequency=frequency,
        is_paid=False,
        user_id=involved,
        type=debt_type,
        interest_type=interest_type,
        account=account_id or None,
        created_at=now,
    )
    db.add(debt)
    db.commit()
    db.refresh(debt)

    logger.info("debt_created", user_id=user_id, debt_id=debt.id, type=debt_type)
    return serialize(debt)


DEBT_SORT = {
    "amount": Debt.amount,
    "premium_amount": Debt.premium_amount,
    "description": Debt.description,
    "created_at": Debt.created_at,
    "due_date": Debt.due_date,
    "percentage": Debt.percentage,
    "is_paid": Debt.is_paid,
    "type": Debt.type,
    "interest_type": Debt.interest_type,
    "account_name": Account.name,
    "user_name": User.name,
}


def list_debts(
    db: Session,
    user_id: str,
    duration: Optional[str] = None,
    q: Optional[str] = None,
    debt_type: Optional[str] = None,
    is_paid: Optional[bool] = None,
    page: int = 1,
    page_size: int = 10,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    """Debts the user created or is the other party of."""
    check_pagination(page, page_size)
    order = check_sort_order(sort_order)

    query = (
        db.query(Debt, Account, User)
        .outerjoin(Account, Account.id == Debt.account)
        .outerjoin(User, User.id == Debt.user_id)
        .filter(or_(Debt.created_by == user_id, Debt.user_id == user_id))
    )

    if duration and duration.strip():
        start, end = get_interval(duration, db, user_id)
        query = query.filter(Debt.created_at >= start, Debt.created_at <= end)

    if q and q.strip():
        pattern = f"%{q.strip()}%"
        search = [Debt.description.ilike(pattern), User.name.ilike(pattern), Account.name.ilike(pattern)]
        try:
            number = float(q)
            search += [Debt.amount == number, Debt.premium_amount == number]
        except ValueError:
            pass
        query = query.filter(or_(*search))

    if debt_type in DEBT_TYPES:
        query = query.filter(Debt.type == debt_type)
    if is_paid is not None:
        query = query.filter(Debt.is_paid.is_(is_paid))

    total = query.order_by(None).count()
    query = ordered(query, DEBT_SORT.get(sort_by, Debt.created_at), order)
    rows = query.limit(page_size).offset(page_size * (page - 1)).all()

    return {
        "data": [serialize(d, a, u) for d, a, u in rows],
        "pagination": pagination_meta(total, page, page_size),
    }


def update_debt(db: Session, debt_id: str, user_id: str, payload: Dict[str, Any]) -> dict:
    """The creator edits details; the creator or the other party may mark paid."""
    debt = db.query(Debt).filter(Debt.id == debt_id).first()
    if debt is None:
        raise HTTPException(status_code=404, detail="Debt record not found.")

    can_edit = debt.created_by == user_id
    can_mark_paid = can_edit or debt.user_id == user_id
    changed = False

    for field in ("description", "duration", "frequency"):
        if payload.get(field) is None:
            continue
        if not can_edit:
            raise HTTPException(status_code=403, detail=f"Permission denied to modify {field}.")
        setattr(debt, field, str(payload[field]))
        changed = True

    if payload.get("is_paid") is not None:
        if not can_mark_paid:
            raise HTTPException(status_code=403, detail="Permission denied to mark this debt as paid.")
        debt.is_paid = bool(payload["is_paid"])
        changed = True

    if not changed:
        return {"message": "No changes provided."}

    db.commit()
    return {"message": "Debt updated successfully"}


def delete_debt(db: Session, debt_id: str, user_id: str) -> dict:
    debt = db.query(Debt).filter(Debt.id == debt_id, Debt.created_by == user_id).first()
    if debt is None:
        raise HTTPException(
            status_code=404,
            detail="Debt record not found or you do not have permission to delete it.",
        )
    db.delete(debt)
    db.commit()
    return {"message": "Debt deleted successfully"}


def mark_paid(db: Session, debt_id: str, user_id: str) -> dict:
    debt = (
        db.query(Debt)
        .filter(Debt.id == debt_id, or_(Debt.created_by == user_id, Debt.user_id == user_id))
        .first()
    )
    if debt is None:
        raise HTTPException(
            status_code=404,
            detail="Debt record not found or you do not have permission to mark it as paid.",
        )
    debt.is_paid = True
    db.commit()
    logger.info("debt_marked_paid", user_id=user_id, debt_id=debt_id)
    return {"message": "Debt marked as paid"}
