# app/services/goals.py
#
# Saving goals: a target amount, an optional target date and the amount
# put aside so far.

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session
import structlog

from app.services.common import check_pagination, check_sort_order, ordered, paginate, to_dict
from models import SavingGoal

logger = structlog.get_logger(__name__)

SORTABLE = {
    "created_at": SavingGoal.created_at,
    "name": SavingGoal.name,
    "target_amount": SavingGoal.target_amount,
    "saved_amount": SavingGoal.saved_amount,
    "target_date": SavingGoal.target_date,
}


def _positive(value: Any, message: str) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=message)
    if amount <= 0:
        raise HTTPException(status_code=400, detail=message)
    return amount


def _target_date(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if hasattr(value, "year") and hasattr(value, "month"):
        return datetime(value.year, value.month, value.day)
    try:
        return datetime.fromisoformat(str(value).replace("Z", ""))
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid target date format.")


def _owned_goal(db: Session, goal_id: str, user_id: str) -> SavingGoal:
    goal = db.query(SavingGoal).filter(SavingGoal.id == goal_id, SavingGoal.user_id == user_id).first()
    if goal is None:
        raise HTTPException(status_code=404, detail="Saving goal not found or access denied.")
    return goal


def list_goals(
    db: Session,
    user_id: str,
    page: int = 1,
    page_size: int = 10,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    check_pagination(page, page_size)
    order = check_sort_order(sort_order)

    query = db.query(SavingGoal).filter(SavingGoal.user_id == user_id)
    query = ordered(query, SORTABLE.get(sort_by, SavingGoal.created_at), order)
    rows, pagination = paginate(query, page, page_size)
    return {"data": [to_dict(g) for g in rows], "pagination": pagination}


def create_goal(
    db: Session,
    user_id: str,
    name: str,
    target_amount: float,
    target_date: Any = None,
) -> dict:
    name = (name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Goal name cannot be empty.")
    target = _positive(target_amount, "Invalid target amount.")

    goal = SavingGoal(
        user_id=user_id,
        name=name,
        target_amount=target,
        saved_amount=0.0,
        target_date=_target_date(target_date),
    )
    db.add(goal)
    db.commit()
    db.refresh(goal)

    logger.info("goal_created", user_id=user_id, goal_id=goal.id)
    return to_dict(goal)


def update_goal(db: Session, goal_id: str, user_id: str, payload: Dict[str, Any]) -> dict:
    """
    Partial update. A key present with a null target_date clears the date;
    absent keys are left unchanged.
    """
    goal = _owned_goal(db, goal_id, user_id)
    changed = False

    if payload.get("name") is not None:
        name = payload["name"].strip()
        if not name:
            raise HTTPException(status_code=400, detail="Goal name cannot be empty.")
        goal.name = name
        changed = True

    if payload.get("target_amount") is not None:
        goal.target_amount = _positive(payload["target_amount"], "Invalid target amount.")
        changed = True

    if payload.get("saved_amount") is not None:
        try:
            saved = float(payload["saved_amount"])
        except (TypeError, ValueError):
            raise HTTPException(status_code=400, detail="Invalid saved amount.")
        if saved < 0:
            raise HTTPException(status_code=400, detail="Invalid saved amount.")
        goal.saved_amount = saved
        changed = True

    if "target_date" in payload:
        goal.target_date = _target_date(payload["target_date"])
        changed = True

    if not changed:
        return {"message": "No changes provided.", "id": goal_id}

    db.commit()
    return {"message": "Goal updated successfully!", "id": goal_id}


def add_amount(db: Session, goal_id: str, user_id: str, amount: float) -> dict:
    amount = _positive(amount, "Invalid amount to add. Must be positive.")
    goal = _owned_goal(db, goal_id, user_id)

    goal.saved_amount = (goal.saved_amount or 0.0) + amount
    db.commit()

    logger.info("goal_amount_added", user_id=user_id, goal_id=goal_id, amount=amount)
    return {"message": "Amount added successfully!", "saved_amount": goal.saved_amount}


def withdraw_amount(db: Session, goal_id: str, user_id: str, amount: float) -> dict:
    amount = _positive(amount, "Invalid amount to withdraw. Must be positive.")
    goal = _owned_goal(db, goal_id, user_id)

    if amount > (goal.saved_amount or 0.0):
        raise HTTPException(status_code=400, detail="Withdrawal amount exceeds saved amount.")

    goal.saved_amount = (goal.saved_amount or 0.0) - amount
    db.commit()

    logger.info("goal_amount_withdrawn", user_id=user_id, goal_id=goal_id, amount=amount)
    return {"message": "Amount withdrawn successfully!", "saved_amount": goal.saved_amount}


def delete_goal(db: Session, goal_id: str, user_id: str) -> dict:
    goal = _owned_goal(db, goal_id, user_id)
    db.delete(goal)
    db.commit()
    return {"message": "Saving goal deleted successfully!", "id": goal_id}
