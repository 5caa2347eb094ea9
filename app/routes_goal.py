# routes_goal.py

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.deps import get_current_user, get_db
from app.schemas import GoalAmountIn, GoalCreateIn, GoalUpdateIn
from app.services import goals
from models import User

router = APIRouter(prefix="/goal", tags=["goal"])


@router.get("/all")
def list_goals(
    page: int = Query(1),
    page_size: int = Query(10),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return goals.list_goals(db, user.id, page, page_size, sort_by, sort_order)


@router.post("/", status_code=201)
def create_goal(body: GoalCreateIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return goals.create_goal(db, user.id, body.name, body.target_amount, body.target_date)


@router.put("/{goal_id}")
def update_goal(
    goal_id: str,
    body: GoalUpdateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    # exclude_unset keeps "target_date": null (clear) apart from an absent key
    return goals.update_goal(db, goal_id, user.id, body.model_dump(exclude_unset=True))


@router.post("/{goal_id}/add")
def add_amount(
    goal_id: str,
    body: GoalAmountIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return goals.add_amount(db, goal_id, user.id, body.amount)


@router.post("/{goal_id}/withdraw")
def withdraw_amount(
    goal_id: str,
    body: GoalAmountIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return goals.withdraw_amount(db, goal_id, user.id, body.amount)


@router.delete("/{goal_id}")
def delete_goal(goal_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return goals.delete_goal(db, goal_id, user.id)
