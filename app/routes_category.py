# routes_category.py

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.deps import get_current_user, get_db
from app.schemas import CategoryIn
from app.services import categories
from models import User

router = APIRouter(prefix="/category", tags=["category"])


@router.get("/")
def list_categories(
    page: int = Query(1),
    page_size: int = Query(10),
    q: str = Query(""),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return categories.list_categories(db, user.id, page, page_size, q, sort_by, sort_order)


@router.post("/", status_code=201)
def create_category(body: CategoryIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return categories.create_category(db, user.id, body.name)


@router.put("/{category_id}")
def update_category(
    category_id: str,
    body: CategoryIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return categories.update_category(db, category_id, user.id, body.name)


@router.delete("/{category_id}")
def delete_category(category_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return categories.delete_category(db, category_id, user.id)
