# app/services/categories.py
#
# Per-user transaction categories. Names are unique per owner.

from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from models import Category, Transaction
from app.services.common import check_pagination, check_sort_order, ordered, paginate, to_dict

SORTABLE = {
    "name": Category.name,
    "created_at": Category.created_at,
    "updated_at": Category.updated_at,
}


def find_by_name(db: Session, owner: str, name: str) -> Optional[Category]:
    return db.query(Category).filter(Category.owner == owner, Category.name == name).first()


def ensure_category(db: Session, owner: str, name: str) -> Category:
    """Return the owner's category called `name`, creating it when missing (no commit)."""
    category = find_by_name(db, owner, name)
    if category is None:
        category = Category(name=name, owner=owner)
        db.add(category)
        db.flush()
    return category


def get_owned(db: Session, category_id: str, owner: str, action: str = "access") -> Category:
    category = (
        db.query(Category)
        .filter(Category.id == category_id, Category.owner == owner)
        .first()
    )
    if category is None:
        raise HTTPException(
            status_code=404,
            detail=f"Category not found or you do not have permission to {action} it.",
        )
    return category


def list_categories(
    db: Session,
    owner: str,
    page: int = 1,
    page_size: int = 10,
    q: str = "",
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    check_pagination(page, page_size)
    order = check_sort_order(sort_order)

    query = db.query(Category).filter(Category.owner == owner)
    if q:
        query = query.filter(Category.name.ilike(f"%{q.strip()}%"))
    query = ordered(query, SORTABLE.get(sort_by, Category.created_at), order)

    rows, pagination = paginate(query, page, page_size)
    return {
        "categories": [{"id": c.id, "name": c.name, "owner": c.owner} for c in rows],
        "pagination": pagination,
    }


def create_category(db: Session, owner: str, name: str) -> dict:
    name = name.strip()
    if find_by_name(db, owner, name):
        raise HTTPException(status_code=409, detail=f'Category "{name}" already exists for this user.')

    category = Category(name=name, owner=owner)
    db.add(category)
    db.commit()
    db.refresh(category)
    return to_dict(category)


def update_category(db: Session, category_id: str, owner: str, name: str) -> dict:
    name = name.strip()
    category = get_owned(db, category_id, owner, "edit")

    if name != category.name and find_by_name(db, owner, name):
        raise HTTPException(status_code=409, detail=f'Another category named "{name}" already exists.')

    category.name = name
    db.commit()
    return {"message": "Category updated successfully"}


def delete_category(db: Session, category_id: str, owner: str) -> dict:
    category = get_owned(db, category_id, owner, "delete")

    in_use = (
        db.query(func.count(Transaction.id))
        .filter(Transaction.category == category_id, Transaction.owner == owner)
        .scalar()
        or 0
    )
    if in_use > 0:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete category with associated transactions. Please reassign transactions first.",
        )

    db.delete(category)
    db.commit()
    return {"message": "Category deleted successfully"}
