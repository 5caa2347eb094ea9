# app/services/common.py
#
# Small helpers shared by the resource services: row serialization,
# pagination and sort handling.

import math
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy import inspect
from sqlalchemy.orm import Query


def to_dict(row, exclude: Iterable[str] = ()) -> Dict[str, Any]:
    """Column values of an ORM row; dates become ISO strings."""
    skip = set(exclude)
    out: Dict[str, Any] = {}
    for attr in inspect(row).mapper.column_attrs:
        if attr.key in skip:
            continue
        value = getattr(row, attr.key)
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        out[attr.key] = value
    return out


def iso(value: Optional[Any]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def check_pagination(page: int, page_size: int, max_size: int = 100) -> None:
    if page < 1:
        raise HTTPException(status_code=400, detail="Invalid page number.")
    if page_size < 1 or page_size > max_size:
        raise HTTPException(status_code=400, detail=f"Invalid page size (1-{max_size}).")


def check_sort_order(sort_order: str) -> str:
    order = (sort_order or "desc").lower()
    if order not in ("asc", "desc"):
        raise HTTPException(status_code=400, detail="Invalid sort order (asc/desc).")
    return order


def pagination_meta(total: int, page: int, page_size: int) -> Dict[str, int]:
    return {
        "total": total,
        "total_pages": math.ceil(total / page_size) if page_size else 0,
        "page": page,
        "limit": page_size,
    }


def paginate(query: Query, page: int, page_size: int) -> Tuple[List[Any], Dict[str, int]]:
    """Apply LIMIT/OFFSET to `query` and return (rows, pagination metadata)."""
    total = query.order_by(None).count()
    rows = query.limit(page_size).offset(page_size * (page - 1)).all()
    return rows, pagination_meta(total, page, page_size)


def ordered(query: Query, column, sort_order: str) -> Query:
    return query.order_by(column.asc() if sort_order == "asc" else column.desc())
