# routes_root.py
"""
Root / basic endpoints (landing, health check).
"""

from fastapi import APIRouter

router = APIRouter(tags=["root"])


@router.get("/")
def read_root():
    """Landing endpoint; also usable as a liveness check."""
    return {"message": "Expense Tracker API is running"}


@router.get("/hc")
def health_check():
    return {"status": "ok"}
