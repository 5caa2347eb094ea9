# app/deps.py
# Role: Shared FastAPI dependencies.
#       Provides the standard SQLAlchemy database session dependency and the
#       bearer-token authentication dependency used by every private route.

"""
Shared dependencies for the expense tracker API.
"""

from typing import Generator

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from db import SessionLocal
from models import User
from app.services.security import verify_token

# -------------------------------------------------------------------
# Database dependency
# -------------------------------------------------------------------

def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that yields a database session and ensures it is closed.

    Typical usage in routes:
        db: Session = Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# -------------------------------------------------------------------
# Authentication
# -------------------------------------------------------------------

def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Unauthorized: missing bearer token.")
    return token.strip()


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Resolve the caller from `Authorization: Bearer <jwt>`.

    The token must verify, name an existing active user, and be the token
    stored on that user (logout clears it).
    """
    token = _bearer_token(request)
    payload = verify_token(token)
    if not payload or not payload.get("id"):
        raise HTTPException(status_code=401, detail="Unauthorized: invalid or expired token.")

    user = db.query(User).filter(User.id == payload["id"]).first()
    if user is None or user.token != token:
        raise HTTPException(status_code=401, detail="Unauthorized: session is no longer valid.")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Unauthorized: account is deactivated.")

    return user
