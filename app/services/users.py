# app/services/users.py
#
# Signup, login and the rest of the user lifecycle.

from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session
import structlog

from app import config
from app.services import mailer
from app.services.analytics import create_opening_analytics
from app.services.categories import ensure_category
from app.services.security import create_access_token, hash_password, verify_password, verify_token
from models import Account, User

logger = structlog.get_logger(__name__)

GENERIC_RESET_MESSAGE = (
    "If a user with that email exists and is active, a password reset link has been sent."
)


def public_user(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "profile_pic": user.profile_pic,
        "role": user.role,
        "is_active": user.is_active,
        "preferred_currency": user.preferred_currency,
        "last_login_at": user.last_login_at.isoformat() if user.last_login_at else None,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def signup(db: Session, name: str, email: str, password: str) -> dict:
    """
    Create the user together with a default account, its analytics row and a
    "Default" category, all in one commit. The welcome email goes out after
    the commit and never fails the signup.
    """
    name = name.strip()
    email = normalize_email(email)

    if get_by_email(db, email):
        raise HTTPException(status_code=409, detail="User already exists!")

    user = User(name=name, email=email, password=hash_password(password))
    db.add(user)
    db.flush()

    account = Account(
        name=f"{name}'s Account",
        owner=user.id,
        balance=0.0,
        currency=config.DEFAULT_CURRENCY,
        is_default=True,
    )
    db.add(account)
    db.flush()

    create_opening_analytics(db, account.id, user.id, 0.0)
    ensure_category(db, user.id, "Default")

    db.commit()
    logger.info("user_signed_up", user_id=user.id)

    mailer.send_welcome(name, email)
    return {"message": "User created successfully!", "user_id": user.id}


def login(db: Session, email: str, password: str) -> dict:
    user = get_by_email(db, email)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User account is inactive.")
    if user.is_social:
        raise HTTPException(status_code=400, detail="Please log in using your social account provider.")
    if not verify_password(password, user.password):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_access_token({"id": user.id, "email": user.email})
    user.token = token
    user.last_login_at = datetime.now()
    db.commit()

    logger.info("user_logged_in", user_id=user.id)
    return {
        "token": token,
        "user": {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "profile": user.profile_pic,
        },
    }


def forgot_password(db: Session, email: str) -> dict:
    if not email or not email.strip():
        raise HTTPException(status_code=400, detail="Email is required")

    user = get_by_email(db, email)
    if user is not None and user.is_active:
        token = create_access_token(
            {"id": user.id, "email": user.email},
            expires_minutes=config.RESET_TOKEN_EXPIRES_MINUTES,
        )
        user.reset_password_token = token
        db.commit()
        mailer.send_forgot_password(user.name, user.email, token)
    else:
        logger.warning("password_reset_unknown_or_inactive", email=normalize_email(email))

    return {"message": GENERIC_RESET_MESSAGE}


def reset_password(db: Session, token: str, password: str) -> dict:
    if not token or not password:
        raise HTTPException(status_code=400, detail="Password and reset password token are required")
    if len(password) < 8:
        raise HTTPException(status_code=400, detail="Password must be at least 8 characters long")

    payload = verify_token(token)
    if not payload or not isinstance(payload.get("email"), str):
        raise HTTPException(status_code=401, detail="Invalid or expired reset password token.")

    user = get_by_email(db, payload["email"])
    if user is None or not user.is_active or user.reset_password_token != token:
        raise HTTPException(status_code=400, detail="Reset token mismatch, already used, or user inactive.")

    user.password = hash_password(password)
    user.reset_password_token = None
    db.commit()
    return {"message": "Password reset successfully!"}


def _check_currency(currency: str) -> str:
    code = (currency or "").strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise HTTPException(status_code=400, detail="Invalid preferred currency (must be 3 letters).")
    return code


def update_user(db: Session, user: User, name: Optional[str] = None, preferred_currency: Optional[str] = None) -> dict:
    changed = False

    if name is not None:
        name = name.strip()
        if len(name) < 3:
            raise HTTPException(status_code=400, detail="Name must be at least 3 characters long")
        user.name = name
        changed = True

    if preferred_currency is not None:
        user.preferred_currency = _check_currency(preferred_currency)
        changed = True

    if not changed:
        raise HTTPException(status_code=400, detail="No valid update fields provided")

    db.commit()
    db.refresh(user)
    return {"message": "User updated successfully", "user": public_user(user)}


def get_preferences(user: User) -> dict:
    return {"preferred_currency": user.preferred_currency}


def update_preferences(db: Session, user: User, preferred_currency: str) -> dict:
    user.preferred_currency = _check_currency(preferred_currency)
    db.commit()
    return {"message": "User preferences updated successfully"}


def logout(db: Session, user: User) -> dict:
    user.token = None
    db.commit()
    return {"message": "User logged out successfully!"}
