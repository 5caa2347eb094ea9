# routes_auth.py
"""
Signup, login, password reset and the current user's profile/preferences.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.deps import get_current_user, get_db
from app.schemas import (
    ForgotPasswordIn,
    LoginIn,
    PreferencesIn,
    ResetPasswordIn,
    SignupIn,
    UserUpdateIn,
)
from app.services import invitations, users
from models import User

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return {"user": users.public_user(user)}


@router.post("/login")
def login(body: LoginIn, db: Session = Depends(get_db)):
    return users.login(db, body.email, body.password)


@router.post("/signup", status_code=201)
def signup(body: SignupIn, db: Session = Depends(get_db)):
    """
    Create an account. With `invite_token` the invitation must be valid for
    the same email and is marked accepted once the user exists.
    """
    if body.invite_token:
        invitation = invitations.verify_invitation(db, body.invite_token)
        if invitation.invitee_email != users.normalize_email(body.email):
            raise HTTPException(status_code=400, detail="Email mismatch for this invitation token.")

    result = users.signup(db, body.name, body.email, body.password)

    if body.invite_token:
        invitations.accept_invitation(db, body.invite_token, body.email)
    return result


@router.post("/forgot-password")
def forgot_password(body: ForgotPasswordIn, db: Session = Depends(get_db)):
    return users.forgot_password(db, body.email)


@router.post("/reset-password")
def reset_password(body: ResetPasswordIn, db: Session = Depends(get_db)):
    return users.reset_password(db, body.token, body.password)


@router.put("/update")
def update_user(body: UserUpdateIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return users.update_user(db, user, body.name, body.preferred_currency)


@router.get("/preferences")
def get_preferences(user: User = Depends(get_current_user)):
    return users.get_preferences(user)


@router.put("/preferences")
def update_preferences(body: PreferencesIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return users.update_preferences(db, user, body.preferred_currency)


@router.post("/logout")
def logout(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return users.logout(db, user)
