# routes_invitations.py
"""
Invite people by email; the invitee verifies the token and accepts it
(or passes it to /auth/signup).
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.deps import get_current_user, get_db
from app.schemas import InvitationAcceptIn, InvitationCreateIn
from app.services import invitations
from models import User

router = APIRouter(prefix="/invitation", tags=["invitation"])


@router.post("/", status_code=201)
def create_invitation(body: InvitationCreateIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return invitations.create_invitation(db, user, body.email)


@router.get("/verify/{token}")
def verify_invitation(token: str, db: Session = Depends(get_db)):
    invitation = invitations.verify_invitation(db, token)
    return invitations.describe(db, invitation)


@router.post("/accept")
def accept_invitation(body: InvitationAcceptIn, db: Session = Depends(get_db)):
    return invitations.accept_invitation(db, body.token, body.email)
