# app/services/invitations.py
#
# Email invitations for people who do not have an account yet.
# Lifecycle: pending -> accepted, or pending -> expired after 24 hours.

from datetime import datetime, timedelta

from fastapi import HTTPException
from sqlalchemy.orm import Session
import structlog

from app import config
from app.services import mailer
from app.services.common import to_dict
from app.services.security import random_token
from app.services.users import get_by_email, normalize_email
from models import Invitation, User

logger = structlog.get_logger(__name__)


def create_invitation(db: Session, inviter: User, email: str, now: datetime | None = None) -> dict:
    now = now or datetime.now()
    email = normalize_email(email)

    if get_by_email(db, email):
        raise HTTPException(status_code=400, detail="User with this email already exists.")

    invitation = db.query(Invitation).filter(Invitation.invitee_email == email).first()
    if invitation is not None and invitation.status == "pending" and invitation.expires_at > now:
        raise HTTPException(status_code=409, detail="Invitation already sent to this email and is pending.")

    token = random_token(32)
    expires_at = now + timedelta(hours=config.INVITATION_EXPIRES_HOURS)

    if invitation is None:
        invitation = Invitation(invitee_email=email)
        db.add(invitation)

    # An expired (or stale accepted) invitation for the same address is reissued
    invitation.inviter_id = inviter.id
    invitation.token = token
    invitation.status = "pending"
    invitation.expires_at = expires_at
    db.commit()
    db.refresh(invitation)

    logger.info("invitation_created", inviter_id=inviter.id, invitation_id=invitation.id)
    mailer.send_invitation(email, inviter.name or "Someone", token, expires_at.strftime("%Y-%m-%d %H:%M"))

    return {"message": "Invitation sent successfully.", "invitation": to_dict(invitation, exclude=("token",))}


def verify_invitation(db: Session, token: str, now: datetime | None = None) -> Invitation:
    now = now or datetime.now()
    invitation = db.query(Invitation).filter(Invitation.token == token).first()

    if invitation is None:
        raise HTTPException(status_code=404, detail="Invalid or non-existent invitation token.")
    if invitation.status == "accepted":
        raise HTTPException(status_code=409, detail="This invitation has already been accepted.")
    if invitation.status == "expired" or now > invitation.expires_at:
        if invitation.status != "expired":
            invitation.status = "expired"
            db.commit()
        raise HTTPException(status_code=410, detail="This invitation has expired.")

    return invitation


def describe(db: Session, invitation: Invitation) -> dict:
    inviter = db.query(User).filter(User.id == invitation.inviter_id).first()
    return {
        "email": invitation.invitee_email,
        "inviter_name": inviter.name if inviter else None,
        "expires_at": invitation.expires_at.isoformat(),
        "status": invitation.status,
    }


def accept_invitation(db: Session, token: str, email: str, now: datetime | None = None) -> dict:
    invitation = verify_invitation(db, token, now)

    if invitation.invitee_email != normalize_email(email):
        raise HTTPException(status_code=400, detail="Email mismatch for this invitation token.")

    invitation.status = "accepted"
    db.commit()
    return {"message": "Invitation accepted successfully."}
