# routes_contact.py
"""Public contact form."""

from fastapi import APIRouter

from app.schemas import ContactIn
from app.services import contact

router = APIRouter(prefix="/contact", tags=["contact"])


@router.post("/")
def submit_contact_form(body: ContactIn):
    return contact.submit_contact_form(body.name, body.email, body.subject, body.message)
