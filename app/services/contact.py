# app/services/contact.py
#
# Public contact form: the message is mailed to the support inbox with the
# sender as Reply-To.

from fastapi import HTTPException
import structlog

from app import config
from app.services import mailer

logger = structlog.get_logger(__name__)


def submit_contact_form(name: str, email: str, subject: str, message: str) -> dict:
    if not config.CONTACT_EMAIL:
        logger.warning("contact_inbox_not_configured", sender=email)
        raise HTTPException(status_code=503, detail="Email service is not configured on the server.")

    if mailer.send_contact_message(config.CONTACT_EMAIL, name.strip(), email, subject.strip(), message.strip()):
        logger.info("contact_message_sent", sender=email)
        return {"success": True, "message": "Your message has been sent successfully!"}

    # Local development without SMTP still accepts the form
    if not config.SMTP_HOST and not config.IS_PRODUCTION:
        logger.info("contact_message_simulated", sender=email, subject=subject)
        return {"success": True, "message": "Message received (simulated)."}

    logger.error("contact_message_failed", sender=email)
    raise HTTPException(status_code=503, detail="Failed to send message. Please try again later.")
