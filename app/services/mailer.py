# app/services/mailer.py
#
# Outgoing email.
# Bodies are Jinja2 templates under app/templates/email/, delivery is plain
# SMTP. Sending never raises: failures are logged and reported as False.

import os
import smtplib
from email.message import EmailMessage
from typing import Optional

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape
import structlog

from app import config

logger = structlog.get_logger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "templates")

_env = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(["html"]),
)


def render(template: str, **context) -> str:
    return _env.get_template(f"email/{template}.html").render(**context)


def _deliver(message: EmailMessage) -> None:
    with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=config.HTTP_TIMEOUT) as smtp:
        if config.SMTP_USE_TLS:
            smtp.starttls()
        if config.SMTP_USER:
            smtp.login(config.SMTP_USER, config.SMTP_PASSWORD)
        smtp.send_message(message)


def send_email(to: str, subject: str, template: str, reply_to: Optional[str] = None, **context) -> bool:
    """
    Render `template` with `context` and send it to `to`.

    `reply_to` sets the Reply-To header. Without SMTP_HOST the message is
    only logged (local development).
    """
    try:
        html = render(template, title=context.pop("title", subject), **context)
    except TemplateError as exc:
        logger.error("email_render_failed", to=to, subject=subject, template=template, error=str(exc))
        return False

    if not config.SMTP_HOST:
        logger.info("email_not_sent_smtp_disabled", to=to, subject=subject, template=template)
        return False

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = config.SMTP_FROM
    message["To"] = to
    if reply_to:
        message["Reply-To"] = reply_to
    message.set_content("This message requires an HTML capable email client.")
    message.add_alternative(html, subtype="html")

    try:
        _deliver(message)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("email_send_failed", to=to, subject=subject, error=str(exc))
        return False

    logger.info("email_sent", to=to, subject=subject)
    return True


# -------------------------------------------------------------------
# Message types
# -------------------------------------------------------------------

def send_welcome(username: str, email: str) -> bool:
    return send_email(
        email,
        "Welcome to Expense Tracker!",
        "welcome",
        username=username,
        email=email,
        login_url=f"{config.FRONTEND_URL}/auth/login",
    )


def send_forgot_password(username: str, email: str, token: str) -> bool:
    return send_email(
        email,
        "Expense Tracker - Reset Your Password",
        "forgot_password",
        title="Reset Your Password",
        username=username,
        email=email,
        reset_link=f"{config.FRONTEND_URL}/auth/reset-password?token={token}",
        expires_minutes=config.RESET_TOKEN_EXPIRES_MINUTES,
    )


def send_share_notification(email: str, account_name: str, sharer_name: Optional[str] = None) -> bool:
    return send_email(
        email,
        f"Expense Tracker: Account Shared - {account_name}",
        "share_notification",
        title="An account was shared with you",
        account_name=account_name,
        sharer_name=sharer_name,
    )


def send_budget_alert(
    email: str,
    username: str,
    category_name: str,
    budgeted: float,
    spent: float,
    period: str,
    currency: str,
    alert_type: str,
) -> bool:
    percentage = (spent / budgeted * 100) if budgeted > 0 else 0.0
    if alert_type == "exceeded":
        subject = f"Budget Exceeded: {category_name}"
        title = f"Budget Exceeded for {category_name}"
    else:
        subject = f"Budget Alert: {category_name}"
        title = f"Budget Alert for {category_name}"
    return send_email(
        email,
        subject,
        "budget_alert",
        title=title,
        username=username,
        category_name=category_name,
        budgeted=budgeted,
        spent=spent,
        percentage=percentage,
        period=period,
        currency=currency,
        alert_type=alert_type,
    )


def send_goal_reminder(
    email: str, username: str, goal_name: str, target_date: str, remaining: float, currency: str
) -> bool:
    return send_email(
        email,
        f"Saving Goal Reminder: {goal_name}",
        "goal_reminder",
        title=f"Goal Reminder: {goal_name}",
        username=username,
        goal_name=goal_name,
        target_date=target_date,
        remaining=remaining,
        currency=currency,
    )


def send_bill_reminder(
    email: str, username: str, description: str, amount: float, due_date: str, currency: str
) -> bool:
    return send_email(
        email,
        f"Upcoming Bill Reminder: {description}",
        "bill_reminder",
        title="Upcoming Bill Reminder",
        username=username,
        description=description,
        amount=amount,
        due_date=due_date,
        currency=currency,
    )


def send_invitation(email: str, inviter_name: str, token: str, expires_at: str) -> bool:
    return send_email(
        email,
        f"{inviter_name} invited you to Expense Tracker",
        "invitation",
        title="You're invited",
        username=None,
        inviter_name=inviter_name,
        invite_link=f"{config.FRONTEND_URL}/auth/signup?invite={token}",
        expires_at=expires_at,
    )


def send_contact_message(inbox: str, name: str, email: str, subject: str, message: str) -> bool:
    return send_email(
        inbox,
        f"Expense Tracker: Contact - {subject}",
        "contact",
        reply_to=email,
        title="New Contact Form Submission",
        username=None,
        sender_name=name,
        sender_email=email,
        topic=subject,
        message=message,
    )
