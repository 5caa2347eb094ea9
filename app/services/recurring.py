# app/services/recurring.py
#
# Turns recurring transaction templates into real transactions when they
# fall due. A template is a transaction row with recurring=True; its
# instances are plain copies (recurring=False) with the same text, amount,
# direction, account, category and transfer.

from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import structlog

from app.services.dates import recurrence_step, start_of_day
from app.services.transactions import create_transaction
from models import RECURRENCE_TYPES, Transaction

logger = structlog.get_logger(__name__)


def active_templates(db: Session, now: datetime, expenses_only: bool = False):
    """Recurring templates whose end date (if any) is still in the future."""
    query = db.query(Transaction).filter(
        Transaction.recurring.is_(True),
        or_(Transaction.recurrence_end_date.is_(None), Transaction.recurrence_end_date > now),
    )
    if expenses_only:
        query = query.filter(Transaction.is_income.is_(False))
    return query.all()


def last_instance_at(db: Session, template: Transaction) -> Optional[datetime]:
    """created_at of the newest generated copy of `template`, if any."""
    query = db.query(Transaction.created_at).filter(
        Transaction.owner == template.owner,
        Transaction.account == template.account,
        Transaction.text == template.text,
        Transaction.amount == template.amount,
        Transaction.is_income.is_(template.is_income),
        Transaction.recurring.is_(False),
    )
    if template.category:
        query = query.filter(Transaction.category == template.category)
    if template.transfer:
        query = query.filter(Transaction.transfer == template.transfer)
    row = query.order_by(Transaction.created_at.desc()).first()
    return row[0] if row else None


def next_due_date(template: Transaction, last_at: Optional[datetime]) -> Optional[datetime]:
    """
    Start of the day one recurrence step after the last instance (or after
    the template itself when nothing was generated yet). None for an
    unknown recurrence type.
    """
    if template.recurrence_type not in RECURRENCE_TYPES:
        return None
    base = last_at or template.created_at
    return start_of_day(base + recurrence_step(template.recurrence_type))


def generate_due_transactions(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Create at most one instance per active template whose next due date is
    today or earlier and before the template's end date.
    """
    now = now or datetime.now()
    today = start_of_day(now)
    generated = skipped = errors = 0

    templates = active_templates(db, now)
    logger.info("recurring_job_started", templates=len(templates))

    for template in templates:
        due = next_due_date(template, last_instance_at(db, template))
        if due is None:
            logger.warning("recurring_invalid_type", template_id=template.id, recurrence_type=template.recurrence_type)
            skipped += 1
            continue

        if due > today:
            skipped += 1
            continue

        if template.recurrence_end_date is not None and due >= template.recurrence_end_date:
            logger.info("recurring_past_end_date", template_id=template.id, due=due.date().isoformat())
            skipped += 1
            continue

        try:
            create_transaction(
                db,
                template.owner,
                {
                    "text": template.text,
                    "amount": template.amount,
                    "is_income": template.is_income,
                    "transfer": template.transfer,
                    "category": template.category,
                    "account": template.account,
                    "currency": template.currency,
                    "created_at": due,
                    "recurring": False,
                },
                bypass_owner_check=True,
            )
            generated += 1
            logger.info("recurring_generated", template_id=template.id, due=due.date().isoformat())
        except (HTTPException, SQLAlchemyError) as exc:
            db.rollback()
            errors += 1
            logger.error("recurring_generation_failed", template_id=template.id, error=str(exc))

    logger.info("recurring_job_finished", generated=generated, skipped=skipped, errors=errors)
    return {"generated": generated, "skipped": skipped, "errors": errors}
