# app/services/notifications.py
#
# Periodic email notifications: budget alerts, saving-goal reminders and
# upcoming-bill reminders. Each check returns counters for the jobs CLI.

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import structlog

from app import config
from app.services import mailer
from app.services.budgets import spent_in_category
from app.services.dates import end_of_day, month_range, start_of_day
from app.services.recurring import active_templates, last_instance_at, next_due_date
from models import Account, Budget, Category, SavingGoal, User

logger = structlog.get_logger(__name__)


def _currency(user: User) -> str:
    return user.preferred_currency or config.DEFAULT_CURRENCY


def check_budget_alerts(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Email users whose spend in a category reached the alert threshold of
    this month's budget ("approaching") or all of it ("exceeded").
    """
    now = now or datetime.now()
    start, end_exclusive = month_range(now.year, now.month)
    alerted = errors = 0

    rows = (
        db.query(Budget, User, Category)
        .join(User, User.id == Budget.user_id)
        .join(Category, Category.id == Budget.category)
        .filter(Budget.month == now.month, Budget.year == now.year, Budget.amount > 0)
        .all()
    )

    for budget, user, category in rows:
        try:
            spent = spent_in_category(db, budget.user_id, budget.category, start, end_exclusive)
        except SQLAlchemyError as exc:
            errors += 1
            logger.error("budget_alert_failed", budget_id=budget.id, error=str(exc))
            continue

        ratio = spent / budget.amount
        if ratio >= 1:
            alert_type = "exceeded"
        elif ratio >= config.BUDGET_ALERT_THRESHOLD:
            alert_type = "approaching"
        else:
            continue

        mailer.send_budget_alert(
            user.email,
            user.name,
            category.name,
            budget.amount,
            spent,
            now.strftime("%B %Y"),
            _currency(user),
            alert_type,
        )
        alerted += 1
        logger.info("budget_alert_issued", user_id=user.id, budget_id=budget.id, alert_type=alert_type)

    logger.info("budget_alerts_checked", alerted=alerted, errors=errors)
    return {"alerted": alerted, "errors": errors}


def _goal_owner(db: Session, goal: SavingGoal) -> Optional[User]:
    return db.query(User).filter(User.id == goal.user_id).first()


def check_goal_reminders(db: Session, now: Optional[datetime] = None) -> dict:
    """Remind about unfinished goals whose target date is within the reminder window."""
    now = now or datetime.now()
    cutoff = now + timedelta(days=config.GOAL_REMINDER_DAYS)
    reminded = errors = 0

    goals = (
        db.query(SavingGoal)
        .filter(
            SavingGoal.target_date.isnot(None),
            SavingGoal.target_date > now,
            SavingGoal.target_date <= cutoff,
            SavingGoal.saved_amount < SavingGoal.target_amount,
        )
        .all()
    )

    for goal in goals:
        try:
            user = _goal_owner(db, goal)
        except SQLAlchemyError as exc:
            errors += 1
            logger.error("goal_reminder_failed", goal_id=goal.id, error=str(exc))
            continue
        if user is None:
            logger.warning("goal_reminder_missing_owner", goal_id=goal.id)
            continue

        remaining = max(0.0, (goal.target_amount or 0.0) - (goal.saved_amount or 0.0))
        mailer.send_goal_reminder(
            user.email,
            user.name,
            goal.name,
            goal.target_date.strftime("%B %d, %Y"),
            remaining,
            _currency(user),
        )
        reminded += 1
        logger.info("goal_reminder_issued", user_id=user.id, goal_id=goal.id)

    logger.info("goal_reminders_checked", reminded=reminded, errors=errors)
    return {"reminded": reminded, "errors": errors}


def check_bill_reminders(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Remind about recurring expenses whose next occurrence falls between the
    start of today and the end of the day BILL_REMINDER_DAYS from now.
    """
    now = now or datetime.now()
    today = start_of_day(now)
    cutoff = end_of_day(now + timedelta(days=config.BILL_REMINDER_DAYS))
    reminded = errors = 0

    for template in active_templates(db, now, expenses_only=True):
        user = db.query(User).filter(User.id == template.owner).first()
        if user is None:
            logger.warning("bill_reminder_missing_owner", template_id=template.id)
            continue

        try:
            due = next_due_date(template, last_instance_at(db, template))
        except SQLAlchemyError as exc:
            errors += 1
            logger.error("bill_reminder_failed", template_id=template.id, error=str(exc))
            continue

        if due is None or not (today <= due < cutoff):
            continue

        account = db.query(Account).filter(Account.id == template.account).first()
        currency = template.currency or (account.currency if account else None) or _currency(user)
        mailer.send_bill_reminder(
            user.email,
            user.name,
            template.text,
            template.amount,
            due.strftime("%B %d, %Y"),
            currency,
        )
        reminded += 1
        logger.info("bill_reminder_issued", user_id=user.id, template_id=template.id)

    logger.info("bill_reminders_checked", reminded=reminded, errors=errors)
    return {"reminded": reminded, "errors": errors}
