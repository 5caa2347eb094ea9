# app/jobs.py
# Role: Scheduled background jobs, run from cron / a scheduler:
#
#     python -m app.jobs budget-alerts
#     python -m app.jobs all
#
#       Each job opens its own session and prints a JSON summary.

import argparse
import json
from typing import Callable, Dict

import structlog
from sqlalchemy.orm import Session

from db import Base, SessionLocal, engine
from app.log import configure_logging
from app.services import import_cleanup, notifications, recurring

logger = structlog.get_logger(__name__)


def _cleanup_imports(db: Session) -> dict:
    return {"removed": import_cleanup.cleanup_stale_imports(db)}


JOBS: Dict[str, Callable[[Session], dict]] = {
    "budget-alerts": notifications.check_budget_alerts,
    "goal-reminders": notifications.check_goal_reminders,
    "bill-reminders": notifications.check_bill_reminders,
    "recurring": recurring.generate_due_transactions,
    "cleanup-imports": _cleanup_imports,
}


def run_job(name: str) -> dict:
    db = SessionLocal()
    try:
        logger.info("job_started", job=name)
        result = JOBS[name](db)
        logger.info("job_finished", job=name, **result)
        return result
    finally:
        db.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Expense tracker background jobs")
    parser.add_argument("job", choices=sorted(JOBS) + ["all"], help="Job to run")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    args = parser.parse_args(argv)

    configure_logging(level=args.log_level)
    Base.metadata.create_all(bind=engine)

    names = list(JOBS) if args.job == "all" else [args.job]
    summary = {name: run_job(name) for name in names}
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
