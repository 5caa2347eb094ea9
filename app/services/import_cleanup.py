from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session
import structlog

from app import config
from models import ImportData

logger = structlog.get_logger(__name__)


def cleanup_stale_imports(db: Session, max_age_days: Optional[int] = None, now: Optional[datetime] = None) -> int:
    """
    Delete unconfirmed imports older than the given number of days.
    Returns the number of imports removed.
    """
    days = config.IMPORT_DRAFT_MAX_AGE_DAYS if max_age_days is None else max_age_days
    cutoff = (now or datetime.now()) - timedelta(days=days)

    removed = (
        db.query(ImportData)
        .filter(ImportData.is_imported.is_(False), ImportData.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()

    logger.info("stale_imports_removed", removed=removed, max_age_days=days)
    return removed
