# app/services/imports.py
#
# Two-step spreadsheet import: upload parses the file into an ImportData
# draft, confirm inserts the rows and folds them into the analytics in one
# commit.

import io
import json

import pandas as pd
from fastapi import HTTPException
from sqlalchemy.orm import Session
import structlog

from app import config
from app.services.accounts import require_accessible
from app.services.analytics import apply_bulk
from app.services.categories import ensure_category
from app.services.common import iso
from app.services.import_helpers import (
    build_transaction_from_dict,
    normalize_frame,
    read_frame,
    sample_frame,
)
from models import Account, ImportData

logger = structlog.get_logger(__name__)

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def import_transactions(db: Session, user_id: str, account_id: str, filename: str, content: bytes) -> dict:
    account = require_accessible(db, account_id, user_id)
    rows, errors = normalize_frame(read_frame(filename, content))

    # Unknown category names become categories of the account owner
    category_ids = {}
    for name in sorted({r["category_name"] for r in rows if r["category_name"]}):
        category_ids[name] = ensure_category(db, account.owner, name).id
    for row in rows:
        row["category"] = category_ids.get(row.pop("category_name"))

    draft = ImportData(
        account=account.id,
        user=user_id,
        data=json.dumps(rows),
        total_records=len(rows) + errors,
        error_records=errors,
        is_imported=False,
    )
    db.add(draft)
    db.commit()
    db.refresh(draft)

    logger.info(
        "import_parsed",
        user_id=user_id,
        account_id=account.id,
        import_id=draft.id,
        rows=len(rows),
        errors=errors,
    )
    return {
        "message": "Imported successfully",
        "success_id": draft.id,
        "total_records": draft.total_records,
        "error_records": errors,
    }


def _owned_import(db: Session, import_id: str, user_id: str) -> ImportData:
    draft = db.query(ImportData).filter(ImportData.id == import_id, ImportData.user == user_id).first()
    if draft is None:
        raise HTTPException(status_code=404, detail="Import data not found or access denied.")
    return draft


def _stored_rows(draft: ImportData) -> list:
    try:
        rows = json.loads(draft.data or "[]")
    except ValueError:
        logger.error("import_data_corrupt", import_id=draft.id)
        raise HTTPException(status_code=500, detail="Failed to parse stored import data.")
    if not isinstance(rows, list):
        raise HTTPException(status_code=500, detail="Stored import data is not a valid JSON array.")
    return rows


def get_import(db: Session, import_id: str, user_id: str) -> dict:
    draft = _owned_import(db, import_id, user_id)
    return {
        "transactions": _stored_rows(draft),
        "account_id": draft.account,
        "total_records": draft.total_records,
        "error_records": draft.error_records,
        "is_imported": draft.is_imported,
        "created_at": iso(draft.created_at),
    }


def confirm_import(db: Session, import_id: str, user_id: str) -> dict:
    draft = _owned_import(db, import_id, user_id)
    if draft.is_imported:
        raise HTTPException(status_code=400, detail="This data has already been imported.")

    rows = _stored_rows(draft)
    if not rows:
        draft.is_imported = True
        db.commit()
        return {"message": "No valid transactions to import.", "imported": 0}

    account = db.query(Account).filter(Account.id == draft.account).first()
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found.")

    currency = account.currency or config.DEFAULT_CURRENCY
    for row in rows:
        db.add(build_transaction_from_dict(row, account.id, account.owner, user_id, currency))
    db.flush()

    apply_bulk(db, account.id, [(float(r["amount"]), bool(r["is_income"])) for r in rows])
    draft.is_imported = True
    db.commit()

    logger.info("import_confirmed", user_id=user_id, import_id=import_id, imported=len(rows))
    return {"message": "Transactions imported successfully", "imported": len(rows)}


def sample_import_file() -> bytes:
    """An .xlsx with the required headers and one example row."""
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        sample_frame().to_excel(writer, sheet_name="Transactions", index=False)
    return buffer.getvalue()
