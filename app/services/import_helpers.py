# app/services/import_helpers.py
#
# Import Helper Functions
# Reads an uploaded spreadsheet into a DataFrame, normalizes its rows into
# plain dicts that can be stored as JSON, and turns stored rows back into
# Transaction ORM objects.

import io
import zipfile
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import pandas as pd
from fastapi import HTTPException
from openpyxl.utils.exceptions import InvalidFileException

from models import Transaction

REQUIRED_HEADERS = ["Text", "Amount", "Type", "Transfer", "Category", "Date"]

SAMPLE_ROW = {
    "Text": "Grocery shopping",
    "Amount": 1250.50,
    "Type": "expense",
    "Transfer": "SuperMart",
    "Category": "Groceries",
    "Date": "2024-01-15",
}


# ---- File reading ----

def read_frame(filename: str, content: bytes) -> pd.DataFrame:
    """
    Load the first sheet of an .xlsx file or a .csv file.
    Every cell is read as text; conversion happens per row.
    """
    name = (filename or "").lower()
    buffer = io.BytesIO(content)

    if name.endswith(".xlsx"):
        try:
            df = pd.read_excel(buffer, sheet_name=0, dtype=str, engine="openpyxl")
        except (ValueError, KeyError, OSError, zipfile.BadZipFile, InvalidFileException) as exc:
            raise HTTPException(status_code=400, detail=f"Could not read the spreadsheet: {exc}")
    elif name.endswith(".csv"):
        try:
            df = pd.read_csv(buffer, dtype=str, encoding="utf-8")
        except (ValueError, UnicodeDecodeError, pd.errors.EmptyDataError) as exc:
            raise HTTPException(status_code=400, detail=f"Could not read the CSV file: {exc}")
    else:
        raise HTTPException(status_code=400, detail="Only .xlsx and .csv files are supported.")

    df.columns = [str(c).strip() for c in df.columns]
    df = df.dropna(how="all")
    if df.empty:
        raise HTTPException(status_code=400, detail="Document is empty")

    missing = [h for h in REQUIRED_HEADERS if h not in df.columns]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required headers: {', '.join(missing)}")

    return df[REQUIRED_HEADERS].fillna("")


# ---- Row normalization ----

def _cell(value) -> str:
    return str(value or "").strip()


def normalize_row(raw: Dict[str, str]) -> Optional[dict]:
    """
    One spreadsheet row to {text, amount, is_income, transfer, category_name, created_at}.
    Returns None when the row cannot be used.
    """
    text = _cell(raw.get("Text"))
    if not text:
        return None

    try:
        amount = abs(float(_cell(raw.get("Amount")).replace(",", "")))
    except ValueError:
        return None
    if amount == 0:
        return None

    kind = _cell(raw.get("Type")).lower()
    if kind not in ("income", "expense"):
        return None

    moment = pd.to_datetime(_cell(raw.get("Date")), errors="coerce")
    if pd.isna(moment):
        return None

    return {
        "text": text,
        "amount": amount,
        "is_income": kind == "income",
        "transfer": _cell(raw.get("Transfer")) or None,
        "category_name": _cell(raw.get("Category")) or None,
        "created_at": moment.to_pydatetime().replace(tzinfo=None).isoformat(),
    }


def normalize_frame(df: pd.DataFrame) -> Tuple[List[dict], int]:
    """Returns (usable rows, number of rejected rows)."""
    rows: List[dict] = []
    errors = 0
    for raw in df.to_dict(orient="records"):
        row = normalize_row(raw)
        if row is None:
            errors += 1
        else:
            rows.append(row)
    return rows, errors


# ---- Transaction Conversion ----

def build_transaction_from_dict(row: dict, account_id: str, owner: str, user_id: str, currency: str) -> Transaction:
    """Convert one stored import row into a Transaction ORM object."""
    return Transaction(
        text=row["text"],
        amount=float(row["amount"]),
        is_income=bool(row["is_income"]),
        transfer=row.get("transfer"),
        category=row.get("category"),
        account=account_id,
        owner=owner,
        created_by=user_id,
        updated_by=user_id,
        currency=currency,
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def sample_frame() -> pd.DataFrame:
    return pd.DataFrame([SAMPLE_ROW], columns=REQUIRED_HEADERS)
