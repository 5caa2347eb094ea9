# app/services/statements.py
#
# Account statements as .xlsx (Summary + Transactions sheets) or PDF
# (header, summary block and transaction table).

import io
from datetime import datetime
from typing import List, Optional, Tuple
from xml.sax.saxutils import escape

import pandas as pd
from fastapi import HTTPException
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy.orm import Session
import structlog

from app.services.accounts import require_accessible
from app.services.dates import end_of_day, parse_day, start_of_day
from models import Account, Category, Transaction

logger = structlog.get_logger(__name__)

CONTENT_TYPES = {
    "pdf": "application/pdf",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

MAX_TRANSACTIONS = 10000


# ---- Data selection ----

def _select(
    db: Session,
    account_id: str,
    start_date: Optional[str],
    end_date: Optional[str],
    num_transactions: Optional[int],
) -> Tuple[List[Tuple[Transaction, Optional[str]]], str]:
    query = (
        db.query(Transaction, Category.name)
        .outerjoin(Category, Category.id == Transaction.category)
        .filter(Transaction.account == account_id)
        .order_by(Transaction.created_at.desc())
    )
    period = "All Transactions"

    if start_date and end_date:
        start, end = parse_day(start_date), parse_day(end_date)
        if start is None or end is None or start > end:
            raise HTTPException(status_code=400, detail="Invalid date range provided.")
        query = query.filter(
            Transaction.created_at >= start_of_day(start),
            Transaction.created_at <= end_of_day(end),
        )
        period = f"{start_date} to {end_date}"
    elif num_transactions is not None:
        if num_transactions < 1 or num_transactions > MAX_TRANSACTIONS:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid number of transactions specified (1-{MAX_TRANSACTIONS}).",
            )
        query = query.limit(num_transactions)
        period = f"Last {num_transactions} Transactions"

    return query.all(), period


def _totals(rows) -> Tuple[float, float]:
    income = sum(t.amount for t, _ in rows if t.is_income)
    expense = sum(t.amount for t, _ in rows if not t.is_income)
    return income, expense


def _transactions_frame(rows, account: Account) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Date": t.created_at.strftime("%Y-%m-%d") if t.created_at else "N/A",
                "Text": t.text,
                "Category": category_name or "N/A",
                "Amount": t.amount if t.is_income else -t.amount,
                "Type": "Income" if t.is_income else "Expense",
                "Transfer": t.transfer or "",
                "Currency": t.currency or account.currency,
            }
            for t, category_name in rows
        ],
        columns=["Date", "Text", "Category", "Amount", "Type", "Transfer", "Currency"],
    )


# ---- Renderers ----

def _render_xlsx(account: Account, rows, period: str, generated_at: str) -> bytes:
    income, expense = _totals(rows)
    summary = pd.DataFrame(
        [
            ["Account Name:", account.name],
            ["Currency:", account.currency],
            ["Generated At:", generated_at],
            ["Period:", period],
            ["", ""],
            ["Total Income:", f"{income:.2f}"],
            ["Total Expense:", f"{expense:.2f}"],
            ["Net Balance:", f"{income - expense:.2f}"],
        ]
    )

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        summary.to_excel(writer, sheet_name="Summary", index=False, header=False)
        _transactions_frame(rows, account).to_excel(writer, sheet_name="Transactions", index=False)

        writer.sheets["Summary"].column_dimensions["A"].width = 20
        writer.sheets["Summary"].column_dimensions["B"].width = 30
        for letter, width in zip("ABCDEFG", (12, 40, 20, 15, 10, 20, 10)):
            writer.sheets["Transactions"].column_dimensions[letter].width = width
    return buffer.getvalue()


def _render_pdf(account: Account, rows, period: str, generated_at: str) -> bytes:
    income, expense = _totals(rows)
    styles = getSampleStyleSheet()

    story = [
        Paragraph(f"Account Statement: {escape(account.name)}", styles["Title"]),
        Paragraph(f"Period: {escape(period)}", styles["Normal"]),
        Paragraph(f"Generated at: {generated_at}", styles["Normal"]),
        Spacer(1, 6 * mm),
    ]

    summary = Table(
        [
            ["Total Income", f"{income:,.2f} {account.currency}"],
            ["Total Expense", f"{expense:,.2f} {account.currency}"],
            ["Net Balance", f"{income - expense:,.2f} {account.currency}"],
        ],
        colWidths=[50 * mm, 60 * mm],
        hAlign="LEFT",
    )
    summary.setStyle(
        TableStyle(
            [
                ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ]
        )
    )
    story += [summary, Spacer(1, 6 * mm)]

    table_rows = [["Date", "Description", "Category", "Type", "Amount"]]
    for t, category_name in rows:
        table_rows.append(
            [
                t.created_at.strftime("%Y-%m-%d") if t.created_at else "N/A",
                Paragraph(escape(t.text), styles["BodyText"]),
                category_name or "N/A",
                "Income" if t.is_income else "Expense",
                f"{t.amount if t.is_income else -t.amount:,.2f}",
            ]
        )

    table = Table(table_rows, colWidths=[25 * mm, 65 * mm, 35 * mm, 22 * mm, 28 * mm], repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1f2937")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("ALIGN", (-1, 1), (-1, -1), "RIGHT"),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f3f4f6")]),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
            ]
        )
    )
    story.append(table)

    buffer = io.BytesIO()
    SimpleDocTemplate(buffer, pagesize=A4, title=f"Statement {account.name}").build(story)
    return buffer.getvalue()


def statement(
    db: Session,
    account_id: str,
    user_id: str,
    export_type: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    num_transactions: Optional[int] = None,
) -> Tuple[bytes, str, str]:
    """Returns (file bytes, filename, content type)."""
    export_type = (export_type or "").lower()
    if export_type not in CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="Export type must be pdf or xlsx")

    account = require_accessible(db, account_id, user_id)
    rows, period = _select(db, account.id, start_date, end_date, num_transactions)
    generated_at = datetime.now().strftime("%Y-%m-%d %H:%M")

    if export_type == "pdf":
        data = _render_pdf(account, rows, period, generated_at)
    else:
        data = _render_xlsx(account, rows, period, generated_at)

    logger.info("statement_generated", user_id=user_id, account_id=account.id, export_type=export_type, rows=len(rows))
    return data, f"statement.{export_type}", CONTENT_TYPES[export_type]
