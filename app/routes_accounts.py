# routes_accounts.py
"""
Accounts: CRUD, sharing, dashboard, search, analytics, spreadsheet import
and statements.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from sqlalchemy.orm import Session

from app.deps import get_current_user, get_db
from app.schemas import AccountCreateIn, AccountUpdateIn, ShareIn
from app.services import accounts, imports, statements
from models import User

router = APIRouter(prefix="/accounts", tags=["accounts"])


def attachment(data: bytes, filename: str, media_type: str) -> Response:
    return Response(
        content=data,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ---- Overview ----

@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return accounts.dashboard(db, user.id)


@router.get("/searchTerm")
def search_term(q: str = Query(""), db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"data": accounts.search_term(db, user.id, q)}


@router.get("/customAnalytics/{account_id}")
def custom_analytics(
    account_id: str,
    duration: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return accounts.custom_analytics(db, account_id, user.id, duration)


# ---- Dropdowns and sharing ----

@router.get("/list")
def dropdown(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"data": accounts.list_dropdown(db, user.id)}


@router.get("/dropdown/user")
def users_dropdown(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"data": accounts.users_dropdown(db, user.id)}


@router.post("/share")
def share(body: ShareIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return accounts.share_account(db, body.account_id, body.user_id, user)


@router.post("/revoke-share")
def revoke_share(body: ShareIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return accounts.revoke_share(db, body.account_id, body.user_id, user.id)


@router.get("/get-shares")
def shared_with_me(
    page: int = Query(1),
    page_size: int = Query(10),
    q: str = Query(""),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return accounts.shared_accounts(db, user.id, page, page_size, q, sort_by, sort_order)


@router.get("/previous/share/{account_id}")
def previous_shares(account_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"data": accounts.previous_shares(db, account_id, user.id)}


# ---- Import ----

@router.post("/import/transaction")
def import_transactions(
    account_id: str = Form(...),
    document: UploadFile = File(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    content = document.file.read()
    return imports.import_transactions(db, user.id, account_id, document.filename or "", content)


@router.get("/sampleFile/import")
def sample_file(user: User = Depends(get_current_user)):
    return attachment(imports.sample_import_file(), "sample_transactions.xlsx", imports.XLSX_CONTENT_TYPE)


@router.get("/get/import/{import_id}")
def get_import(import_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return imports.get_import(db, import_id, user.id)


@router.post("/confirm/import/{import_id}")
def confirm_import(import_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return imports.confirm_import(db, import_id, user.id)


# ---- CRUD ----

@router.get("/")
def list_accounts(
    page: int = Query(1),
    page_size: int = Query(10),
    q: str = Query(""),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return accounts.list_accounts(db, user.id, page, page_size, q, sort_by, sort_order)


@router.post("/", status_code=201)
def create_account(body: AccountCreateIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return accounts.create_account(db, user.id, body.name, body.balance, body.currency)


@router.get("/{account_id}/statement")
def statement(
    account_id: str,
    export_type: str = Query("pdf"),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    num_transactions: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    data, filename, media_type = statements.statement(
        db, account_id, user.id, export_type, start_date, end_date, num_transactions
    )
    return attachment(data, filename, media_type)


@router.get("/{account_id}")
def get_account(account_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return accounts.get_account(db, account_id, user.id)


@router.put("/{account_id}")
def update_account(
    account_id: str,
    body: AccountUpdateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return accounts.update_account(db, account_id, user.id, body.name, body.balance, body.currency)


@router.delete("/{account_id}")
def delete_account(account_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return accounts.delete_account(db, account_id, user.id)
