# routes_ai.py

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.deps import get_current_user, get_db
from app.schemas import AiMessageIn
from app.services import assistant
from models import User

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/process")
def process(body: AiMessageIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return assistant.process_message(db, user, body.message, body.session_id)


@router.get("/history/{session_id}")
def history(session_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return assistant.get_history(db, user.id, session_id)


@router.delete("/history/{session_id}")
def clear_history(session_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return assistant.clear_history(db, user.id, session_id)
