# app/services/assistant.py
"""
Chat assistant over the expense tracker (OpenAI chat completions + tools).

- The OpenAI client is created lazily on first use; without OPENAI_API_KEY
  every call answers 503.
- Conversation history is kept per (user, session_id); the last
  AI_HISTORY_PAIRS user/assistant pairs are replayed to the model.
- Tool rounds are capped at AI_MAX_STEPS, after which the model must answer
  in plain text.

Public API:
    process_message(db, user, message, session_id=None)
        -> {"response": str, "session_id": str, "tool_calls": [...]}
    get_history(db, user_id, session_id)
    clear_history(db, user_id, session_id)
"""

import json
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI
from fastapi import HTTPException
from sqlalchemy.orm import Session
import structlog

from app import config
from app.services.assistant_tools import build_tools, run_tool
from models import AiConversationHistory, User

logger = structlog.get_logger(__name__)

_client: Optional[OpenAI] = None

SYSTEM_PROMPT = """You are a helpful financial assistant inside an expense tracker app.
Use the available tools to act on the user's accounts, categories, transactions, budgets,
saving goals, investment accounts, investments and debts.

Rules:
- Amounts passed to tools are always positive numbers. Use the 'type' argument
  ('income' or 'expense') for the direction of a transaction.
- Before deleting or updating anything, first call the matching identify/find tool,
  show the user what was found and ask for confirmation. Only call an
  execute_confirmed_* tool after the user explicitly confirmed that record.
- If a name matches several records, ask which one the user means.
- Dates: pass the user's own words ('yesterday', 'last month', 'March 2024',
  'from March 1 to April 10') to date and duration arguments; the tools resolve them.
  Use parse_period to show the exact range. Transactions default to today.
- After a tool succeeds, confirm briefly. If a tool returns an error, explain it plainly.
Today is {today}. The user's preferred currency is {currency}."""


def _openai_client() -> OpenAI:
    global _client
    if _client is None:
        _client = OpenAI(api_key=config.OPENAI_API_KEY, timeout=60)
    return _client


# ---- History ----

def _history_messages(db: Session, user_id: str, session_id: str) -> List[dict]:
    rows = (
        db.query(AiConversationHistory)
        .filter(AiConversationHistory.user_id == user_id, AiConversationHistory.session_id == session_id)
        .order_by(AiConversationHistory.created_at.desc())
        .limit(config.AI_HISTORY_PAIRS * 2)
        .all()
    )
    return [row.message for row in reversed(rows)]


def _save_exchange(db: Session, user_id: str, session_id: str, prompt: str, answer: str) -> None:
    now = datetime.now()
    db.add(
        AiConversationHistory(
            user_id=user_id,
            session_id=session_id,
            message={"role": "user", "content": prompt},
            created_at=now,
        )
    )
    db.add(
        AiConversationHistory(
            user_id=user_id,
            session_id=session_id,
            message={"role": "assistant", "content": answer},
            created_at=now + timedelta(microseconds=1),
        )
    )
    db.commit()


def get_history(db: Session, user_id: str, session_id: str) -> dict:
    rows = (
        db.query(AiConversationHistory)
        .filter(AiConversationHistory.user_id == user_id, AiConversationHistory.session_id == session_id)
        .order_by(AiConversationHistory.created_at.asc())
        .all()
    )
    return {
        "session_id": session_id,
        "messages": [{**row.message, "created_at": row.created_at.isoformat()} for row in rows],
    }


def clear_history(db: Session, user_id: str, session_id: str) -> dict:
    deleted = (
        db.query(AiConversationHistory)
        .filter(AiConversationHistory.user_id == user_id, AiConversationHistory.session_id == session_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("assistant_history_cleared", user_id=user_id, session_id=session_id, deleted=deleted)
    return {"message": "Conversation history cleared", "deleted": deleted}


# ---- Model calls ----

def _complete(messages: List[dict], tool_specs: Optional[List[dict]]):
    kwargs: Dict[str, Any] = {"model": config.AI_MODEL, "messages": messages}
    if tool_specs:
        kwargs["tools"] = tool_specs
    try:
        return _openai_client().chat.completions.create(**kwargs)
    except openai.AuthenticationError as exc:
        logger.error("assistant_auth_failed", error=str(exc))
        raise HTTPException(status_code=503, detail=f"AI service API key issue: {exc}")
    except openai.OpenAIError as exc:
        logger.error("assistant_model_error", error=str(exc))
        raise HTTPException(status_code=502, detail=f"AI processing failed: {exc}")


def process_message(db: Session, user: User, message: str, session_id: Optional[str] = None) -> dict:
    if not config.OPENAI_API_KEY:
        raise HTTPException(status_code=503, detail="AI service is not configured or unavailable.")

    prompt = (message or "").strip()
    if not prompt:
        raise HTTPException(status_code=400, detail="Message cannot be empty.")

    session_id = session_id or uuid.uuid4().hex
    tools = build_tools(db, user)
    tool_specs = [tool.spec for tool in tools.values()]

    system = SYSTEM_PROMPT.format(
        today=datetime.now().date().isoformat(),
        currency=user.preferred_currency or config.DEFAULT_CURRENCY,
    )
    messages: List[dict] = [{"role": "system", "content": system}]
    messages += _history_messages(db, user.id, session_id)
    messages.append({"role": "user", "content": prompt})

    calls: List[dict] = []
    answer = ""

    for step in range(config.AI_MAX_STEPS + 1):
        # The last round gets no tools so the model has to answer
        offer_tools = tool_specs if step < config.AI_MAX_STEPS else None
        reply = _complete(messages, offer_tools).choices[0].message

        if not reply.tool_calls:
            answer = reply.content or ""
            break

        messages.append(
            {
                "role": "assistant",
                "content": reply.content,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.function.name, "arguments": tc.function.arguments},
                    }
                    for tc in reply.tool_calls
                ],
            }
        )
        for tc in reply.tool_calls:
            result = run_tool(db, tools, tc.function.name, tc.function.arguments)
            calls.append({"name": tc.function.name, "arguments": tc.function.arguments, "result": result})
            messages.append({"role": "tool", "tool_call_id": tc.id, "content": json.dumps(result, default=str)})

    answer = answer or "OK."
    _save_exchange(db, user.id, session_id, prompt, answer)

    logger.info("assistant_replied", user_id=user.id, session_id=session_id, tool_calls=len(calls))
    return {"response": answer, "session_id": session_id, "tool_calls": calls}
