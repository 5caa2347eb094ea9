# main.py
# Role: Application entry point for the expense tracker API.
#       Initializes logging and the FastAPI app, creates database tables,
#       installs error handlers / middleware, and registers all route modules.

"""
Main FastAPI app for the expense tracker.

Here we only:
- configure logging
- create the FastAPI app and DB tables
- install CORS, request logging and error handlers
- include route modules

Run with:  uvicorn main:app --reload
"""

import time

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from db import Base, engine
from app import config
from app.errors import register_exception_handlers
from app.log import configure_logging
from app.routes_root import router as root_router
from app.routes_auth import router as auth_router
from app.routes_accounts import router as accounts_router
from app.routes_transactions import router as transactions_router
from app.routes_category import router as category_router
from app.routes_budget import router as budget_router
from app.routes_goal import router as goal_router
from app.routes_interest import router as interest_router
from app.routes_investment_accounts import router as investment_accounts_router
from app.routes_investments import router as investments_router
from app.routes_ai import router as ai_router
from app.routes_invitations import router as invitations_router
from app.routes_contact import router as contact_router


# -------------------------------------------------------------------
# App & DB setup
# -------------------------------------------------------------------

configure_logging()
log = structlog.get_logger("app.http")

# Create database tables (only if they don't exist yet).
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Expense Tracker API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    log.info(
        "request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 1),
    )
    return response


# -------------------------------------------------------------------
# Include routers
# -------------------------------------------------------------------

# Landing + health check
app.include_router(root_router)

# Signup / login / profile
app.include_router(auth_router)

# Accounts, sharing, dashboard, import, statements
app.include_router(accounts_router)

# Transactions, charts, recurring templates, export
app.include_router(transactions_router)

app.include_router(category_router)
app.include_router(budget_router)
app.include_router(goal_router)

# Interest calculator + debts
app.include_router(interest_router)

app.include_router(investment_accounts_router)
app.include_router(investments_router)

# LLM assistant
app.include_router(ai_router)

app.include_router(invitations_router)
app.include_router(contact_router)
