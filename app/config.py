# app/config.py
# Role: Central runtime configuration.
#       Loads .env once and exposes typed settings read from environment variables.

"""
Configuration for the expense tracker API.

Every value can be overridden through the environment (or a local .env file).
Modules import the constants they need from here instead of calling os.getenv
themselves, so tests can monkeypatch a single place.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_truthy(name: str, default: str = "0") -> bool:
    v = os.getenv(name, default)
    return str(v).strip().lower() in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# -------------------------------------------------------------------
# Runtime
# -------------------------------------------------------------------

ENV = os.getenv("ENV", "development").strip().lower()
IS_PRODUCTION = ENV == "production"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_JSON = _env_truthy("LOG_JSON", "1" if IS_PRODUCTION else "0")

# Empty means "use the SQLite file next to db.py" (see db.py)
DATABASE_URL = os.getenv("DATABASE_URL", "")

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")

# -------------------------------------------------------------------
# Auth
# -------------------------------------------------------------------

JWT_SECRET = os.getenv("JWT_SECRET", "dev-only-secret-change-me")
JWT_ALGORITHM = "HS256"
JWT_EXPIRES_MINUTES = _env_int("JWT_EXPIRES_MINUTES", 60)
RESET_TOKEN_EXPIRES_MINUTES = 60
BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)
INVITATION_EXPIRES_HOURS = 24

# -------------------------------------------------------------------
# Email (SMTP). Without SMTP_HOST messages are only logged.
# -------------------------------------------------------------------

SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = _env_int("SMTP_PORT", 587)
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM = os.getenv("SMTP_FROM", "Expense Tracker <no-reply@expense-tracker.local>")
SMTP_USE_TLS = _env_truthy("SMTP_USE_TLS", "1")

# -------------------------------------------------------------------
# External services
# -------------------------------------------------------------------

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
AI_MODEL = os.getenv("AI_MODEL", "gpt-4o-mini")
AI_MAX_STEPS = _env_int("AI_MAX_STEPS", 5)
AI_HISTORY_PAIRS = 10

YAHOO_FINANCE_BASE_URL = os.getenv(
    "YAHOO_FINANCE_BASE_URL", "https://query1.finance.yahoo.com"
).rstrip("/")
HTTP_TIMEOUT = _env_int("HTTP_TIMEOUT", 10)

# -------------------------------------------------------------------
# Notifications / jobs
# -------------------------------------------------------------------

BUDGET_ALERT_THRESHOLD = 0.9
GOAL_REMINDER_DAYS = 7
BILL_REMINDER_DAYS = 3

IMPORT_DRAFT_MAX_AGE_DAYS = _env_int("IMPORT_DRAFT_MAX_AGE_DAYS", 7)

DEFAULT_CURRENCY = "INR"

# Contact form submissions go here; empty disables the form
CONTACT_EMAIL = os.getenv("CONTACT_EMAIL", SMTP_USER)
