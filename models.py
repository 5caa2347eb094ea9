# models.py
# Role: SQLAlchemy ORM models for the expense tracker domain.
#       Users own accounts, accounts hold transactions and one analytics row,
#       and budgets, goals, debts, investments and invitations hang off users.

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from db import Base

# Allowed values for the string "enum" columns
ROLES = ("user", "admin")
DEBT_TYPES = ("given", "taken")
INTEREST_TYPES = ("simple", "compound")
RECURRENCE_TYPES = ("daily", "weekly", "monthly", "yearly")
INVITATION_STATUSES = ("pending", "accepted", "expired")

DEFAULT_PROFILE_PIC = "https://i.stack.imgur.com/l60Hf.png"


def new_id() -> str:
    return str(uuid.uuid4())


class CommonColumns:
    """String UUID primary key plus created/updated timestamps."""

    id = Column(String(64), primary_key=True, default=new_id)
    created_at = Column(DateTime, default=datetime.now, nullable=False, index=True)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.now)


class User(CommonColumns, Base):
    __tablename__ = "users"

    name = Column(String(64), nullable=False)
    email = Column(String(64), nullable=False, unique=True, index=True)

    # bcrypt hash, never returned by the API
    password = Column(String(255), nullable=False)

    # Currently valid JWT; cleared on logout
    token = Column(Text, nullable=True)

    is_social = Column(Boolean, default=False, nullable=False)
    profile_pic = Column(Text, default=DEFAULT_PROFILE_PIC)
    role = Column(String(16), default="user", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login_at = Column(DateTime, nullable=True)
    reset_password_token = Column(Text, nullable=True)
    preferred_currency = Column(String(3), default="INR", nullable=False)


class Account(CommonColumns, Base):
    __tablename__ = "accounts"

    name = Column(String(64), nullable=False, index=True)
    owner = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Running balance, kept equal to analytics.balance
    balance = Column(Float, default=0.0, nullable=False)

    currency = Column(String(3), default="INR", nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)


class UserAccount(CommonColumns, Base):
    """An account shared with another user."""

    __tablename__ = "user_accounts"
    __table_args__ = (UniqueConstraint("user_id", "account_id", name="uq_user_account"),)

    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    account_id = Column(String(64), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)


class Category(CommonColumns, Base):
    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("name", "owner", name="uq_category_name_owner"),)

    name = Column(String(64), nullable=False)
    owner = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)


class Transaction(CommonColumns, Base):
    """
    One income/expense ledger entry.

    `amount` is always the positive magnitude; the direction lives in
    `is_income`. A row with `recurring=True` is a template that the recurring
    job copies into plain (non-recurring) rows when they fall due.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_amount_account", "amount", "account"),
        Index("ix_transactions_amount_category", "amount", "category"),
    )

    # Free-text description ("Groceries", "Salary", ...)
    text = Column(String(255), nullable=False, index=True)

    amount = Column(Float, nullable=False, index=True)
    is_income = Column(Boolean, nullable=False)

    # Counterparty / source ("self" for opening balances)
    transfer = Column(String(64), nullable=True)

    category = Column(String(64), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    account = Column(String(64), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)

    created_by = Column(String(64), ForeignKey("users.id"), nullable=False)
    updated_by = Column(String(64), ForeignKey("users.id"), nullable=True)
    owner = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)

    # Recurring template fields
    recurring = Column(Boolean, default=False, nullable=False)
    recurrence_type = Column(String(16), nullable=True)
    recurrence_end_date = Column(DateTime, nullable=True)

    currency = Column(String(3), default="INR", nullable=False)


class Analytics(CommonColumns, Base):
    """Denormalized per-account totals, updated on every transaction write."""

    __tablename__ = "analytics"

    account = Column(String(64), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, unique=True)
    user = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    income = Column(Float, default=0.0, nullable=False)
    expense = Column(Float, default=0.0, nullable=False)
    balance = Column(Float, default=0.0, nullable=False)

    previous_income = Column(Float, default=0.0, nullable=False)
    previous_expenses = Column(Float, default=0.0, nullable=False)
    previous_balance = Column(Float, default=0.0, nullable=False)

    income_percentage_change = Column(Float, default=0.0, nullable=False)
    expenses_percentage_change = Column(Float, default=0.0, nullable=False)


class ImportData(CommonColumns, Base):
    """A parsed spreadsheet waiting for confirmation."""

    __tablename__ = "import_data"

    account = Column(String(64), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    user = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # JSON list of normalized rows (see app/services/import_helpers.py)
    data = Column(Text, nullable=False)

    total_records = Column(Integer, nullable=False)
    error_records = Column(Integer, nullable=False)
    is_imported = Column(Boolean, default=False, nullable=False)


class Debt(CommonColumns, Base):
    __tablename__ = "debts"
    __table_args__ = (
        Index("ix_debts_paid_due", "is_paid", "due_date"),
        Index("ix_debts_created_by_account", "created_by", "account"),
    )

    amount = Column(Float, nullable=False)

    # Principal plus interest
    premium_amount = Column(Float, nullable=False)

    created_by = Column(String(64), ForeignKey("users.id"), nullable=False)
    description = Column(String(255), nullable=True)
    due_date = Column(Date, nullable=True)

    # "YYYY-MM-DD,YYYY-MM-DD", a unit ("month") or a number of years
    duration = Column(String(64), nullable=True)

    percentage = Column(Float, nullable=False)
    frequency = Column(String(64), nullable=True)
    is_paid = Column(Boolean, default=False, nullable=False)

    # The other party of the debt
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    type = Column(String(16), nullable=False)
    interest_type = Column(String(16), nullable=False)
    account = Column(String(64), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)


class Budget(CommonColumns, Base):
    __tablename__ = "budgets"
    __table_args__ = (
        UniqueConstraint("user_id", "category", "month", "year", name="uq_budget_period"),
    )

    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    category = Column(String(64), ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    amount = Column(Float, nullable=False)


class SavingGoal(CommonColumns, Base):
    __tablename__ = "saving_goals"

    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    target_amount = Column(Float, nullable=False)
    saved_amount = Column(Float, default=0.0, nullable=False)
    target_date = Column(DateTime, nullable=True)


class InvestmentAccount(CommonColumns, Base):
    __tablename__ = "investment_accounts"

    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    platform = Column(String(64), nullable=True)

    # Sum of invested_amount of the holdings
    balance = Column(Float, default=0.0, nullable=False)

    currency = Column(String(3), nullable=False)


class Investment(CommonColumns, Base):
    __tablename__ = "investments"
    __table_args__ = (Index("ix_investments_account_symbol", "account", "symbol"),)

    account = Column(String(64), ForeignKey("investment_accounts.id", ondelete="CASCADE"), nullable=False)
    symbol = Column(String(16), nullable=False)
    shares = Column(Float, nullable=False)
    purchase_price = Column(Float, nullable=False)
    purchase_date = Column(DateTime, nullable=True)
    dividend = Column(Float, default=0.0, nullable=False)

    # shares * purchase_price
    invested_amount = Column(Float, nullable=False)


class AiConversationHistory(CommonColumns, Base):
    __tablename__ = "ai_conversation_history"
    __table_args__ = (Index("ix_ai_history_user_session", "user_id", "session_id"),)

    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    session_id = Column(String(64), nullable=False)

    # One chat message: {"role": ..., "content": ...}
    message = Column(JSON, nullable=False)


class Invitation(CommonColumns, Base):
    __tablename__ = "invitations"

    inviter_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    invitee_email = Column(String(64), nullable=False, unique=True)
    token = Column(String(255), nullable=False, unique=True)
    status = Column(String(16), default="pending", nullable=False)
    expires_at = Column(DateTime, nullable=False)
