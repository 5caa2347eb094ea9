# app/schemas.py
# Role: Request bodies (pydantic v2).
#       Shape checks only; business rules (ownership, balances, duplicates)
#       live in the services and answer 400/403/404/409.

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field


# -------------------------------------------------------------------
# Auth / users
# -------------------------------------------------------------------

class SignupIn(BaseModel):
    name: str = Field(min_length=3, max_length=64)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    invite_token: Optional[str] = None


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class ForgotPasswordIn(BaseModel):
    email: str


class ResetPasswordIn(BaseModel):
    token: str
    password: str


class UserUpdateIn(BaseModel):
    name: Optional[str] = None
    preferred_currency: Optional[str] = None


class PreferencesIn(BaseModel):
    preferred_currency: str


# -------------------------------------------------------------------
# Accounts
# -------------------------------------------------------------------

class AccountCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    balance: float = 0.0
    currency: str = Field(default="INR", min_length=3, max_length=3)


class AccountUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, max_length=64)
    balance: Optional[float] = None
    currency: Optional[str] = None


class ShareIn(BaseModel):
    account_id: str
    user_id: str


# -------------------------------------------------------------------
# Transactions
# -------------------------------------------------------------------

RecurrenceType = Literal["daily", "weekly", "monthly", "yearly"]


class TransactionCreateIn(BaseModel):
    text: str = Field(min_length=3, max_length=255)
    amount: float
    is_income: bool
    account: str
    transfer: Optional[str] = None
    category: Optional[str] = None
    currency: Optional[str] = None
    created_at: Optional[datetime] = None
    recurring: bool = False
    recurrence_type: Optional[RecurrenceType] = None
    recurrence_end_date: Optional[datetime] = None


class TransactionUpdateIn(BaseModel):
    """Partial update: only the fields sent are applied."""

    text: Optional[str] = None
    amount: Optional[float] = None
    is_income: Optional[bool] = None
    transfer: Optional[str] = None
    category: Optional[str] = None
    currency: Optional[str] = None
    created_at: Optional[datetime] = None
    recurring: Optional[bool] = None
    recurrence_type: Optional[RecurrenceType] = None
    recurrence_end_date: Optional[datetime] = None


class CategoryIn(BaseModel):
    name: str = Field(min_length=1, max_length=64)


# -------------------------------------------------------------------
# Budgets / goals
# -------------------------------------------------------------------

class BudgetCreateIn(BaseModel):
    category_id: str
    month: int
    year: int
    amount: float


class BudgetUpdateIn(BaseModel):
    amount: float


class GoalCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    target_amount: float
    target_date: Optional[date] = None


class GoalUpdateIn(BaseModel):
    name: Optional[str] = None
    target_amount: Optional[float] = None
    saved_amount: Optional[float] = None
    target_date: Optional[date] = None


class GoalAmountIn(BaseModel):
    amount: float


# -------------------------------------------------------------------
# Interest / debts
# -------------------------------------------------------------------

InterestType = Literal["simple", "compound"]


class InterestIn(BaseModel):
    amount: float = Field(gt=0)
    percentage: float = Field(ge=0)
    duration: str
    type: InterestType
    compounding_frequency: int = Field(default=12, ge=1)
    frequency: Optional[str] = None


class DebtCreateIn(BaseModel):
    amount: float
    percentage: float = 0.0
    type: Literal["given", "taken"]
    interest_type: InterestType = "simple"
    user_id: str
    account: str
    description: Optional[str] = Field(default=None, max_length=255)
    duration: Optional[str] = None
    frequency: Optional[str] = None
    premium_amount: Optional[float] = None


class DebtUpdateIn(BaseModel):
    description: Optional[str] = None
    duration: Optional[str] = None
    frequency: Optional[str] = None
    is_paid: Optional[bool] = None


# -------------------------------------------------------------------
# Investments
# -------------------------------------------------------------------

class InvestmentAccountCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    platform: Optional[str] = None
    currency: Optional[str] = None


class InvestmentAccountUpdateIn(BaseModel):
    name: Optional[str] = None
    platform: Optional[str] = None


class InvestmentCreateIn(BaseModel):
    account: str
    symbol: str = Field(min_length=1, max_length=16)
    shares: float
    purchase_price: float
    purchase_date: date


class InvestmentUpdateIn(BaseModel):
    shares: float
    purchase_price: float
    purchase_date: date


class DividendIn(BaseModel):
    dividend: float


# -------------------------------------------------------------------
# Assistant / invitations
# -------------------------------------------------------------------

class AiMessageIn(BaseModel):
    message: str = Field(min_length=1, max_length=4000)
    session_id: Optional[str] = None


class InvitationCreateIn(BaseModel):
    email: EmailStr


class InvitationAcceptIn(BaseModel):
    token: str
    email: EmailStr


# -------------------------------------------------------------------
# Contact
# -------------------------------------------------------------------

class ContactIn(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    subject: str = Field(min_length=5, max_length=150)
    message: str = Field(min_length=10, max_length=2000)
