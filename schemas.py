import datetime as dt
from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import GoalCategory, GoalPriority, GoalStatus


class UserIn(BaseModel):
    email: str = Field(..., max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    name: str = Field(..., min_length=1, max_length=120)
    phone: Optional[str] = Field(default=None, max_length=40)
    monthly_income: Optional[float] = Field(default=None, ge=0)


class PlaidBalances(BaseModel):
    current: Optional[float] = None
    available: Optional[float] = None
    iso_currency_code: Optional[str] = None


class PlaidAccountIn(BaseModel):
    """Account record as delivered by the aggregation API."""

    model_config = ConfigDict(extra="ignore")

    account_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    official_name: Optional[str] = None
    type: str
    subtype: Optional[str] = None
    mask: Optional[str] = None
    balances: PlaidBalances = Field(default_factory=PlaidBalances)


class PlaidTransactionIn(BaseModel):
    """Transaction record as delivered by the aggregation API."""

    model_config = ConfigDict(extra="ignore")

    transaction_id: Optional[str] = None
    account_id: str
    amount: float
    date: dt.date
    name: str = ""
    merchant_name: Optional[str] = None
    category: Optional[list[str]] = None
    category_id: Optional[str] = None
    pending: bool = False
    iso_currency_code: Optional[str] = None
    payment_channel: Optional[str] = None

    @field_validator("transaction_id")
    @classmethod
    def _blank_ids_are_missing(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value or value.lower() == "null":
            return None
        return value


class SyncIn(BaseModel):
    item_id: Optional[str] = None
    accounts: list[PlaidAccountIn] = Field(default_factory=list)
    transactions: list[PlaidTransactionIn] = Field(default_factory=list)


class TransactionPatch(BaseModel):
    tags: Optional[list[str]] = None
    is_recurring: Optional[bool] = None
    ai_suggested_category: Optional[str] = Field(default=None, max_length=100)


class GoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    target_amount: float = Field(..., ge=0)
    current_amount: float = Field(default=0, ge=0)
    category: GoalCategory = GoalCategory.savings
    deadline: Optional[date] = None
    priority: GoalPriority = GoalPriority.medium
    monthly_contribution: Optional[float] = Field(default=None, ge=0)


class GoalUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None
    target_amount: Optional[float] = Field(default=None, ge=0)
    current_amount: Optional[float] = Field(default=None, ge=0)
    category: Optional[GoalCategory] = None
    deadline: Optional[date] = None
    priority: Optional[GoalPriority] = None
    status: Optional[GoalStatus] = None
    monthly_contribution: Optional[float] = Field(default=None, ge=0)


class ContributionIn(BaseModel):
    amount: float = Field(..., gt=0)


class SimulationIn(BaseModel):
    monthly_savings: float = 0
    expected_return: float = Field(default=0.07, gt=-1)
    inflation: float = Field(default=0.05, gt=-1)
    years: int = Field(default=10, ge=0, le=100)


class ChatMessageIn(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)
    chat_id: Optional[int] = None
    data_sharing: Optional[bool] = None

    @field_validator("message")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message is required")
        return value


class DataSharingIn(BaseModel):
    enabled: bool
    chat_id: Optional[int] = None


class ChatClearIn(BaseModel):
    chat_id: Optional[int] = None


ChartType = Literal["cashflow", "expenses", "networth"]
