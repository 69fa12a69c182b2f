from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class Flow(str, Enum):
    income = "income"
    expense = "expense"


class GoalStatus(str, Enum):
    active = "active"
    completed = "completed"
    paused = "paused"
    cancelled = "cancelled"


class GoalCategory(str, Enum):
    savings = "savings"
    purchase = "purchase"
    debt = "debt"
    investment = "investment"
    emergency = "emergency"
    other = "other"


class GoalPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class MessageRole(str, Enum):
    user = "user"
    assistant = "assistant"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(40))
    monthly_income: Mapped[Optional[float]] = mapped_column(Float)
    plaid_item_id: Mapped[Optional[str]] = mapped_column(String(120))
    has_bank_connected: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    onboarding_complete: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    plaid_account_id: Mapped[str] = mapped_column(String(120), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    official_name: Mapped[Optional[str]] = mapped_column(String(200))
    type: Mapped[str] = mapped_column(String(40), nullable=False)
    subtype: Mapped[str] = mapped_column(String(40), nullable=False)
    mask: Mapped[Optional[str]] = mapped_column(String(8))
    current_balance: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    available_balance: Mapped[Optional[float]] = mapped_column(Float)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    last_synced: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="account"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "plaid_account_id", name="uq_account_user_plaid"),
        Index("ix_accounts_user", "user_id"),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    plaid_transaction_id: Mapped[str] = mapped_column(String(120), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    merchant_name: Mapped[Optional[str]] = mapped_column(String(300))
    category: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    category_code: Mapped[Optional[str]] = mapped_column(String(40))
    pending: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    iso_currency_code: Mapped[str] = mapped_column(
        String(3), default="USD", nullable=False
    )
    payment_channel: Mapped[Optional[str]] = mapped_column(String(40))
    is_anomaly: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ai_suggested_category: Mapped[Optional[str]] = mapped_column(String(100))
    tags: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    account: Mapped["Account"] = relationship("Account", back_populates="transactions")

    __table_args__ = (
        UniqueConstraint(
            "user_id", "plaid_transaction_id", name="uq_txn_user_plaid"
        ),
        Index("ix_transactions_user_date", "user_id", "date"),
    )


class Goal(Base, TimestampMixin):
    __tablename__ = "goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    target_amount: Mapped[float] = mapped_column(Float, nullable=False)
    current_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    category: Mapped[GoalCategory] = mapped_column(
        SAEnum(GoalCategory), nullable=False, default=GoalCategory.savings
    )
    deadline: Mapped[Optional[date]] = mapped_column(Date)
    priority: Mapped[GoalPriority] = mapped_column(
        SAEnum(GoalPriority), nullable=False, default=GoalPriority.medium
    )
    status: Mapped[GoalStatus] = mapped_column(
        SAEnum(GoalStatus), nullable=False, default=GoalStatus.active
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    monthly_contribution: Mapped[Optional[float]] = mapped_column(Float)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    @property
    def progress(self) -> float:
        if not self.target_amount:
            return 100.0
        return min((self.current_amount or 0) / self.target_amount * 100, 100.0)

    @property
    def remaining_amount(self) -> float:
        return max(self.target_amount - (self.current_amount or 0), 0.0)

    __table_args__ = (
        CheckConstraint("target_amount >= 0", name="ck_goal_target_positive"),
        CheckConstraint("current_amount >= 0", name="ck_goal_current_positive"),
        CheckConstraint(
            "monthly_contribution IS NULL OR monthly_contribution >= 0",
            name="ck_goal_contribution_positive",
        ),
        Index("ix_goals_user_status", "user_id", "status"),
    )


class Chat(Base, TimestampMixin):
    __tablename__ = "chats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    data_sharing: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    messages: Mapped[list["ChatMessage"]] = relationship(
        "ChatMessage",
        back_populates="chat",
        order_by="ChatMessage.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("ix_chats_user_created", "user_id", "created_at"),)


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    chat_id: Mapped[int] = mapped_column(ForeignKey("chats.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    role: Mapped[MessageRole] = mapped_column(SAEnum(MessageRole), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    chat: Mapped["Chat"] = relationship("Chat", back_populates="messages")

    __table_args__ = (
        UniqueConstraint("chat_id", "position", name="uq_chat_message_position"),
    )
