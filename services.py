from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy import case, delete, func, or_, select
from sqlalchemy.orm import Session, joinedload

import analytics
from assistant import (
    FinancialContext,
    build_financial_context,
    suggest_questions,
)
from classification import ClassifierConfig, classify_category, config_from_settings
from csv_utils import export_chart
from models import (
    Account,
    Chat,
    ChatMessage,
    Goal,
    GoalPriority,
    GoalStatus,
    MessageRole,
    Transaction,
    User,
)
from periods import Period, local_today, trailing_days
from projections import simulate_growth
from schemas import (
    ChatMessageIn,
    GoalIn,
    GoalUpdate,
    SimulationIn,
    SyncIn,
    TransactionPatch,
    UserIn,
)

logger = logging.getLogger(__name__)


class RecordNotFound(ValueError):
    pass


@dataclass
class TransactionFilters:
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category: Optional[str] = None
    account_id: Optional[int] = None
    search: Optional[str] = None


@dataclass(frozen=True)
class AnomalyScan:
    changed: int
    flagged: int


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, data: UserIn) -> User:
        email = data.email.strip().lower()
        exists = self.session.scalar(select(User.id).where(User.email == email))
        if exists:
            raise ValueError("Email already registered")
        user = User(
            email=email,
            name=data.name.strip(),
            phone=data.phone,
            monthly_income=data.monthly_income,
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise RecordNotFound("User not found")
        return user

    def all_ids(self) -> list[int]:
        return list(self.session.scalars(select(User.id).order_by(User.id)))


class AccountService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.id.asc())
        )
        return self.session.scalars(stmt).all()

    def currency(self) -> str:
        accounts = self.list_all()
        return accounts[0].currency if accounts else "USD"

    def grouped_by_institution(self) -> list[dict[str, object]]:
        institutions: dict[str, dict[str, object]] = {}
        for account in self.list_all():
            institution = (
                account.official_name
                or (account.name.split(" ")[0] if account.name else "")
                or "Unknown Institution"
            )
            group = institutions.setdefault(
                institution,
                {"institution_name": institution, "accounts": [], "total_balance": 0.0},
            )
            group["accounts"].append(
                {
                    "id": account.id,
                    "plaid_account_id": account.plaid_account_id,
                    "name": account.name,
                    "type": account.type,
                    "subtype": account.subtype,
                    "mask": account.mask,
                    "current_balance": account.current_balance,
                    "available_balance": account.available_balance,
                    "currency": account.currency,
                }
            )
            group["total_balance"] += account.current_balance or 0.0
        return list(institutions.values())


class SyncService:
    """Stores account and transaction records pulled from the bank aggregator."""

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def sync(self, data: SyncIn) -> dict[str, int]:
        user = UserService(self.session).get(self.user_id)
        now = datetime.utcnow()

        existing_accounts = {
            a.plaid_account_id: a
            for a in self.session.scalars(
                select(Account).where(Account.user_id == self.user_id)
            )
        }
        for record in data.accounts:
            account = existing_accounts.get(record.account_id)
            if account is None:
                account = Account(user_id=self.user_id, plaid_account_id=record.account_id)
                self.session.add(account)
                existing_accounts[record.account_id] = account
            account.name = record.name
            account.official_name = record.official_name
            account.type = record.type
            account.subtype = record.subtype or record.type
            account.mask = record.mask
            account.current_balance = record.balances.current or 0.0
            account.available_balance = record.balances.available
            account.currency = record.balances.iso_currency_code or "USD"
            account.last_synced = now
        self.session.flush()

        existing_txns = {
            t.plaid_transaction_id: t
            for t in self.session.scalars(
                select(Transaction).where(Transaction.user_id == self.user_id)
            )
        }
        stored = 0
        skipped = 0
        for record in data.transactions:
            account = existing_accounts.get(record.account_id)
            if not record.transaction_id or account is None:
                skipped += 1
                continue
            txn = existing_txns.get(record.transaction_id)
            if txn is None:
                txn = Transaction(
                    user_id=self.user_id,
                    plaid_transaction_id=record.transaction_id,
                    is_anomaly=False,
                    is_recurring=False,
                    tags=[],
                )
                self.session.add(txn)
                existing_txns[record.transaction_id] = txn
            txn.account_id = account.id
            txn.amount = record.amount
            txn.date = record.date
            txn.name = record.name
            txn.merchant_name = record.merchant_name
            txn.category = list(record.category or [])
            txn.category_code = record.category_id
            txn.pending = record.pending
            txn.iso_currency_code = record.iso_currency_code or "USD"
            txn.payment_channel = record.payment_channel
            stored += 1

        if data.item_id:
            user.plaid_item_id = data.item_id
        user.has_bank_connected = True
        user.onboarding_complete = True
        self.session.commit()
        logger.info(
            f"sync: user_id={self.user_id} accounts={len(data.accounts)} "
            f"transactions={stored} skipped={skipped}"
        )
        return {
            "accounts": len(data.accounts),
            "transactions": stored,
            "skipped": skipped,
        }

    def unlink(self) -> None:
        user = UserService(self.session).get(self.user_id)
        if not user.has_bank_connected:
            raise ValueError("No bank account linked")
        self.session.execute(
            delete(Transaction).where(Transaction.user_id == self.user_id)
        )
        self.session.execute(delete(Account).where(Account.user_id == self.user_id))
        user.plaid_item_id = None
        user.has_bank_connected = False
        self.session.commit()
        logger.info(f"unlink: user_id={self.user_id}")


class TransactionService:
    def __init__(
        self,
        session: Session,
        user_id: int,
        config: Optional[ClassifierConfig] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.config = config or config_from_settings()

    def all(self) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.asc(), Transaction.id.asc())
        )
        return self.session.scalars(stmt).all()

    def for_period(self, period: Period) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(period.start, period.end),
            )
            .order_by(Transaction.date.asc(), Transaction.id.asc())
        )
        return self.session.scalars(stmt).all()

    def list(
        self, filters: TransactionFilters, *, limit: int = 50, offset: int = 0
    ) -> tuple[list[Transaction], int]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.account))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        if filters.start_date:
            stmt = stmt.where(Transaction.date >= filters.start_date)
        if filters.end_date:
            stmt = stmt.where(Transaction.date <= filters.end_date)
        if filters.account_id:
            stmt = stmt.where(Transaction.account_id == filters.account_id)
        if filters.search:
            like = f"%{filters.search.strip()}%"
            stmt = stmt.where(
                or_(
                    Transaction.name.ilike(like),
                    Transaction.merchant_name.ilike(like),
                )
            )
        items = self.session.scalars(stmt).unique().all()
        if filters.category:
            wanted = filters.category
            items = [
                t
                for t in items
                if wanted in (t.category or [])
                or classify_category(t, self.config) == wanted
            ]
        return items[offset : offset + limit], len(items)

    def get(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.account))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.id == transaction_id,
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise RecordNotFound("Transaction not found")
        return txn

    def update(self, transaction_id: int, data: TransactionPatch) -> Transaction:
        txn = self.get(transaction_id)
        if data.tags is not None:
            seen: set[str] = set()
            tags: list[str] = []
            for raw in data.tags:
                clean = raw.strip()
                if clean and clean.lower() not in seen:
                    tags.append(clean)
                    seen.add(clean.lower())
            txn.tags = tags
        if data.is_recurring is not None:
            txn.is_recurring = data.is_recurring
        if data.ai_suggested_category is not None:
            txn.ai_suggested_category = data.ai_suggested_category.strip() or None
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def latest(self, limit: int = 3) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.account))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .limit(limit)
        )
        return self.session.scalars(stmt).all()

    def detect_anomalies(self) -> AnomalyScan:
        transactions = self.all()
        flags = analytics.anomaly_flags(transactions)
        changed = 0
        for txn, flag in zip(transactions, flags):
            if txn.is_anomaly != flag:
                txn.is_anomaly = flag
                changed += 1
        if changed:
            self.session.commit()
        flagged = sum(1 for flag in flags if flag)
        logger.info(
            f"anomaly_scan: user_id={self.user_id} changed={changed} flagged={flagged}"
        )
        return AnomalyScan(changed=changed, flagged=flagged)


def sweep_anomalies(session: Session) -> int:
    total = 0
    for user_id in UserService(session).all_ids():
        total += TransactionService(session, user_id).detect_anomalies().changed
    return total


class ChartService:
    def __init__(
        self,
        session: Session,
        user_id: int,
        config: Optional[ClassifierConfig] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.config = config or config_from_settings()
        self.transactions = TransactionService(session, user_id, self.config)
        self.accounts = AccountService(session, user_id)

    def cashflow(self, period: Period) -> list[dict[str, object]]:
        return analytics.aggregate_by_month(
            self.transactions.for_period(period), self.config
        )

    def expense_breakdown(
        self, period: Period, top_n: int = 10
    ) -> list[dict[str, object]]:
        return analytics.aggregate_by_category(
            self.transactions.for_period(period), top_n, self.config
        )

    def net_worth(
        self, period: Period, *, today: Optional[date] = None
    ) -> analytics.NetWorthTrend:
        return analytics.reconstruct_net_worth(
            self.accounts.list_all(),
            self.transactions.for_period(period),
            today=today or local_today(),
            config=self.config,
        )

    def summary(self, *, today: Optional[date] = None) -> dict[str, float]:
        recent = self.transactions.for_period(trailing_days(30, today=today))
        return analytics.summarize(self.accounts.list_all(), recent, self.config)

    def simulate(self, data: SimulationIn) -> list[dict[str, object]]:
        balance = sum((a.current_balance or 0.0) for a in self.accounts.list_all())
        return simulate_growth(
            balance,
            monthly_savings=data.monthly_savings,
            expected_return=data.expected_return,
            inflation=data.inflation,
            years=data.years,
        )

    def export_csv(
        self, chart: str, period: Period, *, today: Optional[date] = None
    ) -> str:
        if chart == "cashflow":
            rows = self.cashflow(period)
        elif chart == "expenses":
            rows = self.expense_breakdown(period)
        elif chart == "networth":
            rows = self.net_worth(period, today=today).points
        else:
            raise ValueError("Invalid chart type")
        return export_chart(chart, rows)


class InsightsService:
    def __init__(
        self,
        session: Session,
        user_id: int,
        config: Optional[ClassifierConfig] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.config = config or config_from_settings()

    def overview(self, *, today: Optional[date] = None) -> dict[str, object]:
        return analytics.build_insights(
            AccountService(self.session, self.user_id).list_all(),
            TransactionService(self.session, self.user_id, self.config).all(),
            today=today or local_today(),
            config=self.config,
        )

    def financial_context(self, *, today: Optional[date] = None) -> FinancialContext:
        return build_financial_context(
            AccountService(self.session, self.user_id).list_all(),
            TransactionService(self.session, self.user_id, self.config).all(),
            today=today or local_today(),
            config=self.config,
        )


class GoalService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    @staticmethod
    def _settle_status(goal: Goal) -> None:
        if goal.status == GoalStatus.active and goal.current_amount >= goal.target_amount:
            goal.status = GoalStatus.completed
        if goal.status != GoalStatus.completed:
            goal.completed_at = None
        elif goal.completed_at is None:
            goal.completed_at = datetime.utcnow()

    def list(self, status: Optional[GoalStatus] = None) -> list[Goal]:
        priority_rank = case(
            (Goal.priority == GoalPriority.high, 0),
            (Goal.priority == GoalPriority.medium, 1),
            else_=2,
        )
        stmt = (
            select(Goal)
            .where(Goal.user_id == self.user_id)
            .order_by(
                priority_rank,
                Goal.deadline.is_(None),
                Goal.deadline.asc(),
                Goal.id.asc(),
            )
        )
        if status is not None:
            stmt = stmt.where(Goal.status == status)
        return self.session.scalars(stmt).all()

    def get(self, goal_id: int) -> Goal:
        goal = self.session.get(Goal, goal_id)
        if not goal or goal.user_id != self.user_id:
            raise RecordNotFound("Goal not found")
        return goal

    def create(self, data: GoalIn) -> Goal:
        goal = Goal(
            user_id=self.user_id,
            name=data.name.strip(),
            description=data.description,
            target_amount=data.target_amount,
            current_amount=data.current_amount,
            category=data.category,
            deadline=data.deadline,
            priority=data.priority,
            status=GoalStatus.active,
            currency=AccountService(self.session, self.user_id).currency(),
            monthly_contribution=data.monthly_contribution,
        )
        self._settle_status(goal)
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def update(self, goal_id: int, data: GoalUpdate) -> Goal:
        goal = self.get(goal_id)
        changes = data.model_dump(exclude_unset=True)
        for required in ("name", "target_amount", "current_amount", "category", "priority", "status"):
            if required in changes and changes[required] is None:
                raise ValueError(f"{required} cannot be null")
        for field_name, value in changes.items():
            setattr(goal, field_name, value)
        self._settle_status(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def contribute(self, goal_id: int, amount: float) -> Goal:
        if amount <= 0:
            raise ValueError("Invalid contribution amount")
        goal = self.get(goal_id)
        goal.current_amount = (goal.current_amount or 0) + amount
        self._settle_status(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def delete(self, goal_id: int) -> None:
        goal = self.get(goal_id)
        self.session.delete(goal)
        self.session.commit()


class ChatService:
    HISTORY_WINDOW = 10

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _latest(self) -> Optional[Chat]:
        stmt = (
            select(Chat)
            .where(Chat.user_id == self.user_id)
            .order_by(Chat.created_at.desc(), Chat.id.desc())
            .limit(1)
        )
        return self.session.scalar(stmt)

    def _owned(self, chat_id: Optional[int]) -> Optional[Chat]:
        if chat_id is None:
            return None
        chat = self.session.get(Chat, chat_id)
        if not chat or chat.user_id != self.user_id:
            return None
        return chat

    def _new_chat(self, data_sharing: bool) -> Chat:
        chat = Chat(user_id=self.user_id, data_sharing=data_sharing)
        self.session.add(chat)
        self.session.flush()
        return chat

    def session_chat(self) -> Chat:
        chat = self._latest()
        if chat is None:
            chat = self._new_chat(data_sharing=False)
            self.session.commit()
            self.session.refresh(chat)
        return chat

    def send(self, data: ChatMessageIn, advisor) -> tuple[Chat, ChatMessage]:
        chat = self._owned(data.chat_id)
        if chat is None:
            chat = self._new_chat(data_sharing=bool(data.data_sharing))
        if data.data_sharing is not None:
            chat.data_sharing = data.data_sharing

        context = None
        if chat.data_sharing:
            context = InsightsService(self.session, self.user_id).financial_context()
        history = [
            {"role": m.role.value, "content": m.content}
            for m in chat.messages[-self.HISTORY_WINDOW :]
        ]
        logger.info(
            f"chat_message: user_id={self.user_id} chat_id={chat.id} "
            f"data_sharing={chat.data_sharing} advisor={advisor.name}"
        )
        reply = advisor.reply(data.message, context, history)

        now = datetime.utcnow()
        position = len(chat.messages)
        chat.messages.append(
            ChatMessage(
                position=position,
                role=MessageRole.user,
                content=data.message,
                timestamp=now,
            )
        )
        answer = ChatMessage(
            position=position + 1,
            role=MessageRole.assistant,
            content=reply,
            timestamp=now,
        )
        chat.messages.append(answer)
        self.session.commit()
        self.session.refresh(chat)
        return chat, answer

    def history(self, limit: int = 10) -> list[Chat]:
        stmt = (
            select(Chat)
            .options(joinedload(Chat.messages))
            .where(Chat.user_id == self.user_id)
            .order_by(Chat.created_at.desc(), Chat.id.desc())
            .limit(limit)
        )
        return self.session.scalars(stmt).unique().all()

    def clear(self, chat_id: Optional[int] = None) -> None:
        if chat_id is not None:
            chat = self._owned(chat_id)
            if chat is not None:
                chat.messages.clear()
        else:
            for chat in self.session.scalars(
                select(Chat).where(Chat.user_id == self.user_id)
            ):
                self.session.delete(chat)
        self.session.commit()

    def set_data_sharing(self, enabled: bool, chat_id: Optional[int] = None) -> bool:
        chat = self._owned(chat_id) or self._latest()
        if chat is not None:
            chat.data_sharing = enabled
            self.session.commit()
        return enabled

    def suggestions(self) -> list[str]:
        has_data = self.session.scalar(
            select(func.count(Transaction.id)).where(
                Transaction.user_id == self.user_id
            )
        )
        if not has_data:
            return suggest_questions(None)
        context = InsightsService(self.session, self.user_id).financial_context()
        return suggest_questions(context)
