from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from assistant import (
    FALLBACK_SUGGESTIONS,
    PERSONALIZE_HINT,
    AdvisorError,
    FinancialContext,
    GroqAdvisor,
    RuleBasedAdvisor,
    build_financial_context,
    suggest_questions,
)
from database import Base
from models import Account, MessageRole, Transaction, User
from schemas import ChatMessageIn
from services import ChatService


class RecordingAdvisor:
    name = "recording"

    def __init__(self) -> None:
        self.calls = []

    def reply(self, message, context, history=()):
        self.calls.append((message, context, list(history)))
        return f"echo: {message}"


class FailingAdvisor:
    name = "failing"

    def reply(self, message, context, history=()):
        raise AdvisorError("Failed to generate AI response")


def _context(**overrides) -> FinancialContext:
    data = dict(
        total_balance=5000.0,
        currency="USD",
        monthly_income=3000.0,
        monthly_expenses=2000.0,
        savings_rate=33.3,
        top_categories=[{"category": "Rent", "amount": 1200.0}],
    )
    data.update(overrides)
    return FinancialContext(**data)


def _session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    session = Session(engine)
    session.add(User(email="chat@example.com", name="Chatty"))
    session.commit()
    return session


def test_rule_advisor_without_context_is_generic() -> None:
    reply = RuleBasedAdvisor().reply("How do I save more?", None)
    assert PERSONALIZE_HINT in reply
    assert "$" not in reply


def test_rule_advisor_uses_numbers_with_context() -> None:
    reply = RuleBasedAdvisor().reply("What did I spend?", _context())
    assert "USD 2000.00" in reply
    assert "Rent" in reply


def test_financial_context_uses_last_thirty_days() -> None:
    accounts = [Account(name="Checking", type="depository", subtype="checking", current_balance=900, currency="USD")]
    txns = [
        Transaction(amount=2000, date=date(2025, 3, 1), name="Payroll", category=[]),
        Transaction(amount=-500, date=date(2025, 3, 5), name="Rent", category=["Rent"]),
        Transaction(amount=-999, date=date(2025, 1, 1), name="Old", category=["Old"]),
    ]

    context = build_financial_context(accounts, txns, today=date(2025, 3, 15))

    assert context.monthly_income == 2000
    assert context.monthly_expenses == 500
    assert context.savings_rate == 75
    assert context.top_categories == [{"category": "Rent", "amount": 500}]
    assert context.net_savings == 1500


def test_suggestions_follow_context() -> None:
    assert suggest_questions(None) == FALLBACK_SUGGESTIONS
    overspending = suggest_questions(
        _context(monthly_expenses=4000.0, savings_rate=-33.0)
    )
    assert overspending[0] == "How can I improve my savings rate?"
    assert "How can I reduce my monthly expenses?" in overspending
    assert "Why am I spending so much on rent?" in overspending
    assert len(overspending) <= 6


def test_groq_advisor_wraps_provider_errors() -> None:
    class BrokenCompletions:
        def create(self, **kwargs):
            raise ConnectionError("down")

    class Client:
        class chat:
            completions = BrokenCompletions()

    with pytest.raises(AdvisorError):
        GroqAdvisor(Client(), "model", 0.5).reply("hi", None)


def test_new_session_has_sharing_off() -> None:
    with _session() as session:
        chat = ChatService(session, 1).session_chat()
        assert chat.data_sharing is False
        assert ChatService(session, 1).session_chat().id == chat.id


def test_context_withheld_when_sharing_disabled() -> None:
    with _session() as session:
        advisor = RecordingAdvisor()
        chat, answer = ChatService(session, 1).send(
            ChatMessageIn(message="hello"), advisor
        )

        assert advisor.calls[0][1] is None
        assert answer.content == "echo: hello"
        assert [m.role for m in chat.messages] == [
            MessageRole.user,
            MessageRole.assistant,
        ]


def test_sharing_flag_applies_before_reply() -> None:
    with _session() as session:
        service = ChatService(session, 1)
        advisor = RecordingAdvisor()
        chat, _ = service.send(ChatMessageIn(message="first"), advisor)

        service.send(
            ChatMessageIn(message="second", chat_id=chat.id, data_sharing=True),
            advisor,
        )

        context = advisor.calls[1][1]
        assert isinstance(context, FinancialContext)
        assert advisor.calls[1][2] == [
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "echo: first"},
        ]
        assert chat.data_sharing is True


def test_history_window_is_bounded() -> None:
    with _session() as session:
        service = ChatService(session, 1)
        advisor = RecordingAdvisor()
        chat, _ = service.send(ChatMessageIn(message="m0"), advisor)
        for i in range(1, 8):
            service.send(ChatMessageIn(message=f"m{i}", chat_id=chat.id), advisor)

        assert len(advisor.calls[-1][2]) == ChatService.HISTORY_WINDOW
        assert len(chat.messages) == 16


def test_failed_reply_stores_nothing() -> None:
    with _session() as session:
        service = ChatService(session, 1)
        chat = service.session_chat()
        with pytest.raises(AdvisorError):
            service.send(ChatMessageIn(message="hi", chat_id=chat.id), FailingAdvisor())
        session.rollback()
        assert service.session_chat().messages == []


def test_clear_one_chat_or_all() -> None:
    with _session() as session:
        service = ChatService(session, 1)
        advisor = RecordingAdvisor()
        first, _ = service.send(ChatMessageIn(message="a"), advisor)
        service.send(ChatMessageIn(message="b"), advisor)

        service.clear(first.id)
        assert first.messages == []
        assert len(service.history()) == 2

        service.clear()
        assert service.history() == []


def test_data_sharing_toggle() -> None:
    with _session() as session:
        service = ChatService(session, 1)
        chat = service.session_chat()

        assert service.set_data_sharing(True) is True
        session.refresh(chat)
        assert chat.data_sharing is True


def test_suggestions_without_transactions_fall_back() -> None:
    with _session() as session:
        assert ChatService(session, 1).suggestions() == FALLBACK_SUGGESTIONS


def test_advisor_selection_follows_settings(monkeypatch) -> None:
    from types import SimpleNamespace

    import assistant

    settings = SimpleNamespace(
        groq_api_key=None, groq_model="test-model", groq_temperature=0.2
    )
    monkeypatch.setattr("config.get_settings", lambda: settings)
    assert isinstance(assistant.get_advisor(), RuleBasedAdvisor)

    class FakeGroq:
        def __init__(self, api_key: str) -> None:
            self.api_key = api_key

    settings.groq_api_key = "secret"
    monkeypatch.setattr("groq.Groq", FakeGroq)
    advisor = assistant.get_advisor()
    assert isinstance(advisor, GroqAdvisor)
    assert advisor.model == "test-model"
    assert advisor.client.api_key == "secret"
