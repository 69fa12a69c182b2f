from datetime import date

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from database import Base
from models import Account, Transaction, User
from schemas import SyncIn, TransactionPatch
from services import (
    AccountService,
    SyncService,
    TransactionFilters,
    TransactionService,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = SessionLocal()
    session.add(User(email="owner@example.com", name="Owner"))
    session.commit()
    return session


def _payload(**overrides) -> SyncIn:
    data = {
        "item_id": "item-1",
        "accounts": [
            {
                "account_id": "acc-check",
                "name": "Chase Checking",
                "official_name": "Chase",
                "type": "depository",
                "subtype": "checking",
                "mask": "0000",
                "balances": {"current": 2500, "available": 2400, "iso_currency_code": "USD"},
            },
            {
                "account_id": "acc-card",
                "name": "Chase Sapphire",
                "official_name": "Chase",
                "type": "credit",
                "subtype": "credit card",
                "balances": {"current": -400},
            },
            {
                "account_id": "acc-save",
                "name": "Ally Savings",
                "type": "depository",
                "balances": {"current": 1000},
            },
        ],
        "transactions": [
            {
                "transaction_id": "t-1",
                "account_id": "acc-check",
                "amount": -12.5,
                "date": "2025-01-05",
                "name": "Starbucks",
                "merchant_name": "Starbucks",
                "category": ["Food and Drink", "Coffee Shop"],
            },
            {
                "transaction_id": "t-2",
                "account_id": "acc-check",
                "amount": 2000,
                "date": "2025-01-15",
                "name": "ACME Payroll Deposit",
            },
            {
                "transaction_id": "t-3",
                "account_id": "acc-card",
                "amount": -25,
                "date": "2025-01-20",
                "name": "Uber 072515 SF",
                "merchant_name": "Uber",
            },
        ],
    }
    data.update(overrides)
    return SyncIn.model_validate(data)


def test_sync_stores_accounts_and_transactions() -> None:
    session = make_session()
    counts = SyncService(session, 1).sync(_payload())

    assert counts == {"accounts": 3, "transactions": 3, "skipped": 0}
    user = session.get(User, 1)
    assert user.has_bank_connected is True
    assert user.onboarding_complete is True
    assert user.plaid_item_id == "item-1"
    savings = session.scalar(select(Account).where(Account.plaid_account_id == "acc-save"))
    assert savings.subtype == "depository"
    assert savings.currency == "USD"


def test_resync_updates_in_place() -> None:
    session = make_session()
    SyncService(session, 1).sync(_payload())
    txn = session.scalar(
        select(Transaction).where(Transaction.plaid_transaction_id == "t-1")
    )
    TransactionService(session, 1).update(txn.id, TransactionPatch(tags=["coffee"]))

    payload = _payload()
    payload.transactions[0].amount = -14.0
    payload.accounts[0].balances.current = 3000
    SyncService(session, 1).sync(payload)

    assert session.scalar(select(func.count(Transaction.id))) == 3
    assert session.scalar(select(func.count(Account.id))) == 3
    session.refresh(txn)
    assert txn.amount == -14.0
    assert txn.tags == ["coffee"]


def test_sync_skips_bad_records() -> None:
    session = make_session()
    payload = _payload(
        transactions=[
            {"transaction_id": None, "account_id": "acc-check", "amount": 1, "date": "2025-01-01"},
            {"transaction_id": "null", "account_id": "acc-check", "amount": 1, "date": "2025-01-01"},
            {"transaction_id": "t-9", "account_id": "missing", "amount": 1, "date": "2025-01-01"},
            {"transaction_id": "t-10", "account_id": "acc-save", "amount": -5, "date": "2025-01-02"},
        ]
    )

    counts = SyncService(session, 1).sync(payload)

    assert counts["transactions"] == 1
    assert counts["skipped"] == 3


def test_unlink_removes_accounts_and_transactions() -> None:
    session = make_session()
    SyncService(session, 1).sync(_payload())

    SyncService(session, 1).unlink()

    assert session.scalar(select(func.count(Transaction.id))) == 0
    assert session.scalar(select(func.count(Account.id))) == 0
    user = session.get(User, 1)
    assert user.has_bank_connected is False
    assert user.plaid_item_id is None


def test_unlink_without_bank_is_rejected() -> None:
    session = make_session()
    with pytest.raises(ValueError):
        SyncService(session, 1).unlink()


def test_accounts_grouped_by_institution() -> None:
    session = make_session()
    SyncService(session, 1).sync(_payload())

    groups = AccountService(session, 1).grouped_by_institution()

    by_name = {g["institution_name"]: g for g in groups}
    assert set(by_name) == {"Chase", "Ally"}
    assert by_name["Chase"]["total_balance"] == 2100
    assert len(by_name["Chase"]["accounts"]) == 2


def test_transaction_filters() -> None:
    session = make_session()
    SyncService(session, 1).sync(_payload())
    service = TransactionService(session, 1)

    items, total = service.list(TransactionFilters(search="uber"))
    assert total == 1 and items[0].plaid_transaction_id == "t-3"

    items, total = service.list(TransactionFilters(category="Transportation"))
    assert [t.plaid_transaction_id for t in items] == ["t-3"]

    items, total = service.list(TransactionFilters(category="Coffee Shop"))
    assert [t.plaid_transaction_id for t in items] == ["t-1"]

    items, total = service.list(
        TransactionFilters(start_date=date(2025, 1, 10), end_date=date(2025, 1, 16))
    )
    assert [t.plaid_transaction_id for t in items] == ["t-2"]

    items, total = service.list(TransactionFilters(), limit=2, offset=0)
    assert total == 3
    assert [t.plaid_transaction_id for t in items] == ["t-3", "t-2"]


def test_latest_returns_three_newest() -> None:
    session = make_session()
    SyncService(session, 1).sync(_payload())

    latest = TransactionService(session, 1).latest()

    assert [t.plaid_transaction_id for t in latest] == ["t-3", "t-2", "t-1"]


def test_tag_patch_deduplicates() -> None:
    session = make_session()
    SyncService(session, 1).sync(_payload())
    service = TransactionService(session, 1)
    txn = service.latest(1)[0]

    updated = service.update(
        txn.id,
        TransactionPatch(tags=["Travel", "travel", " TRAVEL "], is_recurring=True),
    )

    assert updated.tags == ["Travel"]
    assert updated.is_recurring is True
