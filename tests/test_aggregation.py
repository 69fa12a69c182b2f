from datetime import date

from analytics import aggregate_by_category, aggregate_by_month, summarize
from models import Account, Transaction


def _txn(amount: float, when: date, name: str = "", category=None) -> Transaction:
    return Transaction(amount=amount, date=when, name=name, category=category or [])


def test_month_bucket_totals() -> None:
    rows = aggregate_by_month(
        [
            _txn(-50, date(2025, 1, 10), "Coffee"),
            _txn(2000, date(2025, 1, 15), "Payroll Deposit"),
        ]
    )
    assert rows == [{"month": "2025-01", "inflow": 2000, "outflow": 50, "net": 1950}]


def test_month_buckets_sorted_and_partition_input() -> None:
    txns = [
        _txn(-10, date(2025, 3, 2), "Lunch"),
        _txn(-20, date(2025, 1, 31), "Lunch"),
        _txn(500, date(2025, 2, 1), "Payroll"),
        _txn(-30, date(2025, 2, 28), "Books"),
    ]
    rows = aggregate_by_month(txns)

    assert [r["month"] for r in rows] == ["2025-01", "2025-02", "2025-03"]
    assert sum(r["inflow"] + r["outflow"] for r in rows) == 560
    assert rows[1] == {"month": "2025-02", "inflow": 500, "outflow": 30, "net": 470}


def test_empty_input_has_no_buckets() -> None:
    assert aggregate_by_month([]) == []
    assert aggregate_by_category([]) == []


def test_category_breakdown_skips_income_and_ranks() -> None:
    txns = [
        _txn(-30, date(2025, 1, 1), "Cafe", ["Food"]),
        _txn(-70, date(2025, 1, 2), "Diner", ["Food"]),
        _txn(-40, date(2025, 1, 3), "Train", ["Travel"]),
        _txn(3000, date(2025, 1, 4), "Payroll", ["Transfer"]),
    ]
    assert aggregate_by_category(txns) == [
        {"category": "Food", "amount": 100},
        {"category": "Travel", "amount": 40},
    ]


def test_category_breakdown_is_capped() -> None:
    txns = [
        _txn(-(i + 1), date(2025, 1, 1), "Thing", [f"Cat{i}"]) for i in range(12)
    ]
    rows = aggregate_by_category(txns, top_n=10)

    assert len(rows) == 10
    amounts = [r["amount"] for r in rows]
    assert amounts == sorted(amounts, reverse=True)
    assert rows[0] == {"category": "Cat11", "amount": 12}


def test_summary_cards() -> None:
    accounts = [
        Account(name="Checking", type="depository", current_balance=5000),
        Account(name="Card", type="credit", current_balance=-1200),
    ]
    txns = [
        _txn(2000, date(2025, 1, 4), "Payroll Deposit"),
        _txn(-300, date(2025, 1, 5), "Groceries"),
    ]
    assert summarize(accounts, txns) == {
        "total_assets": 5000,
        "total_liabilities": 1200,
        "net_worth": 3800,
        "monthly_cash_flow": 1700,
    }
