from datetime import date

from analytics import build_insights
from csv_utils import export_chart, sanitize_csv_value
from models import Account, Transaction
from periods import add_months, resolve_range

TODAY = date(2025, 6, 30)


def _txn(amount: float, when: date, name: str, category=None) -> Transaction:
    return Transaction(amount=amount, date=when, name=name, category=category or [])


def test_insights_compare_last_two_windows() -> None:
    accounts = [
        Account(name="Checking", type="depository", current_balance=8000, currency="USD"),
        Account(name="Card", type="credit", current_balance=-500, currency="USD"),
    ]
    txns = [
        _txn(3000, date(2025, 5, 15), "Payroll"),
        _txn(-400, date(2025, 5, 20), "Market", ["Groceries"]),
        _txn(3000, date(2025, 6, 15), "Payroll"),
        _txn(-1200, date(2025, 6, 20), "Market", ["Groceries"]),
    ]

    result = build_insights(accounts, txns, today=TODAY)

    assert result["trends"] == {
        "spending_trend": "increasing",
        "saving_trend": "decreasing",
        "income_trend": "stable",
    }
    titles = [i["title"] for i in result["insights"]]
    assert titles == [
        "Groceries Spending Increased",
        "Savings Opportunity",
        "Income Stability",
    ]
    rec_titles = [r["title"] for r in result["recommendations"]]
    assert rec_titles == ["Reduce Groceries Spending", "Pay Off High-Interest Debt"]
    assert [p["month"] for p in result["trend_chart_data"]] == ["2025-05", "2025-06"]
    assert result["summary"]["monthly_savings"] == 1800
    assert result["currency"] == "USD"


def test_insights_without_data() -> None:
    result = build_insights([], [], today=TODAY)
    assert result["trends"]["spending_trend"] == "stable"
    assert [i["title"] for i in result["insights"]] == ["Income Stability"]
    assert result["recommendations"] == []


def test_ranges_fall_back_to_default() -> None:
    assert resolve_range("1y", today=TODAY).start == date(2024, 6, 30)
    assert resolve_range("2y", today=TODAY).slug == "2y"
    fallback = resolve_range("forever", today=TODAY)
    assert fallback.slug == "6m"
    assert fallback.start == date(2024, 12, 30)


def test_add_months_clamps_day() -> None:
    assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert add_months(date(2024, 3, 31), -1) == date(2024, 2, 29)


def test_chart_export_guards_against_formulas() -> None:
    text = export_chart("expenses", [{"category": "=SUM(A1)", "amount": 12.5}])
    assert text.splitlines() == ["Category,Amount", "\t=SUM(A1),12.50"]
    assert sanitize_csv_value("  ") == ""
