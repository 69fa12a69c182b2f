from __future__ import annotations

import calendar
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional, Sequence

from classification import (
    DEFAULT_CONFIG,
    ClassifierConfig,
    classify,
    classify_flow,
)
from models import Flow
from periods import month_key


ANOMALY_MULTIPLIER = 3
ANOMALY_FALLBACK_CATEGORY = "Other"

_CURRENCY_SYMBOLS = {"USD": "$", "INR": "₹", "EUR": "€", "GBP": "£"}


def format_currency(amount: float, currency: str = "USD") -> str:
    symbol = _CURRENCY_SYMBOLS.get(currency, currency)
    return f"{symbol}{amount:.0f}"


def aggregate_by_month(
    transactions: Iterable, config: ClassifierConfig = DEFAULT_CONFIG
) -> list[dict[str, object]]:
    buckets: dict[str, dict[str, float]] = {}
    for txn in transactions:
        bucket = buckets.setdefault(
            month_key(txn.date), {"inflow": 0.0, "outflow": 0.0}
        )
        if classify_flow(txn, config) == Flow.income:
            bucket["inflow"] += txn.amount
        else:
            bucket["outflow"] += abs(txn.amount)

    return [
        {
            "month": month,
            "inflow": buckets[month]["inflow"],
            "outflow": buckets[month]["outflow"],
            "net": buckets[month]["inflow"] - buckets[month]["outflow"],
        }
        for month in sorted(buckets)
    ]


def category_totals(
    transactions: Iterable, config: ClassifierConfig = DEFAULT_CONFIG
) -> dict[str, float]:
    totals: dict[str, float] = defaultdict(float)
    for txn in transactions:
        result = classify(txn, config)
        if result.flow != Flow.expense:
            continue
        totals[result.category] += abs(txn.amount)
    return dict(totals)


def aggregate_by_category(
    transactions: Iterable,
    top_n: int = 10,
    config: ClassifierConfig = DEFAULT_CONFIG,
) -> list[dict[str, object]]:
    totals = category_totals(transactions, config)
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return [
        {"category": category, "amount": amount}
        for category, amount in ranked[: max(top_n, 0)]
    ]


def anomaly_category(txn) -> str:
    labels = txn.category or []
    if labels and labels[0]:
        return labels[0]
    return ANOMALY_FALLBACK_CATEGORY


def category_means(transactions: Sequence) -> dict[str, float]:
    sums: dict[str, float] = defaultdict(float)
    counts: dict[str, int] = defaultdict(int)
    for txn in transactions:
        key = anomaly_category(txn)
        sums[key] += abs(txn.amount)
        counts[key] += 1
    return {key: sums[key] / counts[key] for key in sums}


def is_anomalous(amount: float, category_mean: float) -> bool:
    return abs(amount) > category_mean * ANOMALY_MULTIPLIER


def anomaly_flags(transactions: Sequence) -> list[bool]:
    """
    Flag for each transaction, in input order. The mean includes the
    transaction being tested.
    """
    means = category_means(transactions)
    return [
        is_anomalous(txn.amount, means.get(anomaly_category(txn), 0.0))
        for txn in transactions
    ]


def balance_totals(accounts: Iterable) -> tuple[float, float]:
    assets = 0.0
    liabilities = 0.0
    for account in accounts:
        balance = account.current_balance or 0.0
        if balance >= 0:
            assets += balance
        else:
            liabilities += abs(balance)
    return assets, liabilities


@dataclass(frozen=True)
class NetWorthTrend:
    points: list[dict[str, object]]
    current_net_worth: float


def reconstruct_net_worth(
    accounts: Sequence,
    transactions: Sequence,
    *,
    today: date,
    config: ClassifierConfig = DEFAULT_CONFIG,
) -> NetWorthTrend:
    """
    Roll live balances backwards through the transaction history.

    Months are visited newest first. A month's snapshot is taken before that
    month's own transactions are undone, so it reflects balances after every
    later month has been reversed. Only assets move; liabilities keep their
    present value.
    """
    assets, liabilities = balance_totals(accounts)

    by_month: dict[str, list] = defaultdict(list)
    for txn in transactions:
        by_month[month_key(txn.date)].append(txn)

    snapshots: dict[str, tuple[float, float]] = {}
    running_assets = assets
    for month in sorted(by_month, reverse=True):
        snapshots[month] = (running_assets, liabilities)
        for txn in by_month[month]:
            if classify_flow(txn, config) == Flow.income:
                running_assets -= txn.amount
            else:
                running_assets += abs(txn.amount)

    snapshots[month_key(today)] = (assets, liabilities)

    points = [
        {
            "month": month,
            "assets": snapshots[month][0],
            "liabilities": snapshots[month][1],
            "net_worth": snapshots[month][0] - snapshots[month][1],
        }
        for month in sorted(snapshots)
    ]
    current = sum((a.current_balance or 0.0) for a in accounts)
    return NetWorthTrend(points=points, current_net_worth=current)


def flow_totals(
    transactions: Iterable, config: ClassifierConfig = DEFAULT_CONFIG
) -> tuple[float, float]:
    income = 0.0
    expenses = 0.0
    for txn in transactions:
        if classify_flow(txn, config) == Flow.income:
            income += txn.amount
        else:
            expenses += abs(txn.amount)
    return income, expenses


def summarize(
    accounts: Sequence,
    recent_transactions: Iterable,
    config: ClassifierConfig = DEFAULT_CONFIG,
) -> dict[str, float]:
    assets, liabilities = balance_totals(accounts)
    inflow, outflow = flow_totals(recent_transactions, config)
    return {
        "total_assets": assets,
        "total_liabilities": liabilities,
        "net_worth": assets - liabilities,
        "monthly_cash_flow": inflow - outflow,
    }


def _pct_change(current: float, previous: float) -> float:
    if previous == 0:
        return 0.0
    return (current - previous) / abs(previous) * 100


def _direction(change: float) -> str:
    if change > 5:
        return "increasing"
    if change < -5:
        return "decreasing"
    return "stable"


def build_insights(
    accounts: Sequence,
    transactions: Sequence,
    *,
    today: date,
    config: ClassifierConfig = DEFAULT_CONFIG,
) -> dict[str, object]:
    currency = accounts[0].currency if accounts else "USD"
    total_balance = sum((a.current_balance or 0.0) for a in accounts)

    current_start = today - timedelta(days=30)
    previous_start = today - timedelta(days=60)
    trend_start = today - timedelta(days=180)

    current = [t for t in transactions if t.date >= current_start]
    previous = [t for t in transactions if previous_start <= t.date < current_start]

    current_income, current_expenses = flow_totals(current, config)
    previous_income, previous_expenses = flow_totals(previous, config)

    spending_change = _pct_change(current_expenses, previous_expenses)
    income_change = _pct_change(current_income, previous_income)
    savings_change = (
        _pct_change(
            current_income - current_expenses, previous_income - previous_expenses
        )
        if previous_income > 0
        else 0.0
    )

    current_by_category = category_totals(current, config)
    previous_by_category = category_totals(previous, config)
    category_changes = []
    for category in set(current_by_category) | set(previous_by_category):
        now_amount = current_by_category.get(category, 0.0)
        then_amount = previous_by_category.get(category, 0.0)
        change = _pct_change(now_amount, then_amount)
        if abs(change) > 15:
            category_changes.append(
                {
                    "category": category,
                    "current": now_amount,
                    "previous": then_amount,
                    "change": change,
                }
            )
    category_changes.sort(key=lambda c: (-abs(c["change"]), c["category"]))

    insights: list[dict[str, object]] = []
    if category_changes:
        top = category_changes[0]
        verb = "increased" if top["change"] > 0 else "decreased"
        insights.append(
            {
                "id": 1,
                "title": f"{top['category']} Spending {verb.capitalize()}",
                "description": (
                    f"Your spending in the {top['category']} category has {verb} "
                    f"by {abs(top['change']):.1f}% this month."
                ),
                "type": "spending" if top["change"] > 0 else "savings",
                "change": top["change"],
                "category": top["category"],
            }
        )

    top_category: Optional[tuple[str, float]] = None
    if current_by_category:
        top_category = max(current_by_category.items(), key=lambda item: item[1])
    if top_category and top_category[1] > 0:
        potential = top_category[1] * 0.15
        insights.append(
            {
                "id": 2,
                "title": "Savings Opportunity",
                "description": (
                    f"You could save {format_currency(potential, currency)}/month by "
                    f"reducing {top_category[0]} expenses by 15%."
                ),
                "type": "savings",
                "potential": potential,
            }
        )

    if -5 < income_change < 5:
        stability = "Your income has remained consistent over the past month."
    else:
        verb = "increased" if income_change > 0 else "decreased"
        stability = (
            f"Your income has {verb} by {abs(income_change):.1f}% this month."
        )
    insights.append(
        {
            "id": 3,
            "title": "Income Stability",
            "description": stability,
            "type": "income",
            "change": income_change,
        }
    )

    monthly_savings = current_income - current_expenses
    recommendations: list[dict[str, object]] = []
    if top_category and top_category[1] > 1000:
        name, amount = top_category
        recommendations.append(
            {
                "id": 1,
                "title": f"Reduce {name} Spending",
                "description": (
                    f"Consider limiting {name} expenses to save more each month."
                ),
                "action": (
                    f"Set a monthly limit of {format_currency(amount * 0.85, currency)} "
                    f"for {name}"
                ),
                "impact": f"Save {format_currency(amount * 0.15, currency)}/month",
            }
        )
    if monthly_savings > 5000:
        invest = min(monthly_savings * 0.3, 10000)
        recommendations.append(
            {
                "id": 2,
                "title": "Invest in Mutual Funds",
                "description": (
                    f"Start investing {format_currency(invest, currency)}/month in "
                    "mutual funds for long-term growth."
                ),
                "action": "Set up automatic investment transfer",
                "impact": f"Grow wealth by {format_currency(invest * 12, currency)}/year",
            }
        )
    _, liabilities = balance_totals(accounts)
    if liabilities > 0:
        extra = max(min(monthly_savings * 0.2, 5000), 0.0)
        recommendations.append(
            {
                "id": 3,
                "title": "Pay Off High-Interest Debt",
                "description": "Focus on paying off your debt to reduce interest payments.",
                "action": (
                    f"Allocate extra {format_currency(extra, currency)}/month towards "
                    "debt repayment"
                ),
                "impact": "Reduce debt faster and save on interest",
            }
        )

    monthly_expenses: dict[str, float] = defaultdict(float)
    for txn in transactions:
        if txn.date < trend_start:
            continue
        if classify_flow(txn, config) == Flow.expense:
            monthly_expenses[month_key(txn.date)] += abs(txn.amount)
    trend_chart = [
        {
            "month": month,
            "label": calendar.month_abbr[int(month[5:7])],
            "expenses": monthly_expenses[month],
        }
        for month in sorted(monthly_expenses)[-6:]
    ]

    return {
        "trends": {
            "spending_trend": _direction(spending_change),
            "saving_trend": _direction(savings_change),
            "income_trend": _direction(income_change),
        },
        "insights": insights,
        "recommendations": recommendations,
        "trend_chart_data": trend_chart,
        "summary": {
            "total_balance": total_balance,
            "monthly_income": current_income,
            "monthly_expenses": current_expenses,
            "monthly_savings": monthly_savings,
        },
        "currency": currency,
    }
