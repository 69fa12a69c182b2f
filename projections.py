import math
from dataclasses import dataclass
from datetime import date
from typing import Optional

from periods import add_months


DAYS_PER_MONTH = 30


@dataclass(frozen=True)
class GoalProjection:
    tip: str
    estimated_completion: Optional[date]


def _money(currency: str, amount: float) -> str:
    return f"{currency} {amount:,.0f}"


def _month_label(value: date) -> str:
    return value.strftime("%B %Y")


def _progress(goal) -> float:
    if not goal.target_amount or goal.target_amount <= 0:
        return 100.0
    return (goal.current_amount or 0) / goal.target_amount * 100


def project_goal(goal, today: date) -> GoalProjection:
    """
    Projected completion and advice for a goal.

    Rules are checked in order: already reached, monthly contribution set,
    deadline only, neither. A zero target counts as reached.
    """
    progress = _progress(goal)
    remaining = max(goal.target_amount - (goal.current_amount or 0), 0.0)
    currency = goal.currency or "USD"

    if progress >= 100:
        return GoalProjection("Congratulations! You've reached your goal!", today)

    contribution = goal.monthly_contribution or 0
    if contribution > 0:
        months_needed = math.ceil(remaining / contribution)
        completion = add_months(today, months_needed)
        if goal.deadline and completion > goal.deadline:
            months_left = (goal.deadline - today).days / DAYS_PER_MONTH
            if months_left <= 0:
                return GoalProjection(
                    "Deadline passed. Consider extending it or increasing "
                    "contributions.",
                    completion,
                )
            additional = math.ceil(remaining / months_left - contribution)
            if additional > 0:
                return GoalProjection(
                    f"Increase your monthly contribution by "
                    f"{_money(currency, additional)} to meet your deadline.",
                    completion,
                )
            return GoalProjection(
                f"Add {_money(currency, contribution)}/month to reach your goal "
                f"by {_month_label(completion)}.",
                completion,
            )
        return GoalProjection(
            f"On track! Continue {_money(currency, contribution)}/month to reach "
            f"your goal by {_month_label(completion)}.",
            completion,
        )

    if goal.deadline:
        months_left = (goal.deadline - today).days / DAYS_PER_MONTH
        if months_left > 0:
            needed = math.ceil(remaining / months_left)
            return GoalProjection(
                f"Save {_money(currency, needed)}/month to reach your goal by the "
                "deadline.",
                None,
            )
        return GoalProjection(
            "Deadline passed. Consider extending it or increasing contributions.",
            None,
        )

    if progress < 25:
        tip = "Just getting started! Set a monthly contribution to track progress."
    elif progress < 50:
        tip = f"Good progress! You're {progress:.0f}% of the way there."
    elif progress < 75:
        tip = "Over halfway! Keep up the momentum."
    else:
        tip = f"Almost there! Just {_money(currency, remaining)} to go."
    return GoalProjection(tip, None)


def simulate_growth(
    current_balance: float,
    *,
    monthly_savings: float = 0.0,
    expected_return: float = 0.07,
    inflation: float = 0.05,
    years: int = 10,
) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    balance = current_balance
    for year in range(years + 1):
        rows.append(
            {
                "year": year,
                "balance": round(balance),
                "real_value": round(balance / (1 + inflation) ** year),
            }
        )
        balance = balance * (1 + expected_return) + monthly_savings * 12
    return rows
