"""Chat advisor: financial context assembly and reply generation.

Two advisors share one interface. ``RuleBasedAdvisor`` answers from keyword
intents and works offline. ``GroqAdvisor`` sends the same context to a hosted
chat-completions model. When the chat's data sharing flag is off the advisor
receives no context and must answer generically.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional, Sequence

from analytics import aggregate_by_category, flow_totals
from classification import DEFAULT_CONFIG, ClassifierConfig, classify_category

logger = logging.getLogger(__name__)

PERSONALIZE_HINT = (
    "Want personalized advice? Enable data sharing in the chat header to get "
    "recommendations based on your actual financial data."
)

FALLBACK_SUGGESTIONS = [
    "What is my total spending this month?",
    "How can I improve my savings?",
    "Where should I invest my money?",
    "Can I afford a major purchase?",
]


class AdvisorError(RuntimeError):
    pass


@dataclass
class FinancialContext:
    total_balance: float
    currency: str
    monthly_income: float
    monthly_expenses: float
    savings_rate: float
    accounts: list[dict[str, object]] = field(default_factory=list)
    top_categories: list[dict[str, object]] = field(default_factory=list)
    recent_transactions: list[dict[str, object]] = field(default_factory=list)

    @property
    def net_savings(self) -> float:
        return self.monthly_income - self.monthly_expenses


def build_financial_context(
    accounts: Sequence,
    transactions: Sequence,
    *,
    today: date,
    config: ClassifierConfig = DEFAULT_CONFIG,
) -> FinancialContext:
    window_start = today - timedelta(days=30)
    recent = sorted(
        (t for t in transactions if t.date >= window_start),
        key=lambda t: t.date,
        reverse=True,
    )[:100]
    income, expenses = flow_totals(recent, config)
    savings_rate = (income - expenses) / income * 100 if income > 0 else 0.0
    return FinancialContext(
        total_balance=sum((a.current_balance or 0.0) for a in accounts),
        currency=accounts[0].currency if accounts else "USD",
        monthly_income=income,
        monthly_expenses=expenses,
        savings_rate=savings_rate,
        accounts=[
            {
                "name": a.name,
                "type": a.type,
                "subtype": a.subtype,
                "balance": a.current_balance,
            }
            for a in accounts
        ],
        top_categories=aggregate_by_category(recent, top_n=5, config=config),
        recent_transactions=[
            {
                "name": t.name,
                "amount": t.amount,
                "category": classify_category(t, config),
                "date": t.date.isoformat(),
            }
            for t in recent[:10]
        ],
    )


def context_prompt(context: FinancialContext) -> str:
    cur = context.currency
    lines = [
        "You are a professional financial advisor. The user's current situation:",
        "",
        "ACCOUNT SUMMARY:",
        f"- Total balance: {cur} {context.total_balance:.2f}",
        f"- Number of accounts: {len(context.accounts)}",
        "",
        "ACCOUNTS:",
    ]
    lines += [
        f"- {a['name']} ({a['subtype']}): {cur} {a['balance']:.2f}"
        for a in context.accounts
    ]
    lines += [
        "",
        "MONTHLY CASH FLOW (last 30 days):",
        f"- Income: {cur} {context.monthly_income:.2f}",
        f"- Expenses: {cur} {context.monthly_expenses:.2f}",
        f"- Net savings: {cur} {context.net_savings:.2f}",
        f"- Savings rate: {context.savings_rate:.1f}%",
        "",
        "TOP SPENDING CATEGORIES:",
    ]
    lines += [
        f"- {c['category']}: {cur} {c['amount']:.2f}" for c in context.top_categories
    ]
    lines += ["", "RECENT TRANSACTIONS:"]
    lines += [
        f"- {t['name']}: {cur} {t['amount']:.2f} ({t['category']})"
        for t in context.recent_transactions
    ]
    lines += [
        "",
        "Answer with the user's actual numbers and give two or three specific, "
        "actionable recommendations. Keep it under five paragraphs.",
    ]
    return "\n".join(lines)


GENERIC_PROMPT = (
    "You are a professional financial advisor. The user has disabled data "
    "sharing, so you do not have access to their accounts or transactions. "
    "Give general financial education with typical scenarios and two or three "
    "general recommendations. Never reference personal balances. End with: "
    f'"{PERSONALIZE_HINT}"'
)


def suggest_questions(context: Optional[FinancialContext]) -> list[str]:
    if context is None:
        return list(FALLBACK_SUGGESTIONS)
    suggestions: list[str] = []
    if context.savings_rate < 10:
        suggestions.append("How can I improve my savings rate?")
    elif context.savings_rate > 30:
        suggestions.append("Where should I invest my extra savings?")
    if context.monthly_expenses > context.monthly_income:
        suggestions.append("How can I reduce my monthly expenses?")
    if context.top_categories:
        top = str(context.top_categories[0]["category"]).lower()
        suggestions.append(f"Why am I spending so much on {top}?")
    suggestions += [
        "What is my total spending this month?",
        "Can I afford to buy a house?",
        "What should I do to save for a new car?",
        "How can I grow my wealth faster?",
    ]
    return suggestions[:6]


class RuleBasedAdvisor:
    name = "rules"

    def reply(
        self,
        message: str,
        context: Optional[FinancialContext],
        history: Sequence[dict[str, str]] = (),
    ) -> str:
        question = message.lower()
        if context is None:
            return self._generic(question)

        cur = context.currency
        parts: list[str] = []
        if any(k in question for k in ("spend", "expense", "spent")):
            parts.append(
                f"Over the last 30 days you spent {cur} {context.monthly_expenses:.2f}."
            )
            if context.top_categories:
                top = context.top_categories[0]
                parts.append(
                    f"Your largest category is {top['category']} at "
                    f"{cur} {top['amount']:.2f}."
                )
        if any(k in question for k in ("save", "saving", "savings")):
            parts.append(
                f"Your savings rate is {context.savings_rate:.0f}%. "
                "Aim for 20% or more where possible."
            )
        if any(k in question for k in ("afford", "buy", "purchase")):
            if context.net_savings > 0:
                parts.append(
                    f"You are saving about {cur} {context.net_savings:.2f} a month "
                    f"on a balance of {cur} {context.total_balance:.2f}. Divide the "
                    "price by that amount to see how many months it would take."
                )
            else:
                parts.append(
                    "Your expenses currently match or exceed your income, so a "
                    "large purchase would draw down your balance."
                )
        if any(k in question for k in ("balance", "net worth", "overview", "how am i")):
            parts.append(
                f"Your total balance is {cur} {context.total_balance:.2f}, with "
                f"{cur} {context.monthly_income:.2f} income and "
                f"{cur} {context.monthly_expenses:.2f} expenses this month."
            )
        if not parts:
            parts.append(
                f"Currently: income {cur} {context.monthly_income:.2f}, expenses "
                f"{cur} {context.monthly_expenses:.2f}. Ask about spending, "
                "savings or affordability for specifics."
            )
        return " ".join(parts)

    @staticmethod
    def _generic(question: str) -> str:
        if any(k in question for k in ("save", "saving", "savings")):
            body = (
                "Financial experts generally recommend saving at least 20% of "
                "take-home pay and keeping three to six months of expenses as an "
                "emergency fund."
            )
        elif any(k in question for k in ("invest", "wealth")):
            body = (
                "Most people start with low-cost diversified index funds once an "
                "emergency fund is in place and high-interest debt is paid off."
            )
        elif any(k in question for k in ("debt", "loan", "credit")):
            body = (
                "Paying off the highest-interest balance first usually saves the "
                "most money over time."
            )
        else:
            body = (
                "A simple budget that tracks income, fixed costs and discretionary "
                "spending is the usual first step."
            )
        return f"{body}\n\n{PERSONALIZE_HINT}"


class GroqAdvisor:
    name = "groq"

    def __init__(self, client: object, model: str, temperature: float) -> None:
        self.client = client
        self.model = model
        self.temperature = temperature

    def reply(
        self,
        message: str,
        context: Optional[FinancialContext],
        history: Sequence[dict[str, str]] = (),
    ) -> str:
        system = context_prompt(context) if context is not None else GENERIC_PROMPT
        messages = [{"role": "system", "content": system}]
        messages += [{"role": m["role"], "content": m["content"]} for m in history]
        messages.append({"role": "user", "content": message})
        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
            )
        except Exception as exc:
            logger.exception("advisor_error: provider=groq")
            raise AdvisorError("Failed to generate AI response") from exc
        content = completion.choices[0].message.content or ""
        return content.strip()


def get_advisor():
    from config import get_settings

    settings = get_settings()
    if not settings.groq_api_key:
        return RuleBasedAdvisor()
    from groq import Groq

    client = Groq(api_key=settings.groq_api_key)
    return GroqAdvisor(client, settings.groq_model, settings.groq_temperature)
