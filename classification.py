"""
Income/expense and display-category heuristics for synced transactions.

Amount signs from the aggregation API are not reliable (sandbox items report
every amount as positive), so the sign is used as a hint and the transaction
name decides positive amounts. The income keyword list is a workaround for
that data quirk and can be replaced from configuration; expect
misclassification on feeds that label income differently.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from models import Flow


DEFAULT_INCOME_KEYWORDS: tuple[str, ...] = (
    "deposit",
    "payroll",
    "payment received",
    "credit",
)

DEFAULT_MERCHANT_CATEGORIES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("uber", "lyft", "taxi"), "Transportation"),
    (("restaurant", "food", "cafe", "starbucks"), "Food and Dining"),
    (("amazon", "walmart", "target"), "Shopping"),
    (("gas", "shell", "chevron"), "Gas"),
)

DEFAULT_NAME_CATEGORIES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("uber", "lyft"), "Transportation"),
    (("payroll", "deposit"), "Income"),
)

GENERAL = "General"
UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class ClassifierConfig:
    income_keywords: tuple[str, ...] = DEFAULT_INCOME_KEYWORDS
    merchant_categories: tuple[tuple[tuple[str, ...], str], ...] = (
        DEFAULT_MERCHANT_CATEGORIES
    )
    name_categories: tuple[tuple[tuple[str, ...], str], ...] = DEFAULT_NAME_CATEGORIES


DEFAULT_CONFIG = ClassifierConfig()


@dataclass(frozen=True)
class Classification:
    flow: Flow
    category: str


def config_from_settings() -> ClassifierConfig:
    from config import get_settings

    keywords = get_settings().income_keywords
    if not keywords:
        return DEFAULT_CONFIG
    return ClassifierConfig(income_keywords=tuple(keywords))


def _contains_any(text: str, needles: Sequence[str]) -> bool:
    return any(needle in text for needle in needles)


def _match_table(
    text: str, table: Sequence[tuple[Sequence[str], str]]
) -> Optional[str]:
    for needles, label in table:
        if _contains_any(text, needles):
            return label
    return None


def classify_flow(txn, config: ClassifierConfig = DEFAULT_CONFIG) -> Flow:
    amount = txn.amount or 0
    if amount < 0:
        return Flow.expense
    name = (txn.name or "").lower()
    if amount > 0 and _contains_any(name, config.income_keywords):
        return Flow.income
    return Flow.expense


def classify_category(txn, config: ClassifierConfig = DEFAULT_CONFIG) -> str:
    labels = txn.category or []
    if labels and labels[0]:
        return labels[0]
    if txn.merchant_name:
        merchant = txn.merchant_name.lower()
        return _match_table(merchant, config.merchant_categories) or GENERAL
    if txn.name:
        name = txn.name.lower()
        return _match_table(name, config.name_categories) or GENERAL
    return UNCATEGORIZED


def classify(txn, config: ClassifierConfig = DEFAULT_CONFIG) -> Classification:
    return Classification(
        flow=classify_flow(txn, config),
        category=classify_category(txn, config),
    )
