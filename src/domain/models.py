from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum


TRIAL_PERIOD = timedelta(days=7)
TRIAL_TRANSACTION_LIMIT = 50


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class Category(str, Enum):
    SALARY = "salary"
    FREELANCE = "freelance"
    INVESTMENT = "investment"
    OTHER_INCOME = "other_income"
    FOOD = "food"
    TRANSPORT = "transport"
    UTILITIES = "utilities"
    ENTERTAINMENT = "entertainment"
    HEALTHCARE = "healthcare"
    SHOPPING = "shopping"
    RENT = "rent"
    EDUCATION = "education"
    OTHER_EXPENSE = "other_expense"


CATEGORIES_BY_TYPE: dict[TransactionType, frozenset[Category]] = {
    TransactionType.INCOME: frozenset({
        Category.SALARY,
        Category.FREELANCE,
        Category.INVESTMENT,
        Category.OTHER_INCOME,
    }),
    TransactionType.EXPENSE: frozenset({
        Category.FOOD,
        Category.TRANSPORT,
        Category.UTILITIES,
        Category.ENTERTAINMENT,
        Category.HEALTHCARE,
        Category.SHOPPING,
        Category.RENT,
        Category.EDUCATION,
        Category.OTHER_EXPENSE,
    }),
}


def category_matches_type(category: Category, txn_type: TransactionType) -> bool:
    return category in CATEGORIES_BY_TYPE[txn_type]


class SubscriptionStatus(str, Enum):
    FREE_TRIAL = "free_trial"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PlanId(str, Enum):
    TRIAL = "trial"
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass
class Transaction:
    id: str
    account_id: str
    txn_type: TransactionType
    category: Category
    amount: Decimal
    date: datetime
    description: str = ""
    receipt_url: str | None = None
    tags: list[str] = field(default_factory=list)
    is_recurring: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Subscription:
    trial_ends_at: datetime
    status: SubscriptionStatus = SubscriptionStatus.FREE_TRIAL
    plan: PlanId = PlanId.TRIAL
    payment_reference: str | None = None
    current_period_end: datetime | None = None


@dataclass
class Account:
    id: str
    name: str
    email: str
    password_hash: str
    subscription: Subscription
    created_at: datetime
    # Derived from the ledger whenever the account is loaded.
    transaction_count: int = 0
