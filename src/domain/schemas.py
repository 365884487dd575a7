from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from domain.models import Account, Category, PlanId, SubscriptionStatus, Transaction, TransactionType, category_matches_type

# Amounts are stored to the cent and stay far below the 28-digit default decimal context.
MAX_AMOUNT_DIGITS = 18
AMOUNT_DECIMAL_PLACES = 2
CENT = Decimal("0.01")


def _coerce_date(value: Any) -> Any:
    if isinstance(value, (date, datetime)) or not isinstance(value, str):
        return value

    text = value.strip()
    if not text:
        return None

    # Canonical format first.
    for fmt in ("%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y", "%m-%d-%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return value


def _coerce_datetime(value: Any) -> Any:
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            coerced = _coerce_date(text)
            if not isinstance(coerced, date):
                return value
            moment = datetime(coerced.year, coerced.month, coerced.day)
    else:
        return value

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class DateRange(BaseModel):
    start: Optional[date] = Field(default=None, description="Start date in YYYY-MM-DD format, inclusive.")
    end: Optional[date] = Field(default=None, description="End date in YYYY-MM-DD format, inclusive.")

    @field_validator("start", "end", mode="before")
    @classmethod
    def coerce_date(cls, value: Any) -> Any:
        return _coerce_date(value)

    @model_validator(mode="after")
    def validate_order(self) -> "DateRange":
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValueError("startDate must be <= endDate")
        return self


class TransactionQuery(BaseModel):
    """Owner-scoped ledger filters. Every field is optional; all given fields must match."""

    txn_type: Optional[TransactionType] = None
    category: Optional[Category] = None
    date_range: DateRange = Field(default_factory=DateRange)

    @field_validator("txn_type", "category", mode="before")
    @classmethod
    def blank_is_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip().lower()
            return text or None
        return value


class Pagination(BaseModel):
    limit: int = Field(default=100, ge=1, le=1000)
    page: int = Field(default=1, ge=1)


class TransactionCreate(ApiModel):
    txn_type: TransactionType = Field(alias="type")
    category: Category
    amount: Decimal = Field(ge=0, max_digits=MAX_AMOUNT_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES)
    description: str = ""
    date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    is_recurring: bool = False
    receipt_url: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, value: Any) -> Any:
        return _coerce_datetime(value)

    @field_validator("description", mode="before")
    @classmethod
    def strip_description(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value.strip() if isinstance(value, str) else value

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, value: List[str]) -> List[str]:
        return [tag.strip() for tag in value if tag and tag.strip()]

    @model_validator(mode="after")
    def validate_category(self) -> "TransactionCreate":
        if not category_matches_type(self.category, self.txn_type):
            raise ValueError(f"category {self.category.value!r} is not valid for type {self.txn_type.value!r}")
        return self


class TransactionUpdate(ApiModel):
    """Partial edit. Category/type consistency is checked by the ledger service against the merged record."""

    txn_type: Optional[TransactionType] = Field(default=None, alias="type")
    category: Optional[Category] = None
    amount: Optional[Decimal] = Field(default=None, ge=0, max_digits=MAX_AMOUNT_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES)
    description: Optional[str] = None
    date: Optional[datetime] = None
    tags: Optional[List[str]] = None
    is_recurring: Optional[bool] = None

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, value: Any) -> Any:
        return _coerce_datetime(value)

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, by_alias=False)


class TransactionOut(ApiModel):
    id: str
    account_id: str
    txn_type: TransactionType = Field(alias="type")
    category: Category
    amount: float
    description: str
    date: datetime
    receipt_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    is_recurring: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, txn: Transaction) -> "TransactionOut":
        return cls(
            id=txn.id,
            account_id=txn.account_id,
            txn_type=txn.txn_type,
            category=txn.category,
            amount=float(txn.amount),
            description=txn.description,
            date=txn.date,
            receipt_url=txn.receipt_url,
            tags=list(txn.tags),
            is_recurring=txn.is_recurring,
            created_at=txn.created_at,
            updated_at=txn.updated_at,
        )


class LedgerPage(ApiModel):
    transactions: List[TransactionOut] = Field(default_factory=list)
    current_page: int
    total_pages: int
    total_transactions: int


class CsvImportResult(ApiModel):
    message: str = "CSV import completed"
    imported: int
    errors: Optional[List[str]] = None


class ReceiptExtraction(ApiModel):
    txn_type: Literal["expense"] = Field(default="expense", alias="type")
    amount: Decimal = Field(ge=0, max_digits=MAX_AMOUNT_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES)
    description: str = ""
    category: Category = Category.OTHER_EXPENSE
    date: Optional[datetime] = None
    items: List[str] = Field(default_factory=list)

    @field_validator("amount", mode="before")
    @classmethod
    def round_amount(cls, value: Any) -> Any:
        # Vision models report totals like 12.999; keep cents and let the field bounds reject the rest.
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return value
        if not amount.is_finite() or amount.adjusted() >= MAX_AMOUNT_DIGITS:
            return value
        return amount.quantize(CENT)

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, value: Any) -> Any:
        # Receipts are always expenses; anything else folds into other_expense.
        text = str(value or "").strip().lower()
        try:
            category = Category(text)
        except ValueError:
            return Category.OTHER_EXPENSE
        if not category_matches_type(category, TransactionType.EXPENSE):
            return Category.OTHER_EXPENSE
        return category

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, value: Any) -> Any:
        # An unreadable receipt date falls back to "now" at creation time.
        coerced = _coerce_datetime(value)
        return coerced if isinstance(coerced, datetime) else None

    @field_validator("items", mode="before")
    @classmethod
    def coerce_items(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [str(item) for item in value if item is not None]

    @field_validator("description", mode="before")
    @classmethod
    def coerce_description(cls, value: Any) -> Any:
        return "" if value is None else str(value).strip()


class ReceiptScanResult(ApiModel):
    transaction: TransactionOut
    extracted_data: Dict[str, Any]


class Summary(ApiModel):
    total_income: float = 0.0
    total_expenses: float = 0.0
    balance: float = 0.0
    income_count: int = 0
    expense_count: int = 0


class CategoryTotal(ApiModel):
    txn_type: TransactionType = Field(alias="type")
    category: Category
    total: float
    count: int


class MonthlyTrendPoint(ApiModel):
    year: int
    month: int
    txn_type: TransactionType = Field(alias="type")
    total: float


class DailyTrendPoint(ApiModel):
    date: str
    txn_type: TransactionType = Field(alias="type")
    total: float


class AnalyticsReport(ApiModel):
    summary: Summary
    by_category: List[CategoryTotal] = Field(default_factory=list)
    monthly_trend: List[MonthlyTrendPoint] = Field(default_factory=list)
    daily_trend: List[DailyTrendPoint] = Field(default_factory=list)


class InsightItem(BaseModel):
    title: str
    description: str
    type: Literal["positive", "warning", "tip"] = "tip"


class MonthlyInsights(BaseModel):
    summary: str
    insights: List[InsightItem] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class InsightsResult(BaseModel):
    """Outcome of a best-effort insight request: insights present, or unavailable with a reason."""

    available: bool
    insights: Optional[MonthlyInsights] = None
    reason: Optional[str] = None

    @classmethod
    def present(cls, insights: MonthlyInsights) -> "InsightsResult":
        return cls(available=True, insights=insights)

    @classmethod
    def unavailable(cls, reason: str) -> "InsightsResult":
        return cls(available=False, reason=reason)


class ReportPeriod(ApiModel):
    year: int
    month: int
    start_date: date
    end_date: date


class MonthlySummary(ApiModel):
    total_income: float = 0.0
    total_expenses: float = 0.0
    balance: float = 0.0
    transaction_count: int = 0


class TopCategory(ApiModel):
    category: Category
    total: float
    count: int


class MonthlyReport(ApiModel):
    period: ReportPeriod
    summary: MonthlySummary
    top_categories: List[TopCategory] = Field(default_factory=list)
    insights: InsightsResult = Field(exclude=True)

    def to_response(self) -> Dict[str, Any]:
        payload = self.model_dump(by_alias=True, mode="json")
        payload["aiInsights"] = (
            self.insights.insights.model_dump(mode="json") if self.insights.available and self.insights.insights else None
        )
        return payload


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        text = value.strip().lower()
        if "@" not in text:
            raise ValueError("Please include a valid email")
        return text


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class SubscriptionOut(ApiModel):
    status: SubscriptionStatus
    plan: PlanId
    trial_ends_at: datetime
    current_period_end: Optional[datetime] = None


class AccountOut(ApiModel):
    id: str
    name: str
    email: str
    subscription: SubscriptionOut
    transaction_count: int

    @classmethod
    def from_model(cls, account: Account) -> "AccountOut":
        sub = account.subscription
        return cls(
            id=account.id,
            name=account.name,
            email=account.email,
            subscription=SubscriptionOut(
                status=sub.status,
                plan=sub.plan,
                trial_ends_at=sub.trial_ends_at,
                current_period_end=sub.current_period_end,
            ),
            transaction_count=account.transaction_count,
        )


class AuthResponse(ApiModel):
    token: str
    user: AccountOut


class Plan(ApiModel):
    id: PlanId
    name: str
    price: float
    currency: str = "AED"
    price_usd: Optional[float] = Field(default=None, alias="priceUSD")
    interval: str
    savings: Optional[str] = None
    transaction_limit: Optional[int] = None
    features: List[str] = Field(default_factory=list)


class CheckoutRequest(BaseModel):
    plan: PlanId


class CheckoutSession(ApiModel):
    payment_id: str
    url: str


class SubscriptionStatusOut(ApiModel):
    status: SubscriptionStatus
    plan: PlanId
    transaction_count: int
    can_add_transactions: bool
    trial_ends_at: Optional[datetime] = None
    remaining_transactions: Optional[int] = None
    current_period_end: Optional[datetime] = None
    payment_reference: Optional[str] = Field(default=None, alias="ziinaPaymentId")


class WebhookPayment(BaseModel):
    id: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)


class WebhookEvent(BaseModel):
    type: str
    data: WebhookPayment = Field(default_factory=WebhookPayment)
