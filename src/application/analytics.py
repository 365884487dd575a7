from __future__ import annotations

import logging
import time
from calendar import monthrange
from collections import defaultdict
from datetime import date
from decimal import Context, Decimal, localcontext
from typing import Iterable

from domain.models import Transaction, TransactionType
from domain.schemas import (
    CENT,
    AnalyticsReport,
    CategoryTotal,
    DailyTrendPoint,
    DateRange,
    InsightsResult,
    MonthlyReport,
    MonthlySummary,
    MonthlyTrendPoint,
    ReportPeriod,
    Summary,
    TopCategory,
    TransactionQuery,
)
from infrastructure.persistence.database import utcnow
from infrastructure.persistence.ledger_store import LedgerStore
from llm.insights_llm import InsightsLLM

logger = logging.getLogger(__name__)

TOP_CATEGORY_LIMIT = 5

_ZERO = Decimal("0")

# Sums of stored amounts can outgrow the default 28-digit context.
_MONEY_CONTEXT = Context(prec=60)


def _money(value: Decimal) -> float:
    with localcontext(_MONEY_CONTEXT):
        return float(value.quantize(CENT))


def build_summary(transactions: Iterable[Transaction]) -> Summary:
    totals = {TransactionType.INCOME: _ZERO, TransactionType.EXPENSE: _ZERO}
    counts = {TransactionType.INCOME: 0, TransactionType.EXPENSE: 0}
    with localcontext(_MONEY_CONTEXT):
        for txn in transactions:
            totals[txn.txn_type] += txn.amount
            counts[txn.txn_type] += 1

        income = totals[TransactionType.INCOME].quantize(CENT)
        expenses = totals[TransactionType.EXPENSE].quantize(CENT)
        balance = income - expenses
    return Summary(
        total_income=_money(income),
        total_expenses=_money(expenses),
        balance=_money(balance),
        income_count=counts[TransactionType.INCOME],
        expense_count=counts[TransactionType.EXPENSE],
    )


def build_category_breakdown(transactions: Iterable[Transaction]) -> list[CategoryTotal]:
    groups: dict[tuple, list] = defaultdict(lambda: [_ZERO, 0])
    with localcontext(_MONEY_CONTEXT):
        for txn in transactions:
            entry = groups[(txn.txn_type, txn.category)]
            entry[0] += txn.amount
            entry[1] += 1

    ordered = sorted(groups.items(), key=lambda item: (-item[1][0], item[0][0].value, item[0][1].value))
    return [
        CategoryTotal(txn_type=txn_type, category=category, total=_money(total), count=count)
        for (txn_type, category), (total, count) in ordered
    ]


def build_monthly_trend(transactions: Iterable[Transaction]) -> list[MonthlyTrendPoint]:
    groups: dict[tuple[int, int, TransactionType], Decimal] = defaultdict(lambda: _ZERO)
    with localcontext(_MONEY_CONTEXT):
        for txn in transactions:
            groups[(txn.date.year, txn.date.month, txn.txn_type)] += txn.amount

    return [
        MonthlyTrendPoint(year=year, month=month, txn_type=txn_type, total=_money(total))
        for (year, month, txn_type), total in sorted(groups.items(), key=lambda item: (item[0][0], item[0][1], item[0][2].value))
    ]


def build_daily_trend(transactions: Iterable[Transaction]) -> list[DailyTrendPoint]:
    groups: dict[tuple[str, TransactionType], Decimal] = defaultdict(lambda: _ZERO)
    with localcontext(_MONEY_CONTEXT):
        for txn in transactions:
            groups[(txn.date.date().isoformat(), txn.txn_type)] += txn.amount

    return [
        DailyTrendPoint(date=day, txn_type=txn_type, total=_money(total))
        for (day, txn_type), total in sorted(groups.items(), key=lambda item: (item[0][0], item[0][1].value))
    ]


def build_top_expense_categories(transactions: Iterable[Transaction], limit: int = TOP_CATEGORY_LIMIT) -> list[TopCategory]:
    expenses = [txn for txn in transactions if txn.txn_type == TransactionType.EXPENSE]
    return [
        TopCategory(category=item.category, total=item.total, count=item.count)
        for item in build_category_breakdown(expenses)[:limit]
    ]


def month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, monthrange(year, month)[1])


class AnalyticsService:
    """
    Read-only aggregation over one account's ledger.

    Every call rescans the matching transactions; nothing is cached or
    maintained incrementally.
    """

    def __init__(self, store: LedgerStore, insights_llm: InsightsLLM):
        self._store = store
        self._insights_llm = insights_llm

    def _load(self, owner_id: str, date_range: DateRange | None) -> list[Transaction]:
        query = TransactionQuery(date_range=date_range or DateRange())
        return list(self._store.scan(owner_id, query))

    def summary(self, owner_id: str, date_range: DateRange | None = None) -> Summary:
        return build_summary(self._load(owner_id, date_range))

    def by_category(self, owner_id: str, date_range: DateRange | None = None) -> list[CategoryTotal]:
        return build_category_breakdown(self._load(owner_id, date_range))

    def monthly_trend(self, owner_id: str, date_range: DateRange | None = None) -> list[MonthlyTrendPoint]:
        return build_monthly_trend(self._load(owner_id, date_range))

    def daily_trend(self, owner_id: str, date_range: DateRange | None = None) -> list[DailyTrendPoint]:
        return build_daily_trend(self._load(owner_id, date_range))

    def analytics(self, owner_id: str, date_range: DateRange | None = None) -> AnalyticsReport:
        started = time.perf_counter()
        rows = self._load(owner_id, date_range)
        report = AnalyticsReport(
            summary=build_summary(rows),
            by_category=build_category_breakdown(rows),
            monthly_trend=build_monthly_trend(rows),
            daily_trend=build_daily_trend(rows),
        )
        logger.info(
            "Analytics computed account_id=%s transactions=%d in %.2fs",
            owner_id,
            len(rows),
            time.perf_counter() - started,
        )
        return report

    def monthly_report(self, owner_id: str, year: int | None = None, month: int | None = None) -> MonthlyReport:
        today = utcnow().date()
        year = year or today.year
        month = month or today.month
        start, end = month_bounds(year, month)

        rows = self._load(owner_id, DateRange(start=start, end=end))
        summary = build_summary(rows)
        monthly = MonthlySummary(
            total_income=summary.total_income,
            total_expenses=summary.total_expenses,
            balance=summary.balance,
            transaction_count=summary.income_count + summary.expense_count,
        )
        top_categories = build_top_expense_categories(rows)

        insights: InsightsResult = self._insights_llm.generate_insights(monthly, top_categories)
        if not insights.available:
            logger.info("Monthly report without insights account_id=%s reason=%s", owner_id, insights.reason)

        return MonthlyReport(
            period=ReportPeriod(year=year, month=month, start_date=start, end_date=end),
            summary=monthly,
            top_categories=top_categories,
            insights=insights,
        )
