from __future__ import annotations

import json
import unittest
from datetime import date, datetime, timezone
from decimal import Decimal

from application.analytics import AnalyticsService, month_bounds
from domain.models import Category, Transaction, TransactionType
from domain.schemas import DateRange
from infrastructure.persistence.account_store import AccountStore
from infrastructure.persistence.database import Database
from infrastructure.persistence.ledger_store import LedgerStore, new_transaction_id
from llm.insights_llm import InsightsLLM


class _StubLLMClient:
    def __init__(self, response: str = ""):
        self._response = response
        self.prompts: list[str] = []

    def complete(self, prompt: str, **kwargs) -> str:
        self.prompts.append(prompt)
        return self._response


class _ExplodingLLMClient:
    def complete(self, prompt: str, **kwargs) -> str:
        raise ConnectionError("insight service down")


class AnalyticsServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = Database(":memory:")
        self.accounts = AccountStore(self.db)
        self.store = LedgerStore(self.db)
        self.llm = _StubLLMClient()
        self.service = AnalyticsService(self.store, InsightsLLM(self.llm))
        self.owner = self.accounts.create("Owner", "owner@example.com", "hash").id
        self.other = self.accounts.create("Other", "other@example.com", "hash").id

        rows = [
            ("2026-01-03", TransactionType.INCOME, Category.SALARY, "3000.00"),
            ("2026-01-05", TransactionType.EXPENSE, Category.FOOD, "45.10"),
            ("2026-01-05", TransactionType.EXPENSE, Category.FOOD, "14.90"),
            ("2026-01-10", TransactionType.EXPENSE, Category.RENT, "1200.00"),
            ("2026-01-20", TransactionType.EXPENSE, Category.TRANSPORT, "60.00"),
            ("2026-02-01", TransactionType.EXPENSE, Category.RENT, "1200.00"),
            ("2026-02-14", TransactionType.INCOME, Category.FREELANCE, "450.00"),
        ]
        self.store.insert_many(self._txn(self.owner, *row) for row in rows)
        self.store.insert(self._txn(self.other, "2026-01-05", TransactionType.EXPENSE, Category.FOOD, "999.00"))

    def tearDown(self) -> None:
        self.db.close()

    def _txn(self, owner: str, day: str, txn_type: TransactionType, category: Category, amount: str) -> Transaction:
        parsed = date.fromisoformat(day)
        return Transaction(
            id=new_transaction_id(),
            account_id=owner,
            txn_type=txn_type,
            category=category,
            amount=Decimal(amount),
            date=datetime(parsed.year, parsed.month, parsed.day, 18, 0, tzinfo=timezone.utc),
        )

    def test_summary_balance_is_income_minus_expenses(self) -> None:
        summary = self.service.summary(self.owner)

        self.assertAlmostEqual(summary.total_income, 3450.00)
        self.assertAlmostEqual(summary.total_expenses, 2520.00)
        self.assertAlmostEqual(summary.balance, summary.total_income - summary.total_expenses)
        self.assertEqual(summary.income_count, 2)
        self.assertEqual(summary.expense_count, 5)

    def test_summary_for_empty_range_is_zero(self) -> None:
        summary = self.service.summary(self.owner, DateRange(start=date(2025, 1, 1), end=date(2025, 1, 31)))

        self.assertEqual(summary.total_income, 0)
        self.assertEqual(summary.total_expenses, 0)
        self.assertEqual(summary.balance, 0)

    def test_summary_is_owner_scoped_and_range_bounded(self) -> None:
        january = self.service.summary(self.owner, DateRange(start=date(2026, 1, 1), end=date(2026, 1, 31)))

        self.assertAlmostEqual(january.total_expenses, 1320.00)
        self.assertAlmostEqual(january.balance, 1680.00)

    def test_by_category_groups_and_sorts_descending(self) -> None:
        breakdown = self.service.by_category(self.owner)

        totals = [item.total for item in breakdown]
        self.assertEqual(totals, sorted(totals, reverse=True))
        self.assertEqual((breakdown[0].txn_type, breakdown[0].category), (TransactionType.INCOME, Category.SALARY))
        food = next(item for item in breakdown if item.category == Category.FOOD)
        self.assertAlmostEqual(food.total, 60.00)
        self.assertEqual(food.count, 2)

    def test_monthly_and_daily_trends_ascend_by_time(self) -> None:
        report = self.service.analytics(self.owner)

        monthly = [(p.year, p.month, p.txn_type.value, p.total) for p in report.monthly_trend]
        self.assertEqual(
            monthly,
            [
                (2026, 1, "expense", 1320.0),
                (2026, 1, "income", 3000.0),
                (2026, 2, "expense", 1200.0),
                (2026, 2, "income", 450.0),
            ],
        )
        days = [p.date for p in report.daily_trend]
        self.assertEqual(days, sorted(days))
        jan5 = [p for p in report.daily_trend if p.date == "2026-01-05"]
        self.assertEqual(len(jan5), 1)
        self.assertAlmostEqual(jan5[0].total, 60.0)

    def test_monthly_report_with_insights(self) -> None:
        self.llm._response = json.dumps({
            "summary": "Rent dominates spending.",
            "insights": [{"title": "Rent", "description": "Rent is 90% of spend.", "type": "warning"}],
            "recommendations": ["Review transport costs."],
        })

        report = self.service.monthly_report(self.owner, year=2026, month=1)

        self.assertEqual(report.period.start_date, date(2026, 1, 1))
        self.assertEqual(report.period.end_date, date(2026, 1, 31))
        self.assertEqual(report.summary.transaction_count, 5)
        self.assertEqual([c.category for c in report.top_categories], [Category.RENT, Category.FOOD, Category.TRANSPORT])
        self.assertTrue(report.insights.available)
        payload = report.to_response()
        self.assertEqual(payload["aiInsights"]["summary"], "Rent dominates spending.")
        self.assertIn("topCategories", payload)

    def test_monthly_report_limits_top_categories_to_five(self) -> None:
        categories = [Category.FOOD, Category.TRANSPORT, Category.UTILITIES, Category.ENTERTAINMENT,
                      Category.HEALTHCARE, Category.SHOPPING, Category.EDUCATION]
        self.store.insert_many(
            self._txn(self.owner, "2026-03-0%d" % (i + 1), TransactionType.EXPENSE, cat, str(10 * (i + 1)))
            for i, cat in enumerate(categories)
        )

        report = self.service.monthly_report(self.owner, year=2026, month=3)

        self.assertEqual(len(report.top_categories), 5)
        self.assertEqual(report.top_categories[0].category, Category.EDUCATION)

    def test_monthly_report_for_empty_month(self) -> None:
        report = self.service.monthly_report(self.owner, year=2025, month=6)

        self.assertEqual(report.summary.transaction_count, 0)
        self.assertEqual(report.top_categories, [])
        self.assertEqual(report.summary.balance, 0)

    def test_monthly_report_survives_insight_failure(self) -> None:
        service = AnalyticsService(self.store, InsightsLLM(_ExplodingLLMClient()))

        report = service.monthly_report(self.owner, year=2026, month=2)

        self.assertFalse(report.insights.available)
        self.assertIsNotNone(report.insights.reason)
        self.assertIsNone(report.to_response()["aiInsights"])
        self.assertEqual(report.summary.transaction_count, 2)

    def test_aggregates_survive_amounts_beyond_default_decimal_precision(self) -> None:
        owner = self.accounts.create("Whale", "whale@example.com", "hash").id
        huge = "1000000000000000000000000000"
        self.store.insert_many([
            self._txn(owner, "2026-05-01", TransactionType.INCOME, Category.SALARY, huge),
            self._txn(owner, "2026-05-02", TransactionType.INCOME, Category.SALARY, huge),
            self._txn(owner, "2026-05-03", TransactionType.EXPENSE, Category.RENT, "0.01"),
        ])

        summary = self.service.summary(owner)
        report = self.service.analytics(owner)
        monthly = self.service.monthly_report(owner, year=2026, month=5)

        self.assertEqual(summary.total_income, 2e27)
        self.assertEqual(summary.balance, summary.total_income - summary.total_expenses)
        self.assertEqual(report.by_category[0].total, 2e27)
        self.assertEqual(monthly.summary.transaction_count, 3)

    def test_month_bounds_handles_leap_february(self) -> None:
        self.assertEqual(month_bounds(2028, 2), (date(2028, 2, 1), date(2028, 2, 29)))


if __name__ == "__main__":
    unittest.main()
