from __future__ import annotations

import hashlib
import hmac
import json
import unittest
from datetime import datetime, timedelta, timezone

from application.subscription_service import SubscriptionService, add_months
from domain.errors import InvalidSignature, PaymentProviderError, SubscriptionStateError
from domain.models import PlanId, SubscriptionStatus
from infrastructure.payments.ziina_client import ZiinaClient
from infrastructure.persistence.account_store import AccountStore
from infrastructure.persistence.database import Database
from infrastructure.plans.catalog import PlanCatalog

SECRET = "whsec_test"
NOW = datetime(2026, 1, 31, 10, 0, tzinfo=timezone.utc)


class _StubPayments(ZiinaClient):
    def __init__(self, response: dict | None = None):
        super().__init__(api_key="key", base_url="https://payments.test", webhook_secret=SECRET)
        self._response = response if response is not None else {"id": "pay_123", "url": "https://pay.test/pay_123"}
        self.links: list[dict] = []

    def _post(self, path: str, payload: dict) -> dict:
        self.links.append({"path": path, **payload})
        return self._response


def _sign(body: bytes) -> str:
    return hmac.new(SECRET.encode("utf-8"), body, hashlib.sha256).hexdigest()


class SubscriptionServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.now = NOW
        self.db = Database(":memory:")
        self.accounts = AccountStore(self.db)
        self.payments = _StubPayments()
        self.service = SubscriptionService(
            self.accounts,
            PlanCatalog(),
            self.payments,
            client_url="https://app.test/",
            clock=lambda: self.now,
        )
        self.account = self.accounts.create("Sam", "sam@example.com", "hash", now=NOW)

    def tearDown(self) -> None:
        self.db.close()

    def _webhook(self, event_type: str, **metadata) -> dict:
        body = json.dumps({"type": event_type, "data": {"id": "pay_999", "metadata": metadata}}).encode("utf-8")
        return self.service.handle_webhook(body, _sign(body))

    def _status(self) -> SubscriptionStatus:
        return self.accounts.get(self.account.id).subscription.status

    def test_plans_list_trial_monthly_yearly(self) -> None:
        plans = {plan.id: plan for plan in self.service.plans()}

        self.assertEqual(set(plans), {PlanId.TRIAL, PlanId.MONTHLY, PlanId.YEARLY})
        self.assertEqual(plans[PlanId.TRIAL].transaction_limit, 50)
        self.assertEqual(plans[PlanId.MONTHLY].price, 36.50)
        self.assertEqual(plans[PlanId.YEARLY].price, 365.0)

    def test_status_for_fresh_trial(self) -> None:
        status = self.service.status(self.account)

        self.assertEqual(status.status, SubscriptionStatus.FREE_TRIAL)
        self.assertTrue(status.can_add_transactions)
        self.assertEqual(status.remaining_transactions, 50)
        self.assertEqual(status.trial_ends_at, NOW + timedelta(days=7))

    def test_status_reports_lapse_without_persisting(self) -> None:
        self.now = NOW + timedelta(days=8)

        status = self.service.status(self.accounts.get(self.account.id))

        self.assertEqual(status.status, SubscriptionStatus.EXPIRED)
        self.assertFalse(status.can_add_transactions)
        self.assertIsNone(status.remaining_transactions)
        self.assertEqual(self._status(), SubscriptionStatus.FREE_TRIAL)

    def test_checkout_creates_link_and_records_reference(self) -> None:
        session = self.service.create_checkout(self.account, PlanId.MONTHLY)

        self.assertEqual(session.payment_id, "pay_123")
        self.assertEqual(session.url, "https://pay.test/pay_123")
        link = self.payments.links[0]
        self.assertEqual(link["amount"], 36.50)
        self.assertEqual(link["currency"], "AED")
        self.assertEqual(link["metadata"]["userId"], self.account.id)
        self.assertTrue(link["success_url"].startswith("https://app.test/dashboard"))
        self.assertEqual(self.accounts.get(self.account.id).subscription.payment_reference, "pay_123")

    def test_checkout_rejects_trial_plan(self) -> None:
        with self.assertRaises(SubscriptionStateError):
            self.service.create_checkout(self.account, PlanId.TRIAL)
        self.assertEqual(self.payments.links, [])

    def test_checkout_with_incomplete_provider_reply_fails(self) -> None:
        self.payments._response = {"id": "pay_1"}
        with self.assertRaises(PaymentProviderError):
            self.service.create_checkout(self.account, PlanId.YEARLY)
        self.assertIsNone(self.accounts.get(self.account.id).subscription.payment_reference)

    def test_successful_payment_activates_monthly_plan(self) -> None:
        self.assertEqual(self._webhook("payment.successful", userId=self.account.id, plan="monthly"), {"received": True})

        sub = self.accounts.get(self.account.id).subscription
        self.assertEqual(sub.status, SubscriptionStatus.ACTIVE)
        self.assertEqual(sub.plan, PlanId.MONTHLY)
        self.assertEqual(sub.payment_reference, "pay_999")
        self.assertEqual(sub.current_period_end, datetime(2026, 2, 28, 10, 0, tzinfo=timezone.utc))

    def test_successful_payment_activates_yearly_plan(self) -> None:
        self._webhook("payment.successful", userId=self.account.id, plan="yearly")

        sub = self.accounts.get(self.account.id).subscription
        self.assertEqual(sub.plan, PlanId.YEARLY)
        self.assertEqual(sub.current_period_end, datetime(2027, 1, 31, 10, 0, tzinfo=timezone.utc))

    def test_failed_payment_expires(self) -> None:
        self._webhook("payment.failed", userId=self.account.id)
        self.assertEqual(self._status(), SubscriptionStatus.EXPIRED)

    def test_refund_cancels_and_resets_plan(self) -> None:
        self._webhook("payment.successful", userId=self.account.id, plan="monthly")
        self._webhook("payment.refunded", userId=self.account.id)

        sub = self.accounts.get(self.account.id).subscription
        self.assertEqual(sub.status, SubscriptionStatus.CANCELLED)
        self.assertEqual(sub.plan, PlanId.TRIAL)

    def test_unknown_events_and_accounts_are_acknowledged(self) -> None:
        self.assertEqual(self._webhook("payment.pending", userId=self.account.id), {"received": True})
        self.assertEqual(self._webhook("payment.failed", userId="nobody"), {"received": True})
        self.assertEqual(self._webhook("payment.failed"), {"received": True})
        self.assertEqual(self._status(), SubscriptionStatus.FREE_TRIAL)

    def test_bad_signature_is_rejected_without_change(self) -> None:
        body = json.dumps({"type": "payment.failed", "data": {"metadata": {"userId": self.account.id}}}).encode("utf-8")

        for signature in (None, "", "deadbeef", _sign(body + b" ")):
            with self.subTest(signature=signature):
                with self.assertRaises(InvalidSignature):
                    self.service.handle_webhook(body, signature)

        self.assertEqual(self._status(), SubscriptionStatus.FREE_TRIAL)

    def test_cancel_requires_active_subscription(self) -> None:
        with self.assertRaises(SubscriptionStateError):
            self.service.cancel(self.account)

        self._webhook("payment.successful", userId=self.account.id, plan="monthly")
        result = self.service.cancel(self.accounts.get(self.account.id))

        self.assertEqual(self._status(), SubscriptionStatus.CANCELLED)
        self.assertEqual(result["currentPeriodEnd"], "2026-02-28T10:00:00+00:00")

    def test_reactivate_redirects_unless_active(self) -> None:
        self.assertEqual(self.service.reactivate(self.account)["redirectTo"], "/pricing")

        self._webhook("payment.successful", userId=self.account.id, plan="monthly")
        with self.assertRaises(SubscriptionStateError):
            self.service.reactivate(self.accounts.get(self.account.id))

    def test_sweep_persists_lapsed_trials_only(self) -> None:
        fresh = self.accounts.create("New", "new@example.com", "hash", now=NOW + timedelta(days=6))
        self.now = NOW + timedelta(days=8)

        self.assertEqual(self.service.sweep_expired(), 1)
        self.assertEqual(self._status(), SubscriptionStatus.EXPIRED)
        self.assertEqual(self.accounts.get(fresh.id).subscription.status, SubscriptionStatus.FREE_TRIAL)
        self.assertEqual(self.service.sweep_expired(), 0)

    def test_sweep_expires_paid_period_end(self) -> None:
        self._webhook("payment.successful", userId=self.account.id, plan="monthly")
        self.now = NOW + timedelta(days=40)

        self.assertEqual(self.service.sweep_expired(), 1)
        self.assertEqual(self._status(), SubscriptionStatus.EXPIRED)


class AddMonthsTests(unittest.TestCase):
    def test_clamps_to_month_end(self) -> None:
        self.assertEqual(add_months(NOW, 1).date().isoformat(), "2026-02-28")
        self.assertEqual(add_months(NOW.replace(day=15), 12).date().isoformat(), "2027-01-15")
        self.assertEqual(add_months(datetime(2026, 11, 30, tzinfo=timezone.utc), 3).date().isoformat(), "2027-02-28")


if __name__ == "__main__":
    unittest.main()
