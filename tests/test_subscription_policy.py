from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from application.subscription_policy import can_record, expire_if_lapsed, remaining_trial_transactions
from domain.models import Account, PlanId, Subscription, SubscriptionStatus

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _account(
    status: SubscriptionStatus = SubscriptionStatus.FREE_TRIAL,
    count: int = 0,
    trial_ends_at: datetime | None = None,
    current_period_end: datetime | None = None,
) -> Account:
    return Account(
        id="acc_1",
        name="Dana",
        email="dana@example.com",
        password_hash="x",
        created_at=NOW - timedelta(days=2),
        subscription=Subscription(
            trial_ends_at=trial_ends_at or NOW + timedelta(days=5),
            status=status,
            plan=PlanId.TRIAL if status == SubscriptionStatus.FREE_TRIAL else PlanId.MONTHLY,
            current_period_end=current_period_end,
        ),
        transaction_count=count,
    )


class TrialDecisionTests(unittest.TestCase):
    def test_trial_under_cap_inside_window_is_allowed(self) -> None:
        for count in (0, 1, 25, 49):
            with self.subTest(count=count):
                self.assertTrue(can_record(_account(count=count), NOW))

    def test_trial_at_cap_is_denied_regardless_of_time(self) -> None:
        account = _account(count=50)
        self.assertFalse(can_record(account, NOW))
        self.assertFalse(can_record(account, NOW - timedelta(days=1)))
        self.assertFalse(can_record(_account(count=51), NOW))

    def test_trial_past_window_is_denied_without_mutation(self) -> None:
        account = _account(count=3, trial_ends_at=NOW - timedelta(seconds=1))

        self.assertFalse(can_record(account, NOW))
        self.assertEqual(account.subscription.status, SubscriptionStatus.FREE_TRIAL)

    def test_expire_if_lapsed_flips_trial_idempotently(self) -> None:
        account = _account(trial_ends_at=NOW - timedelta(hours=1))

        self.assertTrue(expire_if_lapsed(account, NOW))
        self.assertEqual(account.subscription.status, SubscriptionStatus.EXPIRED)
        self.assertFalse(expire_if_lapsed(account, NOW))
        self.assertEqual(account.subscription.status, SubscriptionStatus.EXPIRED)
        self.assertFalse(can_record(account, NOW))

    def test_remaining_trial_transactions_never_negative(self) -> None:
        self.assertEqual(remaining_trial_transactions(_account(count=10)), 40)
        self.assertEqual(remaining_trial_transactions(_account(count=70)), 0)


class PaidDecisionTests(unittest.TestCase):
    def test_active_without_period_end_is_allowed(self) -> None:
        self.assertTrue(can_record(_account(SubscriptionStatus.ACTIVE, count=5000), NOW))

    def test_active_inside_period_is_allowed(self) -> None:
        account = _account(SubscriptionStatus.ACTIVE, current_period_end=NOW + timedelta(days=3))
        self.assertTrue(can_record(account, NOW))
        self.assertFalse(expire_if_lapsed(account, NOW))

    def test_active_past_period_end_expires(self) -> None:
        account = _account(SubscriptionStatus.ACTIVE, current_period_end=NOW - timedelta(days=1))

        self.assertFalse(can_record(account, NOW))
        self.assertTrue(expire_if_lapsed(account, NOW))
        self.assertEqual(account.subscription.status, SubscriptionStatus.EXPIRED)

    def test_cancelled_and_expired_are_denied(self) -> None:
        for status in (SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED):
            with self.subTest(status=status):
                account = _account(status, current_period_end=NOW + timedelta(days=10))
                self.assertFalse(can_record(account, NOW))
                self.assertFalse(expire_if_lapsed(account, NOW))
                self.assertEqual(account.subscription.status, status)


if __name__ == "__main__":
    unittest.main()
