from __future__ import annotations

from datetime import datetime

from domain.models import TRIAL_TRANSACTION_LIMIT, Account, SubscriptionStatus


def has_lapsed(account: Account, now: datetime) -> bool:
    sub = account.subscription
    if sub.status == SubscriptionStatus.FREE_TRIAL:
        return now > sub.trial_ends_at
    if sub.status == SubscriptionStatus.ACTIVE:
        return sub.current_period_end is not None and now > sub.current_period_end
    return False


def can_record(account: Account, now: datetime) -> bool:
    """
    Whether the account may add a transaction right now.

    Pure: a lapsed trial or period reads as "not entitled" here, but the
    status itself only moves to expired through `expire_if_lapsed`.
    """
    status = account.subscription.status
    if status == SubscriptionStatus.FREE_TRIAL:
        if account.transaction_count >= TRIAL_TRANSACTION_LIMIT:
            return False
        return not has_lapsed(account, now)
    if status == SubscriptionStatus.ACTIVE:
        return not has_lapsed(account, now)
    return False


def expire_if_lapsed(account: Account, now: datetime) -> bool:
    """Move a lapsed trial/active subscription to expired. Returns True when the status changed."""
    if not has_lapsed(account, now):
        return False
    account.subscription.status = SubscriptionStatus.EXPIRED
    return True


def remaining_trial_transactions(account: Account) -> int:
    return max(0, TRIAL_TRANSACTION_LIMIT - account.transaction_count)
