from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime

from domain.errors import AccountNotFound, EmailAlreadyRegistered
from domain.models import TRIAL_PERIOD, Account, PlanId, Subscription, SubscriptionStatus
from infrastructure.persistence.database import Database, from_db_time, to_db_time, utcnow

logger = logging.getLogger(__name__)

_COLUMNS = (
    "a.id, a.name, a.email, a.password_hash, a.created_at, a.subscription_status, a.subscription_plan, "
    "a.payment_reference, a.current_period_end, a.trial_ends_at, "
    "(SELECT COUNT(*) FROM transactions t WHERE t.account_id = a.id) AS transaction_count"
)


def _from_row(row: sqlite3.Row) -> Account:
    return Account(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        password_hash=row["password_hash"],
        created_at=from_db_time(row["created_at"]),
        subscription=Subscription(
            status=SubscriptionStatus(row["subscription_status"]),
            plan=PlanId(row["subscription_plan"]),
            payment_reference=row["payment_reference"],
            current_period_end=from_db_time(row["current_period_end"]),
            trial_ends_at=from_db_time(row["trial_ends_at"]),
        ),
        transaction_count=int(row["transaction_count"]),
    )


class AccountStore:
    """Accounts with their embedded subscription. The usage count is read from the ledger, never stored."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def create(self, name: str, email: str, password_hash: str, now: datetime | None = None) -> Account:
        now = now or utcnow()
        account = Account(
            id=uuid.uuid4().hex,
            name=name,
            email=email.strip().lower(),
            password_hash=password_hash,
            created_at=now,
            subscription=Subscription(trial_ends_at=now + TRIAL_PERIOD),
        )
        try:
            with self._db.atomic() as conn:
                conn.execute(
                    "INSERT INTO accounts (id, name, email, password_hash, created_at, subscription_status, "
                    "subscription_plan, payment_reference, current_period_end, trial_ends_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        account.id,
                        account.name,
                        account.email,
                        account.password_hash,
                        to_db_time(account.created_at),
                        account.subscription.status.value,
                        account.subscription.plan.value,
                        None,
                        None,
                        to_db_time(account.subscription.trial_ends_at),
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise EmailAlreadyRegistered() from exc
        logger.info("Account created account_id=%s trial_ends_at=%s", account.id, account.subscription.trial_ends_at)
        return account

    def get(self, account_id: str) -> Account:
        row = self._db.query_one(f"SELECT {_COLUMNS} FROM accounts a WHERE a.id = ?", (account_id,))
        if row is None:
            raise AccountNotFound()
        return _from_row(row)

    def get_by_email(self, email: str) -> Account | None:
        row = self._db.query_one(f"SELECT {_COLUMNS} FROM accounts a WHERE a.email = ?", (email.strip().lower(),))
        return _from_row(row) if row is not None else None

    def save_subscription(self, account_id: str, subscription: Subscription) -> None:
        with self._db.atomic() as conn:
            cursor = conn.execute(
                "UPDATE accounts SET subscription_status = ?, subscription_plan = ?, payment_reference = ?, "
                "current_period_end = ?, trial_ends_at = ? WHERE id = ?",
                (
                    subscription.status.value,
                    subscription.plan.value,
                    subscription.payment_reference,
                    to_db_time(subscription.current_period_end),
                    to_db_time(subscription.trial_ends_at),
                    account_id,
                ),
            )
            if cursor.rowcount == 0:
                raise AccountNotFound()
        logger.info(
            "Subscription saved account_id=%s status=%s plan=%s",
            account_id,
            subscription.status.value,
            subscription.plan.value,
        )

    def delete(self, account_id: str) -> None:
        with self._db.atomic() as conn:
            cursor = conn.execute("DELETE FROM accounts WHERE id = ?", (account_id,))
            if cursor.rowcount == 0:
                raise AccountNotFound()
        logger.info("Account deleted account_id=%s", account_id)

    def list_lapsed(self, now: datetime | None = None) -> list[Account]:
        """Trial or active accounts whose time boundary has passed."""
        stamp = to_db_time(now or utcnow())
        rows = self._db.query(
            f"SELECT {_COLUMNS} FROM accounts a WHERE "
            "(a.subscription_status = 'free_trial' AND a.trial_ends_at < ?) OR "
            "(a.subscription_status = 'active' AND a.current_period_end IS NOT NULL AND a.current_period_end < ?)",
            (stamp, stamp),
        )
        return [_from_row(row) for row in rows]
