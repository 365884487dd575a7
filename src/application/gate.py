from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator

from application.subscription_policy import can_record, expire_if_lapsed
from domain.errors import QuotaExceeded
from domain.models import Account
from infrastructure.persistence.account_store import AccountStore
from infrastructure.persistence.database import Database, utcnow

logger = logging.getLogger(__name__)


class TransactionGate:
    """Quota check in front of every transaction-creating write."""

    def __init__(
        self,
        db: Database,
        accounts: AccountStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db = db
        self._accounts = accounts
        self._clock = clock

    def check(self, account_id: str) -> Account:
        """Reload the account, persist a pending expiry, and raise QuotaExceeded when not entitled."""
        with self._db.atomic():
            account, allowed = self._evaluate(account_id)
        if not allowed:
            self._deny(account)
        return account

    @contextmanager
    def admit(self, account_id: str) -> Iterator[Account]:
        """
        Hold one unit of work across the check and the caller's insert.

        The count the check sees and the rows the caller commits belong to the
        same transaction, so concurrent writers cannot both pass at the cap.
        """
        with self._db.atomic():
            account, allowed = self._evaluate(account_id)
            if allowed:
                yield account
        # Denial is raised after the expiry transition has been committed.
        if not allowed:
            self._deny(account)

    def _evaluate(self, account_id: str) -> tuple[Account, bool]:
        now = self._clock()
        account = self._accounts.get(account_id)
        if expire_if_lapsed(account, now):
            self._accounts.save_subscription(account.id, account.subscription)
            logger.info("Gate expired subscription account_id=%s", account.id)
        return account, can_record(account, now)

    def _deny(self, account: Account) -> None:
        logger.info(
            "Gate denied account_id=%s status=%s transaction_count=%d",
            account.id,
            account.subscription.status.value,
            account.transaction_count,
        )
        raise QuotaExceeded(account.subscription.status.value)
