from __future__ import annotations

import json
import logging
import math
import sqlite3
import uuid
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterable, Iterator

from domain.errors import TransactionNotFound
from domain.models import Category, Transaction, TransactionType
from domain.schemas import DateRange, Pagination, TransactionQuery
from infrastructure.persistence.database import Database, from_db_time, to_db_time, utcnow

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, account_id, type, category, amount, description, date, receipt_url, tags, "
    "is_recurring, created_at, updated_at"
)

_UPDATABLE = {
    "txn_type": "type",
    "category": "category",
    "amount": "amount",
    "description": "description",
    "date": "date",
    "receipt_url": "receipt_url",
    "tags": "tags",
    "is_recurring": "is_recurring",
}


def new_transaction_id() -> str:
    return uuid.uuid4().hex


def _range_bounds(date_range: DateRange | None) -> tuple[str | None, str | None]:
    """Translate an inclusive day range to [start, end_exclusive) timestamps."""
    if date_range is None:
        return None, None
    start = end = None
    if date_range.start is not None:
        start = to_db_time(datetime.combine(date_range.start, time.min, tzinfo=timezone.utc))
    if date_range.end is not None:
        end = to_db_time(datetime.combine(date_range.end + timedelta(days=1), time.min, tzinfo=timezone.utc))
    return start, end


def _where(owner_id: str, query: TransactionQuery | None) -> tuple[str, list[Any]]:
    clauses = ["account_id = ?"]
    params: list[Any] = [owner_id]
    if query is not None:
        if query.txn_type is not None:
            clauses.append("type = ?")
            params.append(query.txn_type.value)
        if query.category is not None:
            clauses.append("category = ?")
            params.append(query.category.value)
        start, end = _range_bounds(query.date_range)
        if start is not None:
            clauses.append("date >= ?")
            params.append(start)
        if end is not None:
            clauses.append("date < ?")
            params.append(end)
    return " AND ".join(clauses), params


def _to_row(txn: Transaction) -> tuple[Any, ...]:
    return (
        txn.id,
        txn.account_id,
        txn.txn_type.value,
        txn.category.value,
        str(txn.amount),
        txn.description or "",
        to_db_time(txn.date),
        txn.receipt_url,
        json.dumps(list(txn.tags)),
        1 if txn.is_recurring else 0,
        to_db_time(txn.created_at),
        to_db_time(txn.updated_at),
    )


def _from_row(row: sqlite3.Row) -> Transaction:
    return Transaction(
        id=row["id"],
        account_id=row["account_id"],
        txn_type=TransactionType(row["type"]),
        category=Category(row["category"]),
        amount=Decimal(row["amount"]),
        description=row["description"] or "",
        date=from_db_time(row["date"]),
        receipt_url=row["receipt_url"],
        tags=json.loads(row["tags"] or "[]"),
        is_recurring=bool(row["is_recurring"]),
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
    )


def _column_value(field: str, value: Any) -> Any:
    if isinstance(value, (TransactionType, Category)):
        return value.value
    if field == "amount":
        return str(value)
    if field == "date":
        return to_db_time(value)
    if field == "tags":
        return json.dumps(list(value or []))
    if field == "is_recurring":
        return 1 if value else 0
    return value


class LedgerStore:
    """
    Owner-scoped transaction collection.

    Every read and every mutation is filtered by the owning account id, so a
    record belonging to another account is indistinguishable from a missing one.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    def insert(self, txn: Transaction) -> Transaction:
        return self.insert_many([txn])[0]

    def insert_many(self, txns: Iterable[Transaction]) -> list[Transaction]:
        now = utcnow()
        batch = list(txns)
        for txn in batch:
            txn.created_at = txn.created_at or now
            txn.updated_at = now
            if txn.date is None:
                txn.date = now
        if not batch:
            return batch
        with self._db.atomic() as conn:
            conn.executemany(
                f"INSERT INTO transactions ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [_to_row(txn) for txn in batch],
            )
        logger.info("Ledger insert account_id=%s count=%d", batch[0].account_id, len(batch))
        return batch

    def get(self, txn_id: str, owner_id: str) -> Transaction:
        row = self._db.query_one(
            f"SELECT {_COLUMNS} FROM transactions WHERE id = ? AND account_id = ?",
            (txn_id, owner_id),
        )
        if row is None:
            raise TransactionNotFound()
        return _from_row(row)

    def update(self, txn_id: str, owner_id: str, patch: dict[str, Any]) -> Transaction:
        unknown = set(patch) - set(_UPDATABLE)
        if unknown:
            raise ValueError(f"Unsupported transaction fields: {sorted(unknown)}")

        assignments = [f"{_UPDATABLE[field]} = ?" for field in patch]
        params = [_column_value(field, value) for field, value in patch.items()]
        assignments.append("updated_at = ?")
        params.append(to_db_time(utcnow()))

        with self._db.atomic() as conn:
            cursor = conn.execute(
                f"UPDATE transactions SET {', '.join(assignments)} WHERE id = ? AND account_id = ?",
                (*params, txn_id, owner_id),
            )
            if cursor.rowcount == 0:
                raise TransactionNotFound()
            updated = self.get(txn_id, owner_id)
        logger.info("Ledger update account_id=%s txn_id=%s fields=%s", owner_id, txn_id, sorted(patch))
        return updated

    def delete(self, txn_id: str, owner_id: str) -> None:
        with self._db.atomic() as conn:
            cursor = conn.execute(
                "DELETE FROM transactions WHERE id = ? AND account_id = ?",
                (txn_id, owner_id),
            )
            if cursor.rowcount == 0:
                raise TransactionNotFound()
        logger.info("Ledger delete account_id=%s txn_id=%s", owner_id, txn_id)

    def count(self, owner_id: str, query: TransactionQuery | None = None) -> int:
        where, params = _where(owner_id, query)
        row = self._db.query_one(f"SELECT COUNT(*) AS n FROM transactions WHERE {where}", params)
        return int(row["n"]) if row is not None else 0

    def find(
        self,
        owner_id: str,
        query: TransactionQuery | None = None,
        pagination: Pagination | None = None,
    ) -> tuple[list[Transaction], int, int]:
        """Return (page of transactions newest first, total matches, total pages)."""
        pagination = pagination or Pagination()
        where, params = _where(owner_id, query)
        offset = (pagination.page - 1) * pagination.limit
        rows = self._db.query(
            f"SELECT {_COLUMNS} FROM transactions WHERE {where} "
            "ORDER BY date DESC, created_at DESC LIMIT ? OFFSET ?",
            (*params, pagination.limit, offset),
        )
        total = self.count(owner_id, query)
        total_pages = math.ceil(total / pagination.limit)
        return [_from_row(row) for row in rows], total, total_pages

    def scan(self, owner_id: str, query: TransactionQuery | None = None) -> Iterator[Transaction]:
        """Every matching transaction, oldest first."""
        where, params = _where(owner_id, query)
        rows = self._db.query(
            f"SELECT {_COLUMNS} FROM transactions WHERE {where} ORDER BY date ASC, created_at ASC",
            params,
        )
        for row in rows:
            yield _from_row(row)
