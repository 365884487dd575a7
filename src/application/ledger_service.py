from __future__ import annotations

import logging
import time
from typing import IO, Any

from application.csv_import import parse_csv
from application.gate import TransactionGate
from domain.errors import InvalidTransaction
from domain.models import Account, Transaction, TransactionType, category_matches_type
from domain.schemas import (
    CsvImportResult,
    LedgerPage,
    Pagination,
    ReceiptScanResult,
    TransactionCreate,
    TransactionOut,
    TransactionQuery,
    TransactionUpdate,
)
from infrastructure.persistence.ledger_store import LedgerStore, new_transaction_id
from llm.receipt_llm import ReceiptLLM

logger = logging.getLogger(__name__)


def _build(account_id: str, payload: TransactionCreate) -> Transaction:
    return Transaction(
        id=new_transaction_id(),
        account_id=account_id,
        txn_type=payload.txn_type,
        category=payload.category,
        amount=payload.amount,
        date=payload.date,
        description=payload.description,
        receipt_url=payload.receipt_url,
        tags=list(payload.tags),
        is_recurring=payload.is_recurring,
    )


class LedgerService:
    """Transaction CRUD, CSV import and receipt scan for one authenticated account at a time."""

    def __init__(self, store: LedgerStore, gate: TransactionGate, receipt_llm: ReceiptLLM):
        self._store = store
        self._gate = gate
        self._receipt_llm = receipt_llm

    def find(self, account: Account, query: TransactionQuery, pagination: Pagination) -> LedgerPage:
        transactions, total, total_pages = self._store.find(account.id, query, pagination)
        return LedgerPage(
            transactions=[TransactionOut.from_model(txn) for txn in transactions],
            current_page=pagination.page,
            total_pages=total_pages,
            total_transactions=total,
        )

    def create(self, account: Account, payload: TransactionCreate) -> Transaction:
        with self._gate.admit(account.id):
            txn = self._store.insert(_build(account.id, payload))
        logger.info("Transaction created account_id=%s txn_id=%s type=%s", account.id, txn.id, txn.txn_type.value)
        return txn

    def update(self, account: Account, txn_id: str, patch: TransactionUpdate) -> Transaction:
        changes = patch.changes()
        # Nulls on required fields mean "leave unchanged".
        for required in ("txn_type", "category", "amount", "date", "is_recurring"):
            if required in changes and changes[required] is None:
                changes.pop(required)
        if "description" in changes and changes["description"] is None:
            changes["description"] = ""
        if "tags" in changes and changes["tags"] is None:
            changes["tags"] = []

        current = self._store.get(txn_id, account.id)
        txn_type: TransactionType = changes.get("txn_type", current.txn_type)
        category = changes.get("category", current.category)
        if not category_matches_type(category, txn_type):
            raise InvalidTransaction(
                "category",
                f"category {category.value!r} is not valid for type {txn_type.value!r}",
            )

        if not changes:
            return current
        return self._store.update(txn_id, account.id, changes)

    def delete(self, account: Account, txn_id: str) -> None:
        self._store.delete(txn_id, account.id)

    def import_csv(self, account: Account, stream: IO[bytes]) -> CsvImportResult:
        started = time.perf_counter()
        valid, errors = parse_csv(stream)
        imported = 0
        if valid:
            with self._gate.admit(account.id):
                imported = len(self._store.insert_many(_build(account.id, row) for row in valid))
        logger.info(
            "CSV import complete account_id=%s imported=%d errors=%d in %.2fs",
            account.id,
            imported,
            len(errors),
            time.perf_counter() - started,
        )
        return CsvImportResult(imported=imported, errors=errors or None)

    def scan_receipt(self, account: Account, image: bytes, receipt_url: str | None = None) -> ReceiptScanResult:
        extraction = self._receipt_llm.extract(image)
        payload = TransactionCreate(
            txn_type=TransactionType.EXPENSE,
            category=extraction.category,
            amount=extraction.amount,
            description=extraction.description,
            date=extraction.date,
            receipt_url=receipt_url,
        )
        txn = self.create(account, payload)
        extracted: dict[str, Any] = extraction.model_dump(by_alias=True, mode="json")
        extracted["amount"] = float(extraction.amount)
        return ReceiptScanResult(transaction=TransactionOut.from_model(txn), extracted_data=extracted)
