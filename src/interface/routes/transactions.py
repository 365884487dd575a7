from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile

from domain.errors import EmptyUpload, UnsupportedUpload, UploadTooLarge
from domain.models import Account
from domain.schemas import Pagination, TransactionCreate, TransactionOut, TransactionQuery, TransactionUpdate
from interface.cli import Services
from interface.dependencies import current_account, get_services, recording_allowed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/transactions", tags=["transactions"])

CSV_CONTENT_TYPES = {"text/csv", "application/csv", "application/vnd.ms-excel", "text/plain", "application/octet-stream"}


def _check_size(upload: UploadFile, limit: int) -> None:
    if upload.size is not None and upload.size > limit:
        raise UploadTooLarge()


@router.get("")
def list_transactions(
    txn_type: Optional[str] = Query(default=None, alias="type"),
    category: Optional[str] = Query(default=None),
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    limit: int = Query(default=100, ge=1, le=1000),
    page: int = Query(default=1, ge=1),
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    # Blank query values mean "no filter".
    query = TransactionQuery.model_validate(
        {
            "txn_type": txn_type,
            "category": category,
            "date_range": {"start": start_date, "end": end_date},
        }
    )
    page_result = services.ledger.find(account, query, Pagination(limit=limit, page=page))
    return page_result.model_dump(by_alias=True, mode="json")


@router.post("", status_code=201)
def create_transaction(
    payload: TransactionCreate,
    account: Account = Depends(recording_allowed),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    txn = services.ledger.create(account, payload)
    return TransactionOut.from_model(txn).model_dump(by_alias=True, mode="json")


@router.post("/import-csv")
def import_csv(
    file: Optional[UploadFile] = File(default=None),
    account: Account = Depends(recording_allowed),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    if file is None or not file.filename:
        raise EmptyUpload()
    if file.content_type and file.content_type not in CSV_CONTENT_TYPES:
        raise UnsupportedUpload()
    _check_size(file, services.settings.max_upload_bytes)

    logger.info("CSV upload account_id=%s filename=%s", account.id, file.filename)
    try:
        result = services.ledger.import_csv(account, file.file)
    finally:
        file.file.close()
    return result.model_dump(by_alias=True, mode="json")


@router.post("/scan-receipt", status_code=201)
def scan_receipt(
    receipt: Optional[UploadFile] = File(default=None),
    account: Account = Depends(recording_allowed),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    if receipt is None or not receipt.filename:
        raise EmptyUpload("No receipt image uploaded")
    if not (receipt.content_type or "").startswith("image/"):
        raise UnsupportedUpload()
    _check_size(receipt, services.settings.max_upload_bytes)

    try:
        image = receipt.file.read()
    finally:
        receipt.file.close()
    if not image:
        raise EmptyUpload("No receipt image uploaded")

    result = services.ledger.scan_receipt(account, image, receipt_url=receipt.filename)
    return result.model_dump(by_alias=True, mode="json")


@router.put("/{txn_id}")
def update_transaction(
    txn_id: str,
    patch: TransactionUpdate,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    txn = services.ledger.update(account, txn_id, patch)
    return TransactionOut.from_model(txn).model_dump(by_alias=True, mode="json")


@router.delete("/{txn_id}")
def delete_transaction(
    txn_id: str,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> dict[str, str]:
    services.ledger.delete(account, txn_id)
    return {"message": "Transaction deleted"}
