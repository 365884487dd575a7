from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from domain.models import Account
from domain.schemas import DateRange
from interface.cli import Services
from interface.dependencies import current_account, get_services

router = APIRouter(prefix="/api/reports", tags=["reports"])


@router.get("/analytics")
def analytics(
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    date_range = DateRange.model_validate({"start": start_date, "end": end_date})
    report = services.analytics.analytics(account.id, date_range)
    return report.model_dump(by_alias=True, mode="json")


@router.get("/monthly")
def monthly_report(
    year: Optional[int] = Query(default=None, ge=1970, le=9999),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    report = services.analytics.monthly_report(account.id, year=year, month=month)
    return report.to_response()
