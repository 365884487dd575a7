from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from domain.models import Account
from domain.schemas import CheckoutRequest
from interface.cli import Services
from interface.dependencies import current_account, get_services

router = APIRouter(prefix="/api/subscription", tags=["subscription"])


@router.get("/plans")
def plans(services: Services = Depends(get_services)) -> dict[str, Any]:
    return {"plans": [plan.model_dump(by_alias=True, mode="json", exclude_none=True) for plan in services.subscriptions.plans()]}


@router.get("/status")
def status(
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return services.subscriptions.status(account).model_dump(by_alias=True, mode="json", exclude_none=True)


@router.post("/create-checkout")
def create_checkout(
    payload: CheckoutRequest,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    session = services.subscriptions.create_checkout(account, payload.plan)
    return session.model_dump(by_alias=True, mode="json")


@router.post("/cancel")
def cancel(
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return services.subscriptions.cancel(account)


@router.post("/reactivate")
def reactivate(
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return services.subscriptions.reactivate(account)


@router.post("/webhook")
async def webhook(request: Request, services: Services = Depends(get_services)) -> dict[str, bool]:
    # Signature is computed over the exact bytes received.
    raw_body = await request.body()
    signature = request.headers.get("X-Ziina-Signature")
    # Store access takes the database lock; keep it off the event loop.
    return await run_in_threadpool(services.subscriptions.handle_webhook, raw_body, signature)
