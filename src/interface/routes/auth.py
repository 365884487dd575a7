from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from domain.models import Account
from domain.schemas import AccountOut, AuthResponse, LoginRequest, RegisterRequest
from interface.cli import Services
from interface.dependencies import current_account, get_services

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=201)
def register(payload: RegisterRequest, services: Services = Depends(get_services)) -> dict[str, Any]:
    account, token = services.auth.register(payload)
    return AuthResponse(token=token, user=AccountOut.from_model(account)).model_dump(by_alias=True, mode="json")


@router.post("/login")
def login(payload: LoginRequest, services: Services = Depends(get_services)) -> dict[str, Any]:
    account, token = services.auth.login(payload)
    return AuthResponse(token=token, user=AccountOut.from_model(account)).model_dump(by_alias=True, mode="json")


@router.get("/me")
def me(account: Account = Depends(current_account)) -> dict[str, Any]:
    return AccountOut.from_model(account).model_dump(by_alias=True, mode="json")


@router.delete("/me")
def delete_me(
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> dict[str, str]:
    services.accounts.delete(account.id)
    return {"message": "Account deleted"}
