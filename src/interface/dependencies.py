from __future__ import annotations

from fastapi import Depends, Request

from domain.models import Account
from interface.cli import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def current_account(request: Request, services: Services = Depends(get_services)) -> Account:
    header = request.headers.get("Authorization", "")
    token = None
    if header.startswith("Bearer"):
        parts = header.split(" ", 1)
        token = parts[1].strip() if len(parts) == 2 else None
    return services.auth.authenticate(token)


def recording_allowed(
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> Account:
    """Reject transaction-creating requests up front when the account is over quota."""
    return services.gate.check(account.id)
