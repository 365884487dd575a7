from __future__ import annotations

import logging
from datetime import timedelta

from jose import JWTError, jwt
from werkzeug.security import check_password_hash, generate_password_hash

from domain.errors import AccountNotFound, AuthenticationError, EmailAlreadyRegistered
from domain.models import Account
from domain.schemas import LoginRequest, RegisterRequest
from infrastructure.persistence.account_store import AccountStore
from infrastructure.persistence.database import utcnow

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


class AuthService:
    """Registration, login and bearer-token verification."""

    def __init__(self, accounts: AccountStore, secret: str, expire_days: int = 30):
        self._accounts = accounts
        self._secret = secret
        self._expire = timedelta(days=expire_days)

    def register(self, request: RegisterRequest) -> tuple[Account, str]:
        if self._accounts.get_by_email(request.email) is not None:
            raise EmailAlreadyRegistered()
        account = self._accounts.create(
            name=request.name,
            email=request.email,
            password_hash=generate_password_hash(request.password),
        )
        logger.info("Account registered account_id=%s", account.id)
        return account, self.issue_token(account.id)

    def login(self, request: LoginRequest) -> tuple[Account, str]:
        account = self._accounts.get_by_email(request.email)
        if account is None or not check_password_hash(account.password_hash, request.password):
            logger.info("Login rejected")
            raise AuthenticationError("Invalid credentials")
        return account, self.issue_token(account.id)

    def issue_token(self, account_id: str) -> str:
        claims = {"id": account_id, "exp": utcnow() + self._expire}
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def authenticate(self, token: str | None) -> Account:
        if not token:
            raise AuthenticationError("Not authorized, no token")
        try:
            claims = jwt.decode(token, self._secret, algorithms=[ALGORITHM])
        except JWTError as exc:
            logger.info("Token rejected: %s", exc.__class__.__name__)
            raise AuthenticationError("Not authorized, token failed") from exc

        account_id = claims.get("id")
        if not isinstance(account_id, str):
            raise AuthenticationError("Not authorized, token failed")
        try:
            return self._accounts.get(account_id)
        except AccountNotFound as exc:
            raise AuthenticationError("User not found") from exc
