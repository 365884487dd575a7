from __future__ import annotations

import hashlib
import hmac
import json
import logging
import socket
import time
import urllib.error
import urllib.request
from typing import Any

from domain.errors import PaymentProviderError

logger = logging.getLogger(__name__)


class ZiinaClient:
    """Payment-link creation and webhook signature checks for the Ziina API."""

    def __init__(self, api_key: str, base_url: str, webhook_secret: str, timeout_seconds: float = 30.0) -> None:
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self.timeout_seconds = timeout_seconds

    def create_payment_link(
        self,
        *,
        amount: float,
        currency: str,
        description: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, Any],
    ) -> dict[str, Any]:
        payload = {
            "amount": amount,
            "currency": currency,
            "description": description,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        }
        body = self._post("/payment-links", payload)
        if not isinstance(body, dict) or not body.get("id") or not body.get("url"):
            logger.warning("ZiinaClient payment link response missing id/url keys=%s", sorted(body or {}))
            raise PaymentProviderError()
        return body

    def verify_signature(self, raw_body: bytes, signature: str | None) -> bool:
        if not self._webhook_secret or not signature:
            return False
        expected = hmac.new(self._webhook_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature.strip().lower())

    def _post(self, path: str, payload: dict[str, Any]) -> Any:
        started = time.perf_counter()
        req = urllib.request.Request(
            url=f"{self.base_url}{path}",
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            method="POST",
        )
        try:
            logger.info("ZiinaClient request start path=%s timeout=%.1fs", path, self.timeout_seconds)
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                body = json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as exc:
            logger.warning("ZiinaClient request rejected path=%s status=%s", path, exc.code)
            raise PaymentProviderError() from exc
        except (socket.timeout, urllib.error.URLError, TimeoutError, json.JSONDecodeError) as exc:
            logger.warning("ZiinaClient request failed after %.2fs: %s", time.perf_counter() - started, exc)
            raise PaymentProviderError() from exc

        logger.info("ZiinaClient request complete path=%s in %.2fs", path, time.perf_counter() - started)
        return body
