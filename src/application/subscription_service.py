from __future__ import annotations

import json
import logging
from calendar import monthrange
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable

from pydantic import ValidationError

from application.subscription_policy import can_record, expire_if_lapsed, remaining_trial_transactions
from domain.errors import AccountNotFound, InvalidSignature, SubscriptionStateError
from domain.models import Account, PlanId, SubscriptionStatus
from domain.schemas import CheckoutSession, Plan, SubscriptionStatusOut, WebhookEvent
from infrastructure.payments.ziina_client import ZiinaClient
from infrastructure.persistence.account_store import AccountStore
from infrastructure.persistence.database import utcnow
from infrastructure.plans.catalog import PlanCatalog

logger = logging.getLogger(__name__)


def add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


class SubscriptionService:
    """Plan catalog, status reporting, checkout and payment-provider lifecycle events."""

    def __init__(
        self,
        accounts: AccountStore,
        catalog: PlanCatalog,
        payments: ZiinaClient,
        client_url: str,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._accounts = accounts
        self._catalog = catalog
        self._payments = payments
        self._client_url = client_url.rstrip("/")
        self._clock = clock

    def plans(self) -> list[Plan]:
        return self._catalog.list_plans()

    def status(self, account: Account) -> SubscriptionStatusOut:
        """Report entitlement as of now. Read-only: a lapsed status is shown as expired but not persisted."""
        now = self._clock()
        view = replace(account, subscription=replace(account.subscription))
        expire_if_lapsed(view, now)
        sub = view.subscription

        response = SubscriptionStatusOut(
            status=sub.status,
            plan=sub.plan,
            transaction_count=view.transaction_count,
            can_add_transactions=can_record(view, now),
            current_period_end=sub.current_period_end,
            payment_reference=sub.payment_reference,
        )
        if sub.status == SubscriptionStatus.FREE_TRIAL:
            response.trial_ends_at = sub.trial_ends_at
            response.remaining_transactions = remaining_trial_transactions(view)
        return response

    def create_checkout(self, account: Account, plan_id: PlanId) -> CheckoutSession:
        terms = self._catalog.billing_terms(plan_id)
        if terms is None:
            raise SubscriptionStateError("Invalid plan selected")
        plan = self._catalog.get(plan_id)

        link = self._payments.create_payment_link(
            amount=plan.price,
            currency=plan.currency,
            description=f"{plan.name} - Finance SaaS Subscription",
            success_url=f"{self._client_url}/dashboard?checkout=success&plan={plan_id.value}",
            cancel_url=f"{self._client_url}/pricing?checkout=cancelled",
            metadata={
                "userId": account.id,
                "userEmail": account.email,
                "plan": plan_id.value,
                "planName": plan.name,
            },
        )
        sub = replace(account.subscription, payment_reference=str(link["id"]))
        self._accounts.save_subscription(account.id, sub)
        logger.info("Checkout created account_id=%s plan=%s payment_id=%s", account.id, plan_id.value, link["id"])
        return CheckoutSession(payment_id=str(link["id"]), url=str(link["url"]))

    def cancel(self, account: Account) -> dict[str, Any]:
        if account.subscription.status != SubscriptionStatus.ACTIVE:
            raise SubscriptionStateError("No active subscription found")
        sub = replace(account.subscription, status=SubscriptionStatus.CANCELLED)
        self._accounts.save_subscription(account.id, sub)
        return {
            "message": "Subscription cancelled. Access will continue until the end of the billing period.",
            "currentPeriodEnd": sub.current_period_end.isoformat() if sub.current_period_end else None,
        }

    def reactivate(self, account: Account) -> dict[str, Any]:
        if account.subscription.status == SubscriptionStatus.ACTIVE:
            raise SubscriptionStateError("Subscription is already active")
        # Reactivation always goes through a new payment.
        return {
            "message": "Please select a plan to reactivate your subscription",
            "redirectTo": "/pricing",
        }

    def handle_webhook(self, raw_body: bytes, signature: str | None) -> dict[str, bool]:
        if not self._payments.verify_signature(raw_body, signature):
            logger.warning("Webhook rejected: invalid signature")
            raise InvalidSignature()

        try:
            event = WebhookEvent.model_validate(json.loads(raw_body.decode("utf-8")))
        except (ValueError, ValidationError) as exc:
            logger.warning("Webhook payload unreadable: %s", exc)
            raise SubscriptionStateError("Invalid webhook payload") from exc

        account_id = event.data.metadata.get("userId")
        handler = {
            "payment.successful": self._on_payment_successful,
            "payment.failed": self._on_payment_failed,
            "payment.refunded": self._on_payment_refunded,
        }.get(event.type)
        if handler is None:
            logger.info("Unhandled Ziina event type: %s", event.type)
            return {"received": True}
        if not account_id:
            logger.warning("Webhook %s without userId metadata payment_id=%s", event.type, event.data.id)
            return {"received": True}

        try:
            account = self._accounts.get(str(account_id))
        except AccountNotFound:
            logger.warning("Webhook %s for unknown account_id=%s", event.type, account_id)
            return {"received": True}
        handler(account, event)
        return {"received": True}

    def _on_payment_successful(self, account: Account, event: WebhookEvent) -> None:
        try:
            plan_id = PlanId(str(event.data.metadata.get("plan")))
        except ValueError:
            logger.warning("Webhook payment.successful with unknown plan account_id=%s", account.id)
            return
        terms = self._catalog.billing_terms(plan_id)
        if terms is None:
            logger.warning("Webhook payment.successful for unpaid plan=%s account_id=%s", plan_id.value, account.id)
            return

        period_end = add_months(self._clock(), terms.months)
        sub = replace(
            account.subscription,
            status=SubscriptionStatus.ACTIVE,
            plan=plan_id,
            payment_reference=event.data.id or account.subscription.payment_reference,
            current_period_end=period_end,
        )
        self._accounts.save_subscription(account.id, sub)
        logger.info("Payment successful account_id=%s plan=%s period_end=%s", account.id, plan_id.value, period_end)

    def _on_payment_failed(self, account: Account, event: WebhookEvent) -> None:
        sub = replace(account.subscription, status=SubscriptionStatus.EXPIRED)
        self._accounts.save_subscription(account.id, sub)
        logger.info("Payment failed account_id=%s payment_id=%s", account.id, event.data.id)

    def _on_payment_refunded(self, account: Account, event: WebhookEvent) -> None:
        sub = replace(account.subscription, status=SubscriptionStatus.CANCELLED, plan=PlanId.TRIAL)
        self._accounts.save_subscription(account.id, sub)
        logger.info("Payment refunded account_id=%s payment_id=%s", account.id, event.data.id)

    def sweep_expired(self) -> int:
        """Persist the expiry transition for every lapsed account. Returns how many changed."""
        now = self._clock()
        changed = 0
        for account in self._accounts.list_lapsed(now):
            if expire_if_lapsed(account, now):
                self._accounts.save_subscription(account.id, account.subscription)
                changed += 1
        logger.info("Expiry sweep complete expired=%d", changed)
        return changed
