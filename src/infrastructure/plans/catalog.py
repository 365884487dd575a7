from __future__ import annotations

from dataclasses import dataclass

from domain.models import TRIAL_TRANSACTION_LIMIT, PlanId
from domain.schemas import Plan


@dataclass(frozen=True)
class BillingTerms:
    months: int


class PlanCatalog:
    """Static plan catalog. Prices are in AED with an approximate USD display value."""

    def __init__(self) -> None:
        self._plans: dict[PlanId, Plan] = {
            PlanId.TRIAL: Plan(
                id=PlanId.TRIAL,
                name="Free Trial",
                price=0,
                interval="7 days",
                transaction_limit=TRIAL_TRANSACTION_LIMIT,
                features=[
                    f"Up to {TRIAL_TRANSACTION_LIMIT} transactions",
                    "Basic analytics",
                    "CSV import",
                    "AI receipt scanning",
                ],
            ),
            PlanId.MONTHLY: Plan(
                id=PlanId.MONTHLY,
                name="Monthly Plan",
                price=36.50,
                price_usd=9.99,
                interval="month",
                features=[
                    "Unlimited transactions",
                    "Advanced analytics",
                    "AI-powered insights",
                    "CSV import",
                    "AI receipt scanning",
                    "Priority support",
                ],
            ),
            PlanId.YEARLY: Plan(
                id=PlanId.YEARLY,
                name="Yearly Plan",
                price=365.00,
                price_usd=99.99,
                interval="year",
                savings="17% savings",
                features=[
                    "Unlimited transactions",
                    "Advanced analytics",
                    "AI-powered insights",
                    "CSV import",
                    "AI receipt scanning",
                    "Priority support",
                    "Early access to new features",
                ],
            ),
        }
        self._terms = {
            PlanId.MONTHLY: BillingTerms(months=1),
            PlanId.YEARLY: BillingTerms(months=12),
        }

    def list_plans(self) -> list[Plan]:
        return list(self._plans.values())

    def get(self, plan_id: PlanId) -> Plan:
        return self._plans[plan_id]

    def billing_terms(self, plan_id: PlanId) -> BillingTerms | None:
        """Terms for paid plans; None for the trial."""
        return self._terms.get(plan_id)
