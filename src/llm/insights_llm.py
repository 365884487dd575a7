from __future__ import annotations

import json
import logging
from typing import Any, Dict, Protocol

from pydantic import ValidationError

from domain.schemas import InsightsResult, MonthlyInsights, MonthlySummary, TopCategory

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a helpful financial advisor providing clear, actionable insights."


class CompletionClient(Protocol):
    def complete(self, prompt: str, **kwargs: Any) -> str: ...


class InsightsLLM:
    """Builds the monthly-insight prompt and validates the model's JSON reply."""

    def __init__(self, llm_client: CompletionClient):
        self._llm = llm_client

    def build_prompt(self, summary: MonthlySummary, top_categories: list[TopCategory]) -> str:
        prompt_payload: Dict[str, Any] = {
            "task": "As a financial advisor, analyze this monthly financial data and provide 3-5 actionable insights.",
            "month": {
                "total_income": summary.total_income,
                "total_expenses": summary.total_expenses,
                "balance": summary.balance,
                "transaction_count": summary.transaction_count,
                "top_spending_categories": [
                    {"category": item.category.value, "total": item.total} for item in top_categories
                ],
            },
            "output_contract": MonthlyInsights.model_json_schema(),
            "rules": [
                "Return JSON only.",
                "Each insight type must be one of: positive, warning, tip.",
                "Only reference the numbers given above.",
            ],
        }
        return json.dumps(prompt_payload, indent=2, default=str)

    def generate_insights(self, summary: MonthlySummary, top_categories: list[TopCategory]) -> InsightsResult:
        logger.info(
            "InsightsLLM generate_insights start transactions=%d categories=%d",
            summary.transaction_count,
            len(top_categories),
        )
        prompt = self.build_prompt(summary, top_categories)
        try:
            raw = self._llm.complete(prompt, system=SYSTEM_PROMPT, json_mode=True, max_tokens=1000).strip()
        except Exception as exc:
            logger.warning("InsightsLLM client raised %s", exc.__class__.__name__, exc_info=True)
            return InsightsResult.unavailable(f"insight service error: {exc.__class__.__name__}")

        if not raw:
            logger.info("InsightsLLM empty response; insights unavailable")
            return InsightsResult.unavailable("insight service returned no response")

        try:
            insights = MonthlyInsights.model_validate_json(raw)
        except ValidationError:
            logger.info("InsightsLLM invalid JSON; insights unavailable")
            return InsightsResult.unavailable("insight service returned malformed JSON")

        logger.info("InsightsLLM accepted insights count=%d", len(insights.insights))
        return InsightsResult.present(insights)
