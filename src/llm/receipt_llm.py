from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from domain.errors import ReceiptExtractionError
from domain.models import CATEGORIES_BY_TYPE, TransactionType
from domain.schemas import ReceiptExtraction
from llm.insights_llm import CompletionClient

logger = logging.getLogger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class ReceiptLLM:
    """Extracts expense fields from a receipt image through a vision model."""

    def __init__(self, llm_client: CompletionClient):
        self._llm = llm_client

    def build_prompt(self) -> str:
        categories = ", ".join(sorted(c.value for c in CATEGORIES_BY_TYPE[TransactionType.EXPENSE]))
        return (
            "Analyze this receipt image and extract the following information in JSON format:\n"
            "{\n"
            '  "amount": <total amount as number>,\n'
            '  "description": <merchant name or description>,\n'
            f'  "category": <one of: {categories}>,\n'
            '  "date": <date in ISO format if visible, otherwise null>,\n'
            '  "items": [<array of item names if visible>]\n'
            "}\n"
            "Only return valid JSON, no additional text."
        )

    def extract(self, image: bytes) -> ReceiptExtraction:
        """The amount is mandatory: any failure to obtain it raises ReceiptExtractionError."""
        logger.info("ReceiptLLM extract start image_bytes=%d", len(image))
        raw = self._llm.complete(self.build_prompt(), images=[image], json_mode=True, max_tokens=500).strip()
        if not raw:
            logger.warning("ReceiptLLM empty response")
            raise ReceiptExtractionError()

        match = _JSON_OBJECT_RE.search(raw)
        if match is None:
            logger.warning("ReceiptLLM response contained no JSON object")
            raise ReceiptExtractionError()

        try:
            payload: Any = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            logger.warning("ReceiptLLM response JSON could not be decoded: %s", exc)
            raise ReceiptExtractionError() from exc

        if not isinstance(payload, dict) or payload.get("amount") in (None, ""):
            logger.warning("ReceiptLLM response missing amount")
            raise ReceiptExtractionError("Could not read a total amount from the receipt.")

        payload.pop("type", None)
        try:
            extraction = ReceiptExtraction.model_validate(payload)
        except ValidationError as exc:
            logger.warning("ReceiptLLM response failed validation: %s", exc.errors()[:3])
            raise ReceiptExtractionError() from exc

        logger.info(
            "ReceiptLLM extracted amount=%s category=%s items=%d",
            extraction.amount,
            extraction.category.value,
            len(extraction.items),
        )
        return extraction
