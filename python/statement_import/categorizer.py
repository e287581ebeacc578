"""
Transaction Categorizer Module

Suggests categories for statement records that no learned pattern covers,
using the Claude API.
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from decimal import Decimal

import anthropic

from .config import AI_BATCH_LIMIT, ImportSettings
from .store import Category

logger = logging.getLogger(__name__)


@dataclass
class SuggestionRequest:
    """One record sent for categorization, identified by a stable key."""

    key: int
    description: str
    amount: Decimal
    transaction_type: str
    merchant: str | None = None


@dataclass
class CategorySuggestion:
    """Category proposed for one request."""

    key: int
    category_id: str
    category_name: str | None
    confidence: float

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "confidence": self.confidence,
        }


class TransactionCategorizer:
    """Categorizes statement records using Claude."""

    def __init__(
        self,
        settings: ImportSettings | None = None,
        api_key: str | None = None,
        use_claude: bool = True
    ):
        """Initialize the categorizer.

        Args:
            settings: Import settings (model, token limit, batch limit)
            api_key: Anthropic API key
            use_claude: Whether to call Claude at all
        """
        self.settings = settings or ImportSettings()
        self.use_claude = use_claude and self.settings.ai_enabled
        self.batch_limit = min(self.settings.ai_batch_limit, AI_BATCH_LIMIT)

        if self.use_claude:
            self.client = anthropic.Anthropic(api_key=api_key)
        else:
            self.client = None

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def suggest_categories(
        self,
        requests: list[SuggestionRequest],
        categories: list[Category]
    ) -> dict[int, CategorySuggestion]:
        """Suggest a category for each request.

        Never raises; any failure is logged and produces no suggestions.

        Args:
            requests: Records to categorize, at most the batch limit
            categories: Categories the answer must choose from

        Returns:
            Suggestions keyed by request key; requests without a usable
            answer are absent
        """
        if not requests or not categories or not self.enabled:
            return {}

        if len(requests) > self.batch_limit:
            logger.warning(f"Refusing to categorize {len(requests)} records, limit is {self.batch_limit}")
            return {}

        try:
            message = self.client.messages.create(
                model=self.settings.model,
                max_tokens=self.settings.max_tokens,
                temperature=self.settings.temperature,
                messages=[
                    {"role": "user", "content": self._build_prompt(requests, categories)}
                ]
            )

            response_text = message.content[0].text
            suggestions_data = self._parse_response(response_text)
            return self._collect_suggestions(suggestions_data, requests, categories)
        except Exception as e:
            logger.error(f"Claude categorization error: {e}")
            return {}

    def _build_prompt(
        self,
        requests: list[SuggestionRequest],
        categories: list[Category]
    ) -> str:
        categories_list = "\n".join(
            f"- {c.id}: {c.name} ({c.type})" for c in categories
        )

        txn_data = [
            {
                "key": req.key,
                "description": req.description,
                "merchant": req.merchant,
                "amount": float(req.amount),
                "type": req.transaction_type,
            }
            for req in requests
        ]

        return f"""You categorize personal bank transactions.

Available categories:
{categories_list}

Transactions to categorize:
{json.dumps(txn_data, indent=2, ensure_ascii=False)}

For each transaction choose the most suitable category id.
Output ONLY a valid JSON array with no explanation, one object per transaction:
[{{"key": <key from the input>, "category_id": "<id>", "confidence": 0.0-1.0}}]

Rules:
- Copy each "key" exactly as given.
- Use confidence below 0.7 when unsure.
- Use null for category_id when the transaction is clearly a transfer between own accounts."""

    def _parse_response(self, response_text: str) -> list:
        """Extract the JSON array from a Claude response.

        Raises:
            ValueError: If no JSON array can be read
        """
        cleaned = response_text.strip()
        cleaned = re.sub(r'^```json\s*', '', cleaned)
        cleaned = re.sub(r'^```\s*', '', cleaned)
        cleaned = re.sub(r'\s*```$', '', cleaned)

        match = re.search(r'\[.*\]', cleaned, re.DOTALL)
        if not match:
            raise ValueError(f"Response is not a JSON array: {response_text[:200]}")

        data = json.loads(match.group(0))
        if not isinstance(data, list):
            raise ValueError("Response is not a JSON array")

        return data

    def _collect_suggestions(
        self,
        suggestions_data: list,
        requests: list[SuggestionRequest],
        categories: list[Category]
    ) -> dict[int, CategorySuggestion]:
        categories_map = {c.id: c for c in categories}
        keys = {str(req.key): req.key for req in requests}

        results = {}
        for data in suggestions_data:
            if not isinstance(data, dict):
                continue

            raw_key = data.get("key")
            raw_category_id = data.get("category_id")
            if not isinstance(raw_key, (str, int)) or not isinstance(raw_category_id, str):
                continue

            key = keys.get(str(raw_key))
            category = categories_map.get(raw_category_id)
            if key is None or category is None:
                continue

            try:
                confidence = float(data.get("confidence", 0) or 0)
            except (TypeError, ValueError):
                confidence = 0.0
            if not math.isfinite(confidence):
                confidence = 0.0

            results[key] = CategorySuggestion(
                key=key,
                category_id=category.id,
                category_name=category.name,
                confidence=min(max(confidence, 0.0), 1.0),
            )

        logger.info(f"Claude suggested categories for {len(results)}/{len(requests)} records")
        return results
