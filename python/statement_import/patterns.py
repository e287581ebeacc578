"""
Pattern Learner Module

Learns merchant and description patterns from the user's category
corrections and matches them against incoming statement records.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime

from .config import RECATEGORIZE_MIN_CONFIDENCE, SUGGESTION_MIN_CONFIDENCE
from .exceptions import TransactionStoreError, require_user
from .parsers import CanonicalTransaction
from .store import LearnedPattern, PatternStore, TransactionStore

logger = logging.getLogger(__name__)

# Tokens of this length or shorter are ignored when building a pattern
MIN_TOKEN_LENGTH = 3
MAX_PATTERN_TOKENS = 3

SIMILAR_LIMIT = 100


def extract_pattern(description: str) -> str:
    """Reduce a description to its first significant words.

    Example: "Netflix.com Amsterdam NL" -> "netflixcom amsterdam"
    """
    text = re.sub(r'[^\w\s]', '', (description or "").lower())
    words = [w for w in text.split() if len(w) > MIN_TOKEN_LENGTH]
    return " ".join(words[:MAX_PATTERN_TOKENS])


def _merchant_matches(pattern_merchant: str, merchant: str) -> bool:
    a = pattern_merchant.lower()
    b = merchant.lower()
    return a == b or a in b or b in a


def find_learned_category(
    transaction: CanonicalTransaction,
    patterns: list[LearnedPattern]
) -> LearnedPattern | None:
    """Find the learned pattern that applies to a record.

    All merchant matches are tried before any description match; within a
    pass the stored order of patterns decides.

    Args:
        transaction: Record to match
        patterns: Candidate patterns, already filtered by confidence

    Returns:
        Matching LearnedPattern or None
    """
    if transaction.merchant:
        for pattern in patterns:
            if pattern.merchant and _merchant_matches(pattern.merchant, transaction.merchant):
                return pattern

    description = transaction.description.lower()
    for pattern in patterns:
        if pattern.description_pattern and pattern.description_pattern.lower() in description:
            return pattern

    return None


@dataclass
class CorrectionResult:
    """Outcome of learning from a user correction."""

    learned: bool
    similar_count: int = 0
    similar_transaction_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "learned": self.learned,
            "similar_count": self.similar_count,
            "similar_transaction_ids": self.similar_transaction_ids,
        }


class PatternLearner:
    """Stores user corrections as patterns and finds records they apply to."""

    def __init__(
        self,
        pattern_store: PatternStore,
        transaction_store: TransactionStore
    ):
        """Initialize the pattern learner.

        Args:
            pattern_store: Store holding learned patterns
            transaction_store: Store holding committed transactions
        """
        self.pattern_store = pattern_store
        self.transaction_store = transaction_store

    def suggestion_patterns(self, user_id: str) -> list[LearnedPattern]:
        """Patterns trusted enough to suggest categories at import time."""
        return self.pattern_store.list_patterns(require_user(user_id), min_confidence=SUGGESTION_MIN_CONFIDENCE)

    def sweep_patterns(self, user_id: str) -> list[LearnedPattern]:
        """Patterns trusted enough to rewrite committed transactions."""
        return self.pattern_store.list_patterns(require_user(user_id), min_confidence=RECATEGORIZE_MIN_CONFIDENCE)

    def upsert_pattern(
        self,
        user_id: str,
        merchant: str | None,
        description: str,
        category_id: str
    ) -> LearnedPattern:
        """Create or overwrite the pattern for a merchant/description.

        A correction always wins: the category is replaced and confidence
        reset to 1.0.

        Raises:
            TransactionStoreError: If the pattern cannot be stored
        """
        user_id = require_user(user_id)
        merchant = merchant or None
        description_pattern = extract_pattern(description)

        pattern = self.pattern_store.find_pattern(user_id, merchant, description_pattern)

        if pattern:
            pattern.category_id = category_id
            pattern.description_pattern = description_pattern
            pattern.confidence = 1.0
            pattern.times_applied += 1
            pattern.updated_at = datetime.now()
        else:
            now = datetime.now()
            pattern = LearnedPattern(
                user_id=user_id,
                category_id=category_id,
                merchant=merchant,
                description_pattern=description_pattern,
                confidence=1.0,
                times_applied=1,
                created_at=now,
                updated_at=now,
            )

        return self.pattern_store.save_pattern(pattern)

    def learn_category_correction(
        self,
        user_id: str,
        merchant: str | None,
        description: str,
        category_id: str
    ) -> CorrectionResult:
        """Learn from a correction and look up already-imported look-alikes.

        Args:
            user_id: User making the correction
            merchant: Merchant of the corrected record, if any
            description: Description of the corrected record
            category_id: Category chosen by the user

        Returns:
            CorrectionResult with the ids of committed transactions sharing the
            merchant (or description pattern) whose category differs
        """
        user_id = require_user(user_id)

        try:
            pattern = self.upsert_pattern(user_id, merchant, description, category_id)
        except TransactionStoreError as e:
            logger.error(f"Failed to store learned pattern: {e}")
            return CorrectionResult(learned=False)

        logger.info(f"Learned pattern '{pattern.key}' -> {category_id}")

        try:
            if merchant:
                similar = self.transaction_store.find_by_merchant(
                    user_id,
                    merchant,
                    exclude_category_id=category_id,
                    limit=SIMILAR_LIMIT,
                )
            elif pattern.description_pattern:
                similar = self.transaction_store.find_by_description(
                    user_id,
                    pattern.description_pattern,
                    exclude_category_id=category_id,
                    limit=SIMILAR_LIMIT,
                )
            else:
                similar = []
        except TransactionStoreError as e:
            logger.error(f"Failed to find similar transactions: {e}")
            return CorrectionResult(learned=True)

        return CorrectionResult(
            learned=True,
            similar_count=len(similar),
            similar_transaction_ids=[t.id for t in similar],
        )
