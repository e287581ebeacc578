"""
Recategorization Module

Bulk category changes over committed transactions: by explicit ids, by
merchant, or by sweeping all high-confidence learned patterns.
"""

import logging
from dataclasses import dataclass, field

from .config import RECATEGORIZE_MIN_CONFIDENCE
from .exceptions import TransactionStoreError, require_user
from .store import CategoryStore, PatternStore, StoredTransaction, TransactionStore

logger = logging.getLogger(__name__)

# Words shorter than this are not used as description keywords
MIN_KEYWORD_LENGTH = 4
MAX_KEYWORDS = 3


@dataclass
class RecategorizeResult:
    """Outcome of a bulk category update."""

    success: bool
    updated: int = 0
    errors: int = 0
    message: str | None = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "updated": self.updated,
            "errors": self.errors,
            "message": self.message,
        }


@dataclass
class SimilarTransactions:
    """Committed transactions resembling a given one."""

    by_merchant: list[StoredTransaction] = field(default_factory=list)
    by_description: list[StoredTransaction] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.by_merchant) + len(self.by_description)

    def to_dict(self) -> dict:
        return {
            "by_merchant": [t.to_dict() for t in self.by_merchant],
            "by_description": [t.to_dict() for t in self.by_description],
            "total": self.total,
        }


@dataclass
class PatternStats:
    """Summary of a user's learned patterns."""

    total_patterns: int = 0
    high_confidence: int = 0
    low_confidence: int = 0
    patterns: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total_patterns": self.total_patterns,
            "high_confidence": self.high_confidence,
            "low_confidence": self.low_confidence,
            "patterns": self.patterns,
        }


def description_keywords(description: str) -> list[str]:
    words = (description or "").lower().split()
    return [w for w in words if len(w) >= MIN_KEYWORD_LENGTH][:MAX_KEYWORDS]


class Recategorizer:
    """Applies category changes to transactions already in the store."""

    def __init__(
        self,
        transaction_store: TransactionStore,
        pattern_store: PatternStore,
        category_store: CategoryStore | None = None
    ):
        self.transaction_store = transaction_store
        self.pattern_store = pattern_store
        self.category_store = category_store

    def find_similar_by_merchant(
        self,
        user_id: str,
        merchant: str,
        exclude_id: str | None = None
    ) -> list[StoredTransaction]:
        """Transactions with exactly this merchant, newest first."""
        user_id = require_user(user_id)
        try:
            return self.transaction_store.find_by_merchant(user_id, merchant, exclude_id=exclude_id)
        except TransactionStoreError as e:
            logger.error(f"Error finding transactions for merchant '{merchant}': {e}")
            return []

    def find_similar_by_description(
        self,
        user_id: str,
        description: str,
        exclude_id: str | None = None
    ) -> list[StoredTransaction]:
        """Transactions whose description contains the first keyword."""
        user_id = require_user(user_id)
        keywords = description_keywords(description)
        if not keywords:
            return []

        try:
            return self.transaction_store.find_by_description(user_id, keywords[0], exclude_id=exclude_id)
        except TransactionStoreError as e:
            logger.error(f"Error finding transactions by description: {e}")
            return []

    def find_all_similar(
        self,
        user_id: str,
        merchant: str | None,
        description: str,
        exclude_id: str | None = None
    ) -> SimilarTransactions:
        """Merchant matches plus description matches not already found."""
        user_id = require_user(user_id)
        by_merchant = self.find_similar_by_merchant(user_id, merchant, exclude_id) if merchant else []
        by_description = self.find_similar_by_description(user_id, description, exclude_id)

        merchant_ids = {t.id for t in by_merchant}

        return SimilarTransactions(
            by_merchant=by_merchant,
            by_description=[t for t in by_description if t.id not in merchant_ids],
        )

    def recategorize_transactions(
        self,
        user_id: str,
        transaction_ids: list[str],
        category_id: str
    ) -> RecategorizeResult:
        """Set the category of the given transactions."""
        user_id = require_user(user_id)
        if not transaction_ids:
            return RecategorizeResult(success=True, message="No transactions selected")

        try:
            updated = self.transaction_store.update_category_by_ids(user_id, transaction_ids, category_id)
        except TransactionStoreError as e:
            logger.error(f"Error recategorizing transactions: {e}")
            return RecategorizeResult(
                success=False,
                errors=len(transaction_ids),
                message=str(e),
            )

        logger.info(f"Recategorized {updated} transactions to {category_id}")
        return RecategorizeResult(
            success=True,
            updated=updated,
            message=f"{updated} transactions recategorized",
        )

    def recategorize_by_merchant(
        self,
        user_id: str,
        merchant: str,
        category_id: str
    ) -> RecategorizeResult:
        """Set the category of every transaction with this merchant."""
        user_id = require_user(user_id)
        try:
            updated = self.transaction_store.update_category_matching(
                user_id, category_id, merchant=merchant
            )
        except TransactionStoreError as e:
            logger.error(f"Error recategorizing merchant '{merchant}': {e}")
            return RecategorizeResult(success=False, message=str(e))

        return RecategorizeResult(
            success=True,
            updated=updated,
            message=f'{updated} transactions from "{merchant}" recategorized',
        )

    def apply_learned_patterns(self, user_id: str) -> RecategorizeResult:
        """Apply every high-confidence learned pattern to committed transactions.

        A pattern with both a merchant and a description pattern only touches
        transactions matching both. Failures of one pattern are counted and
        the sweep continues.

        Returns:
            RecategorizeResult; success means at least one transaction changed
        """
        user_id = require_user(user_id)

        try:
            patterns = self.pattern_store.list_patterns(user_id, min_confidence=RECATEGORIZE_MIN_CONFIDENCE)
        except TransactionStoreError as e:
            logger.error(f"Error loading learned patterns: {e}")
            return RecategorizeResult(success=False, message=str(e))

        if not patterns:
            return RecategorizeResult(success=True, message="No learned patterns found")

        total_updated = 0
        total_errors = 0

        for pattern in patterns:
            if not pattern.merchant and not pattern.description_pattern:
                continue

            try:
                updated = self.transaction_store.update_category_matching(
                    user_id,
                    pattern.category_id,
                    merchant=pattern.merchant,
                    description_fragment=pattern.description_pattern or None,
                )
                total_updated += updated
                if pattern.id:
                    self.pattern_store.increment_usage(user_id, pattern.id)
            except TransactionStoreError as e:
                logger.warning(f"Failed to apply pattern '{pattern.key}': {e}")
                total_errors += 1

        logger.info(f"Applied {len(patterns)} patterns, {total_updated} transactions updated")

        return RecategorizeResult(
            success=total_updated > 0,
            updated=total_updated,
            errors=total_errors,
            message=f"{total_updated} transactions recategorized using {len(patterns)} learned patterns",
        )

    def pattern_stats(self, user_id: str) -> PatternStats:
        """Count learned patterns by confidence, most used first."""
        user_id = require_user(user_id)
        try:
            patterns = self.pattern_store.list_patterns(user_id)
            categories = self.category_store.list_categories(user_id) if self.category_store else []
        except TransactionStoreError as e:
            logger.error(f"Error loading pattern stats: {e}")
            return PatternStats()

        names = {c.id: c.name for c in categories}
        patterns = sorted(patterns, key=lambda p: p.times_applied, reverse=True)

        high = sum(1 for p in patterns if p.confidence >= RECATEGORIZE_MIN_CONFIDENCE)

        return PatternStats(
            total_patterns=len(patterns),
            high_confidence=high,
            low_confidence=len(patterns) - high,
            patterns=[
                {**p.to_dict(), "category_name": names.get(p.category_id, "Unknown")}
                for p in patterns
            ],
        )
