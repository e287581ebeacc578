"""
Store Interfaces Module

Records exchanged with the persistence layer and the abstract stores the
import pipeline depends on. All operations are scoped to one user.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from .parsers import CanonicalTransaction


@dataclass
class StoredTransaction:
    """A transaction already committed to the store."""

    id: str
    date: date
    description: str
    amount: Decimal
    merchant: str | None = None
    category_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "description": self.description,
            "amount": float(self.amount),
            "merchant": self.merchant,
            "category_id": self.category_id,
        }


@dataclass
class Category:
    """Transaction category; user_id is None for global categories."""

    id: str
    name: str
    type: str
    user_id: str | None = None


@dataclass
class LearnedPattern:
    """Association from a merchant or description fragment to a category."""

    user_id: str
    category_id: str
    merchant: str | None = None
    description_pattern: str | None = None
    confidence: float = 1.0
    times_applied: int = 1
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def key(self) -> str:
        """Identity used when a correction overwrites an earlier one."""
        if self.merchant:
            return self.merchant.lower()
        return self.description_pattern or ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant": self.merchant,
            "description_pattern": self.description_pattern,
            "category_id": self.category_id,
            "confidence_score": self.confidence,
            "times_applied": self.times_applied,
        }


@dataclass
class ImportBatch:
    """Audit record of one statement import."""

    user_id: str
    source_format: str
    file_name: str
    file_kind: str
    total_count: int
    imported_count: int = 0
    duplicate_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    status: str = "processing"  # 'processing', 'completed', 'failed'
    id: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None


class TransactionStore(ABC):
    """Persistent transaction history."""

    @abstractmethod
    def find_duplicate_candidates(
        self,
        user_id: str,
        account_id: str,
        txn_date: date,
        amount: Decimal,
        limit: int = 10
    ) -> list[StoredTransaction]:
        """Transactions of the account with exactly this date and amount."""

    @abstractmethod
    def insert_transaction(
        self,
        user_id: str,
        account_id: str,
        transaction: CanonicalTransaction,
        category_id: str | None = None,
        import_batch_id: str | None = None
    ) -> str:
        """Insert a transaction and return its id."""

    @abstractmethod
    def delete_transaction(self, user_id: str, transaction_id: str) -> bool:
        """Delete a transaction, returning whether it existed."""

    @abstractmethod
    def find_by_merchant(
        self,
        user_id: str,
        merchant: str,
        exclude_id: str | None = None,
        exclude_category_id: str | None = None,
        limit: int = 100
    ) -> list[StoredTransaction]:
        """Transactions whose merchant equals the given one, newest first."""

    @abstractmethod
    def find_by_description(
        self,
        user_id: str,
        fragment: str,
        exclude_id: str | None = None,
        exclude_category_id: str | None = None,
        limit: int = 100
    ) -> list[StoredTransaction]:
        """Transactions whose description contains the fragment (any case)."""

    @abstractmethod
    def update_category_by_ids(
        self,
        user_id: str,
        transaction_ids: list[str],
        category_id: str
    ) -> int:
        """Set the category of the given transactions, returning the count."""

    @abstractmethod
    def update_category_matching(
        self,
        user_id: str,
        category_id: str,
        merchant: str | None = None,
        description_fragment: str | None = None
    ) -> int:
        """Set the category where merchant equals and/or description contains."""


class CategoryStore(ABC):
    """Global and user-owned categories."""

    @abstractmethod
    def list_categories(self, user_id: str) -> list[Category]:
        """Global categories plus those owned by the user."""


class PatternStore(ABC):
    """Learned categorization patterns."""

    @abstractmethod
    def list_patterns(self, user_id: str, min_confidence: float = 0.0) -> list[LearnedPattern]:
        """Patterns of the user in creation order."""

    @abstractmethod
    def find_pattern(
        self,
        user_id: str,
        merchant: str | None,
        description_pattern: str | None
    ) -> LearnedPattern | None:
        """Pattern with the same key, if any."""

    @abstractmethod
    def save_pattern(self, pattern: LearnedPattern) -> LearnedPattern:
        """Insert a new pattern or overwrite an existing one (by id)."""

    @abstractmethod
    def increment_usage(self, user_id: str, pattern_id: str) -> None:
        """Increase times_applied by one."""


class ImportBatchStore(ABC):
    """Import batch audit records."""

    @abstractmethod
    def create_batch(self, batch: ImportBatch) -> str:
        """Persist a new batch and return its id."""

    @abstractmethod
    def update_batch(self, batch: ImportBatch) -> None:
        """Persist the terminal status and counts of a batch."""
