"""
Duplicate Transaction Detector Module

Flags statement records that already exist in the transaction history of the
target account, using date and amount equality plus description similarity.
"""

import logging
import re
from dataclasses import dataclass

from .config import DUPLICATE_MATCH_THRESHOLD
from .exceptions import TransactionStoreError
from .parsers import CanonicalTransaction
from .store import StoredTransaction, TransactionStore

logger = logging.getLogger(__name__)


@dataclass
class DuplicateCheck:
    """Result of checking one record against the transaction history."""

    is_duplicate: bool
    match_score: float
    existing_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "is_duplicate": self.is_duplicate,
            "match_score": self.match_score,
            "existing_transaction_id": self.existing_id,
        }


def normalize_description(text: str) -> str:
    """Normalize a description for comparison."""
    text = re.sub(r'\s+', ' ', text.lower().strip())
    return re.sub(r'[^\w\s]', '', text)


def _bigrams(text: str) -> set[str]:
    return {text[i:i + 2] for i in range(len(text) - 1)}


def description_similarity(a: str, b: str) -> float:
    """Dice coefficient over character bigram sets.

    Each shared bigram is removed from the second set as it is counted and
    the denominator uses what remains of that set, so near-supersets score
    at the top of the range.

    Returns:
        Similarity in [0, 1]
    """
    if a == b:
        return 1.0
    if len(a) < 2 or len(b) < 2:
        return 0.0

    bigrams_a = _bigrams(a)
    bigrams_b = _bigrams(b)

    intersection = 0
    for bigram in bigrams_a:
        if bigram in bigrams_b:
            intersection += 1
            bigrams_b.discard(bigram)

    score = (2.0 * intersection) / (len(bigrams_a) + len(bigrams_b))
    return min(max(score, 0.0), 1.0)


def match_score(transaction: CanonicalTransaction, existing: StoredTransaction) -> float:
    """Score a candidate that already matched on date and amount."""
    # Date and amount are guaranteed equal by the candidate query
    score = 0.3 + 0.3

    new_desc = normalize_description(transaction.description)
    existing_desc = normalize_description(existing.description or "")

    return score + 0.4 * description_similarity(new_desc, existing_desc)


def filter_duplicates(
    transactions: list[CanonicalTransaction],
    checks: dict[int, DuplicateCheck]
) -> tuple[list[CanonicalTransaction], list[CanonicalTransaction]]:
    """Split records into unique and duplicate lists.

    Args:
        transactions: Records in input order
        checks: Duplicate checks keyed by input index

    Returns:
        Tuple of (unique, duplicates)
    """
    unique = []
    duplicates = []

    for i, txn in enumerate(transactions):
        check = checks.get(i)
        if check and check.is_duplicate:
            duplicates.append(txn)
        else:
            unique.append(txn)

    return unique, duplicates


class DuplicateDetector:
    """Checks records against committed transactions of one account."""

    CANDIDATE_LIMIT = 10

    def __init__(
        self,
        store: TransactionStore,
        threshold: float = DUPLICATE_MATCH_THRESHOLD
    ):
        """Initialize the duplicate detector.

        Args:
            store: Transaction store queried for candidates
            threshold: Minimum score to treat a candidate as the same transaction
        """
        self.store = store
        self.threshold = threshold

    def check_duplicate(
        self,
        user_id: str,
        account_id: str,
        transaction: CanonicalTransaction
    ) -> DuplicateCheck:
        """Check if a single record already exists in the account.

        Args:
            user_id: Owner of the account
            account_id: Target account
            transaction: Record to check

        Returns:
            DuplicateCheck; the first candidate at or above the threshold wins
        """
        try:
            candidates = self.store.find_duplicate_candidates(
                user_id,
                account_id,
                transaction.date,
                transaction.amount,
                limit=self.CANDIDATE_LIMIT,
            )
        except TransactionStoreError as e:
            logger.warning(f"Duplicate lookup failed for '{transaction.description}': {e}")
            return DuplicateCheck(is_duplicate=False, match_score=0.0)

        if not candidates:
            return DuplicateCheck(is_duplicate=False, match_score=0.0)

        best_score = 0.0
        for existing in candidates:
            score = match_score(transaction, existing)

            if score >= self.threshold:
                return DuplicateCheck(
                    is_duplicate=True,
                    match_score=score,
                    existing_id=existing.id,
                )

            best_score = max(best_score, score)

        return DuplicateCheck(is_duplicate=False, match_score=best_score)

    def check_batch(
        self,
        user_id: str,
        account_id: str,
        transactions: list[CanonicalTransaction]
    ) -> dict[int, DuplicateCheck]:
        """Check a batch of records, one at a time.

        Records in the same batch are not compared with each other.

        Returns:
            Duplicate checks keyed by input index
        """
        results = {}
        for i, txn in enumerate(transactions):
            results[i] = self.check_duplicate(user_id, account_id, txn)

        duplicate_count = sum(1 for check in results.values() if check.is_duplicate)
        logger.info(f"Checked {len(transactions)} records, {duplicate_count} duplicates")

        return results
