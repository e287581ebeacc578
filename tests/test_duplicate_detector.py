"""
Duplicate Detector Tests
"""

import pytest
from datetime import date
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "python"))

from statement_import.duplicate_detector import (
    DuplicateCheck,
    DuplicateDetector,
    description_similarity,
    filter_duplicates,
    normalize_description,
)


class TestDescriptionSimilarity:
    """Tests for normalization and bigram similarity."""

    def test_normalize(self):
        assert normalize_description("  Compra   CONTINENTE, Lisboa! ") == "compra continente lisboa"

    def test_normalize_keeps_accented_letters(self):
        assert normalize_description("Pastelaria São João") == "pastelaria são joão"

    def test_identical(self):
        assert description_similarity("netflix", "netflix") == 1.0

    def test_short_strings(self):
        assert description_similarity("a", "ab") == 0.0
        assert description_similarity("ab", "") == 0.0
        assert description_similarity("a", "a") == 1.0

    def test_unrelated(self):
        assert description_similarity("netflix", "uber") == 0.0

    def test_partial_overlap(self):
        score = description_similarity("pingo doce lisboa", "pingo doce porto")
        assert 0.5 < score < 1.0

    @pytest.mark.parametrize("a,b", [
        ("compra continente", "compra continente lisboa"),
        ("pingo doce lisboa", "pingo doce porto"),
        ("uber trip", "uber eats"),
        ("aaaa", "aa"),
    ])
    def test_symmetric(self, a, b):
        assert description_similarity(a, b) == description_similarity(b, a)

    @pytest.mark.parametrize("a,b", [
        ("compra continente", "compra continente lisboa"),
        ("ab", "abab"),
        ("x y", "x y z"),
    ])
    def test_bounded(self, a, b):
        assert 0.0 <= description_similarity(a, b) <= 1.0


class TestDuplicateDetector:
    """Tests for DuplicateDetector against the transaction store."""

    @pytest.fixture
    def detector(self, transaction_store):
        return DuplicateDetector(transaction_store)

    def test_near_identical_description_is_duplicate(
        self, detector, transaction_store, make_transaction, user_id, account_id
    ):
        """Test a longer description of the same purchase is flagged."""
        existing_id = transaction_store.add(date(2025, 9, 1), "12.50", "Compra Continente")

        check = detector.check_duplicate(
            user_id, account_id, make_transaction("Compra Continente Lisboa", "12.50")
        )

        assert check.is_duplicate is True
        assert check.match_score >= 0.95
        assert check.existing_id == existing_id

    def test_exact_match_scores_one(
        self, detector, transaction_store, make_transaction, user_id, account_id
    ):
        transaction_store.add(date(2025, 9, 1), "12.50", "COMPRA  continente.")

        check = detector.check_duplicate(user_id, account_id, make_transaction("Compra Continente"))

        assert check.is_duplicate is True
        assert check.match_score == pytest.approx(1.0)

    def test_no_candidates(self, detector, make_transaction, user_id, account_id):
        check = detector.check_duplicate(user_id, account_id, make_transaction())

        assert check == DuplicateCheck(is_duplicate=False, match_score=0.0, existing_id=None)

    def test_amount_or_date_mismatch_excluded(
        self, detector, transaction_store, make_transaction, user_id, account_id
    ):
        """Test that candidates must match date and amount exactly."""
        transaction_store.add(date(2025, 9, 1), "12.51", "Compra Continente")
        transaction_store.add(date(2025, 9, 2), "12.50", "Compra Continente")

        check = detector.check_duplicate(user_id, account_id, make_transaction())

        assert check.is_duplicate is False
        assert check.match_score == 0.0

    def test_other_account_ignored(
        self, detector, transaction_store, make_transaction, user_id, account_id
    ):
        transaction_store.add(date(2025, 9, 1), "12.50", "Compra Continente", account_id="acc-2")

        check = detector.check_duplicate(user_id, account_id, make_transaction())
        assert check.is_duplicate is False

    def test_different_description_below_threshold(
        self, detector, transaction_store, make_transaction, user_id, account_id
    ):
        transaction_store.add(date(2025, 9, 1), "12.50", "Uber trip")

        check = detector.check_duplicate(user_id, account_id, make_transaction())

        assert check.is_duplicate is False
        assert 0.6 <= check.match_score < 0.95
        assert check.existing_id is None

    def test_store_failure_is_not_duplicate(
        self, detector, transaction_store, make_transaction, user_id, account_id
    ):
        transaction_store.fail_lookups = True

        check = detector.check_duplicate(user_id, account_id, make_transaction())
        assert check.is_duplicate is False

    def test_batch_keyed_by_index(
        self, detector, transaction_store, make_transaction, user_id, account_id
    ):
        transaction_store.add(date(2025, 9, 1), "12.50", "Compra Continente")
        transactions = [
            make_transaction("Netflix", "7.99"),
            make_transaction("Compra Continente"),
            make_transaction("Netflix", "7.99"),
        ]

        checks = detector.check_batch(user_id, account_id, transactions)

        assert list(checks.keys()) == [0, 1, 2]
        assert checks[1].is_duplicate is True
        # Records in the same batch are never compared with each other
        assert checks[0].is_duplicate is False
        assert checks[2].is_duplicate is False

    def test_filter_duplicates(self, make_transaction):
        transactions = [make_transaction("a1"), make_transaction("b2"), make_transaction("c3")]
        checks = {
            0: DuplicateCheck(False, 0.0),
            1: DuplicateCheck(True, 1.0, "txn-1"),
        }

        unique, duplicates = filter_duplicates(transactions, checks)

        assert [t.description for t in unique] == ["a1", "c3"]
        assert [t.description for t in duplicates] == ["b2"]
