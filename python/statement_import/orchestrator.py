"""
Import Orchestrator Module

Runs a statement import: preview (detect, validate, parse, duplicate check,
category suggestion) followed by confirmation (per-record commit with an
audit batch). ImportSession drives the same operations as a step-by-step
workflow for one user.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .categorizer import SuggestionRequest, TransactionCategorizer
from .config import ImportSettings
from .detector import PARSERS, detect, display_name, get_parser
from .duplicate_detector import DuplicateDetector
from .exceptions import (
    ImportStateError,
    StatementImportError,
    TransactionStoreError,
    require_user,
)
from .parsers import CanonicalTransaction, FileKind, SourceFormat
from .patterns import CorrectionResult, PatternLearner, find_learned_category
from .store import (
    Category,
    CategoryStore,
    ImportBatch,
    ImportBatchStore,
    PatternStore,
    TransactionStore,
)

logger = logging.getLogger(__name__)


@dataclass
class PreviewTransaction:
    """A parsed record as shown for review before committing."""

    index: int
    transaction: CanonicalTransaction
    is_duplicate: bool = False
    duplicate_of: str | None = None
    match_score: float = 0.0
    suggested_category_id: str | None = None
    suggested_category_name: str | None = None
    confidence: float | None = None
    suggestion_source: str | None = None  # 'learned', 'ai'
    skip: bool = False

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            **self.transaction.to_record(),
            "is_duplicate": self.is_duplicate,
            "duplicate_of": self.duplicate_of,
            "match_score": self.match_score,
            "suggested_category_id": self.suggested_category_id,
            "suggested_category_name": self.suggested_category_name,
            "confidence": self.confidence,
            "suggestion_source": self.suggestion_source,
            "skip": self.skip,
        }


@dataclass
class ImportPreview:
    """Result of previewing a statement file."""

    source_format: SourceFormat
    file_name: str
    file_kind: FileKind = FileKind.UNKNOWN
    detection_confidence: float = 0.0
    transactions: list[PreviewTransaction] = field(default_factory=list)
    error: str | None = None

    @property
    def total_transactions(self) -> int:
        return len(self.transactions)

    @property
    def duplicate_count(self) -> int:
        return sum(1 for t in self.transactions if t.is_duplicate)

    def to_dict(self) -> dict:
        return {
            "bank": self.source_format.value,
            "bank_name": display_name(self.source_format),
            "file_name": self.file_name,
            "file_kind": self.file_kind.value,
            "detection_confidence": self.detection_confidence,
            "total_transactions": self.total_transactions,
            "duplicate_count": self.duplicate_count,
            "transactions": [t.to_dict() for t in self.transactions],
            "error": self.error,
        }


@dataclass
class ImportResult:
    """Result of committing a reviewed import."""

    imported_count: int = 0
    duplicate_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    errors: list[str] = field(default_factory=list)
    batch_id: str | None = None

    @property
    def success(self) -> bool:
        return self.error_count == 0

    @property
    def summary(self) -> str:
        return (
            f"{self.imported_count} imported, "
            f"{self.duplicate_count} duplicates skipped, "
            f"{self.error_count} errors"
        )

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "imported_count": self.imported_count,
            "duplicate_count": self.duplicate_count,
            "skipped_count": self.skipped_count,
            "error_count": self.error_count,
            "errors": self.errors,
            "batch_id": self.batch_id,
            "summary": self.summary,
        }


class ImportService:
    """Statement import operations, each scoped to one user."""

    def __init__(
        self,
        transaction_store: TransactionStore,
        category_store: CategoryStore,
        pattern_store: PatternStore,
        batch_store: ImportBatchStore,
        categorizer: TransactionCategorizer | None = None,
        settings: ImportSettings | None = None
    ):
        """Initialize the import service.

        Args:
            transaction_store: Committed transactions
            category_store: Categories offered for suggestions
            pattern_store: Learned patterns
            batch_store: Import batch audit records
            categorizer: AI categorizer; None disables AI suggestions
            settings: Import settings (owner names, AI batch limit)
        """
        self.transaction_store = transaction_store
        self.category_store = category_store
        self.pattern_store = pattern_store
        self.batch_store = batch_store
        self.categorizer = categorizer
        self.settings = settings or ImportSettings()

        self.duplicate_detector = DuplicateDetector(transaction_store)
        self.learner = PatternLearner(pattern_store, transaction_store)

    def list_categories(self, user_id: str) -> list[Category]:
        return self.category_store.list_categories(require_user(user_id))

    def preview_import(
        self,
        user_id: str,
        account_id: str,
        file_name: str,
        content: str
    ) -> ImportPreview:
        """Parse a statement and annotate each record for review.

        Unknown formats, invalid files and store failures are reported in
        ``ImportPreview.error``, never raised.

        Raises:
            AuthenticationError: If no user is given
        """
        user_id = require_user(user_id)

        detection = detect(content, file_name)
        if not detection.is_known:
            return ImportPreview(
                source_format=SourceFormat.UNKNOWN,
                file_name=file_name,
                error="Could not identify the bank. Format not recognised.",
            )

        preview = ImportPreview(
            source_format=detection.source_format,
            file_name=file_name,
            file_kind=detection.file_kind,
            detection_confidence=detection.confidence,
        )

        parser = get_parser(detection.source_format, self.settings.owner_names)
        validation = parser.validate(content)
        if not validation.valid:
            preview.error = validation.error
            return preview

        try:
            transactions = parser.parse(content)
            preview.transactions = self._build_preview(user_id, account_id, transactions)
        except StatementImportError as e:
            logger.error(f"Error previewing {file_name}: {e}")
            preview.error = str(e)
            preview.transactions = []

        logger.info(
            f"Previewed {file_name}: {preview.total_transactions} records, "
            f"{preview.duplicate_count} duplicates"
        )

        return preview

    def _build_preview(
        self,
        user_id: str,
        account_id: str,
        transactions: list[CanonicalTransaction]
    ) -> list[PreviewTransaction]:
        checks = self.duplicate_detector.check_batch(user_id, account_id, transactions)
        categories = self.category_store.list_categories(user_id)
        categories_map = {c.id: c for c in categories}
        patterns = self.learner.suggestion_patterns(user_id)

        records = []
        for i, txn in enumerate(transactions):
            check = checks[i]
            record = PreviewTransaction(
                index=i,
                transaction=txn,
                is_duplicate=check.is_duplicate,
                duplicate_of=check.existing_id,
                match_score=check.match_score,
            )

            if not record.is_duplicate:
                learned = find_learned_category(txn, patterns)
                if learned:
                    category = categories_map.get(learned.category_id)
                    record.suggested_category_id = learned.category_id
                    record.suggested_category_name = category.name if category else None
                    record.confidence = learned.confidence
                    record.suggestion_source = "learned"

            records.append(record)

        self._apply_ai_suggestions(records, categories)

        return records

    def _apply_ai_suggestions(
        self,
        records: list[PreviewTransaction],
        categories: list[Category]
    ) -> None:
        """Ask the categorizer about records still lacking a suggestion."""
        if not self.categorizer:
            return

        pending = [r for r in records if not r.is_duplicate and not r.suggested_category_id]
        if not pending:
            return

        if len(pending) > self.settings.ai_batch_limit:
            logger.info(f"{len(pending)} uncategorized records exceed the AI batch limit, leaving them for manual review")
            return

        requests = [
            SuggestionRequest(
                key=r.index,
                description=r.transaction.description,
                merchant=r.transaction.merchant,
                amount=r.transaction.amount,
                transaction_type=r.transaction.type.value,
            )
            for r in pending
        ]

        suggestions = self.categorizer.suggest_categories(requests, categories)

        for record in pending:
            suggestion = suggestions.get(record.index)
            if suggestion:
                record.suggested_category_id = suggestion.category_id
                record.suggested_category_name = suggestion.category_name
                record.confidence = suggestion.confidence
                record.suggestion_source = "ai"

    def confirm_import(
        self,
        user_id: str,
        account_id: str,
        records: list[PreviewTransaction],
        file_name: str,
        source_format: SourceFormat
    ) -> ImportResult:
        """Commit reviewed records one by one.

        A failed insert is counted and reported but never stops the batch.

        Raises:
            AuthenticationError: If no user is given
        """
        user_id = require_user(user_id)

        parser_cls = PARSERS.get(source_format)
        file_kind = parser_cls.FILE_KIND if parser_cls else FileKind.CSV

        batch = ImportBatch(
            user_id=user_id,
            source_format=source_format.value,
            file_name=file_name,
            file_kind=file_kind.value,
            total_count=len(records),
        )

        try:
            batch.id = self.batch_store.create_batch(batch)
        except TransactionStoreError as e:
            logger.error(f"Failed to create import batch for {file_name}: {e}")
            return ImportResult(error_count=len(records), errors=[str(e)])

        result = ImportResult(batch_id=batch.id)

        for record in records:
            if record.is_duplicate:
                result.duplicate_count += 1
                continue

            if record.skip:
                result.skipped_count += 1
                continue

            txn = record.transaction
            try:
                self.transaction_store.insert_transaction(
                    user_id,
                    account_id,
                    txn,
                    category_id=record.suggested_category_id,
                    import_batch_id=batch.id,
                )
                result.imported_count += 1
            except TransactionStoreError as e:
                logger.warning(f"Failed to import '{txn.description}': {e}")
                result.error_count += 1
                result.errors.append(f"{txn.description}: {e}")

        batch.imported_count = result.imported_count
        batch.duplicate_count = result.duplicate_count
        batch.skipped_count = result.skipped_count
        batch.error_count = result.error_count
        batch.status = "completed"
        batch.completed_at = datetime.now()

        try:
            self.batch_store.update_batch(batch)
        except TransactionStoreError as e:
            logger.error(f"Failed to finalize import batch {batch.id}: {e}")

        logger.info(f"Import {batch.id} of {file_name}: {result.summary}")

        return result

    def learn_category_correction(
        self,
        user_id: str,
        merchant: str | None,
        description: str,
        category_id: str
    ) -> CorrectionResult:
        """Store a user correction as a learned pattern.

        Raises:
            AuthenticationError: If no user is given
        """
        user_id = require_user(user_id)
        return self.learner.learn_category_correction(user_id, merchant, description, category_id)


class ImportStep(str, Enum):
    """Steps of the import workflow."""
    UPLOAD = "upload"
    PREVIEW = "preview"
    IMPORTING = "importing"
    COMPLETE = "complete"


class ImportSession:
    """One user's pass through upload -> preview -> importing -> complete."""

    def __init__(
        self,
        service: ImportService,
        user_id: str,
        categories: list[Category] | None = None
    ):
        self.service = service
        self.user_id = require_user(user_id)
        self._categories = {c.id: c for c in categories} if categories is not None else None

        self.step = ImportStep.UPLOAD
        self.account_id: str | None = None
        self.file_name: str | None = None
        self.preview: ImportPreview | None = None
        self.records: list[PreviewTransaction] = []
        self.corrections: list[CorrectionResult] = []
        self.result: ImportResult | None = None
        self.error: str | None = None

    def _require_step(self, step: ImportStep, action: str) -> None:
        if self.step != step:
            raise ImportStateError(f"Cannot {action} during {self.step.value} step")

    def _record(self, index: int) -> PreviewTransaction:
        if not 0 <= index < len(self.records):
            raise ImportStateError(f"No record at index {index}")
        return self.records[index]

    def _category_name(self, category_id: str) -> str | None:
        if self._categories is None:
            self._categories = {c.id: c for c in self.service.list_categories(self.user_id)}
        category = self._categories.get(category_id)
        return category.name if category else None

    def select_account(self, account_id: str) -> None:
        self._require_step(ImportStep.UPLOAD, "select an account")
        self.account_id = account_id

    def upload(self, file_name: str, content: str) -> bool:
        """Preview a file; advances to the preview step on success.

        Returns:
            True if the preview step was reached, otherwise ``error`` is set
        """
        self._require_step(ImportStep.UPLOAD, "upload a file")
        self.error = None

        if not self.account_id:
            self.error = "Select an account first"
            return False

        if not file_name or not content:
            self.error = "Select a file to import"
            return False

        preview = self.service.preview_import(self.user_id, self.account_id, file_name, content)
        if preview.error:
            self.error = preview.error
            return False

        self.file_name = file_name
        self.preview = preview
        self.records = preview.transactions
        self.step = ImportStep.PREVIEW

        return True

    def update_category(self, index: int, category_id: str) -> CorrectionResult | None:
        """Change a record's category.

        Replacing a different earlier suggestion is a correction: it is learned
        and the look-alike count is returned.
        """
        self._require_step(ImportStep.PREVIEW, "change a category")
        record = self._record(index)

        previous = record.suggested_category_id
        record.suggested_category_id = category_id
        record.suggested_category_name = self._category_name(category_id)

        if not previous or previous == category_id:
            return None

        correction = self.service.learn_category_correction(
            self.user_id,
            record.transaction.merchant,
            record.transaction.description,
            category_id,
        )
        self.corrections.append(correction)

        return correction

    def toggle_duplicate(self, index: int) -> bool:
        self._require_step(ImportStep.PREVIEW, "change duplicate flags")
        record = self._record(index)
        record.is_duplicate = not record.is_duplicate
        return record.is_duplicate

    def toggle_skip(self, index: int) -> bool:
        self._require_step(ImportStep.PREVIEW, "skip records")
        record = self._record(index)
        record.skip = not record.skip
        return record.skip

    def confirm(self) -> ImportResult | None:
        """Commit the reviewed records.

        Returns:
            ImportResult, or None if the import could not start (``error`` is
            set and the session stays in the preview step)
        """
        self._require_step(ImportStep.PREVIEW, "confirm")
        self.error = None
        self.step = ImportStep.IMPORTING

        try:
            self.result = self.service.confirm_import(
                self.user_id,
                self.account_id,
                self.records,
                self.file_name,
                self.preview.source_format,
            )
        except StatementImportError as e:
            logger.error(f"Import of {self.file_name} failed: {e}")
            self.error = str(e)
            self.step = ImportStep.PREVIEW
            return None

        self.step = ImportStep.COMPLETE
        return self.result

    def reset(self) -> None:
        """Discard the current file and return to the upload step."""
        self.step = ImportStep.UPLOAD
        self.file_name = None
        self.preview = None
        self.records = []
        self.corrections = []
        self.result = None
        self.error = None
