"""
Statement Import Module

Imports bank statements (Revolut, Wise, Nubank) into the transaction
history: format detection, parsing, duplicate detection, learned and
AI-assisted categorization, and bulk recategorization.
"""

from .categorizer import CategorySuggestion, SuggestionRequest, TransactionCategorizer
from .config import ImportSettings, load_settings
from .detector import DetectionResult, detect, detect_and_parse, get_parser
from .duplicate_detector import (
    DuplicateCheck,
    DuplicateDetector,
    description_similarity,
    filter_duplicates,
    normalize_description,
)
from .exceptions import (
    AuthenticationError,
    ImportStateError,
    InvalidFileError,
    StatementImportError,
    TransactionStoreError,
    UnrecognizedFormatError,
)
from .orchestrator import (
    ImportPreview,
    ImportResult,
    ImportService,
    ImportSession,
    ImportStep,
    PreviewTransaction,
)
from .parsers import CanonicalTransaction, FileKind, SourceFormat, TransactionType
from .patterns import CorrectionResult, PatternLearner, extract_pattern, find_learned_category
from .recategorize import RecategorizeResult, Recategorizer
from .store import Category, ImportBatch, LearnedPattern, StoredTransaction

__all__ = [
    # Parsing
    "CanonicalTransaction",
    "DetectionResult",
    "FileKind",
    "SourceFormat",
    "TransactionType",
    "detect",
    "detect_and_parse",
    "get_parser",
    # Duplicates
    "DuplicateCheck",
    "DuplicateDetector",
    "description_similarity",
    "filter_duplicates",
    "normalize_description",
    # Categorization
    "CategorySuggestion",
    "CorrectionResult",
    "PatternLearner",
    "RecategorizeResult",
    "Recategorizer",
    "SuggestionRequest",
    "TransactionCategorizer",
    "extract_pattern",
    "find_learned_category",
    # Orchestration
    "ImportPreview",
    "ImportResult",
    "ImportService",
    "ImportSession",
    "ImportStep",
    "PreviewTransaction",
    # Records
    "Category",
    "ImportBatch",
    "LearnedPattern",
    "StoredTransaction",
    # Config and errors
    "ImportSettings",
    "load_settings",
    "AuthenticationError",
    "ImportStateError",
    "InvalidFileError",
    "StatementImportError",
    "TransactionStoreError",
    "UnrecognizedFormatError",
]
