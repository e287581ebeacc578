"""
Bank-specific parsers for account statements.
"""

from .base import (
    BaseStatementParser,
    CanonicalTransaction,
    DelimitedStatementParser,
    FileKind,
    SourceFormat,
    TransactionType,
    ValidationResult,
)
from .nubank import NubankParser
from .revolut import RevolutParser
from .unsupported import UnsupportedStatementParser
from .wise import WiseParser

__all__ = [
    "BaseStatementParser",
    "CanonicalTransaction",
    "DelimitedStatementParser",
    "FileKind",
    "SourceFormat",
    "TransactionType",
    "ValidationResult",
    "NubankParser",
    "RevolutParser",
    "UnsupportedStatementParser",
    "WiseParser",
]
