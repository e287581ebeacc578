"""
Base Statement Parser Module

Canonical transaction record and the abstract base class for bank statement
parsers, with the line and markup helpers the concrete parsers share.
"""

import csv
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum

from ..exceptions import InvalidFileError

logger = logging.getLogger(__name__)


class TransactionType(str, Enum):
    """Direction of a canonical transaction."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class SourceFormat(str, Enum):
    """Statement sources known to the importer."""
    REVOLUT = "revolut"
    WISE = "wise"
    NUBANK = "nubank"
    ACTIVO = "activo"
    NOVOBANCO = "novobanco"
    UNKNOWN = "unknown"


class FileKind(str, Enum):
    """Container format of an uploaded statement."""
    CSV = "csv"
    OFX = "ofx"
    PDF = "pdf"
    UNKNOWN = "unknown"


BANK_DISPLAY_NAMES = {
    SourceFormat.REVOLUT: "Revolut",
    SourceFormat.WISE: "Wise",
    SourceFormat.NUBANK: "Nubank",
    SourceFormat.ACTIVO: "ActivoBank",
    SourceFormat.NOVOBANCO: "Novo Banco",
    SourceFormat.UNKNOWN: "Unknown",
}


@dataclass
class CanonicalTransaction:
    """A statement line normalized independently of its source format."""

    date: date
    description: str
    amount: Decimal
    currency: str
    type: TransactionType
    merchant: str | None = None
    notes: str | None = None
    raw_data: dict = field(default_factory=dict)

    def __post_init__(self):
        if self.amount < 0:
            raise ValueError(f"Amount must be non-negative, got {self.amount}")

    @property
    def signed_amount(self) -> Decimal:
        """Amount with the direction applied (expenses negative)."""
        if self.type == TransactionType.EXPENSE:
            return -self.amount
        return self.amount

    def to_record(self) -> dict:
        """Column values for inserting into the transaction store."""
        return {
            "date": self.date.isoformat(),
            "description": self.description,
            "amount": str(self.amount),
            "currency": self.currency,
            "merchant": self.merchant,
            "notes": self.notes,
            "transaction_type": self.type.value,
        }


@dataclass
class ValidationResult:
    """Outcome of structural validation of a statement file."""

    valid: bool
    error: str | None = None


def preprocess_content(content: str) -> str:
    """Remove BOM and normalize line endings."""
    if content.startswith('\ufeff'):
        content = content[1:]

    return content.replace('\r\n', '\n').replace('\r', '\n')


def first_line(content: str) -> str:
    return preprocess_content(content).split('\n')[0]


def split_delimited_line(line: str, delimiter: str = ",") -> list[str]:
    """Split one line on the delimiter, keeping quoted spans together."""
    try:
        fields = next(csv.reader([line], delimiter=delimiter, skipinitialspace=True), [])
    except csv.Error:
        return []
    return [value.strip() for value in fields]


def parse_amount(value: str | None) -> Decimal | None:
    """Parse an amount using either dot or comma as decimal separator.

    Returns:
        Decimal, or None when the text is not numeric
    """
    if value is None:
        return None

    cleaned = value.strip().replace(",", ".", 1)
    if not cleaned:
        return None

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None

    return amount if amount.is_finite() else None


def extract_blocks(content: str, tag: str) -> list[str]:
    """Return the inner text of every ``<TAG>...</TAG>`` element."""
    pattern = re.compile(rf'<{tag}>(.*?)</{tag}>', re.DOTALL | re.IGNORECASE)
    return pattern.findall(content)


def extract_field(block: str, name: str) -> str | None:
    """Read a leaf field written either closed or SGML-style unclosed.

    Returns:
        Trimmed value, or None if the field is not present
    """
    match = re.search(rf'<{name}>([^<]+)</{name}>', block, re.IGNORECASE)
    if match:
        return match.group(1).strip()

    match = re.search(rf'<{name}>([^\n<]+)', block, re.IGNORECASE)
    if match:
        return match.group(1).strip()

    return None


def join_notes(parts: list[str]) -> str | None:
    notes = [p for p in parts if p]
    return " | ".join(notes) if notes else None


class BaseStatementParser(ABC):
    """Abstract base class for bank statement parsers."""

    BANK_NAME: str = "Unknown"
    SOURCE_FORMAT: SourceFormat = SourceFormat.UNKNOWN
    FILE_KIND: FileKind = FileKind.UNKNOWN

    # Self-transfer phrasing, checked in order after the owner patterns
    TRANSFER_PATTERNS: list[str] = []

    # Same as above with a {name} placeholder for each configured owner name
    OWNER_TRANSFER_PATTERNS: list[str] = []

    MAX_MERCHANT_LENGTH = 100

    # Masked Brazilian tax IDs (CPF and CNPJ) that appear inside counterparties
    PII_PATTERNS = [
        r'•••\.\d{3}\.\d{3}-••',
        r'\d{2}\.\d{3}\.\d{3}/\d{4}-\d{2}',
    ]

    def __init__(self, owner_names: list[str] | None = None):
        """Initialize the parser.

        Args:
            owner_names: Account holder names for self-transfer detection
        """
        self.owner_names = [n.strip().lower() for n in owner_names or [] if n.strip()]
        self._transfer_patterns = self._compile_transfer_patterns()

    @classmethod
    @abstractmethod
    def can_parse(cls, content: str) -> bool:
        """Check whether the content carries this format's structural markers."""
        pass

    def validate(self, content: str) -> ValidationResult:
        """Validate the overall file structure before parsing."""
        if not content or not content.strip():
            return ValidationResult(False, "File is empty")

        if not self.can_parse(content):
            return ValidationResult(False, f"Format not recognised as {self.BANK_NAME}")

        return self._validate_structure(preprocess_content(content))

    def parse(self, content: str) -> list[CanonicalTransaction]:
        """Parse statement content into canonical transactions.

        Malformed rows are dropped; only an invalid file raises.

        Raises:
            InvalidFileError: If the content fails validation
        """
        validation = self.validate(content)
        if not validation.valid:
            raise InvalidFileError(validation.error)

        transactions = self._parse_content(preprocess_content(content))
        logger.info(f"Parsed {len(transactions)} {self.BANK_NAME} transactions")

        return transactions

    def _validate_structure(self, content: str) -> ValidationResult:
        return ValidationResult(True)

    @abstractmethod
    def _parse_content(self, content: str) -> list[CanonicalTransaction]:
        pass

    def _compile_transfer_patterns(self) -> list[re.Pattern]:
        patterns = []

        for template in self.OWNER_TRANSFER_PATTERNS:
            for name in self.owner_names:
                patterns.append(template.format(name=re.escape(name)))

        patterns.extend(self.TRANSFER_PATTERNS)

        return [re.compile(p, re.IGNORECASE) for p in patterns]

    def _is_internal_transfer(self, text: str) -> bool:
        return any(p.search(text) for p in self._transfer_patterns)

    def _is_owner(self, name: str | None) -> bool:
        if not name:
            return False
        name_lower = name.lower()
        return any(owner in name_lower for owner in self.owner_names)

    def _clean_merchant(self, merchant: str | None) -> str | None:
        """Strip PII from a captured merchant and enforce the length bound."""
        if not merchant:
            return None

        for pattern in self.PII_PATTERNS:
            merchant = re.sub(pattern, '', merchant)
        merchant = merchant.strip()

        if 0 < len(merchant) < self.MAX_MERCHANT_LENGTH:
            return merchant
        return None


class DelimitedStatementParser(BaseStatementParser):
    """Base class for header-plus-rows CSV statements."""

    FILE_KIND = FileKind.CSV
    DELIMITER = ","

    # Each inner list is one complete header signature
    REQUIRED_HEADERS: list[list[str]] = []

    # Logical field -> possible column names across export languages
    COLUMN_MAPPINGS: dict[str, list[str]] = {}

    @classmethod
    def can_parse(cls, content: str) -> bool:
        header = first_line(content)
        return any(
            all(column in header for column in signature)
            for signature in cls.REQUIRED_HEADERS
        )

    def _validate_structure(self, content: str) -> ValidationResult:
        if len(self._content_lines(content)) < 2:
            return ValidationResult(False, "CSV contains no transactions")
        return ValidationResult(True)

    def _content_lines(self, content: str) -> list[str]:
        return [line for line in content.split('\n') if line.strip()]

    def _iter_rows(self, content: str):
        """Yield rows as column -> value dicts, skipping malformed lines."""
        lines = self._content_lines(content)
        if len(lines) < 2:
            return

        headers = split_delimited_line(lines[0], self.DELIMITER)

        for line_num, line in enumerate(lines[1:], start=2):
            values = split_delimited_line(line, self.DELIMITER)
            if len(values) != len(headers):
                logger.debug(f"{self.BANK_NAME} line {line_num}: expected {len(headers)} fields, got {len(values)}")
                continue
            yield dict(zip(headers, values))

    def _parse_content(self, content: str) -> list[CanonicalTransaction]:
        transactions = []

        for row in self._iter_rows(content):
            try:
                transaction = self._parse_row(row)
            except ValueError as e:
                logger.debug(f"Skipping {self.BANK_NAME} row: {e}")
                continue
            if transaction:
                transactions.append(transaction)

        return transactions

    def _get_column_value(self, row: dict, column_type: str) -> str:
        """Get value from row using column mappings."""
        for possible_name in self.COLUMN_MAPPINGS.get(column_type, []):
            if possible_name in row:
                return row[possible_name] or ""
        return ""

    @abstractmethod
    def _parse_row(self, row: dict[str, str]) -> CanonicalTransaction | None:
        """Parse a single row, returning None if it should be skipped."""
        pass
