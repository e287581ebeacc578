"""
Statement Format Detector Module

Identifies the bank and file kind of an uploaded statement and dispatches to
the matching parser.
"""

import logging
from dataclasses import dataclass

from .config import NAME_MATCH_CONFIDENCE, STRUCTURAL_MATCH_CONFIDENCE
from .exceptions import UnrecognizedFormatError
from .parsers import (
    BaseStatementParser,
    CanonicalTransaction,
    FileKind,
    NubankParser,
    RevolutParser,
    SourceFormat,
    UnsupportedStatementParser,
    WiseParser,
)
from .parsers.base import BANK_DISPLAY_NAMES

logger = logging.getLogger(__name__)


@dataclass
class DetectionResult:
    """Best guess of a statement's source."""

    source_format: SourceFormat
    confidence: float
    file_kind: FileKind

    @property
    def is_known(self) -> bool:
        return self.source_format != SourceFormat.UNKNOWN


# Structural checks, in priority order
STRUCTURAL_PARSERS: list[type[BaseStatementParser]] = [
    NubankParser,
    RevolutParser,
    WiseParser,
]

PARSERS: dict[SourceFormat, type[BaseStatementParser]] = {
    SourceFormat.REVOLUT: RevolutParser,
    SourceFormat.WISE: WiseParser,
    SourceFormat.NUBANK: NubankParser,
}

# Recognised by name only, no parser yet
UNSUPPORTED_FORMATS = {SourceFormat.ACTIVO, SourceFormat.NOVOBANCO}

# File name fragments, checked in order after the structural checks
NAME_HINTS: list[tuple[SourceFormat, list[str], FileKind]] = [
    (SourceFormat.REVOLUT, ["revolut", "account-statement"], FileKind.CSV),
    (SourceFormat.WISE, ["wise", "transferwise", "balance_statement"], FileKind.CSV),
    (SourceFormat.NUBANK, ["nubank", "nu_", ".ofx"], FileKind.OFX),
    (SourceFormat.ACTIVO, ["activo"], FileKind.CSV),
    (SourceFormat.NOVOBANCO, ["novo", "novobanco"], FileKind.PDF),
]


def detect(content: str, file_name: str) -> DetectionResult:
    """Detect the statement format from content, falling back to the file name.

    Args:
        content: Decoded file content
        file_name: Original file name

    Returns:
        DetectionResult; unknown formats yield confidence 0.0
    """
    for parser_cls in STRUCTURAL_PARSERS:
        if parser_cls.can_parse(content or ""):
            return DetectionResult(
                source_format=parser_cls.SOURCE_FORMAT,
                confidence=STRUCTURAL_MATCH_CONFIDENCE,
                file_kind=parser_cls.FILE_KIND,
            )

    lower_name = (file_name or "").lower()

    for source_format, fragments, file_kind in NAME_HINTS:
        if any(fragment in lower_name for fragment in fragments):
            if source_format == SourceFormat.ACTIVO and lower_name.endswith(".pdf"):
                file_kind = FileKind.PDF

            logger.info(f"Detected {source_format.value} from file name {file_name}")
            return DetectionResult(
                source_format=source_format,
                confidence=NAME_MATCH_CONFIDENCE,
                file_kind=file_kind,
            )

    return DetectionResult(
        source_format=SourceFormat.UNKNOWN,
        confidence=0.0,
        file_kind=FileKind.UNKNOWN,
    )


def get_parser(
    source_format: SourceFormat,
    owner_names: list[str] | None = None
) -> BaseStatementParser:
    """Create the parser for a detected format.

    Raises:
        UnrecognizedFormatError: For the unknown format
    """
    parser_cls = PARSERS.get(source_format)
    if parser_cls:
        return parser_cls(owner_names=owner_names)

    if source_format in UNSUPPORTED_FORMATS:
        return UnsupportedStatementParser(source_format, owner_names=owner_names)

    raise UnrecognizedFormatError(f"Unsupported bank: {source_format.value}")


def display_name(source_format: SourceFormat) -> str:
    """Human-readable bank name."""
    return BANK_DISPLAY_NAMES.get(source_format, source_format.value)


def detect_and_parse(
    content: str,
    file_name: str,
    owner_names: list[str] | None = None
) -> tuple[DetectionResult, list[CanonicalTransaction]]:
    """Convenience function to detect the bank and parse content.

    Raises:
        UnrecognizedFormatError: If no format matches
        InvalidFileError: If the detected format fails validation
    """
    detection = detect(content, file_name)
    if not detection.is_known:
        raise UnrecognizedFormatError("Could not identify the bank. Format not recognised.")

    parser = get_parser(detection.source_format, owner_names)
    return detection, parser.parse(content)
