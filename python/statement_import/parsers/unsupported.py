"""
Placeholder parser for banks that can be recognised by file name but whose
statements (PDF exports) cannot be parsed yet.
"""

from .base import (
    BANK_DISPLAY_NAMES,
    BaseStatementParser,
    CanonicalTransaction,
    SourceFormat,
    ValidationResult,
)


class UnsupportedStatementParser(BaseStatementParser):
    """Rejects every file of a known but unsupported bank."""

    def __init__(self, source_format: SourceFormat, owner_names: list[str] | None = None):
        super().__init__(owner_names)
        self.SOURCE_FORMAT = source_format
        self.BANK_NAME = BANK_DISPLAY_NAMES.get(source_format, source_format.value)

    @classmethod
    def can_parse(cls, content: str) -> bool:
        return False

    def validate(self, content: str) -> ValidationResult:
        return ValidationResult(False, f"{self.BANK_NAME} statements are not supported yet")

    def _parse_content(self, content: str) -> list[CanonicalTransaction]:
        return []
