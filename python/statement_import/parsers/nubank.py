"""
Nubank OFX Parser

Parses Nubank account statements exported as OFX (SGML/XML-like markup).
"""

import logging
import re
from datetime import datetime

from .base import (
    BaseStatementParser,
    CanonicalTransaction,
    FileKind,
    SourceFormat,
    TransactionType,
    ValidationResult,
    extract_blocks,
    extract_field,
    join_notes,
    parse_amount,
)

logger = logging.getLogger(__name__)


class NubankParser(BaseStatementParser):
    """Parser for Nubank OFX exports."""

    BANK_NAME = "Nubank"
    SOURCE_FORMAT = SourceFormat.NUBANK
    FILE_KIND = FileKind.OFX

    REQUIRED_MARKERS = ["OFXHEADER", "NU PAGAMENTOS", "<STMTTRN>", "<BANKTRANLIST>"]

    # Nubank accounts are denominated in reais
    DEFAULT_CURRENCY = "BRL"

    OWNER_TRANSFER_PATTERNS = [
        r'pix.*{name}',
    ]

    TRANSFER_PATTERNS = [
        r'wise brasil',
        r'crédito em conta',
        r'transferência enviada pelo pix.*reversal',
    ]

    MERCHANT_PATTERNS = [
        # "Transferência enviada pelo Pix - NAME - •••.123.456-•• - BANK"
        r'pix\s*-\s*([^-]+?)(?:\s*-|$)',
        # "Pagamento de fatura"
        r'pagamento.*?(?:de|da)\s+(.+)',
    ]

    BANK_DETAILS_PATTERN = r'\([^)]+\)\s*Agência:.*$'

    @classmethod
    def can_parse(cls, content: str) -> bool:
        return all(marker in content for marker in cls.REQUIRED_MARKERS)

    def _validate_structure(self, content: str) -> ValidationResult:
        if '<STMTTRN>' not in content:
            return ValidationResult(False, "OFX contains no transactions")
        return ValidationResult(True)

    def _parse_content(self, content: str) -> list[CanonicalTransaction]:
        currency = extract_field(content, "CURDEF")
        if not currency:
            logger.warning(f"No CURDEF in Nubank OFX, using {self.DEFAULT_CURRENCY}")
            currency = self.DEFAULT_CURRENCY

        transactions = []
        for block in extract_blocks(content, "STMTTRN"):
            try:
                transaction = self._parse_block(block, currency.upper())
            except ValueError as e:
                logger.debug(f"Skipping Nubank OFX block: {e}")
                continue
            if transaction:
                transactions.append(transaction)

        return transactions

    def _parse_block(self, block: str, currency: str) -> CanonicalTransaction | None:
        """Parse one <STMTTRN> block."""
        trn_type = extract_field(block, "TRNTYPE")
        dt_posted = extract_field(block, "DTPOSTED")
        trn_amt = extract_field(block, "TRNAMT")
        fit_id = extract_field(block, "FITID")
        memo = extract_field(block, "MEMO")

        if not dt_posted or not trn_amt or not memo:
            return None

        txn_date = self._parse_ofx_date(dt_posted)

        amount = parse_amount(trn_amt)
        if amount is None:
            return None

        if trn_type == "CREDIT" or amount > 0:
            txn_type = TransactionType.INCOME
        else:
            txn_type = TransactionType.EXPENSE

        if self._is_internal_transfer(memo):
            txn_type = TransactionType.TRANSFER

        notes = []
        if trn_type:
            notes.append(f"Type: {trn_type}")
        if fit_id:
            notes.append(f"ID: {fit_id}")

        return CanonicalTransaction(
            date=txn_date,
            description=memo.strip(),
            amount=abs(amount),
            currency=currency,
            type=txn_type,
            merchant=self._extract_merchant(memo),
            notes=join_notes(notes),
            raw_data={
                "TRNTYPE": trn_type,
                "DTPOSTED": dt_posted,
                "TRNAMT": trn_amt,
                "FITID": fit_id,
                "MEMO": memo,
            },
        )

    def _parse_ofx_date(self, value: str):
        """Parse "20250901000000[-3:BRT]" as the printed calendar date."""
        cleaned = value.split('[')[0].strip()
        return datetime.strptime(cleaned[:8], "%Y%m%d").date()

    def _extract_merchant(self, memo: str) -> str | None:
        """Extract counterparty from a Nubank MEMO."""
        for pattern in self.MERCHANT_PATTERNS:
            match = re.search(pattern, memo, re.IGNORECASE)
            if not match:
                continue

            merchant = re.sub(self.BANK_DETAILS_PATTERN, '', match.group(1), flags=re.IGNORECASE)
            merchant = self._clean_merchant(merchant)
            if merchant:
                return merchant

        return None
