"""
Revolut CSV Parser

Parses Revolut account statement CSV exports (Portuguese or English headers).

Tipo,Produto,Data de início,Data de Conclusão,Descrição,Montante,Comissão,Moeda,Estado,Saldo
"""

import re
from datetime import datetime

from .base import (
    CanonicalTransaction,
    DelimitedStatementParser,
    SourceFormat,
    TransactionType,
    join_notes,
    parse_amount,
)


class RevolutParser(DelimitedStatementParser):
    """Parser for Revolut CSV exports."""

    BANK_NAME = "Revolut"
    SOURCE_FORMAT = SourceFormat.REVOLUT

    REQUIRED_HEADERS = [
        ["Tipo", "Produto", "Data de Conclusão", "Descrição", "Montante", "Saldo"],
        ["Type", "Product", "Completed Date", "Description", "Amount", "Balance"],
    ]

    COLUMN_MAPPINGS = {
        "type": ["Tipo", "Type"],
        "product": ["Produto", "Product"],
        "completed_date": ["Data de Conclusão", "Completed Date"],
        "description": ["Descrição", "Description"],
        "amount": ["Montante", "Amount"],
        "fee": ["Comissão", "Fee"],
        "currency": ["Moeda", "Currency"],
        "state": ["Estado", "State"],
    }

    # Pending and reverted rows are not imported
    SETTLED_STATES = {"CONCLUÍDA", "COMPLETED"}

    CARD_PAYMENT_TYPES = {"Pagamento com cartão", "Card Payment", "CARD_PAYMENT"}

    # Product value of the main account, not worth noting
    DEFAULT_PRODUCTS = {"Atual", "Current"}

    OWNER_TRANSFER_PATTERNS = [
        r'\bto\s+.*{name}',
        r'\bfrom\s+.*{name}',
    ]

    TRANSFER_PATTERNS = [
        r'arredondamento',
        r'round[- ]?up',
        r'revolut.*revolut',
        r'transfer to revolut',
    ]

    MERCHANT_PATTERNS = [
        # Card payments: merchant after the last descriptor dash
        r'pagamento.*?-\s*(.+)$',
        r'\b(?:to|from)\s+([^-]+)',
    ]

    def _parse_row(self, row: dict[str, str]) -> CanonicalTransaction | None:
        """Parse a Revolut CSV row."""
        state = self._get_column_value(row, "state").strip()
        if state.upper() not in self.SETTLED_STATES:
            return None

        # "2025-09-01 06:10:18" -> 2025-09-01
        completed = self._get_column_value(row, "completed_date").strip()
        txn_date = datetime.strptime(completed.split(' ')[0], "%Y-%m-%d").date()

        amount = parse_amount(self._get_column_value(row, "amount"))
        if amount is None:
            return None

        txn_type = TransactionType.INCOME if amount > 0 else TransactionType.EXPENSE

        description = self._get_column_value(row, "description").strip()
        revolut_type = self._get_column_value(row, "type").strip()

        if self._is_internal_transfer(description):
            txn_type = TransactionType.TRANSFER

        currency = self._get_column_value(row, "currency").strip().upper()

        return CanonicalTransaction(
            date=txn_date,
            description=description,
            amount=abs(amount),
            currency=currency,
            type=txn_type,
            merchant=self._extract_merchant(description, revolut_type),
            notes=self._build_notes(row, currency),
            raw_data=dict(row),
        )

    def _extract_merchant(self, description: str, revolut_type: str) -> str | None:
        """Extract merchant from Revolut description format."""
        for pattern in self.MERCHANT_PATTERNS:
            match = re.search(pattern, description, re.IGNORECASE)
            if match:
                merchant = self._clean_merchant(match.group(1))
                if merchant:
                    return merchant

        # Card payments usually carry just the establishment name
        if revolut_type in self.CARD_PAYMENT_TYPES:
            first_segment = re.split(r'[,\-]', description)[0].strip()
            if 0 < len(first_segment) < 50:
                return self._clean_merchant(first_segment)

        return None

    def _build_notes(self, row: dict[str, str], currency: str) -> str | None:
        notes = []

        revolut_type = self._get_column_value(row, "type").strip()
        if revolut_type:
            notes.append(f"Type: {revolut_type}")

        fee = parse_amount(self._get_column_value(row, "fee"))
        if fee is not None and fee > 0:
            notes.append(f"Fee: {currency} {fee:.2f}")

        product = self._get_column_value(row, "product").strip()
        if product and product not in self.DEFAULT_PRODUCTS:
            notes.append(f"Product: {product}")

        return join_notes(notes)
