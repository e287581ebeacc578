"""
Wise CSV Parser

Parses Wise (TransferWise) balance statement CSV exports.
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


class WiseParser(DelimitedStatementParser):
    """Parser for Wise CSV exports."""

    BANK_NAME = "Wise"
    SOURCE_FORMAT = SourceFormat.WISE

    REQUIRED_HEADERS = [
        ["TransferWise ID", "Date", "Amount", "Currency", "Exchange Rate", "Transaction Type"],
    ]

    OWNER_TRANSFER_PATTERNS = [
        r'enviou dinheiro para {name}',
        r'recebeu dinheiro de {name}',
        r'\bto {name}',
        r'\bfrom {name}',
    ]

    TRANSFER_PATTERNS = [
        r'dinheiro adicionado',
        r'money added',
    ]

    # Balance top-ups and conversions between own balances
    INTERNAL_DETAIL_TYPES = {"MONEY_ADDED"}

    DESCRIPTION_MERCHANT_PATTERN = r'\b(?:para|de|to|from)\s+([^-]+)'

    def _parse_row(self, row: dict[str, str]) -> CanonicalTransaction | None:
        """Parse a Wise CSV row."""
        # "27-09-2025" -> 2025-09-27
        txn_date = datetime.strptime(row.get("Date", "").strip(), "%d-%m-%Y").date()

        amount = parse_amount(row.get("Amount"))
        if amount is None:
            return None

        wise_type = row.get("Transaction Type", "").strip().upper()
        if wise_type == "CREDIT":
            txn_type = TransactionType.INCOME
        elif wise_type == "DEBIT":
            txn_type = TransactionType.EXPENSE
        else:
            txn_type = TransactionType.INCOME if amount > 0 else TransactionType.EXPENSE

        description = row.get("Description", "").strip()
        if self._is_own_transfer(description, row):
            txn_type = TransactionType.TRANSFER

        currency = row.get("Currency", "").strip().upper()

        return CanonicalTransaction(
            date=txn_date,
            description=description,
            amount=abs(amount),
            currency=currency,
            type=txn_type,
            merchant=self._extract_merchant(row, wise_type, description),
            notes=self._build_notes(row, currency),
            raw_data=dict(row),
        )

    def _is_own_transfer(self, description: str, row: dict[str, str]) -> bool:
        if self._is_internal_transfer(description):
            return True

        details_type = row.get("Transaction Details Type", "").strip().upper()

        if details_type == "TRANSFER" and (
            self._is_owner(row.get("Payee Name")) or self._is_owner(row.get("Payer Name"))
        ):
            return True

        return details_type in self.INTERNAL_DETAIL_TYPES

    def _extract_merchant(self, row: dict[str, str], wise_type: str, description: str) -> str | None:
        """Extract merchant or counterparty from a Wise row."""
        candidates = [row.get("Merchant")]

        if wise_type == "DEBIT":
            candidates.append(row.get("Payee Name"))
        elif wise_type == "CREDIT":
            candidates.append(row.get("Payer Name"))

        match = re.search(self.DESCRIPTION_MERCHANT_PATTERN, description, re.IGNORECASE)
        if match:
            candidates.append(match.group(1))

        for candidate in candidates:
            merchant = self._clean_merchant(candidate)
            if merchant:
                return merchant

        return None

    def _build_notes(self, row: dict[str, str], currency: str) -> str | None:
        notes = []

        details_type = row.get("Transaction Details Type", "").strip()
        if details_type:
            notes.append(f"Type: {details_type}")

        fees = parse_amount(row.get("Total fees"))
        if fees is not None and fees > 0:
            notes.append(f"Fee: {currency} {fees:.2f}")

        rate = row.get("Exchange Rate", "").strip()
        exchange_from = row.get("Exchange From", "").strip()
        exchange_to = row.get("Exchange To", "").strip()
        if rate and exchange_from and exchange_to:
            notes.append(f"Exchange: {exchange_from} -> {exchange_to} ({rate})")
            converted = row.get("Exchange To Amount", "").strip()
            if converted:
                notes.append(f"Converted amount: {converted}")

        payee_account = row.get("Payee Account Number", "").strip()
        if payee_account:
            notes.append(f"Account: {payee_account}")

        reference = row.get("Payment Reference", "").strip()
        if reference:
            notes.append(f"Ref: {reference}")

        note = row.get("Note", "").strip()
        if note:
            notes.append(f"Note: {note}")

        return join_notes(notes)
