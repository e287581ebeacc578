"""
Pytest configuration and fixtures for statement import tests.
"""

import os
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent

sys.path.insert(0, str(PROJECT_ROOT / "python"))

from statement_import.config import ImportSettings
from statement_import.exceptions import TransactionStoreError
from statement_import.orchestrator import ImportService
from statement_import.parsers import CanonicalTransaction, TransactionType
from statement_import.store import (
    Category,
    CategoryStore,
    ImportBatch,
    ImportBatchStore,
    LearnedPattern,
    PatternStore,
    StoredTransaction,
    TransactionStore,
)

USER_ID = "user-1"
ACCOUNT_ID = "acc-1"


class InMemoryTransactionStore(TransactionStore):
    """Transaction store kept in a list."""

    def __init__(self):
        self.rows: list[dict] = []
        self.fail_on_descriptions: set[str] = set()
        self.fail_lookups = False
        self.fail_updates = False

    def add(
        self,
        txn_date: date,
        amount: str,
        description: str,
        merchant: str | None = None,
        category_id: str | None = None,
        user_id: str = USER_ID,
        account_id: str = ACCOUNT_ID
    ) -> str:
        transaction_id = f"txn-{len(self.rows) + 1}"
        self.rows.append({
            "id": transaction_id,
            "user_id": user_id,
            "account_id": account_id,
            "date": txn_date,
            "amount": Decimal(amount),
            "description": description,
            "merchant": merchant,
            "category_id": category_id,
            "import_batch_id": None,
        })
        return transaction_id

    def get(self, transaction_id: str) -> dict | None:
        return next((r for r in self.rows if r["id"] == transaction_id), None)

    def _stored(self, row: dict) -> StoredTransaction:
        return StoredTransaction(
            id=row["id"],
            date=row["date"],
            description=row["description"],
            amount=row["amount"],
            merchant=row["merchant"],
            category_id=row["category_id"],
        )

    def find_duplicate_candidates(self, user_id, account_id, txn_date, amount, limit=10):
        if self.fail_lookups:
            raise TransactionStoreError("connection lost")

        return [
            self._stored(r) for r in self.rows
            if r["user_id"] == user_id
            and r["account_id"] == account_id
            and r["date"] == txn_date
            and r["amount"] == amount
        ][:limit]

    def insert_transaction(self, user_id, account_id, transaction, category_id=None, import_batch_id=None):
        if transaction.description in self.fail_on_descriptions:
            raise TransactionStoreError("insert rejected")

        transaction_id = self.add(
            transaction.date,
            str(transaction.amount),
            transaction.description,
            merchant=transaction.merchant,
            category_id=category_id,
            user_id=user_id,
            account_id=account_id,
        )
        self.rows[-1]["import_batch_id"] = import_batch_id
        return transaction_id

    def delete_transaction(self, user_id, transaction_id):
        row = self.get(transaction_id)
        if row and row["user_id"] == user_id:
            self.rows.remove(row)
            return True
        return False

    def _filter(self, user_id, predicate, exclude_id, exclude_category_id, limit):
        if self.fail_lookups:
            raise TransactionStoreError("connection lost")

        rows = [
            r for r in self.rows
            if r["user_id"] == user_id
            and predicate(r)
            and (not exclude_id or r["id"] != exclude_id)
            and (not exclude_category_id or r["category_id"] != exclude_category_id)
        ]
        rows.sort(key=lambda r: r["date"], reverse=True)
        return [self._stored(r) for r in rows[:limit]]

    def find_by_merchant(self, user_id, merchant, exclude_id=None, exclude_category_id=None, limit=100):
        return self._filter(
            user_id, lambda r: r["merchant"] == merchant, exclude_id, exclude_category_id, limit
        )

    def find_by_description(self, user_id, fragment, exclude_id=None, exclude_category_id=None, limit=100):
        return self._filter(
            user_id,
            lambda r: fragment.lower() in r["description"].lower(),
            exclude_id,
            exclude_category_id,
            limit,
        )

    def update_category_by_ids(self, user_id, transaction_ids, category_id):
        if self.fail_updates:
            raise TransactionStoreError("update rejected")

        updated = 0
        for row in self.rows:
            if row["user_id"] == user_id and row["id"] in transaction_ids:
                row["category_id"] = category_id
                updated += 1
        return updated

    def update_category_matching(self, user_id, category_id, merchant=None, description_fragment=None):
        if self.fail_updates:
            raise TransactionStoreError("update rejected")

        updated = 0
        for row in self.rows:
            if row["user_id"] != user_id:
                continue
            if merchant and row["merchant"] != merchant:
                continue
            if description_fragment and description_fragment.lower() not in row["description"].lower():
                continue
            row["category_id"] = category_id
            updated += 1
        return updated


class InMemoryCategoryStore(CategoryStore):

    def __init__(self, categories: list[Category]):
        self.categories = categories

    def list_categories(self, user_id):
        return [c for c in self.categories if c.user_id in (None, user_id)]


class InMemoryPatternStore(PatternStore):

    def __init__(self):
        self.patterns: list[LearnedPattern] = []
        self.fail_saves = False

    def list_patterns(self, user_id, min_confidence=0.0):
        return [
            p for p in self.patterns
            if p.user_id == user_id and p.confidence >= min_confidence
        ]

    def find_pattern(self, user_id, merchant, description_pattern):
        for p in self.patterns:
            if p.user_id != user_id:
                continue
            if merchant and p.merchant and p.merchant.lower() == merchant.lower():
                return p
            if not merchant and not p.merchant and p.description_pattern == description_pattern:
                return p
        return None

    def save_pattern(self, pattern):
        if self.fail_saves:
            raise TransactionStoreError("pattern table locked")

        if not pattern.id:
            pattern.id = f"pat-{len(self.patterns) + 1}"
            self.patterns.append(pattern)
        return pattern

    def increment_usage(self, user_id, pattern_id):
        for p in self.patterns:
            if p.id == pattern_id and p.user_id == user_id:
                p.times_applied += 1


class InMemoryBatchStore(ImportBatchStore):

    def __init__(self):
        self.batches: dict[str, ImportBatch] = {}
        self.fail_creates = False

    def create_batch(self, batch):
        if self.fail_creates:
            raise TransactionStoreError("batch table missing")

        batch.id = f"batch-{len(self.batches) + 1}"
        self.batches[batch.id] = batch
        return batch.id

    def update_batch(self, batch):
        self.batches[batch.id] = batch


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def config_dir() -> Path:
    """Return the config directory path."""
    return PROJECT_ROOT / "config"


@pytest.fixture
def user_id() -> str:
    return USER_ID


@pytest.fixture
def account_id() -> str:
    return ACCOUNT_ID


@pytest.fixture
def categories() -> list[Category]:
    """Global categories plus one owned by the test user."""
    return [
        Category(id="cat-groceries", name="Groceries", type="expense"),
        Category(id="cat-streaming", name="Streaming", type="expense"),
        Category(id="cat-transport", name="Transport", type="expense"),
        Category(id="cat-salary", name="Salary", type="income"),
        Category(id="cat-hobby", name="Hobby", type="expense", user_id=USER_ID),
        Category(id="cat-other-user", name="Private", type="expense", user_id="user-2"),
    ]


@pytest.fixture
def transaction_store() -> InMemoryTransactionStore:
    return InMemoryTransactionStore()


@pytest.fixture
def category_store(categories) -> InMemoryCategoryStore:
    return InMemoryCategoryStore(categories)


@pytest.fixture
def pattern_store() -> InMemoryPatternStore:
    return InMemoryPatternStore()


@pytest.fixture
def batch_store() -> InMemoryBatchStore:
    return InMemoryBatchStore()


@pytest.fixture
def import_settings() -> ImportSettings:
    return ImportSettings(owner_names=["viny", "barreto"])


@pytest.fixture
def import_service(
    transaction_store,
    category_store,
    pattern_store,
    batch_store,
    import_settings
) -> ImportService:
    """Import service over in-memory stores, without AI."""
    return ImportService(
        transaction_store=transaction_store,
        category_store=category_store,
        pattern_store=pattern_store,
        batch_store=batch_store,
        categorizer=None,
        settings=import_settings,
    )


@pytest.fixture
def make_transaction():
    """Factory for canonical transactions."""
    def _make(
        description: str = "Compra Continente",
        amount: str = "12.50",
        txn_date: date = date(2025, 9, 1),
        merchant: str | None = None,
        txn_type: TransactionType = TransactionType.EXPENSE,
        currency: str = "EUR"
    ) -> CanonicalTransaction:
        return CanonicalTransaction(
            date=txn_date,
            description=description,
            amount=Decimal(amount),
            currency=currency,
            type=txn_type,
            merchant=merchant,
        )

    return _make


@pytest.fixture
def revolut_csv() -> str:
    """Revolut export with Portuguese headers: four settled rows, one pending."""
    return (
        "Tipo,Produto,Data de início,Data de Conclusão,Descrição,Montante,Comissão,Moeda,Estado,Saldo\n"
        "Pagamento com cartão,Atual,2025-09-01 06:10:18,2025-09-01 08:12:40,Pagamento - Continente,-12.50,0.00,EUR,CONCLUÍDA,987.50\n"
        "Pagamento com cartão,Atual,2025-09-02 10:00:00,2025-09-02 10:05:00,Netflix,-7.99,0.00,EUR,CONCLUÍDA,979.51\n"
        "Carregamento,Atual,2025-09-03 09:00:00,2025-09-03 09:00:01,Payment from Viny Barreto,500.00,0.00,EUR,CONCLUÍDA,1479.51\n"
        "Pagamento com cartão,Atual,2025-09-04 12:00:00,,Uber,-9.80,0.00,EUR,PENDENTE,1469.71\n"
        "Transferência,Poupança,2025-09-05 00:00:00,2025-09-05 00:00:00,Arredondamento de poupança,-0.50,0.00,EUR,CONCLUÍDA,1469.21\n"
    )


@pytest.fixture
def wise_csv() -> str:
    """Wise balance statement with five rows."""
    return (
        "TransferWise ID,Date,Amount,Currency,Description,Payment Reference,Running Balance,"
        "Exchange From,Exchange To,Exchange Rate,Payer Name,Payee Name,Payee Account Number,"
        "Merchant,Total fees,Exchange To Amount,Note,Transaction Type,Transaction Details Type\n"
        "CARD-123,27-09-2025,-15.40,EUR,Card transaction of 15.40 EUR issued by Pingo Doce LISBOA,,500.00,,,,,,,Pingo Doce,0.00,,,DEBIT,CARD\n"
        "TRANSFER-456,26-09-2025,-200.00,EUR,Sent money to Joana Silva,Rent,515.40,,,,,Joana Silva,PT50000000,,1.20,,,DEBIT,TRANSFER\n"
        "BALANCE-789,25-09-2025,300.00,EUR,Money added,,715.40,,,,,,,,0.00,,,CREDIT,MONEY_ADDED\n"
        "CONVERSION-321,23-09-2025,-100.00,EUR,Converted 100.00 EUR to 110.00 USD,,415.40,EUR,USD,1.10,,,,,0.50,110.00,,DEBIT,CONVERSION\n"
        "TRANSFER-999,22-09-2025,1000.00,EUR,Received money from Viny Barreto,,515.40,,,,Viny Barreto,,,,0.00,,,CREDIT,TRANSFER\n"
    )


@pytest.fixture
def nubank_ofx() -> str:
    """Nubank OFX export with three complete blocks and one without MEMO."""
    return """OFXHEADER:100
DATA:OFXSGML
VERSION:102
ENCODING:USASCII
CHARSET:1252

<OFX>
<SIGNONMSGSRSV1>
<SONRS>
<FI>
<ORG>NU PAGAMENTOS S.A.</ORG>
<FID>260</FID>
</FI>
</SONRS>
</SIGNONMSGSRSV1>
<BANKMSGSRSV1>
<STMTTRNRS>
<STMTRS>
<CURDEF>BRL</CURDEF>
<BANKTRANLIST>
<DTSTART>20250901000000[-3:BRT]</DTSTART>
<DTEND>20250930000000[-3:BRT]</DTEND>
<STMTTRN>
<TRNTYPE>DEBIT</TRNTYPE>
<DTPOSTED>20250901000000[-3:BRT]</DTPOSTED>
<TRNAMT>-45.90</TRNAMT>
<FITID>nu-001</FITID>
<MEMO>Transferência enviada pelo Pix - MARIA SOUZA - •••.123.456-•• - BCO DO BRASIL S.A. (0001) Agência: 1 Conta: 2</MEMO>
</STMTTRN>
<STMTTRN>
<TRNTYPE>CREDIT</TRNTYPE>
<DTPOSTED>20250905120000[-3:BRT]</DTPOSTED>
<TRNAMT>1500.00</TRNAMT>
<FITID>nu-002</FITID>
<MEMO>Transferência recebida pelo Pix - VINY BARRETO - •••.987.654-•• - NU PAGAMENTOS</MEMO>
</STMTTRN>
<STMTTRN>
<TRNTYPE>DEBIT</TRNTYPE>
<DTPOSTED>20250910000000[-3:BRT]</DTPOSTED>
<TRNAMT>-89,90</TRNAMT>
<FITID>nu-003</FITID>
<MEMO>Compra no débito - Padaria Real</MEMO>
</STMTTRN>
<STMTTRN>
<TRNTYPE>DEBIT</TRNTYPE>
<DTPOSTED>20250911000000[-3:BRT]</DTPOSTED>
<TRNAMT>-10.00</TRNAMT>
<FITID>nu-004</FITID>
</STMTTRN>
</BANKTRANLIST>
</STMTRS>
</STMTTRNRS>
</BANKMSGSRSV1>
</OFX>
"""


# Environment setup for tests
@pytest.fixture(autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ.setdefault("POSTGRES_HOST", "localhost")
    os.environ.setdefault("POSTGRES_PORT", "5432")
    os.environ.setdefault("POSTGRES_DB", "finance_test")
    os.environ.setdefault("POSTGRES_USER", "test")
    os.environ.setdefault("POSTGRES_PASSWORD", "test")
    yield
