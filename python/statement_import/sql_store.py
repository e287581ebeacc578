"""
SQL Store Module

SQLAlchemy implementations of the import stores. Queries are plain SQL run
through ``text()`` so the same statements work on PostgreSQL (production)
and SQLite (tests).
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Generator

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .exceptions import TransactionStoreError
from .parsers import CanonicalTransaction
from .store import (
    Category,
    CategoryStore,
    ImportBatch,
    ImportBatchStore,
    LearnedPattern,
    PatternStore,
    StoredTransaction,
    TransactionStore,
)

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS categories (
        id VARCHAR(36) PRIMARY KEY,
        name VARCHAR(100) NOT NULL,
        type VARCHAR(20) NOT NULL,
        user_id VARCHAR(64)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS import_batches (
        id VARCHAR(36) PRIMARY KEY,
        user_id VARCHAR(64) NOT NULL,
        bank_name VARCHAR(20) NOT NULL,
        file_name VARCHAR(255) NOT NULL,
        file_type VARCHAR(10) NOT NULL,
        total_transactions INTEGER NOT NULL DEFAULT 0,
        imported_count INTEGER NOT NULL DEFAULT 0,
        duplicate_count INTEGER NOT NULL DEFAULT 0,
        skipped_count INTEGER NOT NULL DEFAULT 0,
        error_count INTEGER NOT NULL DEFAULT 0,
        status VARCHAR(20) NOT NULL DEFAULT 'processing',
        created_at TIMESTAMP NOT NULL,
        completed_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id VARCHAR(36) PRIMARY KEY,
        user_id VARCHAR(64) NOT NULL,
        account_id VARCHAR(64) NOT NULL,
        category_id VARCHAR(36),
        transaction_type VARCHAR(10) NOT NULL,
        amount NUMERIC(14, 2) NOT NULL,
        currency VARCHAR(3) NOT NULL,
        description TEXT NOT NULL,
        merchant VARCHAR(100),
        notes TEXT,
        txn_date DATE NOT NULL,
        import_batch_id VARCHAR(36),
        created_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_transactions_dedup
        ON transactions (user_id, account_id, txn_date, amount)
    """,
    """
    CREATE TABLE IF NOT EXISTS learned_patterns (
        id VARCHAR(36) PRIMARY KEY,
        user_id VARCHAR(64) NOT NULL,
        merchant VARCHAR(100),
        description_pattern VARCHAR(255),
        category_id VARCHAR(36) NOT NULL,
        confidence_score NUMERIC(3, 2) NOT NULL DEFAULT 1.0,
        times_applied INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL
    )
    """,
]


def create_schema(engine: Engine) -> None:
    """Create the import tables if they do not exist."""
    with engine.begin() as conn:
        for statement in SCHEMA_STATEMENTS:
            conn.execute(text(statement))


def _to_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _to_datetime(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _timestamp(value: datetime | None) -> str | None:
    return value.isoformat(sep=" ") if value else None


class SqlStore:
    """Shared session handling for the SQL stores."""

    def __init__(self, session_factory: Callable[[], Session]):
        """Initialize the store.

        Args:
            session_factory: Callable returning a new SQLAlchemy session
        """
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise TransactionStoreError(str(e)) from e
        finally:
            session.close()

    def _query(self, query, params: dict) -> list[dict]:
        if isinstance(query, str):
            query = text(query)
        with self._session() as session:
            result = session.execute(query, params)
            return [dict(row) for row in result.mappings().all()]

    def _execute(self, query, params: dict) -> int:
        if isinstance(query, str):
            query = text(query)
        with self._session() as session:
            result = session.execute(query, params)
            return result.rowcount


class SqlTransactionStore(SqlStore, TransactionStore):
    """Transactions table."""

    COLUMNS = "id, txn_date, description, amount, merchant, category_id"

    def _to_stored(self, row: dict) -> StoredTransaction:
        return StoredTransaction(
            id=str(row["id"]),
            date=_to_date(row["txn_date"]),
            description=row["description"],
            amount=_to_decimal(row["amount"]),
            merchant=row["merchant"],
            category_id=str(row["category_id"]) if row["category_id"] is not None else None,
        )

    def find_duplicate_candidates(
        self,
        user_id: str,
        account_id: str,
        txn_date: date,
        amount: Decimal,
        limit: int = 10
    ) -> list[StoredTransaction]:
        rows = self._query(
            f"""
            SELECT {self.COLUMNS}
            FROM transactions
            WHERE user_id = :user_id
              AND account_id = :account_id
              AND txn_date = :txn_date
              AND amount = :amount
            LIMIT :limit
            """,
            {
                "user_id": user_id,
                "account_id": account_id,
                "txn_date": txn_date.isoformat(),
                "amount": str(amount),
                "limit": limit,
            },
        )
        return [self._to_stored(row) for row in rows]

    def insert_transaction(
        self,
        user_id: str,
        account_id: str,
        transaction: CanonicalTransaction,
        category_id: str | None = None,
        import_batch_id: str | None = None
    ) -> str:
        record = transaction.to_record()
        transaction_id = str(uuid.uuid4())

        self._execute(
            """
            INSERT INTO transactions (
                id, user_id, account_id, category_id, transaction_type,
                amount, currency, description, merchant, notes,
                txn_date, import_batch_id, created_at
            ) VALUES (
                :id, :user_id, :account_id, :category_id, :transaction_type,
                :amount, :currency, :description, :merchant, :notes,
                :txn_date, :import_batch_id, :created_at
            )
            """,
            {
                "id": transaction_id,
                "user_id": user_id,
                "account_id": account_id,
                "category_id": category_id,
                "transaction_type": record["transaction_type"],
                "amount": record["amount"],
                "currency": record["currency"],
                "description": record["description"],
                "merchant": record["merchant"],
                "notes": record["notes"],
                "txn_date": record["date"],
                "import_batch_id": import_batch_id,
                "created_at": _timestamp(datetime.now()),
            },
        )

        return transaction_id

    def delete_transaction(self, user_id: str, transaction_id: str) -> bool:
        deleted = self._execute(
            "DELETE FROM transactions WHERE id = :id AND user_id = :user_id",
            {"id": transaction_id, "user_id": user_id},
        )
        return deleted > 0

    def _find(
        self,
        user_id: str,
        condition: str,
        params: dict,
        exclude_id: str | None,
        exclude_category_id: str | None,
        limit: int
    ) -> list[StoredTransaction]:
        conditions = ["user_id = :user_id", condition]
        params = {**params, "user_id": user_id, "limit": limit}

        if exclude_id:
            conditions.append("id <> :exclude_id")
            params["exclude_id"] = exclude_id

        if exclude_category_id:
            conditions.append("(category_id IS NULL OR category_id <> :exclude_category_id)")
            params["exclude_category_id"] = exclude_category_id

        rows = self._query(
            f"""
            SELECT {self.COLUMNS}
            FROM transactions
            WHERE {" AND ".join(conditions)}
            ORDER BY txn_date DESC
            LIMIT :limit
            """,
            params,
        )
        return [self._to_stored(row) for row in rows]

    def find_by_merchant(
        self,
        user_id: str,
        merchant: str,
        exclude_id: str | None = None,
        exclude_category_id: str | None = None,
        limit: int = 100
    ) -> list[StoredTransaction]:
        return self._find(
            user_id,
            "merchant = :merchant",
            {"merchant": merchant},
            exclude_id,
            exclude_category_id,
            limit,
        )

    def find_by_description(
        self,
        user_id: str,
        fragment: str,
        exclude_id: str | None = None,
        exclude_category_id: str | None = None,
        limit: int = 100
    ) -> list[StoredTransaction]:
        return self._find(
            user_id,
            "LOWER(description) LIKE :pattern",
            {"pattern": f"%{fragment.lower()}%"},
            exclude_id,
            exclude_category_id,
            limit,
        )

    def update_category_by_ids(
        self,
        user_id: str,
        transaction_ids: list[str],
        category_id: str
    ) -> int:
        if not transaction_ids:
            return 0

        query = text(
            """
            UPDATE transactions
            SET category_id = :category_id
            WHERE user_id = :user_id AND id IN :ids
            """
        ).bindparams(bindparam("ids", expanding=True))

        return self._execute(
            query,
            {"category_id": category_id, "user_id": user_id, "ids": list(transaction_ids)},
        )

    def update_category_matching(
        self,
        user_id: str,
        category_id: str,
        merchant: str | None = None,
        description_fragment: str | None = None
    ) -> int:
        if not merchant and not description_fragment:
            raise ValueError("A merchant or description fragment is required")

        conditions = ["user_id = :user_id"]
        params = {"user_id": user_id, "category_id": category_id}

        if merchant:
            conditions.append("merchant = :merchant")
            params["merchant"] = merchant

        if description_fragment:
            conditions.append("LOWER(description) LIKE :pattern")
            params["pattern"] = f"%{description_fragment.lower()}%"

        return self._execute(
            f"UPDATE transactions SET category_id = :category_id WHERE {' AND '.join(conditions)}",
            params,
        )


class SqlCategoryStore(SqlStore, CategoryStore):
    """Categories table."""

    def list_categories(self, user_id: str) -> list[Category]:
        rows = self._query(
            """
            SELECT id, name, type, user_id
            FROM categories
            WHERE user_id IS NULL OR user_id = :user_id
            ORDER BY name
            """,
            {"user_id": user_id},
        )
        return [
            Category(
                id=str(row["id"]),
                name=row["name"],
                type=row["type"],
                user_id=row["user_id"],
            )
            for row in rows
        ]


class SqlPatternStore(SqlStore, PatternStore):
    """Learned patterns table."""

    COLUMNS = (
        "id, user_id, merchant, description_pattern, category_id, "
        "confidence_score, times_applied, created_at, updated_at"
    )

    def _to_pattern(self, row: dict) -> LearnedPattern:
        return LearnedPattern(
            id=str(row["id"]),
            user_id=row["user_id"],
            merchant=row["merchant"],
            description_pattern=row["description_pattern"],
            category_id=str(row["category_id"]),
            confidence=float(row["confidence_score"]),
            times_applied=int(row["times_applied"]),
            created_at=_to_datetime(row["created_at"]),
            updated_at=_to_datetime(row["updated_at"]),
        )

    def list_patterns(self, user_id: str, min_confidence: float = 0.0) -> list[LearnedPattern]:
        rows = self._query(
            f"""
            SELECT {self.COLUMNS}
            FROM learned_patterns
            WHERE user_id = :user_id AND confidence_score >= :min_confidence
            ORDER BY created_at, id
            """,
            {"user_id": user_id, "min_confidence": min_confidence},
        )
        return [self._to_pattern(row) for row in rows]

    def find_pattern(
        self,
        user_id: str,
        merchant: str | None,
        description_pattern: str | None
    ) -> LearnedPattern | None:
        if merchant:
            condition = "LOWER(merchant) = :merchant"
            params = {"merchant": merchant.lower()}
        else:
            condition = "merchant IS NULL AND description_pattern = :description_pattern"
            params = {"description_pattern": description_pattern or ""}

        rows = self._query(
            f"""
            SELECT {self.COLUMNS}
            FROM learned_patterns
            WHERE user_id = :user_id AND {condition}
            ORDER BY created_at, id
            LIMIT 1
            """,
            {**params, "user_id": user_id},
        )
        return self._to_pattern(rows[0]) if rows else None

    def save_pattern(self, pattern: LearnedPattern) -> LearnedPattern:
        now = datetime.now()
        pattern.created_at = pattern.created_at or now
        pattern.updated_at = pattern.updated_at or now

        params = {
            "user_id": pattern.user_id,
            "merchant": pattern.merchant,
            "description_pattern": pattern.description_pattern,
            "category_id": pattern.category_id,
            "confidence_score": pattern.confidence,
            "times_applied": pattern.times_applied,
            "created_at": _timestamp(pattern.created_at),
            "updated_at": _timestamp(pattern.updated_at),
        }

        if pattern.id:
            self._execute(
                """
                UPDATE learned_patterns
                SET merchant = :merchant,
                    description_pattern = :description_pattern,
                    category_id = :category_id,
                    confidence_score = :confidence_score,
                    times_applied = :times_applied,
                    updated_at = :updated_at
                WHERE id = :id AND user_id = :user_id
                """,
                {**params, "id": pattern.id},
            )
        else:
            pattern.id = str(uuid.uuid4())
            self._execute(
                """
                INSERT INTO learned_patterns (
                    id, user_id, merchant, description_pattern, category_id,
                    confidence_score, times_applied, created_at, updated_at
                ) VALUES (
                    :id, :user_id, :merchant, :description_pattern, :category_id,
                    :confidence_score, :times_applied, :created_at, :updated_at
                )
                """,
                {**params, "id": pattern.id},
            )

        return pattern

    def increment_usage(self, user_id: str, pattern_id: str) -> None:
        self._execute(
            """
            UPDATE learned_patterns
            SET times_applied = times_applied + 1, updated_at = :updated_at
            WHERE id = :id AND user_id = :user_id
            """,
            {"id": pattern_id, "user_id": user_id, "updated_at": _timestamp(datetime.now())},
        )


class SqlImportBatchStore(SqlStore, ImportBatchStore):
    """Import batches table."""

    def create_batch(self, batch: ImportBatch) -> str:
        batch.id = batch.id or str(uuid.uuid4())

        self._execute(
            """
            INSERT INTO import_batches (
                id, user_id, bank_name, file_name, file_type,
                total_transactions, status, created_at
            ) VALUES (
                :id, :user_id, :bank_name, :file_name, :file_type,
                :total_transactions, :status, :created_at
            )
            """,
            {
                "id": batch.id,
                "user_id": batch.user_id,
                "bank_name": batch.source_format,
                "file_name": batch.file_name,
                "file_type": batch.file_kind,
                "total_transactions": batch.total_count,
                "status": batch.status,
                "created_at": _timestamp(batch.created_at),
            },
        )

        return batch.id

    def update_batch(self, batch: ImportBatch) -> None:
        self._execute(
            """
            UPDATE import_batches
            SET status = :status,
                imported_count = :imported_count,
                duplicate_count = :duplicate_count,
                skipped_count = :skipped_count,
                error_count = :error_count,
                completed_at = :completed_at
            WHERE id = :id AND user_id = :user_id
            """,
            {
                "id": batch.id,
                "user_id": batch.user_id,
                "status": batch.status,
                "imported_count": batch.imported_count,
                "duplicate_count": batch.duplicate_count,
                "skipped_count": batch.skipped_count,
                "error_count": batch.error_count,
                "completed_at": _timestamp(batch.completed_at),
            },
        )
