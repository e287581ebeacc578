"""
Database Connection Module

Provides PostgreSQL database connection and the import service wired to the
SQL stores.
"""

import os
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from statement_import import ImportService, Recategorizer, TransactionCategorizer, load_settings
from statement_import.sql_store import (
    SqlCategoryStore,
    SqlImportBatchStore,
    SqlPatternStore,
    SqlTransactionStore,
)


def database_url() -> str:
    """Database URL from environment, defaulting to PostgreSQL over psycopg2."""
    return os.getenv(
        "DATABASE_URL",
        f"postgresql+psycopg2://{os.getenv('POSTGRES_USER', 'finance')}:"
        f"{os.getenv('POSTGRES_PASSWORD', 'password')}@"
        f"{os.getenv('POSTGRES_HOST', 'localhost')}:"
        f"{os.getenv('POSTGRES_PORT', '5432')}/"
        f"{os.getenv('POSTGRES_DB', 'personal_finance')}"
    )


DATABASE_URL = database_url()

# Create engine; connections are opened lazily
engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=10,
)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@lru_cache
def get_import_service() -> ImportService:
    """Import service backed by the SQL stores (FastAPI dependency)."""
    settings = load_settings()

    categorizer = None
    if settings.ai_enabled and os.getenv("ANTHROPIC_API_KEY"):
        categorizer = TransactionCategorizer(settings=settings)

    return ImportService(
        transaction_store=SqlTransactionStore(SessionLocal),
        category_store=SqlCategoryStore(SessionLocal),
        pattern_store=SqlPatternStore(SessionLocal),
        batch_store=SqlImportBatchStore(SessionLocal),
        categorizer=categorizer,
        settings=settings,
    )


@lru_cache
def get_recategorizer() -> Recategorizer:
    """Recategorizer backed by the SQL stores (FastAPI dependency)."""
    return Recategorizer(
        transaction_store=SqlTransactionStore(SessionLocal),
        pattern_store=SqlPatternStore(SessionLocal),
        category_store=SqlCategoryStore(SessionLocal),
    )
