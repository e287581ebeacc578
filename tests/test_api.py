"""
API Route Tests

Exercises the FastAPI routes with the SQL-backed services replaced by
in-memory ones.
"""

import inspect

import pytest
from datetime import date
from pathlib import Path
from unittest.mock import Mock

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "python"))

from fastapi.testclient import TestClient

from api.auth import User, get_current_user
from api.database import database_url, get_import_service, get_recategorizer
from api.main import app
from statement_import import Recategorizer, TransactionStoreError
from statement_import.store import LearnedPattern

DEV_USER_ID = "dev"


@pytest.fixture
def client(import_service, transaction_store, pattern_store, category_store):
    app.dependency_overrides[get_import_service] = lambda: import_service
    app.dependency_overrides[get_recategorizer] = lambda: Recategorizer(
        transaction_store, pattern_store, category_store
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestImportRoutes:
    """Tests for /api/imports endpoints."""

    def test_preview(self, client, revolut_csv):
        response = client.post("/api/imports/preview", json={
            "account_id": "acc-1",
            "file_name": "statement.csv",
            "content": revolut_csv,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["bank"] == "revolut"
        assert data["bank_name"] == "Revolut"
        assert data["total_transactions"] == 4
        assert data["error"] is None
        assert data["transactions"][0]["amount"] == "12.50"

    def test_preview_unknown_format(self, client):
        response = client.post("/api/imports/preview", json={
            "account_id": "acc-1",
            "file_name": "notes.txt",
            "content": "hello world",
        })

        assert response.status_code == 200
        assert response.json()["error"] == "Could not identify the bank. Format not recognised."

    def test_confirm(self, client, transaction_store):
        response = client.post("/api/imports/confirm", json={
            "account_id": "acc-1",
            "file_name": "statement.csv",
            "bank": "revolut",
            "transactions": [
                {
                    "index": 0,
                    "date": "2025-09-01",
                    "description": "Pagamento - Continente",
                    "amount": "12.50",
                    "currency": "EUR",
                    "transaction_type": "expense",
                    "merchant": "Continente",
                    "suggested_category_id": "cat-groceries",
                },
                {
                    "index": 1,
                    "date": "2025-09-02",
                    "description": "Netflix",
                    "amount": "7.99",
                    "currency": "EUR",
                    "transaction_type": "expense",
                    "is_duplicate": True,
                },
            ],
        })

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["imported_count"] == 1
        assert data["duplicate_count"] == 1
        assert data["summary"] == "1 imported, 1 duplicates skipped, 0 errors"

        row = transaction_store.rows[0]
        assert row["user_id"] == DEV_USER_ID
        assert row["category_id"] == "cat-groceries"

    def test_confirm_negative_amount_rejected(self, client):
        response = client.post("/api/imports/confirm", json={
            "account_id": "acc-1",
            "file_name": "statement.csv",
            "bank": "revolut",
            "transactions": [{
                "index": 0,
                "date": "2025-09-01",
                "description": "Refund",
                "amount": "-5.00",
                "currency": "EUR",
                "transaction_type": "income",
            }],
        })

        assert response.status_code == 422

    def test_correction(self, client, pattern_store):
        response = client.post("/api/imports/corrections", json={
            "merchant": "Netflix",
            "description": "Netflix.com",
            "category_id": "cat-streaming",
        })

        assert response.status_code == 200
        assert response.json()["learned"] is True
        assert pattern_store.patterns[0].user_id == DEV_USER_ID


class TestTransactionRoutes:
    """Tests for /api/transactions endpoints."""

    def test_similar(self, client, transaction_store):
        transaction_store.add(date(2025, 8, 1), "7.99", "Netflix", merchant="Netflix", user_id=DEV_USER_ID)

        response = client.get("/api/transactions/similar", params={
            "description": "Netflix", "merchant": "Netflix",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["by_merchant"][0]["amount"] == 7.99

    def test_similar_requires_description(self, client):
        assert client.get("/api/transactions/similar").status_code == 422

    def test_recategorize(self, client, transaction_store):
        txn_id = transaction_store.add(date(2025, 8, 1), "7.99", "Netflix", user_id=DEV_USER_ID)

        response = client.post("/api/transactions/recategorize", json={
            "transaction_ids": [txn_id],
            "category_id": "cat-streaming",
        })

        assert response.json()["updated"] == 1
        assert transaction_store.get(txn_id)["category_id"] == "cat-streaming"

    def test_recategorize_by_merchant(self, client, transaction_store):
        transaction_store.add(date(2025, 8, 1), "9.80", "Uber", merchant="Uber", user_id=DEV_USER_ID)

        response = client.post("/api/transactions/recategorize/merchant", json={
            "merchant": "Uber",
            "category_id": "cat-transport",
        })

        assert response.json()["message"] == '1 transactions from "Uber" recategorized'

    def test_apply_patterns_and_stats(self, client, transaction_store, pattern_store):
        transaction_store.add(date(2025, 8, 1), "7.99", "Netflix", merchant="Netflix", user_id=DEV_USER_ID)
        pattern_store.patterns.append(LearnedPattern(
            user_id=DEV_USER_ID, category_id="cat-streaming", merchant="Netflix", id="pat-1"
        ))

        applied = client.post("/api/transactions/patterns/apply").json()
        stats = client.get("/api/transactions/patterns/stats").json()

        assert applied["success"] is True
        assert applied["updated"] == 1
        assert stats["total_patterns"] == 1
        assert stats["patterns"][0]["category_name"] == "Streaming"
        assert stats["patterns"][0]["times_applied"] == 2


class TestAuthentication:
    """Tests for X-User-ID handling outside development mode."""

    @pytest.fixture(autouse=True)
    def production(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")

    def test_missing_header(self, client):
        response = client.get("/api/transactions/patterns/stats")

        assert response.status_code == 401
        assert response.json()["detail"] == "Missing X-User-ID header"

    def test_unknown_user(self, client):
        response = client.get("/api/transactions/patterns/stats", headers={"X-User-ID": "stranger"})
        assert response.status_code == 403

    def test_known_user(self, client):
        response = client.get("/api/transactions/patterns/stats", headers={"X-User-ID": "dev"})
        assert response.status_code == 200


class TestHealth:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


class TestAccountOwnership:

    @pytest.fixture
    def restricted_client(self, client):
        app.dependency_overrides[get_current_user] = lambda: User(
            user_id=DEV_USER_ID, name="Developer", accounts=["acc-1"]
        )
        return client

    def test_own_account(self, restricted_client, revolut_csv):
        response = restricted_client.post("/api/imports/preview", json={
            "account_id": "acc-1", "file_name": "statement.csv", "content": revolut_csv,
        })
        assert response.status_code == 200

    def test_foreign_account(self, restricted_client, revolut_csv):
        response = restricted_client.post("/api/imports/preview", json={
            "account_id": "acc-9", "file_name": "statement.csv", "content": revolut_csv,
        })
        assert response.status_code == 403

    def test_unrestricted_user(self):
        assert User(user_id="u", name="U").owns_account("anything") is True


class TestErrorHandlers:

    def test_store_error_is_503(self, client):
        broken = Mock()
        broken.pattern_stats.side_effect = TransactionStoreError("connection refused")
        app.dependency_overrides[get_recategorizer] = lambda: broken

        response = client.get("/api/transactions/patterns/stats")

        assert response.status_code == 503
        assert response.json()["detail"] == "Transaction store unavailable"


class TestDatabaseUrl:

    def test_default_uses_psycopg2(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("POSTGRES_HOST", "db")

        url = database_url()

        assert url.startswith("postgresql+psycopg2://")
        assert url.endswith("@db:5432/personal_finance")

    def test_explicit_url_wins(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite:///finance.db")
        assert database_url() == "sqlite:///finance.db"


class TestRouteHandlers:

    def test_store_backed_handlers_are_sync(self):
        endpoints = [
            route.endpoint for route in app.routes
            if getattr(route, "path", "").startswith(("/api/imports", "/api/transactions"))
        ]

        assert len(endpoints) == 8
        assert not any(inspect.iscoroutinefunction(endpoint) for endpoint in endpoints)
