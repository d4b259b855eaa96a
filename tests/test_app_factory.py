"""
Tests for api/app.py — create_app() factory

Verifies the FastAPI app is created with correct configuration,
routers are registered, and middleware is functional.
"""
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fastapi.testclient import TestClient

from api.app import _JsonFormatter, create_app
from conftest import FakePersistence
from editing.session import SessionRegistry
from utils.config import AppConfig


class TestCreateApp:
    def test_creates_fastapi_instance(self, expense_db):
        app = create_app(db_path=expense_db)
        assert app.title == "Inline Expense Editor"
        assert app.version == "1.0.0"

    def test_registers_routes(self, expense_db):
        app = create_app(db_path=expense_db)
        route_paths = {getattr(r, "path", "") for r in app.routes}
        for path in ("/", "/health", "/api/v1/expenses", "/api/v1/expenses/{item_id}",
                     "/forms/{key}/open", "/forms/{key}/submit",
                     "/forms/{key}/change", "/forms/{key}/cancel"):
            assert path in route_paths

    def test_state_holds_store_and_sessions(self, expense_db):
        app = create_app(db_path=expense_db)
        assert isinstance(app.state.sessions, SessionRegistry)
        assert app.state.store.db_path == expense_db

    def test_custom_store(self, expense_db):
        store = FakePersistence([{"description": "Fake", "amount": 1}])
        app = create_app(db_path=expense_db, store=store)
        r = TestClient(app).get("/")
        assert "Fake" in r.text

    def test_transition_ms_from_config(self, expense_db, monkeypatch):
        monkeypatch.setenv("APP_TRANSITION_MS", "350")
        app = create_app(db_path=expense_db, config=AppConfig.from_env())
        assert app.state.vocabulary.transition_ms == 350
        r = TestClient(app).get("/")
        assert "350" in r.text


class TestHealthEndpoint:
    def test_health_ok(self, expense_db):
        client = TestClient(create_app(db_path=expense_db))
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["expenses"] == 2
        assert data["sessions"] == 0

    def test_health_counts_sessions(self, expense_db):
        client = TestClient(create_app(db_path=expense_db))
        client.get("/")
        assert client.get("/health").json()["sessions"] == 1

    def test_health_unreadable_db(self, tmp_path):
        # A directory can't be opened as a database file.
        client = TestClient(create_app(db_path=tmp_path), raise_server_exceptions=False)
        resp = client.get("/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == "degraded"


class TestExpensesApi:
    def test_list(self, expense_db):
        client = TestClient(create_app(db_path=expense_db))
        data = client.get("/api/v1/expenses").json()
        assert data["total"] == 2
        assert data["items"][0] == {"id": 1, "description": "Coffee", "amount": 300}

    def test_get_one(self, expense_db):
        client = TestClient(create_app(db_path=expense_db))
        assert client.get("/api/v1/expenses/2").json()["description"] == "Lunch"

    def test_get_missing(self, expense_db):
        client = TestClient(create_app(db_path=expense_db))
        resp = client.get("/api/v1/expenses/99")
        assert resp.status_code == 404
        assert "99" in resp.json()["detail"]

    def test_missing_database_503(self, tmp_path):
        client = TestClient(create_app(db_path=tmp_path / "missing.sqlite"))
        assert client.get("/api/v1/expenses").status_code == 503


class TestJsonFormatter:
    def test_includes_extra_fields(self):
        import json
        import logging

        record = logging.LogRecord("inline_editor_api", logging.INFO, __file__, 1,
                                   "request", None, None)
        record.path = "/forms/1/open"
        record.status = 200
        data = json.loads(_JsonFormatter().format(record))
        assert data["message"] == "request"
        assert data["path"] == "/forms/1/open"
        assert data["status"] == 200
        assert "session_id" not in data


@pytest.mark.parametrize("header", ["Content-Security-Policy", "X-Frame-Options"])
def test_security_headers_on_json(expense_db, header):
    client = TestClient(create_app(db_path=expense_db))
    assert header in client.get("/health").headers
