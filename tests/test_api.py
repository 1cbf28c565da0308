"""Tests for the FastAPI endpoints."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from admin_assistant.errors import (
    AdminNotAuthorizedError,
    AssistantUnavailableError,
    DailyLimitExceededError,
    InvalidToolCallError,
    SessionNotFoundError,
)
from admin_assistant.models import ChatActions, ChatMessage, ChatResult, SessionTranscript
from admin_assistant.server import app

HEADERS = {"X-Admin-User-Id": "admin-1", "X-Brand-Id": "brand-1", "X-Local-Id": "local-1"}


@pytest.fixture
def mock_assistant():
    """Create a mock assistant and attach it to app state (mirrors the lifespan)."""
    assistant = MagicMock()
    assistant.chat.return_value = ChatResult(
        session_id="session-1",
        reply="Festivo creado para el local el 2025-08-15.",
        actions=ChatActions(holidays_changed=True),
    )
    app.state.agent = assistant
    yield assistant
    app.state.agent = None


@pytest.fixture
def client(mock_assistant):
    return TestClient(app)


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "admin-assistant"}


class TestChatEndpoint:
    def test_chat_returns_reply_and_actions(self, client, mock_assistant):
        response = client.post(
            "/api/chat", json={"message": "Cerramos el 15 de agosto"}, headers=HEADERS,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["reply"] == "Festivo creado para el local el 2025-08-15."
        assert data["session_id"] == "session-1"
        assert data["actions"] == {
            "appointments_changed": False,
            "holidays_changed": True,
            "announcements_changed": False,
        }

    def test_chat_passes_admin_scope_and_session(self, client, mock_assistant):
        client.post(
            "/api/chat", json={"message": "hola", "session_id": "session-1"}, headers=HEADERS,
        )
        args, kwargs = mock_assistant.chat.call_args
        assert args == ("admin-1", "hola", "session-1")
        assert kwargs["scope"].brand_id == "brand-1"
        assert kwargs["scope"].local_id == "local-1"

    def test_missing_headers_are_rejected(self, client):
        response = client.post("/api/chat", json={"message": "hola"}, headers={"X-Admin-User-Id": "admin-1"})
        assert response.status_code == 422

    def test_blank_scope_header_is_rejected(self, client):
        response = client.post(
            "/api/chat", json={"message": "hola"}, headers={**HEADERS, "X-Local-Id": " "},
        )
        assert response.status_code == 400

    def test_empty_message_fails_validation(self, client):
        response = client.post("/api/chat", json={"message": ""}, headers=HEADERS)
        assert response.status_code == 422

    @pytest.mark.parametrize(
        "error, status",
        [
            (ValueError("empty"), 400),
            (InvalidToolCallError("Tool not allowed: x"), 400),
            (AdminNotAuthorizedError("no"), 403),
            (DailyLimitExceededError("limit"), 429),
            (AssistantUnavailableError("retry"), 503),
        ],
    )
    def test_errors_map_to_status_codes(self, client, mock_assistant, error, status):
        mock_assistant.chat.side_effect = error
        response = client.post("/api/chat", json={"message": "hola"}, headers=HEADERS)
        assert response.status_code == status

    def test_unexpected_error_does_not_leak_details(self, client, mock_assistant):
        mock_assistant.chat.side_effect = RuntimeError("sqlite exploded")
        response = client.post("/api/chat", json={"message": "hola"}, headers=HEADERS)
        assert response.status_code == 500
        detail = response.json()["detail"]
        assert "sqlite" not in detail
        assert "internal error" in detail.lower()

    def test_client_supplied_request_id_is_echoed(self, client):
        response = client.post(
            "/api/chat",
            json={"message": "hola"},
            headers={**HEADERS, "X-Request-ID": "trace-123"},
        )
        assert response.headers["X-Request-ID"] == "trace-123"


class TestSessionEndpoint:
    def test_returns_transcript(self, client, mock_assistant):
        created = datetime(2025, 6, 10, 7, 0, tzinfo=UTC)
        mock_assistant.get_session.return_value = SessionTranscript(
            session_id="session-1",
            summary="Festivo del local creado.",
            messages=[
                ChatMessage(id=1, session_id="session-1", role="user", content="hola", created_at=created),
                ChatMessage(id=2, session_id="session-1", role="assistant", content="Hola", created_at=created),
            ],
        )
        response = client.get("/api/sessions/session-1", headers=HEADERS)
        assert response.status_code == 200
        data = response.json()
        assert data["summary"] == "Festivo del local creado."
        assert [m["role"] for m in data["messages"]] == ["user", "assistant"]

    def test_unknown_session_is_404(self, client, mock_assistant):
        mock_assistant.get_session.side_effect = SessionNotFoundError("missing")
        response = client.get("/api/sessions/nope", headers=HEADERS)
        assert response.status_code == 404

    def test_non_admin_is_403(self, client, mock_assistant):
        mock_assistant.get_session.side_effect = AdminNotAuthorizedError("no")
        response = client.get("/api/sessions/session-1", headers=HEADERS)
        assert response.status_code == 403


class TestAssistantNotReady:
    def test_returns_503_before_lifespan_completes(self):
        app.state.agent = None
        response = TestClient(app).post("/api/chat", json={"message": "hola"}, headers=HEADERS)
        assert response.status_code == 503
        assert "starting up" in response.json()["detail"].lower()


class TestRootEndpoint:
    def test_root_returns_service_info(self, client):
        data = client.get("/").json()
        assert data["service"] == "Admin Assistant"
        assert data["health"] == "/api/health"
