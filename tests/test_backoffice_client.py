"""Tests for the BackofficeClient service."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import httpx
import pytest

from admin_assistant.services.backoffice_client import (
    INITIAL_BACKOFF_SECONDS,
    MAX_RETRIES,
    BackofficeAPIError,
    BackofficeClient,
    TenantScope,
)

SCOPE = TenantScope(brand_id="brand-1", local_id="local-1")

# ── Helpers ──────────────────────────────────────────────────────────


def _mock_response(data: dict, status_code: int = 200) -> MagicMock:
    mock = MagicMock()
    mock.status_code = status_code
    mock.json.return_value = data
    mock.text = str(data)
    return mock


@pytest.fixture
def client():
    return BackofficeClient(token="test-token", base_url="http://backoffice.test/api")


# ── Directory ────────────────────────────────────────────────────────


class TestDirectory:
    def test_list_staff_sends_tenant_headers(self, client):
        data = {"collection": [{"id": "s1", "name": "Ana"}, {"id": "s2", "name": "Luis", "is_active": False}]}
        with patch.object(client._client, "request", return_value=_mock_response(data)) as mock_req:
            staff = client.list_staff(SCOPE)

        assert [(member.id, member.is_active) for member in staff] == [("s1", True), ("s2", False)]
        kwargs = mock_req.call_args.kwargs
        assert kwargs["headers"] == {"X-Brand-Id": "brand-1", "X-Local-Id": "local-1"}

    def test_missing_resource_is_none(self, client):
        with patch.object(client._client, "request", return_value=_mock_response({}, 404)):
            assert client.get_service(SCOPE, "sv-x") is None

    def test_find_customers_needs_a_criterion(self, client):
        with pytest.raises(ValueError):
            client.find_customers(SCOPE)

    def test_find_customers_by_email(self, client):
        data = {"collection": [{"id": "c1", "name": "Laura", "email": "laura@example.com"}]}
        with patch.object(client._client, "request", return_value=_mock_response(data)) as mock_req:
            customers = client.find_customers(SCOPE, email="laura@example.com")
        assert customers[0].id == "c1"
        assert mock_req.call_args.kwargs["params"] == {"email": "laura@example.com"}


class TestAdminGuard:
    def test_admin(self, client):
        with patch.object(client._client, "request", return_value=_mock_response({"is_admin": True})):
            assert client.is_admin(SCOPE, "u1")

    @pytest.mark.parametrize("status", [403, 404])
    def test_forbidden_or_unknown_user_is_not_admin(self, client, status):
        with patch.object(client._client, "request", return_value=_mock_response({}, status)):
            assert not client.is_admin(SCOPE, "u1")


# ── Availability ─────────────────────────────────────────────────────


class TestAvailability:
    def test_open_slots_are_truncated_to_minutes(self, client):
        data = {"collection": ["10:00:00", "10:30:00"]}
        with patch.object(client._client, "request", return_value=_mock_response(data)) as mock_req:
            slots = client.get_open_slots(SCOPE, "2025-06-11", "s1", "sv1")
        assert slots == ["10:00", "10:30"]
        assert mock_req.call_args.kwargs["params"] == {"date": "2025-06-11", "service_id": "sv1"}

    def test_weekly_load_fills_missing_staff_with_zero(self, client):
        with patch.object(client._client, "request", return_value=_mock_response({"counts": {"s1": "4"}})):
            loads = client.get_weekly_load(SCOPE, ["s1", "s2"], "2025-06-09", "2025-06-15")
        assert loads == {"s1": 4, "s2": 0}

    def test_malformed_load_payload_is_an_api_error(self, client):
        with patch.object(client._client, "request", return_value=_mock_response({"counts": {"s1": "many"}})):
            with pytest.raises(BackofficeAPIError):
                client.get_weekly_load(SCOPE, ["s1"], "2025-06-09", "2025-06-15")


# ── Retry logic ──────────────────────────────────────────────────────


class TestRetryLogic:
    @patch("admin_assistant.services.backoffice_client.time.sleep")
    def test_read_retries_on_server_error(self, mock_sleep, client):
        responses = [_mock_response({}, 502), _mock_response({"collection": []})]
        with patch.object(client._client, "request", side_effect=responses) as mock_req:
            assert client.list_services(SCOPE) == []
        assert mock_req.call_count == 2
        mock_sleep.assert_called_once_with(INITIAL_BACKOFF_SECONDS)

    @patch("admin_assistant.services.backoffice_client.time.sleep")
    def test_dropped_connection_is_retried_then_wrapped(self, mock_sleep, client):
        with patch.object(client._client, "request", side_effect=httpx.ReadError("reset")) as mock_req:
            with pytest.raises(BackofficeAPIError):
                client.get_weekly_load(SCOPE, ["s1"], "2025-06-09", "2025-06-15")
        assert mock_req.call_count == MAX_RETRIES

    def test_invalid_json_is_an_api_error(self, client):
        response = _mock_response({})
        response.json.side_effect = ValueError("Expecting value")
        with patch.object(client._client, "request", return_value=response):
            with pytest.raises(BackofficeAPIError):
                client.list_staff(SCOPE)

    @patch("admin_assistant.services.backoffice_client.time.sleep")
    def test_read_gives_up_after_max_retries(self, mock_sleep, client):
        with patch.object(client._client, "request", side_effect=httpx.ConnectError("refused")) as mock_req:
            with pytest.raises(BackofficeAPIError):
                client.list_staff(SCOPE)
        assert mock_req.call_count == MAX_RETRIES
        assert mock_sleep.call_count == MAX_RETRIES - 1

    @patch("admin_assistant.services.backoffice_client.time.sleep")
    def test_write_is_not_retried(self, mock_sleep, client):
        with patch.object(client._client, "request", side_effect=httpx.ReadTimeout("slow")) as mock_req:
            with pytest.raises(BackofficeAPIError):
                client.add_shop_holiday(SCOPE, "2025-08-15", "2025-08-15")
        assert mock_req.call_count == 1
        mock_sleep.assert_not_called()

    def test_client_error_is_not_retried(self, client):
        with patch.object(client._client, "request", return_value=_mock_response({}, 422)) as mock_req:
            with pytest.raises(BackofficeAPIError) as exc_info:
                client.list_staff(SCOPE)
        assert exc_info.value.status_code == 422
        assert mock_req.call_count == 1


# ── Mutations ────────────────────────────────────────────────────────


class TestMutations:
    def test_guest_appointment_payload(self, client):
        with patch.object(client._client, "request", return_value=_mock_response({"resource": {"id": "a1"}})) as mock_req:
            created = client.create_appointment(
                SCOPE,
                staff_id="s1",
                service_id="sv1",
                start_date_time="2025-06-11T18:00:00+02:00",
                guest_name="Carlos",
            )
        assert created == {"id": "a1"}
        args, kwargs = mock_req.call_args
        assert args == ("POST", "/appointments")
        assert kwargs["json"] == {
            "staff_id": "s1",
            "service_id": "sv1",
            "start_date_time": "2025-06-11T18:00:00+02:00",
            "status": "scheduled",
            "guest_name": "Carlos",
        }

    def test_staff_holiday_path(self, client):
        with patch.object(client._client, "request", return_value=_mock_response({"resource": {}})) as mock_req:
            client.add_staff_holiday(SCOPE, "s1", "2025-07-01", "2025-07-03")
        args, kwargs = mock_req.call_args
        assert args == ("POST", "/staff/s1/holidays")
        assert kwargs["json"] == {"start": "2025-07-01", "end": "2025-07-03"}
