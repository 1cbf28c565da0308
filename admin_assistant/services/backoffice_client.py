"""HTTP client for the salon back-office REST API with retry logic and
timeout handling.

The back-office owns the business entities (staff, services, customers,
appointments, holidays, announcements).  Every call carries an explicit
:class:`TenantScope` which is sent as ``X-Brand-Id`` / ``X-Local-Id``
headers; the client itself holds no "current tenant" state and can be
shared between concurrent requests.

Directory reads are **not cached**: the assistant takes a fresh snapshot
on every turn so that a staff member disabled a minute ago is never
offered again.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any

import httpx

from admin_assistant.config import BACKOFFICE_API_TOKEN, BACKOFFICE_BASE_URL
from admin_assistant.models import Customer, Service, Staff
from admin_assistant.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 15.0


class BackofficeAPIError(Exception):
    """Raised when a back-office API call fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class TenantScope:
    """Brand and location every back-office call is scoped to."""

    brand_id: str
    local_id: str

    def headers(self) -> dict[str, str]:
        return {"X-Brand-Id": self.brand_id, "X-Local-Id": self.local_id}


class BackofficeClient:
    """Thin wrapper around the back-office REST API.

    Reads (``GET``) are retried with exponential backoff on transport
    failures (timeouts, refused or dropped connections) and 5xx responses.
    Writes are attempted once: a timed-out ``POST`` may already have been
    applied and must not be replayed.
    """

    def __init__(self, token: str | None = None, base_url: str | None = None):
        self._token = token or BACKOFFICE_API_TOKEN
        self._base_url = base_url or BACKOFFICE_BASE_URL
        self._client = httpx.Client(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {self._token}",
                "Content-Type": "application/json",
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

    # ── Internal helpers ─────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        scope: TenantScope,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Execute an HTTP request, retrying reads with exponential backoff."""
        operation = f"{method} {path}"
        attempts = MAX_RETRIES if method == "GET" else 1
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            t0 = time.perf_counter()
            try:
                response = self._client.request(
                    method,
                    path,
                    params=params,
                    json=json_body,
                    headers=scope.headers(),
                )
                if response.status_code >= 500:
                    raise BackofficeAPIError(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                if response.status_code >= 400:
                    raise BackofficeAPIError(
                        f"Client error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                elapsed = (time.perf_counter() - t0) * 1000
                metrics.record_success("backoffice", operation, latency_ms=elapsed)
                return self._decode(response, operation)

            except httpx.TransportError as exc:
                elapsed = (time.perf_counter() - t0) * 1000
                metrics.record_failure(
                    "backoffice", operation,
                    error_type=type(exc).__name__, latency_ms=elapsed,
                )
                last_error = exc
                logger.warning(
                    "Back-office attempt %d/%d for %s failed (%s)",
                    attempt,
                    attempts,
                    operation,
                    type(exc).__name__,
                )
            except BackofficeAPIError as exc:
                elapsed = (time.perf_counter() - t0) * 1000
                metrics.record_failure(
                    "backoffice", operation,
                    error_type=f"{exc.status_code // 100}xx", latency_ms=elapsed,
                )
                if exc.status_code >= 500:
                    last_error = exc
                    logger.warning(
                        "Back-office server error on attempt %d/%d for %s",
                        attempt,
                        attempts,
                        operation,
                    )
                else:
                    raise  # 4xx errors are not retried

            if attempt < attempts:
                time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise BackofficeAPIError(
            f"Back-office request {operation} failed after {attempts} attempt(s): {last_error}",
            status_code=getattr(last_error, "status_code", None),
        )

    @staticmethod
    def _decode(response: httpx.Response, operation: str) -> dict[str, Any]:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise BackofficeAPIError(
                f"Invalid JSON from {operation}", status_code=response.status_code,
            ) from exc

    def _get_optional(self, path: str, scope: TenantScope) -> dict[str, Any] | None:
        """GET a single resource, mapping 404 to ``None``."""
        try:
            data = self._request("GET", path, scope)
        except BackofficeAPIError as exc:
            if exc.status_code == 404:
                return None
            raise
        return data.get("resource")

    # ── Admin guard ──────────────────────────────────────────────────

    def is_admin(self, scope: TenantScope, user_id: str) -> bool:
        """Whether *user_id* may administer the scoped location.

        Platform admins pass for every location; other users need a staff
        membership on the location.
        """
        try:
            data = self._request("GET", f"/admins/{user_id}", scope)
        except BackofficeAPIError as exc:
            if exc.status_code in (403, 404):
                return False
            raise
        return bool(data.get("is_admin"))

    # ── Directory ────────────────────────────────────────────────────

    def list_staff(self, scope: TenantScope) -> list[Staff]:
        data = self._request("GET", "/staff", scope)
        return [Staff.model_validate(item) for item in data.get("collection", [])]

    def get_staff(self, scope: TenantScope, staff_id: str) -> Staff | None:
        resource = self._get_optional(f"/staff/{staff_id}", scope)
        return Staff.model_validate(resource) if resource else None

    def list_services(self, scope: TenantScope) -> list[Service]:
        data = self._request("GET", "/services", scope)
        return [Service.model_validate(item) for item in data.get("collection", [])]

    def get_service(self, scope: TenantScope, service_id: str) -> Service | None:
        resource = self._get_optional(f"/services/{service_id}", scope)
        return Service.model_validate(resource) if resource else None

    def find_customers(
        self,
        scope: TenantScope,
        *,
        name: str | None = None,
        email: str | None = None,
        phone: str | None = None,
    ) -> list[Customer]:
        """Search registered customers by exactly one of name, email or phone."""
        params = {
            key: value
            for key, value in (("name", name), ("email", email), ("phone", phone))
            if value
        }
        if not params:
            raise ValueError("find_customers needs a name, email or phone")
        data = self._request("GET", "/customers", scope, params=params)
        return [Customer.model_validate(item) for item in data.get("collection", [])]

    # ── Availability ─────────────────────────────────────────────────

    def get_open_slots(
        self,
        scope: TenantScope,
        date: str,
        staff_id: str,
        service_id: str,
    ) -> list[str]:
        """Open start times (``HH:MM``, local) for one staff member on *date*.

        **Not cached** — availability changes in real time.
        """
        data = self._request(
            "GET",
            f"/staff/{staff_id}/open-slots",
            scope,
            params={"date": date, "service_id": service_id},
        )
        return [slot[:5] for slot in data.get("collection", [])]

    def get_weekly_load(
        self,
        scope: TenantScope,
        staff_ids: list[str],
        week_start: str,
        week_end: str,
    ) -> dict[str, int]:
        """Appointments per staff member between two dates (inclusive)."""
        data = self._request(
            "GET",
            "/appointments/load",
            scope,
            params={"staff_ids": ",".join(staff_ids), "start": week_start, "end": week_end},
        )
        counts = data.get("counts") or {}
        try:
            return {staff_id: int(counts.get(staff_id) or 0) for staff_id in staff_ids}
        except (AttributeError, TypeError, ValueError) as exc:
            raise BackofficeAPIError(f"Malformed weekly load payload: {counts!r}") from exc

    # ── Mutations ────────────────────────────────────────────────────

    def create_appointment(
        self,
        scope: TenantScope,
        *,
        staff_id: str,
        service_id: str,
        start_date_time: str,
        customer_id: str | None = None,
        guest_name: str | None = None,
        guest_contact: str | None = None,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """Book a scheduled appointment.

        Args:
            start_date_time: Zoned ISO 8601 start (e.g. "2025-06-11T18:00:00+02:00").
            customer_id: Registered customer; when omitted the booking is a
                guest booking under ``guest_name``.
        """
        payload: dict[str, Any] = {
            "staff_id": staff_id,
            "service_id": service_id,
            "start_date_time": start_date_time,
            "status": "scheduled",
        }
        if customer_id:
            payload["customer_id"] = customer_id
        else:
            payload["guest_name"] = guest_name
            if guest_contact:
                payload["guest_contact"] = guest_contact
        if notes:
            payload["notes"] = notes
        data = self._request("POST", "/appointments", scope, json_body=payload)
        logger.info("Appointment created for staff %s at %s", staff_id, start_date_time)
        return data.get("resource", {})

    def add_shop_holiday(self, scope: TenantScope, start: str, end: str) -> dict[str, Any]:
        data = self._request(
            "POST", "/holidays", scope, json_body={"start": start, "end": end},
        )
        logger.info("Shop holiday added %s..%s for local %s", start, end, scope.local_id)
        return data.get("resource", {})

    def add_staff_holiday(
        self, scope: TenantScope, staff_id: str, start: str, end: str,
    ) -> dict[str, Any]:
        data = self._request(
            "POST",
            f"/staff/{staff_id}/holidays",
            scope,
            json_body={"start": start, "end": end},
        )
        logger.info("Staff holiday added %s..%s for staff %s", start, end, staff_id)
        return data.get("resource", {})

    def create_announcement(
        self,
        scope: TenantScope,
        *,
        title: str,
        message: str,
        kind: str,
        start: str | None = None,
        end: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"title": title, "message": message, "kind": kind}
        if start:
            payload["start"] = start
        if end:
            payload["end"] = end
        data = self._request("POST", "/announcements", scope, json_body=payload)
        logger.info("Announcement %r created for local %s", title, scope.local_id)
        return data.get("resource", {})


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: BackofficeClient | None = None
_client_lock = threading.Lock()


def get_backoffice_client() -> BackofficeClient:
    """Return a module-level BackofficeClient singleton.

    Uses double-checked locking so that the lock is only acquired during
    the first initialisation, not on every subsequent call.
    """
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = BackofficeClient()
    return _client
