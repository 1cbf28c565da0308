"""Shared test fixtures for the admin assistant test suite."""

from __future__ import annotations

import os
from datetime import UTC, datetime

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("BACKOFFICE_API_TOKEN", "test-backoffice-token-456")
    os.environ.setdefault("ASSISTANT_TIME_ZONE", "Europe/Madrid")


TZ = "Europe/Madrid"
# Tuesday 2025-06-10, 09:00 in Madrid.
NOW = datetime(2025, 6, 10, 7, 0, tzinfo=UTC)


class FakeBackoffice:
    """In-memory stand-in for :class:`BackofficeClient`.

    ``slots`` maps ``(staff_id, "YYYY-MM-DD")`` to open ``HH:MM`` times.
    Every mutation is recorded so tests can assert what would have been
    written.
    """

    def __init__(self, staff=(), services=(), customers=(), slots=None, loads=None, admins=("admin-1",)):
        self.staff = list(staff)
        self.services = list(services)
        self.customers = list(customers)
        self.slots = dict(slots or {})
        self.loads = dict(loads or {})
        self.admins = set(admins)
        self.load_error: Exception | None = None
        self.load_calls = 0
        self.slot_calls: list[tuple[str, str]] = []
        self.appointments: list[dict] = []
        self.shop_holidays: list[tuple[str, str]] = []
        self.staff_holidays: list[tuple[str, str, str]] = []
        self.announcements: list[dict] = []

    def is_admin(self, scope, user_id):
        return user_id in self.admins

    def list_staff(self, scope):
        return list(self.staff)

    def get_staff(self, scope, staff_id):
        return next((member for member in self.staff if member.id == staff_id), None)

    def list_services(self, scope):
        return list(self.services)

    def get_service(self, scope, service_id):
        return next((service for service in self.services if service.id == service_id), None)

    def find_customers(self, scope, *, name=None, email=None, phone=None):
        from admin_assistant.text import normalize_text

        if email:
            return [c for c in self.customers if (c.email or "").lower() == email.lower()]
        if phone:
            return [c for c in self.customers if c.phone == phone]
        if name:
            return [c for c in self.customers if normalize_text(name) in normalize_text(c.name)]
        raise ValueError("find_customers needs a name, email or phone")

    def get_open_slots(self, scope, date, staff_id, service_id):
        self.slot_calls.append((staff_id, date))
        return list(self.slots.get((staff_id, date), []))

    def get_weekly_load(self, scope, staff_ids, week_start, week_end):
        self.load_calls += 1
        if self.load_error is not None:
            raise self.load_error
        return {staff_id: self.loads.get(staff_id, 0) for staff_id in staff_ids}

    def create_appointment(self, scope, **kwargs):
        self.appointments.append(kwargs)
        return {"id": f"apt-{len(self.appointments)}"}

    def add_shop_holiday(self, scope, start, end):
        self.shop_holidays.append((start, end))
        return {"id": f"hol-{len(self.shop_holidays)}"}

    def add_staff_holiday(self, scope, staff_id, start, end):
        self.staff_holidays.append((staff_id, start, end))
        return {"id": f"shol-{len(self.staff_holidays)}"}

    def create_announcement(self, scope, **kwargs):
        self.announcements.append(kwargs)
        return {"id": f"ann-{len(self.announcements)}"}


@pytest.fixture
def scope():
    from admin_assistant.services.backoffice_client import TenantScope

    return TenantScope(brand_id="brand-1", local_id="local-1")


@pytest.fixture
def directory():
    """A small salon: two active professionals, one inactive, two services, two customers."""
    from admin_assistant.models import Customer, Service, Staff

    return {
        "staff": [
            Staff(id="s-ana", name="Ana"),
            Staff(id="s-luis", name="Luis"),
            Staff(id="s-marta", name="Marta", is_active=False),
        ],
        "services": [
            Service(id="sv-corte", name="Corte de pelo", duration=30),
            Service(id="sv-tinte", name="Tinte", duration=60),
        ],
        "customers": [
            Customer(id="c-laura", name="Laura Gómez", email="laura@example.com", phone="600111222"),
            Customer(id="c-pablo", name="Pablo Ruiz", email="pablo@example.com"),
        ],
    }


@pytest.fixture
def backoffice(directory):
    return FakeBackoffice(**directory)

