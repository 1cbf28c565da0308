"""Open-slot search across several staff members.

Two modes:

* **exact** — a date *and* a time were requested: the slot is either
  offered by some staff member at exactly that time or the request is
  rejected with ``slot_unavailable``.
* **search** — walk the days of a window (the requested day, or
  today..today+N) and take the earliest time on the first day that has
  any candidate, honouring an optional day period and preferred time.

When several staff members offer the winning time, the one with the
fewest appointments in the current Monday–Sunday week gets it; remaining
ties go to display-name order.  That load figure is fetched at most once
per search and degrades to zero for everyone if the back-office cannot
provide it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from admin_assistant.config import SLOT_SEARCH_DAYS
from admin_assistant.models import Service, Staff
from admin_assistant.services.backoffice_client import (
    BackofficeClient,
    TenantScope,
)
from admin_assistant.temporal import (
    in_day_period,
    minutes_in_zone,
    time_to_minutes,
    today_in_zone,
    week_bounds,
)
from admin_assistant.text import normalize_text

logger = logging.getLogger(__name__)

SLOT_UNAVAILABLE = "slot_unavailable"
SLOT_WINDOW_UNAVAILABLE = "slot_window_unavailable"


@dataclass(frozen=True)
class SlotChoice:
    staff: Staff
    date: str
    time: str
    weekly_load: int = 0


@dataclass(frozen=True)
class SlotUnavailable:
    reason: str


class SlotSearch:
    """Find the best open slot for one service among candidate staff."""

    def __init__(
        self,
        backoffice: BackofficeClient,
        scope: TenantScope,
        time_zone: str,
        now: datetime,
        window_days: int = SLOT_SEARCH_DAYS,
    ):
        self._backoffice = backoffice
        self._scope = scope
        self._time_zone = time_zone
        self._now = now
        self._window_days = window_days
        self._today = today_in_zone(now, time_zone)
        self._now_minutes = minutes_in_zone(now, time_zone)
        self._loads: dict[str, int] | None = None

    def find_slot(
        self,
        staff: list[Staff],
        service: Service,
        preferred_date: str | None = None,
        preferred_time: str | None = None,
        day_period: str | None = None,
        wants_soonest: bool = False,
    ) -> SlotChoice | SlotUnavailable:
        self._loads = None
        if preferred_date and preferred_time and not wants_soonest:
            return self._exact(staff, service, preferred_date, preferred_time)

        if preferred_date and not wants_soonest:
            days = [date.fromisoformat(preferred_date)]
        else:
            days = [self._today + timedelta(days=offset) for offset in range(self._window_days + 1)]
        wanted_time = None if wants_soonest else preferred_time
        return self._search(staff, service, days, wanted_time, day_period)

    # ── Modes ────────────────────────────────────────────────────────

    def _exact(
        self, staff: list[Staff], service: Service, day_str: str, time_str: str,
    ) -> SlotChoice | SlotUnavailable:
        day = date.fromisoformat(day_str)
        if not self._is_future(day, time_str):
            logger.info("Requested slot %s %s is in the past", day_str, time_str)
            return SlotUnavailable(SLOT_UNAVAILABLE)

        offering = [
            member
            for member in staff
            if time_str in self._backoffice.get_open_slots(self._scope, day_str, member.id, service.id)
        ]
        if not offering:
            return SlotUnavailable(SLOT_UNAVAILABLE)
        return self._choose(offering, day_str, time_str)

    def _search(
        self,
        staff: list[Staff],
        service: Service,
        days: list[date],
        wanted_time: str | None,
        day_period: str | None,
    ) -> SlotChoice | SlotUnavailable:
        for day in days:
            if day < self._today:
                continue
            day_str = day.isoformat()
            by_time: dict[str, list[Staff]] = {}
            for member in staff:
                for slot in self._backoffice.get_open_slots(self._scope, day_str, member.id, service.id):
                    if not in_day_period(slot, day_period):
                        continue
                    if wanted_time and slot != wanted_time:
                        continue
                    if not self._is_future(day, slot):
                        continue
                    by_time.setdefault(slot, []).append(member)
            if by_time:
                earliest = min(by_time, key=time_to_minutes)
                return self._choose(by_time[earliest], day_str, earliest)

        logger.info(
            "No open slot for service %s in %d day(s) (period=%s, time=%s)",
            service.id, len(days), day_period, wanted_time,
        )
        return SlotUnavailable(SLOT_WINDOW_UNAVAILABLE)

    # ── Tie-break ────────────────────────────────────────────────────

    def _is_future(self, day: date, time_str: str) -> bool:
        if day < self._today:
            return False
        if day == self._today:
            return time_to_minutes(time_str) > self._now_minutes
        return True

    def _weekly_loads(self, staff: list[Staff]) -> dict[str, int]:
        if self._loads is None:
            week_start, week_end = week_bounds(self._now, self._time_zone)
            try:
                self._loads = self._backoffice.get_weekly_load(
                    self._scope, [member.id for member in staff], week_start, week_end,
                )
            except Exception as exc:
                logger.warning("Weekly load unavailable, ignoring load balancing: %r", exc)
                self._loads = {}
        return self._loads

    def _choose(self, offering: list[Staff], day_str: str, time_str: str) -> SlotChoice:
        if len(offering) == 1:
            # A lone candidate needs no balancing.
            return SlotChoice(offering[0], day_str, time_str, (self._loads or {}).get(offering[0].id, 0))
        loads = self._weekly_loads(offering)
        best = min(
            offering,
            key=lambda member: (loads.get(member.id, 0), normalize_text(member.name), member.id),
        )
        return SlotChoice(best, day_str, time_str, loads.get(best.id, 0))

