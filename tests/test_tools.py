"""Tests for the tool handlers and the registry that dispatches them."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from conftest import NOW, TZ

from admin_assistant.errors import InvalidToolCallError
from admin_assistant.models import (
    ADD_SHOP_HOLIDAY,
    ADD_STAFF_HOLIDAY,
    ADDED,
    CREATE_ANNOUNCEMENT,
    CREATE_APPOINTMENT,
    CREATED,
    ERROR,
    NEEDS_INFO,
    UNAVAILABLE,
    Customer,
    Staff,
)
from admin_assistant.tools.announcements import infer_kind
from admin_assistant.tools.registry import ToolContext, ToolRegistry


@pytest.fixture
def registry():
    return ToolRegistry(announcements_enabled=True)


@pytest.fixture
def make_context(scope, backoffice):
    def _make(message: str = "", backoffice_override=None) -> ToolContext:
        return ToolContext(
            scope=scope,
            backoffice=backoffice_override or backoffice,
            now=NOW,
            time_zone=TZ,
            message=message,
        )

    return _make


# ── Registry ────────────────────────────────────────────────────────


class TestRegistry:
    def test_available_tools_in_stable_order(self, registry):
        assert registry.available() == [
            CREATE_APPOINTMENT, ADD_SHOP_HOLIDAY, ADD_STAFF_HOLIDAY, CREATE_ANNOUNCEMENT,
        ]

    def test_announcements_can_be_disabled(self):
        assert CREATE_ANNOUNCEMENT not in ToolRegistry(announcements_enabled=False).available()

    def test_schema_titles_are_tool_names(self, registry):
        schemas = registry.schemas([ADD_SHOP_HOLIDAY, "unknown"])
        assert len(schemas) == 1
        assert schemas[0].model_json_schema()["title"] == ADD_SHOP_HOLIDAY
        assert "startDate" in schemas[0].model_json_schema()["properties"]

    def test_unknown_tool_is_rejected(self, registry, make_context):
        with pytest.raises(InvalidToolCallError):
            registry.execute("delete_everything", {}, make_context())

    def test_tool_not_offered_this_turn_is_rejected(self, registry, make_context, backoffice):
        with pytest.raises(InvalidToolCallError):
            registry.execute(
                ADD_SHOP_HOLIDAY, {"startDate": "2025-08-15"}, make_context(), allowed=[CREATE_APPOINTMENT],
            )
        assert backoffice.shop_holidays == []

    @pytest.mark.parametrize("args", [["2025-08-15"], {"staffIds": "s-ana"}, {"startDate": ["2025-08-15"]}])
    def test_malformed_arguments_are_rejected(self, registry, make_context, args):
        with pytest.raises(InvalidToolCallError):
            registry.execute(ADD_STAFF_HOLIDAY, args, make_context())

    def test_raw_text_defaults_to_the_user_message(self, registry, make_context, backoffice):
        outcome = registry.execute(ADD_SHOP_HOLIDAY, {}, make_context("Cerramos el local el 15 de agosto"))
        assert outcome.status == ADDED
        assert backoffice.shop_holidays == [("2025-08-15", "2025-08-15")]

    def test_handler_failure_becomes_error_outcome(self, registry, make_context, backoffice):
        backoffice.add_shop_holiday = MagicMock(side_effect=RuntimeError("back-office down"))
        outcome = registry.execute(ADD_SHOP_HOLIDAY, {"startDate": "2025-08-15"}, make_context())
        assert outcome.status == ERROR
        assert outcome.scope == "shop"


# ── create_appointment ──────────────────────────────────────────────


class TestCreateAppointment:
    MESSAGE = "Cita mañana a las 6 de la tarde con Ana, corte, clienta Laura"

    def _args(self, **overrides):
        args = {
            "dateText": "mañana",
            "timeText": "a las 6 de la tarde",
            "staffName": "Ana",
            "serviceName": "corte",
            "customerName": "Laura",
        }
        args.update(overrides)
        return {key: value for key, value in args.items() if value is not None}

    def test_books_registered_customer(self, registry, make_context, backoffice):
        backoffice.slots[("s-ana", "2025-06-11")] = ["17:30", "18:00"]
        outcome = registry.execute(CREATE_APPOINTMENT, self._args(), make_context(self.MESSAGE))

        assert outcome.status == CREATED
        assert outcome.start_date_time == "2025-06-11T18:00:00+02:00"
        assert outcome.staff_name == "Ana"
        assert outcome.service_name == "Corte de pelo"
        assert outcome.customer_type == "registered"
        assert outcome.customer_name == "Laura Gómez"
        assert outcome.appointment_id == "apt-1"

        booked = backoffice.appointments[0]
        assert booked["customer_id"] == "c-laura"
        assert booked["staff_id"] == "s-ana"
        assert booked["start_date_time"] == "2025-06-11T18:00:00+02:00"

    def test_exact_time_not_offered(self, registry, make_context, backoffice):
        backoffice.slots[("s-ana", "2025-06-11")] = ["10:00"]
        outcome = registry.execute(CREATE_APPOINTMENT, self._args(), make_context(self.MESSAGE))
        assert outcome.status == UNAVAILABLE
        assert outcome.reason == "slot_unavailable"
        assert outcome.staff_id == "s-ana"
        assert backoffice.appointments == []

    def test_missing_date_and_time(self, registry, make_context, backoffice):
        outcome = registry.execute(
            CREATE_APPOINTMENT,
            {"serviceName": "corte", "customerName": "Laura"},
            make_context("crea una cita"),
        )
        assert outcome.status == NEEDS_INFO
        assert outcome.missing == ["date", "time"]

    def test_afternoon_request_takes_the_first_afternoon_slot(self, registry, make_context, backoffice):
        backoffice.slots[("s-ana", "2025-06-11")] = ["10:00", "16:30", "18:00"]
        outcome = registry.execute(
            CREATE_APPOINTMENT,
            self._args(timeText="por la tarde"),
            make_context("Cita mañana por la tarde con Ana, corte, clienta Laura"),
        )
        assert outcome.status == CREATED
        assert outcome.start_date_time == "2025-06-11T16:30:00+02:00"

    def test_day_of_month_with_morning_is_a_search_not_a_time(self, registry, make_context, backoffice):
        backoffice.slots[("s-ana", "2025-06-12")] = ["10:00", "11:00", "17:00"]
        outcome = registry.execute(
            CREATE_APPOINTMENT,
            {},
            make_context("cita el 12 por la mañana con Ana para corte de pelo, cliente Laura"),
        )
        assert outcome.status == CREATED
        assert outcome.start_date_time == "2025-06-12T10:00:00+02:00"
        assert backoffice.appointments[0]["staff_id"] == "s-ana"

    def test_unknown_argument_from_the_model_is_ignored(self, registry, make_context, backoffice):
        backoffice.slots[("s-ana", "2025-06-11")] = ["18:00"]
        outcome = registry.execute(
            CREATE_APPOINTMENT, {**self._args(), "duration": 30}, make_context(self.MESSAGE),
        )
        assert outcome.status == CREATED

    def test_unparseable_start_date_time(self, registry, make_context):
        outcome = registry.execute(
            CREATE_APPOINTMENT, {"startDateTime": "el martes"}, make_context("cita el martes"),
        )
        assert outcome.status == NEEDS_INFO
        assert outcome.missing == ["date", "time"]

    def test_inactive_staff(self, registry, make_context):
        outcome = registry.execute(
            CREATE_APPOINTMENT,
            {"date": "2025-06-11", "time": "10:00", "staffName": "Marta", "serviceName": "corte"},
            make_context("cita con Marta"),
        )
        assert outcome.status == NEEDS_INFO
        assert outcome.reason == "staff_inactive"

    def test_unknown_staff_id(self, registry, make_context):
        outcome = registry.execute(
            CREATE_APPOINTMENT,
            {"date": "2025-06-11", "time": "10:00", "staffId": "s-nadie", "serviceName": "corte"},
            make_context("cita"),
        )
        assert outcome.reason == "staff_not_found"

    def test_ambiguous_service_lists_options(self, registry, make_context, backoffice):
        from admin_assistant.models import Service

        backoffice.services.append(Service(id="sv-corte-barba", name="Corte y barba"))
        outcome = registry.execute(
            CREATE_APPOINTMENT,
            {"date": "2025-06-11", "time": "10:00", "serviceName": "corte"},
            make_context("cita para un corte"),
        )
        assert outcome.status == NEEDS_INFO
        assert outcome.missing == ["serviceId"]
        assert {option.id for option in outcome.options} == {"sv-corte", "sv-corte-barba"}

    def test_unknown_customer_is_booked_as_guest(self, registry, make_context, backoffice):
        backoffice.slots[("s-ana", "2025-06-11")] = ["18:00"]
        outcome = registry.execute(
            CREATE_APPOINTMENT, self._args(customerName="Carlos"), make_context(self.MESSAGE),
        )
        assert outcome.status == CREATED
        assert outcome.customer_type == "guest"
        assert outcome.customer_name == "Carlos"
        assert backoffice.appointments[0]["guest_name"] == "Carlos"
        assert backoffice.appointments[0]["customer_id"] is None

    def test_registered_customer_by_email(self, registry, make_context, backoffice):
        backoffice.slots[("s-ana", "2025-06-11")] = ["18:00"]
        outcome = registry.execute(
            CREATE_APPOINTMENT,
            self._args(customerName=None, customerEmail="PABLO@example.com"),
            make_context(self.MESSAGE),
        )
        assert outcome.customer_type == "registered"
        assert backoffice.appointments[0]["customer_id"] == "c-pablo"

    def test_ambiguous_customer(self, registry, make_context, backoffice):
        backoffice.customers.append(Customer(id="c-laura-p", name="Laura Pérez", email="lp@example.com"))
        backoffice.slots[("s-ana", "2025-06-11")] = ["18:00"]
        outcome = registry.execute(CREATE_APPOINTMENT, self._args(), make_context(self.MESSAGE))
        assert outcome.status == NEEDS_INFO
        assert outcome.reason == "customer_ambiguous"
        assert outcome.missing == ["customerEmail"]
        assert len(outcome.options) == 2
        assert backoffice.appointments == []

    def test_missing_customer(self, registry, make_context, backoffice):
        outcome = registry.execute(
            CREATE_APPOINTMENT,
            {"dateText": "mañana", "timeText": "a las 10", "serviceName": "corte"},
            make_context("cita mañana a las 10 para un corte"),
        )
        assert outcome.status == NEEDS_INFO
        assert outcome.missing == ["customerName"]

    def test_soonest_picks_least_loaded_staff(self, registry, make_context, backoffice):
        backoffice.slots[("s-ana", "2025-06-11")] = ["12:00"]
        backoffice.slots[("s-luis", "2025-06-11")] = ["12:00"]
        backoffice.loads = {"s-ana": 3, "s-luis": 1}
        outcome = registry.execute(
            CREATE_APPOINTMENT,
            {"serviceName": "tinte", "customerName": "Carlos", "asSoonAsPossible": True},
            make_context("tinte lo antes posible"),
        )
        assert outcome.status == CREATED
        assert outcome.staff_id == "s-luis"
        assert outcome.start_date_time == "2025-06-11T12:00:00+02:00"

    def test_no_active_staff(self, registry, make_context, backoffice):
        backoffice.staff = [Staff(id="s-marta", name="Marta", is_active=False)]
        outcome = registry.execute(
            CREATE_APPOINTMENT,
            {"date": "2025-06-11", "time": "10:00", "serviceName": "corte", "customerName": "Carlos"},
            make_context("cita para un corte"),
        )
        assert outcome.status == UNAVAILABLE
        assert outcome.reason == "no_active_staff"


# ── Holidays ────────────────────────────────────────────────────────


class TestShopHoliday:
    def test_reversed_dates_are_swapped(self, registry, make_context, backoffice):
        outcome = registry.execute(
            ADD_SHOP_HOLIDAY, {"startDate": "2025-08-20", "endDate": "2025-08-10"}, make_context(),
        )
        assert (outcome.start, outcome.end) == ("2025-08-10", "2025-08-20")
        assert backoffice.shop_holidays == [("2025-08-10", "2025-08-20")]

    def test_date_text_range(self, registry, make_context, backoffice):
        outcome = registry.execute(
            ADD_SHOP_HOLIDAY, {"dateText": "12 y 10 de julio"}, make_context("cerramos el 12 y 10 de julio"),
        )
        assert (outcome.start, outcome.end) == ("2025-07-10", "2025-07-12")
        assert outcome.added == 1

    def test_needs_a_date(self, registry, make_context, backoffice):
        outcome = registry.execute(ADD_SHOP_HOLIDAY, {}, make_context("pon un festivo en el local"))
        assert outcome.status == NEEDS_INFO
        assert outcome.missing == ["startDate"]
        assert backoffice.shop_holidays == []


class TestStaffHoliday:
    def test_whole_team_next_week(self, registry, make_context, backoffice):
        outcome = registry.execute(
            ADD_STAFF_HOLIDAY, {}, make_context("Vacaciones para todo el equipo la semana que viene"),
        )
        assert outcome.status == ADDED
        assert outcome.added == 2
        assert outcome.staff_names == ["Ana", "Luis"]
        assert backoffice.staff_holidays == [
            ("s-ana", "2025-06-16", "2025-06-22"),
            ("s-luis", "2025-06-16", "2025-06-22"),
        ]

    def test_unknown_names_are_reported(self, registry, make_context, backoffice):
        outcome = registry.execute(
            ADD_STAFF_HOLIDAY,
            {"staffNames": ["Ana", "Pedro"], "startDate": "2025-07-01"},
            make_context("vacaciones para Ana y Pedro el 1 de julio"),
        )
        assert outcome.status == ADDED
        assert outcome.staff_ids == ["s-ana"]
        assert outcome.unmatched == ["Pedro"]
        assert (outcome.start, outcome.end) == ("2025-07-01", "2025-07-01")

    def test_unknown_id_is_retried_as_a_name(self, registry, make_context, backoffice):
        outcome = registry.execute(
            ADD_STAFF_HOLIDAY, {"staffIds": ["Luis"], "startDate": "2025-07-01"}, make_context(),
        )
        assert outcome.staff_ids == ["s-luis"]

    def test_ambiguous_name_asks_which(self, registry, make_context, backoffice):
        backoffice.staff.append(Staff(id="s-lucia", name="Lucía"))
        outcome = registry.execute(
            ADD_STAFF_HOLIDAY, {"staffName": "Lu", "startDate": "2025-07-01"}, make_context(),
        )
        assert outcome.status == NEEDS_INFO
        assert outcome.missing == ["staffIds"]
        assert [option.name for option in outcome.options] == ["Lucía", "Luis"]
        assert backoffice.staff_holidays == []

    def test_inactive_staff_is_not_a_target(self, registry, make_context, backoffice):
        outcome = registry.execute(
            ADD_STAFF_HOLIDAY, {"staffName": "Marta", "startDate": "2025-07-01"}, make_context(),
        )
        assert outcome.status == NEEDS_INFO
        assert outcome.missing == ["staffIds"]
        assert outcome.unmatched == ["Marta"]

    def test_needs_a_date_first(self, registry, make_context):
        outcome = registry.execute(ADD_STAFF_HOLIDAY, {"staffName": "Ana"}, make_context("vacaciones para Ana"))
        assert outcome.missing == ["startDate"]

    def test_no_active_staff_for_whole_team(self, registry, make_context, backoffice):
        backoffice.staff = []
        outcome = registry.execute(
            ADD_STAFF_HOLIDAY, {"allStaff": True, "startDate": "2025-07-01"}, make_context(),
        )
        assert outcome.status == UNAVAILABLE
        assert outcome.reason == "no_active_staff"


# ── create_announcement ─────────────────────────────────────────────


class TestCreateAnnouncement:
    def test_kind_is_inferred_from_wording(self, registry, make_context, backoffice):
        outcome = registry.execute(
            CREATE_ANNOUNCEMENT,
            {"title": "Cerrado por obras", "message": "El local estará cerrado el lunes."},
            make_context(),
        )
        assert outcome.status == CREATED
        assert outcome.kind == "warning"
        assert backoffice.announcements[0]["kind"] == "warning"

    def test_visibility_from_date_text(self, registry, make_context, backoffice):
        outcome = registry.execute(
            CREATE_ANNOUNCEMENT,
            {"title": "Rebajas", "message": "Descuento en tintes", "dateText": "del 1 al 15 de julio"},
            make_context(),
        )
        assert (outcome.start, outcome.end) == ("2025-07-01", "2025-07-15")
        assert outcome.kind == "success"

    def test_missing_title(self, registry, make_context, backoffice):
        outcome = registry.execute(CREATE_ANNOUNCEMENT, {"message": "Hola"}, make_context())
        assert outcome.status == NEEDS_INFO
        assert outcome.missing == ["title"]
        assert backoffice.announcements == []

    @pytest.mark.parametrize(
        "kind, text, expected",
        [
            ("SUCCESS", "", "success"),
            (None, "Retraso en las citas de hoy", "warning"),
            ("urgent", "Nueva promoción de verano", "success"),
            (None, "Horario de agosto", "info"),
        ],
    )
    def test_infer_kind(self, kind, text, expected):
        assert infer_kind(kind, text) == expected
