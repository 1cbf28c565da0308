"""Tests for keyword intent detection and per-turn tool selection."""

from __future__ import annotations

import pytest

from admin_assistant.intent import (
    ToolSelection,
    detect_intents,
    forced_tool_from_clarification,
    select_tools,
)
from admin_assistant.models import (
    ADD_SHOP_HOLIDAY,
    ADD_STAFF_HOLIDAY,
    ALL_TOOL_NAMES,
    CREATE_ANNOUNCEMENT,
    CREATE_APPOINTMENT,
)

ALL = list(ALL_TOOL_NAMES)


# ── detect_intents ──────────────────────────────────────────────────


class TestDetectIntents:
    def test_staff_holiday_with_name(self):
        signals = detect_intents("Pon vacaciones para Ana del 3 al 7 de marzo")
        assert signals.holiday
        assert signals.staff_scope
        assert not signals.shop_scope
        assert signals.domain_intents == 1
        assert signals.action_request

    def test_shop_closure(self):
        signals = detect_intents("Cerramos el local el 15 de agosto")
        assert signals.holiday
        assert signals.shop_scope
        assert not signals.staff_scope

    def test_question_is_not_an_action_request(self):
        signals = detect_intents("¿Cómo creo un festivo?")
        assert signals.question
        assert not signals.action_request

    def test_second_holiday_is_flagged(self):
        assert detect_intents("festivo el lunes y otro el viernes para el local").multi_holiday

    def test_empty_message(self):
        assert detect_intents("").domain_intents == 0


# ── select_tools ────────────────────────────────────────────────────


class TestSelectTools:
    def test_staff_holiday_is_forced(self):
        selection = select_tools("Pon vacaciones para Ana del 3 al 7 de marzo", None, ALL)
        assert selection.forced_tool == ADD_STAFF_HOLIDAY
        assert selection.tool_choice == ADD_STAFF_HOLIDAY
        assert CREATE_APPOINTMENT not in selection.tools
        assert ADD_SHOP_HOLIDAY not in selection.tools

    def test_shop_holiday_is_forced(self):
        selection = select_tools("Cerramos el local el 15 de agosto", None, ALL)
        assert selection.forced_tool == ADD_SHOP_HOLIDAY
        assert ADD_STAFF_HOLIDAY not in selection.tools

    def test_appointment_is_forced_by_name(self):
        selection = select_tools("Crea una cita para Laura mañana a las 10 con Ana", None, ALL)
        assert selection.tool_choice == CREATE_APPOINTMENT
        assert ADD_SHOP_HOLIDAY not in selection.tools
        assert ADD_STAFF_HOLIDAY not in selection.tools

    def test_two_intents_require_some_tool(self):
        selection = select_tools("Publica un aviso de que el local cierra por vacaciones", None, ALL)
        assert selection.forced_tool is None
        assert selection.require_tool
        assert selection.tool_choice == "any"
        assert CREATE_ANNOUNCEMENT in selection.tools

    def test_both_scopes_offer_both_holiday_tools(self):
        selection = select_tools(
            "Vacaciones para el local y para el barbero Luis la semana que viene", None, ALL,
        )
        assert selection.forced_tool is None
        assert ADD_SHOP_HOLIDAY in selection.tools
        assert ADD_STAFF_HOLIDAY in selection.tools
        assert CREATE_APPOINTMENT not in selection.tools

    def test_second_holiday_is_not_forced(self):
        selection = select_tools("festivo el lunes y otro el viernes para el local", None, ALL)
        assert selection.forced_tool is None
        assert selection.tools == [ADD_SHOP_HOLIDAY, CREATE_ANNOUNCEMENT]
        assert selection.tool_choice == "auto"

    def test_clarification_answer_forces_pending_tool(self):
        selection = select_tools(
            "a las 5 de la tarde", "Para crear la cita necesito: hora.", ALL,
        )
        assert selection.forced_tool == CREATE_APPOINTMENT
        assert selection.tools == ALL

    def test_clarification_ignored_for_a_different_request(self):
        selection = select_tools(
            "vacaciones y un aviso para el local", "Para crear la cita necesito: hora.", ALL,
        )
        assert selection.forced_tool is None
        assert CREATE_APPOINTMENT not in selection.tools

    def test_question_stays_on_auto(self):
        selection = select_tools("¿Cómo creo un festivo?", None, ALL)
        assert selection.tool_choice == "auto"

    def test_disabled_tool_is_never_forced(self):
        available = [name for name in ALL if name != CREATE_ANNOUNCEMENT]
        selection = select_tools("Publica un aviso sobre la nueva promoción", None, available)
        assert selection.forced_tool is None
        assert CREATE_ANNOUNCEMENT not in selection.tools
        assert selection.tool_choice == "any"


# ── forced_tool_from_clarification ──────────────────────────────────


class TestForcedToolFromClarification:
    @pytest.mark.parametrize(
        "message, expected",
        [
            ("Indícame el profesional o confirma si el festivo es para el local.", ADD_STAFF_HOLIDAY),
            ("Indícame la fecha o rango para el festivo del local.", ADD_SHOP_HOLIDAY),
            ("Indícame la fecha o rango para el festivo del profesional.", ADD_STAFF_HOLIDAY),
            ("Necesito un poco más de detalle sobre el aviso para poder crearlo.", CREATE_ANNOUNCEMENT),
            ("Para crear la cita necesito: fecha, hora.", CREATE_APPOINTMENT),
            ("Cita creada. Fecha: 2025-06-11. Hora: 18:00.", None),
            ("Necesito saber algo más.", None),
            (None, None),
        ],
    )
    def test_pending_tool(self, message, expected):
        assert forced_tool_from_clarification(message) == expected


class TestToolChoice:
    def test_forced_tool_wins(self):
        assert ToolSelection(tools=ALL, forced_tool=CREATE_APPOINTMENT, require_tool=True).tool_choice == (
            CREATE_APPOINTMENT
        )

    def test_any_and_auto(self):
        assert ToolSelection(tools=ALL, require_tool=True).tool_choice == "any"
        assert ToolSelection(tools=ALL).tool_choice == "auto"
