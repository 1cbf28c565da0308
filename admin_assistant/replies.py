"""Deterministic Spanish replies built from tool outcomes, plus reply clean-up.

Once a tool has run, the administrator gets a fixed sentence describing
the outcome rather than free model prose, so confirmations always carry
the exact date (``YYYY-MM-DD``), time (``HH:MM``) and names that were
written to the back-office.
"""

from __future__ import annotations

import re
from datetime import datetime

from admin_assistant.models import (
    ADDED,
    CREATE_ANNOUNCEMENT,
    CREATE_APPOINTMENT,
    CREATED,
    ERROR,
    HOLIDAY_TOOLS,
    NEEDS_INFO,
    UNAVAILABLE,
    AnnouncementOutcome,
    AppointmentOutcome,
    ChatActions,
    HolidayOutcome,
    ToolOutcome,
)
from admin_assistant.text import normalize_text

FALLBACK_REPLY = "No pude generar una respuesta útil ahora mismo."

MAX_LISTED_OPTIONS = 3

_MISSING_LABELS = {
    "date": "fecha",
    "time": "hora",
    "staffId": "profesional",
    "staffName": "profesional",
    "serviceId": "servicio",
    "serviceName": "servicio",
    "customerName": "nombre del cliente",
    "customerEmail": "email del cliente",
    "customerPhone": "teléfono del cliente",
}

_APPOINTMENT_REASONS = {
    "staff_inactive": "Ese profesional no está activo. Indícame otro profesional disponible.",
    "staff_not_found": "No encontré ese profesional. Indícame otro profesional.",
    "service_inactive": "Ese servicio no está activo. Indícame otro servicio.",
    "service_not_found": "No encontré ese servicio. Indícame otro servicio.",
}

_FORMATTING_RE = re.compile(r"[*_`]")
_BULLET_RE = re.compile(r"^\s*[-•]")
_UNSUPPORTED_HEADINGS = ("recomendacion:", "acciones sugeridas:")


# ── Per-tool sentences ──────────────────────────────────────────────


def _option_names(outcome: ToolOutcome) -> str:
    return ", ".join(option.name for option in outcome.options[:MAX_LISTED_OPTIONS])


def describe_appointment(outcome: AppointmentOutcome) -> str | None:
    if outcome.status == CREATED:
        parts = ["Cita creada."]
        if outcome.customer_type == "guest":
            parts.append(f"Cliente invitado: {outcome.customer_name or 'Invitado'}.")
        elif outcome.customer_name:
            parts.append(f"Cliente registrado: {outcome.customer_name}.")
        if outcome.start_date_time:
            start = datetime.fromisoformat(outcome.start_date_time)
            parts.append(f"Fecha: {start.date().isoformat()}.")
            parts.append(f"Hora: {start.strftime('%H:%M')}.")
        if outcome.service_name:
            parts.append(f"Servicio: {outcome.service_name}.")
        if outcome.staff_name:
            parts.append(f"Profesional: {outcome.staff_name}.")
        return " ".join(parts)

    if outcome.status == UNAVAILABLE:
        if outcome.reason == "no_active_staff":
            return "No hay profesionales activos disponibles en este momento."
        if outcome.reason == "slot_window_unavailable":
            return "No hay disponibilidad en el rango solicitado."
        return "No hay disponibilidad para ese horario con el servicio indicado."

    if outcome.status == ERROR:
        return "No pude crear la cita ahora mismo."

    if outcome.status == NEEDS_INFO:
        if outcome.reason in _APPOINTMENT_REASONS:
            return _APPOINTMENT_REASONS[outcome.reason]
        if outcome.reason == "customer_ambiguous" and outcome.options:
            listed = ", ".join(
                f"{option.name} ({option.email})" if option.email else option.name
                for option in outcome.options[:MAX_LISTED_OPTIONS]
            )
            return (
                "Hay varios clientes con ese nombre. Indica el cliente por nombre completo "
                f"o email. Opciones: {listed}."
            )
        labels = list(dict.fromkeys(
            _MISSING_LABELS[field] for field in outcome.missing if field in _MISSING_LABELS
        ))
        if not labels:
            return "Necesito un poco más de información para crear la cita."
        response = f"Para crear la cita necesito: {', '.join(labels)}."
        if outcome.options and "staffId" in outcome.missing:
            response += f" Profesionales posibles: {_option_names(outcome)}."
        elif outcome.options and "serviceId" in outcome.missing:
            response += f" Servicios posibles: {_option_names(outcome)}."
        return response
    return None


def describe_holiday(outcome: HolidayOutcome) -> str | None:
    if outcome.status == ERROR:
        return "No pude crear el festivo ahora mismo."

    if outcome.status == NEEDS_INFO:
        if "startDate" in outcome.missing:
            target = "del local" if outcome.scope == "shop" else "del profesional"
            return f"Indícame la fecha o rango para el festivo {target}."
        if "staffIds" in outcome.missing:
            if outcome.options:
                return f"Hay varios profesionales posibles: {_option_names(outcome)}. Indícame cuál."
            return "Indícame el profesional o confirma si el festivo es para el local."
        return "Necesito más información para crear el festivo."

    if outcome.status == UNAVAILABLE:
        return "No hay profesionales activos a los que añadir vacaciones."

    if outcome.status == ADDED:
        if outcome.start and outcome.end and outcome.start != outcome.end:
            range_label = f" del {outcome.start} al {outcome.end}"
        elif outcome.start:
            range_label = f" el {outcome.start}"
        else:
            range_label = ""
        if outcome.scope == "shop":
            response = f"Festivo creado para el local{range_label}."
        elif outcome.staff_names:
            response = f"Festivo creado para {', '.join(outcome.staff_names)}{range_label}."
        else:
            response = f"Festivo creado para el profesional{range_label}."
        if outcome.unmatched:
            response += f" No encontré a: {', '.join(outcome.unmatched)}."
        return response
    return None


def describe_announcement(outcome: AnnouncementOutcome) -> str | None:
    if outcome.status == ERROR:
        return "No pude crear el aviso ahora mismo."
    if outcome.status == NEEDS_INFO:
        return "Necesito un poco más de detalle sobre el aviso para poder crearlo."
    if outcome.status == CREATED:
        return f"Aviso creado: {outcome.title}." if outcome.title else "Aviso creado."
    return None


# ── Composition ─────────────────────────────────────────────────────


class ReplyComposer:
    """Collects the outcomes of one model round and renders them in a fixed order.

    Order: appointment, announcement, holiday successes, holiday errors,
    holiday clarifications.  The last appointment/announcement sentence of
    the round wins; holiday sentences accumulate.
    """

    def __init__(self):
        self.appointment: str | None = None
        self.announcement: str | None = None
        self.holiday_done: list[str] = []
        self.holiday_errors: list[str] = []
        self.holiday_needs_info: list[str] = []
        self.actions = ChatActions()

    def add(self, tool_name: str, outcome: ToolOutcome) -> None:
        if tool_name == CREATE_APPOINTMENT:
            self.appointment = describe_appointment(outcome)
            if outcome.status == CREATED:
                self.actions.appointments_changed = True
        elif tool_name == CREATE_ANNOUNCEMENT:
            self.announcement = describe_announcement(outcome)
            if outcome.status == CREATED:
                self.actions.announcements_changed = True
        elif tool_name in HOLIDAY_TOOLS:
            if outcome.status == ADDED:
                self.actions.holidays_changed = True
            sentence = describe_holiday(outcome)
            if not sentence:
                return
            if outcome.status == NEEDS_INFO:
                self.holiday_needs_info.append(sentence)
            elif outcome.status == ERROR:
                self.holiday_errors.append(sentence)
            else:
                self.holiday_done.append(sentence)

    @property
    def text(self) -> str:
        parts = [
            *([self.appointment] if self.appointment else []),
            *([self.announcement] if self.announcement else []),
            *self.holiday_done,
            *self.holiday_errors,
            *self.holiday_needs_info,
        ]
        return " ".join(parts)


# ── Post-processing ─────────────────────────────────────────────────


def strip_formatting(text: str) -> str:
    """Drop Markdown emphasis characters (``*``, ``_`` and backticks)."""
    return _FORMATTING_RE.sub("", text)


def strip_unsupported_sections(text: str) -> str:
    """Remove "Recomendación:" / "Acciones sugeridas:" blocks and their bullets."""
    cleaned: list[str] = []
    skipping = False
    for line in text.split("\n"):
        normalized = normalize_text(line)
        if not normalized:
            if not skipping:
                cleaned.append(line)
            continue
        if normalized.startswith(_UNSUPPORTED_HEADINGS):
            skipping = True
            continue
        if skipping:
            if _BULLET_RE.match(line):
                continue
            skipping = False
        cleaned.append(line)
    return "\n".join(cleaned).strip()


def finalize_reply(text: str) -> str:
    text = strip_unsupported_sections(strip_formatting(text or ""))
    return text or FALLBACK_REPLY
