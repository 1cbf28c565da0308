"""``create_appointment``: book a customer with a staff member for a service.

Resolution order, each step short-circuiting with a ``needs_info`` or
``unavailable`` outcome:

1. date / time / day period / "as soon as possible" intent, taking the
   raw user text as the authority over model-normalized values;
2. service;
3. staff (one named member, or every active member when none is named);
4. customer (registered by email, phone or name; otherwise a guest);
5. slot search across the candidate staff, then the booking itself.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from pydantic import ConfigDict, Field

from admin_assistant.models import (
    CREATE_APPOINTMENT,
    CREATED,
    NEEDS_INFO,
    UNAVAILABLE,
    AppointmentOutcome,
    Customer,
    Option,
    Service,
    Staff,
    ToolArgs,
)
from admin_assistant.resolver import AMBIGUOUS, INACTIVE, RESOLVED, resolve_entity
from admin_assistant.slots import SlotSearch, SlotUnavailable
from admin_assistant.temporal import (
    detect_day_period,
    is_valid_date_string,
    is_valid_time_string,
    parse_date,
    parse_time,
    to_zoned_datetime,
)
from admin_assistant.text import (
    extract_customer_name,
    extract_para_names,
    normalize_text,
)

if TYPE_CHECKING:
    from admin_assistant.tools.registry import ToolContext

logger = logging.getLogger(__name__)

GUEST_NAME = "Invitado"

_SOONEST_RE = re.compile(
    r"\b(?:lo\s+antes\s+posible|cuanto\s+antes|primer\s+hueco|primera\s+hora\s+(?:libre|disponible)"
    r"|lo\s+mas\s+pronto|mas\s+pronto\s+posible|primer\s+turno\s+libre)\b"
)
_EXPLICIT_YEAR_RE = re.compile(r"\b(?:19|20)\d{2}\b")
_EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+")


class CreateAppointmentArgs(ToolArgs):
    """Crea una cita nueva tras validar disponibilidad y horario."""

    model_config = ConfigDict(title=CREATE_APPOINTMENT)

    date: str | None = Field(None, description="Fecha YYYY-MM-DD.")
    time: str | None = Field(None, description="Hora HH:MM (24h).")
    date_text: str | None = Field(None, description="Fecha en lenguaje natural (ej: 12 de enero).")
    time_text: str | None = Field(None, description="Hora en lenguaje natural (ej: 6 de la tarde).")
    raw_text: str | None = Field(None, description="Texto original del usuario.")
    start_date_time: str | None = Field(None, description="Fecha y hora ISO 8601 opcional.")
    staff_id: str | None = Field(None, description="ID del profesional.")
    staff_name: str | None = Field(None, description="Nombre del profesional.")
    service_id: str | None = Field(None, description="ID del servicio.")
    service_name: str | None = Field(None, description="Nombre del servicio.")
    customer_name: str | None = Field(None, description="Nombre del cliente.")
    customer_email: str | None = Field(None, description="Email del cliente (opcional).")
    customer_phone: str | None = Field(None, description="Teléfono del cliente (opcional).")
    notes: str | None = Field(None, description="Comentario para la cita.")
    as_soon_as_possible: bool | None = Field(
        None, description="true si el usuario pide el primer hueco disponible.",
    )


def _clean(value: str | None) -> str:
    return value.strip() if isinstance(value, str) else ""


def _needs(missing: list[str], reason: str | None = None, options=None) -> AppointmentOutcome:
    return AppointmentOutcome(
        status=NEEDS_INFO,
        missing=missing,
        reason=reason,
        options=[Option.of(record) for record in options or []],
    )


# ── Step 1: when ────────────────────────────────────────────────────


def _resolve_when(args: CreateAppointmentArgs, context: ToolContext) -> tuple[str | None, str | None] | None:
    """Return ``(date, time)``; ``None`` signals an unparseable ISO instant."""
    start_input = _clean(args.start_date_time)
    if start_input:
        try:
            instant = datetime.fromisoformat(start_input.replace("Z", "+00:00"))
        except ValueError:
            return None
        zone = ZoneInfo(context.time_zone)
        local = instant.replace(tzinfo=zone) if instant.tzinfo is None else instant.astimezone(zone)
        return local.date().isoformat(), local.strftime("%H:%M")

    date_value = _clean(args.date) if is_valid_date_string(_clean(args.date)) else None
    time_input = _clean(args.time)[:5]
    time_value = time_input if is_valid_time_string(time_input) else None

    combined = " ".join(filter(None, (_clean(args.date_text), _clean(args.time_text), _clean(args.raw_text))))
    parsed_date = parse_date(combined, context.now, context.time_zone)
    parsed_time = parse_time(combined)
    # The user's words win over the model's date, unless the model carried an explicit year.
    if parsed_date and (not _EXPLICIT_YEAR_RE.search(combined) or not date_value):
        date_value = parsed_date
    if parsed_time and not time_value:
        time_value = parsed_time
    return date_value, time_value


def _wants_soonest(args: CreateAppointmentArgs, text: str) -> bool:
    return bool(args.as_soon_as_possible) or bool(_SOONEST_RE.search(normalize_text(text)))


# ── Step 2-4: who and what ──────────────────────────────────────────


def _resolve_service(
    args: CreateAppointmentArgs, context: ToolContext, raw_text: str,
) -> Service | AppointmentOutcome:
    backoffice = context.backoffice
    service_id = _clean(args.service_id)
    if service_id:
        service = backoffice.get_service(context.scope, service_id)
        if service is None:
            return _needs(["serviceId"], reason="service_not_found")
        if not service.is_active:
            return _needs(["serviceName"], reason="service_inactive")
        return service

    services = backoffice.list_services(context.scope)
    resolution = resolve_entity(_clean(args.service_name), services, message=raw_text)
    if resolution.status == RESOLVED:
        return resolution.entity
    if resolution.status == AMBIGUOUS:
        return _needs(["serviceId"], options=resolution.options)
    if resolution.status == INACTIVE:
        return _needs(["serviceName"], reason="service_inactive")
    return _needs(["serviceName"])


def _resolve_staff(
    args: CreateAppointmentArgs, context: ToolContext, raw_text: str,
) -> list[Staff] | AppointmentOutcome:
    backoffice = context.backoffice
    staff_id = _clean(args.staff_id)
    if staff_id:
        member = backoffice.get_staff(context.scope, staff_id)
        if member is None:
            return _needs(["staffId"], reason="staff_not_found")
        if not member.is_active:
            return _needs(["staffName"], reason="staff_inactive")
        return [member]

    staff = backoffice.list_staff(context.scope)
    staff_name = _clean(args.staff_name)
    resolution = resolve_entity(staff_name, staff, message=raw_text)
    if resolution.status == RESOLVED:
        return [resolution.entity]
    if resolution.status == AMBIGUOUS:
        return _needs(["staffId"], options=resolution.options)
    if resolution.status == INACTIVE:
        return _needs(["staffName"], reason="staff_inactive")
    if staff_name:
        return _needs(["staffName"], reason="staff_not_found")

    active = [member for member in staff if member.is_active]
    if not active:
        return AppointmentOutcome(status=UNAVAILABLE, reason="no_active_staff")
    return active


def _customer_name_from_text(raw_text: str, services: list[Service], staff: list[Staff]) -> str:
    name = extract_customer_name(raw_text)
    if name:
        return name
    taken = [normalize_text(record.name) for record in [*services, *staff]]
    for candidate in extract_para_names(raw_text):
        normalized = normalize_text(candidate)
        if any(normalized in taken_name or taken_name in normalized for taken_name in taken if taken_name):
            continue
        return candidate
    return ""


def _resolve_customer(
    args: CreateAppointmentArgs,
    context: ToolContext,
    raw_text: str,
    service: Service,
    staff: list[Staff],
) -> dict | AppointmentOutcome:
    """Return booking kwargs for a registered customer or a guest."""
    backoffice = context.backoffice
    email = _clean(args.customer_email).lower()
    if not email:
        match = _EMAIL_RE.search(raw_text)
        email = match.group(0).lower() if match else ""
    phone = _clean(args.customer_phone)
    name = _clean(args.customer_name) or _customer_name_from_text(raw_text, [service], staff)

    for field_name, contact in (("email", email), ("phone", phone)):
        if not contact:
            continue
        found = backoffice.find_customers(context.scope, **{field_name: contact})
        registered = [customer for customer in found if customer.is_active]
        if registered:
            return {"customer": registered[0]}
        return {"guest_name": name or GUEST_NAME, "guest_contact": contact}

    if not name:
        return _needs(["customerName"])

    candidates: list[Customer] = backoffice.find_customers(context.scope, name=name)
    resolution = resolve_entity(name, candidates)
    if resolution.status == RESOLVED:
        return {"customer": resolution.entity}
    if resolution.status == AMBIGUOUS:
        return _needs(["customerEmail"], reason="customer_ambiguous", options=resolution.options)
    return {"guest_name": name, "guest_contact": None}


# ── Handler ─────────────────────────────────────────────────────────


def create_appointment(args: CreateAppointmentArgs, context: ToolContext) -> AppointmentOutcome:
    raw_text = _clean(args.raw_text)
    when = _resolve_when(args, context)
    if when is None:
        return _needs(["date", "time"])
    date_value, time_value = when

    combined = " ".join(filter(None, (_clean(args.date_text), _clean(args.time_text), raw_text)))
    day_period = detect_day_period(combined)
    soonest = _wants_soonest(args, combined)
    if not (date_value or time_value or day_period or soonest):
        return _needs(["date", "time"])

    service = _resolve_service(args, context, raw_text)
    if isinstance(service, AppointmentOutcome):
        return service
    staff = _resolve_staff(args, context, raw_text)
    if isinstance(staff, AppointmentOutcome):
        return staff
    customer = _resolve_customer(args, context, raw_text, service, staff)
    if isinstance(customer, AppointmentOutcome):
        return customer

    search = SlotSearch(context.backoffice, context.scope, context.time_zone, context.now)
    choice = search.find_slot(
        staff,
        service,
        preferred_date=date_value,
        preferred_time=time_value,
        day_period=day_period,
        wants_soonest=soonest,
    )
    if isinstance(choice, SlotUnavailable):
        return AppointmentOutcome(
            status=UNAVAILABLE,
            reason=choice.reason,
            staff_id=staff[0].id if len(staff) == 1 else None,
            service_id=service.id,
        )

    start = to_zoned_datetime(choice.date, choice.time, context.time_zone).isoformat()
    registered: Customer | None = customer.get("customer")
    created = context.backoffice.create_appointment(
        context.scope,
        staff_id=choice.staff.id,
        service_id=service.id,
        start_date_time=start,
        customer_id=registered.id if registered else None,
        guest_name=customer.get("guest_name"),
        guest_contact=customer.get("guest_contact"),
        notes=_clean(args.notes) or None,
    )
    return AppointmentOutcome(
        status=CREATED,
        appointment_id=str(created.get("id")) if created.get("id") is not None else None,
        start_date_time=start,
        staff_id=choice.staff.id,
        staff_name=choice.staff.name,
        service_id=service.id,
        service_name=service.name,
        customer_type="registered" if registered else "guest",
        customer_name=registered.name if registered else customer.get("guest_name"),
    )

