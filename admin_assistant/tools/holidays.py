"""Holiday tools: close the whole shop, or block one or more staff members.

Both take either explicit ISO dates or natural-language text and agree on
range handling: a missing end means a single day, a reversed pair is
swapped.  Staff holidays resolve their targets in bulk ("todo el equipo",
a list of names, ids) and write one holiday per staff member.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from pydantic import ConfigDict, Field

from admin_assistant.models import (
    ADD_SHOP_HOLIDAY,
    ADD_STAFF_HOLIDAY,
    ADDED,
    NEEDS_INFO,
    UNAVAILABLE,
    HolidayOutcome,
    Option,
    Staff,
    ToolArgs,
)
from admin_assistant.resolver import AMBIGUOUS, RESOLVED, resolve_entity, sort_by_name
from admin_assistant.temporal import is_valid_date_string, parse_range
from admin_assistant.text import (
    extract_staff_names,
    is_valid_name_candidate,
    normalize_text,
    split_name_list,
    strip_articles,
)

if TYPE_CHECKING:
    from admin_assistant.tools.registry import ToolContext

logger = logging.getLogger(__name__)

_ALL_STAFF_RE = re.compile(
    r"\b(?:tod[oa]s\s+l[oa]s\s+(?:barber[oa]s|peluquer[oa]s|emplead[oa]s|trabajador(?:es|as)|profesionales)"
    r"|todo\s+el\s+(?:equipo|personal)|toda\s+la\s+plantilla)\b"
)


class ShopHolidayArgs(ToolArgs):
    """Añade un festivo o cierre general del local (salón/barbería)."""

    model_config = ConfigDict(title=ADD_SHOP_HOLIDAY)

    start_date: str | None = Field(None, description="Fecha inicio YYYY-MM-DD.")
    end_date: str | None = Field(None, description="Fecha fin YYYY-MM-DD.")
    date_text: str | None = Field(None, description="Rango en lenguaje natural (ej: 15 y 16 de enero).")
    raw_text: str | None = Field(None, description="Texto original del usuario.")


class StaffHolidayArgs(ToolArgs):
    """Añade vacaciones para uno o varios profesionales."""

    model_config = ConfigDict(title=ADD_STAFF_HOLIDAY)

    staff_ids: list[str] | None = Field(None, description="IDs internos de profesionales.")
    staff_names: list[str] | None = Field(None, description="Nombres de profesionales.")
    staff_name: str | None = Field(None, description="Nombre del profesional.")
    all_staff: bool | None = Field(None, description="Aplicar a todos los profesionales activos.")
    start_date: str | None = Field(None, description="Fecha inicio YYYY-MM-DD.")
    end_date: str | None = Field(None, description="Fecha fin YYYY-MM-DD.")
    date_text: str | None = Field(None, description="Rango en lenguaje natural (ej: del 3 al 7 de marzo).")
    raw_text: str | None = Field(None, description="Texto original del usuario.")


def _clean(value: str | None) -> str:
    return value.strip() if isinstance(value, str) else ""


def resolve_holiday_range(
    start_date: str | None,
    end_date: str | None,
    text: str,
    context: ToolContext,
) -> tuple[str, str] | None:
    start = _clean(start_date) if is_valid_date_string(_clean(start_date)) else ""
    end = _clean(end_date) if is_valid_date_string(_clean(end_date)) else ""
    if not start:
        parsed = parse_range(text, context.now, context.time_zone)
        if parsed is not None:
            start, end = parsed.start, parsed.end
    if not start:
        return None
    end = end or start
    return (start, end) if start <= end else (end, start)


# ── add_shop_holiday ────────────────────────────────────────────────


def add_shop_holiday(args: ShopHolidayArgs, context: ToolContext) -> HolidayOutcome:
    text = " ".join(filter(None, (_clean(args.date_text), _clean(args.raw_text))))
    date_range = resolve_holiday_range(args.start_date, args.end_date, text, context)
    if date_range is None:
        return HolidayOutcome(status=NEEDS_INFO, scope="shop", missing=["startDate"])
    start, end = date_range
    context.backoffice.add_shop_holiday(context.scope, start, end)
    return HolidayOutcome(status=ADDED, scope="shop", start=start, end=end, added=1)


# ── add_staff_holiday ───────────────────────────────────────────────


def _name_candidates(args: StaffHolidayArgs, unknown_ids: list[str], raw_text: str) -> list[str]:
    from_args = list(unknown_ids)
    if _clean(args.staff_name):
        from_args.extend(split_name_list(args.staff_name))
    for entry in args.staff_names or []:
        from_args.extend(split_name_list(entry))
    # Raw-text heuristics only fill in when the model named nobody.
    candidates = from_args if from_args else extract_staff_names(raw_text)

    unique: dict[str, str] = {}
    for candidate in candidates:
        cleaned = strip_articles(candidate)
        if is_valid_name_candidate(cleaned):
            unique.setdefault(normalize_text(cleaned), cleaned)
    return list(unique.values())


def add_staff_holiday(args: StaffHolidayArgs, context: ToolContext) -> HolidayOutcome:
    raw_text = _clean(args.raw_text)
    text = " ".join(filter(None, (_clean(args.date_text), raw_text)))
    date_range = resolve_holiday_range(args.start_date, args.end_date, text, context)
    if date_range is None:
        return HolidayOutcome(status=NEEDS_INFO, scope="staff", missing=["startDate"])
    start, end = date_range

    staff = context.backoffice.list_staff(context.scope)
    active = [member for member in staff if member.is_active]
    all_staff = bool(args.all_staff) or bool(_ALL_STAFF_RE.search(normalize_text(raw_text)))

    targets: dict[str, Staff] = {}
    unmatched: list[str] = []
    if all_staff:
        if not active:
            return HolidayOutcome(status=UNAVAILABLE, scope="staff", reason="no_active_staff")
        targets = {member.id: member for member in active}
    else:
        by_id = {member.id: member for member in active}
        unknown_ids = []
        for staff_id in args.staff_ids or []:
            if staff_id in by_id:
                targets[staff_id] = by_id[staff_id]
            elif _clean(staff_id):
                unknown_ids.append(staff_id.strip())

        ambiguous: dict[str, Staff] = {}
        for candidate in _name_candidates(args, unknown_ids, raw_text):
            resolution = resolve_entity(candidate, staff)
            if resolution.status == RESOLVED:
                targets.setdefault(resolution.entity.id, resolution.entity)
            elif resolution.status == AMBIGUOUS:
                ambiguous.update({option.id: option for option in resolution.options})
            else:
                unmatched.append(candidate)

        if ambiguous:
            return HolidayOutcome(
                status=NEEDS_INFO,
                scope="staff",
                missing=["staffIds"],
                options=[Option.of(member) for member in sort_by_name(list(ambiguous.values()))],
                unmatched=unmatched,
            )

    if not targets:
        return HolidayOutcome(
            status=NEEDS_INFO, scope="staff", missing=["staffIds"], unmatched=unmatched,
        )

    ordered = sort_by_name(list(targets.values()))
    for member in ordered:
        context.backoffice.add_staff_holiday(context.scope, member.id, start, end)
    if unmatched:
        logger.info("Staff holiday skipped unknown names: %s", ", ".join(unmatched))

    return HolidayOutcome(
        status=ADDED,
        scope="staff",
        start=start,
        end=end,
        added=len(ordered),
        staff_ids=[member.id for member in ordered],
        staff_names=[member.name for member in ordered],
        unmatched=unmatched,
    )
