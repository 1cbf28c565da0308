"""``create_announcement``: publish a notice to the location's customers."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from pydantic import ConfigDict, Field

from admin_assistant.models import (
    CREATE_ANNOUNCEMENT,
    CREATED,
    NEEDS_INFO,
    AnnouncementOutcome,
    ToolArgs,
)
from admin_assistant.temporal import is_valid_date_string, parse_range
from admin_assistant.text import normalize_text

if TYPE_CHECKING:
    from admin_assistant.tools.registry import ToolContext

logger = logging.getLogger(__name__)

KINDS = ("info", "warning", "success")

_WARNING_RE = re.compile(r"\b(?:urgente|importante|atencion|cerrad[oa]s?|cierre|retras[oa]s?|cancelad[oa]s?)\b")
_SUCCESS_RE = re.compile(r"\b(?:nuev[oa]s?|novedad(?:es)?|promocion(?:es)?|oferta|descuento|reapertura|inauguracion)\b")


class CreateAnnouncementArgs(ToolArgs):
    """Crea un aviso/anuncio visible para los clientes del local."""

    model_config = ConfigDict(title=CREATE_ANNOUNCEMENT)

    title: str | None = Field(None, description="Título corto del aviso.")
    message: str | None = Field(None, description="Texto del aviso.")
    kind: str | None = Field(None, description="Tipo: info, warning o success.")
    start_date: str | None = Field(None, description="Visible desde YYYY-MM-DD (opcional).")
    end_date: str | None = Field(None, description="Visible hasta YYYY-MM-DD (opcional).")
    date_text: str | None = Field(None, description="Periodo de visibilidad en lenguaje natural.")
    raw_text: str | None = Field(None, description="Texto original del usuario.")


def _clean(value: str | None) -> str:
    return value.strip() if isinstance(value, str) else ""


def infer_kind(kind: str | None, text: str) -> str:
    """Keep a valid *kind*; otherwise guess one from the wording."""
    normalized_kind = normalize_text(kind or "")
    if normalized_kind in KINDS:
        return normalized_kind
    normalized = normalize_text(text)
    if _WARNING_RE.search(normalized):
        return "warning"
    if _SUCCESS_RE.search(normalized):
        return "success"
    return "info"


def _visibility(args: CreateAnnouncementArgs, context: ToolContext) -> tuple[str | None, str | None]:
    start = _clean(args.start_date) if is_valid_date_string(_clean(args.start_date)) else None
    end = _clean(args.end_date) if is_valid_date_string(_clean(args.end_date)) else None
    if not start and _clean(args.date_text):
        parsed = parse_range(args.date_text, context.now, context.time_zone)
        if parsed is not None:
            start, end = parsed.start, parsed.end
    if start and end and end < start:
        start, end = end, start
    return start, end


def create_announcement(args: CreateAnnouncementArgs, context: ToolContext) -> AnnouncementOutcome:
    title = _clean(args.title)
    message = _clean(args.message)
    missing = [field for field, value in (("title", title), ("message", message)) if not value]
    if missing:
        return AnnouncementOutcome(status=NEEDS_INFO, missing=missing)

    kind = infer_kind(args.kind, " ".join((title, message, _clean(args.raw_text))))
    if kind != args.kind:
        logger.debug("Announcement kind %r inferred as %s", args.kind, kind)
    start, end = _visibility(args, context)
    created = context.backoffice.create_announcement(
        context.scope, title=title, message=message, kind=kind, start=start, end=end,
    )
    announcement_id = created.get("id")
    return AnnouncementOutcome(
        status=CREATED,
        announcement_id=str(announcement_id) if announcement_id is not None else None,
        title=title,
        kind=kind,
        start=start,
        end=end,
    )
