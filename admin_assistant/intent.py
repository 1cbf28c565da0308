"""Keyword intent detection and per-turn tool selection.

The model is good at filling arguments and bad at resisting a tool that
is in front of it: offered ``create_appointment`` for "vacaciones para
Ana", it will happily book something.  So before every model call the
user's message is scanned with fixed keyword sets and the tool list is
narrowed (and, when the intent is unambiguous, one tool is forced).

Forcing precedence:
  1. an unambiguous single intent in the current message;
  2. otherwise the vocabulary of the previous assistant message, when it
     was a clarification request ("Para crear la cita necesito: hora.");
  3. otherwise, an imperative action request ("crea un festivo…") only
     *requires* some tool call without naming it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from admin_assistant.models import (
    ADD_SHOP_HOLIDAY,
    ADD_STAFF_HOLIDAY,
    CREATE_ANNOUNCEMENT,
    CREATE_APPOINTMENT,
    HOLIDAY_TOOLS,
)
from admin_assistant.text import extract_staff_names, normalize_text

_HOLIDAY_RE = re.compile(
    r"\b(?:festiv[a-z]*|vacaci[a-z]*|cerrad[oa]s?|cerrar|cerramos|cierre|dias?\s+libres?|libran?)\b"
)
_APPOINTMENT_RE = re.compile(r"\b(?:citas?|reserv[a-z]*|agend[a-z]*|turno)\b")
_ANNOUNCEMENT_RE = re.compile(
    r"\b(?:alert[a-z]*|avis[a-z]*|anunci[a-z]*|comunicad[a-z]*|notificacion(?:es)?)\b"
)
_SHOP_SCOPE_RE = re.compile(r"\b(?:local|salon|barberia|peluqueria|negocio|tienda|cerramos)\b")
_STAFF_SCOPE_RE = re.compile(
    r"\b(?:barber[oa]s?|peluquer[oa]s?|emplead[oa]s?|trabajador(?:a|es|as)?"
    r"|profesional(?:es)?|equipo|personal|plantilla)\b"
)
_MULTI_HOLIDAY_RE = re.compile(
    r"\b(?:y\s+otr[oa]s?|otr[oa]s?\s+(?:festivo|dia|vacaciones|cierre)|ademas|tambien)\b"
)
_QUESTION_START_RE = re.compile(
    r"^(?:como|que|cual|cuales|cuando|donde|por\s+que|porque|puedo|podrias|puedes|explica|ayudame)\b"
)
_ACTION_VERB_RE = re.compile(
    r"\b(?:crea|crear|creame|reserva|reservar|agenda|agendar|anade|anadir|pon|poner|ponme"
    r"|programa|programar|activa|activar|marca|marcar|publica|publicar|bloquea|bloquear)\b"
)
_DOMAIN_NOUN_RE = re.compile(
    r"\b(?:cita|festiv|vacaci|cierre|alerta|aviso|anuncio|comunicado)"
)
_CLARIFICATION_RE = re.compile(r"\b(?:necesito|indicame|falta|faltan)\b")


@dataclass(frozen=True)
class IntentSignals:
    holiday: bool = False
    appointment: bool = False
    announcement: bool = False
    shop_scope: bool = False
    staff_scope: bool = False
    multi_holiday: bool = False
    question: bool = False
    action_request: bool = False

    @property
    def domain_intents(self) -> int:
        return sum((self.holiday, self.appointment, self.announcement))


@dataclass(frozen=True)
class ToolSelection:
    tools: list[str]
    forced_tool: str | None = None
    require_tool: bool = False

    @property
    def tool_choice(self) -> str:
        """Directive for ``bind_tools``: a tool name, ``any`` or ``auto``."""
        if self.forced_tool:
            return self.forced_tool
        return "any" if self.require_tool else "auto"


def _looks_like_question(normalized: str) -> bool:
    stripped = normalized.lstrip("¿¡ ")
    return normalized.endswith("?") or bool(_QUESTION_START_RE.match(stripped))


def detect_intents(text: str) -> IntentSignals:
    normalized = normalize_text(text)
    if not normalized:
        return IntentSignals()
    question = _looks_like_question(normalized)
    return IntentSignals(
        holiday=bool(_HOLIDAY_RE.search(normalized)),
        appointment=bool(_APPOINTMENT_RE.search(normalized)),
        announcement=bool(_ANNOUNCEMENT_RE.search(normalized)),
        shop_scope=bool(_SHOP_SCOPE_RE.search(normalized)),
        staff_scope=bool(_STAFF_SCOPE_RE.search(normalized)) or bool(extract_staff_names(text)),
        multi_holiday=bool(_MULTI_HOLIDAY_RE.search(normalized)),
        question=question,
        action_request=(
            not question
            and bool(_ACTION_VERB_RE.search(normalized))
            and bool(_DOMAIN_NOUN_RE.search(normalized))
        ),
    )


def _narrow(signals: IntentSignals, available: list[str]) -> list[str]:
    dropped: set[str] = set()
    if signals.holiday and not signals.appointment:
        dropped.add(CREATE_APPOINTMENT)
    if signals.appointment and not signals.holiday and not signals.announcement:
        dropped.update(HOLIDAY_TOOLS)
    if signals.holiday:
        if signals.shop_scope and not signals.staff_scope:
            dropped.add(ADD_STAFF_HOLIDAY)
        elif signals.staff_scope and not signals.shop_scope:
            dropped.add(ADD_SHOP_HOLIDAY)
    if signals.announcement:
        dropped.discard(CREATE_ANNOUNCEMENT)
    narrowed = [name for name in available if name not in dropped]
    return narrowed or list(available)


def _force_from_message(signals: IntentSignals) -> str | None:
    if signals.domain_intents != 1:
        return None
    if signals.announcement:
        return CREATE_ANNOUNCEMENT
    if signals.appointment:
        return CREATE_APPOINTMENT
    if signals.multi_holiday or signals.shop_scope == signals.staff_scope:
        return None
    return ADD_SHOP_HOLIDAY if signals.shop_scope else ADD_STAFF_HOLIDAY


def forced_tool_from_clarification(last_assistant_message: str | None) -> str | None:
    """Infer the pending tool from a previous "necesito…/indícame…" reply."""
    normalized = normalize_text(last_assistant_message or "")
    if not normalized or not _CLARIFICATION_RE.search(normalized):
        return None
    if _ANNOUNCEMENT_RE.search(normalized):
        return CREATE_ANNOUNCEMENT
    if re.search(r"\bcita\b", normalized):
        return CREATE_APPOINTMENT
    if _HOLIDAY_RE.search(normalized):
        # A question about a staff member outranks the "or is it the shop?" alternative.
        if _STAFF_SCOPE_RE.search(normalized) or not _SHOP_SCOPE_RE.search(normalized):
            return ADD_STAFF_HOLIDAY
        return ADD_SHOP_HOLIDAY
    return None


def select_tools(
    message: str,
    last_assistant_message: str | None,
    available: list[str],
) -> ToolSelection:
    """Decide which tools the model sees this turn and whether one is forced."""
    signals = detect_intents(message)
    tools = _narrow(signals, available)

    forced = _force_from_message(signals)
    if forced is None:
        pending = forced_tool_from_clarification(last_assistant_message)
        # A follow-up that clearly starts a different request is not an answer.
        if pending and (signals.domain_intents == 0 or pending in tools):
            forced = pending

    if forced is not None and forced not in available:
        forced = None
    if forced is not None and forced not in tools:
        tools = [*tools, forced]

    return ToolSelection(
        tools=tools,
        forced_tool=forced,
        require_tool=forced is None and signals.action_request,
    )
