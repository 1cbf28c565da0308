"""Text helpers shared by the parser, the resolver and the intent engine.

Every heuristic in the assistant matches against :func:`normalize_text`
output (lowercase, diacritics stripped) so that "Mañana", "manana" and
"MAÑANA" are the same token.
"""

from __future__ import annotations

import re
import unicodedata

_ARTICLES_RE = re.compile(r"^(el|la|los|las|un|una|unos|unas)\s+", re.IGNORECASE)
_NAME_LIST_SPLIT_RE = re.compile(r"\s*(?:,|\s+y\s+|\s+e\s+)\s*", re.IGNORECASE)
_WORD_RE = re.compile(r"[a-z0-9]+")

# Words that regexes tend to capture as "names" but never are.
BLOCKED_NAMES = frozenset({
    "local", "salon", "barberia", "peluqueria", "negocio", "tienda",
    "dia", "dias", "fecha", "rango", "semana", "mes", "manana", "hoy",
    "festivo", "vacaciones", "cierre", "todo", "toda", "todos", "todas", "equipo",
    "cita", "hora", "tarde", "noche", "proxima", "proximo", "siguiente",
    "lunes", "martes", "miercoles", "jueves", "viernes", "sabado", "domingo",
})

STOP_WORDS = frozenset({
    "de", "del", "la", "las", "el", "los", "y", "e", "con", "para", "a", "al",
    "en", "por", "un", "una",
})

_NAME = r"[A-Za-zÁÉÍÓÚÜÑáéíóúüñ'’.-]+"
_MULTI_NAME = rf"{_NAME}(?:\s+{_NAME}){{0,3}}"
_NAME_LIST = rf"{_MULTI_NAME}(?:\s*(?:,|\by\b|\be\b)\s*{_MULTI_NAME})*"

_STAFF_ROLE_RE = re.compile(
    rf"\b(?:barber[oa]s?|peluquer[oa]s?|trabajador(?:a|es)?|emplead[oa]s?|profesional(?:es)?)\s+({_NAME_LIST})",
    re.IGNORECASE,
)
_PARA_RE = re.compile(
    rf"\bpara\s+({_NAME_LIST})"
    r"(?=\s+para\b|\s+el\b|\s+del\b|\s+desde\b|\s+hasta\b|\s+al\b|\s+a\s+las\b|\s+en\b|\s+con\b|\s*[,.]|\s*$)",
    re.IGNORECASE,
)
_CUSTOMER_RE = re.compile(rf"\bclient[ea]\s+({_MULTI_NAME})", re.IGNORECASE)

# Trailing words a greedy name capture drags along ("Laura mañana").
_NAME_TAIL_RE = re.compile(
    r"\s+(?:manana|pasado|hoy|el|la|los|las|a|al|del|de|desde|hasta|con|para|por|en|y|e)\b.*$",
)


def normalize_text(value: str) -> str:
    """Lowercase, strip diacritics and surrounding whitespace."""
    decomposed = unicodedata.normalize("NFD", value or "")
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return stripped.lower().strip()


def words(value: str) -> list[str]:
    """Return the normalized alphanumeric words of *value*."""
    return _WORD_RE.findall(normalize_text(value))


def strip_articles(value: str) -> str:
    return _ARTICLES_RE.sub("", value.strip()).strip()


def split_name_list(value: str) -> list[str]:
    """Split "Ana, Luis y Marta" into ``["Ana", "Luis", "Marta"]``."""
    return [part.strip() for part in _NAME_LIST_SPLIT_RE.split(value or "") if part.strip()]


def is_valid_name_candidate(value: str) -> bool:
    cleaned = strip_articles(value)
    if not cleaned:
        return False
    normalized = normalize_text(cleaned)
    if not re.search(r"[a-z]", normalized):
        return False
    return normalized not in BLOCKED_NAMES


def _trim_name(value: str) -> str:
    cleaned = strip_articles(value).strip(" .,;:")
    normalized = normalize_text(cleaned)
    match = _NAME_TAIL_RE.search(normalized)
    if match:
        cleaned = cleaned[: match.start()].strip()
    return cleaned


def extract_staff_names(text: str) -> list[str]:
    """Pull staff names out of phrases like "para Ana y Luis" or "barbero Marcos"."""
    if not text:
        return []
    found: list[str] = []
    for pattern in (_STAFF_ROLE_RE, _PARA_RE):
        match = pattern.search(text)
        if match:
            found.extend(split_name_list(match.group(1)))
    names = [_trim_name(name) for name in found]
    return [name for name in names if is_valid_name_candidate(name)]


def extract_customer_name(text: str) -> str | None:
    """Return the customer named after "cliente"/"clienta", if any."""
    if not text:
        return None
    match = _CUSTOMER_RE.search(text)
    if not match:
        return None
    name = _trim_name(match.group(1))
    return name if is_valid_name_candidate(name) else None


def extract_para_names(text: str) -> list[str]:
    """Names following "para", e.g. "cita para Laura el martes"."""
    if not text:
        return []
    match = _PARA_RE.search(text)
    if not match:
        return []
    names = [_trim_name(name) for name in split_name_list(match.group(1))]
    return [name for name in names if is_valid_name_candidate(name)]
