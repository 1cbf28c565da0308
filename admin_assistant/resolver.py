"""Fuzzy resolution of staff, service and customer references.

The administrator rarely types a full display name: "con Ana", "el corte",
"cliente Laura".  :func:`resolve_entity` maps such a fragment onto the
directory snapshot taken for the current request and reports one of four
outcomes — ``resolved``, ``ambiguous`` (with up to five options),
``not_found`` or ``inactive``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from admin_assistant.text import STOP_WORDS, normalize_text, words

logger = logging.getLogger(__name__)

MAX_OPTIONS = 5

RESOLVED = "resolved"
AMBIGUOUS = "ambiguous"
NOT_FOUND = "not_found"
INACTIVE = "inactive"


class DirectoryRecord(Protocol):
    id: str
    name: str
    is_active: bool


@dataclass
class Resolution:
    status: str
    entity: DirectoryRecord | None = None
    options: list[DirectoryRecord] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.status == RESOLVED


def sort_by_name(records: Sequence[DirectoryRecord]) -> list[DirectoryRecord]:
    """Order records by accent-insensitive display name."""
    return sorted(records, key=lambda record: (normalize_text(record.name), record.id))


def _substring_matches(needle: str, records: Sequence[DirectoryRecord]) -> list[DirectoryRecord]:
    if not needle:
        return []
    matches = []
    for record in records:
        name = normalize_text(record.name)
        if name and (needle in name or name in needle):
            matches.append(record)
    return matches


def _token_matches(message: str, records: Sequence[DirectoryRecord]) -> list[DirectoryRecord]:
    """Match records whose significant name tokens appear as words in *message*."""
    message_words = set(words(message))
    if not message_words:
        return []
    matches = []
    for record in records:
        tokens = [t for t in words(record.name) if t not in STOP_WORDS and len(t) > 1]
        if not tokens:
            continue
        hits = sum(1 for token in tokens if token in message_words)
        if hits == len(tokens) or (len(tokens) > 1 and hits >= 2):
            matches.append(record)
    return matches


def _pick(matches: list[DirectoryRecord], needle: str) -> Resolution:
    if len(matches) == 1:
        return Resolution(RESOLVED, entity=matches[0])
    exact = [m for m in matches if normalize_text(m.name) == needle]
    if len(exact) == 1:
        return Resolution(RESOLVED, entity=exact[0])
    return Resolution(AMBIGUOUS, options=sort_by_name(matches)[:MAX_OPTIONS])


def resolve_entity(
    fragment: str | None,
    records: Sequence[DirectoryRecord],
    message: str = "",
) -> Resolution:
    """Resolve *fragment* (or, failing that, the whole *message*) to one record.

    Only active records can resolve.  When nothing active matches, the
    inactive records are tried with the same rules so the caller can tell
    "that person exists but is disabled" apart from "no such person".
    """
    needle = normalize_text(fragment or "")
    active = [r for r in records if r.is_active]
    inactive = [r for r in records if not r.is_active]

    matches = _substring_matches(needle, active)
    if not matches and message:
        matches = _token_matches(message, active)
    if matches:
        return _pick(matches, needle)

    inactive_matches = _substring_matches(needle, inactive)
    if not inactive_matches and message:
        inactive_matches = _token_matches(message, inactive)
    if inactive_matches:
        logger.debug("Reference %r only matches inactive records", fragment)
        return Resolution(INACTIVE, entity=sort_by_name(inactive_matches)[0])

    return Resolution(NOT_FOUND)
