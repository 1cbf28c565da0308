"""Zone-aware parsing of Spanish date, time and range expressions.

The parser never guesses: anything it cannot map to a real calendar value
comes back as ``None`` and callers treat that as "information missing".

All public functions return normalized strings — ``YYYY-MM-DD`` for dates and
``HH:MM`` (24h) for times — so that tool arguments, transcript entries and
API payloads share one representation.

>>> from datetime import datetime, UTC
>>> now = datetime(2025, 6, 10, 9, 0, tzinfo=UTC)   # a Tuesday
>>> parse_date("mañana", now, "Europe/Madrid")
'2025-06-11'
>>> parse_range("12 y 10 de julio", now, "Europe/Madrid")
DateRange(start='2025-07-10', end='2025-07-12')
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from admin_assistant.text import normalize_text

WEEKDAYS = {
    "lunes": 0,
    "martes": 1,
    "miercoles": 2,
    "jueves": 3,
    "viernes": 4,
    "sabado": 5,
    "domingo": 6,
}

MONTHS = {
    "enero": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8,
    "septiembre": 9,
    "setiembre": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12,
}

NUMBER_WORDS = {
    "un": 1, "uno": 1, "una": 1, "dos": 2, "tres": 3, "cuatro": 4, "cinco": 5,
    "seis": 6, "siete": 7, "ocho": 8, "nueve": 9, "diez": 10, "once": 11,
    "doce": 12, "trece": 13, "catorce": 14, "quince": 15, "veinte": 20,
    "treinta": 30,
}

DURATION_MULTIPLIERS = {
    "dia": 1, "dias": 1,
    "semana": 7, "semanas": 7,
    "mes": 30, "meses": 30,
}

# Day periods used to filter candidate appointment times, [start, end) in minutes.
DAY_PERIODS = {
    "morning": (6 * 60, 14 * 60),
    "afternoon": (14 * 60, 21 * 60),
    "night": (21 * 60, 24 * 60),
}

_ISO_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_SLASH_RE = re.compile(r"\b(\d{1,2})[/-](\d{1,2})(?:[/-](\d{2,4}))?\b")
_DAY_MONTH_RE = re.compile(r"\b(\d{1,2})\s+de\s+([a-z]+)(?:\s+de(?:l)?\s+(\d{4}))?\b")
_DAY_ONLY_RE = re.compile(r"\b(?:el|dia)\s+(\d{1,2})\b(?!\s*[:.h]\s*\d)(?!\s+de\s+[a-z])")
_WEEKDAY_RE = re.compile(r"\b(lunes|martes|miercoles|jueves|viernes|sabado|domingo)\b")
_NEXT_WEEK_RE = re.compile(
    r"\b(?:que\s+viene|semana\s+que\s+viene|proxima\s+semana|semana\s+proxima|siguiente\s+semana)\b"
)
_NEXT_OCCURRENCE_RE = re.compile(r"\b(?:proximo|proxima|siguiente)\b")
_MORNING_PHRASE_RE = re.compile(r"\b(?:de|por)\s+la\s+manana\b")
_NUMBER = "|".join(sorted(NUMBER_WORDS, key=len, reverse=True))
_DURATION_RE = re.compile(
    rf"\b(\d{{1,3}}|{_NUMBER})\s+(dias?|semanas?|mes(?:es)?)\b"
)
_OFFSET_RE = re.compile(
    rf"\b(?:dentro\s+de|en)\s+(\d{{1,3}}|{_NUMBER})\s+(dias?|semanas?|mes(?:es)?)\b"
)
_RANGE_MONTH_RE = re.compile(
    r"\b(?:del?\s+)?(\d{1,2})\s*(?:y|al|a|-)\s*(\d{1,2})\s+de\s+([a-z]+)(?:\s+de(?:l)?\s+(\d{4}))?\b"
)
_NEXT_WEEK_RANGE_RE = re.compile(
    r"\b(?:semana\s+que\s+viene|proxima\s+semana|semana\s+proxima|siguiente\s+semana)\b"
)
_THIS_WEEK_RE = re.compile(r"\besta\s+semana\b")

_PERIOD_TOKENS = (
    r"de\s+la\s+manana|de\s+la\s+tarde|de\s+la\s+noche"
    r"|por\s+la\s+manana|por\s+la\s+tarde|por\s+la\s+noche|am|pm"
)
_TIME_WITH_PERIOD_RE = re.compile(
    rf"\b(?:(a\s+las?|las)\s+)?(\d{{1,2}})(?:\s*[:.h]\s*(\d{{2}}))?\s*({_PERIOD_TOKENS})\b"
)
# "el 12", "dia 5": a day of month, never an hour.
_DAY_OF_MONTH_PREFIX_RE = re.compile(r"\b(?:el|dia)\s+$")
_CLOCK_RE = re.compile(r"\b(\d{1,2})\s*[:.h]\s*(\d{2})\b")
_AT_HOUR_RE = re.compile(
    r"\b(?:a\s+las|a\s+la|las)\s+(\d{1,2})(?!\d)h?(?!\s*(?:de|del)\s+(?:"
    + "|".join(MONTHS)
    + r"))"
)
_DAY_PERIOD_RE = {
    "morning": re.compile(r"\b(?:por|de)\s+la\s+manana\b|\bmatutin[oa]\b"),
    "afternoon": re.compile(r"\b(?:por|de)\s+la\s+tarde\b|\bvespertin[oa]\b"),
    "night": re.compile(r"\b(?:por|de)\s+la\s+noche\b"),
}


@dataclass(frozen=True)
class DateRange:
    """An inclusive ``{start, end}`` pair of ISO dates with ``start <= end``."""

    start: str
    end: str

    @classmethod
    def ordered(cls, first: str, second: str) -> DateRange:
        return cls(first, second) if first <= second else cls(second, first)


# ── Zone helpers ────────────────────────────────────────────────────


def _zoned(now: datetime, time_zone: str) -> datetime:
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(ZoneInfo(time_zone))


def today_in_zone(now: datetime, time_zone: str) -> date:
    """Project *now* into *time_zone* and return the local calendar date."""
    return _zoned(now, time_zone).date()


def minutes_in_zone(now: datetime, time_zone: str) -> int:
    local = _zoned(now, time_zone)
    return local.hour * 60 + local.minute


def day_start_in_zone(now: datetime, time_zone: str) -> datetime:
    """Return the instant (UTC) at which the local day containing *now* began."""
    local_day = today_in_zone(now, time_zone)
    start = datetime.combine(local_day, time.min, tzinfo=ZoneInfo(time_zone))
    return start.astimezone(UTC)


def week_bounds(now: datetime, time_zone: str) -> tuple[str, str]:
    """Monday and Sunday (ISO strings) of the local week containing *now*."""
    today = today_in_zone(now, time_zone)
    monday = today - timedelta(days=today.weekday())
    return monday.isoformat(), (monday + timedelta(days=6)).isoformat()


def to_zoned_datetime(date_str: str, time_str: str, time_zone: str) -> datetime:
    """Combine a local date and ``HH:MM`` into an aware datetime in *time_zone*."""
    day = date.fromisoformat(date_str)
    hour, minute = (int(part) for part in time_str.split(":"))
    return datetime.combine(day, time(hour, minute), tzinfo=ZoneInfo(time_zone))


def is_valid_date_string(value: str) -> bool:
    if not isinstance(value, str) or not re.fullmatch(r"\d{4}-\d{2}-\d{2}", value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def is_valid_time_string(value: str) -> bool:
    if not isinstance(value, str) or not re.fullmatch(r"\d{2}:\d{2}", value):
        return False
    hour, minute = (int(part) for part in value.split(":"))
    return 0 <= hour <= 23 and 0 <= minute <= 59


def time_to_minutes(value: str) -> int:
    hour, minute = (int(part) for part in value.split(":"))
    return hour * 60 + minute


def _build_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _number(token: str) -> int | None:
    if token.isdigit():
        return int(token)
    return NUMBER_WORDS.get(token)


# ── Dates ───────────────────────────────────────────────────────────


def _infer_year(today: date, month: int, day: int) -> date | None:
    """This year's DD/MM, or next year's when it has already passed."""
    candidate = _build_date(today.year, month, day)
    if candidate is None:
        return None
    if candidate < today:
        return _build_date(today.year + 1, month, day)
    return candidate


def _weekday_date(today: date, target: int, text: str) -> date:
    if _NEXT_WEEK_RE.search(text):
        next_monday = today + timedelta(days=7 - today.weekday())
        return next_monday + timedelta(days=target)
    days_until = (target - today.weekday()) % 7
    if days_until == 0 and _NEXT_OCCURRENCE_RE.search(text):
        days_until = 7
    return today + timedelta(days=days_until)


def _find_date(text: str, today: date) -> tuple[date, tuple[int, int]] | None:
    """Return the first recognized date in normalized *text* and its span.

    Checks run in priority order, not text order: relative words first,
    then explicit numeric forms, then weekday names.
    """
    match = re.search(r"\bpasado\s+manana\b", text)
    if match:
        return today + timedelta(days=2), match.span()

    # "de la mañana" is a time of day, never "tomorrow".
    masked = _MORNING_PHRASE_RE.sub(lambda m: " " * len(m.group(0)), text)
    match = re.search(r"\bmanana\b", masked)
    if match:
        return today + timedelta(days=1), match.span()

    match = re.search(r"\bhoy\b", text)
    if match:
        return today, match.span()

    match = _OFFSET_RE.search(text)
    if match:
        amount = _number(match.group(1))
        unit = DURATION_MULTIPLIERS[match.group(2)]
        if amount is not None:
            return today + timedelta(days=amount * unit), match.span()

    match = _ISO_RE.search(text)
    if match:
        parsed = _build_date(*(int(part) for part in match.groups()))
        if parsed is not None:
            return parsed, match.span()

    match = _SLASH_RE.search(text)
    if match:
        day, month = int(match.group(1)), int(match.group(2))
        year_raw = match.group(3)
        if year_raw:
            year = int(f"20{year_raw}") if len(year_raw) == 2 else int(year_raw)
            parsed = _build_date(year, month, day)
        else:
            parsed = _infer_year(today, month, day) if 1 <= month <= 12 else None
        if parsed is not None:
            return parsed, match.span()

    for match in _DAY_MONTH_RE.finditer(text):
        month = MONTHS.get(match.group(2))
        if month is None:
            continue
        day = int(match.group(1))
        if match.group(3):
            parsed = _build_date(int(match.group(3)), month, day)
        else:
            parsed = _infer_year(today, month, day)
        if parsed is not None:
            return parsed, match.span()

    match = _DAY_ONLY_RE.search(text)
    if match:
        day = int(match.group(1))
        year, month = today.year, today.month
        if day < today.day:
            month += 1
            if month > 12:
                month, year = 1, year + 1
        parsed = _build_date(year, month, day)
        if parsed is not None:
            return parsed, match.span()

    match = _WEEKDAY_RE.search(text)
    if match:
        return _weekday_date(today, WEEKDAYS[match.group(1)], text), match.span()

    return None


def parse_date(text: str, now: datetime, time_zone: str) -> str | None:
    """Resolve the first date expression in *text* to ``YYYY-MM-DD``."""
    normalized = normalize_text(text)
    if not normalized:
        return None
    found = _find_date(normalized, today_in_zone(now, time_zone))
    return found[0].isoformat() if found else None


def parse_duration_days(text: str) -> int | None:
    """Length in days of a phrase such as "tres días" or "una semana".

    Offsets ("dentro de dos días") are not durations and are ignored.
    """
    normalized = normalize_text(text)
    offsets = {m.span() for m in _OFFSET_RE.finditer(normalized)}
    for match in _DURATION_RE.finditer(normalized):
        if any(start <= match.start() < end for start, end in offsets):
            continue
        amount = _number(match.group(1))
        if amount:
            return amount * DURATION_MULTIPLIERS[match.group(2)]
    return None


def parse_range(text: str, now: datetime, time_zone: str) -> DateRange | None:
    """Resolve a date range; a single date yields a one-day range."""
    normalized = normalize_text(text)
    if not normalized:
        return None
    today = today_in_zone(now, time_zone)

    if _NEXT_WEEK_RANGE_RE.search(normalized) and not _WEEKDAY_RE.search(normalized):
        monday = today + timedelta(days=7 - today.weekday())
        return DateRange(monday.isoformat(), (monday + timedelta(days=6)).isoformat())

    if _THIS_WEEK_RE.search(normalized) and not _WEEKDAY_RE.search(normalized):
        sunday = today + timedelta(days=6 - today.weekday())
        return DateRange(today.isoformat(), sunday.isoformat())

    iso_dates = [m for m in _ISO_RE.finditer(normalized)]
    if len(iso_dates) >= 2:
        first = _build_date(*(int(p) for p in iso_dates[0].groups()))
        second = _build_date(*(int(p) for p in iso_dates[1].groups()))
        if first and second:
            return DateRange.ordered(first.isoformat(), second.isoformat())

    for match in _RANGE_MONTH_RE.finditer(normalized):
        month = MONTHS.get(match.group(3))
        if month is None:
            continue
        start_day, end_day = int(match.group(1)), int(match.group(2))
        if match.group(4):
            year = int(match.group(4))
        else:
            year = today.year
            earliest = _build_date(year, month, min(start_day, end_day))
            if earliest is not None and earliest < today:
                year += 1
        first = _build_date(year, month, start_day)
        second = _build_date(year, month, end_day)
        if first is None or second is None:
            return None
        return DateRange.ordered(first.isoformat(), second.isoformat())

    slash_dates = list(_SLASH_RE.finditer(normalized))
    if len(slash_dates) >= 2:
        first = parse_date(slash_dates[0].group(0), now, time_zone)
        second = parse_date(slash_dates[1].group(0), now, time_zone)
        if first and second:
            return DateRange.ordered(first, second)

    found = _find_date(normalized, today)
    if found is None:
        return None
    first_date, (span_start, span_end) = found
    rest = normalized[:span_start] + " " + normalized[span_end:]
    second = _find_date(rest, today)
    if second is not None:
        return DateRange.ordered(first_date.isoformat(), second[0].isoformat())

    duration = parse_duration_days(rest)
    if duration:
        end = first_date + timedelta(days=duration - 1)
        return DateRange(first_date.isoformat(), end.isoformat())

    return DateRange(first_date.isoformat(), first_date.isoformat())


# ── Times ───────────────────────────────────────────────────────────


def _adjust_hour(hour: int, period: str | None) -> int:
    if not period:
        return hour
    if ("tarde" in period or "noche" in period or period == "pm") and hour < 12:
        return hour + 12
    if ("manana" in period or period == "am") and hour == 12:
        return 0
    return hour


def _format_time(hour: int, minute: int) -> str | None:
    if 0 <= hour <= 23 and 0 <= minute <= 59:
        return f"{hour:02d}:{minute:02d}"
    return None


def parse_time(text: str) -> str | None:
    """Resolve the first time-of-day expression in *text* to ``HH:MM``."""
    normalized = normalize_text(text).replace("a.m.", "am").replace("p.m.", "pm")
    if not normalized:
        return None

    for match in _TIME_WITH_PERIOD_RE.finditer(normalized):
        anchor, hour_raw, minute_raw, period = match.groups()
        period = re.sub(r"\s+", " ", period)
        if not (anchor or minute_raw):
            # A bare number only reads as an hour in the "de la tarde" or am/pm
            # forms, and not when it follows "el" or "dia".
            if period.startswith("por "):
                continue
            if _DAY_OF_MONTH_PREFIX_RE.search(normalized[: match.start()]):
                continue
        hour = int(hour_raw)
        minute = int(minute_raw) if minute_raw else 0
        if hour > 23:
            return None
        return _format_time(_adjust_hour(hour, period), minute)

    match = _CLOCK_RE.search(normalized)
    if match:
        return _format_time(int(match.group(1)), int(match.group(2)))

    match = _AT_HOUR_RE.search(normalized)
    if match:
        return _format_time(int(match.group(1)), 0)

    return None


def detect_day_period(text: str) -> str | None:
    """Return ``morning``/``afternoon``/``night`` when *text* names one."""
    normalized = normalize_text(text)
    for period, pattern in _DAY_PERIOD_RE.items():
        if pattern.search(normalized):
            return period
    return None


def in_day_period(time_str: str, period: str | None) -> bool:
    if not period:
        return True
    start, end = DAY_PERIODS[period]
    return start <= time_to_minutes(time_str) < end
