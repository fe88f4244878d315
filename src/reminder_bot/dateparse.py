"""Human datetime phrases -> absolute UTC instants.

Understands a small, forgiving grammar::

    tomorrow | day after tomorrow | next week
    in <count> <unit>            e.g. "in 3 hours", "in half an hour", "in a few days"
    [on] <weekday>               e.g. "wed", "on monday"
    [on] YYYY-MM-DD

optionally followed by ``at HH:MM`` / ``at HHMM`` / ``at H am|pm``.
Times default to 09:30 except for short relative offsets.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta

from dateutil.relativedelta import relativedelta

from .errors import ParseFailure

MORNING_HOUR = 9
MORNING_MINUTE = 30
MAX_COUNT = 10_000_000
SNAP_TO_MORNING_AFTER = timedelta(hours=48)

_COUNT_WORDS = {
    "half a": 0.5,
    "half an": 0.5,
    "a couple of": 2.0,
    "a few": 3.0,
}

_UNIT_SECONDS = {
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
    "days": 86400,
    "weeks": 604800,
    "months": 30 * 86400,
    "years": 365 * 86400,
}

_RELATIVE_RE = re.compile(
    r"^in\s+(?P<count>\d+(?:\.\d+)?|half\s+an?|a\s+couple\s+of|a\s+few)\s*"
    r"(?P<unit>seconds?|secs?|s|minutes?|mins?|m|hours?|hrs?|h|days?|d|"
    r"weeks?|wks?|w|months?|mos?|years?|yrs?|y)\b"
)
_LITERAL_PREFIX_RE = re.compile(r"^(?P<word>day\s+after\s+tomorrow|tomorrow|next\s+week)\b")
_WEEKDAY_RE = re.compile(r"^(?:on\s+)?(?P<day>mon|tues?|wed|thur?s?|fri|sat|sun)(?:day)?")
_DATE_RE = re.compile(r"(?:on\s+)?(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})")
_AT_CLOCK_RE = re.compile(r"\bat\s+(?P<hour>\d{1,2}):?(?P<minute>\d{2})")
_AT_MERIDIEM_RE = re.compile(r"\bat\s+(?P<hour>\d{1,2})\s*(?P<meridiem>am|pm)\b")

_WEEKDAYS = {"mon": 0, "tue": 1, "wed": 2, "thu": 3, "fri": 4, "sat": 5, "sun": 6}


def set_to_morning(value: datetime) -> datetime:
    return value.replace(hour=MORNING_HOUR, minute=MORNING_MINUTE, second=0, microsecond=0)


def _unit_name(token: str) -> str:
    if token.startswith("mo"):
        return "months"
    for name in _UNIT_SECONDS:
        if name[0] == token[0]:
            return name
    raise ParseFailure(f"unknown unit {token!r}")


def _literal(word: str, now: datetime) -> datetime:
    word = " ".join(word.split())
    if word == "tomorrow":
        return set_to_morning(now + timedelta(days=1))
    if word == "day after tomorrow":
        return set_to_morning(now + timedelta(days=2))
    # next week: the coming Monday
    return set_to_morning(now + timedelta(days=7 - now.weekday()))


def _relative(match: re.Match[str], now: datetime) -> datetime:
    raw_count = " ".join(match.group("count").split())
    count = _COUNT_WORDS[raw_count] if raw_count in _COUNT_WORDS else float(raw_count)
    if count > MAX_COUNT:
        raise ParseFailure(f"duration too large: {raw_count}")

    unit = _unit_name(match.group("unit"))
    try:
        date = now + timedelta(seconds=int(_UNIT_SECONDS[unit] * count))
        if count >= 1 and unit == "months":
            date += relativedelta(day=now.day)
        elif count >= 1 and unit == "years":
            date = now + relativedelta(years=int(count))
    except (OverflowError, ValueError) as exc:
        raise ParseFailure(f"duration out of range: {raw_count} {unit}") from exc

    if date > now + SNAP_TO_MORNING_AFTER:
        date = set_to_morning(date)
    return date


def _weekday(match: re.Match[str], now: datetime) -> datetime:
    target = _WEEKDAYS[match.group("day")[:3]]
    date = now - timedelta(days=now.weekday()) + timedelta(days=target)
    if date < now:
        date += timedelta(weeks=1)
    return set_to_morning(date)


def _absolute(match: re.Match[str], now: datetime) -> datetime:
    try:
        date = now.replace(
            year=int(match.group("year")),
            month=int(match.group("month")),
            day=int(match.group("day")),
        )
    except ValueError as exc:
        raise ParseFailure(f"invalid date {match.group(0).strip()!r}") from exc
    return set_to_morning(date)


def _base_date(phrase: str, now: datetime) -> datetime:
    if match := _RELATIVE_RE.match(phrase):
        return _relative(match, now)
    if match := _LITERAL_PREFIX_RE.match(phrase):
        return _literal(match.group("word"), now)
    if match := _WEEKDAY_RE.match(phrase):
        return _weekday(match, now)
    if match := _DATE_RE.search(phrase):
        return _absolute(match, now)
    raise ParseFailure(f"couldn't parse {phrase!r}")


def _apply_at_clause(phrase: str, date: datetime) -> datetime:
    # clock form wins over am/pm, and trailing text after it is ignored
    if match := _AT_CLOCK_RE.search(phrase):
        hour = int(match.group("hour"))
        minute = int(match.group("minute"))
        if hour > 23 or minute > 59:
            raise ParseFailure(f"invalid time {match.group(0)!r}")
        return date.replace(hour=hour, minute=minute, second=0)

    match = _AT_MERIDIEM_RE.search(phrase)
    if match is None:
        return date

    hour = int(match.group("hour"))
    if match.group("meridiem") == "pm":
        hour += 12
    if hour > 23:
        raise ParseFailure(f"invalid time {match.group(0)!r}")
    return date.replace(hour=hour)


def parse_human_datetime(phrase: str, now: datetime) -> datetime:
    """Resolve ``phrase`` against ``now`` (UTC).

    Raises:
        ParseFailure: nothing in the phrase could be understood, or a
            component (hour, minute, calendar date, count) is out of range.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    else:
        now = now.astimezone(UTC)

    phrase = " ".join(phrase.strip().lower().split())

    if phrase in ("tomorrow", "day after tomorrow", "next week"):
        return _literal(phrase, now)

    date = _apply_at_clause(phrase, _base_date(phrase, now))

    if date < now:
        # "at 10:00" said after 10:00 means tomorrow
        date += timedelta(days=1)
    return date
