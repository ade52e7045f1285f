"""
Date/time normalization for task due dates.

Every due instant is a timezone-aware datetime in REFERENCE_TZ (UTC).
The calendar date stored alongside it (due_date) is always derived with
project_date() and never set on its own.
"""
import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

import dateparser
from dateutil.parser import isoparse

logger = logging.getLogger(__name__)

REFERENCE_TZ = timezone.utc

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
CLOCK_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

# Explicit clock time inside a phrase: "7pm", "7:30 am", "19:00", "noon", "midnight"
PHRASE_TIME_RE = re.compile(
    r"\b\d{1,2}(:\d{2})?\s*(am|pm)\b|\b\d{1,2}:\d{2}\b|\bnoon\b|\bmidnight\b",
    re.IGNORECASE,
)

TONIGHT_DEFAULT_TIME = "18:00"

# Bare day words pinned to the reference date, as an offset in days
ANCHORED_DAYS = {"today": 0, "tonight": 0, "tomorrow": 1}
ANCHOR_FILLER = ("at", "by", "on")


def utc_now() -> datetime:
    return datetime.now(REFERENCE_TZ)


def to_reference(instant: datetime) -> datetime:
    """Convert to REFERENCE_TZ; naive datetimes are taken to already be UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=REFERENCE_TZ)
    return instant.astimezone(REFERENCE_TZ)


def combine(
    day: Union[str, date, None],
    clock: Optional[str] = None,
    all_day: bool = False,
) -> Optional[datetime]:
    """
    Combine a calendar date and optional HH:MM time into a UTC instant.

    No date -> None. all_day or no time -> midnight of that date.
    Raises ValueError for a malformed date or time string.
    """
    if not day:
        return None
    if isinstance(day, str):
        day = date.fromisoformat(day)
    if all_day or not clock:
        return datetime.combine(day, time(0, 0), tzinfo=REFERENCE_TZ)
    match = CLOCK_TIME_RE.match(clock.strip())
    if not match:
        raise ValueError(f"Invalid time: {clock!r}")
    return datetime.combine(
        day, time(int(match.group(1)), int(match.group(2))), tzinfo=REFERENCE_TZ
    )


def project_date(instant: Optional[datetime]) -> Optional[date]:
    """Calendar-date projection of an instant in the reference timezone."""
    if instant is None:
        return None
    return to_reference(instant).date()


def is_all_day(instant: Optional[datetime]) -> Optional[bool]:
    """All-day tasks are stored at 00:00; None when there is no instant."""
    if instant is None:
        return None
    local = to_reference(instant)
    return local.hour == 0 and local.minute == 0


def format_instant(instant: Optional[datetime]) -> Optional[str]:
    if instant is None:
        return None
    return to_reference(instant).isoformat()


def due_fields(instant: Optional[datetime]) -> dict:
    """Storage values for a due instant; the only way due_at/due_date get written."""
    day = project_date(instant)
    return {
        "due_at": format_instant(instant),
        "due_date": day.isoformat() if day else None,
    }


def parse_iso_instant(value: str) -> Optional[datetime]:
    try:
        return to_reference(isoparse(value))
    except (ValueError, OverflowError):
        return None


def resolve_phrase(phrase: str, now: Optional[datetime] = None) -> tuple[Optional[datetime], Optional[str]]:
    """
    Resolve a natural-language phrase ("tomorrow 7pm", "in 3 days") to an instant.

    Returns (instant, "HH:MM" or None). Phrases without an explicit clock
    time resolve to midnight. Unparseable phrases return (None, None).
    """
    now = to_reference(now or utc_now())
    text = phrase.strip().lower()
    if not text:
        return None, None

    has_clock = PHRASE_TIME_RE.search(text) is not None
    # "tomorrow 7pm" is anchored, "day after tomorrow" is left to dateparser
    rest = [word for word in PHRASE_TIME_RE.sub(" ", text).split() if word not in ANCHOR_FILLER]
    anchor = rest[0] if len(rest) == 1 and rest[0] in ANCHORED_DAYS else None

    if anchor == "tonight" and not has_clock:
        return combine(now.date(), TONIGHT_DEFAULT_TIME), TONIGHT_DEFAULT_TIME

    parsed = dateparser.parse(
        text.replace("tonight", "today"),
        settings={
            "TIMEZONE": "UTC",
            "TO_TIMEZONE": "UTC",
            "RETURN_AS_TIMEZONE_AWARE": True,
            "PREFER_DATES_FROM": "future",
            "RELATIVE_BASE": now.replace(tzinfo=None),
        },
    )
    if parsed is None:
        logger.debug("Could not resolve date phrase %r", phrase)
        return None, None
    parsed = to_reference(parsed)

    day = parsed.date()
    if anchor:
        day = now.date() + timedelta(days=ANCHORED_DAYS[anchor])

    if not has_clock:
        return combine(day), None
    clock = f"{parsed.hour:02d}:{parsed.minute:02d}"
    return combine(day, clock), clock


def normalize_due(value: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Resolve a dueDate value in priority order:
    ISO instant (has a 'T') -> plain YYYY-MM-DD -> natural-language phrase.
    Anything unparseable yields None; there is no default.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None

    if "T" in text:
        instant = parse_iso_instant(text)
        if instant is not None:
            return instant

    if ISO_DATE_RE.match(text):
        try:
            return combine(text, None, True)
        except ValueError:
            return None

    instant, _ = resolve_phrase(text, now)
    return instant
