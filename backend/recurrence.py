import logging
import re
from datetime import datetime
from typing import Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil.rrule import DAILY, MONTHLY, WEEKLY, FR, MO, SA, SU, TH, TU, WE, rrule
from pydantic import BaseModel

from datetimes import REFERENCE_TZ, to_reference

logger = logging.getLogger(__name__)

# Recurrence rule grammar: FREQ[:PARAM][:HH:MM]
#   DAILY, DAILY:07:30
#   WEEKLY:MO, WEEKLY:MO:09:00   (PARAM = weekday code, required)
#   MONTHLY:15, MONTHLY:31:18:00 (PARAM = day of month 1-31, required)
FREQUENCIES = {"DAILY": DAILY, "WEEKLY": WEEKLY, "MONTHLY": MONTHLY}
WEEKDAYS = {"MO": MO, "TU": TU, "WE": WE, "TH": TH, "FR": FR, "SA": SA, "SU": SU}
WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")  # indexed by datetime.weekday()

RULE_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


class RecurrencePattern(BaseModel):
    freq: Literal["DAILY", "WEEKLY", "MONTHLY"]
    byday: Optional[str] = None
    bymonthday: Optional[int] = None
    time: Optional[str] = None  # HH:MM

    def to_rule(self) -> str:
        parts = [self.freq]
        if self.freq == "WEEKLY":
            parts.append(self.byday)
        elif self.freq == "MONTHLY":
            parts.append(str(self.bymonthday))
        if self.time:
            parts.append(self.time)
        return ":".join(parts)


def _parse_time(text: str) -> Optional[str]:
    match = RULE_TIME_RE.match(text)
    if not match:
        return None
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def parse_rule(rule: Optional[str]) -> Optional[RecurrencePattern]:
    """
    Parse a recurrence rule string. Malformed input returns None;
    there are no partial parses.
    """
    if not isinstance(rule, str) or not rule.strip():
        return None

    # A trailing ":" with nothing after it is malformed, not an omitted time
    freq, separator, rest = rule.strip().upper().partition(":")
    freq = freq.strip()

    if freq == "DAILY":
        if not separator:
            return RecurrencePattern(freq="DAILY")
        clock = _parse_time(rest.strip())
        return RecurrencePattern(freq="DAILY", time=clock) if clock else None

    if freq not in ("WEEKLY", "MONTHLY"):
        return None

    param, separator, time_text = rest.partition(":")
    param = param.strip()
    clock = None
    if separator:
        clock = _parse_time(time_text.strip())
        if clock is None:
            return None

    if freq == "WEEKLY":
        if param not in WEEKDAYS:
            return None
        return RecurrencePattern(freq="WEEKLY", byday=param, time=clock)

    if not param.isdigit() or not 1 <= int(param) <= 31:
        return None
    return RecurrencePattern(freq="MONTHLY", bymonthday=int(param), time=clock)


def normalize_rule(rule: str) -> Optional[str]:
    """Canonical upper-case form of a rule, or None if it does not parse."""
    pattern = parse_rule(rule)
    return pattern.to_rule() if pattern else None


def next_occurrence(
    pattern: RecurrencePattern,
    from_instant: datetime,
    tz: Optional[str] = None,
) -> Optional[datetime]:
    """
    First occurrence of pattern strictly after from_instant, as a UTC instant.

    Occurrences are generated in tz (the task's recurrence timezone, UTC when
    unset). An explicit pattern time is used for every occurrence; otherwise
    from_instant's time of day is kept. Months without the requested day of
    month are skipped. Returns None instead of raising.
    """
    try:
        zone = ZoneInfo(tz) if tz else REFERENCE_TZ
        start = to_reference(from_instant).astimezone(zone)
        dtstart = start.replace(microsecond=0)
        if pattern.time:
            hour, minute = (int(part) for part in pattern.time.split(":"))
            dtstart = dtstart.replace(hour=hour, minute=minute, second=0)

        options = {}
        if pattern.freq == "WEEKLY":
            options["byweekday"] = WEEKDAYS[pattern.byday]
        elif pattern.freq == "MONTHLY":
            options["bymonthday"] = pattern.bymonthday

        occurrence = rrule(FREQUENCIES[pattern.freq], dtstart=dtstart, **options).after(start, inc=False)
    except (KeyError, ValueError, TypeError, ZoneInfoNotFoundError) as exc:
        logger.warning("Could not compute next occurrence for %s: %s", pattern, exc)
        return None

    if occurrence is None:
        return None
    if not pattern.time:
        occurrence = occurrence.replace(microsecond=start.microsecond)
    return occurrence.astimezone(REFERENCE_TZ)


def next_occurrence_from_rule(
    rule: Optional[str],
    from_instant: datetime,
    tz: Optional[str] = None,
) -> Optional[datetime]:
    pattern = parse_rule(rule)
    if pattern is None:
        return None
    return next_occurrence(pattern, from_instant, tz)
