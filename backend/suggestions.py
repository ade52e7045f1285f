"""Suggest recurring tasks from an owner's recent completions."""
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional

from datetimes import to_reference, utc_now
from models import Task, TaskSuggestion
from recurrence import WEEKDAY_CODES

LOOKBACK_DAYS = 30
MIN_COMPLETIONS = 3
SUGGESTED_TIME = "09:00"


def normalize_title(title: str) -> str:
    return " ".join(title.lower().split())


def suggest_recurring(tasks: list[Task], now: Optional[datetime] = None) -> list[TaskSuggestion]:
    """
    Titles completed at least MIN_COMPLETIONS times in the last LOOKBACK_DAYS,
    mostly on the same weekday, become weekly suggestions.

    A task's completion time is its updated_at. Titles that already have a
    recurring task are not suggested again.
    """
    now = to_reference(now) if now else utc_now()
    since = now - timedelta(days=LOOKBACK_DAYS)

    already_recurring = {normalize_title(task.title) for task in tasks if task.recurrence_rule}
    groups: dict[str, list[Task]] = {}
    for task in tasks:
        if task.status != "completed":
            continue
        completed_at = to_reference(task.updated_at)
        if completed_at < since:
            continue
        groups.setdefault(normalize_title(task.title), []).append(task)

    suggestions = []
    for key, completed in groups.items():
        if key in already_recurring or len(completed) < MIN_COMPLETIONS:
            continue
        weekdays = Counter(WEEKDAY_CODES[to_reference(task.updated_at).weekday()] for task in completed)
        weekday, count = weekdays.most_common(1)[0]
        if count >= MIN_COMPLETIONS and count >= len(completed) * 0.5:
            suggestions.append(TaskSuggestion(
                title=completed[0].title,
                weekday=weekday,
                count=count,
                recurrence_rule=f"WEEKLY:{weekday}:{SUGGESTED_TIME}",
            ))
    return suggestions
