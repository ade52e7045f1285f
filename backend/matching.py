from typing import Optional

from database import (
    find_tasks_by_title_contains,
    find_tasks_by_title_exact,
    find_tasks_by_title_iexact,
    get_task_db,
)
from models import Owner, Task

# Tried in order; the first tier that finds anything wins
TITLE_MATCHERS = (
    find_tasks_by_title_exact,
    find_tasks_by_title_iexact,
    find_tasks_by_title_contains,
)


def find_by_title(owner: Owner, title: str, limit: int = 100) -> list[Task]:
    title = title.strip()
    if not title:
        return []
    for matcher in TITLE_MATCHERS:
        tasks = matcher(owner, title, limit)
        if tasks:
            return tasks
    return []


def resolve_match(owner: Owner, match_id: Optional[str], title: Optional[str], limit: int = 100) -> list[Task]:
    """Tasks an action's match refers to. An id is exact and takes precedence over title."""
    if match_id:
        task = get_task_db(owner, match_id)
        return [task] if task else []
    if title:
        return find_by_title(owner, title, limit)
    return []
