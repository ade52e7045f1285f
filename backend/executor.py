"""
Apply validated actions to the task store.

Actions run strictly in order. The first failing action stops the batch and
its error is returned together with the number of actions already applied;
those earlier actions are NOT rolled back.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from actions import (
    Action,
    BulkDeleteAllAction,
    CreateAction,
    DeleteAction,
    NoopAction,
    UpdateAction,
)
from database import (
    StoreError,
    create_task_db,
    delete_all_tasks_db,
    delete_tasks_db,
    find_tasks_by_title_contains,
    update_task_db,
)
from datetimes import normalize_due, to_reference, utc_now
from matching import resolve_match
from models import Owner, Task
from quota import can_create_task
from recurrence import next_occurrence_from_rule

logger = logging.getLogger(__name__)

AMBIGUOUS_LIST_LIMIT = 5
AMBIGUITY_LOOKUP_LIMIT = 10

STORE_FAILURE_VERBS = {
    CreateAction: "create task",
    UpdateAction: "update task",
    DeleteAction: "delete task",
    BulkDeleteAllAction: "delete all tasks",
}


class ExecutionResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: str
    affected_count: int


class ActionFailed(Exception):
    """A single action could not be applied; aborts the batch."""


# Invalidation signal: called with the owner after every successful mutation
_task_list_listeners: list[Callable[[Owner], None]] = []


def add_task_list_listener(listener: Callable[[Owner], None]):
    _task_list_listeners.append(listener)


def remove_task_list_listener(listener: Callable[[Owner], None]):
    if listener in _task_list_listeners:
        _task_list_listeners.remove(listener)


def notify_task_list_changed(owner: Owner):
    for listener in list(_task_list_listeners):
        listener(owner)


def ambiguous_message(title: str, tasks: list[Task]) -> str:
    titles = ", ".join(task.title for task in tasks[:AMBIGUOUS_LIST_LIMIT])
    more = "..." if len(tasks) > AMBIGUOUS_LIST_LIMIT else ""
    return f'Multiple tasks match "{title}": {titles}{more}. Please be more specific or use the task ID.'


def ambiguous_delete_message(owner: Owner, title: str) -> Optional[str]:
    """
    A title-only delete is unsafe when the title is contained in more than
    one task, even if one of them matches it exactly.
    """
    title = title.strip()
    if not title:
        return None
    candidates = find_tasks_by_title_contains(owner, title, AMBIGUITY_LOOKUP_LIMIT)
    if len(candidates) > 1:
        return ambiguous_message(title, candidates)
    return None


def _single_match(owner: Owner, action, limit: int = 100) -> list[Task]:
    match = action.match
    tasks = resolve_match(owner, match.id, match.title, limit)
    if len(tasks) > 1 and not match.id:
        raise ActionFailed(ambiguous_message(match.title, tasks))
    if not tasks:
        raise ActionFailed(f"No task found matching: {match.title or match.id}")
    return tasks


def _create(owner: Owner, action: CreateAction, now: datetime) -> str:
    quota = can_create_task(owner)
    if not quota.allowed:
        raise ActionFailed(quota.reason or "Cannot create task: limit reached")

    due_at = normalize_due(action.due_date, now) if action.due_date else None
    timezone_name = action.recurrence_timezone
    if action.recurrence_rule and not timezone_name:
        timezone_name = "UTC"

    task = create_task_db(
        owner,
        title=action.title,
        description=action.description or None,
        status=action.status or "pending",
        due_at=due_at,
        recurrence_rule=action.recurrence_rule,
        recurrence_timezone=timezone_name,
    )
    message = f'Created task: "{task.title}"'
    if task.due_date:
        message += f" (due {task.due_date.isoformat()})"
    return message


def _spawn_next_occurrence(owner: Owner, task: Task, now: datetime) -> Optional[Task]:
    """Completing a recurring task schedules its next pending occurrence."""
    following = next_occurrence_from_rule(
        task.recurrence_rule, task.due_at or now, task.recurrence_timezone
    )
    if following is None:
        return None
    return create_task_db(
        owner,
        title=task.title,
        description=task.description,
        status="pending",
        due_at=following,
        recurrence_rule=task.recurrence_rule,
        recurrence_timezone=task.recurrence_timezone,
    )


def _update(owner: Owner, action: UpdateAction, now: datetime) -> str:
    task = _single_match(owner, action)[0]
    patch = action.patch
    fields = patch.model_fields_set
    updates = {}
    notes = []

    if "title" in fields:
        updates["title"] = patch.title
    if "description" in fields:
        updates["description"] = patch.description or None
    if "status" in fields:
        updates["status"] = patch.status
    if "due_date" in fields:
        if patch.due_date is None:
            updates["due_at"] = None
        else:
            due_at = normalize_due(patch.due_date, now)
            if due_at is None:
                notes.append(f'could not understand due date "{patch.due_date}", left unchanged')
            else:
                updates["due_at"] = due_at
    if "recurrence_rule" in fields:
        updates["recurrence_rule"] = patch.recurrence_rule
        if patch.recurrence_rule is None:
            updates["recurrence_timezone"] = None
        else:
            updates["recurrence_timezone"] = patch.recurrence_timezone or task.recurrence_timezone or "UTC"
    elif "recurrence_timezone" in fields:
        updates["recurrence_timezone"] = patch.recurrence_timezone

    updated = update_task_db(owner, task.id, **updates)
    if updated is None:
        raise ActionFailed(f"No task found matching: {action.match.title or action.match.id}")

    message = "Updated 1 task(s)"
    if task.status != "completed" and updated.status == "completed" and updated.recurrence_rule:
        spawned = _spawn_next_occurrence(owner, updated, now)
        if spawned is not None:
            notes.append(f"next occurrence due {spawned.due_date.isoformat()}")
    if notes:
        message += f" ({'; '.join(notes)})"
    return message


def _delete(owner: Owner, action: DeleteAction) -> tuple[str, int]:
    if not action.match.id:
        message = ambiguous_delete_message(owner, action.match.title)
        if message:
            raise ActionFailed(message)
    tasks = _single_match(owner, action, action.limit or 100)
    deleted = delete_tasks_db(owner, [task.id for task in tasks])
    return f"Deleted {deleted} task(s)", deleted


def execute_actions(owner: Owner, actions: list[Action], now: Optional[datetime] = None) -> ExecutionResult:
    """
    Execute actions for owner in order.

    Returns ExecutionResult; success is False as soon as one action fails,
    with affected_count covering only the actions applied before it.
    bulk_delete_all counts as a single affected unit whatever it removed.
    """
    now = to_reference(now) if now else utc_now()
    affected = 0
    messages = []

    for action in actions:
        if isinstance(action, NoopAction):
            messages.append(f"Skipped: {action.reason}")
            continue

        try:
            if isinstance(action, CreateAction):
                messages.append(_create(owner, action, now))
                affected += 1
            elif isinstance(action, UpdateAction):
                messages.append(_update(owner, action, now))
                affected += 1
            elif isinstance(action, DeleteAction):
                message, deleted = _delete(owner, action)
                messages.append(message)
                affected += deleted
            elif isinstance(action, BulkDeleteAllAction):
                removed = delete_all_tasks_db(owner)
                messages.append(f"Deleted all tasks ({removed} removed)")
                affected += 1
            else:
                logger.error("Refusing to execute unvalidated action %r", action)
                return ExecutionResult(
                    success=False,
                    message="Refusing to execute an unvalidated action",
                    affected_count=affected,
                )
        except ActionFailed as e:
            return ExecutionResult(success=False, message=str(e), affected_count=affected)
        except StoreError as e:
            logger.error("Task store failure while executing %s: %s", type(action).__name__, e)
            return ExecutionResult(
                success=False,
                message=f"Failed to {STORE_FAILURE_VERBS[type(action)]}: {e}",
                affected_count=affected,
            )

        notify_task_list_changed(owner)

    return ExecutionResult(
        success=True,
        message=". ".join(messages) or "No actions executed",
        affected_count=affected,
    )
