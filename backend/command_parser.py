"""
Rule-based parser for natural language task commands.
Used when the language model is not configured or its answer is unusable.

parse_command() always returns a single action in the same envelope the
model is asked for: {"actions": [...], "preview": str, "requiresConfirm": bool}.
Verbs and keywords are matched case-insensitively and word by word; titles
keep the user's casing.
"""
from datetime import date, timedelta
from typing import Optional

from actions import MAX_TITLE_LENGTH
from datetimes import utc_now

CREATE_VERBS = ("add", "create", "new")
DELETE_VERBS = ("delete", "remove", "rm")
STATUS_VERBS = ("mark", "complete", "finish", "done")
RENAME_VERBS = ("rename", "change")

COMPLETED_WORDS = ("complete", "completed", "done", "finish", "finished")
PENDING_WORDS = ("pending", "incomplete", "undone")
FILLER_WORDS = ("the", "task")
DATE_CONNECTORS = ("to", "on", "next", "this")

# Titles this short are likely to hit more than one task
SHORT_TITLE_LENGTH = 5

NOT_UNDERSTOOD = "Could not understand command"
TITLE_TOO_LONG = f"Task title is too long (at most {MAX_TITLE_LENGTH} characters)"
EXAMPLES = (
    '"add buy milk", "delete buy milk", "mark buy milk complete", '
    '"rename buy milk to buy almond milk", or "set due date for buy milk to tomorrow"'
)


def _envelope(action: dict, preview: str, requires_confirm: bool = False) -> dict:
    return {"actions": [action], "preview": preview, "requiresConfirm": requires_confirm}


def _noop(reason: str) -> dict:
    return _envelope({"type": "noop", "reason": reason}, NOT_UNDERSTOOD)


def _strip_filler(words: list[str]) -> list[str]:
    """Drop leading "the"/"task" ("delete the task gym" -> "gym")."""
    while words and words[0].lower() in FILLER_WORDS:
        words = words[1:]
    return words


def _next_friday(today: date) -> date:
    # A week ahead when today is already Friday
    return today + timedelta(days=(4 - today.weekday()) % 7 or 7)


def _parse_create(words: list[str], lowered: list[str], today: date) -> dict:
    due_date = None
    rest = words[1:]
    rest_lowered = lowered[1:]
    for keyword, offset in (("tomorrow", 1), ("today", 0)):
        if keyword in rest_lowered:
            index = rest_lowered.index(keyword)
            rest = rest[:index] + rest[index + 1:]
            due_date = (today + timedelta(days=offset)).isoformat()
            break

    title = " ".join(rest).strip()
    if not title:
        return _noop('Please provide a task title. Example: "add buy milk"')
    if len(title) > MAX_TITLE_LENGTH:
        return _noop(TITLE_TOO_LONG)

    action = {"type": "create", "title": title}
    preview = f'Create task: "{title}"'
    if due_date:
        action["dueDate"] = due_date
        preview += f" (due: {due_date})"
    return _envelope(action, preview)


def _parse_delete(words: list[str], lowered: list[str]) -> dict:
    if "all" in lowered[1:]:
        return _envelope({"type": "bulk_delete_all"}, "Delete all tasks", requires_confirm=True)

    title = " ".join(_strip_filler(words[1:])).strip()
    if not title:
        return _noop('Please specify which task to delete. Example: "delete buy milk"')
    if len(title) > MAX_TITLE_LENGTH:
        return _noop(TITLE_TOO_LONG)

    return _envelope(
        {"type": "delete", "match": {"title": title}},
        f'Delete task matching: "{title}"',
        requires_confirm=len(title) < SHORT_TITLE_LENGTH,
    )


def _status_from(lowered: list[str]) -> Optional[str]:
    for word in lowered:
        if word in COMPLETED_WORDS:
            return "completed"
        if word in PENDING_WORDS:
            return "pending"
    return None


def _parse_status(words: list[str], lowered: list[str]) -> dict:
    status = _status_from(lowered)
    if status is None:
        return _noop('Please specify status: "mark X complete" or "mark X pending"')

    keywords = COMPLETED_WORDS + PENDING_WORDS + ("as",)
    anchor = next(i for i, word in enumerate(lowered) if word in keywords)

    # "mark as done buy milk" / "complete buy milk": the title follows the keyword
    after = words[anchor + 1:]
    while after and after[0].lower() in keywords:
        after = after[1:]
    # "mark buy milk as done": the title sits between the verb and the keyword
    title_words = after or words[1:anchor]
    title = " ".join(_strip_filler(title_words)).strip()

    if not title:
        return _noop(f'Please specify which task to mark as {status}. Example: "mark buy milk complete"')
    if len(title) > MAX_TITLE_LENGTH:
        return _noop(TITLE_TOO_LONG)

    status_text = "complete" if status == "completed" else "pending"
    return _envelope(
        {"type": "update", "match": {"title": title}, "patch": {"status": status}},
        f'Mark "{title}" as {status_text}',
    )


def _parse_rename(words: list[str], lowered: list[str]) -> dict:
    example = 'Example: "rename buy milk to buy almond milk"'
    if "to" not in lowered[1:]:
        return _noop(f"Please specify new title. {example}")

    to_index = lowered.index("to", 1)
    old_title = " ".join(words[1:to_index]).strip()
    new_title = " ".join(words[to_index + 1:]).strip()
    if not old_title or not new_title:
        return _noop(f"Please provide both old and new titles. {example}")
    if len(old_title) > MAX_TITLE_LENGTH:
        return _noop(TITLE_TOO_LONG)
    if len(new_title) > MAX_TITLE_LENGTH:
        return _noop(f"New title is too long (at most {MAX_TITLE_LENGTH} characters)")

    return _envelope(
        {"type": "update", "match": {"title": old_title}, "patch": {"title": new_title}},
        f'Rename "{old_title}" to "{new_title}"',
    )


def _parse_set_due(words: list[str], lowered: list[str], today: date) -> dict:
    if "for" in lowered:
        target = lowered.index("for")
    elif "to" in lowered:
        target = lowered.index("to")
    else:
        return _noop('Please specify task and date. Example: "set due date for buy milk to next friday"')

    # Only the last two words are searched for a date phrase
    due_date = None
    date_index = len(words)
    for index in range(max(target + 1, len(words) - 2), len(words)):
        word = lowered[index]
        if word == "tomorrow":
            due_date = today + timedelta(days=1)
        elif word == "today":
            due_date = today
        elif word == "friday":
            due_date = _next_friday(today)
        else:
            continue
        date_index = index
        break

    title_words = words[target + 1:date_index]
    while title_words and title_words[-1].lower() in DATE_CONNECTORS:
        title_words = title_words[:-1]
    title = " ".join(title_words).strip()

    if not title or due_date is None:
        return _noop('Could not parse date. Try: "set due date for buy milk to tomorrow"')
    if len(title) > MAX_TITLE_LENGTH:
        return _noop(TITLE_TOO_LONG)

    return _envelope(
        {"type": "update", "match": {"title": title}, "patch": {"dueDate": due_date.isoformat()}},
        f'Set due date for "{title}" to {due_date.isoformat()}',
    )


def parse_command(text: str, today: Optional[date] = None) -> dict:
    """
    Parse a command into a single-action envelope.

    Args:
        text: Raw user input
        today: Calendar date "today"/"tomorrow"/"friday" are relative to (default: UTC today)
    """
    today = today or utc_now().date()
    words = text.split()
    if not words:
        return _noop(f"Please type a command. Try: {EXAMPLES}")

    lowered = [word.lower() for word in words]
    verb = lowered[0]

    if verb in CREATE_VERBS:
        return _parse_create(words, lowered, today)
    if verb in DELETE_VERBS:
        return _parse_delete(words, lowered)
    if verb in STATUS_VERBS:
        return _parse_status(words, lowered)
    if verb in RENAME_VERBS:
        return _parse_rename(words, lowered)
    if verb == "set" and ("due" in lowered or "date" in lowered):
        return _parse_set_due(words, lowered, today)

    return _noop(f'Could not understand command: "{text.strip()}". Try: {EXAMPLES}')
