"""
Action schema for task commands.

Only these action types exist; anything a parser produces (rule-based or
model-based) has to pass through validate_actions() before the gatekeeper
or executor will look at it.
"""
import uuid
from typing import Annotated, Any, Literal, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from models import TaskStatus
from recurrence import normalize_rule

MAX_TITLE_LENGTH = 120
MAX_DESCRIPTION_LENGTH = 500
MAX_DELETE_LIMIT = 100


class ActionValidationError(ValueError):
    """First constraint violation in a batch; index is None for envelope errors."""

    def __init__(self, message: str, index: Optional[int] = None):
        self.message = message
        self.index = index
        if index is None:
            super().__init__(message)
        else:
            super().__init__(f"Invalid action #{index + 1}: {message}")


class ActionModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


def _check_rule(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    rule = normalize_rule(value)
    if rule is None:
        raise ValueError(f"invalid recurrence rule {value!r} (expected DAILY, WEEKLY:MO or MONTHLY:15, optionally :HH:MM)")
    return rule


def _check_timezone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"unknown timezone {value!r}")
    return value


def _strip_title(value):
    # A blank title would match every task by substring
    return value.strip() if isinstance(value, str) else value


class TaskMatch(ActionModel):
    id: Optional[str] = None
    title: Optional[str] = Field(None, min_length=1, max_length=MAX_TITLE_LENGTH)

    @field_validator("title", mode="before")
    @classmethod
    def title_stripped(cls, value):
        return _strip_title(value)

    @field_validator("id")
    @classmethod
    def id_is_uuid(cls, value):
        if value is not None:
            try:
                uuid.UUID(value)
            except ValueError:
                raise ValueError("id must be a UUID")
        return value

    @model_validator(mode="after")
    def id_or_title(self):
        if not self.id and not self.title:
            raise ValueError("Must provide either id or title to match")
        return self


class TaskPatch(ActionModel):
    title: Optional[str] = Field(None, min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    status: Optional[TaskStatus] = None
    due_date: Optional[str] = None  # null clears the due date
    recurrence_rule: Optional[str] = None  # null clears recurrence
    recurrence_timezone: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def title_stripped(cls, value):
        return _strip_title(value)

    @field_validator("recurrence_rule")
    @classmethod
    def rule_parses(cls, value):
        return _check_rule(value)

    @field_validator("recurrence_timezone")
    @classmethod
    def timezone_exists(cls, value):
        return _check_timezone(value)

    @model_validator(mode="after")
    def has_changes(self):
        if not self.model_fields_set:
            raise ValueError("Must provide at least one field to update")
        for name in ("title", "description", "status", "recurrence_timezone"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} cannot be null")
        return self


class CreateAction(ActionModel):
    type: Literal["create"]
    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    status: Optional[TaskStatus] = None
    due_date: Optional[str] = None  # ISO instant, YYYY-MM-DD or a phrase
    recurrence_rule: Optional[str] = None
    recurrence_timezone: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def title_stripped(cls, value):
        return _strip_title(value)

    @field_validator("recurrence_rule")
    @classmethod
    def rule_parses(cls, value):
        return _check_rule(value)

    @field_validator("recurrence_timezone")
    @classmethod
    def timezone_exists(cls, value):
        return _check_timezone(value)


class UpdateAction(ActionModel):
    type: Literal["update"]
    match: TaskMatch
    patch: TaskPatch


class DeleteAction(ActionModel):
    type: Literal["delete"]
    match: TaskMatch
    limit: Optional[int] = Field(None, gt=0, le=MAX_DELETE_LIMIT)


class BulkDeleteAllAction(ActionModel):
    type: Literal["bulk_delete_all"]


class NoopAction(ActionModel):
    type: Literal["noop"]
    reason: str = Field(min_length=1)


Action = Annotated[
    Union[CreateAction, UpdateAction, DeleteAction, BulkDeleteAllAction, NoopAction],
    Field(discriminator="type"),
]

ACTION_TYPES = (CreateAction, UpdateAction, DeleteAction, BulkDeleteAllAction, NoopAction)
DESTRUCTIVE_ACTION_TYPES = (DeleteAction, BulkDeleteAllAction)

_action_adapter = TypeAdapter(Action)


class ParsedCommand(ActionModel):
    """What a parser hands back: never empty."""
    actions: list[Action] = Field(min_length=1)
    preview: str
    requires_confirm: bool = False


class CommandResponse(ActionModel):
    actions: list[Action]
    preview: str
    requires_confirm: bool
    confirm_token: Optional[str] = None
    success: Optional[bool] = None
    result_message: Optional[str] = None
    actions_executed_count: Optional[int] = None

    @model_validator(mode="after")
    def token_iff_confirm(self):
        if bool(self.confirm_token) != self.requires_confirm:
            raise ValueError("confirmToken must be present exactly when requiresConfirm is true")
        return self

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    # Drop the union tag ("create", "update", ...) from the location
    loc = [str(part) for part in first["loc"] if part not in ("create", "update", "delete", "bulk_delete_all", "noop")]
    message = first["msg"].removeprefix("Value error, ")
    return f"{'.'.join(loc)}: {message}" if loc else message


def validate_action(raw: Any, index: int = 0) -> Action:
    if isinstance(raw, ACTION_TYPES):
        raw = raw.model_dump(by_alias=True, exclude_unset=True)
    if not isinstance(raw, dict):
        raise ActionValidationError("action must be an object", index)
    try:
        return _action_adapter.validate_python(raw)
    except ValidationError as exc:
        raise ActionValidationError(_describe(exc), index) from exc


def validate_actions(raw_actions: Any) -> list[Action]:
    """Validate every action in order; the first failure rejects the batch."""
    if not isinstance(raw_actions, list):
        raise ActionValidationError("actions must be a list")
    return [validate_action(raw, index) for index, raw in enumerate(raw_actions)]


def validate_parsed_command(payload: Any) -> ParsedCommand:
    """Validate a parser envelope {actions, preview, requiresConfirm} as a whole."""
    if isinstance(payload, ParsedCommand):
        payload = payload.model_dump(by_alias=True, exclude_unset=True)
    if not isinstance(payload, dict):
        raise ActionValidationError("response must be an object")
    actions = validate_actions(payload.get("actions"))
    if not actions:
        raise ActionValidationError("actions must not be empty")
    if not isinstance(payload.get("preview"), str):
        raise ActionValidationError("preview must be a string")
    requires_confirm = payload.get("requiresConfirm", False)
    if not isinstance(requires_confirm, bool):
        raise ActionValidationError("requiresConfirm must be a boolean")
    return ParsedCommand(actions=actions, preview=payload["preview"], requires_confirm=requires_confirm)
