from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

TaskStatus = Literal["pending", "completed"]


class Owner(BaseModel):
    """Already-authenticated identity every task query is scoped to."""
    model_config = ConfigDict(frozen=True)

    id: str
    is_guest: bool = False

    @property
    def column(self) -> str:
        return "guest_id" if self.is_guest else "owner_id"


class Task(BaseModel):
    id: str
    owner_id: Optional[str] = None
    guest_id: Optional[str] = None  # exactly one of owner_id / guest_id is set
    title: str
    description: Optional[str] = None
    status: TaskStatus = "pending"
    due_at: Optional[datetime] = None
    due_date: Optional[date] = None  # always the projection of due_at
    recurrence_rule: Optional[str] = None
    recurrence_timezone: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class CommandRequest(BaseModel):
    input: str = Field(min_length=1)


class ConfirmRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    confirm_token: str = Field(min_length=1)


class TaskSuggestion(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str
    weekday: str  # MO..SU
    count: int
    recurrence_rule: str
