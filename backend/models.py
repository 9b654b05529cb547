from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Priority = Literal["high", "medium", "low"]
Category = Literal["work", "study", "personal"]
Energy = Literal["high", "medium", "low"]
Status = Literal["active", "done"]
TimeOfDay = Literal["morning", "afternoon", "evening"]

PRIORITIES: tuple[str, ...] = ("high", "medium", "low")
CATEGORIES: tuple[str, ...] = ("work", "study", "personal")
ENERGIES: tuple[str, ...] = ("high", "medium", "low")


class Task(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    deadline: Optional[date] = None  # calendar date, no time component
    priority: Priority = "medium"
    category: Category = "personal"
    energy: Energy = "medium"
    status: Status = "active"
    created_at: datetime
    done_at: Optional[datetime] = None
    priority_reason: Optional[str] = None  # set by the last successful ranking
    ai_hint: Optional[str] = None
    note: Optional[str] = None

    @model_validator(mode="after")
    def _done_at_matches_status(self) -> "Task":
        if (self.status == "done") != (self.done_at is not None):
            raise ValueError("done_at must be set if and only if status is 'done'")
        return self

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class TaskDraft(BaseModel):
    """A parsed task before the store assigns identity and timestamps."""
    title: str = Field(min_length=1)
    deadline: Optional[date] = None
    priority: Priority = "medium"
    category: Category = "personal"
    energy: Energy = "medium"
    ai_hint: Optional[str] = None
    note: Optional[str] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    deadline: Optional[date] = None
    priority: Optional[Priority] = None
    category: Optional[Category] = None
    energy: Optional[Energy] = None
    note: Optional[str] = None

    @field_validator("title", "priority", "category", "energy")
    @classmethod
    def not_null(cls, value):
        # Only deadline and note can be cleared
        if value is None:
            raise ValueError("field cannot be null")
        return value


class ParseRequest(BaseModel):
    text: str


class TaskSummary(BaseModel):
    """What the ranking oracle sees of a task."""
    id: str
    title: str
    priority: Priority
    energy: Energy
    deadline: Optional[date] = None
    category: Category

    @classmethod
    def from_task(cls, task: Task) -> "TaskSummary":
        return cls(
            id=task.id,
            title=task.title,
            priority=task.priority,
            energy=task.energy,
            deadline=task.deadline,
            category=task.category,
        )


class Ranking(BaseModel):
    order: list[str]
    reasons: dict[str, str] = Field(default_factory=dict)


class CachedReason(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    priority_reason: Optional[str] = Field(default=None, alias="priorityReason")


class PriorityCacheEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: list[CachedReason]
    at: int  # epoch milliseconds


class PriorityStatus(BaseModel):
    prioritized_at: Optional[datetime] = None
    cache_valid: bool = False


class Message(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: list[Message]


class ChatResponse(BaseModel):
    response: str
    added_task: Optional[Task] = None
    tasks: list[Task]


class Insight(BaseModel):
    text: str
    at: int  # epoch milliseconds


class CategoryStats(BaseModel):
    category: Category
    total: int
    done: int
    pct: int


class PriorityStats(BaseModel):
    priority: Priority
    total: int
    done: int


class DayStats(BaseModel):
    day: date
    created: int
    completed: int


class AnalyticsReport(BaseModel):
    total: int
    done: int
    active: int
    overdue: int
    flow_score: int
    flow_label: str
    by_category: list[CategoryStats]
    by_priority: list[PriorityStats]
    by_day: list[DayStats]
