import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from time_utils import ensure_aware, utc_now


class TodoStatus(str, Enum):
    todo = "todo"
    in_progress = "in_progress"
    done = "done"


class TodoPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class RecurrencePattern(str, Enum):
    none = "none"
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"


class UserRole(str, Enum):
    admin = "admin"
    member = "member"


class ActivityAction(str, Enum):
    """
    Known activity log actions.

    Mirrors models.ActivityAction; the database column is a plain string
    so new actions can be added without a migration.
    """
    task_created = "task_created"
    task_updated = "task_updated"
    task_deleted = "task_deleted"
    task_completed = "task_completed"
    task_reopened = "task_reopened"
    status_changed = "status_changed"
    priority_changed = "priority_changed"
    assigned_to_changed = "assigned_to_changed"
    due_date_changed = "due_date_changed"
    subtask_added = "subtask_added"
    subtask_completed = "subtask_completed"
    subtask_deleted = "subtask_deleted"
    notes_updated = "notes_updated"
    template_created = "template_created"
    template_used = "template_used"


class GoalStatus(str, Enum):
    not_started = "not_started"
    in_progress = "in_progress"
    on_hold = "on_hold"
    completed = "completed"
    cancelled = "cancelled"


class GoalPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class ChangeEventType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


TODO_TEXT_MAX_LENGTH = 500


def new_id() -> str:
    return str(uuid.uuid4())


def _blank_recurrence_to_none(value: Any) -> Any:
    # "none" and null mean the same thing; keep a single representation
    if value in ("", "none", RecurrencePattern.none):
        return None
    return value


# Todo schemas
class Subtask(BaseModel):
    id: str = Field(default_factory=new_id)
    text: str = Field(..., min_length=1, max_length=TODO_TEXT_MAX_LENGTH)
    completed: bool = False
    priority: TodoPriority = TodoPriority.medium
    estimated_minutes: Optional[int] = Field(None, ge=1)


class Todo(BaseModel):
    id: str
    text: str
    completed: bool = False
    status: TodoStatus = TodoStatus.todo
    priority: TodoPriority = TodoPriority.medium
    due_date: Optional[date] = None
    assigned_to: Optional[str] = None
    created_by: str
    notes: Optional[str] = None
    recurrence: Optional[RecurrencePattern] = None
    subtasks: List[Subtask] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None

    class Config:
        from_attributes = True

    @field_validator("subtasks", mode="before")
    @classmethod
    def _subtasks_default(cls, value: Any) -> Any:
        return value or []

    @field_validator("recurrence", mode="before")
    @classmethod
    def _recurrence_none(cls, value: Any) -> Any:
        return _blank_recurrence_to_none(value)

    @field_validator("assigned_to", mode="before")
    @classmethod
    def _assignee_blank(cls, value: Any) -> Any:
        return value or None

    @field_validator("created_at", "updated_at")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(value)

    def with_completed(self, completed: bool) -> "Todo":
        """Copy with the completion flag set and the status kept in lockstep."""
        if completed:
            status = TodoStatus.done
        elif self.status == TodoStatus.done:
            status = TodoStatus.todo
        else:
            status = self.status
        return self.model_copy(update={"completed": completed, "status": status})

    def with_status(self, status: TodoStatus) -> "Todo":
        """Copy with a new status and the completion flag kept in lockstep."""
        status = TodoStatus(status)
        return self.model_copy(update={"status": status, "completed": status == TodoStatus.done})


class TodoCreate(BaseModel):
    id: Optional[str] = Field(None, min_length=1, max_length=36)
    text: str = Field(..., min_length=1, max_length=TODO_TEXT_MAX_LENGTH)
    completed: Optional[bool] = None
    status: Optional[TodoStatus] = None
    priority: TodoPriority = TodoPriority.medium
    due_date: Optional[date] = None
    assigned_to: Optional[str] = None
    notes: Optional[str] = None
    recurrence: Optional[RecurrencePattern] = None
    subtasks: List[Subtask] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    @field_validator("text")
    @classmethod
    def _strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("text cannot be empty or whitespace only")
        return value

    @field_validator("recurrence", mode="before")
    @classmethod
    def _recurrence_none(cls, value: Any) -> Any:
        return _blank_recurrence_to_none(value)


class TodoUpdate(BaseModel):
    """Partial update. Fields left unset are untouched; explicit nulls clear."""
    text: Optional[str] = Field(None, min_length=1, max_length=TODO_TEXT_MAX_LENGTH)
    completed: Optional[bool] = None
    status: Optional[TodoStatus] = None
    priority: Optional[TodoPriority] = None
    due_date: Optional[date] = None
    assigned_to: Optional[str] = None
    notes: Optional[str] = None
    recurrence: Optional[RecurrencePattern] = None
    subtasks: Optional[List[Subtask]] = None

    @field_validator("recurrence", mode="before")
    @classmethod
    def _recurrence_none(cls, value: Any) -> Any:
        return _blank_recurrence_to_none(value)


# Realtime schemas
class ChangeEvent(BaseModel):
    table: str
    event_type: ChangeEventType
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None
    commit_timestamp: datetime = Field(default_factory=utc_now)

    @property
    def record_id(self) -> Optional[str]:
        record = self.new or self.old or {}
        return record.get("id")


# User schemas
class UserPublic(BaseModel):
    id: str
    name: str
    color: str
    role: UserRole = UserRole.member

    class Config:
        from_attributes = True


class UserProfile(UserPublic):
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None
    welcome_shown_at: Optional[datetime] = None
    streak_count: int = 0
    streak_last_date: Optional[date] = None


# Activity schemas
class ActivityCreate(BaseModel):
    action: ActivityAction
    todo_id: Optional[str] = None
    todo_text: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class ActivityEntry(BaseModel):
    id: str
    action: str
    todo_id: Optional[str] = None
    todo_text: Optional[str] = None
    user_name: str
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("details", mode="before")
    @classmethod
    def _details_default(cls, value: Any) -> Any:
        return value or {}


# Template schemas
class TemplateSubtask(BaseModel):
    text: str = Field(..., min_length=1, max_length=TODO_TEXT_MAX_LENGTH)
    priority: TodoPriority = TodoPriority.medium
    estimated_minutes: Optional[int] = Field(None, ge=1)


class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    default_priority: TodoPriority = TodoPriority.medium
    default_assigned_to: Optional[str] = None
    subtasks: List[TemplateSubtask] = Field(default_factory=list)
    is_shared: bool = False


class Template(TemplateCreate):
    id: str
    created_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("subtasks", mode="before")
    @classmethod
    def _subtasks_default(cls, value: Any) -> Any:
        return value or []


class TemplateUse(BaseModel):
    id: Optional[str] = Field(None, min_length=1, max_length=36)
    due_date: Optional[date] = None
    assigned_to: Optional[str] = None


# Goal schemas
class GoalCategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: str = "#6366f1"
    icon: str = "target"
    display_order: int = 0


class GoalCategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    color: Optional[str] = None
    icon: Optional[str] = None
    display_order: Optional[int] = None


class GoalCategory(GoalCategoryCreate):
    id: str

    class Config:
        from_attributes = True


class MilestoneCreate(BaseModel):
    goal_id: str
    title: str = Field(..., min_length=1, max_length=255)
    target_date: Optional[date] = None


class MilestoneUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    completed: Optional[bool] = None
    target_date: Optional[date] = None
    display_order: Optional[int] = None


class Milestone(BaseModel):
    id: str
    goal_id: str
    title: str
    completed: bool = False
    target_date: Optional[date] = None
    display_order: int = 0

    class Config:
        from_attributes = True


class GoalCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    category_id: Optional[str] = None
    status: GoalStatus = GoalStatus.not_started
    priority: GoalPriority = GoalPriority.medium
    target_date: Optional[date] = None
    target_value: Optional[str] = None
    current_value: Optional[str] = None
    notes: Optional[str] = None


class GoalUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category_id: Optional[str] = None
    status: Optional[GoalStatus] = None
    priority: Optional[GoalPriority] = None
    target_date: Optional[date] = None
    target_value: Optional[str] = None
    current_value: Optional[str] = None
    progress_percent: Optional[int] = Field(None, ge=0, le=100)
    notes: Optional[str] = None


class Goal(GoalCreate):
    id: str
    progress_percent: int = 0
    created_by: str
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    milestones: List[Milestone] = Field(default_factory=list)

    class Config:
        from_attributes = True


# AI parsing schemas (camelCase on the wire to match the parsing contract)
class ParsedSubtask(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    priority: TodoPriority = TodoPriority.medium
    estimated_minutes: Optional[int] = Field(None, alias="estimatedMinutes")


class ParsedMainTask(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    priority: TodoPriority = TodoPriority.medium
    due_date: str = Field("", alias="dueDate")
    assigned_to: str = Field("", alias="assignedTo")


class SmartParseResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    main_task: ParsedMainTask = Field(..., alias="mainTask")
    subtasks: List[ParsedSubtask] = Field(default_factory=list)
    summary: str = ""
    was_complex: bool = Field(False, alias="wasComplex")


class FileParseResult(SmartParseResult):
    document_summary: str = Field("", alias="documentSummary")
    extracted_text: str = Field("", alias="extractedText")


class EnhancedTask(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    priority: TodoPriority = TodoPriority.medium
    due_date: str = Field("", alias="dueDate")
    assigned_to: str = Field("", alias="assignedTo")
    was_enhanced: bool = Field(False, alias="wasEnhanced")


class SmartParseRequest(BaseModel):
    text: str = ""
    users: List[str] = Field(default_factory=list)
