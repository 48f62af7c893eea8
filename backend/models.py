import enum
import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base

# JSONB on PostgreSQL, plain JSON everywhere else (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def new_id() -> str:
    return str(uuid.uuid4())


class TodoStatus(str, enum.Enum):
    todo = "todo"
    in_progress = "in_progress"
    done = "done"


class TodoPriority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class RecurrencePattern(str, enum.Enum):
    none = "none"
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"


class UserRole(str, enum.Enum):
    admin = "admin"
    member = "member"


class ActivityAction(str, enum.Enum):
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


class GoalStatus(str, enum.Enum):
    not_started = "not_started"
    in_progress = "in_progress"
    on_hold = "on_hold"
    completed = "completed"
    cancelled = "cancelled"


class GoalPriority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), unique=True, nullable=False, index=True)
    color = Column(String(20), nullable=False, default="#0033A0")
    pin_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.member.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_login = Column(DateTime(timezone=True), nullable=True)
    welcome_shown_at = Column(DateTime(timezone=True), nullable=True)

    # Daily login streak
    streak_count = Column(Integer, nullable=False, default=0)
    streak_last_date = Column(Date, nullable=True)


class Todo(Base):
    __tablename__ = "todos"

    id = Column(String(36), primary_key=True, default=new_id)
    text = Column(String(500), nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    # Stored as plain strings so older rows without the newer columns still load
    status = Column(String(20), nullable=False, default=TodoStatus.todo.value)
    priority = Column(String(20), nullable=False, default=TodoPriority.medium.value)
    due_date = Column(Date, nullable=True)
    assigned_to = Column(String(100), nullable=True, index=True)
    created_by = Column(String(100), nullable=False, index=True)
    notes = Column(Text, nullable=True)
    recurrence = Column(String(20), nullable=True)
    subtasks = Column(JSONType, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    updated_by = Column(String(100), nullable=True)


class ActivityLog(Base):
    __tablename__ = "activity_log"

    id = Column(String(36), primary_key=True, default=new_id)
    action = Column(String(50), nullable=False, index=True)
    todo_id = Column(String(36), nullable=True, index=True)
    todo_text = Column(Text, nullable=True)
    user_name = Column(String(100), nullable=False, index=True)
    details = Column(JSONType, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class TaskTemplate(Base):
    __tablename__ = "task_templates"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    default_priority = Column(String(20), nullable=False, default=TodoPriority.medium.value)
    default_assigned_to = Column(String(100), nullable=True)
    subtasks = Column(JSONType, default=list)
    created_by = Column(String(100), nullable=False, index=True)
    is_shared = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class GoalCategory(Base):
    __tablename__ = "goal_categories"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    color = Column(String(20), nullable=False, default="#6366f1")
    icon = Column(String(50), nullable=False, default="target")
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    goals = relationship("StrategicGoal", back_populates="category")


class StrategicGoal(Base):
    __tablename__ = "strategic_goals"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column(String(36), ForeignKey("goal_categories.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), nullable=False, default=GoalStatus.not_started.value)
    priority = Column(String(20), nullable=False, default=GoalPriority.medium.value)
    target_date = Column(Date, nullable=True)
    target_value = Column(String(100), nullable=True)
    current_value = Column(String(100), nullable=True)
    progress_percent = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)
    created_by = Column(String(100), nullable=False)
    updated_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    category = relationship("GoalCategory", back_populates="goals")
    milestones = relationship(
        "GoalMilestone",
        back_populates="goal",
        cascade="all, delete-orphan",
        order_by="GoalMilestone.display_order",
    )


class GoalMilestone(Base):
    __tablename__ = "goal_milestones"

    id = Column(String(36), primary_key=True, default=new_id)
    goal_id = Column(String(36), ForeignKey("strategic_goals.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    target_date = Column(Date, nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    goal = relationship("StrategicGoal", back_populates="milestones")
