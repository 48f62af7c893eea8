from fastapi import FastAPI, HTTPException, Depends, Query, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
from typing import Any, Dict, List, Optional, Tuple
import logging

from config import (
    ACTIVITY_FEED_USERS,
    AI_TIMEOUT_SECONDS,
    ANTHROPIC_API_KEY,
    ANTHROPIC_BASE_URL,
    ANTHROPIC_MODEL,
    CORS_ORIGINS,
    LOCKOUT_MAX_ATTEMPTS,
    LOCKOUT_SECONDS,
    LOG_LEVEL,
    OPENAI_API_KEY,
    SERVER_HOST,
    SERVER_PORT,
    TRANSCRIBE_MODEL,
)
from database import get_db, engine, Base
import models
import schemas
from time_utils import utc_now
from realtime import ChangeBroadcaster, stream_events
from auth.routes import router as auth_router
from auth.dependencies import get_current_user, require_role
from auth.lockout import LockoutTable
from ai.llm import AIServiceError, AnthropicMessagesAdapter
from ai.routes import router as ai_router
from ai.transcribe import OpenAITranscriber
from sync.factory import todo_from_template

# Configure logging
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Shared Todo List API",
    description="A shared team todo list with PIN login, realtime updates and AI task entry",
    version="1.0.0"
)

# Per-process state; tests replace these on app.state
app.state.lockouts = LockoutTable(max_attempts=LOCKOUT_MAX_ATTEMPTS, lockout_seconds=LOCKOUT_SECONDS)
app.state.broadcaster = ChangeBroadcaster()
app.state.llm = AnthropicMessagesAdapter(
    api_key=ANTHROPIC_API_KEY,
    model=ANTHROPIC_MODEL,
    base_url=ANTHROPIC_BASE_URL,
    timeout_s=AI_TIMEOUT_SECONDS,
)
app.state.transcriber = OpenAITranscriber(
    api_key=OPENAI_API_KEY,
    model=TRANSCRIBE_MODEL,
    timeout_s=AI_TIMEOUT_SECONDS,
)

# CORS middleware for browser clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(auth_router)
app.include_router(ai_router)


# ============== Startup ==============

@app.on_event("startup")
def create_tables():
    """Create missing tables. Existing tables are left untouched."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")


# ============== Error Responses ==============

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail, "detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    logger.info(f"Validation failed on {request.url.path}: {message}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": message, "detail": errors},
    )


@app.exception_handler(AIServiceError)
async def ai_service_exception_handler(request: Request, exc: AIServiceError):
    logger.error(f"AI service error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "Failed to parse content", "details": str(exc)},
    )


# ============== Helper Functions ==============

def get_broadcaster(request: Request) -> ChangeBroadcaster:
    return request.app.state.broadcaster


def serialize_todo(todo: models.Todo) -> Dict[str, Any]:
    return schemas.Todo.model_validate(todo).model_dump(mode="json")


def log_activity(
    db: Session,
    action: schemas.ActivityAction,
    user_name: str,
    todo_id: Optional[str] = None,
    todo_text: Optional[str] = None,
    details: Optional[dict] = None,
    commit: bool = False
) -> models.ActivityLog:
    """
    Record an activity log entry.

    Args:
        db: Database session
        action: What happened (from ActivityAction enum)
        user_name: Name of the user who did it
        todo_id: Task the entry refers to (optional)
        todo_text: Task text at the time, kept so deleted tasks still read well (optional)
        details: Additional context as JSON (optional)
        commit: Whether to commit immediately (default False, the caller commits with its own change)

    Returns:
        Created ActivityLog instance
    """
    action = schemas.ActivityAction(action)
    logger.debug(f"Logging activity: action={action.value}, todo_id={todo_id}, user={user_name}")

    entry = models.ActivityLog(
        action=action.value,
        todo_id=todo_id,
        todo_text=todo_text,
        user_name=user_name,
        details=details or {},
    )
    db.add(entry)
    db.flush()

    if commit:
        db.commit()
        db.refresh(entry)
    return entry


def require_known_user(db: Session, name: Optional[str]) -> None:
    """Reject assignment to a name that has no account."""
    if not name:
        return
    if not db.query(models.User).filter(models.User.name == name).first():
        logger.info(f"Rejected assignment to unknown user: {name}")
        raise HTTPException(status_code=400, detail=f"Unknown user: {name}")


def get_todo_or_404(db: Session, todo_id: str) -> models.Todo:
    todo = db.query(models.Todo).filter(models.Todo.id == todo_id).first()
    if not todo:
        raise HTTPException(status_code=404, detail="Todo not found")
    return todo


def insert_todo(db: Session, todo: schemas.Todo) -> models.Todo:
    """Add a validated task to the session, flushing to surface id clashes as 409."""
    row = models.Todo(
        id=todo.id,
        text=todo.text,
        completed=todo.completed,
        status=todo.status.value,
        priority=todo.priority.value,
        due_date=todo.due_date,
        assigned_to=todo.assigned_to,
        created_by=todo.created_by,
        notes=todo.notes,
        recurrence=todo.recurrence.value if todo.recurrence else None,
        subtasks=[subtask.model_dump(mode="json") for subtask in todo.subtasks],
        created_at=todo.created_at,
    )
    db.add(row)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        logger.info(f"Todo id already exists: {todo.id}")
        raise HTTPException(status_code=409, detail="Todo with this id already exists")
    return row


def describe_todo_changes(before: schemas.Todo, after: schemas.Todo) -> List[Tuple[schemas.ActivityAction, dict]]:
    """Activity entries for the fields that differ between two versions of a task."""
    Action = schemas.ActivityAction
    entries = []

    if before.completed != after.completed:
        entries.append((Action.task_completed if after.completed else Action.task_reopened, {}))
    elif before.status != after.status:
        entries.append((Action.status_changed, {"from": before.status.value, "to": after.status.value}))

    if before.priority != after.priority:
        entries.append((Action.priority_changed, {"from": before.priority.value, "to": after.priority.value}))
    if before.assigned_to != after.assigned_to:
        entries.append((Action.assigned_to_changed, {"from": before.assigned_to, "to": after.assigned_to}))
    if before.due_date != after.due_date:
        entries.append((Action.due_date_changed, {
            "from": before.due_date.isoformat() if before.due_date else None,
            "to": after.due_date.isoformat() if after.due_date else None,
        }))
    if before.notes != after.notes:
        entries.append((Action.notes_updated, {}))

    old_subtasks = {subtask.id: subtask for subtask in before.subtasks}
    new_subtasks = {subtask.id: subtask for subtask in after.subtasks}
    for subtask_id, subtask in new_subtasks.items():
        previous = old_subtasks.get(subtask_id)
        if previous is None:
            entries.append((Action.subtask_added, {"subtask": subtask.text}))
        elif subtask.completed and not previous.completed:
            entries.append((Action.subtask_completed, {"subtask": subtask.text}))
    for subtask_id, subtask in old_subtasks.items():
        if subtask_id not in new_subtasks:
            entries.append((Action.subtask_deleted, {"subtask": subtask.text}))

    changed = []
    if before.text != after.text:
        changed.append("text")
    if before.recurrence != after.recurrence:
        changed.append("recurrence")
    if changed:
        entries.append((Action.task_updated, {"fields": changed}))
    return entries


def recompute_goal_progress(goal: models.StrategicGoal) -> None:
    """Derive progress from milestones; goals without milestones keep their manual value."""
    milestones = list(goal.milestones)
    if not milestones:
        return
    completed = sum(1 for milestone in milestones if milestone.completed)
    goal.progress_percent = round(100 * completed / len(milestones))


# ============== Health ==============

@app.get("/health")
def health():
    return {"status": "ok"}


# ============== Todos ==============

@app.get("/api/todos", response_model=List[schemas.Todo])
def list_todos(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List every task, newest first."""
    logger.debug(f"User {current_user.name} listing todos")
    return db.query(models.Todo).order_by(models.Todo.created_at.desc(), models.Todo.id).all()


@app.get("/api/todos/{todo_id}", response_model=schemas.Todo)
def get_todo(
    todo_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return get_todo_or_404(db, todo_id)


@app.post("/api/todos", response_model=schemas.Todo, status_code=201)
def create_todo(
    data: schemas.TodoCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    broadcaster: ChangeBroadcaster = Depends(get_broadcaster)
):
    """
    Create a task.

    A client-supplied id is kept so optimistic inserts and their realtime
    echo share one identity. The creator is always the signed-in user.
    """
    logger.debug(f"User {current_user.name} creating todo: id={data.id}, text={data.text[:50]}")

    if data.id and db.query(models.Todo).filter(models.Todo.id == data.id).first():
        raise HTTPException(status_code=409, detail="Todo with this id already exists")
    require_known_user(db, data.assigned_to)

    # Completion lockstep: status wins when both are given
    if data.status is not None:
        todo_status = data.status
    elif data.completed:
        todo_status = schemas.TodoStatus.done
    else:
        todo_status = schemas.TodoStatus.todo

    todo = schemas.Todo(
        id=data.id or schemas.new_id(),
        text=data.text,
        status=todo_status,
        completed=todo_status == schemas.TodoStatus.done,
        priority=data.priority,
        due_date=data.due_date,
        assigned_to=data.assigned_to,
        created_by=current_user.name,
        notes=data.notes,
        recurrence=data.recurrence,
        subtasks=data.subtasks,
        created_at=data.created_at or utc_now(),
    )
    row = insert_todo(db, todo)
    log_activity(db, schemas.ActivityAction.task_created, current_user.name, row.id, row.text)
    db.commit()
    db.refresh(row)

    logger.info(f"Todo created: {row.id} by {current_user.name}")
    payload = serialize_todo(row)
    broadcaster.publish_change("todos", schemas.ChangeEventType.INSERT, new=payload)
    return payload


@app.patch("/api/todos/{todo_id}", response_model=schemas.Todo)
def update_todo(
    todo_id: str,
    data: schemas.TodoUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    broadcaster: ChangeBroadcaster = Depends(get_broadcaster)
):
    """
    Partially update a task.

    Only fields present in the body change; an explicit null clears a
    nullable field. The creator cannot be changed.
    """
    row = get_todo_or_404(db, todo_id)
    changes = data.model_dump(exclude_unset=True)
    logger.debug(f"User {current_user.name} updating todo {todo_id}: fields={sorted(changes)}")

    for field in ("text", "completed", "status", "priority"):
        if field in changes and changes[field] is None:
            raise HTTPException(status_code=400, detail=f"{field} cannot be null")
    if "text" in changes:
        changes["text"] = changes["text"].strip()
        if not changes["text"]:
            raise HTTPException(status_code=400, detail="text cannot be empty or whitespace only")
    if "assigned_to" in changes:
        changes["assigned_to"] = changes["assigned_to"] or None
        require_known_user(db, changes["assigned_to"])

    before = schemas.Todo.model_validate(row)
    after = before.model_copy(update={
        key: value for key, value in changes.items()
        if key not in ("completed", "status", "subtasks")
    })
    if "subtasks" in changes:
        after = after.model_copy(update={"subtasks": data.subtasks or []})
    if "status" in changes:
        after = after.with_status(data.status)
    elif "completed" in changes:
        after = after.with_completed(data.completed)

    row.text = after.text
    row.completed = after.completed
    row.status = schemas.TodoStatus(after.status).value
    row.priority = schemas.TodoPriority(after.priority).value
    row.due_date = after.due_date
    row.assigned_to = after.assigned_to
    row.notes = after.notes
    row.recurrence = schemas.RecurrencePattern(after.recurrence).value if after.recurrence else None
    row.subtasks = [subtask.model_dump(mode="json") for subtask in after.subtasks]
    row.updated_at = utc_now()
    row.updated_by = current_user.name

    for action, details in describe_todo_changes(before, schemas.Todo.model_validate(row)):
        log_activity(db, action, current_user.name, row.id, row.text, details)
    db.commit()
    db.refresh(row)

    logger.info(f"Todo updated: {row.id} by {current_user.name}")
    payload = serialize_todo(row)
    broadcaster.publish_change(
        "todos", schemas.ChangeEventType.UPDATE,
        new=payload, old=before.model_dump(mode="json"),
    )
    return payload


@app.delete("/api/todos/{todo_id}", status_code=204)
def delete_todo(
    todo_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    broadcaster: ChangeBroadcaster = Depends(get_broadcaster)
):
    """Delete a task. Deleting a task that is already gone succeeds."""
    row = db.query(models.Todo).filter(models.Todo.id == todo_id).first()
    if not row:
        logger.debug(f"Delete of missing todo {todo_id} ignored")
        return Response(status_code=204)

    old = serialize_todo(row)
    log_activity(db, schemas.ActivityAction.task_deleted, current_user.name, row.id, row.text)
    db.delete(row)
    db.commit()

    logger.info(f"Todo deleted: {todo_id} by {current_user.name}")
    broadcaster.publish_change("todos", schemas.ChangeEventType.DELETE, old=old)
    return Response(status_code=204)


# ============== Templates ==============

def visible_templates(db: Session, user: models.User):
    return db.query(models.TaskTemplate).filter(
        (models.TaskTemplate.created_by == user.name) | (models.TaskTemplate.is_shared.is_(True))
    )


@app.get("/api/templates", response_model=List[schemas.Template])
def list_templates(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """The user's own templates plus every shared one, newest first."""
    return visible_templates(db, current_user).order_by(models.TaskTemplate.created_at.desc()).all()


@app.post("/api/templates", response_model=schemas.Template, status_code=201)
def create_template(
    data: schemas.TemplateCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    logger.debug(f"User {current_user.name} creating template: {data.name}")
    require_known_user(db, data.default_assigned_to)

    template = models.TaskTemplate(
        name=data.name.strip(),
        description=data.description or None,
        default_priority=data.default_priority.value,
        default_assigned_to=data.default_assigned_to or None,
        subtasks=[subtask.model_dump(mode="json") for subtask in data.subtasks],
        created_by=current_user.name,
        is_shared=data.is_shared,
    )
    db.add(template)
    db.flush()
    log_activity(
        db, schemas.ActivityAction.template_created, current_user.name,
        details={"template_name": template.name, "is_shared": template.is_shared},
    )
    db.commit()
    db.refresh(template)

    logger.info(f"Template created: {template.id} ({template.name}) by {current_user.name}")
    return template


@app.delete("/api/templates/{template_id}")
def delete_template(
    template_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete a template. Only its creator may do so."""
    template = db.query(models.TaskTemplate).filter(
        models.TaskTemplate.id == template_id,
        models.TaskTemplate.created_by == current_user.name,
    ).first()
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")

    db.delete(template)
    db.commit()
    logger.info(f"Template deleted: {template_id} by {current_user.name}")
    return {"success": True}


@app.post("/api/templates/{template_id}/use", response_model=schemas.Todo, status_code=201)
def use_template(
    template_id: str,
    data: schemas.TemplateUse,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    broadcaster: ChangeBroadcaster = Depends(get_broadcaster)
):
    """Create a task from a template."""
    template_row = visible_templates(db, current_user).filter(models.TaskTemplate.id == template_id).first()
    if not template_row:
        raise HTTPException(status_code=404, detail="Template not found")
    if data.id and db.query(models.Todo).filter(models.Todo.id == data.id).first():
        raise HTTPException(status_code=409, detail="Todo with this id already exists")

    template = schemas.Template.model_validate(template_row)
    todo = todo_from_template(
        template,
        created_by=current_user.name,
        due_date=data.due_date,
        assigned_to=data.assigned_to,
        todo_id=data.id,
    )
    require_known_user(db, todo.assigned_to)

    row = insert_todo(db, todo)
    log_activity(db, schemas.ActivityAction.task_created, current_user.name, row.id, row.text)
    log_activity(
        db, schemas.ActivityAction.template_used, current_user.name, row.id, row.text,
        {"template_id": template.id, "template_name": template.name},
    )
    db.commit()
    db.refresh(row)

    logger.info(f"Template {template.id} used by {current_user.name}: todo {row.id}")
    payload = serialize_todo(row)
    broadcaster.publish_change("todos", schemas.ChangeEventType.INSERT, new=payload)
    return payload


# ============== Activity ==============

@app.get("/api/activity", response_model=List[schemas.ActivityEntry])
def list_activity(
    limit: int = Query(50, ge=1, le=200),
    todo_id: Optional[str] = Query(None, description="Only entries for this task"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Activity feed, newest first. Restricted to ACTIVITY_FEED_USERS when that is configured."""
    if ACTIVITY_FEED_USERS and current_user.name not in ACTIVITY_FEED_USERS:
        logger.info(f"Activity feed denied for {current_user.name}")
        raise HTTPException(status_code=403, detail="Unauthorized")

    query = db.query(models.ActivityLog)
    if todo_id:
        query = query.filter(models.ActivityLog.todo_id == todo_id)
    return query.order_by(models.ActivityLog.created_at.desc(), models.ActivityLog.id).limit(limit).all()


@app.post("/api/activity", response_model=schemas.ActivityEntry, status_code=201)
def create_activity(
    data: schemas.ActivityCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    entry = log_activity(
        db, data.action, current_user.name, data.todo_id or None, data.todo_text or None, data.details,
        commit=True,
    )
    return entry


# ============== Goal Categories ==============

@app.get("/api/goals/categories", response_model=List[schemas.GoalCategory])
def list_goal_categories(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return db.query(models.GoalCategory).order_by(
        models.GoalCategory.display_order, models.GoalCategory.name
    ).all()


@app.post("/api/goals/categories", response_model=schemas.GoalCategory, status_code=201)
def create_goal_category(
    data: schemas.GoalCategoryCreate,
    current_user: models.User = Depends(require_role("admin")),
    db: Session = Depends(get_db)
):
    category = models.GoalCategory(**data.model_dump())
    db.add(category)
    db.commit()
    db.refresh(category)
    logger.info(f"Goal category created: {category.name}")
    return category


@app.put("/api/goals/categories/{category_id}", response_model=schemas.GoalCategory)
def update_goal_category(
    category_id: str,
    data: schemas.GoalCategoryUpdate,
    current_user: models.User = Depends(require_role("admin")),
    db: Session = Depends(get_db)
):
    category = db.query(models.GoalCategory).filter(models.GoalCategory.id == category_id).first()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    for key, value in data.model_dump(exclude_unset=True).items():
        if value is None:
            raise HTTPException(status_code=400, detail=f"{key} cannot be null")
        setattr(category, key, value)
    db.commit()
    db.refresh(category)
    return category


@app.delete("/api/goals/categories/{category_id}")
def delete_goal_category(
    category_id: str,
    current_user: models.User = Depends(require_role("admin")),
    db: Session = Depends(get_db)
):
    """Delete a category; its goals become uncategorised."""
    category = db.query(models.GoalCategory).filter(models.GoalCategory.id == category_id).first()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    db.query(models.StrategicGoal).filter(
        models.StrategicGoal.category_id == category_id
    ).update({models.StrategicGoal.category_id: None}, synchronize_session=False)
    db.delete(category)
    db.commit()
    logger.info(f"Goal category deleted: {category_id}")
    return {"success": True}


# ============== Goal Milestones ==============

def get_goal_or_404(db: Session, goal_id: str) -> models.StrategicGoal:
    goal = db.query(models.StrategicGoal).options(
        selectinload(models.StrategicGoal.milestones)
    ).filter(models.StrategicGoal.id == goal_id).first()
    if not goal:
        raise HTTPException(status_code=404, detail="Goal not found")
    return goal


def get_milestone_or_404(db: Session, milestone_id: str) -> models.GoalMilestone:
    milestone = db.query(models.GoalMilestone).filter(models.GoalMilestone.id == milestone_id).first()
    if not milestone:
        raise HTTPException(status_code=404, detail="Milestone not found")
    return milestone


@app.post("/api/goals/milestones", response_model=schemas.Milestone, status_code=201)
def create_milestone(
    data: schemas.MilestoneCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    goal = get_goal_or_404(db, data.goal_id)
    display_order = max((m.display_order for m in goal.milestones), default=-1) + 1
    milestone = models.GoalMilestone(
        title=data.title.strip(),
        target_date=data.target_date,
        display_order=display_order,
    )
    goal.milestones.append(milestone)
    recompute_goal_progress(goal)
    goal.updated_by = current_user.name
    db.commit()
    db.refresh(milestone)
    logger.info(f"Milestone added to goal {goal.id}: {milestone.title}")
    return milestone


@app.put("/api/goals/milestones/{milestone_id}", response_model=schemas.Milestone)
def update_milestone(
    milestone_id: str,
    data: schemas.MilestoneUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    milestone = get_milestone_or_404(db, milestone_id)
    changes = data.model_dump(exclude_unset=True)
    for field in ("title", "completed", "display_order"):
        if field in changes and changes[field] is None:
            raise HTTPException(status_code=400, detail=f"{field} cannot be null")
    for key, value in changes.items():
        setattr(milestone, key, value)

    goal = get_goal_or_404(db, milestone.goal_id)
    recompute_goal_progress(goal)
    goal.updated_by = current_user.name
    db.commit()
    db.refresh(milestone)
    return milestone


@app.delete("/api/goals/milestones/{milestone_id}")
def delete_milestone(
    milestone_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    milestone = get_milestone_or_404(db, milestone_id)
    goal = get_goal_or_404(db, milestone.goal_id)
    goal.milestones.remove(milestone)
    recompute_goal_progress(goal)
    goal.updated_by = current_user.name
    db.commit()
    logger.info(f"Milestone deleted: {milestone_id}")
    return {"success": True}


# ============== Goals ==============

@app.get("/api/goals", response_model=List[schemas.Goal])
def list_goals(
    category_id: Optional[str] = Query(None),
    status: Optional[schemas.GoalStatus] = Query(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = db.query(models.StrategicGoal).options(selectinload(models.StrategicGoal.milestones))
    if category_id:
        query = query.filter(models.StrategicGoal.category_id == category_id)
    if status:
        query = query.filter(models.StrategicGoal.status == status.value)
    return query.order_by(models.StrategicGoal.created_at.desc(), models.StrategicGoal.id).all()


@app.get("/api/goals/{goal_id}", response_model=schemas.Goal)
def get_goal(
    goal_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return get_goal_or_404(db, goal_id)


@app.post("/api/goals", response_model=schemas.Goal, status_code=201)
def create_goal(
    data: schemas.GoalCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    if data.category_id and not db.query(models.GoalCategory).filter(
        models.GoalCategory.id == data.category_id
    ).first():
        raise HTTPException(status_code=400, detail="Category not found")

    values = data.model_dump()
    values["status"] = data.status.value
    values["priority"] = data.priority.value
    goal = models.StrategicGoal(**values, created_by=current_user.name)
    db.add(goal)
    db.commit()
    db.refresh(goal)
    logger.info(f"Goal created: {goal.id} ({goal.title}) by {current_user.name}")
    return goal


@app.put("/api/goals/{goal_id}", response_model=schemas.Goal)
def update_goal(
    goal_id: str,
    data: schemas.GoalUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    goal = get_goal_or_404(db, goal_id)
    changes = data.model_dump(exclude_unset=True)
    for field in ("title", "status", "priority", "progress_percent"):
        if field in changes and changes[field] is None:
            raise HTTPException(status_code=400, detail=f"{field} cannot be null")
    if changes.get("category_id") and not db.query(models.GoalCategory).filter(
        models.GoalCategory.id == changes["category_id"]
    ).first():
        raise HTTPException(status_code=400, detail="Category not found")

    for key, value in changes.items():
        if key in ("status", "priority"):
            value = value.value
        setattr(goal, key, value)
    # Milestones, when present, own the progress figure
    recompute_goal_progress(goal)
    goal.updated_by = current_user.name
    db.commit()
    db.refresh(goal)
    return goal


@app.delete("/api/goals/{goal_id}")
def delete_goal(
    goal_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    goal = get_goal_or_404(db, goal_id)
    db.delete(goal)
    db.commit()
    logger.info(f"Goal deleted: {goal_id} by {current_user.name}")
    return {"success": True}


# ============== Realtime ==============

@app.get("/api/realtime/{table}")
async def subscribe_changes(
    table: str,
    request: Request,
    event: str = Query("*", description="INSERT, UPDATE, DELETE or * for all"),
    current_user: models.User = Depends(get_current_user),
    broadcaster: ChangeBroadcaster = Depends(get_broadcaster)
):
    """Server-Sent Events stream of change events for one table."""
    if event != "*" and event not in {e.value for e in schemas.ChangeEventType}:
        raise HTTPException(status_code=400, detail=f"Unknown event type: {event}")

    subscription = broadcaster.subscribe(table, event)
    logger.info(f"User {current_user.name} subscribed to {table} ({event})")
    return StreamingResponse(
        stream_events(broadcaster, subscription, request.is_disconnected),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


if __name__ == "__main__":
    import uvicorn

    logger.info(f"🚀 Starting shared todo list API on {SERVER_HOST}:{SERVER_PORT}")
    uvicorn.run(app, host=SERVER_HOST, port=SERVER_PORT)
