"""FastAPI web application for flowdeck."""

from datetime import date, datetime, time
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from flowdeck.api.dependencies import ServiceContainer, get_container
from flowdeck.engine.errors import InvariantViolation, TaskNotFoundError
from flowdeck.engine.calendar_sync import SyncNoticeType, SyncResult
from flowdeck.models.conflict import TaskConflict
from flowdeck.models.feedback import FeedbackAction
from flowdeck.models.recurrence import RecurringRule
from flowdeck.models.suggestion import ProductivityInsight, TaskSuggestion
from flowdeck.models.task import Priority, Task, TaskCategory

# Initialize FastAPI app
app = FastAPI(
    title="flowdeck API",
    description="Ranks what to do next and keeps tasks in step with your calendar",
    version="0.1.0"
)


# Request models
class TaskCreateRequest(BaseModel):
    """Request body for task creation."""
    title: str = Field(..., min_length=1)
    notes: Optional[str] = None
    due_date: Optional[date] = None
    due_time: Optional[time] = None
    reminder_date: Optional[datetime] = None
    priority: Optional[Priority] = None
    category: Optional[TaskCategory] = None
    custom_category_id: Optional[str] = None
    list_id: Optional[str] = None
    estimated_duration_min: Optional[int] = Field(None, ge=0)
    recurring_rule: Optional[RecurringRule] = None
    ai_excluded: Optional[bool] = None


class TaskUpdateRequest(BaseModel):
    """Request body for task edits. Only fields that are sent are changed."""
    title: Optional[str] = Field(None, min_length=1)
    notes: Optional[str] = None
    due_date: Optional[date] = None
    due_time: Optional[time] = None
    reminder_date: Optional[datetime] = None
    priority: Optional[Priority] = None
    category: Optional[TaskCategory] = None
    custom_category_id: Optional[str] = None
    list_id: Optional[str] = None
    estimated_duration_min: Optional[int] = Field(None, ge=0)
    recurring_rule: Optional[RecurringRule] = None
    ai_excluded: Optional[bool] = None


class SubtaskCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    notes: Optional[str] = None
    priority: Optional[Priority] = None


class SubtaskOrderRequest(BaseModel):
    subtask_ids: List[str]


class FeedbackRequest(BaseModel):
    action: FeedbackAction


# Response models
class TaskResponse(BaseModel):
    task: Task


class TaskListResponse(BaseModel):
    tasks: List[Task]
    count: int


class InProgressResponse(BaseModel):
    task: Optional[Task] = None


class DeleteResponse(BaseModel):
    deleted: bool
    can_undo: bool


class UndoResponse(BaseModel):
    action: Optional[str] = None
    can_undo: bool
    can_redo: bool


class CommitDeletesResponse(BaseModel):
    purged: int


class RankedTask(BaseModel):
    task: Task
    score: float


class RankingResponse(BaseModel):
    ranked: List[RankedTask]
    computed_at: Optional[datetime] = None


class SuggestionResponse(BaseModel):
    suggestion: Optional[TaskSuggestion] = None


class SuggestionListResponse(BaseModel):
    suggestions: List[TaskSuggestion]


class InsightListResponse(BaseModel):
    insights: List[ProductivityInsight]


class ConflictListResponse(BaseModel):
    conflicts: List[TaskConflict]
    last_scan_date: Optional[datetime] = None


class SyncResponse(BaseModel):
    """Response for a manual sync pass."""
    ran: bool
    created: int = 0
    updated: int = 0
    completed: int = 0
    relinked: int = 0
    pulled: int = 0
    unlinked: int = 0
    skipped: int = 0
    failed: int = 0


class NoticeResponse(BaseModel):
    type: SyncNoticeType
    task_id: str
    task_title: str
    message: str
    created_at: datetime


class NoticeListResponse(BaseModel):
    notices: List[NoticeResponse]


def _sync_response(result: SyncResult) -> SyncResponse:
    return SyncResponse(
        ran=result.ran,
        created=result.created,
        updated=result.updated,
        completed=result.completed,
        relinked=result.relinked,
        pulled=result.pulled,
        unlinked=result.unlinked,
        skipped=result.skipped,
        failed=result.failed,
    )


def _refresh_if_needed(services: ServiceContainer, refresh: bool) -> None:
    if refresh or services.prioritization.snapshot.computed_at is None:
        services.prioritization.analyze_and_prioritize()


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


# Tasks

@app.get("/tasks", response_model=TaskListResponse)
async def list_tasks(include_completed: bool = True, services: ServiceContainer = Depends(get_container)):
    """List live tasks, newest first."""
    tasks = services.task_repository.get_all()
    if not include_completed:
        tasks = [t for t in tasks if not t.is_completed]
    return TaskListResponse(tasks=tasks, count=len(tasks))


@app.post("/tasks", response_model=TaskResponse, status_code=201)
async def create_task(request: TaskCreateRequest, services: ServiceContainer = Depends(get_container)):
    """Create a task. Titles starting with '.' are excluded from AI insights."""
    fields = request.model_dump(exclude={"title"})
    task = services.tasks.create_task(title=request.title, **fields)
    return TaskResponse(task=task)


@app.get("/tasks/in-progress", response_model=InProgressResponse)
async def get_in_progress_task(services: ServiceContainer = Depends(get_container)):
    try:
        return InProgressResponse(task=services.tasks.get_in_progress_task())
    except InvariantViolation as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.post("/tasks/commit-deletes", response_model=CommitDeletesResponse)
async def commit_deletes(services: ServiceContainer = Depends(get_container)):
    """Permanently remove tasks deleted with undo."""
    return CommitDeletesResponse(purged=services.tasks.commit_pending_deletes())


@app.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(task_id: str, services: ServiceContainer = Depends(get_container)):
    task = services.task_repository.get(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return TaskResponse(task=task)


@app.patch("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    request: TaskUpdateRequest,
    services: ServiceContainer = Depends(get_container),
):
    task = services.task_repository.get(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")

    changes = {name: getattr(request, name) for name in request.model_fields_set}
    if "title" in changes and changes["title"] is None:
        raise HTTPException(status_code=400, detail="Title cannot be empty")
    updated = services.tasks.update_task(task.model_copy(update=changes))
    return TaskResponse(task=updated)


@app.delete("/tasks/{task_id}", response_model=DeleteResponse)
async def delete_task(
    task_id: str,
    allow_undo: bool = True,
    delete_linked_event: bool = False,
    services: ServiceContainer = Depends(get_container),
):
    deleted = services.tasks.delete_task(task_id, allow_undo=allow_undo, delete_linked_event=delete_linked_event)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return DeleteResponse(deleted=True, can_undo=services.tasks.can_undo)


@app.post("/tasks/{task_id}/complete", response_model=TaskResponse)
async def toggle_completion(task_id: str, services: ServiceContainer = Depends(get_container)):
    """Complete or reopen a task (intraday tasks count one completion)."""
    try:
        return TaskResponse(task=services.tasks.toggle_completion(task_id))
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post("/tasks/{task_id}/intraday", response_model=TaskResponse)
async def increment_intraday(task_id: str, services: ServiceContainer = Depends(get_container)):
    try:
        return TaskResponse(task=services.tasks.increment_intraday_completion(task_id))
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/tasks/{task_id}/start", response_model=TaskResponse)
async def start_working(task_id: str, services: ServiceContainer = Depends(get_container)):
    """Start work on a task; any other running session is stopped."""
    try:
        return TaskResponse(task=services.tasks.start_working(task_id))
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post("/tasks/{task_id}/stop", response_model=TaskResponse)
async def stop_working(task_id: str, services: ServiceContainer = Depends(get_container)):
    try:
        return TaskResponse(task=services.tasks.stop_working(task_id))
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post("/tasks/{task_id}/archive", response_model=TaskResponse)
async def archive_task(task_id: str, services: ServiceContainer = Depends(get_container)):
    try:
        return TaskResponse(task=services.tasks.archive_task(task_id))
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# Subtasks

@app.get("/tasks/{task_id}/subtasks", response_model=TaskListResponse)
async def list_subtasks(task_id: str, services: ServiceContainer = Depends(get_container)):
    if services.task_repository.get(task_id) is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    subtasks = services.task_repository.get_subtasks(task_id)
    return TaskListResponse(tasks=subtasks, count=len(subtasks))


@app.post("/tasks/{task_id}/subtasks", response_model=TaskResponse, status_code=201)
async def create_subtask(
    task_id: str,
    request: SubtaskCreateRequest,
    services: ServiceContainer = Depends(get_container),
):
    try:
        subtask = services.tasks.create_subtask(
            task_id, request.title, notes=request.notes, priority=request.priority
        )
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return TaskResponse(task=subtask)


@app.put("/tasks/{task_id}/subtasks/order", response_model=TaskListResponse)
async def reorder_subtasks(
    task_id: str,
    request: SubtaskOrderRequest,
    services: ServiceContainer = Depends(get_container),
):
    try:
        services.tasks.reorder_subtasks(task_id, request.subtask_ids)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    subtasks = services.task_repository.get_subtasks(task_id)
    return TaskListResponse(tasks=subtasks, count=len(subtasks))


@app.post("/tasks/{task_id}/promote", response_model=TaskResponse)
async def promote_subtask(task_id: str, services: ServiceContainer = Depends(get_container)):
    """Turn a subtask into a standalone task."""
    try:
        return TaskResponse(task=services.tasks.promote_subtask(task_id))
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# Undo

@app.post("/undo", response_model=UndoResponse)
async def undo(services: ServiceContainer = Depends(get_container)):
    action = services.tasks.undo()
    return UndoResponse(action=action, can_undo=services.tasks.can_undo, can_redo=services.tasks.can_redo)


@app.post("/redo", response_model=UndoResponse)
async def redo(services: ServiceContainer = Depends(get_container)):
    action = services.tasks.redo()
    return UndoResponse(action=action, can_undo=services.tasks.can_undo, can_redo=services.tasks.can_redo)


# Suggestions

@app.get("/suggestions/next", response_model=SuggestionResponse)
async def next_suggestion(refresh: bool = False, services: ServiceContainer = Depends(get_container)):
    """The single task to do next."""
    _refresh_if_needed(services, refresh)
    return SuggestionResponse(suggestion=services.prioritization.get_next_suggestion())


@app.get("/suggestions/top", response_model=SuggestionListResponse)
async def top_suggestions(refresh: bool = False, services: ServiceContainer = Depends(get_container)):
    """Up to three suggestions, spread across categories."""
    _refresh_if_needed(services, refresh)
    return SuggestionListResponse(suggestions=services.prioritization.get_top_three_suggestions())


@app.get("/suggestions/ranking", response_model=RankingResponse)
async def ranking(refresh: bool = False, services: ServiceContainer = Depends(get_container)):
    _refresh_if_needed(services, refresh)
    snapshot = services.prioritization.snapshot
    return RankingResponse(
        ranked=[RankedTask(task=task, score=score) for task, score in snapshot.ranked],
        computed_at=snapshot.computed_at,
    )


@app.post("/tasks/{task_id}/feedback", response_model=SuggestionListResponse)
async def record_feedback(
    task_id: str,
    request: FeedbackRequest,
    services: ServiceContainer = Depends(get_container),
):
    """Record a reaction to a suggestion; the ranking is refreshed before responding."""
    task = services.task_repository.get(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    snapshot = services.prioritization.record_feedback(task, request.action)
    return SuggestionListResponse(suggestions=snapshot.suggestions)


@app.get("/insights", response_model=InsightListResponse)
async def insights(services: ServiceContainer = Depends(get_container)):
    return InsightListResponse(insights=services.prioritization.productivity_insights())


# Calendar

@app.get("/conflicts", response_model=ConflictListResponse)
async def list_conflicts(services: ServiceContainer = Depends(get_container)):
    """Conflicts found by the last scan."""
    return ConflictListResponse(
        conflicts=services.conflicts.detected_conflicts,
        last_scan_date=services.conflicts.last_scan_date,
    )


@app.post("/conflicts/scan", response_model=ConflictListResponse)
async def scan_conflicts(services: ServiceContainer = Depends(get_container)):
    conflicts = services.conflicts.scan_for_conflicts(services.task_repository.get_all())
    return ConflictListResponse(conflicts=conflicts, last_scan_date=services.conflicts.last_scan_date)


@app.post("/sync/forward", response_model=SyncResponse)
async def sync_forward(services: ServiceContainer = Depends(get_container)):
    """Push eligible tasks to the calendar now."""
    return _sync_response(services.sync.perform_forward_sync())


@app.post("/sync/reverse", response_model=SyncResponse)
async def sync_reverse(services: ServiceContainer = Depends(get_container)):
    """Pull calendar edits onto linked tasks now."""
    return _sync_response(services.sync.perform_reverse_sync())


@app.get("/sync/notices", response_model=NoticeListResponse)
async def sync_notices(services: ServiceContainer = Depends(get_container)):
    return NoticeListResponse(notices=[
        NoticeResponse(
            type=n.type,
            task_id=n.task_id,
            task_title=n.task_title,
            message=n.message,
            created_at=n.created_at,
        )
        for n in services.sync.notices
    ])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
