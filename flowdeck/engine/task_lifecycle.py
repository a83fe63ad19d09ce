"""Task lifecycle service.

All status transitions go through TaskService: completion (including the
intraday and recurring paths), work sessions, subtasks and their effect on the
parent, soft delete with undo, and reminder scheduling.

Only one task may have a running work session. start_working is the single
entry point that starts one, and it stops every other session in the same
write.
"""

import logging
from datetime import date, datetime
from typing import Callable, List, Optional

from flowdeck.database.repository import TaskRepository
from flowdeck.engine.errors import CalendarError, InvariantViolation, TaskNotFoundError
from flowdeck.engine.undo import UndoCommand, UndoStack
from flowdeck.integrations.calendar_store import CalendarStore
from flowdeck.integrations.reminders import ReminderScheduler
from flowdeck.models.task import Priority, Task, TaskStatus
from flowdeck.models.task_factory import create_task_base
from flowdeck.recurrence.engine import next_instance_for_completion

logger = logging.getLogger(__name__)

CompletionHook = Callable[[Task, datetime], None]


def aggregate_status(subtasks: List[Task]) -> TaskStatus:
    """Parent status implied by its live subtasks."""
    done = sum(1 for s in subtasks if s.is_completed)
    if done == len(subtasks):
        return TaskStatus.COMPLETED
    if done > 0:
        return TaskStatus.IN_PROGRESS
    return TaskStatus.PENDING


class TaskService:
    """Write path for task state.

    Args:
        repository: Task store
        reminders: Receives schedule/cancel reminder commands
        undo_stack: Undo log; a private one is created when omitted
        calendar_store: Used to delete linked events on request
        on_completed: Called with (task, now) whenever a task is completed
        clock: Source of "now"
    """

    def __init__(
        self,
        repository: TaskRepository,
        reminders: Optional[ReminderScheduler] = None,
        undo_stack: Optional[UndoStack] = None,
        calendar_store: Optional[CalendarStore] = None,
        on_completed: Optional[CompletionHook] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.reminders = reminders
        self.undo_stack = undo_stack if undo_stack is not None else UndoStack()
        self.calendar_store = calendar_store
        self.on_completed = on_completed
        self._clock = clock
        self.pending_delete_ids: List[str] = []

    # Helpers

    def _require(self, task_id: str) -> Task:
        task = self.repository.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _sync_reminder(self, task: Task) -> None:
        if self.reminders is None:
            return
        self.reminders.cancel_reminder(task.id)
        if task.reminder_date is not None and not task.is_completed and not task.is_archived:
            self.reminders.schedule_reminder(task.id, task.title, task.reminder_date)

    def _record(self, name: str, before: List[Task], after: List[Task]) -> None:
        """Push an undo command that swaps between two sets of task snapshots."""
        def undo():
            self.repository.update_many(before)
            for task in before:
                self._sync_reminder(task)

        def redo():
            self.repository.update_many(after)
            for task in after:
                self._sync_reminder(task)

        self.undo_stack.push(UndoCommand(name=name, undo=undo, redo=redo))

    def _completed_hook(self, task: Task, now: datetime) -> None:
        if self.on_completed is None:
            return
        try:
            self.on_completed(task, now)
        except Exception as e:
            # Pattern learning is best-effort
            logger.warning(f"Completion hook failed for task {task.id}: {type(e).__name__}: {str(e)}")

    def _aggregated_parent(self, parent_id: str, now: datetime) -> Optional[Task]:
        """Parent with its status re-derived from live subtasks, or None if unchanged."""
        parent = self.repository.get(parent_id)
        if parent is None:
            return None
        subtasks = self.repository.get_subtasks(parent_id)
        if not subtasks:
            # No subtasks left to track; the parent's own status stands
            return None
        status = aggregate_status(subtasks)
        if parent.status == status:
            return None
        return parent.with_aggregated_status(status, now)

    def _update_parent_status(self, parent_id: str, now: datetime) -> Optional[Task]:
        parent = self._aggregated_parent(parent_id, now)
        if parent is None:
            return None
        logger.debug(f"Parent {parent_id} status now {parent.status.value}")
        return self.repository.update(parent)

    # Create / update

    def create_task(self, title: str, now: Optional[datetime] = None, record_undo: bool = True, **fields) -> Task:
        """Create a task. Extra keyword arguments are passed to create_task_base."""
        now = now or self._clock()
        task = self.repository.create(create_task_base(title=title, now=now, **fields))
        self._sync_reminder(task)

        if record_undo:
            task_id = task.id

            def undo():
                self.repository.soft_delete(task_id, now)
                if self.reminders is not None:
                    self.reminders.cancel_reminder(task_id)

            def redo():
                self.repository.restore(task_id)
                restored = self.repository.get(task_id)
                if restored is not None:
                    self._sync_reminder(restored)

            self.undo_stack.push(UndoCommand(name="create", undo=undo, redo=redo))
        return task

    def update_task(self, task: Task, now: Optional[datetime] = None) -> Task:
        """Persist edits to a task and reschedule its reminder."""
        now = now or self._clock()
        before = self._require(task.id)
        updated = self.repository.update(task.model_copy(update={"updated_at": now}))
        self._sync_reminder(updated)
        self._record("update", [before], [updated])
        return updated

    def archive_task(self, task_id: str, now: Optional[datetime] = None) -> Task:
        now = now or self._clock()
        before = self._require(task_id)
        archived = self.repository.update(before.model_copy(update={"is_archived": True, "updated_at": now}))
        self._sync_reminder(archived)
        self._record("archive", [before], [archived])
        return archived

    # Completion

    def toggle_completion(self, task_id: str, now: Optional[datetime] = None) -> Task:
        """Complete or reopen a task.

        Intraday tasks not yet done for today count one completion instead.
        Completing a recurring task creates its next instance.
        """
        now = now or self._clock()
        task = self._require(task_id)

        if task.is_subtask:
            return self.toggle_subtask_completion(task_id, now)
        if task.is_intraday_task and not task.is_completed and not task.is_intraday_complete_for(now.date()):
            return self.increment_intraday_completion(task_id, now)

        if task.is_completed:
            updated = self.repository.update(task.uncompleted(now))
            self._sync_reminder(updated)
            self._record("reopen", [task], [updated])
            return updated

        updated = self.repository.update(task.completed(now))
        self._sync_reminder(updated)
        self._completed_hook(updated, now)

        next_task = None
        if task.is_recurring and not task.is_intraday_task:
            next_task = next_instance_for_completion(task, now)
            if next_task is not None:
                next_task = self.repository.create(next_task)
                self._sync_reminder(next_task)
                logger.debug(f"Created next occurrence {next_task.id} due {next_task.due_date} for task {task.id}")

        self._record_completion(task, updated, next_task, now)
        return updated

    def _record_completion(self, before: Task, after: Task, next_task: Optional[Task], now: datetime) -> None:
        next_id = next_task.id if next_task is not None else None

        def undo():
            self.repository.update(before)
            self._sync_reminder(before)
            if next_id is not None:
                self.repository.soft_delete(next_id, now)
                if self.reminders is not None:
                    self.reminders.cancel_reminder(next_id)

        def redo():
            self.repository.update(after)
            self._sync_reminder(after)
            if next_id is not None:
                self.repository.restore(next_id)

        self.undo_stack.push(UndoCommand(name="complete", undo=undo, redo=redo))

    def increment_intraday_completion(self, task_id: str, now: Optional[datetime] = None) -> Task:
        """Count one of today's completions; the task completes when today's target is met."""
        now = now or self._clock()
        task = self._require(task_id)
        if not task.is_intraday_task:
            raise ValueError(f"Task {task_id} is not an intraday task")

        today = now.date()
        updated = task.increment_intraday_completion(today, now)
        if updated.is_intraday_complete_for(today):
            updated = updated.completed(now)
        updated = self.repository.update(updated)

        if updated.is_completed:
            self._completed_hook(updated, now)
        self._record("intraday completion", [task], [updated])
        logger.debug(
            f"Intraday task {task_id}: {updated.completions_for(today)}/{updated.intraday_target(today)} today"
        )
        return updated

    def reset_intraday_completions(self, task_id: str, now: Optional[datetime] = None) -> Task:
        """Zero today's counter and reopen the task if it was completed."""
        now = now or self._clock()
        task = self._require(task_id)
        if not task.is_intraday_task:
            raise ValueError(f"Task {task_id} is not an intraday task")

        updated = task.reset_intraday_completions(now)
        if updated.is_completed:
            updated = updated.uncompleted(now)
        return self.repository.update(updated)

    def reset_stale_intraday_completions(self, today: Optional[date] = None) -> List[Task]:
        """Reopen intraday tasks whose counter belongs to an earlier day."""
        now = self._clock()
        today = today or now.date()
        stale = []
        for task in self.repository.get_all():
            if not task.is_intraday_task or task.last_intraday_completion_date in (None, today):
                continue
            updated = task.reset_intraday_completions(now)
            if updated.is_completed:
                updated = updated.uncompleted(now)
            stale.append(updated)
        if stale:
            logger.info(f"Reset {len(stale)} intraday tasks for {today.isoformat()}")
        return self.repository.update_many(stale)

    # Work sessions

    def get_in_progress_task(self) -> Optional[Task]:
        """The task with a running work session, if any."""
        active = [t for t in self.repository.get_in_progress() if t.has_active_session]
        if len(active) > 1:
            raise InvariantViolation(
                f"{len(active)} tasks have running work sessions: {', '.join(t.id for t in active)}"
            )
        return active[0] if active else None

    def start_working(self, task_id: str, now: Optional[datetime] = None) -> Task:
        """Start a work session, stopping any other running session first."""
        now = now or self._clock()
        task = self._require(task_id)
        if task.has_active_session:
            return task

        others = [t for t in self.repository.get_in_progress() if t.has_active_session and t.id != task_id]
        stopped = [t.stop_progress(now) for t in others]

        if task.is_in_progress:
            # In progress through subtask aggregation; begin the session explicitly
            started = task.model_copy(update={"started_at": now, "updated_at": now})
        else:
            started = task.in_progress(now)

        updated = self.repository.update_many(stopped + [started])
        for t in stopped:
            logger.debug(f"Stopped work on task {t.id} ({t.accumulated_duration_sec:.0f}s accumulated)")
        return updated[-1]

    def stop_working(self, task_id: str, now: Optional[datetime] = None) -> Task:
        now = now or self._clock()
        task = self._require(task_id)
        if not task.has_active_session:
            return task
        updated = self.repository.update(task.stop_progress(now))
        if updated.subtasks:
            # Subtask progress may still imply in_progress
            updated = self._update_parent_status(updated.id, now) or updated
        return updated

    # Subtasks

    def create_subtask(
        self,
        parent_id: str,
        title: str,
        now: Optional[datetime] = None,
        notes: Optional[str] = None,
        priority: Optional[Priority] = None,
        **fields,
    ) -> Task:
        """Create a subtask inheriting the parent's schedule, category and list."""
        now = now or self._clock()
        parent = self._require(parent_id)
        order = len(self.repository.get_subtasks(parent_id))

        fields.setdefault("due_date", parent.due_date)
        fields.setdefault("due_time", parent.due_time)
        subtask = create_task_base(
            title=title,
            now=now,
            notes=notes,
            priority=priority if priority is not None else parent.priority,
            category=parent.category,
            custom_category_id=parent.custom_category_id,
            list_id=parent.list_id,
            parent_task_id=parent_id,
            subtask_order=order,
            **fields,
        )
        subtask = self.repository.create(subtask)
        self._update_parent_status(parent_id, now)
        return subtask

    def toggle_subtask_completion(self, subtask_id: str, now: Optional[datetime] = None) -> Task:
        """Complete or reopen a subtask and re-derive the parent's status."""
        now = now or self._clock()
        subtask = self._require(subtask_id)
        if not subtask.is_subtask:
            raise ValueError(f"Task {subtask_id} is not a subtask")

        before = [subtask]
        toggled = subtask.uncompleted(now) if subtask.is_completed else subtask.completed(now)
        updated = self.repository.update(toggled)
        after = [updated]
        if updated.is_completed:
            self._completed_hook(updated, now)

        parent_before = self.repository.get(subtask.parent_task_id)
        parent_after = self._update_parent_status(subtask.parent_task_id, now)
        if parent_before is not None and parent_after is not None:
            before.append(parent_before)
            after.append(parent_after)

        self._record("toggle subtask", before, after)
        return updated

    def promote_subtask(self, subtask_id: str, now: Optional[datetime] = None) -> Task:
        """Detach a subtask into a standalone task."""
        now = now or self._clock()
        subtask = self._require(subtask_id)
        if not subtask.is_subtask:
            return subtask

        parent_id = subtask.parent_task_id
        promoted = self.repository.update(subtask.model_copy(update={
            "parent_task_id": None,
            "subtask_order": 0,
            "updated_at": now,
        }))
        self._update_parent_status(parent_id, now)
        return promoted

    def reorder_subtasks(self, parent_id: str, ordered_ids: List[str], now: Optional[datetime] = None) -> List[Task]:
        """Set subtask display order to the order of ordered_ids."""
        now = now or self._clock()
        subtasks = {s.id: s for s in self.repository.get_subtasks(parent_id)}
        unknown = [sid for sid in ordered_ids if sid not in subtasks]
        if unknown:
            raise ValueError(f"Not subtasks of {parent_id}: {', '.join(unknown)}")

        reordered = [
            subtasks[sid].model_copy(update={"subtask_order": index, "updated_at": now})
            for index, sid in enumerate(ordered_ids)
        ]
        return self.repository.update_many(reordered)

    # Delete / undo

    def delete_task(
        self,
        task_id: str,
        allow_undo: bool = True,
        delete_linked_event: bool = False,
        now: Optional[datetime] = None,
    ) -> bool:
        """Delete a task and its subtasks.

        With allow_undo the task is tombstoned until commit_pending_deletes;
        otherwise it is removed immediately.
        """
        now = now or self._clock()
        task = self.repository.get(task_id)
        if task is None:
            return False

        if self.reminders is not None:
            self.reminders.cancel_reminder(task_id)
        if delete_linked_event:
            self._delete_linked_event(task)

        if allow_undo:
            self.repository.soft_delete(task_id, now)
            self.pending_delete_ids.append(task_id)

            def undo():
                self.repository.restore(task_id)
                restored = self.repository.get(task_id)
                if restored is not None:
                    self._sync_reminder(restored)
                if task.parent_task_id:
                    self._update_parent_status(task.parent_task_id, self._clock())

            def redo():
                self.repository.soft_delete(task_id, self._clock())
                if self.reminders is not None:
                    self.reminders.cancel_reminder(task_id)
                if task.parent_task_id:
                    self._update_parent_status(task.parent_task_id, self._clock())

            self.undo_stack.push(UndoCommand(name="delete", undo=undo, redo=redo))
        else:
            self.repository.purge(task_id)

        if task.parent_task_id:
            self._update_parent_status(task.parent_task_id, now)
        return True

    def _delete_linked_event(self, task: Task) -> None:
        if task.linked_event_id is None or self.calendar_store is None:
            return
        try:
            event = self.calendar_store.find_by_id(task.linked_event_id)
            if event is not None:
                self.calendar_store.delete_event(event)
        except CalendarError as e:
            logger.warning(f"Failed to delete linked event for task {task.id}: {type(e).__name__}: {str(e)}")

    def commit_pending_deletes(self) -> int:
        """Permanently remove tombstoned tasks. Returns how many were purged."""
        purged = 0
        for task in self.repository.get_deleted():
            if self.repository.purge(task.id):
                purged += 1
        self.pending_delete_ids.clear()
        # Commands referencing purged tasks can no longer be replayed
        self.undo_stack.clear()
        if purged:
            logger.info(f"Purged {purged} deleted tasks")
        return purged

    @property
    def can_undo(self) -> bool:
        return self.undo_stack.can_undo

    @property
    def can_redo(self) -> bool:
        return self.undo_stack.can_redo

    def undo(self) -> Optional[str]:
        command = self.undo_stack.undo()
        return command.name if command else None

    def redo(self) -> Optional[str]:
        command = self.undo_stack.redo()
        return command.name if command else None
