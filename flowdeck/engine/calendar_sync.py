"""Two-way sync between tasks and calendar events.

Forward sync pushes eligible tasks to the calendar (create, or push only the
fields that differ). Reverse sync pulls external event edits back onto linked
tasks, re-links after event id churn and unlinks tasks whose event vanished.

Loop prevention: every write records when it happened. Reverse sync ignores
tasks pushed within FORWARD_PUSH_COOLDOWN_SECONDS, forward sync ignores tasks
pulled within REVERSE_SYNC_GUARD_SECONDS. Each direction is single-flight, but
the two directions may interleave; the guard windows make races unlikely, not
impossible.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional

from flowdeck.config import CompletionPolicy, Settings
from flowdeck.database.repository import TaskRepository
from flowdeck.engine.errors import CalendarError
from flowdeck.integrations.calendar_store import CalendarStore
from flowdeck.models.calendar_event import CalendarEvent
from flowdeck.models.constants import (
    BUSY_ONLY_PLACEHOLDER_TITLE,
    CALENDAR_CHECKMARK_PREFIX,
    FORWARD_PUSH_COOLDOWN_SECONDS,
    MAX_SYNC_NOTICES,
    REVERSE_SYNC_GUARD_SECONDS,
)
from flowdeck.models.task import Task

logger = logging.getLogger(__name__)


class SyncNoticeType(str, Enum):
    LINKED_EVENT_DELETED_EXTERNALLY = "linked_event_deleted_externally"


@dataclass(frozen=True)
class SyncNotice:
    """User-facing notice raised by a sync pass."""
    type: SyncNoticeType
    task_id: str
    task_title: str
    created_at: datetime

    @property
    def message(self) -> str:
        return f'The calendar event linked to "{self.task_title}" was removed externally'


@dataclass
class SyncResult:
    """Counters for one sync pass."""
    created: int = 0
    updated: int = 0
    completed: int = 0
    relinked: int = 0
    pulled: int = 0
    unlinked: int = 0
    skipped: int = 0
    failed: int = 0
    ran: bool = True
    notices: List[SyncNotice] = field(default_factory=list)

    @property
    def changes(self) -> int:
        return self.created + self.updated + self.completed + self.relinked + self.pulled + self.unlinked


def _clear_link(task: Task, now: datetime) -> Task:
    return task.model_copy(update={
        "linked_event_id": None,
        "calendar_item_external_id": None,
        "scheduled_start_time": None,
        "scheduled_end_time": None,
        "updated_at": now,
    })


class CalendarSyncOrchestrator:
    def __init__(
        self,
        calendar_store: CalendarStore,
        task_repository: TaskRepository,
        settings: Settings,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.calendar_store = calendar_store
        self.task_repository = task_repository
        self.settings = settings
        self._clock = clock

        self.recently_pushed: Dict[str, datetime] = {}
        self.recently_pulled: Dict[str, datetime] = {}
        self._push_cooldown = timedelta(seconds=FORWARD_PUSH_COOLDOWN_SECONDS)
        self._pull_guard = timedelta(seconds=REVERSE_SYNC_GUARD_SECONDS)

        self._forward_lock = threading.Lock()
        self._reverse_lock = threading.Lock()
        self._notice_listeners: List[Callable[[SyncNotice], None]] = []
        self.notices: Deque[SyncNotice] = deque(maxlen=MAX_SYNC_NOTICES)

    @property
    def is_syncing(self) -> bool:
        return self._forward_lock.locked() or self._reverse_lock.locked()

    def add_notice_listener(self, listener: Callable[[SyncNotice], None]) -> None:
        self._notice_listeners.append(listener)

    # Field mapping

    def _outgoing_title(self, task: Task) -> str:
        return BUSY_ONLY_PLACEHOLDER_TITLE if self.settings.calendar_busy_only else task.title

    def _outgoing_notes(self, task: Task) -> Optional[str]:
        return None if self.settings.calendar_busy_only else task.notes

    @staticmethod
    def schedule_window(task: Task):
        """(start, end) of the block a task occupies, from its due date/time and estimate."""
        start = task.due_datetime
        return start, start + timedelta(minutes=task.estimated_duration_min or 0)

    # Guards

    def _pushed_recently(self, task_id: str, now: datetime) -> bool:
        pushed = self.recently_pushed.get(task_id)
        return pushed is not None and now - pushed < self._push_cooldown

    def _pulled_recently(self, task: Task, now: datetime) -> bool:
        pulled = self.recently_pulled.get(task.id) or task.last_synced_at
        return pulled is not None and now - pulled < self._pull_guard

    def _prune_guards(self, now: datetime) -> None:
        self.recently_pushed = {
            tid: at for tid, at in self.recently_pushed.items() if now - at < self._push_cooldown
        }
        self.recently_pulled = {
            tid: at for tid, at in self.recently_pulled.items() if now - at < self._pull_guard
        }

    # Forward sync (task -> event)

    def perform_forward_sync(self, tasks: Optional[List[Task]] = None) -> SyncResult:
        """Push eligible tasks to the calendar and apply the completion policy."""
        if not self._forward_lock.acquire(blocking=False):
            logger.debug("Forward sync already running; skipped")
            return SyncResult(ran=False)
        try:
            result = SyncResult()
            if not self.calendar_store.has_access:
                logger.warning("Calendar access not granted; forward sync skipped")
                result.ran = False
                return result

            now = self._clock()
            if tasks is None:
                tasks = self.task_repository.get_all()

            for task in tasks:
                if self._pulled_recently(task, now):
                    result.skipped += 1
                    continue
                try:
                    if task.is_eligible_for_auto_sync:
                        if task.linked_event_id is None:
                            if self._create_event_for_task(task, now):
                                result.created += 1
                        elif self._push_updates_to_event(task, now):
                            result.updated += 1
                    elif task.is_completed and task.linked_event_id is not None:
                        if self._handle_completed_task(task, now):
                            result.completed += 1
                except CalendarError as e:
                    result.failed += 1
                    logger.error(f"Forward sync failed for task {task.id}: {type(e).__name__}: {str(e)}")

            self._prune_guards(now)
            if result.changes or result.failed:
                logger.info(
                    f"Forward sync: {result.created} created, {result.updated} updated, "
                    f"{result.completed} completed, {result.failed} failed"
                )
            return result
        finally:
            self._forward_lock.release()

    def _create_event_for_task(self, task: Task, now: datetime) -> bool:
        start, end = self.schedule_window(task)
        event = self.calendar_store.create_event(
            title=self._outgoing_title(task),
            start=start,
            end=end,
            notes=self._outgoing_notes(task),
            calendar_id=self.settings.google_calendar_id,
        )
        self.task_repository.update(task.model_copy(update={
            "linked_event_id": event.event_id,
            "calendar_item_external_id": event.external_id,
            "scheduled_start_time": start,
            "scheduled_end_time": end,
        }))
        self.recently_pushed[task.id] = now
        logger.debug(f"Created event {event.event_id} for task {task.id}")
        return True

    def _push_updates_to_event(self, task: Task, now: datetime) -> bool:
        event = self.calendar_store.find_by_id(task.linked_event_id)
        if event is None:
            # Reverse sync decides whether it churned or was deleted.
            return False

        start, end = self.schedule_window(task)
        desired = {
            "title": self._outgoing_title(task),
            "notes": self._outgoing_notes(task),
            "start": start,
            "end": end,
        }
        changes = {name: value for name, value in desired.items() if getattr(event, name) != value}
        if not changes:
            return False

        updated_event = self.calendar_store.update_event(event.model_copy(update=changes))
        self.task_repository.update(task.model_copy(update={
            "calendar_item_external_id": updated_event.external_id or task.calendar_item_external_id,
            "scheduled_start_time": start,
            "scheduled_end_time": end,
        }))
        self.recently_pushed[task.id] = now
        logger.debug(f"Pushed {sorted(changes)} to event {event.event_id} for task {task.id}")
        return True

    def _handle_completed_task(self, task: Task, now: datetime) -> bool:
        event = self.calendar_store.find_by_id(task.linked_event_id)
        if event is None:
            return False

        if self.settings.calendar_completion_policy == CompletionPolicy.KEEP:
            if event.title.startswith(CALENDAR_CHECKMARK_PREFIX):
                return False
            self.calendar_store.update_event(
                event.model_copy(update={"title": CALENDAR_CHECKMARK_PREFIX + event.title})
            )
            self.recently_pushed[task.id] = now
            return True

        self.calendar_store.delete_event(event)
        self.task_repository.update(_clear_link(task, now))
        self.recently_pushed[task.id] = now
        logger.debug(f"Deleted event {event.event_id} for completed task {task.id}")
        return True

    # Reverse sync (event -> task)

    def perform_reverse_sync(self) -> SyncResult:
        """Pull external event changes onto linked tasks."""
        if not self._reverse_lock.acquire(blocking=False):
            logger.debug("Reverse sync already running; skipped")
            return SyncResult(ran=False)
        try:
            result = SyncResult()
            if not self.calendar_store.has_access:
                logger.warning("Calendar access not granted; reverse sync skipped")
                result.ran = False
                return result

            now = self._clock()
            linked = [t for t in self.task_repository.get_all() if t.linked_event_id is not None]

            for task in linked:
                if self._pushed_recently(task.id, now):
                    result.skipped += 1
                    continue
                try:
                    self._reverse_sync_task(task, now, result)
                except CalendarError as e:
                    result.failed += 1
                    logger.error(f"Reverse sync failed for task {task.id}: {type(e).__name__}: {str(e)}")

            self._prune_guards(now)
            if result.changes or result.failed:
                logger.info(
                    f"Reverse sync: {result.pulled} pulled, {result.relinked} relinked, "
                    f"{result.unlinked} unlinked, {result.failed} failed"
                )
            return result
        finally:
            self._reverse_lock.release()

    def _reverse_sync_task(self, task: Task, now: datetime, result: SyncResult) -> None:
        event = self.calendar_store.find_by_id(task.linked_event_id)
        if event is None and task.calendar_item_external_id:
            event = self.calendar_store.find_by_external_id(task.calendar_item_external_id)
            if event is not None:
                task = task.model_copy(update={
                    "linked_event_id": event.event_id,
                    "calendar_item_external_id": event.external_id or task.calendar_item_external_id,
                    "last_synced_at": now,
                })
                self.task_repository.update(task)
                self.recently_pulled[task.id] = now
                result.relinked += 1
                logger.debug(f"Relinked task {task.id} to event {event.event_id}")

        if event is None:
            self._handle_externally_deleted_event(task, now, result)
            return

        if self._sync_event_changes_to_task(event, task, now):
            result.pulled += 1

    def _sync_event_changes_to_task(self, event: CalendarEvent, task: Task, now: datetime) -> bool:
        changes = {}

        if task.scheduled_start_time != event.start:
            changes["scheduled_start_time"] = event.start
            changes["due_date"] = event.start.date()
            changes["due_time"] = event.start.time().replace(second=0, microsecond=0)
        if task.scheduled_end_time != event.end:
            changes["scheduled_end_time"] = event.end
        if "scheduled_start_time" in changes or "scheduled_end_time" in changes:
            minutes = int((event.end - event.start).total_seconds() // 60)
            if minutes > 0 and minutes != task.estimated_duration_min:
                changes["estimated_duration_min"] = minutes

        if not self.settings.calendar_busy_only:
            if event.title != task.title and not event.title.startswith(CALENDAR_CHECKMARK_PREFIX):
                changes["title"] = event.title
            if event.notes != task.notes:
                changes["notes"] = event.notes

        if not changes:
            return False

        changes["last_synced_at"] = now
        changes["updated_at"] = now
        if event.external_id:
            changes["calendar_item_external_id"] = event.external_id
        self.task_repository.update(task.model_copy(update=changes))
        self.recently_pulled[task.id] = now
        logger.debug(f"Pulled {sorted(changes)} from event {event.event_id} onto task {task.id}")
        return True

    def _handle_externally_deleted_event(self, task: Task, now: datetime, result: SyncResult) -> None:
        self.task_repository.update(_clear_link(task, now).model_copy(update={"last_synced_at": now}))
        self.recently_pulled[task.id] = now
        result.unlinked += 1

        notice = SyncNotice(
            type=SyncNoticeType.LINKED_EVENT_DELETED_EXTERNALLY,
            task_id=task.id,
            task_title=task.title,
            created_at=now,
        )
        self.notices.append(notice)
        result.notices.append(notice)
        logger.info(f"Linked event for task {task.id} was deleted externally; link cleared")
        for listener in list(self._notice_listeners):
            listener(notice)
