"""Conflict detection between scheduled tasks and calendar events.

Detection itself is pure arithmetic over the calendar store's answers. The
ConflictDetector is the only writer of the published conflict list.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from flowdeck.dates import calculate_overlap
from flowdeck.engine.errors import CalendarError
from flowdeck.integrations.calendar_store import CalendarStore
from flowdeck.models.calendar_event import CalendarEvent
from flowdeck.models.conflict import ConflictSeverity, ConflictType, TaskConflict
from flowdeck.models.constants import CONFLICT_WINDOW_PADDING_HOURS, DEFAULT_TASK_DURATION_MINUTES
from flowdeck.models.task import Task

logger = logging.getLogger(__name__)


def calculate_severity(overlap_sec: float, task_duration_sec: float, event: CalendarEvent) -> ConflictSeverity:
    """Severity of a task/event overlap.

    Events with attendees or recurrence are treated as important: a quarter
    overlap is already high for them.
    """
    fraction = overlap_sec / task_duration_sec if task_duration_sec > 0 else 1.0

    if fraction > 0.5:
        return ConflictSeverity.HIGH
    if event.has_attendees or event.has_recurrence_rules:
        return ConflictSeverity.HIGH if fraction > 0.25 else ConflictSeverity.MEDIUM
    if fraction > 0.25:
        return ConflictSeverity.MEDIUM
    return ConflictSeverity.LOW


def task_duration(task: Task) -> timedelta:
    minutes = task.estimated_duration_min or DEFAULT_TASK_DURATION_MINUTES
    return timedelta(minutes=minutes)


def is_scheduled(task: Task) -> bool:
    if task.is_completed or task.is_archived or task.is_deleted:
        return False
    return task.linked_event_id is not None or (task.due_date is not None and task.due_time is not None)


def sort_conflicts(conflicts: List[TaskConflict]) -> List[TaskConflict]:
    """Highest severity first, then earliest conflict."""
    return sorted(conflicts, key=lambda c: (-int(c.severity), c.conflict_time))


class ConflictDetector:
    def __init__(self, calendar_store: CalendarStore, clock: Callable[[], datetime] = datetime.now):
        self.calendar_store = calendar_store
        self._clock = clock
        self._lock = threading.Lock()
        self._detected: List[TaskConflict] = []
        self._last_scan_date: Optional[datetime] = None

    @property
    def detected_conflicts(self) -> List[TaskConflict]:
        return list(self._detected)

    @property
    def last_scan_date(self) -> Optional[datetime]:
        return self._last_scan_date

    def task_start_time(self, task: Task) -> Optional[datetime]:
        """Start of a task's block: the linked event's start, else due date + due time."""
        if task.linked_event_id is not None and self.calendar_store.has_access:
            try:
                event = self.calendar_store.find_by_id(task.linked_event_id)
            except CalendarError as e:
                logger.warning(f"Could not load linked event for task {task.id}: {e}")
                event = None
            if event is not None:
                return event.start
        if task.due_date is not None and task.due_time is not None:
            return task.due_datetime
        return None

    def detect_conflict(self, task: Task, now: Optional[datetime] = None) -> Optional[TaskConflict]:
        """First calendar event overlapping the task, in calendar fetch order."""
        if not self.calendar_store.has_access:
            return None

        now = now or self._clock()
        start = self.task_start_time(task)
        if start is None:
            return None
        duration = task_duration(task)
        end = start + duration

        # No retroactive alerts
        if end < now:
            return None

        padding = timedelta(hours=CONFLICT_WINDOW_PADDING_HOURS)
        try:
            events = self.calendar_store.fetch_events(start - padding, end + padding)
        except CalendarError as e:
            logger.warning(f"Skipping conflict check for task {task.id}: {e}")
            return None

        for event in events:
            if task.linked_event_id is not None and event.event_id == task.linked_event_id:
                continue
            if event.is_all_day:
                continue

            overlap = calculate_overlap(start, end, event.start, event.end)
            if overlap > timedelta(0):
                return TaskConflict(
                    task=task,
                    conflicting_event=event,
                    conflict_time=max(start, event.start),
                    overlap_duration_sec=overlap.total_seconds(),
                    severity=calculate_severity(overlap.total_seconds(), duration.total_seconds(), event),
                    type=ConflictType.CALENDAR_EVENT,
                )
        return None

    def detect_task_to_task_conflicts(
        self,
        tasks: Sequence[Task],
        now: Optional[datetime] = None,
    ) -> List[TaskConflict]:
        """Pairwise overlaps between scheduled tasks.

        High when the overlap exceeds half of the shorter task.
        """
        now = now or self._clock()
        windows = []
        for task in tasks:
            if not is_scheduled(task):
                continue
            start = self.task_start_time(task)
            if start is not None:
                windows.append((task, start, task_duration(task)))

        conflicts: List[TaskConflict] = []
        for i in range(len(windows)):
            task1, start1, duration1 = windows[i]
            for j in range(i + 1, len(windows)):
                task2, start2, duration2 = windows[j]
                end1 = start1 + duration1
                end2 = start2 + duration2
                overlap = calculate_overlap(start1, end1, start2, end2)
                if overlap <= timedelta(0):
                    continue
                if min(end1, end2) < now:
                    continue

                severity = ConflictSeverity.HIGH if overlap > min(duration1, duration2) / 2 else ConflictSeverity.MEDIUM
                conflicts.append(TaskConflict(
                    task=task1,
                    conflicting_task=task2,
                    conflict_time=max(start1, start2),
                    overlap_duration_sec=overlap.total_seconds(),
                    severity=severity,
                    type=ConflictType.TASK_OVERLAP,
                ))
        return conflicts

    def detect_new_meeting_conflicts(
        self,
        event: CalendarEvent,
        tasks: Sequence[Task],
        now: Optional[datetime] = None,
    ) -> List[TaskConflict]:
        """Tasks that a newly added meeting runs into."""
        now = now or self._clock()
        conflicts: List[TaskConflict] = []
        if event.is_all_day:
            return conflicts

        for task in tasks:
            if not is_scheduled(task) or task.linked_event_id == event.event_id:
                continue
            start = self.task_start_time(task)
            if start is None:
                continue
            duration = task_duration(task)
            end = start + duration
            if end < now:
                continue

            overlap = calculate_overlap(start, end, event.start, event.end)
            if overlap > timedelta(0):
                conflicts.append(TaskConflict(
                    task=task,
                    conflicting_event=event,
                    conflict_time=max(start, event.start),
                    overlap_duration_sec=overlap.total_seconds(),
                    severity=calculate_severity(overlap.total_seconds(), duration.total_seconds(), event),
                    type=ConflictType.NEW_MEETING,
                ))
        return sort_conflicts(conflicts)

    def scan_for_conflicts(self, tasks: Sequence[Task], now: Optional[datetime] = None) -> List[TaskConflict]:
        """Detect every conflict and publish the sorted list."""
        now = now or self._clock()
        if not self.calendar_store.has_access:
            logger.warning("Calendar access not granted; conflict scan skipped")
            return []

        scheduled = [t for t in tasks if is_scheduled(t)]
        conflicts: List[TaskConflict] = []
        for task in scheduled:
            conflict = self.detect_conflict(task, now)
            if conflict is not None:
                conflicts.append(conflict)
        conflicts.extend(self.detect_task_to_task_conflicts(scheduled, now))
        conflicts = sort_conflicts(conflicts)

        with self._lock:
            self._detected = conflicts
            self._last_scan_date = now
        logger.debug(f"Conflict scan found {len(conflicts)} conflicts across {len(scheduled)} scheduled tasks")
        return conflicts
