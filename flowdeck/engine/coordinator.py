"""Wires change notifications to the engines.

Task store changes schedule a re-rank and, when auto sync is on, a forward
sync. Calendar changes schedule a reverse sync and a conflict scan. A periodic
timer re-ranks when a snooze expires, and another polls calendar stores that
cannot push their changes. Every trigger is debounced so a burst of
edits costs one pass.
"""

import logging
from typing import Optional

from flowdeck.config import Settings
from flowdeck.database.repository import TaskRepository
from flowdeck.engine.calendar_sync import CalendarSyncOrchestrator
from flowdeck.engine.conflicts import ConflictDetector
from flowdeck.engine.debounce import Debouncer, PeriodicTimer
from flowdeck.engine.prioritization import PrioritizationEngine
from flowdeck.integrations.calendar_store import CalendarStore

logger = logging.getLogger(__name__)


class EngineCoordinator:
    def __init__(
        self,
        settings: Settings,
        task_repository: TaskRepository,
        prioritization: PrioritizationEngine,
        calendar_store: CalendarStore,
        sync: CalendarSyncOrchestrator,
        conflicts: ConflictDetector,
    ):
        self.settings = settings
        self.task_repository = task_repository
        self.prioritization = prioritization
        self.calendar_store = calendar_store
        self.sync = sync
        self.conflicts = conflicts

        self.rerank = Debouncer(settings.rerank_debounce_sec, self._rerank, name="rerank")
        self.forward_sync = Debouncer(settings.forward_sync_debounce_sec, self._forward_sync, name="forward-sync")
        self.reverse_sync = Debouncer(settings.reverse_sync_debounce_sec, self._reverse_sync, name="reverse-sync")
        self.conflict_scan = Debouncer(settings.conflict_scan_debounce_sec, self._scan_conflicts, name="conflict-scan")
        self.snooze_timer: Optional[PeriodicTimer] = None
        self.calendar_poll_timer: Optional[PeriodicTimer] = None
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    # Notification handlers

    def on_tasks_changed(self) -> None:
        self.rerank.trigger()
        if self.settings.calendar_auto_sync:
            self.forward_sync.trigger()

    def on_calendar_changed(self) -> None:
        self.reverse_sync.trigger()
        self.conflict_scan.trigger()

    # Debounced work

    def _rerank(self) -> None:
        self.prioritization.analyze_and_prioritize()

    def _forward_sync(self) -> None:
        self.sync.perform_forward_sync()

    def _reverse_sync(self) -> None:
        self.sync.perform_reverse_sync()

    def _scan_conflicts(self) -> None:
        self.conflicts.scan_for_conflicts(self.task_repository.get_all())

    def _check_snoozes(self) -> None:
        if self.prioritization.check_expired_snoozes():
            logger.debug("Snooze expired; ranking refreshed")

    def _poll_calendar(self) -> None:
        if self.calendar_store.poll_for_changes():
            logger.debug("Calendar changed; reverse sync scheduled")

    # Lifecycle

    def start(self) -> None:
        if self._started:
            return
        self.task_repository.add_listener(self.on_tasks_changed)
        self.calendar_store.add_change_listener(self.on_calendar_changed)
        self.snooze_timer = PeriodicTimer(
            self.settings.snooze_check_interval_sec, self._check_snoozes, name="snooze-check"
        )
        self.snooze_timer.start()
        if self.calendar_store.requires_polling:
            self.calendar_poll_timer = PeriodicTimer(
                self.settings.calendar_poll_interval_sec, self._poll_calendar, name="calendar-poll"
            )
            self.calendar_poll_timer.start()
        self._started = True
        logger.info(f"Engine coordinator started (auto sync {'on' if self.settings.calendar_auto_sync else 'off'})")

    def stop(self) -> None:
        if not self._started:
            return
        self.task_repository.remove_listener(self.on_tasks_changed)
        self.calendar_store.remove_change_listener(self.on_calendar_changed)
        for debouncer in (self.rerank, self.forward_sync, self.reverse_sync, self.conflict_scan):
            debouncer.cancel()
        if self.snooze_timer is not None:
            self.snooze_timer.stop(timeout=1.0)
            self.snooze_timer = None
        if self.calendar_poll_timer is not None:
            self.calendar_poll_timer.stop(timeout=1.0)
            self.calendar_poll_timer = None
        self._started = False
        logger.info("Engine coordinator stopped")

    def flush(self) -> None:
        """Run every pending debounced pass now."""
        for debouncer in (self.rerank, self.forward_sync, self.reverse_sync, self.conflict_scan):
            debouncer.flush()
