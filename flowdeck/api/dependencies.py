"""Composition root: builds every component and hands them to the API.

Engines never reach for globals; everything they collaborate with is passed in
here. The API resolves the process-wide container through get_container, which
tests override with a container built on their own session and calendar.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from flowdeck.config import Settings, get_settings
from flowdeck.database.database import SessionLocal, init_db
from flowdeck.database.repository import BlobRepository, TaskRepository
from flowdeck.engine.calendar_sync import CalendarSyncOrchestrator
from flowdeck.engine.conflicts import ConflictDetector
from flowdeck.engine.coordinator import EngineCoordinator
from flowdeck.engine.learning import LearningStore
from flowdeck.engine.prioritization import PrioritizationEngine
from flowdeck.engine.task_lifecycle import TaskService
from flowdeck.engine.undo import UndoStack
from flowdeck.integrations.calendar_store import CalendarStore, InMemoryCalendarStore
from flowdeck.integrations.reminders import InMemoryReminderScheduler, ReminderScheduler

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    task_repository: TaskRepository
    learning: LearningStore
    prioritization: PrioritizationEngine
    calendar_store: CalendarStore
    conflicts: ConflictDetector
    sync: CalendarSyncOrchestrator
    tasks: TaskService
    reminders: ReminderScheduler
    coordinator: EngineCoordinator


def build_calendar_store(settings: Settings) -> CalendarStore:
    if settings.calendar_provider == "google":
        from flowdeck.integrations.google_calendar import GoogleCalendarStore
        return GoogleCalendarStore(calendar_id=settings.google_calendar_id, time_zone=settings.time_zone)
    return InMemoryCalendarStore()


def build_insight_provider():
    """OpenAI client when a key is configured, else None."""
    from flowdeck.integrations.openai_client import OpenAIClient
    client = OpenAIClient()
    return client if client.is_ready else None


def build_container(
    db: Session,
    settings: Optional[Settings] = None,
    calendar_store: Optional[CalendarStore] = None,
    reminders: Optional[ReminderScheduler] = None,
    insight_provider=None,
    clock: Callable[[], datetime] = datetime.now,
) -> ServiceContainer:
    settings = settings or get_settings()
    calendar_store = calendar_store or build_calendar_store(settings)
    reminders = reminders or InMemoryReminderScheduler()

    task_repository = TaskRepository(db)
    learning = LearningStore(BlobRepository(db), clock=clock)
    prioritization = PrioritizationEngine(
        learning,
        task_source=task_repository.get_all,
        insight_provider=insight_provider,
        clock=clock,
    )
    conflicts = ConflictDetector(calendar_store, clock=clock)
    sync = CalendarSyncOrchestrator(calendar_store, task_repository, settings, clock=clock)
    tasks = TaskService(
        task_repository,
        reminders=reminders,
        undo_stack=UndoStack(),
        calendar_store=calendar_store,
        on_completed=prioritization.record_completion,
        clock=clock,
    )
    coordinator = EngineCoordinator(settings, task_repository, prioritization, calendar_store, sync, conflicts)

    return ServiceContainer(
        settings=settings,
        task_repository=task_repository,
        learning=learning,
        prioritization=prioritization,
        calendar_store=calendar_store,
        conflicts=conflicts,
        sync=sync,
        tasks=tasks,
        reminders=reminders,
        coordinator=coordinator,
    )


_container: Optional[ServiceContainer] = None
_container_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """Process-wide container (FastAPI dependency). Starts background triggers on first use."""
    global _container
    with _container_lock:
        if _container is None:
            init_db()
            _container = build_container(SessionLocal(), insight_provider=build_insight_provider())
            _container.coordinator.start()
            _container.prioritization.analyze_and_prioritize()
            logger.info("flowdeck services initialized")
        return _container
