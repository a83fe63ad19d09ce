"""Reminder scheduling interface.

Delivery (push notifications, badges) is owned elsewhere; flowdeck only issues
schedule and cancel commands and never inspects delivery status.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Tuple

logger = logging.getLogger(__name__)


class ReminderScheduler(ABC):
    @abstractmethod
    def schedule_reminder(self, task_id: str, title: str, at: datetime) -> None:
        ...

    @abstractmethod
    def cancel_reminder(self, task_id: str) -> None:
        ...


class InMemoryReminderScheduler(ReminderScheduler):
    """Keeps the pending reminder per task. Used when no delivery backend is wired."""

    def __init__(self):
        self.scheduled: Dict[str, Tuple[str, datetime]] = {}

    def schedule_reminder(self, task_id: str, title: str, at: datetime) -> None:
        self.scheduled[task_id] = (title, at)
        logger.debug(f"Reminder for task {task_id} scheduled at {at.isoformat()}")

    def cancel_reminder(self, task_id: str) -> None:
        if self.scheduled.pop(task_id, None) is not None:
            logger.debug(f"Reminder for task {task_id} cancelled")
