"""Exception types raised by flowdeck engines and integrations."""


class CalendarError(Exception):
    """Base class for external calendar failures."""


class CalendarAccessError(CalendarError):
    """Calendar access has not been granted (or was revoked)."""


class CalendarWriteError(CalendarError):
    """The calendar store rejected a create, update or delete."""


class InvariantViolation(RuntimeError):
    """Internal state that the write paths should have made impossible.

    Raised to surface programming errors, never caught by the engines.
    """


class TaskNotFoundError(LookupError):
    """No live task with the requested id."""

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id
