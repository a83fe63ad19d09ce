"""Decision engines for flowdeck."""

from flowdeck.engine.ai_exclusion import is_ai_excluded
from flowdeck.engine.errors import CalendarAccessError, CalendarError, CalendarWriteError, InvariantViolation, TaskNotFoundError
from flowdeck.engine.scoring import calculate_priority_score, score_breakdown

__all__ = [
    "is_ai_excluded",
    "CalendarError",
    "CalendarAccessError",
    "CalendarWriteError",
    "InvariantViolation",
    "TaskNotFoundError",
    "calculate_priority_score",
    "score_breakdown",
]
