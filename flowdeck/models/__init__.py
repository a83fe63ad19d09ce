"""Data models for flowdeck."""

from flowdeck.models.recurrence import RecurringRule, RecurringFrequency
from flowdeck.models.task import Task, TaskStatus, TaskCategory, Priority
from flowdeck.models.calendar_event import CalendarEvent
from flowdeck.models.conflict import TaskConflict, ConflictSeverity, ConflictType
from flowdeck.models.feedback import FeedbackAction, FeedbackEvent, SuggestionFeedback
from flowdeck.models.patterns import CompletionPatterns
from flowdeck.models.suggestion import TaskSuggestion, ConfidenceLevel, ProductivityInsight

__all__ = [
    "RecurringRule",
    "RecurringFrequency",
    "Task",
    "TaskStatus",
    "TaskCategory",
    "Priority",
    "CalendarEvent",
    "TaskConflict",
    "ConflictSeverity",
    "ConflictType",
    "FeedbackAction",
    "FeedbackEvent",
    "SuggestionFeedback",
    "CompletionPatterns",
    "TaskSuggestion",
    "ConfidenceLevel",
    "ProductivityInsight",
]
