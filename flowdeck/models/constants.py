"""Constants for flowdeck.

This module centralizes the magic numbers and default values used by the engines.
"""

from flowdeck.models.task import Priority, TaskCategory


# Task defaults
DEFAULT_PRIORITY = Priority.NONE
DEFAULT_CATEGORY = TaskCategory.UNCATEGORIZED

# Conflict detection
DEFAULT_TASK_DURATION_MINUTES = 30  # used when a task has no estimate
CONFLICT_WINDOW_PADDING_HOURS = 1

# Calendar sync
CALENDAR_CHECKMARK_PREFIX = "✓ "
BUSY_ONLY_PLACEHOLDER_TITLE = "Focus Block"
FORWARD_PUSH_COOLDOWN_SECONDS = 10  # reverse sync ignores tasks pushed this recently
REVERSE_SYNC_GUARD_SECONDS = 3  # forward sync ignores tasks pulled this recently
MAX_SYNC_NOTICES = 100  # oldest notices are dropped first

# Undo
UNDO_STACK_LIMIT = 50
