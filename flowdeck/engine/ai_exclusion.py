"""AI exclusion enforcement for flowdeck.

Certain tasks must never be sent to the insight provider. This check runs
BEFORE any AI call.
"""

from flowdeck.models.task import Task


def is_ai_excluded(task: Task) -> bool:
    """Check if a task is excluded from AI processing.

    A task is AI-excluded if:
    1. Its title begins with a period (`.`)
    2. OR it is explicitly flagged as ai_excluded

    AI-excluded tasks are still scored, ranked and suggested; they just never
    receive an AI insight.
    """
    if task.title.startswith('.'):
        return True

    if task.ai_excluded:
        return True

    return False
