"""Suggestion output models for flowdeck."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from flowdeck.models.task import Task


class ConfidenceLevel(str, Enum):
    """Percentile band of a suggestion within the current ranking."""
    RECOMMENDED = "recommended"
    STRONG = "strong"
    CONSIDER = "consider"

    @property
    def label(self) -> str:
        return {
            ConfidenceLevel.RECOMMENDED: "Top Pick",
            ConfidenceLevel.STRONG: "Strong",
            ConfidenceLevel.CONSIDER: "Good Fit",
        }[self]


class TaskSuggestion(BaseModel):
    """A ranked task with its effective score and human-readable reasons."""
    task: Task
    score: float = Field(..., ge=0.0, le=100.0)
    reasons: List[str] = Field(default_factory=list)
    ai_insight: Optional[str] = None
    confidence: ConfidenceLevel = ConfidenceLevel.CONSIDER

    @property
    def task_id(self) -> str:
        return self.task.id

    @property
    def score_percentage(self) -> int:
        return int(self.score)


class ProductivityInsight(BaseModel):
    title: str
    description: str
