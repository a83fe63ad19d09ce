"""OpenAI API integration for flowdeck.

Produces an optional one or two sentence insight for a suggested task. The
deterministic score and reasons are complete without it; every failure path
returns None.
"""

import os
import logging
from typing import List, Optional
from openai import OpenAI, APIError
from dotenv import load_dotenv

from flowdeck.models.task import Task

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

INSIGHT_SYSTEM_PROMPT = "You are a productivity coach. Be encouraging but concise."

INSIGHT_PROMPT_TEMPLATE = """Given this task and its context, provide a brief, motivating insight (1-2 sentences) about why the user should tackle it now.

Task: {title}
Priority: {priority}
Category: {category}
Due: {due}
Current reasons: {reasons}

Respond with just the insight, no explanation."""


class OpenAIClient:
    """Client for OpenAI API integration."""

    def __init__(self, api_key: Optional[str] = None):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key. If None, reads from OPENAI_API_KEY environment variable.

        Note:
            Without a key the client still initializes and every call returns None.
        """
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.client = None

        if self.api_key:
            self.client = OpenAI(api_key=self.api_key)
        else:
            logger.warning("OPENAI_API_KEY not found in environment. Suggestion insights will not be available.")

    @property
    def is_ready(self) -> bool:
        return self.client is not None

    def generate_suggestion_insight(self, task: Task, reasons: List[str]) -> Optional[str]:
        """Ask the model why this task is worth doing now.

        Callers must check AI exclusion before calling.
        """
        if not self.client:
            return None

        due = task.due_datetime.strftime("%Y-%m-%d %H:%M") if task.due_datetime else "No due date"
        prompt = INSIGHT_PROMPT_TEMPLATE.format(
            title=task.title,
            priority=task.priority.value,
            category=task.category.value,
            due=due,
            reasons=", ".join(reasons) or "none",
        )

        try:
            response = self.client.chat.completions.create(
                model=OPENAI_MODEL,
                messages=[
                    {"role": "system", "content": INSIGHT_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.7,
                max_tokens=80,
            )
            insight = (response.choices[0].message.content or "").strip()
            if not insight:
                logger.warning("OpenAI returned an empty insight")
                return None
            return insight

        except APIError as e:
            error_code = getattr(e, 'code', None)
            status_code = getattr(e, 'status_code', None)

            if error_code == 'insufficient_quota':
                logger.warning("OpenAI API quota insufficient for suggestion insights.")
            elif status_code == 429:
                logger.warning("OpenAI API rate limit exceeded for suggestion insights.")
            else:
                logger.error(f"OpenAI API error during insight generation: {status_code or 'unknown'} ({error_code or 'unknown'})")
            return None
        except Exception as e:
            # Don't log full error message as it might contain sensitive info
            logger.error(f"Error generating insight with OpenAI API: {type(e).__name__}")
            return None
