"""Bounded undo/redo log of reversible task operations."""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional

from flowdeck.models.constants import UNDO_STACK_LIMIT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UndoCommand:
    """A named pair of inverse operations."""
    name: str
    undo: Callable[[], None]
    redo: Callable[[], None]


class UndoStack:
    def __init__(self, limit: int = UNDO_STACK_LIMIT):
        self.limit = limit
        self._lock = threading.Lock()
        self._undo: Deque[UndoCommand] = deque(maxlen=limit)
        self._redo: Deque[UndoCommand] = deque(maxlen=limit)

    def push(self, command: UndoCommand) -> None:
        """Record a freshly performed command. Clears the redo history."""
        with self._lock:
            self._undo.append(command)
            self._redo.clear()

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def peek(self) -> Optional[UndoCommand]:
        with self._lock:
            return self._undo[-1] if self._undo else None

    def undo(self) -> Optional[UndoCommand]:
        with self._lock:
            if not self._undo:
                return None
            command = self._undo.pop()
        command.undo()
        with self._lock:
            self._redo.append(command)
        logger.debug(f"Undid {command.name}")
        return command

    def redo(self) -> Optional[UndoCommand]:
        with self._lock:
            if not self._redo:
                return None
            command = self._redo.pop()
        command.redo()
        with self._lock:
            self._undo.append(command)
        logger.debug(f"Redid {command.name}")
        return command

    def clear(self) -> None:
        with self._lock:
            self._undo.clear()
            self._redo.clear()
