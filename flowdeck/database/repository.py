"""Repository layer for database operations."""

import logging
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import desc

from flowdeck.models.task import Task, TaskStatus
from flowdeck.database.models import TaskDB, KeyValueBlobDB

logger = logging.getLogger(__name__)

TaskChangeListener = Callable[[], None]

SESSION_LOCK_KEY = "flowdeck.lock"


def session_lock(db: Session) -> threading.RLock:
    """Lock shared by every repository bound to the same session.

    A Session is not thread-safe and timer threads write through it too.
    """
    return db.info.setdefault(SESSION_LOCK_KEY, threading.RLock())


class TaskRepository:
    """Repository for Task database operations.

    Every successful write notifies the registered change listeners. The
    session is shared with debounced background work, so access is serialized.
    """

    def __init__(self, db: Session):
        self.db = db
        self._lock = session_lock(db)
        self._listeners: List[TaskChangeListener] = []

    def add_listener(self, listener: TaskChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: TaskChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.error(f"Task change listener failed: {type(e).__name__}: {str(e)}")

    def _subtask_map(self, rows: List[TaskDB]) -> Dict[str, List[str]]:
        children: Dict[str, List[TaskDB]] = {}
        for row in rows:
            if row.parent_task_id and not row.is_deleted:
                children.setdefault(row.parent_task_id, []).append(row)
        return {
            parent_id: [r.id for r in sorted(kids, key=lambda r: (r.subtask_order, r.created_at))]
            for parent_id, kids in children.items()
        }

    def _to_task(self, task_db: TaskDB) -> Task:
        kids = self.db.query(TaskDB).filter(
            TaskDB.parent_task_id == task_db.id,
            TaskDB.is_deleted.is_(False),
        ).order_by(TaskDB.subtask_order, TaskDB.created_at).all()
        return task_db.to_pydantic([k.id for k in kids])

    def create(self, task: Task) -> Task:
        """Create a new task."""
        with self._lock:
            try:
                task_db = TaskDB.from_pydantic(task)
                self.db.add(task_db)
                self.db.commit()
                self.db.refresh(task_db)
                logger.debug(f"Created task {task.id}: {task.title[:50]}")
                created = self._to_task(task_db)
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to create task {task.id}: {type(e).__name__}: {str(e)}")
                raise
        self._notify()
        return created

    def get(self, task_id: str, include_deleted: bool = False) -> Optional[Task]:
        """Get task by ID. Soft-deleted tasks are hidden unless asked for."""
        with self._lock:
            query = self.db.query(TaskDB).filter(TaskDB.id == task_id)
            if not include_deleted:
                query = query.filter(TaskDB.is_deleted.is_(False))
            task_db = query.first()
            return self._to_task(task_db) if task_db else None

    def get_all(self, include_deleted: bool = False) -> List[Task]:
        """Get all tasks sorted by creation date (newest first)."""
        with self._lock:
            query = self.db.query(TaskDB)
            if not include_deleted:
                query = query.filter(TaskDB.is_deleted.is_(False))
            rows = query.order_by(desc(TaskDB.created_at)).all()
            subtasks = self._subtask_map(rows)
            return [row.to_pydantic(subtasks.get(row.id)) for row in rows]

    def get_incomplete(self) -> List[Task]:
        """Get all non-completed, non-archived, non-deleted tasks."""
        return [t for t in self.get_all() if not t.is_completed and not t.is_archived]

    def get_in_progress(self) -> List[Task]:
        with self._lock:
            rows = self.db.query(TaskDB).filter(
                TaskDB.status == TaskStatus.IN_PROGRESS.value,
                TaskDB.is_deleted.is_(False),
            ).all()
            return [self._to_task(row) for row in rows]

    def get_subtasks(self, parent_id: str, include_deleted: bool = False) -> List[Task]:
        """Get a parent's subtasks in display order."""
        with self._lock:
            query = self.db.query(TaskDB).filter(TaskDB.parent_task_id == parent_id)
            if not include_deleted:
                query = query.filter(TaskDB.is_deleted.is_(False))
            rows = query.order_by(TaskDB.subtask_order, TaskDB.created_at).all()
            return [self._to_task(row) for row in rows]

    def get_deleted(self) -> List[Task]:
        with self._lock:
            rows = self.db.query(TaskDB).filter(TaskDB.is_deleted.is_(True)).all()
            return [row.to_pydantic() for row in rows]

    def update(self, task: Task) -> Task:
        """Update an existing task. Tombstoned tasks can still be updated."""
        with self._lock:
            task_db = self.db.query(TaskDB).filter(TaskDB.id == task.id).first()
            if not task_db:
                raise ValueError(f"Task {task.id} not found")

            task_db.apply(task)

            try:
                self.db.commit()
                self.db.refresh(task_db)
                logger.debug(f"Updated task {task.id}: {task.title[:50]}")
                updated = self._to_task(task_db)
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to update task {task.id}: {type(e).__name__}: {str(e)}")
                raise
        self._notify()
        return updated

    def update_many(self, tasks: List[Task]) -> List[Task]:
        """Update several tasks in one transaction with a single change notification."""
        if not tasks:
            return []
        with self._lock:
            rows = []
            for task in tasks:
                task_db = self.db.query(TaskDB).filter(TaskDB.id == task.id).first()
                if not task_db:
                    raise ValueError(f"Task {task.id} not found")
                task_db.apply(task)
                rows.append(task_db)

            try:
                self.db.commit()
                for row in rows:
                    self.db.refresh(row)
                logger.debug(f"Updated {len(rows)} tasks")
                updated = [self._to_task(row) for row in rows]
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to update {len(tasks)} tasks: {type(e).__name__}: {str(e)}")
                raise
        self._notify()
        return updated

    def soft_delete(self, task_id: str, now: Optional[datetime] = None) -> bool:
        """Tombstone a task and its subtasks."""
        now = now or datetime.now()
        with self._lock:
            task_db = self.db.query(TaskDB).filter(
                TaskDB.id == task_id,
                TaskDB.is_deleted.is_(False),
            ).first()
            if not task_db:
                return False

            try:
                task_db.is_deleted = True
                task_db.deleted_at = now
                self.db.query(TaskDB).filter(
                    TaskDB.parent_task_id == task_id,
                    TaskDB.is_deleted.is_(False),
                ).update({TaskDB.is_deleted: True, TaskDB.deleted_at: now}, synchronize_session=False)
                self.db.commit()
                logger.debug(f"Soft-deleted task {task_id}")
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to soft-delete task {task_id}: {type(e).__name__}: {str(e)}")
                raise
        self._notify()
        return True

    def restore(self, task_id: str) -> bool:
        """Restore a soft-deleted task and the subtasks deleted with it."""
        with self._lock:
            task_db = self.db.query(TaskDB).filter(TaskDB.id == task_id).first()
            if not task_db:
                return False

            # Idempotent restore: if it's already active, treat as success
            if not task_db.is_deleted:
                return True

            try:
                deleted_at = task_db.deleted_at
                task_db.is_deleted = False
                task_db.deleted_at = None
                self.db.query(TaskDB).filter(
                    TaskDB.parent_task_id == task_id,
                    TaskDB.is_deleted.is_(True),
                    TaskDB.deleted_at == deleted_at,
                ).update({TaskDB.is_deleted: False, TaskDB.deleted_at: None}, synchronize_session=False)
                self.db.commit()
                logger.debug(f"Restored task {task_id}")
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to restore task {task_id}: {type(e).__name__}: {str(e)}")
                raise
        self._notify()
        return True

    def purge(self, task_id: str) -> bool:
        """Permanently delete a task and its subtasks."""
        with self._lock:
            task_db = self.db.query(TaskDB).filter(TaskDB.id == task_id).first()
            if not task_db:
                return False

            try:
                self.db.query(TaskDB).filter(
                    TaskDB.parent_task_id == task_id,
                ).delete(synchronize_session=False)
                self.db.delete(task_db)
                self.db.commit()
                logger.debug(f"Purged task {task_id}")
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to purge task {task_id}: {type(e).__name__}: {str(e)}")
                raise
        self._notify()
        return True


class BlobRepository:
    """Key/value store for opaque JSON documents."""

    def __init__(self, db: Session):
        self.db = db
        self._lock = session_lock(db)

    def load(self, key: str) -> Optional[str]:
        with self._lock:
            row = self.db.query(KeyValueBlobDB).filter(KeyValueBlobDB.key == key).first()
            return row.value if row else None

    def save(self, key: str, value: str) -> None:
        with self._lock:
            row = self.db.query(KeyValueBlobDB).filter(KeyValueBlobDB.key == key).first()
            if row is None:
                row = KeyValueBlobDB(key=key, value=value)
                self.db.add(row)
            else:
                row.value = value
            row.updated_at = datetime.now()

            try:
                self.db.commit()
                logger.debug(f"Saved blob {key} ({len(value)} bytes)")
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to save blob {key}: {type(e).__name__}: {str(e)}")
                raise
