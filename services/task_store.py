"""
Task Store - the narrow persistence surface the ordering engine consumes.

Wraps a SQLAlchemy session. Reads are always issued against the database
(never served from the identity map) so state read after the owner lock is
the committed state. shift() is a single range-scoped UPDATE and is only
legal inside the applier's transaction.
"""

import logging
from datetime import datetime
from typing import Any, Dict, NamedTuple, Optional

from sqlalchemy import select, update, delete, func, text

from models import Task, User
from services.ordering_engine import Shift

logger = logging.getLogger(__name__)

# Payload fields a caller may set through insert_task/update_task.
MUTABLE_FIELDS = ('title', 'description')


class StoredPosition(NamedTuple):
    owner_id: int
    stage: str
    position: int


class TaskStore:
    """SQLAlchemy-backed implementation of the store interface."""

    def __init__(self, session):
        self.session = session

    @property
    def dialect_name(self) -> str:
        return self.session.get_bind().dialect.name

    # ------------------------------------------------------------------ reads

    def count(self, owner_id: int, stage: str) -> int:
        """Current bucket size."""
        return self.session.scalar(
            select(func.count(Task.id)).where(Task.user_id == owner_id, Task.stage == stage)
        ) or 0

    def read_position(self, task_id: int) -> Optional[StoredPosition]:
        row = self.session.execute(
            select(Task.user_id, Task.stage, Task.position).where(Task.id == task_id)
        ).first()
        if row is None:
            return None
        return StoredPosition(row.user_id, row.stage, row.position)

    def bucket_positions(self, owner_id: int, stage: str):
        """Positions of a bucket in ascending order."""
        return list(self.session.scalars(
            select(Task.position)
            .where(Task.user_id == owner_id, Task.stage == stage)
            .order_by(Task.position)
        ))

    def load_task(self, task_id: int) -> Optional[Task]:
        return self.session.get(Task, task_id, populate_existing=True)

    # ---------------------------------------------------------------- locking

    def set_lock_timeout(self, timeout_ms: Optional[int]):
        """Bound how long lock_owner may wait. Scoped to the current transaction."""
        if not timeout_ms or self.dialect_name != 'postgresql':
            return
        self.session.execute(text(f"SET LOCAL lock_timeout = '{int(timeout_ms)}ms'"))

    def lock_owner(self, owner_id: int) -> bool:
        """
        Take the row lock that serializes every bucket of one owner.

        Returns False when the owner does not exist. On SQLite the statement is
        a plain read; file-backed engines open every transaction with
        BEGIN IMMEDIATE, which already serializes writers.
        """
        locked = self.session.scalar(
            select(User.id).where(User.id == owner_id).with_for_update()
        )
        return locked is not None

    # ---------------------------------------------------------------- writes

    def shift(self, shift: Shift) -> int:
        """Add shift.delta to every position in [start, stop) of one bucket."""
        if shift.is_empty:
            return 0

        conditions = [
            Task.user_id == shift.bucket.owner_id,
            Task.stage == shift.bucket.stage,
            Task.position >= shift.start,
        ]
        if shift.stop is not None:
            conditions.append(Task.position < shift.stop)

        stmt = (
            update(Task)
            .where(*conditions)
            .values(position=Task.position + shift.delta, updated_at=datetime.utcnow())
            .execution_options(synchronize_session="evaluate")
        )
        affected = self.session.execute(stmt).rowcount
        logger.debug(
            f"[STORE] shift bucket={shift.bucket} range=[{shift.start}, {shift.stop}) "
            f"delta={shift.delta:+d} rows={affected}"
        )
        return affected

    def insert_task(self, owner_id: int, stage: str, position: int, fields: Dict[str, Any]) -> Task:
        task = Task(
            user_id=owner_id,
            stage=stage,
            position=position,
            **_payload(fields),
        )
        self.session.add(task)
        self.session.flush()
        return task

    def update_task(self, task_id: int, fields: Dict[str, Any]) -> Task:
        """Apply stage/position/payload changes to one task and flush."""
        task = self.session.get(Task, task_id)
        for name in ('stage', 'position'):
            if name in fields:
                setattr(task, name, fields[name])
        for name, value in _payload(fields).items():
            setattr(task, name, value)
        task.updated_at = datetime.utcnow()
        self.session.flush()
        return task

    def delete_task(self, task_id: int) -> bool:
        result = self.session.execute(
            delete(Task).where(Task.id == task_id).execution_options(synchronize_session="evaluate")
        )
        return result.rowcount > 0


def _payload(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {name: fields[name] for name in MUTABLE_FIELDS if name in fields}
