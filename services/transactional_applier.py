"""
Transactional Applier - commits one ordering plan as a single atomic unit.

Protocol for one operation:
    1. open (or continue) the session transaction
    2. lock the owner row; every bucket of that owner serializes here
    3. let the caller read bucket state and build a UnitOfWork
    4. apply sibling shifts, then the primary mutation
    5. optionally verify density of the touched buckets
    6. commit; any failure along the way rolls everything back

Store failures surface as TransientStoreError. There is no automatic retry;
callers re-run the whole operation, re-reading state.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import OperationalError, SQLAlchemyError, TimeoutError as PoolTimeoutError

from services.ordering_engine import Bucket, OrderingPlan, Shift
from services.ordering_invariants import verify_buckets
from services.task_errors import NotFoundError, TransientStoreError
from services.task_store import TaskStore

logger = logging.getLogger(__name__)

INSERT = "insert"
UPDATE = "update"
DELETE = "delete"


@dataclass
class UnitOfWork:
    """
    Builder for one atomic change: zero or more shifts plus one primary
    mutation. Submitted once to TransactionalApplier.
    """
    owner_id: int
    shifts: List[Shift] = field(default_factory=list)
    action: Optional[str] = None
    task_id: Optional[int] = None
    fields: Dict[str, Any] = field(default_factory=dict)
    touched: List[Bucket] = field(default_factory=list)
    result: Any = None

    def shift(self, shift: Shift) -> "UnitOfWork":
        if shift.bucket.owner_id != self.owner_id:
            raise ValueError(f"Shift on bucket {shift.bucket} outside owner {self.owner_id}")
        self.shifts.append(shift)
        self._touch(shift.bucket)
        return self

    def with_plan(self, plan: OrderingPlan) -> "UnitOfWork":
        for shift in plan.shifts:
            self.shift(shift)
        if plan.placement is not None:
            self._touch(Bucket(self.owner_id, plan.placement.stage))
        return self

    def insert(self, stage: str, position: int, fields: Dict[str, Any]) -> "UnitOfWork":
        self._set_action(INSERT, None, dict(fields, stage=stage, position=position))
        self._touch(Bucket(self.owner_id, stage))
        return self

    def update(self, task_id: int, fields: Dict[str, Any]) -> "UnitOfWork":
        self._set_action(UPDATE, task_id, dict(fields))
        if 'stage' in fields:
            self._touch(Bucket(self.owner_id, fields['stage']))
        return self

    def delete(self, task_id: int) -> "UnitOfWork":
        self._set_action(DELETE, task_id, {})
        return self

    def _set_action(self, action, task_id, fields):
        if self.action is not None:
            raise ValueError("A unit of work carries exactly one primary mutation")
        self.action = action
        self.task_id = task_id
        self.fields = fields

    def _touch(self, bucket: Bucket):
        if bucket not in self.touched:
            self.touched.append(bucket)


class TransactionalApplier:
    """Runs UnitOfWork values against a TaskStore, all or nothing."""

    def __init__(self, store: TaskStore, lock_timeout_ms: Optional[int] = None,
                 verify_invariants: bool = False):
        self.store = store
        self.lock_timeout_ms = lock_timeout_ms
        self.verify_invariants = verify_invariants

    @property
    def session(self):
        return self.store.session

    def run(self, owner_id: int, build: Callable[[TaskStore, UnitOfWork], Optional[UnitOfWork]]):
        """
        Execute one operation for owner_id.

        `build` reads state through the store (already under the owner lock)
        and fills the UnitOfWork it is given. Returning None means no store
        write is needed; the transaction still ends cleanly.

        Returns the primary mutation's result: the Task for insert/update,
        True for delete, or whatever build left in work.result for a no-op.
        """
        work = UnitOfWork(owner_id=owner_id)
        try:
            self.store.set_lock_timeout(self.lock_timeout_ms)
            if not self.store.lock_owner(owner_id):
                raise NotFoundError()

            planned = build(self.store, work)
            if planned is None or (planned.action is None and not planned.shifts):
                self.session.commit()
                return work.result

            result = self._apply(planned)

            if self.verify_invariants:
                verify_buckets(self.store, planned.touched)

            self.session.commit()
            logger.info(
                f"[APPLIER] committed {planned.action} task={planned.task_id or getattr(result, 'id', None)} "
                f"owner={owner_id} shifts={len(planned.shifts)}"
            )
            return result

        except (OperationalError, PoolTimeoutError) as e:
            self.session.rollback()
            logger.warning(f"[APPLIER] aborted for owner {owner_id}: {e}")
            raise TransientStoreError(
                "The task store could not complete the operation; nothing was applied",
                {'owner_id': owner_id, 'reason': str(getattr(e, 'orig', e))},
            ) from e
        except SQLAlchemyError:
            self.session.rollback()
            logger.error(f"[APPLIER] store failure for owner {owner_id}", exc_info=True)
            raise
        except Exception:
            self.session.rollback()
            raise

    def _apply(self, work: UnitOfWork):
        for shift in work.shifts:
            self.store.shift(shift)

        if work.action == INSERT:
            fields = dict(work.fields)
            stage = fields.pop('stage')
            position = fields.pop('position')
            return self.store.insert_task(work.owner_id, stage, position, fields)
        if work.action == UPDATE:
            return self.store.update_task(work.task_id, work.fields)
        if work.action == DELETE:
            if not self.store.delete_task(work.task_id):
                raise NotFoundError(work.task_id)
            return True
        return work.result
