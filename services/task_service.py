"""
Task Service - the ordering-aware task API used by the request layer.

Every call takes the acting owner explicitly. Tasks owned by someone else are
reported exactly like missing ones. Mutations go through the ordering engine
and the transactional applier; errors come back inside OperationResult
instead of being raised.
"""

import logging
from typing import Any, Dict, Optional

from flask import current_app

from models import db, Task, TaskStage
from services.ordering_engine import Bucket, plan_append, plan_move, plan_remove
from services.task_errors import NotFoundError, OperationResult, TaskError
from services.task_query_builder import TaskQueryBuilder
from services.task_store import TaskStore, MUTABLE_FIELDS
from services.transactional_applier import TransactionalApplier

logger = logging.getLogger(__name__)


class TaskService:
    """
    Service for creating, moving, updating and removing tasks while keeping
    every (owner, stage) bucket dense.
    """

    def __init__(self, session, lock_timeout_ms: Optional[int] = None,
                 verify_invariants: bool = False, default_per_page: int = 10,
                 max_per_page: int = 100):
        self.session = session
        self.store = TaskStore(session)
        self.applier = TransactionalApplier(
            self.store,
            lock_timeout_ms=lock_timeout_ms,
            verify_invariants=verify_invariants,
        )
        self.default_per_page = default_per_page
        self.max_per_page = max_per_page

    # ------------------------------------------------------------ mutations

    def append(self, owner_id: int, stage: str, payload: Dict[str, Any]) -> OperationResult[Task]:
        """Create a task at the end of its bucket."""
        fields = _clean_payload(payload)
        stage = _stage_value(stage)

        def build(store, work):
            plan = plan_append(Bucket(owner_id, stage), store.count(owner_id, stage))
            return work.with_plan(plan).insert(plan.placement.stage, plan.placement.position, fields)

        result = self._execute("append", owner_id, build)
        if result.ok:
            logger.info(f"[ORDERING] appended task {result.value.id} to {owner_id}/{stage} at {result.value.position}")
        return result

    def move(self, owner_id: int, task_id: int, target_stage: Optional[str] = None,
             target_position: Optional[int] = None) -> OperationResult[Task]:
        """
        Move a task inside its bucket or to another stage.

        A missing target_stage keeps the current stage. A missing
        target_position keeps the current position for same-stage moves and
        appends to the end for cross-stage moves.
        """
        return self.update(owner_id, task_id, {}, target_stage, target_position)

    def update(self, owner_id: int, task_id: int, fields: Dict[str, Any],
               target_stage: Optional[str] = None,
               target_position: Optional[int] = None) -> OperationResult[Task]:
        """Change title/description and optionally move, in one transaction."""
        changes = _clean_payload(fields)
        target_stage = _stage_value(target_stage)

        def build(store, work):
            current = store.read_position(task_id)
            if current is None or current.owner_id != owner_id:
                raise NotFoundError(task_id)

            source = Bucket(owner_id, current.stage)
            destination = Bucket(owner_id, target_stage or current.stage)
            source_size = store.count(owner_id, source.stage)
            if destination == source:
                destination_size = source_size
            else:
                destination_size = store.count(owner_id, destination.stage)

            plan = plan_move(
                source, current.position, source_size,
                destination, destination_size, target_position,
            )

            primary = dict(changes)
            if not plan.noop:
                work.with_plan(plan)
                primary.update(stage=plan.placement.stage, position=plan.placement.position)

            if not primary:
                # Same place, nothing else to change: no store write at all.
                work.result = store.load_task(task_id)
                return None
            return work.update(task_id, primary)

        return self._execute("move", owner_id, build)

    def remove(self, owner_id: int, task_id: int) -> OperationResult[bool]:
        """Delete a task and close the gap it leaves in its bucket."""

        def build(store, work):
            current = store.read_position(task_id)
            if current is None or current.owner_id != owner_id:
                raise NotFoundError(task_id)
            plan = plan_remove(Bucket(owner_id, current.stage), current.position)
            return work.with_plan(plan).delete(task_id)

        result = self._execute("remove", owner_id, build)
        if result.ok:
            logger.info(f"[ORDERING] removed task {task_id} for owner {owner_id}")
        return result

    # ---------------------------------------------------------------- reads

    def get(self, owner_id: int, task_id: int) -> OperationResult[Task]:
        task = self.session.scalar(TaskQueryBuilder.get_owned_task_query(owner_id, task_id))
        if task is None:
            return OperationResult.failure(NotFoundError(task_id))
        return OperationResult.success(task)

    def list_grouped(self, owner_id: int, stage: Optional[str] = None, keyword: Optional[str] = None,
                     page: int = 1, per_page: Optional[int] = None) -> Dict[str, Dict[str, Any]]:
        """
        Tasks grouped by stage, each stage paginated independently.

        Args:
            owner_id: acting user
            stage: restrict to one stage; unknown stages yield an empty result
            keyword: substring matched against title or description
            page: 1-based page number applied to every stage
            per_page: page size, capped at max_per_page

        Returns:
            {stage_value: {'name', 'tasks', 'meta'}} in workflow order
        """
        per_page = per_page or self.default_per_page
        if stage:
            stages = [TaskStage(stage)] if TaskStage.is_valid(stage) else []
        else:
            stages = list(TaskStage)

        grouped = {}
        for stage_enum in stages:
            stmt = TaskQueryBuilder.get_bucket_query(owner_id, stage_enum.value, keyword)
            tasks = db.paginate(
                stmt,
                page=page,
                per_page=per_page,
                max_per_page=self.max_per_page,
                error_out=False,
            )
            grouped[stage_enum.value] = {
                'name': stage_enum.name,
                'tasks': list(tasks.items),
                'meta': {
                    'current_page': tasks.page,
                    'last_page': max(tasks.pages, 1),
                    'per_page': tasks.per_page,
                    'total': tasks.total,
                },
            }
        return grouped

    # -------------------------------------------------------------- helpers

    def _execute(self, operation: str, owner_id: int, build) -> OperationResult:
        try:
            return OperationResult.success(self.applier.run(owner_id, build))
        except TaskError as e:
            logger.info(f"[ORDERING] {operation} rejected for owner {owner_id}: {e.code} {e.message}")
            return OperationResult.failure(e)


def _stage_value(stage):
    value = getattr(stage, "value", stage)
    if value is not None and not TaskStage.is_valid(value):
        raise ValueError(f"Unknown stage: {value!r}")
    return value


def _clean_payload(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not payload:
        return {}
    return {name: payload[name] for name in MUTABLE_FIELDS if name in payload}


def init_task_service(app):
    """Attach a TaskService configured from app.config."""
    app.extensions['task_service'] = TaskService(
        db.session,
        lock_timeout_ms=app.config.get('ORDERING_LOCK_TIMEOUT_MS'),
        verify_invariants=app.config.get('ORDERING_VERIFY_INVARIANTS', False),
        default_per_page=app.config.get('TASKS_DEFAULT_PER_PAGE', 10),
        max_per_page=app.config.get('TASKS_MAX_PER_PAGE', 100),
    )
    return app.extensions['task_service']


def get_task_service() -> TaskService:
    """TaskService bound to the current application."""
    return current_app.extensions['task_service']
