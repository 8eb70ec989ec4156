"""
Task Query Builder - Shared query logic for bucket listings

Keeps the API listing and the service-level reads on the same ordering:
tasks of one owner, one stage, ascending position.
"""

from sqlalchemy import select, or_
from models import Task


class TaskQueryBuilder:
    """
    Builds consistent read-only task queries scoped to a single owner.
    """

    @staticmethod
    def get_owner_tasks_query(owner_id):
        """
        All tasks of an owner, unordered.

        Args:
            owner_id: User ID that owns the tasks

        Returns:
            SQLAlchemy select statement
        """
        return select(Task).where(Task.user_id == owner_id)

    @staticmethod
    def get_bucket_query(owner_id, stage, keyword=None):
        """
        Tasks in one (owner, stage) bucket ordered by position.

        Args:
            owner_id: User ID that owns the tasks
            stage: Stage value (bucket key)
            keyword: Optional case-insensitive substring matched against
                title or description

        Returns:
            SQLAlchemy select statement with ordering
        """
        stmt = TaskQueryBuilder.get_owner_tasks_query(owner_id).where(Task.stage == stage)

        if keyword:
            pattern = f"%{keyword}%"
            stmt = stmt.where(
                or_(
                    Task.title.ilike(pattern),
                    Task.description.ilike(pattern)
                )
            )

        return stmt.order_by(Task.position.asc(), Task.id.asc())

    @staticmethod
    def get_owned_task_query(owner_id, task_id):
        """Single task, only if it belongs to owner_id."""
        return TaskQueryBuilder.get_owner_tasks_query(owner_id).where(Task.id == task_id)
