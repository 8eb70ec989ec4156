"""
Task Model for stage-ordered kanban boards
SQLAlchemy 2.0-safe model. Every task lives in exactly one bucket, the pair
(user_id, stage), and carries a zero-based position that is dense within it.
"""

import enum
from typing import Optional, TYPE_CHECKING
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Integer, DateTime, Text, ForeignKey, func, Index
from .base import Base

# Forward reference for type checking
if TYPE_CHECKING:
    from .user import User


class TaskStage(str, enum.Enum):
    """Workflow columns. The value is the stored bucket key."""
    BACKLOG = "backlog"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"

    @classmethod
    def values(cls):
        return [stage.value for stage in cls]

    @classmethod
    def is_valid(cls, value) -> bool:
        return value in cls.values()


class Task(Base):
    """
    A card on a user's board.

    `position` is only ever changed by the ordering engine through the
    transactional applier; request code must not assign it directly.
    """
    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Owner - immutable after creation
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user: Mapped["User"] = relationship(back_populates="tasks")

    # Task content
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    # Bucket key and dense index within (user_id, stage)
    stage: Mapped[str] = mapped_column(String(32), default=TaskStage.BACKLOG.value, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    # No unique constraint on the bucket triple: range shifts pass through
    # transient duplicates row by row inside a single UPDATE.
    __table_args__ = (
        Index('ix_tasks_bucket_position', 'user_id', 'stage', 'position'),
    )

    def __repr__(self):
        return f'<Task {self.id}: {self.title} [{self.stage}:{self.position}]>'

    def to_dict(self, include_user=False):
        """Convert task to dictionary for JSON serialization"""
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'stage': self.stage,
            'index': self.position,
            'user_id': self.user_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

        if include_user and self.user is not None:
            data['user'] = {
                'id': self.user.id,
                'name': self.user.name,
            }

        return data
