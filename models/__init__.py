"""
Models package.

`db` is the Flask-SQLAlchemy extension bound to the shared declarative Base so
typed models declared against `Base` and `db.Model` live in one metadata.
"""

from flask_sqlalchemy import SQLAlchemy

from .base import Base

db = SQLAlchemy(model_class=Base)

from .user import User  # noqa: E402
from .api_token import ApiToken  # noqa: E402
from .task import Task, TaskStage  # noqa: E402

__all__ = ["db", "Base", "User", "ApiToken", "Task", "TaskStage"]
