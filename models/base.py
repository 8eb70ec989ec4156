"""
Declarative base shared by every model and by the Flask-SQLAlchemy extension.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
