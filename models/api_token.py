"""
ApiToken Model - bearer tokens issued on register/login.
Only a SHA-256 digest of the token is stored; the plain value is shown once.
"""

import hashlib
import secrets
from typing import Optional, Tuple, TYPE_CHECKING
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Integer, DateTime, ForeignKey, func
from .base import Base

if TYPE_CHECKING:
    from .user import User


class ApiToken(Base):
    __tablename__ = "api_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    user: Mapped["User"] = relationship(back_populates="api_tokens")

    name: Mapped[str] = mapped_column(String(64), default="api-token")
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self):
        return f'<ApiToken {self.name} user_id={self.user_id}>'

    @staticmethod
    def hash_token(plain_token: str) -> str:
        return hashlib.sha256(plain_token.encode('utf-8')).hexdigest()

    @classmethod
    def issue(cls, user: "User", name: str = "api-token") -> Tuple["ApiToken", str]:
        """
        Create a token record for a user.

        Returns:
            (ApiToken, plain_token) - the caller must add the record to the session.
        """
        plain_token = secrets.token_urlsafe(40)
        record = cls(user=user, name=name, token_hash=cls.hash_token(plain_token))
        return record, plain_token
