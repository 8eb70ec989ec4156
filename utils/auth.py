"""
Authentication utilities.

Bearer tokens are issued on register/login and resolved back to a User by the
Flask-Login request loader registered in the app factory.
"""

import logging
from datetime import datetime
from typing import Optional, Tuple

from flask import request
from sqlalchemy import select

from models import db, ApiToken, User
from utils.api_response import error_response

logger = logging.getLogger(__name__)

BEARER_PREFIX = 'bearer '


def bearer_token_from_request(req=None) -> Optional[str]:
    """Plain token from an `Authorization: Bearer <token>` header, or None."""
    req = req or request
    header = req.headers.get('Authorization', '')
    if not header.lower().startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):].strip()
    return token or None


def find_token(plain_token: str) -> Optional[ApiToken]:
    return db.session.scalar(
        select(ApiToken).where(ApiToken.token_hash == ApiToken.hash_token(plain_token))
    )


def load_user_from_request(req) -> Optional[User]:
    """Flask-Login request_loader: resolve the bearer token to its owner."""
    plain_token = bearer_token_from_request(req)
    if not plain_token:
        return None

    record = find_token(plain_token)
    if record is None:
        logger.info("[AUTH] rejected unknown bearer token")
        return None

    record.last_used_at = datetime.utcnow()
    db.session.commit()
    return record.user


def load_user(user_id) -> Optional[User]:
    """Flask-Login user_loader for session-based access."""
    return db.session.get(User, int(user_id))


def issue_token(user: User, name: str = 'api-token') -> str:
    """Create and persist a new token for user; returns the plain value."""
    record, plain_token = ApiToken.issue(user, name)
    db.session.add(record)
    db.session.commit()
    logger.info(f"[AUTH] issued token '{name}' for user {user.id}")
    return plain_token


def revoke_current_token() -> bool:
    """Delete the token presented on the current request."""
    plain_token = bearer_token_from_request()
    if not plain_token:
        return False
    record = find_token(plain_token)
    if record is None:
        return False
    token_id, user_id = record.id, record.user_id
    db.session.delete(record)
    db.session.commit()
    logger.info(f"[AUTH] revoked token {token_id} for user {user_id}")
    return True


def unauthorized_response() -> Tuple:
    return error_response('Unauthenticated.', 401)

