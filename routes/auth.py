"""
Authentication API Routes
Registration, token login/logout and the current-user endpoint.
"""

import logging
import re

from flask import Blueprint, request
from flask_login import login_required, current_user
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from models import db, User
from utils.api_response import success_response, error_response, validation_error
from utils.auth import issue_token, revoke_current_token

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api')

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def is_valid_email(email):
    """Validate email format."""
    return EMAIL_PATTERN.match(email) is not None


def _email_taken(email):
    return db.session.scalar(select(User.id).where(User.email == email)) is not None


def validate_registration(data):
    """Field errors for a register payload, {} when valid."""
    errors = {}
    name = (data.get('name') or '').strip()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not name:
        errors['name'] = ['The name field is required.']
    elif len(name) > 120:
        errors['name'] = ['The name may not be greater than 120 characters.']

    if not email:
        errors['email'] = ['The email field is required.']
    elif len(email) > 254 or not is_valid_email(email):
        errors['email'] = ['The email must be a valid email address.']
    elif _email_taken(email):
        errors['email'] = ['The email has already been taken.']

    if not password:
        errors['password'] = ['The password field is required.']
    elif password != data.get('password_confirmation'):
        errors['password'] = ['The password confirmation does not match.']

    return errors


def _user_with_token(user, token):
    data = user.to_dict()
    data['token'] = token
    return data


@auth_bp.route('/auth/register', methods=['POST'])
def register():
    """Create an account and return it with a fresh API token."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return validation_error({'body': ['A JSON object body is required.']})

    errors = validate_registration(data)
    if errors:
        return validation_error(errors)

    user = User(name=data['name'].strip(), email=data['email'].strip().lower())
    user.set_password(data['password'])
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration for the same email
        db.session.rollback()
        return validation_error({'email': ['The email has already been taken.']})

    token = issue_token(user)
    logger.info(f"[AUTH] registered user {user.id}")
    return success_response(_user_with_token(user, token), 'User created successfully', 201)


@auth_bp.route('/auth/login', methods=['POST'])
def login():
    """Exchange email/password for an API token."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return validation_error({'body': ['A JSON object body is required.']})

    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    errors = {}
    if not email:
        errors['email'] = ['The email field is required.']
    if not password:
        errors['password'] = ['The password field is required.']
    if errors:
        return validation_error(errors)

    user = db.session.scalar(select(User).where(User.email == email))
    if user is None or not user.check_password(password):
        logger.warning(f"[AUTH] login failed for: {email}")
        return error_response('Invalid credentials', 401)

    token = issue_token(user, 'login')
    logger.info(f"[AUTH] login successful for user {user.id}")
    return success_response(_user_with_token(user, token), 'Login successful')


@auth_bp.route('/auth/logout', methods=['POST'])
@login_required
def logout():
    """Revoke the bearer token used for this request."""
    revoke_current_token()
    return success_response(message='Logged out successfully')


@auth_bp.route('/user', methods=['GET'])
@login_required
def api_user():
    """Current user data."""
    return success_response(current_user.to_dict(), 'User retrieved successfully')
