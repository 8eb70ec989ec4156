"""
Tasks API Routes
REST endpoints for the kanban board: grouped listing, create, read, update,
move and delete. Every mutation goes through the TaskService so bucket
positions stay dense.
"""

import logging

from flask import Blueprint, request
from flask_login import login_required, current_user

from models import db, TaskStage
from services.task_service import get_task_service
from utils.api_response import (
    success_response,
    error_response,
    validation_error,
    task_error_response,
)

logger = logging.getLogger(__name__)

api_tasks_bp = Blueprint('api_tasks', __name__, url_prefix='/api/tasks')

STAGE_ERROR = f"The selected stage is invalid. Allowed: {', '.join(TaskStage.values())}."


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def _validate_task_payload(data, creating=False):
    """
    Field errors for a task payload.

    title/description are required strings on create and optional on update;
    stage must be a known stage; index must be a non-negative integer or null.
    """
    errors = {}

    for name, limit in (('title', 255), ('description', None)):
        if name not in data:
            if creating:
                errors[name] = [f'The {name} field is required.']
            continue
        value = data[name]
        if not isinstance(value, str):
            errors[name] = [f'The {name} must be a string.']
        elif (creating or name == 'title') and not value.strip():
            errors[name] = [f'The {name} field is required.']
        elif limit and len(value) > limit:
            errors[name] = [f'The {name} may not be greater than {limit} characters.']

    if 'stage' in data and data['stage'] is not None and not TaskStage.is_valid(data['stage']):
        errors['stage'] = [STAGE_ERROR]

    if 'index' in data and data['index'] is not None:
        index = data['index']
        # bool is an int subclass; reject it explicitly
        if isinstance(index, bool) or not isinstance(index, int):
            errors['index'] = ['The index must be an integer.']
        elif index < 0:
            errors['index'] = ['The index must be at least 0.']

    return errors


def _payload_fields(data):
    fields = {}
    if 'title' in data:
        fields['title'] = data['title'].strip()
    if 'description' in data:
        fields['description'] = data['description']
    return fields


@api_tasks_bp.route('', methods=['GET'])
@login_required
def list_tasks():
    """Tasks grouped by stage, each stage paginated independently."""
    stage = request.args.get('stage') or None
    keyword = request.args.get('keyword') or None
    page = request.args.get('page', 1, type=int)
    per_page = request.args.get('per_page', None, type=int)

    errors = {}
    if stage is not None and not TaskStage.is_valid(stage):
        errors['stage'] = [STAGE_ERROR]
    if page is None or page < 1:
        errors['page'] = ['The page must be at least 1.']
    if per_page is not None and per_page < 1:
        errors['per_page'] = ['The per page must be at least 1.']
    if errors:
        return validation_error(errors)

    try:
        grouped = get_task_service().list_grouped(
            current_user.id, stage=stage, keyword=keyword, page=page, per_page=per_page,
        )
        data = {
            key: {
                'name': group['name'],
                'tasks': [task.to_dict(include_user=True) for task in group['tasks']],
                'meta': group['meta'],
            }
            for key, group in grouped.items()
        }
        return success_response(data, 'Tasks retrieved successfully')

    except Exception as e:
        db.session.rollback()
        logger.error(f"Error listing tasks: {e}", exc_info=True)
        return error_response('Failed to retrieve tasks', 500)


@api_tasks_bp.route('', methods=['POST'])
@login_required
def create_task():
    """Create a task at the end of its stage (backlog by default)."""
    data = _json_body()
    if data is None:
        return validation_error({'body': ['A JSON object body is required.']})

    errors = _validate_task_payload(data, creating=True)
    if errors:
        return validation_error(errors)

    try:
        stage = data.get('stage') or TaskStage.BACKLOG.value
        result = get_task_service().append(current_user.id, stage, _payload_fields(data))
        if not result.ok:
            return task_error_response(result.error)
        return success_response(result.value.to_dict(include_user=True), 'Task created successfully', 201)

    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating task: {e}", exc_info=True)
        return error_response('Failed to create task', 500)


@api_tasks_bp.route('/<int:task_id>', methods=['GET'])
@login_required
def get_task(task_id):
    """Get one task owned by the current user."""
    result = get_task_service().get(current_user.id, task_id)
    if not result.ok:
        return task_error_response(result.error)
    return success_response(result.value.to_dict(include_user=True), 'Task retrieved successfully')


@api_tasks_bp.route('/<int:task_id>', methods=['PUT', 'PATCH'])
@login_required
def update_task(task_id):
    """Update title/description and optionally move in the same transaction."""
    data = _json_body()
    if data is None:
        return validation_error({'body': ['A JSON object body is required.']})

    errors = _validate_task_payload(data)
    if errors:
        return validation_error(errors)

    try:
        result = get_task_service().update(
            current_user.id,
            task_id,
            _payload_fields(data),
            target_stage=data.get('stage'),
            target_position=data.get('index'),
        )
        if not result.ok:
            return task_error_response(result.error)
        return success_response(result.value.to_dict(include_user=True), 'Task updated successfully')

    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating task {task_id}: {e}", exc_info=True)
        return error_response('Failed to update task', 500)


@api_tasks_bp.route('/<int:task_id>/move', methods=['POST'])
@login_required
def move_task(task_id):
    """
    Move a task to another stage and/or index.

    Body: {"stage": "review", "index": 0}; both optional.
    """
    data = _json_body()
    if data is None:
        return validation_error({'body': ['A JSON object body is required.']})

    errors = _validate_task_payload({k: data[k] for k in ('stage', 'index') if k in data})
    if errors:
        return validation_error(errors)

    try:
        result = get_task_service().move(
            current_user.id,
            task_id,
            target_stage=data.get('stage'),
            target_position=data.get('index'),
        )
        if not result.ok:
            return task_error_response(result.error)
        return success_response(result.value.to_dict(include_user=True), 'Task moved successfully')

    except Exception as e:
        db.session.rollback()
        logger.error(f"Error moving task {task_id}: {e}", exc_info=True)
        return error_response('Failed to move task', 500)


@api_tasks_bp.route('/<int:task_id>', methods=['DELETE'])
@login_required
def delete_task(task_id):
    """Delete a task and close the gap in its stage."""
    try:
        result = get_task_service().remove(current_user.id, task_id)
        if not result.ok:
            return task_error_response(result.error)
        return success_response({'deleted': True, 'id': task_id}, 'Task deleted successfully')

    except Exception as e:
        db.session.rollback()
        logger.error(f"Error deleting task {task_id}: {e}", exc_info=True)
        return error_response('Failed to delete task', 500)
