"""
JSON response envelope shared by every API route.

    {"success": bool, "message": str, "status_code": int, "data": ...}
    {"success": false, "message": str, "status_code": int, "errors": ...}
"""

from flask import jsonify


def success_response(data=None, message='OK', status_code=200):
    body = {
        'success': True,
        'message': message,
        'status_code': status_code,
    }
    if data is not None:
        body['data'] = data
    return jsonify(body), status_code


def error_response(message, status_code=400, errors=None):
    body = {
        'success': False,
        'message': message,
        'status_code': status_code,
    }
    if errors:
        body['errors'] = errors
    return jsonify(body), status_code


def validation_error(errors, message='The given data was invalid.'):
    """422 with a {field: [messages]} map."""
    return error_response(message, 422, errors)


def task_error_response(error):
    """Map a TaskError carried by an OperationResult onto the envelope."""
    errors = None
    if error.code == 'position_out_of_range':
        errors = {'index': [error.message]}
    return error_response(error.message, error.http_status, errors)
