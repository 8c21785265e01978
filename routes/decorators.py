# routes/decorators.py
"""
Shared decorators for the API routes.
"""

from functools import wraps
from flask import jsonify, request
from flask_login import current_user


def admin_required(f):
    """Decorator to restrict an endpoint to studio admins."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'error': 'not_authenticated'}), 401
        if not current_user.is_admin:
            return jsonify({'error': 'admin_only'}), 403
        return f(*args, **kwargs)
    return decorated_function


def json_body():
    """The request's JSON object, or None when the body is not a JSON object."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None
