from functools import wraps
from flask import request, jsonify, g
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from payroll import db
from payroll.models import UserProfile
import logging

logger = logging.getLogger(__name__)


def login_required(fn):
    """
    Checks:
    1. valid JWT
    2. user still exists and is active

    Stores the user and its role in g
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if request.method == 'OPTIONS':
            return fn(*args, **kwargs)

        try:
            verify_jwt_in_request()
        except (JWTExtendedException, PyJWTError) as e:
            logger.info(f"JWT verification failed: {e}")
            return jsonify({'error': 'Invalid token', 'code': 'UNAUTHORIZED'}), 401

        user_id = get_jwt_identity()
        user = db.session.get(UserProfile, user_id)

        if not user:
            return jsonify({'error': 'User not found'}), 404

        if not user.is_active:
            return jsonify({'error': 'Account disabled'}), 403

        g.user = user
        g.user_role = user.role

        return fn(*args, **kwargs)

    return wrapper


def admin_required(fn):
    """Routes restricted to admins"""
    @wraps(fn)
    @login_required
    def wrapper(*args, **kwargs):
        if request.method == 'OPTIONS':
            return '', 200

        if not g.user.is_admin:
            logger.warning(f"Admin access refused: user {g.user.id} ({g.user_role})")
            return jsonify({'error': 'Admin access required', 'code': 'FORBIDDEN'}), 403

        return fn(*args, **kwargs)

    return wrapper
