"""
Authentication routes
=====================

Login of dashboard users and JWT issuance.
"""

from flask import Blueprint, request, jsonify, g
from flask_jwt_extended import create_access_token
from payroll import db, limiter
from payroll.models import UserProfile
from payroll.utils.audit import audit_log, AuditAction
from payroll.utils.decorators import login_required
from payroll.utils.helpers import utcnow
import logging

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)

auth_limit = limiter.limit("5 per minute", error_message="Too many attempts. Try again in 1 minute.")


def create_token_with_claims(user: UserProfile) -> str:
    """Access token carrying the role and plant of the user"""
    additional_claims = {
        'role': user.role,
        'email': user.email,
        'plant_id': user.plant_id
    }
    return create_access_token(identity=user.id, additional_claims=additional_claims)


@auth_bp.route('/login', methods=['POST'])
@auth_limit
def login():
    """Dashboard login (admin or manager)"""
    data = request.get_json(silent=True) or {}

    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not email or not password:
        return jsonify({'error': 'Email and password are required'}), 400

    user = UserProfile.query.filter_by(email=email).first()

    # Generic message to avoid user enumeration
    if not user or not user.check_password(password):
        audit_log(
            action=AuditAction.LOGIN_FAILED,
            details={'email': email, 'reason': 'invalid_credentials'},
            status='failure'
        )
        return jsonify({'error': 'Invalid email or password'}), 401

    if not user.is_active:
        audit_log(
            action=AuditAction.LOGIN_FAILED,
            user_id=user.id,
            user_email=user.email,
            details={'reason': 'account_disabled'},
            status='failure'
        )
        return jsonify({'error': 'Account disabled'}), 403

    user.last_login = utcnow()
    db.session.commit()

    access_token = create_token_with_claims(user)

    audit_log(
        action=AuditAction.LOGIN_SUCCESS,
        user_id=user.id,
        user_email=user.email
    )

    return jsonify({
        'user': user.to_dict(),
        'access_token': access_token
    })


@auth_bp.route('/me', methods=['GET'])
@login_required
def get_current_user():
    """Profile of the logged-in user"""
    return jsonify({'user': g.user.to_dict()})
