"""
Admin routes - Plant managers
Listing, plus the three operations that require a verified step-up
"""

from flask import request, jsonify, g
from payroll.routes.admin import admin_bp
from payroll.models import OperationType
from payroll.services.manager_service import ManagerService
from payroll.services.step_up_service import get_step_up_controller
from payroll.services.targets import DeleteManagerTarget, PasswordResetTarget, target_from_payload
from payroll.utils.audit import audit_log, AuditAction
from payroll.utils.decorators import admin_required
from payroll.utils.helpers import validate_email, validate_new_password


def _verification_token(data: dict) -> str:
    return data.get('verification_token') or request.headers.get('X-Verification-Token', '')


@admin_bp.route('/managers', methods=['GET'])
@admin_required
def admin_get_managers():
    """All plant managers"""
    managers = ManagerService.list_managers()
    return jsonify({'managers': [m.to_dict() for m in managers]})


@admin_bp.route('/managers', methods=['POST'])
@admin_required
def admin_create_manager():
    """
    Creates a manager (verified step-up required)

    Body:
        - verification_token: token returned by /step-up/<id>/verify
        - full_name, email, plant_id: must match the verified target
        - password: initial password (min 6 characters)
    """
    data = request.get_json(silent=True) or {}

    target = target_from_payload(OperationType.ADD_MANAGER, {
        'email': data.get('email'),
        'full_name': data.get('full_name'),
        'plant_id': data.get('plant_id')
    })
    if not validate_email(target.email):
        return jsonify({'error': 'Invalid email format'}), 400

    password = data.get('password') or ''
    is_valid, error = validate_new_password(password, data.get('confirm_password', password))
    if not is_valid:
        return jsonify({'error': error}), 400

    controller = get_step_up_controller()
    verified = controller.redeem(_verification_token(data), g.user.id, OperationType.ADD_MANAGER, target)
    manager = controller.complete(verified, lambda: ManagerService.add_manager(target, password))

    audit_log(
        action=AuditAction.MANAGER_CREATE,
        resource_type='manager',
        resource_id=manager.id,
        details={'email': manager.email, 'plant_id': manager.plant_id, 'challenge_id': verified.challenge_id}
    )

    return jsonify({
        'message': 'Manager created',
        'manager': manager.to_dict()
    }), 201


@admin_bp.route('/managers/<manager_id>', methods=['DELETE'])
@admin_required
def admin_delete_manager(manager_id):
    """Deletes a manager (verified step-up required)"""
    data = request.get_json(silent=True) or {}
    target = DeleteManagerTarget(manager_id=manager_id)

    controller = get_step_up_controller()
    verified = controller.redeem(_verification_token(data), g.user.id, OperationType.DELETE_MANAGER, target)
    email = controller.complete(verified, lambda: ManagerService.delete_manager(target))

    audit_log(
        action=AuditAction.MANAGER_DELETE,
        resource_type='manager',
        resource_id=manager_id,
        details={'email': email, 'challenge_id': verified.challenge_id}
    )

    return jsonify({'message': 'Manager deleted'})


@admin_bp.route('/managers/<manager_id>/reset-password', methods=['POST'])
@admin_required
def admin_reset_manager_password(manager_id):
    """
    Sets a new password for a manager (verified step-up required)

    Body:
        - verification_token
        - new_password, confirm_password
    """
    data = request.get_json(silent=True) or {}

    new_password = data.get('new_password') or ''
    is_valid, error = validate_new_password(new_password, data.get('confirm_password') or '')
    if not is_valid:
        return jsonify({'error': error}), 400

    target = PasswordResetTarget(manager_id=manager_id)

    controller = get_step_up_controller()
    verified = controller.redeem(_verification_token(data), g.user.id, OperationType.PASSWORD_RESET, target)
    manager = controller.complete(verified, lambda: ManagerService.reset_password(target, new_password))

    audit_log(
        action=AuditAction.PASSWORD_RESET,
        resource_type='manager',
        resource_id=manager.id,
        details={'email': manager.email, 'reset_by_admin': True, 'challenge_id': verified.challenge_id}
    )

    return jsonify({'message': 'Password reset successfully'})
