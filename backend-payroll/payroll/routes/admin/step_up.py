"""
Admin routes - Step-up verification
===================================

Endpoints:
- Start a step-up for a sensitive operation (code emailed to the admin)
- Resend the code
- Verify the code, returning the verification token expected by the
  manager endpoints
"""

from flask import request, jsonify, g
from payroll import db, limiter
from payroll.routes.admin import admin_bp
from payroll.models import OperationType, StepUpState, Plant, UserProfile
from payroll.services.errors import DeliveryFailure, InvalidTarget, OperationFailure, VerificationFailure
from payroll.services.manager_service import ManagerService
from payroll.services.step_up_service import get_step_up_controller
from payroll.services.targets import AddManagerTarget, target_from_payload
from payroll.utils.audit import audit_log, AuditAction
from payroll.utils.decorators import admin_required

otp_send_limit = limiter.limit("5 per minute", error_message="Too many requests. Try again in 1 minute.")
otp_verify_limit = limiter.limit("10 per minute", error_message="Too many attempts. Try again in 1 minute.")


def _check_target_exists(target):
    """Refuses step-ups for operations that could not complete anyway"""
    if isinstance(target, AddManagerTarget):
        if not db.session.get(Plant, target.plant_id):
            raise OperationFailure('Plant not found', status_code=404)
        if UserProfile.query.filter_by(email=target.email).first():
            raise OperationFailure('Email already registered', status_code=409)
    else:
        ManagerService.get_manager(target.manager_id)


def _handle_response(controller, handle, status_code):
    """Serializes a handle, turning an undelivered one into a DeliveryFailure"""
    now = controller.clock()

    if handle.state == StepUpState.GENERATED:
        audit_log(
            action=AuditAction.OTP_DELIVERY_FAILED,
            resource_type='otp_challenge',
            resource_id=handle.challenge_id,
            details={'operation_type': handle.operation_type.value},
            status='failure'
        )
        failure = DeliveryFailure(handle.challenge_id)
        return jsonify({**handle.to_dict(now), **failure.to_dict()}), failure.status_code

    if handle.delivery is not None and handle.delivery.insecure:
        audit_log(
            action=AuditAction.OTP_DISCLOSED,
            resource_type='otp_challenge',
            resource_id=handle.challenge_id,
            details={'operation_type': handle.operation_type.value},
            status='warning'
        )
    else:
        audit_log(
            action=AuditAction.OTP_SENT,
            resource_type='otp_challenge',
            resource_id=handle.challenge_id,
            details={'operation_type': handle.operation_type.value}
        )

    return jsonify(handle.to_dict(now)), status_code


@admin_bp.route('/step-up', methods=['POST'])
@admin_required
@otp_send_limit
def request_step_up():
    """
    Starts a step-up verification

    Body:
        - operation_type: add_manager, delete_manager, password_reset
        - target: object of the operation
            add_manager: {email, full_name, plant_id}
            delete_manager / password_reset: {manager_id}

    Returns:
        201 with the challenge handle, 502 if the email could not be sent
    """
    data = request.get_json(silent=True) or {}
    operation_type = data.get('operation_type')

    if not OperationType.is_valid(operation_type):
        valid = [o.value for o in OperationType]
        raise InvalidTarget(f'Invalid operation_type. Values: {valid}')

    target = target_from_payload(operation_type, data.get('target'))
    _check_target_exists(target)

    controller = get_step_up_controller()
    handle = controller.request_step_up(
        requester_id=g.user.id,
        operation_type=OperationType(operation_type),
        target=target,
        recipient_email=g.user.email
    )

    return _handle_response(controller, handle, 201)


@admin_bp.route('/step-up/<challenge_id>/resend', methods=['POST'])
@admin_required
@otp_send_limit
def resend_step_up(challenge_id):
    """Re-sends the code; issues a new one if the previous expired"""
    controller = get_step_up_controller()
    handle = controller.load(challenge_id, g.user.id)
    if handle is None:
        return jsonify({'error': 'Verification not found', 'code': 'NOT_FOUND'}), 404

    handle = controller.resend(handle)
    return _handle_response(controller, handle, 200)


@admin_bp.route('/step-up/<challenge_id>/verify', methods=['POST'])
@admin_required
@otp_verify_limit
def verify_step_up(challenge_id):
    """
    Verifies a code

    Body:
        - code: 6-digit code received by email

    Returns:
        verification_token to send with the gated operation
    """
    data = request.get_json(silent=True) or {}
    code = (data.get('code') or '').strip()

    controller = get_step_up_controller()
    handle = controller.load(challenge_id, g.user.id)
    if handle is None:
        raise VerificationFailure()

    try:
        verified = controller.submit_code(handle, code)
    except VerificationFailure:
        audit_log(
            action=AuditAction.OTP_FAILED,
            resource_type='otp_challenge',
            resource_id=challenge_id,
            details={'operation_type': handle.operation_type.value, 'state': handle.state.value},
            status='failure'
        )
        raise

    audit_log(
        action=AuditAction.OTP_VERIFIED,
        resource_type='otp_challenge',
        resource_id=verified.challenge_id,
        details={'operation_type': verified.operation_type.value}
    )

    return jsonify({
        'success': True,
        'message': 'OTP verified successfully',
        'state': handle.state.value,
        'operation_type': verified.operation_type.value,
        'verification_token': verified.verification_token
    })
