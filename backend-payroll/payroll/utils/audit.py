"""
Audit logging - Traceability of sensitive actions
=================================================

Records step-up and manager operations for security review.
"""

import json
import logging
from flask import request, g, has_request_context
from payroll import db
from payroll.utils.helpers import utcnow

logger = logging.getLogger('audit')
logger.setLevel(logging.INFO)
logger.propagate = False


def configure_audit_logger(app):
    """Attaches the audit file handler once (AUDIT_LOG_FILE, None to disable)"""
    path = app.config.get('AUDIT_LOG_FILE')
    if not path:
        if not logger.handlers:
            logger.addHandler(logging.NullHandler())
        return

    if not any(
        isinstance(h, logging.FileHandler) and getattr(h, 'baseFilename', '').endswith(path)
        for h in logger.handlers
    ):
        audit_handler = logging.FileHandler(path)
        audit_handler.setLevel(logging.INFO)
        audit_handler.setFormatter(logging.Formatter(
            '%(asctime)s - AUDIT - %(message)s'
        ))
        logger.addHandler(audit_handler)


class AuditLog(db.Model):
    """Audit entries stored in the database"""
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.DateTime, default=utcnow, nullable=False)
    user_id = db.Column(db.String(36), index=True)
    user_email = db.Column(db.String(120))
    action = db.Column(db.String(50), nullable=False, index=True)
    resource_type = db.Column(db.String(50))
    resource_id = db.Column(db.String(36))
    details = db.Column(db.Text)  # JSON
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    status = db.Column(db.String(20), default='success')  # success, failure, warning

    def to_dict(self):
        return {
            'id': self.id,
            'timestamp': self.timestamp.isoformat(),
            'user_id': self.user_id,
            'user_email': self.user_email,
            'action': self.action,
            'resource_type': self.resource_type,
            'resource_id': self.resource_id,
            'details': json.loads(self.details) if self.details else None,
            'ip_address': self.ip_address,
            'status': self.status
        }


class AuditAction:
    # Auth
    LOGIN_SUCCESS = 'login_success'
    LOGIN_FAILED = 'login_failed'

    # Managers
    MANAGER_CREATE = 'manager_create'
    MANAGER_DELETE = 'manager_delete'
    PASSWORD_RESET = 'password_reset'

    # Step-up
    OTP_SENT = 'otp_sent'
    OTP_DELIVERY_FAILED = 'otp_delivery_failed'
    OTP_DISCLOSED = 'otp_disclosed'
    OTP_VERIFIED = 'otp_verified'
    OTP_FAILED = 'otp_failed'


def audit_log(
    action: str,
    resource_type: str = None,
    resource_id: str = None,
    details: dict = None,
    status: str = 'success',
    user_id: str = None,
    user_email: str = None
):
    """
    Records an action in the audit log

    Args:
        action: Action type (see AuditAction)
        resource_type: Affected resource type (manager, otp_challenge, ...)
        resource_id: Resource ID
        details: Extra details (dict)
        status: success, failure, warning
        user_id: Acting user (taken from g.user when omitted)
        user_email: Acting user email
    """
    try:
        if user_id is None and getattr(g, 'user', None) is not None:
            user_id = g.user.id
            user_email = user_email or g.user.email

        ip_address = request.remote_addr if has_request_context() else None
        user_agent = request.headers.get('User-Agent', '')[:500] if has_request_context() else None

        log_entry = AuditLog(
            user_id=user_id,
            user_email=user_email,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=json.dumps(details) if details else None,
            ip_address=ip_address,
            user_agent=user_agent,
            status=status
        )

        db.session.add(log_entry)
        db.session.commit()

        log_message = f"[{status.upper()}] {action}"
        if resource_type:
            log_message += f" | {resource_type}"
        if resource_id:
            log_message += f":{resource_id}"
        log_message += f" | user:{user_id} | ip:{ip_address}"
        if details:
            log_message += f" | {json.dumps(details)}"

        if status in ('failure', 'warning'):
            logger.warning(log_message)
        else:
            logger.info(log_message)

    except Exception as e:
        # The audited operation must not fail because of the audit trail
        db.session.rollback()
        logging.getLogger(__name__).error(f"Audit log error: {e}")
