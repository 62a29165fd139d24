"""
OTPChallenge model - Step-up verification codes
"""

from payroll import db
from datetime import datetime
from payroll.utils.helpers import utcnow
import uuid


class OTPChallenge(db.Model):
    """
    One issued step-up code, bound to a requester, an operation and its target
    """
    __tablename__ = 'otp_challenges'

    __table_args__ = (
        db.Index('idx_otp_lookup', 'requester_id', 'operation_type', 'code'),
        db.Index('idx_otp_expires', 'expires_at'),
    )

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Admin who initiated the sensitive operation
    requester_id = db.Column(db.String(36), nullable=False)

    # 6 digits, zero-padded. Kept in clear so a resend re-delivers the same code.
    code = db.Column(db.String(6), nullable=False)

    # add_manager, delete_manager, password_reset
    operation_type = db.Column(db.String(30), nullable=False)

    # Target of the operation, re-checked at verification
    target_data = db.Column(db.JSON, nullable=False, default=dict)

    recipient_email = db.Column(db.String(120))

    expires_at = db.Column(db.DateTime, nullable=False)

    # false -> true exactly once, at first successful verification
    used = db.Column(db.Boolean, nullable=False, default=False)

    delivered_at = db.Column(db.DateTime)
    verified_at = db.Column(db.DateTime)

    # Proof of verification handed to the client for the completion request
    verification_token = db.Column(db.String(64), unique=True)
    completed_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def is_live(self, now: datetime) -> bool:
        return not self.used and now < self.expires_at
