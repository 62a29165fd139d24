"""
Step-up errors
==============

Every failure of the step-up flow is reported to the operator through one of
these classes. Verification failures are deliberately opaque: wrong code,
expired code, wrong target and a lost race all look the same.
"""

from typing import Any, Dict, Optional


class StepUpError(Exception):
    """Base class, carries an API error code and an HTTP status"""

    code = 'STEP_UP_ERROR'
    status_code = 400
    message = 'Step-up verification error'

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        if message:
            self.message = message
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {'error': self.message, 'code': self.code}


class GenerationFailure(StepUpError):
    """The challenge could not be stored; no code was communicated"""
    code = 'GENERATION_FAILED'
    status_code = 503
    message = 'Could not start verification. Please try again.'


class DeliveryFailure(StepUpError):
    """The code exists but the mail transport did not accept it"""
    code = 'DELIVERY_FAILED'
    status_code = 502
    message = 'Failed to send OTP'

    def __init__(self, challenge_id: str, detail: Optional[str] = None):
        self.challenge_id = challenge_id
        self.detail = detail
        super().__init__()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error': self.message,
            'code': self.code,
            'challenge_id': self.challenge_id,
            'can_resend': True
        }


class VerificationFailure(StepUpError):
    code = 'INVALID_OR_EXPIRED'
    status_code = 400
    message = 'Invalid or expired OTP'


class ResendTooSoon(StepUpError):
    code = 'RESEND_COOLDOWN'
    status_code = 429

    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(f'Please wait {retry_after} seconds before requesting a new code')

    def to_dict(self) -> Dict[str, Any]:
        return {'error': self.message, 'code': self.code, 'retry_after': self.retry_after}


class InvalidTarget(StepUpError):
    code = 'INVALID_TARGET'
    status_code = 400
    message = 'Invalid target for this operation'


class OperationFailure(StepUpError):
    """
    The gated operation failed after a successful verification.
    The verification stays valid, the operation may be retried without a new code.
    """
    code = 'OPERATION_FAILED'
    status_code = 500
    message = 'Operation failed'
