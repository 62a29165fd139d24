"""
Application models
Central export of every SQLAlchemy model
"""

from payroll.models.enums import UserRole, OperationType, StepUpState
from payroll.models.plant import Plant
from payroll.models.user import UserProfile
from payroll.models.otp import OTPChallenge

__all__ = [
    # Enums
    'UserRole',
    'OperationType',
    'StepUpState',
    # Models
    'Plant',
    'UserProfile',
    'OTPChallenge'
]
