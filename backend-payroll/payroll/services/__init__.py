"""
Application services
Reusable business logic
"""

from payroll.services.email_service import EmailService
from payroll.services.otp_store import OTPStore
from payroll.services.otp_service import OTPGenerator, OTPVerifier, VerifiedChallenge
from payroll.services.otp_delivery import OTPDelivery, DeliveryResult
from payroll.services.step_up_service import StepUpController, StepUpHandle, get_step_up_controller
from payroll.services.manager_service import ManagerService

__all__ = [
    'EmailService',
    'OTPStore',
    'OTPGenerator',
    'OTPVerifier',
    'VerifiedChallenge',
    'OTPDelivery',
    'DeliveryResult',
    'StepUpController',
    'StepUpHandle',
    'get_step_up_controller',
    'ManagerService'
]
