from payroll.utils.helpers import utcnow, validate_email, mask_email

__all__ = ['utcnow', 'validate_email', 'mask_email']
