"""
Utility functions
Helpers shared across the application
"""

import re
from datetime import datetime, timezone

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def utcnow() -> datetime:
    """Naive UTC timestamp, the format stored in DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def validate_email(email: str) -> bool:
    """Checks the email format"""
    return bool(email and EMAIL_PATTERN.match(email))


def validate_new_password(password: str, confirm: str) -> tuple[bool, str]:
    """
    Checks a password typed twice by an admin
    Returns (is_valid, error_message)
    """
    if not password or not confirm:
        return False, 'Please enter both password fields'
    if password != confirm:
        return False, 'Passwords do not match'
    if len(password) < 6:
        return False, 'Password must be at least 6 characters long'
    if len(password) > 128:
        return False, 'Password is too long (max 128 characters)'
    return True, ''


def mask_email(email: str) -> str:
    """Masks an email: j***@a***.com"""
    if not email or '@' not in email:
        return '***'
    local, domain = email.split('@', 1)
    domain_parts = domain.split('.')
    masked_local = local[0] + '***' if len(local) > 1 else '***'
    masked_domain = domain_parts[0][0] + '***' if len(domain_parts[0]) > 1 else '***'
    return f"{masked_local}@{masked_domain}.{domain_parts[-1]}"
