"""
Enums - Enumerated types for the models
=======================================

Centralizes enumerated types to avoid "magic strings".
"""

import enum


class UserRole(enum.Enum):
    """Dashboard roles"""
    ADMIN = 'admin'
    MANAGER = 'manager'


class OperationType(enum.Enum):
    """Sensitive admin operations gated behind a step-up code"""
    ADD_MANAGER = 'add_manager'
    DELETE_MANAGER = 'delete_manager'
    PASSWORD_RESET = 'password_reset'

    @property
    def label(self) -> str:
        return {
            'add_manager': 'Add Manager',
            'delete_manager': 'Delete Manager',
            'password_reset': 'Password Reset',
        }[self.value]

    @classmethod
    def is_valid(cls, operation_type: str) -> bool:
        return operation_type in [o.value for o in cls]


class StepUpState(enum.Enum):
    """
    States of a pending sensitive operation

    idle -> generated -> delivered -> verified -> completed
    failed is reachable from generated, delivered and verification.
    """
    IDLE = 'idle'
    GENERATED = 'generated'
    DELIVERED = 'delivered'
    VERIFIED = 'verified'
    COMPLETED = 'completed'
    FAILED = 'failed'
