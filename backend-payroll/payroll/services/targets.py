"""
Operation targets
=================

The object of a sensitive operation, one shape per operation type.
Stored as plain JSON on the challenge and compared field by field at
verification time, so a code issued for manager A cannot complete an
operation on manager B.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Union

from payroll.models.enums import OperationType
from payroll.services.errors import InvalidTarget


@dataclass(frozen=True)
class AddManagerTarget:
    email: str
    full_name: str
    plant_id: str

    operation_type = OperationType.ADD_MANAGER

    def __post_init__(self):
        # Emails compare case-insensitively everywhere else
        object.__setattr__(self, 'email', self.email.strip().lower())
        object.__setattr__(self, 'full_name', self.full_name.strip())


@dataclass(frozen=True)
class DeleteManagerTarget:
    manager_id: str

    operation_type = OperationType.DELETE_MANAGER


@dataclass(frozen=True)
class PasswordResetTarget:
    manager_id: str

    operation_type = OperationType.PASSWORD_RESET


OperationTarget = Union[AddManagerTarget, DeleteManagerTarget, PasswordResetTarget]

TARGET_TYPES = {
    OperationType.ADD_MANAGER: AddManagerTarget,
    OperationType.DELETE_MANAGER: DeleteManagerTarget,
    OperationType.PASSWORD_RESET: PasswordResetTarget,
}


def target_to_payload(target: OperationTarget) -> Dict[str, Any]:
    return asdict(target)


def target_from_payload(operation_type, payload: Any) -> OperationTarget:
    """
    Builds the target matching an operation type from a JSON payload

    Args:
        operation_type: OperationType or its string value
        payload: dict received from the client or read from the store

    Raises:
        InvalidTarget: unknown operation, missing or empty field
    """
    try:
        operation_type = OperationType(operation_type)
    except ValueError:
        raise InvalidTarget(f'Unknown operation type: {operation_type}')

    if not isinstance(payload, dict):
        raise InvalidTarget('Target must be an object')

    target_cls = TARGET_TYPES[operation_type]
    fields = list(target_cls.__dataclass_fields__)

    values = {}
    for field in fields:
        value = payload.get(field)
        if not isinstance(value, str) or not value.strip():
            raise InvalidTarget(f'{field} is required for {operation_type.value}')
        values[field] = value.strip()

    return target_cls(**values)
