"""
Manager operations
==================

The sensitive operations gated behind a step-up code. They assume the caller
already holds a VerifiedChallenge and only deal with persistence.
"""

import logging

from sqlalchemy.exc import IntegrityError

from payroll import db
from payroll.models import Plant, UserProfile
from payroll.services.errors import OperationFailure
from payroll.services.targets import AddManagerTarget, DeleteManagerTarget, PasswordResetTarget

logger = logging.getLogger(__name__)


class ManagerService:

    @staticmethod
    def get_manager(manager_id: str) -> UserProfile:
        manager = UserProfile.query.filter_by(id=manager_id, role='manager').first()
        if not manager:
            raise OperationFailure('Manager not found', status_code=404)
        return manager

    @staticmethod
    def list_managers():
        return UserProfile.query.filter_by(role='manager').order_by(UserProfile.created_at.desc()).all()

    @staticmethod
    def add_manager(target: AddManagerTarget, password: str) -> UserProfile:
        """Creates the manager profile described by the verified target"""
        if not db.session.get(Plant, target.plant_id):
            raise OperationFailure('Plant not found', status_code=404)

        if UserProfile.query.filter_by(email=target.email).first():
            raise OperationFailure('Email already registered', status_code=409)

        manager = UserProfile(
            full_name=target.full_name,
            email=target.email,
            role='manager',
            plant_id=target.plant_id,
            is_active=True
        )
        manager.set_password(password)

        db.session.add(manager)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise OperationFailure('Email already registered', status_code=409)

        logger.info(f"Manager {manager.id} created for plant {target.plant_id}")
        return manager

    @staticmethod
    def delete_manager(target: DeleteManagerTarget) -> str:
        manager = ManagerService.get_manager(target.manager_id)
        email = manager.email

        db.session.delete(manager)
        db.session.commit()

        logger.info(f"Manager {target.manager_id} deleted")
        return email

    @staticmethod
    def reset_password(target: PasswordResetTarget, new_password: str) -> UserProfile:
        manager = ManagerService.get_manager(target.manager_id)

        manager.set_password(new_password)
        db.session.commit()

        logger.info(f"Password reset for manager {target.manager_id}")
        return manager
