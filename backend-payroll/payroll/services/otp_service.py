"""
OTP service (One-Time Password)
===============================

Generation and verification of the 6-digit codes guarding sensitive admin
operations (add manager, delete manager, reset a manager's password).

Usage:
    generator = OTPGenerator(store)
    challenge = generator.generate(admin_id, OperationType.DELETE_MANAGER,
                                   DeleteManagerTarget(manager_id='manager-42'))

    verifier = OTPVerifier(store)
    verified = verifier.verify(admin_id, OperationType.DELETE_MANAGER, '048213',
                               DeleteManagerTarget(manager_id='manager-42'))
"""

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from payroll.models import OTPChallenge, OperationType
from payroll.services.errors import GenerationFailure, VerificationFailure
from payroll.services.otp_store import OTPStore
from payroll.services.targets import OperationTarget, target_to_payload
from payroll.utils.helpers import utcnow

logger = logging.getLogger(__name__)

OTP_VALIDITY_MINUTES = 10
OTP_LENGTH = 6

CODE_PATTERN = re.compile(r'^\d{6}$')


def generate_code() -> str:
    """Uniform over 000000-999999, zero-padded"""
    return f"{secrets.randbelow(10 ** OTP_LENGTH):0{OTP_LENGTH}d}"


@dataclass(frozen=True)
class VerifiedChallenge:
    """Proof that a challenge was consumed by its requester for its target"""
    challenge_id: str
    requester_id: str
    operation_type: OperationType
    target: OperationTarget
    verified_at: datetime
    verification_token: Optional[str] = None


class OTPGenerator:
    """Issues and persists new challenges"""

    def __init__(
        self,
        store: OTPStore,
        validity_minutes: int = OTP_VALIDITY_MINUTES,
        clock: Callable[[], datetime] = utcnow,
        code_factory: Callable[[], str] = generate_code
    ):
        self.store = store
        self.validity = timedelta(minutes=validity_minutes)
        self.clock = clock
        self.code_factory = code_factory

    def generate(
        self,
        requester_id: str,
        operation_type: OperationType,
        target: OperationTarget,
        recipient_email: str = None
    ) -> OTPChallenge:
        """
        Creates and stores a challenge

        Raises:
            GenerationFailure: the store rejected the write; the code must not
                be communicated to anyone
        """
        now = self.clock()
        challenge = OTPChallenge(
            requester_id=requester_id,
            code=self.code_factory(),
            operation_type=operation_type.value,
            target_data=target_to_payload(target),
            recipient_email=recipient_email,
            expires_at=now + self.validity,
            used=False,
            created_at=now
        )

        try:
            self.store.insert(challenge)
        except SQLAlchemyError as e:
            logger.error(f"Failed to store OTP challenge for {operation_type.value}: {e}")
            raise GenerationFailure() from e

        logger.info(
            f"OTP challenge {challenge.id} issued to {requester_id} for {operation_type.value}"
        )
        return challenge


class OTPVerifier:
    """
    Checks a submitted code, in order:
    1. an unused, unexpired challenge for (requester, operation, code) exists
    2. its stored target equals the target being completed
    3. the conditional used=false -> used=true update succeeds

    Every failure surfaces as the same VerificationFailure.
    """

    def __init__(self, store: OTPStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def verify(
        self,
        requester_id: str,
        operation_type: OperationType,
        submitted_code: str,
        target_ref: OperationTarget
    ) -> VerifiedChallenge:
        submitted_code = (submitted_code or '').strip()
        if not CODE_PATTERN.match(submitted_code):
            logger.info(f"OTP rejected for {requester_id}: malformed code")
            raise VerificationFailure()

        now = self.clock()
        challenge = self.store.find_active(requester_id, operation_type.value, submitted_code, now)
        if challenge is None:
            logger.info(f"OTP rejected for {requester_id}: no live challenge matches")
            raise VerificationFailure()

        if challenge.target_data != target_to_payload(target_ref):
            logger.info(f"OTP rejected for {requester_id}: target mismatch on {challenge.id}")
            raise VerificationFailure()

        if not self.store.conditional_mark_used(challenge.id, now):
            logger.info(f"OTP rejected for {requester_id}: {challenge.id} already consumed")
            raise VerificationFailure()

        logger.info(f"OTP challenge {challenge.id} verified for {requester_id}")

        return VerifiedChallenge(
            challenge_id=challenge.id,
            requester_id=requester_id,
            operation_type=operation_type,
            target=target_ref,
            verified_at=now
        )
