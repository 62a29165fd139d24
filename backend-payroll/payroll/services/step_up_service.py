"""
Step-up controller
==================

Orchestrates the OTP step-up for one sensitive operation:

    idle -> generated -> delivered -> verified -> completed
                  \\           \\          (verification)
                   +-----------+--------> failed

- generated -> delivered: the code was emailed (or disclosed, insecure mode)
- a wrong code keeps the handle in delivered until the challenge expires,
  then the handle fails and a resend starts a fresh challenge
- verified -> completed: the gated operation runs; it is not re-guarded by
  OTP state and its failure does not consume the verification

Resend policy: a live challenge is re-delivered with the same code, at most
once per OTP_RESEND_COOLDOWN_SECONDS after its last successful delivery.
A challenge that was never delivered can be re-delivered immediately.

Handles are rebuilt from the store on every HTTP request (load / redeem).
"""

import logging
import math
import secrets
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from flask import current_app

from payroll import db
from payroll.models import OTPChallenge, OperationType, StepUpState
from payroll.services.email_service import EmailService
from payroll.services.errors import (
    InvalidTarget, OperationFailure, ResendTooSoon, StepUpError, VerificationFailure
)
from payroll.services.otp_delivery import DeliveryResult, OTPDelivery
from payroll.services.otp_service import OTPGenerator, OTPVerifier, VerifiedChallenge
from payroll.services.otp_store import OTPStore
from payroll.services.targets import OperationTarget, target_from_payload, target_to_payload
from payroll.utils.helpers import utcnow

logger = logging.getLogger(__name__)

RESEND_COOLDOWN_SECONDS = 60


@dataclass
class StepUpHandle:
    """Client-side view of one pending sensitive operation"""
    challenge_id: str
    requester_id: str
    operation_type: OperationType
    target: OperationTarget
    recipient_email: str
    expires_at: datetime
    state: StepUpState = StepUpState.IDLE
    delivered_at: Optional[datetime] = None
    delivery: Optional[DeliveryResult] = None
    verified: Optional[VerifiedChallenge] = None

    def expires_in(self, now: datetime) -> int:
        return max(0, int((self.expires_at - now).total_seconds()))

    def to_dict(self, now: datetime):
        data = {
            'challenge_id': self.challenge_id,
            'operation_type': self.operation_type.value,
            'state': self.state.value,
            'expires_at': self.expires_at.isoformat(),
            'expires_in': self.expires_in(now)
        }
        if self.delivery is not None:
            data['delivery'] = self.delivery.to_dict()
        return data


class StepUpController:

    def __init__(
        self,
        store: OTPStore,
        generator: OTPGenerator,
        verifier: OTPVerifier,
        delivery: OTPDelivery,
        clock: Callable[[], datetime] = utcnow,
        resend_cooldown_seconds: int = RESEND_COOLDOWN_SECONDS,
        verification_ttl: timedelta = timedelta(minutes=10)
    ):
        self.store = store
        self.generator = generator
        self.verifier = verifier
        self.delivery = delivery
        self.clock = clock
        self.resend_cooldown_seconds = resend_cooldown_seconds
        self.verification_ttl = verification_ttl

    # ==================== CALLER API ====================

    def request_step_up(
        self,
        requester_id: str,
        operation_type: OperationType,
        target: OperationTarget,
        recipient_email: str
    ) -> StepUpHandle:
        """
        Issues a challenge and tries to deliver it

        Returns:
            A handle in state delivered, or generated when delivery failed
            (handle.delivery.sent is False, the caller may resend)

        Raises:
            InvalidTarget: target shape does not match the operation
            GenerationFailure: the challenge could not be stored
        """
        if target.operation_type is not operation_type:
            raise InvalidTarget()

        challenge = self.generator.generate(requester_id, operation_type, target, recipient_email)

        handle = StepUpHandle(
            challenge_id=challenge.id,
            requester_id=requester_id,
            operation_type=operation_type,
            target=target,
            recipient_email=recipient_email,
            expires_at=challenge.expires_at,
            state=StepUpState.GENERATED
        )
        self._deliver(handle, challenge.code)
        return handle

    def resend(self, handle: StepUpHandle) -> StepUpHandle:
        """
        Re-delivers the live challenge, or starts over if it is dead

        Returns:
            The same handle, or a new one when a fresh challenge was issued

        Raises:
            ResendTooSoon: the code was delivered less than the cool-down ago
        """
        now = self.clock()
        challenge = self.store.get(handle.challenge_id)

        if challenge is None or not challenge.is_live(now):
            handle.state = StepUpState.FAILED
            logger.info(f"Challenge {handle.challenge_id} is no longer live, issuing a new one")
            return self.request_step_up(
                handle.requester_id, handle.operation_type, handle.target, handle.recipient_email
            )

        if challenge.delivered_at is not None:
            elapsed = (now - challenge.delivered_at).total_seconds()
            if elapsed < self.resend_cooldown_seconds:
                raise ResendTooSoon(math.ceil(self.resend_cooldown_seconds - elapsed))

        self._deliver(handle, challenge.code)
        return handle

    def submit_code(self, handle: StepUpHandle, code: str) -> VerifiedChallenge:
        """
        Verifies a code for the handle's operation and target

        Raises:
            VerificationFailure: wrong, expired, foreign or already used code
        """
        if handle.state not in (StepUpState.GENERATED, StepUpState.DELIVERED):
            raise VerificationFailure()

        if self.clock() >= handle.expires_at:
            handle.state = StepUpState.FAILED
            raise VerificationFailure()

        try:
            verified = self.verifier.verify(
                handle.requester_id, handle.operation_type, code, handle.target
            )
        except VerificationFailure:
            if self.clock() >= handle.expires_at:
                handle.state = StepUpState.FAILED
            raise

        token = secrets.token_urlsafe(32)
        self.store.attach_verification_token(verified.challenge_id, token)
        verified = replace(verified, verification_token=token)

        handle.verified = verified
        handle.state = StepUpState.VERIFIED
        return verified

    def complete(
        self,
        verified: VerifiedChallenge,
        operation_fn: Callable[[], Any],
        handle: StepUpHandle = None
    ) -> Any:
        """
        Runs the gated operation once verification succeeded

        The challenge is claimed before the operation runs, so a verification
        drives at most one execution. The claim is released when the
        operation fails.

        Raises:
            VerificationFailure: another request already claimed this verification
            OperationFailure: the operation failed; verification is kept and
                the operation can be retried with the same proof
        """
        if not self.store.claim_completion(verified.challenge_id, self.clock()):
            logger.info(f"Challenge {verified.challenge_id} already claimed by another request")
            raise VerificationFailure()

        try:
            result = operation_fn()
        except StepUpError:
            db.session.rollback()
            self.store.release_completion(verified.challenge_id)
            raise
        except Exception as e:
            db.session.rollback()
            self.store.release_completion(verified.challenge_id)
            logger.error(
                f"{verified.operation_type.value} failed after verification of {verified.challenge_id}: {e}"
            )
            raise OperationFailure() from e

        if handle is not None:
            handle.state = StepUpState.COMPLETED

        logger.info(f"{verified.operation_type.value} completed for challenge {verified.challenge_id}")
        return result

    # ==================== HANDLE RECOVERY ====================

    def load(self, challenge_id: str, requester_id: str) -> Optional[StepUpHandle]:
        """Rebuilds a handle from the store; None if unknown or owned by someone else"""
        challenge = self.store.get(challenge_id)
        if challenge is None or challenge.requester_id != requester_id:
            return None

        return StepUpHandle(
            challenge_id=challenge.id,
            requester_id=challenge.requester_id,
            operation_type=OperationType(challenge.operation_type),
            target=target_from_payload(challenge.operation_type, challenge.target_data),
            recipient_email=challenge.recipient_email,
            expires_at=challenge.expires_at,
            state=self._state_of(challenge),
            delivered_at=challenge.delivered_at
        )

    def redeem(
        self,
        verification_token: str,
        requester_id: str,
        operation_type: OperationType,
        target: OperationTarget
    ) -> VerifiedChallenge:
        """
        Exchanges the token returned by submit_code for the verification proof

        Raises:
            VerificationFailure: unknown token, other requester, operation or
                target, operation already completed, or token too old
        """
        challenge = self.store.find_by_verification_token(verification_token)

        if (
            challenge is None
            or challenge.requester_id != requester_id
            or challenge.operation_type != operation_type.value
            or challenge.target_data != target_to_payload(target)
            or challenge.completed_at is not None
            or challenge.verified_at is None
            or self.clock() >= challenge.verified_at + self.verification_ttl
        ):
            logger.info(f"Verification token refused for {requester_id} ({operation_type.value})")
            raise VerificationFailure()

        return VerifiedChallenge(
            challenge_id=challenge.id,
            requester_id=requester_id,
            operation_type=operation_type,
            target=target,
            verified_at=challenge.verified_at,
            verification_token=verification_token
        )

    # ==================== INTERNALS ====================

    def _deliver(self, handle: StepUpHandle, code: str) -> DeliveryResult:
        result = self.delivery.deliver(handle.recipient_email, code, handle.operation_type)
        handle.delivery = result

        if result.sent or result.insecure:
            now = self.clock()
            self.store.mark_delivered(handle.challenge_id, now)
            handle.delivered_at = now
            handle.state = StepUpState.DELIVERED

        return result

    def _state_of(self, challenge: OTPChallenge) -> StepUpState:
        if challenge.completed_at is not None:
            return StepUpState.COMPLETED
        if challenge.used:
            return StepUpState.VERIFIED
        if self.clock() >= challenge.expires_at:
            return StepUpState.FAILED
        if challenge.delivered_at is not None:
            return StepUpState.DELIVERED
        return StepUpState.GENERATED


def build_step_up_controller(app_config, transport=None, clock: Callable[[], datetime] = utcnow) -> StepUpController:
    """
    Wires the controller from the application configuration

    Args:
        app_config: Flask config mapping
        transport: mail transport; defaults to EmailService built from MAIL_PROVIDER
        clock: time source shared by every component
    """
    validity = app_config.get('OTP_VALIDITY_MINUTES', 10)
    if transport is None:
        transport = EmailService.from_app_config(app_config)

    store = OTPStore()
    return StepUpController(
        store=store,
        generator=OTPGenerator(store, validity_minutes=validity, clock=clock),
        verifier=OTPVerifier(store, clock=clock),
        delivery=OTPDelivery(
            transport,
            validity_minutes=validity,
            insecure_disclosure=app_config.get('OTP_INSECURE_DISCLOSURE', False)
        ),
        clock=clock,
        resend_cooldown_seconds=app_config.get('OTP_RESEND_COOLDOWN_SECONDS', RESEND_COOLDOWN_SECONDS),
        verification_ttl=timedelta(minutes=validity)
    )


def get_step_up_controller() -> StepUpController:
    """Controller of the current app, built once and kept in app.extensions"""
    controller = current_app.extensions.get('step_up')
    if controller is None:
        controller = build_step_up_controller(current_app.config)
        current_app.extensions['step_up'] = controller
    return controller
