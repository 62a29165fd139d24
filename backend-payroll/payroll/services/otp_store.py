"""
OTP store
=========

Persistence of step-up challenges in the otp_challenges table.
The only write that matters for security is conditional_mark_used: a single
UPDATE guarded by used = false, whose row count decides which of two
concurrent verifications wins.
"""

import logging
from datetime import datetime
from typing import Optional

from payroll import db
from payroll.models import OTPChallenge

logger = logging.getLogger(__name__)


class OTPStore:
    """SQLAlchemy-backed store for OTPChallenge rows"""

    def __init__(self):
        self.session = db.session

    def insert(self, challenge: OTPChallenge) -> OTPChallenge:
        """Persists a new challenge. SQLAlchemy errors propagate after rollback."""
        try:
            self.session.add(challenge)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return challenge

    def get(self, challenge_id: str) -> Optional[OTPChallenge]:
        return self.session.get(OTPChallenge, challenge_id)

    def find_active(
        self,
        requester_id: str,
        operation_type: str,
        code: str,
        now: datetime
    ) -> Optional[OTPChallenge]:
        """Most recent unused, unexpired challenge matching requester, operation and code"""
        return OTPChallenge.query.filter(
            OTPChallenge.requester_id == requester_id,
            OTPChallenge.operation_type == operation_type,
            OTPChallenge.code == code,
            OTPChallenge.used.is_(False),
            OTPChallenge.expires_at > now
        ).order_by(OTPChallenge.created_at.desc()).first()

    def conditional_mark_used(self, challenge_id: str, now: datetime) -> bool:
        """
        used: false -> true, only if still unused and unexpired

        Returns:
            True when this call consumed the challenge, False when another
            verification got there first (or the challenge expired meanwhile)
        """
        updated = OTPChallenge.query.filter(
            OTPChallenge.id == challenge_id,
            OTPChallenge.used.is_(False),
            OTPChallenge.expires_at > now
        ).update({'used': True, 'verified_at': now}, synchronize_session=False)
        self.session.commit()
        return updated == 1

    def mark_delivered(self, challenge_id: str, now: datetime):
        OTPChallenge.query.filter_by(id=challenge_id).update(
            {'delivered_at': now}, synchronize_session=False
        )
        self.session.commit()

    def attach_verification_token(self, challenge_id: str, token: str):
        OTPChallenge.query.filter_by(id=challenge_id).update(
            {'verification_token': token}, synchronize_session=False
        )
        self.session.commit()

    def find_by_verification_token(self, token: str) -> Optional[OTPChallenge]:
        if not token:
            return None
        return OTPChallenge.query.filter_by(verification_token=token, used=True).first()

    def claim_completion(self, challenge_id: str, now: datetime) -> bool:
        """
        completed_at: null -> now, only if nobody claimed it yet

        Returns:
            True when this call owns the gated operation, False when another
            request already claimed (or completed) it
        """
        updated = OTPChallenge.query.filter(
            OTPChallenge.id == challenge_id,
            OTPChallenge.completed_at.is_(None)
        ).update({'completed_at': now}, synchronize_session=False)
        self.session.commit()
        return updated == 1

    def release_completion(self, challenge_id: str):
        """Undoes a claim after the gated operation failed"""
        OTPChallenge.query.filter_by(id=challenge_id).update(
            {'completed_at': None}, synchronize_session=False
        )
        self.session.commit()

    def purge_expired(self, before: datetime) -> int:
        """Deletes challenges that expired before the given timestamp"""
        deleted = OTPChallenge.query.filter(
            OTPChallenge.expires_at < before
        ).delete(synchronize_session=False)
        self.session.commit()
        logger.info(f"Purged {deleted} expired OTP challenge(s)")
        return deleted
