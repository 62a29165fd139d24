"""OTP generation, verification and single-use consumption."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from payroll.models import OTPChallenge, OperationType
from payroll.services import otp_service
from payroll.services.errors import GenerationFailure, VerificationFailure
from payroll.services.otp_service import CODE_PATTERN, OTPGenerator, OTPVerifier, generate_code
from payroll.services.otp_store import OTPStore
from payroll.services.targets import DeleteManagerTarget, PasswordResetTarget

from conftest import ADMIN_ID, OTHER_ADMIN_ID, CodeSequence

DELETE = OperationType.DELETE_MANAGER
TARGET = DeleteManagerTarget(manager_id='manager-42')


@pytest.fixture
def store(app):
    return OTPStore()


@pytest.fixture
def generator(store, clock):
    return OTPGenerator(store, clock=clock, code_factory=CodeSequence(['048213', '731902']))


@pytest.fixture
def verifier(store, clock):
    return OTPVerifier(store, clock=clock)


def test_generate_code_is_six_digits():
    for _ in range(200):
        assert CODE_PATTERN.match(generate_code())


def test_generate_code_keeps_leading_zeros(monkeypatch):
    monkeypatch.setattr(otp_service.secrets, 'randbelow', lambda n: 48213)
    assert generate_code() == '048213'

    monkeypatch.setattr(otp_service.secrets, 'randbelow', lambda n: 0)
    assert generate_code() == '000000'


def test_generate_stores_challenge(generator, store, clock):
    challenge = generator.generate(ADMIN_ID, DELETE, TARGET, 'admin@payrollpro.test')

    stored = store.get(challenge.id)
    assert stored.code == '048213'
    assert stored.requester_id == ADMIN_ID
    assert stored.operation_type == 'delete_manager'
    assert stored.target_data == {'manager_id': 'manager-42'}
    assert stored.used is False
    assert stored.expires_at == clock.now + timedelta(minutes=10)


def test_generate_store_failure_raises_generation_failure(generator, store, monkeypatch):
    def broken_insert(challenge):
        raise OperationalError('INSERT', {}, Exception('database is locked'))

    monkeypatch.setattr(store, 'insert', broken_insert)

    with pytest.raises(GenerationFailure):
        generator.generate(ADMIN_ID, DELETE, TARGET)


def test_verify_within_validity(generator, verifier, store, clock):
    challenge = generator.generate(ADMIN_ID, DELETE, TARGET)
    clock.advance(540)

    verified = verifier.verify(ADMIN_ID, DELETE, '048213', TARGET)

    assert verified.challenge_id == challenge.id
    assert verified.target == TARGET
    assert verified.verified_at == clock.now
    assert store.get(challenge.id).used is True


def test_verify_after_expiry_fails(generator, verifier, clock):
    generator.generate(ADMIN_ID, DELETE, TARGET)
    clock.advance(601)

    with pytest.raises(VerificationFailure):
        verifier.verify(ADMIN_ID, DELETE, '048213', TARGET)


def test_verify_exactly_at_expiry_fails(generator, verifier, clock):
    generator.generate(ADMIN_ID, DELETE, TARGET)
    clock.advance(600)

    with pytest.raises(VerificationFailure):
        verifier.verify(ADMIN_ID, DELETE, '048213', TARGET)


def test_verify_wrong_code_fails(generator, verifier):
    generator.generate(ADMIN_ID, DELETE, TARGET)

    with pytest.raises(VerificationFailure):
        verifier.verify(ADMIN_ID, DELETE, '000000', TARGET)


@pytest.mark.parametrize('code', ['', '48213', '0482130', 'abcdef', '04 213', None])
def test_verify_malformed_code_fails(generator, verifier, code):
    generator.generate(ADMIN_ID, DELETE, TARGET)

    with pytest.raises(VerificationFailure):
        verifier.verify(ADMIN_ID, DELETE, code, TARGET)


def test_code_is_single_use(generator, verifier):
    generator.generate(ADMIN_ID, DELETE, TARGET)
    verifier.verify(ADMIN_ID, DELETE, '048213', TARGET)

    with pytest.raises(VerificationFailure):
        verifier.verify(ADMIN_ID, DELETE, '048213', TARGET)


def test_code_bound_to_target(generator, verifier, store):
    challenge = generator.generate(ADMIN_ID, DELETE, TARGET)

    with pytest.raises(VerificationFailure):
        verifier.verify(ADMIN_ID, DELETE, '048213', DeleteManagerTarget(manager_id='manager-43'))

    # the mismatch does not consume the challenge
    assert store.get(challenge.id).used is False
    verifier.verify(ADMIN_ID, DELETE, '048213', TARGET)


def test_code_bound_to_operation(generator, verifier):
    generator.generate(ADMIN_ID, DELETE, TARGET)

    with pytest.raises(VerificationFailure):
        verifier.verify(
            ADMIN_ID, OperationType.PASSWORD_RESET, '048213', PasswordResetTarget(manager_id='manager-42')
        )


def test_code_bound_to_requester(generator, verifier):
    generator.generate(ADMIN_ID, DELETE, TARGET)

    with pytest.raises(VerificationFailure):
        verifier.verify(OTHER_ADMIN_ID, DELETE, '048213', TARGET)


def test_concurrent_verification_only_one_wins(generator, verifier, store, clock, monkeypatch):
    generator.generate(ADMIN_ID, DELETE, TARGET)

    # both requests looked the challenge up before either consumed it
    stale = store.find_active(ADMIN_ID, DELETE.value, '048213', clock.now)
    monkeypatch.setattr(store, 'find_active', lambda *args: stale)

    verifier.verify(ADMIN_ID, DELETE, '048213', TARGET)
    with pytest.raises(VerificationFailure):
        verifier.verify(ADMIN_ID, DELETE, '048213', TARGET)


def test_purge_expired_keeps_live_challenges(generator, store, clock):
    old_id = generator.generate(ADMIN_ID, DELETE, TARGET).id
    clock.advance(3600)
    live_id = generator.generate(ADMIN_ID, DELETE, TARGET).id

    assert store.purge_expired(clock.now) == 1
    assert [c.id for c in OTPChallenge.query.all()] == [live_id]
    assert OTPChallenge.query.filter_by(id=old_id).first() is None
