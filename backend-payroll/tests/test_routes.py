"""HTTP flow of the admin step-up and manager endpoints."""

import pytest

from payroll import db
from payroll.models import UserProfile
from payroll.utils.audit import AuditAction, AuditLog

from conftest import ADMIN_EMAIL, MANAGER_ID, OTHER_MANAGER_ID, PASSWORD, PLANT_ID


@pytest.fixture(autouse=True)
def _wired(controller, users):
    """Every route test runs with the fake transport and seeded users"""


def _start(client, headers, operation_type='delete_manager', target=None):
    return client.post('/api/admin/step-up', headers=headers, json={
        'operation_type': operation_type,
        'target': target if target is not None else {'manager_id': MANAGER_ID},
    })


def _verify(client, headers, challenge_id, code):
    return client.post(f'/api/admin/step-up/{challenge_id}/verify', headers=headers, json={'code': code})


def _verified_token(client, headers, transport, **kwargs):
    challenge_id = _start(client, headers, **kwargs).get_json()['challenge_id']
    return _verify(client, headers, challenge_id, transport.last_code).get_json()['verification_token']


# ==================== AUTH ====================

def test_login_returns_token(client):
    response = client.post('/api/auth/login', json={'email': ADMIN_EMAIL, 'password': PASSWORD})

    assert response.status_code == 200
    data = response.get_json()
    assert data['access_token']
    assert data['user']['role'] == 'admin'


def test_login_rejects_wrong_password(client):
    response = client.post('/api/auth/login', json={'email': ADMIN_EMAIL, 'password': 'nope'})

    assert response.status_code == 401
    assert AuditLog.query.filter_by(action=AuditAction.LOGIN_FAILED).count() == 1


def test_step_up_requires_token(client):
    assert _start(client, {}).status_code == 401


def test_step_up_requires_admin(client, manager_headers):
    response = _start(client, manager_headers)

    assert response.status_code == 403
    assert response.get_json()['code'] == 'FORBIDDEN'


# ==================== STEP-UP ====================

def test_start_step_up_emails_requester(client, admin_headers, transport):
    response = _start(client, admin_headers)

    assert response.status_code == 201
    data = response.get_json()
    assert data['state'] == 'delivered'
    assert data['operation_type'] == 'delete_manager'
    assert data['expires_in'] == 600
    assert data['delivery']['channel'] == 'email'
    assert data['delivery']['destination_masked'] == 'a***@p***.test'
    assert 'code' not in data['delivery']

    assert transport.sent[0]['to'] == ADMIN_EMAIL
    assert AuditLog.query.filter_by(action=AuditAction.OTP_SENT).count() == 1


def test_start_step_up_rejects_unknown_operation(client, admin_headers):
    response = _start(client, admin_headers, operation_type='drop_database')

    assert response.status_code == 400
    assert response.get_json()['code'] == 'INVALID_TARGET'


def test_start_step_up_rejects_malformed_target(client, admin_headers):
    response = _start(client, admin_headers, target={'manager': MANAGER_ID})

    assert response.status_code == 400
    assert response.get_json()['code'] == 'INVALID_TARGET'


def test_start_step_up_for_unknown_manager(client, admin_headers, transport):
    response = _start(client, admin_headers, target={'manager_id': 'manager-999'})

    assert response.status_code == 404
    assert transport.sent == []


def test_start_step_up_delivery_failure(client, admin_headers, transport):
    transport.fail = True

    response = _start(client, admin_headers)

    assert response.status_code == 502
    data = response.get_json()
    assert data['code'] == 'DELIVERY_FAILED'
    assert data['can_resend'] is True
    assert data['state'] == 'generated'

    transport.fail = False
    resend = client.post(f"/api/admin/step-up/{data['challenge_id']}/resend", headers=admin_headers)
    assert resend.status_code == 200
    assert resend.get_json()['state'] == 'delivered'


def test_resend_too_soon(client, admin_headers, clock):
    challenge_id = _start(client, admin_headers).get_json()['challenge_id']
    clock.advance(20)

    response = client.post(f'/api/admin/step-up/{challenge_id}/resend', headers=admin_headers)

    assert response.status_code == 429
    data = response.get_json()
    assert data['code'] == 'RESEND_COOLDOWN'
    assert data['retry_after'] == 40


def test_resend_unknown_challenge(client, admin_headers):
    response = client.post('/api/admin/step-up/unknown/resend', headers=admin_headers)
    assert response.status_code == 404


def test_verify_wrong_code(client, admin_headers):
    challenge_id = _start(client, admin_headers).get_json()['challenge_id']

    response = _verify(client, admin_headers, challenge_id, '000000')

    assert response.status_code == 400
    assert response.get_json() == {'error': 'Invalid or expired OTP', 'code': 'INVALID_OR_EXPIRED'}
    assert AuditLog.query.filter_by(action=AuditAction.OTP_FAILED).count() == 1


def test_verify_expired_code(client, admin_headers, transport, clock):
    challenge_id = _start(client, admin_headers).get_json()['challenge_id']
    clock.advance(601)

    response = _verify(client, admin_headers, challenge_id, transport.last_code)

    assert response.status_code == 400
    assert response.get_json()['code'] == 'INVALID_OR_EXPIRED'


def test_verify_challenge_of_another_admin(client, admin_headers, other_admin_headers, transport):
    challenge_id = _start(client, admin_headers).get_json()['challenge_id']

    response = _verify(client, other_admin_headers, challenge_id, transport.last_code)

    assert response.status_code == 400
    assert response.get_json()['code'] == 'INVALID_OR_EXPIRED'


# ==================== MANAGER OPERATIONS ====================

def test_delete_manager_flow(client, admin_headers, transport):
    challenge_id = _start(client, admin_headers).get_json()['challenge_id']
    verify = _verify(client, admin_headers, challenge_id, transport.last_code)
    assert verify.status_code == 200
    assert verify.get_json()['state'] == 'verified'
    token = verify.get_json()['verification_token']

    response = client.delete(
        f'/api/admin/managers/{MANAGER_ID}', headers=admin_headers, json={'verification_token': token}
    )

    assert response.status_code == 200
    assert db.session.get(UserProfile, MANAGER_ID) is None
    assert AuditLog.query.filter_by(action=AuditAction.MANAGER_DELETE).count() == 1

    replay = client.delete(
        f'/api/admin/managers/{MANAGER_ID}', headers=admin_headers, json={'verification_token': token}
    )
    assert replay.status_code == 400
    assert replay.get_json()['code'] == 'INVALID_OR_EXPIRED'


def test_delete_without_verification(client, admin_headers):
    response = client.delete(f'/api/admin/managers/{MANAGER_ID}', headers=admin_headers, json={})

    assert response.status_code == 400
    assert db.session.get(UserProfile, MANAGER_ID) is not None


def test_token_cannot_be_used_on_another_manager(client, admin_headers, transport):
    token = _verified_token(client, admin_headers, transport)

    response = client.delete(
        f'/api/admin/managers/{OTHER_MANAGER_ID}', headers=admin_headers,
        json={'verification_token': token}
    )

    assert response.status_code == 400
    assert db.session.get(UserProfile, OTHER_MANAGER_ID) is not None


def test_token_accepted_from_header(client, admin_headers, transport):
    token = _verified_token(client, admin_headers, transport)

    response = client.delete(
        f'/api/admin/managers/{MANAGER_ID}',
        headers={**admin_headers, 'X-Verification-Token': token}
    )

    assert response.status_code == 200


def test_add_manager_flow(client, admin_headers, transport):
    target = {'email': 'new.manager@payrollpro.test', 'full_name': 'New Manager', 'plant_id': PLANT_ID}
    token = _verified_token(client, admin_headers, transport, operation_type='add_manager', target=target)

    response = client.post('/api/admin/managers', headers=admin_headers, json={
        **target,
        'password': 'welcome1',
        'confirm_password': 'welcome1',
        'verification_token': token,
    })

    assert response.status_code == 201
    manager = response.get_json()['manager']
    assert manager['email'] == 'new.manager@payrollpro.test'
    assert manager['plant_id'] == PLANT_ID
    assert UserProfile.query.filter_by(email='new.manager@payrollpro.test').first().check_password('welcome1')


def test_add_manager_with_changed_details_is_refused(client, admin_headers, transport):
    target = {'email': 'new.manager@payrollpro.test', 'full_name': 'New Manager', 'plant_id': PLANT_ID}
    token = _verified_token(client, admin_headers, transport, operation_type='add_manager', target=target)

    response = client.post('/api/admin/managers', headers=admin_headers, json={
        **target,
        'email': 'someone.else@payrollpro.test',
        'password': 'welcome1',
        'verification_token': token,
    })

    assert response.status_code == 400
    assert UserProfile.query.filter_by(email='someone.else@payrollpro.test').first() is None


def test_add_manager_for_existing_email_is_refused_before_sending(client, admin_headers, transport):
    target = {'email': 'jeanne@payrollpro.test', 'full_name': 'Jeanne Bis', 'plant_id': PLANT_ID}

    response = _start(client, admin_headers, operation_type='add_manager', target=target)

    assert response.status_code == 409
    assert transport.sent == []


def test_password_reset_flow(client, admin_headers, transport):
    token = _verified_token(client, admin_headers, transport, operation_type='password_reset')

    response = client.post(f'/api/admin/managers/{MANAGER_ID}/reset-password', headers=admin_headers, json={
        'new_password': 'changed99',
        'confirm_password': 'changed99',
        'verification_token': token,
    })

    assert response.status_code == 200
    assert db.session.get(UserProfile, MANAGER_ID).check_password('changed99')


def test_password_reset_mismatch_keeps_verification(client, admin_headers, transport):
    token = _verified_token(client, admin_headers, transport, operation_type='password_reset')
    url = f'/api/admin/managers/{MANAGER_ID}/reset-password'

    mismatch = client.post(url, headers=admin_headers, json={
        'new_password': 'changed99',
        'confirm_password': 'changed98',
        'verification_token': token,
    })
    assert mismatch.status_code == 400
    assert mismatch.get_json()['error'] == 'Passwords do not match'

    response = client.post(url, headers=admin_headers, json={
        'new_password': 'changed99',
        'confirm_password': 'changed99',
        'verification_token': token,
    })
    assert response.status_code == 200


def test_delete_token_cannot_reset_password(client, admin_headers, transport):
    token = _verified_token(client, admin_headers, transport)

    response = client.post(f'/api/admin/managers/{MANAGER_ID}/reset-password', headers=admin_headers, json={
        'new_password': 'changed99',
        'confirm_password': 'changed99',
        'verification_token': token,
    })

    assert response.status_code == 400
    assert db.session.get(UserProfile, MANAGER_ID).check_password(PASSWORD)


def test_list_managers(client, admin_headers):
    response = client.get('/api/admin/managers', headers=admin_headers)

    assert response.status_code == 200
    emails = {m['email'] for m in response.get_json()['managers']}
    assert emails == {'jeanne@payrollpro.test', 'paul@payrollpro.test'}


def test_demoted_admin_loses_access(client, admin_headers, users):
    users['admin'].role = 'manager'
    db.session.commit()

    response = _start(client, admin_headers)

    assert response.status_code == 403
    assert response.get_json()['code'] == 'FORBIDDEN'
