"""Shared fixtures: in-memory app, fake mail transport, controllable clock."""

import re
from datetime import datetime, timedelta

import pytest

from payroll import create_app, db
from payroll.models import Plant, UserProfile, UserRole
from payroll.routes.auth import create_token_with_claims
from payroll.services.otp_service import generate_code
from payroll.services.step_up_service import build_step_up_controller

ADMIN_ID = 'admin-1'
ADMIN_EMAIL = 'admin@payrollpro.test'
OTHER_ADMIN_ID = 'admin-2'
MANAGER_ID = 'manager-42'
OTHER_MANAGER_ID = 'manager-43'
PLANT_ID = 'plant-1'
PASSWORD = 'secret123'

CODE_IN_TEXT = re.compile(r'Your verification code is: (\d{6})')


class FakeClock:
    def __init__(self, start=datetime(2025, 3, 3, 9, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class FakeTransport:
    """Mail transport recording every accepted message"""

    def __init__(self):
        self.sent = []
        self.fail = False
        self.raises = None

    def send(self, to, subject, html, text):
        if self.raises is not None:
            raise self.raises
        if self.fail:
            return False
        self.sent.append({'to': to, 'subject': subject, 'html': html, 'text': text})
        return True

    @property
    def last_code(self):
        return CODE_IN_TEXT.search(self.sent[-1]['text']).group(1)


class CodeSequence:
    """Predictable codes first, random ones afterwards"""

    def __init__(self, codes):
        self.codes = list(codes)

    def __call__(self):
        if self.codes:
            return self.codes.pop(0)
        return generate_code()


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def controller(app, transport, clock):
    controller = build_step_up_controller(app.config, transport=transport, clock=clock)
    controller.generator.code_factory = CodeSequence(['048213', '731902', '550187'])
    app.extensions['step_up'] = controller
    return controller


@pytest.fixture
def users(app):
    plant = Plant(id=PLANT_ID, name='North Plant', location='Lyon')
    db.session.add(plant)

    admin = UserProfile(id=ADMIN_ID, full_name='Alice Admin', email=ADMIN_EMAIL, role=UserRole.ADMIN.value)
    other_admin = UserProfile(
        id=OTHER_ADMIN_ID, full_name='Bob Admin', email='bob@payrollpro.test', role=UserRole.ADMIN.value
    )
    manager = UserProfile(
        id=MANAGER_ID, full_name='Jeanne Martin', email='jeanne@payrollpro.test',
        role=UserRole.MANAGER.value, plant_id=PLANT_ID
    )
    other_manager = UserProfile(
        id=OTHER_MANAGER_ID, full_name='Paul Durand', email='paul@payrollpro.test',
        role=UserRole.MANAGER.value, plant_id=PLANT_ID
    )
    for user in (admin, other_admin, manager, other_manager):
        user.set_password(PASSWORD)
        db.session.add(user)
    db.session.commit()

    return {'admin': admin, 'other_admin': other_admin, 'manager': manager, 'other_manager': other_manager}


def _auth_headers(user):
    return {'Authorization': f'Bearer {create_token_with_claims(user)}'}


@pytest.fixture
def admin_headers(users):
    return _auth_headers(users['admin'])


@pytest.fixture
def other_admin_headers(users):
    return _auth_headers(users['other_admin'])


@pytest.fixture
def manager_headers(users):
    return _auth_headers(users['manager'])
