"""
Pytest configuration for all tests.

Puts the server source root on sys.path, configures Django, and gives every
test a fresh in-memory MongoDB (mongomock) installed through database.set_db.
"""
import os
import sys
from datetime import datetime, timedelta

import pytest

# Add server directory to Python path
server_path = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'server'))
if server_path not in sys.path:
    sys.path.insert(0, server_path)

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'coordinator.settings')
os.environ['BACKGROUND_TASKS_EAGER'] = '1'
os.environ['STRIPE_SECRET_KEY'] = ''

import django  # noqa: E402

django.setup()

import mongomock  # noqa: E402

import database  # noqa: E402
from apps.clients.models import Client  # noqa: E402
from apps.therapists.compliance import TherapistStatus  # noqa: E402
from apps.therapists.models import Therapist  # noqa: E402
from apps.users.models import User, UserRole  # noqa: E402

FIXED_NOW = datetime(2026, 3, 2, 9, 0)


class FakeClock:
    """Injectable clock that only moves when told to"""

    def __init__(self, now=FIXED_NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def db():
    mock_db = mongomock.MongoClient()['teletherapy_test']
    database.set_db(mock_db)
    database.ensure_indexes(mock_db)
    yield mock_db
    database.set_db(None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_user():
    counter = {'n': 0}

    def _make(role=UserRole.CLIENT):
        counter['n'] += 1
        user = User(f"{role}{counter['n']}@example.com", role=role, first_name=role.title())
        user.save()
        return user.__dict__
    return _make


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN)


@pytest.fixture
def make_client(make_user):
    def _make():
        user = make_user(UserRole.CLIENT)
        client_id = Client(user['_id']).save()
        return Client.find_by_id(client_id), user
    return _make


@pytest.fixture
def make_therapist(make_user):
    def _make(credentials='SLPA', hourly_rate=50, status=TherapistStatus.ACTIVE):
        user = make_user(UserRole.THERAPIST)
        therapist = Therapist.create(user['_id'], hourly_rate, credentials=credentials)
        if status != TherapistStatus.PENDING:
            Therapist.set_status(therapist['_id'], status)
        return Therapist.find_by_id(therapist['_id']), user
    return _make
