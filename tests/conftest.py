import pytest

from core import auth
from sheets.memory_backend import InMemoryBackend
from sheets.record_store import RecordStore
from transport.registration_service import TransportRegistrationService


STUDENT_ROWS = [
    ['E100', 'Aisha Khan', '5', 'B', 'FN', '5551 2345', '', 'Al Sadd', 'Imran Khan'],
    ['E101', 'Rahul Nair', '7', 'A', 'AN', '55598765', '66612345', 'Najma', 'Suresh Nair'],
    ['E102', 'Zara Ali', '5', 'A', 'FN', '55500011', '', 'Al Wakra', 'Omar Ali'],
]
BUS_ROWS = [
    ['B1', '2', 'R1', 'Rashid', '55511111', 'Anil', '55522222', 'T1', 'FN'],
    ['B2', '40', 'R2', 'Yusuf', '55533333', 'Binu', '55544444', '', 'AN'],
]
ROUTE_ROWS = [
    ['R1', 'Al Sadd Loop', 'Main Gate, Al Sadd Signal, Lulu Hypermarket', '12 km', 'Al Sadd'],
    ['R2', 'Najma Line', 'Main Gate, Najma Park', '8 km', 'Najma'],
]
TEACHER_ROWS = [
    ['T1', 'Meera Das', '55577777', 'Maths', 'B1'],
]

FIXED_NOW = '2024-05-01T07:30:00.000Z'


def seed_backend(backend: InMemoryBackend) -> None:
    backend.seed('Students', STUDENT_ROWS)
    backend.seed('Buses', BUS_ROWS)
    backend.seed('Routes', ROUTE_ROWS)
    backend.seed('Teachers', TEACHER_ROWS)
    backend.seed('Transport_Registrations', [])


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def store(backend):
    record_store = RecordStore(backend, cache_ttl=0, clock=lambda: FIXED_NOW)
    seed_backend(backend)
    return record_store


@pytest.fixture
def service(store):
    return TransportRegistrationService(store, clock=lambda: FIXED_NOW, school_name='Test School')


@pytest.fixture
def app_env(monkeypatch):
    monkeypatch.setenv('JWT_SECRET_KEY', 'test-secret-key-with-at-least-32-bytes')
    monkeypatch.setenv('ADMIN_PASSWORD', 'letmein')
    monkeypatch.setenv('CORS_ORIGINS', 'http://localhost:5173')
    monkeypatch.setenv('SCHOOL_NAME', 'Test School')
    monkeypatch.setenv('SMS_COUNTRY_CODE', '974')
    auth.login_attempts.clear()


@pytest.fixture
def app(app_env, store):
    from app import create_app

    flask_app = create_app(store=store)
    flask_app.config['TESTING'] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app_env):
    return {'Authorization': f'Bearer {auth.create_jwt_token()}'}
