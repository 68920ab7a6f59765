"""
Pytest configuration and fixtures for TaskHive backend tests
"""
import pytest

from app_config import TestingConfig
from auth_routes import generate_token
from models import (
    db, User, Job, ServiceCategory, Role, WorkerStatus, JobStatus,
)
from server import create_app
import settlement


@pytest.fixture(scope='function')
def app():
    """Create a fresh application and in-memory database per test"""
    app = create_app(TestingConfig)

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    return db.session


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
@pytest.fixture
def user_factory(db_session):
    """Create users with sensible defaults per role"""
    counter = {'n': 0}

    def _create(role=Role.CUSTOMER, **kwargs):
        counter['n'] += 1
        defaults = {
            'email': '{}{}@example.com'.format(role, counter['n']),
            'name': '{} {}'.format(role.title(), counter['n']),
            'role': role,
        }
        if role == Role.WORKER:
            defaults.update({
                'worker_status': WorkerStatus.VERIFIED,
                'is_online': True,
                'skills': [],
                'service_radius_km': 10.0,
                # Central Bengaluru
                'current_lat': 12.9716,
                'current_lng': 77.5946,
            })
        defaults.update(kwargs)
        user = User(**defaults)
        user.set_password('Secret123!')
        db_session.add(user)
        db_session.commit()
        return user

    return _create


@pytest.fixture
def customer(user_factory):
    return user_factory(Role.CUSTOMER, name='Asha Customer')


@pytest.fixture
def worker(user_factory):
    return user_factory(Role.WORKER, name='Ravi Worker')


@pytest.fixture
def other_worker(user_factory):
    return user_factory(Role.WORKER, name='Kiran Worker')


@pytest.fixture
def admin(user_factory):
    return user_factory(Role.ADMIN, name='Ops Admin')


@pytest.fixture
def headers_for(app):
    """Build Authorization headers for a user"""
    def _headers(user):
        return {
            'Authorization': 'Bearer {}'.format(generate_token(user)),
            'Content-Type': 'application/json',
        }
    return _headers


@pytest.fixture
def customer_headers(headers_for, customer):
    return headers_for(customer)


@pytest.fixture
def worker_headers(headers_for, worker):
    return headers_for(worker)


@pytest.fixture
def admin_headers(headers_for, admin):
    return headers_for(admin)


# ---------------------------------------------------------------------------
# Catalog & jobs
# ---------------------------------------------------------------------------
@pytest.fixture
def category(db_session):
    cat = ServiceCategory(name='Electrician', icon='zap', base_price=300.0, description='Wiring and repairs')
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture
def job_factory(db_session, customer, category):
    """Insert a job directly in a given state"""
    def _create(status=JobStatus.SEARCHING, worker=None, amount=None, owner=None, **kwargs):
        values = {
            'customer_id': (owner or customer).id,
            'category_id': category.id,
            'status': status,
            'worker_id': worker.id if worker else None,
            'amount': amount,
            'location_address': '12 MG Road, Bengaluru',
            'location_lat': 12.9750,
            'location_lng': 77.6050,
            'otp': '4821',
        }
        values.update(kwargs)
        job = Job(**values)
        db_session.add(job)
        db_session.commit()
        return job
    return _create


@pytest.fixture
def open_job(job_factory):
    return job_factory()


@pytest.fixture
def sign():
    """Signature the Razorpay checkout would hand back for a payment"""
    def _sign(order_id, payment_id, secret=TestingConfig.RAZORPAY_KEY_SECRET):
        return settlement.compute_signature(order_id, payment_id, secret)
    return _sign
