"""
Pytest fixtures for backend tests.

Provides an application bound to a fresh in-memory database per test, its
service container, a test client, and signed-in helpers.
"""

from decimal import Decimal

import pytest

from lahemir import create_app
from lahemir.extensions import db
from lahemir.models import ROLE_ADMIN, ROLE_EMPLOYEE, ROLE_EMPLOYEE_RETURN
from lahemir.services.container import get_services

ADMIN_USERNAME = "abdo"
ADMIN_PASSWORD = "00123456"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'SEED_SAMPLE_PRODUCTS': False,
    'DEFAULT_ADMIN_USERNAME': ADMIN_USERNAME,
    'DEFAULT_ADMIN_PASSWORD': ADMIN_PASSWORD,
}


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def services(app):
    """The application's service container."""
    return get_services()


@pytest.fixture(scope='function')
def admin(services):
    """The default admin user."""
    return services.users.get_by_username(ADMIN_USERNAME)


@pytest.fixture(scope='function')
def employee(services):
    return services.users.add({"username": "sara", "password": "pw-sara", "role": ROLE_EMPLOYEE})


@pytest.fixture(scope='function')
def returns_clerk(services):
    return services.users.add({"username": "omar", "password": "pw-omar", "role": ROLE_EMPLOYEE_RETURN})


@pytest.fixture(scope='function')
def second_admin(services):
    return services.users.add({"username": "mona", "password": "pw-mona", "role": ROLE_ADMIN})


def make_product(services, name="Widget", price="10", quantity=5, **extra):
    """Add a product through the registry and return it."""
    patch = {"name": name, "price": Decimal(str(price)), "quantity": quantity}
    patch.update(extra)
    return services.products.add(patch)


def login(client, username=ADMIN_USERNAME, password=ADMIN_PASSWORD):
    """Sign in and send the issued bearer token on later requests from ``client``."""
    resp = client.post("/api/auth/login", json={"username": username, "password": password})
    if resp.status_code == 200:
        client.environ_base["HTTP_AUTHORIZATION"] = f"Bearer {resp.get_json()['token']}"
    return resp


@pytest.fixture(scope='function')
def admin_client(client):
    """Test client with the default admin signed in."""
    resp = login(client)
    assert resp.status_code == 200
    return client
