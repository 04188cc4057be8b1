"""
Test configuration and fixtures for the FitGym application.
"""
import pytest
import os

# Set environment variables for testing
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['MAIL_SUPPRESS_SEND'] = 'true'

from fitgym import create_app, db
from fitgym.models import Role
from tests.fixtures.factories import (ActiveMemberFactory, AdminMemberFactory,
                                      TemporaryEmailMemberFactory)

TEST_PASSWORD = 'testpassword123'


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app('testing')

    with app.app_context():
        from fitgym import models

        db.create_all()

        yield app

        db.drop_all()


@pytest.fixture
def db_session(app):
    """Database session for one test; every table is emptied afterwards."""
    with app.app_context():
        yield db.session

        try:
            for table in reversed(db.metadata.sorted_tables):
                db.session.execute(table.delete())
            db.session.commit()
        except Exception:
            db.session.rollback()
        finally:
            db.session.remove()


@pytest.fixture
def client(app, db_session):
    """Test client sharing the test's application context."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create test CLI runner."""
    return app.test_cli_runner()


@pytest.fixture
def staff_role(db_session):
    """The Membership Staff role."""
    role = db_session.query(Role).filter_by(name='Membership Staff').first()
    if role is None:
        role = Role(name='Membership Staff')
        db_session.add(role)
        db_session.commit()
    return role


@pytest.fixture
def test_member(db_session):
    """An active member with a verified real email."""
    return ActiveMemberFactory.create(
        firstname='Test',
        lastname='User',
        email='test.user@gmail.com',
        is_verified=True,
        password=TEST_PASSWORD
    )


@pytest.fixture
def temp_email_member(db_session):
    """A member created at the front desk with a temporary email."""
    return TemporaryEmailMemberFactory.create(
        firstname='Walk',
        lastname='In',
        membership_number=4242,
        password=TEST_PASSWORD
    )


@pytest.fixture
def staff_member(db_session, staff_role):
    """A member holding the Membership Staff role."""
    return ActiveMemberFactory.create(
        firstname='Front',
        lastname='Desk',
        email='front.desk@gmail.com',
        password=TEST_PASSWORD,
        roles=[staff_role]
    )


@pytest.fixture
def admin_member(db_session, staff_role):
    """An admin member."""
    return AdminMemberFactory.create(
        firstname='Admin',
        lastname='User',
        email='gym.admin@gmail.com',
        password=TEST_PASSWORD,
        roles=[staff_role]
    )


def login(client, member, password=TEST_PASSWORD):
    return client.post('/members/auth/login', data={
        'email': member.email,
        'password': password
    }, follow_redirects=False)


@pytest.fixture
def authenticated_client(client, test_member):
    """Client logged in as test_member."""
    login(client, test_member)
    return client


@pytest.fixture
def temp_email_client(client, temp_email_member):
    """Client logged in as the member with a temporary email."""
    login(client, temp_email_member)
    return client


@pytest.fixture
def staff_client(client, staff_member):
    """Client logged in as a Membership Staff member."""
    login(client, staff_member)
    return client


@pytest.fixture
def admin_client(client, admin_member):
    """Client logged in as an admin."""
    login(client, admin_member)
    return client
