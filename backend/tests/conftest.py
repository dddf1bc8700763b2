"""
Pytest fixtures for loandesk backend tests.

Provides test database setup, two isolated groups with users, items and
borrowers, token helpers and a controllable clock.
"""

from datetime import datetime, timedelta

import pytest

from loandesk import create_app
from loandesk.extensions import db, events
from loandesk.models import Borrower, Group, Item, User
from loandesk.services import auth_service, token_service
from loandesk.services.auth_service import ROLE_ADMIN, ROLE_USER
from loandesk.time_utils import set_clock


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'EVENTS_ENABLED': True,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()

    events.shutdown()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow on purpose; hash the shared test password once."""
    return auth_service.hash_password(PASSWORD)


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope='function', autouse=True)
def clock():
    """Freeze utcnow() at a known instant for every test; advance it explicitly."""
    fake = FakeClock(datetime(2026, 3, 2, 9, 0, 0))
    set_clock(fake)
    yield fake
    set_clock(None)


def _make_group(db_session, name: str) -> Group:
    group = Group(name=name, is_active=True)
    db_session.add(group)
    db_session.commit()
    auth_service.create_default_roles(group.id)
    return group


def _make_user(db_session, group: Group, email: str, password_hash: str, roles=(ROLE_USER,)) -> User:
    user = User(group_id=group.id, name=email.split("@")[0], email=email, password_hash=password_hash)
    db_session.add(user)
    db_session.commit()
    for role in roles:
        auth_service.assign_role(user.id, role)
    return user


@pytest.fixture(scope='function')
def group_a(db_session):
    """Group A (first tenant)."""
    return _make_group(db_session, "Group A - Library")


@pytest.fixture(scope='function')
def group_b(db_session):
    """Group B (second tenant)."""
    return _make_group(db_session, "Group B - Makerspace")


@pytest.fixture(scope='function')
def user_a(db_session, group_a, password_hash):
    """User A in Group A with user and admin roles."""
    return _make_user(db_session, group_a, "user_a@library.test", password_hash, roles=(ROLE_USER, ROLE_ADMIN))


@pytest.fixture(scope='function')
def user_b(db_session, group_b, password_hash):
    """User B in Group B with the user role."""
    return _make_user(db_session, group_b, "user_b@maker.test", password_hash)


@pytest.fixture(scope='function')
def roleless_user(db_session, group_a, password_hash):
    """Signed-in user in Group A holding no roles at all."""
    return _make_user(db_session, group_a, "nobody@library.test", password_hash, roles=())


@pytest.fixture(scope='function')
def item_a(db_session, group_a):
    item = Item(group_id=group_a.id, name="Laptop 7", asset_id=1007, quantity=3)
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def item_b(db_session, group_b):
    item = Item(group_id=group_b.id, name="3D Printer", asset_id=2001, quantity=1)
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def borrower_a(db_session, group_a):
    borrower = Borrower(group_id=group_a.id, name="Ada", email="a@x.com", notes="front desk")
    db_session.add(borrower)
    db_session.commit()
    return borrower


@pytest.fixture(scope='function')
def borrower_b(db_session, group_b):
    borrower = Borrower(group_id=group_b.id, name="Grace", email="g@y.com")
    db_session.add(borrower)
    db_session.commit()
    return borrower


def issue_token(user: User) -> str:
    """Helper to mint a bearer token without going through /login."""
    _, token = token_service.create_token(user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def token_a(user_a):
    return issue_token(user_a)


@pytest.fixture(scope='function')
def headers_a(token_a):
    return auth_headers(token_a)


@pytest.fixture(scope='function')
def headers_b(user_b):
    return auth_headers(issue_token(user_b))
