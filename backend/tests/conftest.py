"""
Pytest fixtures for Vide Grenier Kamer backend tests.

One application per test session on an in-memory SQLite database; every test
starts from empty tables. External collaborators are the in-memory mailer and
httpx clients backed by MockTransport (see the payment and upload tests).
"""

from decimal import Decimal

import pytest
from videgrenier import create_app
from videgrenier.config import TestConfig
from videgrenier.extensions import db
from videgrenier.models import Product, User
from videgrenier.services import session_service, stock_service
from videgrenier.services.auth_service import hash_password

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='session')
def password_hash(app):
    """bcrypt is slow on purpose; hash the shared test password once."""
    return hash_password(PASSWORD)


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


@pytest.fixture(scope='function')
def mailer(app):
    """The in-memory mailer, emptied and healthy."""
    mailer = app.extensions["mailer"]
    mailer.outbox.clear()
    mailer.fail = False
    yield mailer
    mailer.fail = False


def make_user(db_session, password_hash, *, email, role="buyer", first_name="Test", last_name="User",
              verified=True, blocked=False):
    user = User(
        first_name=first_name,
        last_name=last_name,
        email=email,
        password_hash=password_hash,
        role=role,
        email_verified=verified,
        is_blocked=blocked,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session, password_hash):
    return make_user(db_session, password_hash, email="admin@vgk.cm", role="admin", first_name="Ada")


@pytest.fixture(scope='function')
def seller(db_session, password_hash):
    return make_user(db_session, password_hash, email="seller@vgk.cm", role="seller", first_name="Sam")


@pytest.fixture(scope='function')
def other_seller(db_session, password_hash):
    return make_user(db_session, password_hash, email="other@vgk.cm", role="seller", first_name="Olu")


@pytest.fixture(scope='function')
def buyer(db_session, password_hash):
    return make_user(db_session, password_hash, email="buyer@vgk.cm", role="buyer", first_name="Bea")


def make_product(db_session, owner, *, name="Lampe", price="500.00", quantity=10, category="Maison"):
    """Insert a product and open its current-month stock record, as create_product does."""
    product = Product(
        owner_id=owner.id if owner else None,
        creator_name=owner.full_name if owner else "Unknown",
        name=name,
        category=category,
        price=Decimal(price),
        quantity=quantity,
    )
    db_session.add(product)
    db_session.flush()
    stock_service.get_current_month_record(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product(db_session, seller):
    return make_product(db_session, seller)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user) -> dict:
    """Open a session for `user` directly (skips the bcrypt round-trip of /login)."""
    _, token = session_service.create_session(user)
    return auth_headers(token)


@pytest.fixture(scope='function')
def admin_headers(admin):
    return headers_for(admin)


@pytest.fixture(scope='function')
def seller_headers(seller):
    return headers_for(seller)


@pytest.fixture(scope='function')
def buyer_headers(buyer):
    return headers_for(buyer)
