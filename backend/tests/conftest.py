"""
Pytest fixtures for MoneyPay backend tests.

Provides test database setup, account factories, and test client.
"""

import pytest
from moneypay import create_app
from moneypay.extensions import db
from moneypay.services import account_service


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'SIDE_EFFECTS_SYNC': True,
    'TWILIO_ACCOUNT_SID': None,
    'TWILIO_AUTH_TOKEN': None,
    'TWILIO_PHONE_NUMBER': None,
    'CURRENCY_LABEL': 'SSP',
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


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
def make_account(db_session):
    """Factory: register an account and give it a starting balance."""
    counter = {'n': 0}

    def _make(role='user', balance_cents=0, *, name=None, phone=None, **kwargs):
        counter['n'] += 1
        account = account_service.create_account(
            name or f"{role.title()} {counter['n']}",
            phone or f"+2119{counter['n']:08d}",
            role,
            **kwargs,
        )
        if balance_cents:
            account.balance_cents = balance_cents
            db_session.commit()
        return account

    return _make


@pytest.fixture(scope='function')
def user(make_account):
    return make_account('user', 100_000)


@pytest.fixture(scope='function')
def agent(make_account):
    return make_account('agent', 100_000)


@pytest.fixture(scope='function')
def admin(make_account):
    return make_account('admin', 1_000_000)


@pytest.fixture(scope='function')
def headers():
    """Gateway identity headers for an account."""
    def _headers(account) -> dict:
        return {'X-Actor-Id': str(account.id)}
    return _headers


@pytest.fixture(scope='function')
def balance(db_session):
    """Fresh balance read, bypassing the identity map."""
    from moneypay.models import Account

    def _balance(account_id: int) -> int:
        db_session.expire_all()
        return db_session.get(Account, account_id).balance_cents
    return _balance
