import itertools
from contextlib import contextmanager
from datetime import date

import pytest
from sqlalchemy import event
from sqlalchemy.orm import sessionmaker, scoped_session

from rentledger import create_app, db
from rentledger.config import TestingConfig
from rentledger.models import *  # register models so metadata is available


@pytest.fixture(scope='module')
def app():
    """Create and configure a new app instance for each test module."""
    app = create_app(config_class=TestingConfig)
    yield app


@pytest.fixture(scope='function')
def db_session(app):
    """
    Create a transactional-scoped session for each test function.

    Uses an explicit connection/transaction and a scoped_session bound
    to that connection so sqlite:///:memory: tables persist for the
    duration of the test. Restores the original Flask-SQLAlchemy session
    on teardown to avoid leaving db.session pointing at a closed connection.
    """
    with app.app_context():
        original_session = db.session

        connection = db.engine.connect()
        transaction = connection.begin()

        session_factory = sessionmaker(bind=connection)
        Session = scoped_session(session_factory)

        # Create all tables on the same connection (important for in-memory sqlite).
        db.metadata.create_all(bind=connection)

        # Routes and services under test see the same session
        db.session = Session

        try:
            yield Session()
        finally:
            Session.remove()
            transaction.rollback()
            connection.close()
            db.session = original_session


@pytest.fixture(scope='function')
def client(app):
    """A Flask test client to make HTTP requests during integration tests."""
    return app.test_client()


@pytest.fixture
def count_selects(db_session):
    """Context manager collecting every SELECT sent to the database inside it."""
    @contextmanager
    def _count():
        statements = []

        def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            if statement.lstrip().upper().startswith('SELECT'):
                statements.append(statement)

        engine = db.engine
        event.listen(engine, 'before_cursor_execute', before_cursor_execute)
        try:
            yield statements
        finally:
            event.remove(engine, 'before_cursor_execute', before_cursor_execute)
    return _count


class LedgerBuilder:
    """Small factory for ledger fixtures; every helper commits."""

    def __init__(self, session):
        self.session = session
        self._seq = itertools.count(1)

    def _save(self, *objs):
        self.session.add_all(objs)
        self.session.commit()
        return objs[0] if len(objs) == 1 else objs

    def property(self, name='Maple Court', organization_id=1):
        return self._save(Property(name=name, organization_id=organization_id,
                                   address='1 Main St', city='Springfield', state='IL', zip='62701'))

    def unit(self, prop, unit_number='1'):
        return self._save(Unit(property=prop, unit_number=unit_number))

    def user(self, name=None):
        n = next(self._seq)
        return self._save(User(name=name or f'User {n}', email=f'user{n}@example.com', phone='555-0100'))

    def lease(self, unit=None, tenant=None, monthly_rent=150000, start_date=date(2024, 1, 1),
              end_date=date(2024, 12, 31), status='active', **kwargs):
        if unit is None:
            unit = self.unit(self.property())
        if tenant is None:
            tenant = self.user()
        return self._save(Lease(unit=unit, tenant=tenant, monthly_rent=monthly_rent, start_date=start_date,
                                end_date=end_date, status=status, **kwargs))

    def charge(self, lease, name, amount, category='utility', amount_type='fixed', is_active=True):
        if amount_type == 'variable':
            amounts = {'estimated_amount': amount}
        else:
            amounts = {'fixed_amount': amount}
        return self._save(LeaseCharge(lease=lease, category=category, name=name, amount_type=amount_type,
                                      is_active=is_active, **amounts))

    def payment(self, lease, period_start=date(2024, 1, 1), amount_due=150000, amount_paid=0,
                status=None, paid_at=None, period_end=None):
        if status is None:
            if amount_paid >= amount_due:
                status = 'paid'
            elif amount_paid:
                status = 'partial'
            else:
                status = 'upcoming'
        return self._save(RentPayment(lease=lease, period_start=period_start,
                                      period_end=period_end or period_start, due_date=period_start,
                                      amount_due=amount_due, amount_paid=amount_paid, status=status,
                                      paid_at=paid_at))

    def line_item(self, payment, category, name, amount_due, amount_paid=0):
        return self._save(PaymentLineItem(rent_payment=payment, category=category, name=name,
                                          amount_due=amount_due, amount_paid=amount_paid))

    def assignment(self, prop, manager, split_percentage, status='accepted'):
        return self._save(PropertyManagerAssignment(property=prop, manager=manager,
                                                    split_percentage=split_percentage, status=status))


@pytest.fixture
def build(db_session):
    return LedgerBuilder(db_session)


@pytest.fixture
def file_app(tmp_path):
    """
    App on a file-backed SQLite database with no outer transaction, so commits
    and rollbacks are real and a second Session on the engine acts as another
    worker.
    """
    class FileConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'ledger.db'}"

    app = create_app(config_class=FileConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def committed_build(file_app):
    return LedgerBuilder(db.session)
