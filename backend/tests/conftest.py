"""
Pytest fixtures for Doorstep backend tests.

Provides an in-memory database app, per-test table wipe, a recording
notification sink, factories for areas/agents/subscriptions, and a test
client with agent/admin header helpers.
"""

from datetime import date

import pytest
from doorstep import create_app
from doorstep.extensions import db
from doorstep.models import Delivery
from doorstep.services import coverage_service, subscription_service
from doorstep.services.generation_service import generate_for_date
from doorstep.services.notification_service import EXTENSION_KEY, NotificationSink


ADMIN_TOKEN = "test-admin-token"


class RecordingSink(NotificationSink):
    """Collects notifications instead of sending them."""

    def __init__(self):
        self.completed = []
        self.failed = []
        self.raise_on_send = False

    def reset(self):
        self.completed.clear()
        self.failed.clear()
        self.raise_on_send = False

    def notify_delivery_completed(self, customer_id, delivery_id, products):
        if self.raise_on_send:
            raise RuntimeError("sink unavailable")
        self.completed.append((customer_id, delivery_id, products))

    def notify_delivery_failed(self, customer_id, delivery_id, reason_text):
        if self.raise_on_send:
            raise RuntimeError("sink unavailable")
        self.failed.append((customer_id, delivery_id, reason_text))


_SINK = RecordingSink()


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SQLALCHEMY_TRACK_MODIFICATIONS': False,
            'ADMIN_API_TOKEN': ADMIN_TOKEN,
            'NOTIFICATIONS_ASYNC': False,
            'MAX_BACKFILL_DAYS': 31,
        },
        notification_sink=_SINK,
    )

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
def sink(db_session):
    """Recording notification sink, emptied for each test."""
    _SINK.reset()
    yield _SINK
    _SINK.reset()


@pytest.fixture(scope='function')
def make_area(db_session):
    """Factory: make_area("North", ["110001"])."""
    def _make(name, postal_codes):
        return coverage_service.create_area(name, postal_codes)
    return _make


@pytest.fixture(scope='function')
def make_agent(db_session):
    """Factory: make_agent(area, name="A"); phones are unique per call."""
    counter = {"n": 0}

    def _make(area, name=None):
        counter["n"] += 1
        n = counter["n"]
        return coverage_service.create_agent(name or f"Agent {n}", f"+9100000{n:05d}", area.id)
    return _make


@pytest.fixture(scope='function')
def make_subscription(db_session):
    """
    Factory: make_subscription(postal_code, recurrence="DAILY", start=date(2024, 1, 1)).

    Each call creates a fresh customer and address.
    """
    counter = {"n": 0}

    def _make(postal_code, recurrence="DAILY", start=date(2024, 1, 1), latitude=None, longitude=None):
        counter["n"] += 1
        customer_id = 1000 + counter["n"]
        address = subscription_service.create_address(
            customer_id,
            line1=f"{counter['n']} Test Road",
            city="Testville",
            postal_code=postal_code,
            latitude=latitude,
            longitude=longitude,
        )
        return subscription_service.create_subscription(
            customer_id,
            address.id,
            recurrence,
            start,
            [{"product_id": 1, "product_name": "Milk 1L", "unit": "L", "quantity": 2, "unit_price_cents": 6400}],
        )
    return _make


def agent_headers(agent) -> dict:
    """Helper to create agent identity headers."""
    return {'X-Agent-Id': str(agent.id)}


def admin_headers() -> dict:
    """Helper to create admin token headers."""
    return {'X-Admin-Token': ADMIN_TOKEN}


@pytest.fixture(scope='function')
def make_file_app(tmp_path):
    """
    Factory for a separate app on a file-backed SQLite database.

    Unlike the shared in-memory app, every pooled connection here is its own
    SQLite connection, so a write committed on one is seen as a concurrent
    writer by the others. make_file_app(sink, NOTIFICATIONS_ASYNC=True, ...)
    """
    apps = []

    def _make(sink, **overrides):
        config = {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / f'doorstep_{len(apps)}.db'}",
            'SQLALCHEMY_TRACK_MODIFICATIONS': False,
            'ADMIN_API_TOKEN': ADMIN_TOKEN,
            'NOTIFICATIONS_ASYNC': False,
            'MAX_BACKFILL_DAYS': 31,
        }
        config.update(overrides)
        file_app = create_app(config, notification_sink=sink)
        with file_app.app_context():
            db.create_all()
        apps.append(file_app)
        return file_app

    yield _make

    for file_app in apps:
        state = file_app.extensions.get(EXTENSION_KEY)
        if state is not None and state.executor is not None:
            state.executor.shutdown(wait=True)
        with file_app.app_context():
            db.session.remove()
            db.engine.dispose()


def seed_assigned_delivery():
    """
    One DAILY subscription in a covered area, generated for 2024-01-01.

    Runs against whatever app context is active. Returns (delivery_id, agent_id).
    """
    area = coverage_service.create_area("North", ["110001"])
    agent = coverage_service.create_agent("Agent 1", "+910000000001", area.id)
    address = subscription_service.create_address(
        1001, line1="1 Test Road", city="Testville", postal_code="110001"
    )
    subscription_service.create_subscription(
        1001,
        address.id,
        "DAILY",
        date(2024, 1, 1),
        [{"product_id": 1, "product_name": "Milk 1L", "quantity": 2, "unit_price_cents": 6400}],
    )
    generate_for_date(date(2024, 1, 1))
    delivery_id = db.session.query(Delivery.id).scalar()
    return delivery_id, agent.id
