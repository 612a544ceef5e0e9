"""Shared test fixtures."""
from datetime import datetime

import pytest
from unittest.mock import patch
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bridgeit.database import Base

# Fixed reference clock for every sprint scenario
T0 = datetime(2026, 3, 2, 9, 0, 0)


class FakeRedis:
    """In-memory stand-in for the hash commands the breakers use."""

    def __init__(self):
        self.hash_store = {}

    def hset(self, key, field, value):
        self.hash_store.setdefault(key, {})[field] = str(value)

    def hincrby(self, key, field, amount):
        h = self.hash_store.setdefault(key, {})
        h[field] = str(int(h.get(field, 0)) + amount)
        return int(h[field])

    def hgetall(self, key):
        return dict(self.hash_store.get(key, {}))

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    """Fake Redis pipeline that queues ops and applies them on execute()."""

    def __init__(self, redis):
        self._redis = redis
        self._ops = []

    def __getattr__(self, name):
        def queue(*args):
            self._ops.append((name, args))
            return self
        return queue

    def execute(self):
        for name, args in self._ops:
            getattr(self._redis, name)(*args)
        self._ops = []


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created (one shared connection)."""
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    import bridgeit.models.lead
    import bridgeit.models.active_builder
    import bridgeit.models.audit_entry
    import bridgeit.models.builder_assignment
    import bridgeit.models.alumni
    import bridgeit.models.build
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine)


@pytest.fixture(autouse=True)
def patch_get_session(session_factory):
    """Route every get_session() call to a fresh session on the test database.

    A fresh session per call mirrors production, where each request opens its
    own session and sees only committed state.
    """
    with patch('bridgeit.database.get_session', side_effect=lambda: session_factory()):
        yield session_factory


@pytest.fixture
def fetch(session_factory):
    """Read rows in a throwaway session; attributes stay loaded after close."""
    def _fetch(model, **filters):
        session = session_factory()
        try:
            return session.query(model).filter_by(**filters).all()
        finally:
            session.close()
    return _fetch


@pytest.fixture
def fake_redis():
    """Register the notification breakers against an in-memory Redis."""
    from bridgeit.services.circuit_breaker import init_breakers, _registry
    saved = dict(_registry)
    fake = FakeRedis()
    init_breakers(fake)
    yield fake
    _registry.clear()
    _registry.update(saved)


@pytest.fixture
def app(fake_redis):
    """Flask test app."""
    from bridgeit import create_app
    with patch('bridgeit.extensions.redis_client', fake_redis):
        app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


@pytest.fixture
def make_lead(session_factory):
    """Factory fixture — inserts a sourced lead and returns its id."""
    from bridgeit.models.lead import Lead

    def _make(lead_id='lead-joes-pizza', **overrides):
        defaults = dict(
            business_name="Joe's Pizza",
            category='Restaurant',
            location={'neighborhood': 'Astoria', 'borough': 'Queens', 'zip': '11103'},
            hfi_score=82.0,
            friction_type='Order Intake',
            friction_clusters=[
                {
                    'category': 'intake',
                    'count': 18,
                    'recent_count': 12,
                    'sample_quotes': ['Phone rang for ten minutes', 'They lost my order twice'],
                },
                {
                    'category': 'logistics',
                    'count': 5,
                    'recent_count': 2,
                    'sample_quotes': ['Delivery showed up cold'],
                },
            ],
            recency_data={'0_30_days': 12, '31_90_days': 6, '90_plus_days': 4},
            time_on_task_estimate='6 hours/week lost to phone orders',
            review_count=240,
            rating=4.1,
            status='qualified',
            is_priority=False,
            sprint_active=False,
            is_paused=False,
            voting_open=False,
            discovered_at=T0,
        )
        defaults.update(overrides)
        session = session_factory()
        try:
            session.add(Lead(id=lead_id, **defaults))
            session.commit()
        finally:
            session.close()
        return lead_id
    return _make


@pytest.fixture
def make_alumni(session_factory):
    """Factory fixture — inserts an alumni profile and returns its id."""
    from bridgeit.models.alumni import AlumniProfile

    def _make(user_id, **overrides):
        defaults = dict(
            name=user_id.replace('-', ' ').title(),
            email=f'{user_id}@alumni.bridge.it',
            specialty='Full Stack',
            quality_rating=4.5,
            current_build_count=0,
            completed_builds=[],
        )
        defaults.update(overrides)
        session = session_factory()
        try:
            session.add(AlumniProfile(id=user_id, **defaults))
            session.commit()
        finally:
            session.close()
        return user_id
    return _make
