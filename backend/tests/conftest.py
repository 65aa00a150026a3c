"""
Pytest configuration and fixtures.

Every test gets a fresh in-memory SQLite database and a clock it can move.
"""

import logging
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from wanderlist.core.config import GamificationConfig
from wanderlist.db.base import Base
from wanderlist.db import models  # noqa: F401
from wanderlist.db.repositories import UserProgressRepository
from wanderlist.services.gamification import GamificationService


class FrozenClock:
    """Callable clock returning a fixed naive UTC time until advanced."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine():
    """In-memory database shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 3, 10, 12, 0, 0))


@pytest.fixture
def gamification_config():
    return GamificationConfig(
        points_per_level=1000,
        isolate_rule_failures=False,
        max_commit_retries=3,
        coupon_badges={},
    )


@pytest.fixture
def service(session_factory, gamification_config, clock):
    return GamificationService(
        session_factory=session_factory,
        config=gamification_config,
        clock=clock,
    )


@pytest.fixture
def admin(service):
    return service.admin


@pytest.fixture
def make_badge(admin):
    """Create a badge through the admin service."""
    def _make(**overrides):
        payload = {
            "name": "Explorer",
            "description": "Awarded for exploring",
            "type": "achievement",
        }
        payload.update(overrides)
        return admin.create_badge(payload)
    return _make


@pytest.fixture
def make_rule(admin):
    """Create a rule through the admin service. Defaults to a 100-point immediate rule."""
    def _make(**overrides):
        payload = {
            "name": "Add to bucket list",
            "description": "Points for adding a place",
            "type": "immediate",
            "triggerEvent": "bucket_list_add",
            "rewards": {"points": 100},
        }
        payload.update(overrides)
        return admin.create_rule(payload)
    return _make


@pytest.fixture
def history(session_factory):
    """Stored event history of a user, oldest first."""
    def _history(user_id):
        with session_factory() as session:
            progress = UserProgressRepository(session).get_for_user(user_id)
            if progress is None:
                return []
            return [
                {
                    "event_type": e.event_type,
                    "points": e.points,
                    "rule_id": e.rule_id,
                    "details": dict(e.details or {}),
                }
                for e in progress.events
            ]
    return _history


@pytest.fixture
def restore_root_logger():
    """Undo handlers and level installed by setup_logging."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
