"""
Pytest Configuration and Fixtures

Shared fixtures: an in-memory directory seeded with the sample hierarchy,
the dry-run request store, a controllable clock and a wired engine.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from infoflow.config.settings import Settings
from infoflow.engine.engine import WorkflowEngine
from infoflow.repositories.dry_run import (
    DryRunRepository, InMemoryUserRepository, InMemoryNotificationRepository
)
from infoflow.repositories.seed import sample_principals
from infoflow.services.directory_service import DirectoryService
from infoflow.services.notification_service import NotificationService
from infoflow.services.request_service import RequestService


START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock that only moves when told to"""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(repository_backend="dry_run", min_timeline_days=3, deadline_buffer_days=3)


@pytest.fixture
def repo() -> DryRunRepository:
    return DryRunRepository()


@pytest.fixture
def users() -> InMemoryUserRepository:
    return InMemoryUserRepository(sample_principals())


@pytest.fixture
def outbox() -> InMemoryNotificationRepository:
    return InMemoryNotificationRepository()


@pytest.fixture
def directory(users) -> DirectoryService:
    return DirectoryService(users)


@pytest.fixture
def engine(repo, directory, outbox, settings, clock) -> WorkflowEngine:
    return WorkflowEngine(
        repo, directory, NotificationService(outbox), settings=settings, clock=clock
    )


@pytest.fixture
def service(repo, directory, engine, clock) -> RequestService:
    return RequestService(repo, directory, engine, clock=clock)


@pytest.fixture
def new_request(engine, clock) -> Callable[..., str]:
    """Factory creating a request as National Oversight; returns its id"""

    def create(**overrides) -> str:
        fields = {
            "actor_id": "no-1",
            "title": "Q2 Energy Data",
            "info_need": "Installed capacity per division",
            "timeline": clock() + timedelta(days=10),
            "states": ["X"],
        }
        fields.update(overrides)
        return engine.create_request(**fields).request_id

    return create


@pytest.fixture
def at_coordinator(engine, new_request) -> str:
    """Request forwarded down to the State Coordinator of X"""
    request_id = new_request()
    engine.approve(request_id, "exec-1")
    engine.approve(request_id, "sa-x")
    return request_id


@pytest.fixture
def at_divisions(engine, at_coordinator) -> str:
    """Request fanned out to divisions A and B of X"""
    engine.approve(at_coordinator, "sc-x")
    return at_coordinator


@pytest.fixture
def divisions_done(engine, at_divisions) -> str:
    """Both divisions answered and approved; request back with the State Coordinator"""
    request_id = at_divisions
    for division, data in (("A", {"mw": 10, "notes": "alpha"}), ("B", {"mw": 5, "notes": "beta"})):
        slug = division.lower()
        engine.approve(request_id, f"dh-{slug}", division=division)
        engine.submit_child_form(request_id, f"da-{slug}", division, "X", data)
        engine.approve(request_id, f"dh-{slug}", division=division)
    return request_id
