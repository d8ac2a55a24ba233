"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides common fixtures like a temp data directory.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TENANT_ID", "tenant-for-tests")
os.environ.setdefault("CLIENT_ID", "client-id-for-tests")
os.environ.setdefault("CLIENT_SECRET", "client-secret-for-tests")
os.environ.setdefault("SESSION_SECRET", "session-secret-for-tests")
os.environ.setdefault("REDIRECT_URI", "http://localhost:8080/auth/callback")
os.environ.setdefault("MSAL_TOKEN_CACHE_PATH", "")
os.environ.setdefault("APP_ENV", "test")

import pytest


class FakeClock:
    """Manually advanced replacement for time.time()."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_task(
    task_id: str = "t1",
    title: str = "Task",
    percent_complete: int = 0,
    priority: int = 5,
    due: str | None = None,
    created: str = "2026-01-01T09:00:00+00:00",
    plan_id: str = "plan-1",
    plan_title: str = "Plan One",
    created_by: str = "me",
):
    from src.data.models import Task

    return Task(
        id=task_id,
        title=title,
        percent_complete=percent_complete,
        priority=priority,
        due_date_time=due,
        created_date_time=created,
        plan_id=plan_id,
        plan_title=plan_title,
        created_by=created_by,
    )


def _make_account(user_id: str = "u1"):
    from src.data.models import AccountIdentity

    return AccountIdentity(
        home_account_id=f"{user_id}.tenant-for-tests",
        local_account_id=user_id,
        username=f"{user_id}@example.com",
        name=user_id.upper(),
        realm="tenant-for-tests",
    )


@pytest.fixture
def make_task():
    """Factory for Task objects with sensible defaults."""
    return _make_task


@pytest.fixture
def make_account():
    """Factory for AccountIdentity objects keyed by user id."""
    return _make_account


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def data_dir(tmp_path):
    """Return a temporary directory for per-user task files."""
    return str(tmp_path / "data")


@pytest.fixture
def task_store(data_dir):
    """Return a TaskStore backed by a temp directory."""
    from src.data.task_store import TaskStore
    return TaskStore(data_dir=data_dir)


@pytest.fixture
def registry(clock):
    from src.core.registry import ActiveUserRegistry
    return ActiveUserRegistry(clock=clock)
