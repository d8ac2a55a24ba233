"""Task source port — abstract interface for pulling a user's tasks upstream.

Core modules depend on this protocol, never on a specific Graph client.
"""

from __future__ import annotations

from typing import Protocol

from src.data.models import Task, UserProfile


class UpstreamError(Exception):
    """Raised when the profile lookup or plan enumeration fails."""


class PartialUpstreamError(UpstreamError):
    """Raised when a single plan's tasks cannot be fetched.

    The fetcher logs and skips the plan; it never aborts the whole fetch.
    """

    def __init__(self, plan_id: str, message: str) -> None:
        super().__init__(message)
        self.plan_id = plan_id


class TaskSource(Protocol):
    """Abstract task source used by core modules."""

    async def fetch_all_owned_tasks(self, access_token: str) -> list[Task]: ...

    async def get_other_user_profile(
        self, access_token: str, user_id: str
    ) -> UserProfile: ...
