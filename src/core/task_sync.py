"""
Tasks by Me — Per-user Task Sync.

The token → fetch → store pipeline for a single user. Shared by the
background scheduler and the manual "refresh" action so both follow the
same failure rules: every per-user failure becomes an unsuccessful
SyncResult, never an exception.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from src.data.models import SyncResult
from src.ports.task_source_port import UpstreamError
from src.ports.token_port import TokenRefreshFailed

if TYPE_CHECKING:
    from src.data.models import AccountIdentity
    from src.data.task_store import TaskStore
    from src.ports.task_source_port import TaskSource
    from src.ports.token_port import TokenProvider

logger = logging.getLogger(__name__)


class TaskSync:
    """Refreshes one user's cached tasks from upstream."""

    def __init__(
        self,
        token_provider: TokenProvider,
        task_source: TaskSource,
        store: TaskStore,
        timeout_seconds: float | None = None,
    ) -> None:
        if timeout_seconds is None:
            from src.config import settings
            timeout_seconds = settings.UPSTREAM_TIMEOUT_SECONDS

        self._token_provider = token_provider
        self._task_source = task_source
        self._store = store
        self._timeout = timeout_seconds
        # user_id -> (lock, number of refreshes holding or waiting on it)
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    def _claim_lock(self, user_id: str) -> asyncio.Lock:
        lock, users = self._locks.get(user_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[user_id] = (lock, users + 1)
        return lock

    def _release_claim(self, user_id: str) -> None:
        lock, users = self._locks[user_id]
        if users <= 1:
            del self._locks[user_id]
        else:
            self._locks[user_id] = (lock, users - 1)

    async def _pull(self, user_id: str, account: AccountIdentity) -> int:
        access_token = await self._token_provider.acquire_silent(account)
        tasks = await self._task_source.fetch_all_owned_tasks(access_token)
        await self._store.put(user_id, tasks)
        return len(tasks)

    async def refresh_user(self, user_id: str, account: AccountIdentity) -> SyncResult:
        """Pull and store a user's tasks; one refresh per user at a time."""
        lock = self._claim_lock(user_id)
        try:
            async with lock:
                return await self._refresh_locked(user_id, account)
        finally:
            self._release_claim(user_id)

    async def _refresh_locked(self, user_id: str, account: AccountIdentity) -> SyncResult:
        logger.info("Updating tasks for user %s", user_id)
        try:
            count = await asyncio.wait_for(self._pull(user_id, account), self._timeout)
        except TokenRefreshFailed as exc:
            logger.warning(
                "Skipping user %s - could not refresh access token: %s", user_id, exc,
            )
            return SyncResult(user_id=user_id, success=False, error=str(exc))
        except UpstreamError as exc:
            logger.error("Error updating tasks for user %s: %s", user_id, exc)
            return SyncResult(user_id=user_id, success=False, error=str(exc))
        except asyncio.TimeoutError:
            logger.error(
                "Timed out updating tasks for user %s after %.0fs", user_id, self._timeout,
            )
            return SyncResult(user_id=user_id, success=False, error="timeout")
        except Exception as exc:
            logger.exception("Unexpected error updating tasks for user %s", user_id)
            return SyncResult(user_id=user_id, success=False, error=str(exc))

        logger.info("Successfully updated %d tasks for user %s", count, user_id)
        return SyncResult(user_id=user_id, success=True, task_count=count)
