"""
Tasks by Me — Dashboard Service.

The narrow API the web layer calls. Route handlers resolve the session's
user id and account, then call one method here; they never reach into the
registry, store or scheduler directly.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from src.adapters.planner_fetcher import planner_task_url

if TYPE_CHECKING:
    from src.core.profile_cache import ProfileCache
    from src.core.registry import ActiveUserRegistry
    from src.core.scheduler import BackgroundScheduler
    from src.core.task_sync import TaskSync
    from src.data.models import AccountIdentity, SyncResult, Task, UserProfile
    from src.data.task_store import TaskQuery, TaskStore
    from src.ports.token_port import TokenProvider

logger = logging.getLogger(__name__)


class NotAuthenticated(Exception):
    """Raised when a call arrives without a resolved session user."""


def _require_user(user_id: str | None) -> str:
    if not user_id:
        raise NotAuthenticated("Authentication required")
    return user_id


class DashboardService:
    def __init__(
        self,
        registry: ActiveUserRegistry,
        store: TaskStore,
        task_sync: TaskSync,
        scheduler: BackgroundScheduler,
        token_provider: TokenProvider,
        profile_cache: ProfileCache,
        tenant_id: str | None = None,
    ) -> None:
        if tenant_id is None:
            from src.config import settings
            tenant_id = settings.TENANT_ID

        self.registry = registry
        self.store = store
        self.task_sync = task_sync
        self.scheduler = scheduler
        self.token_provider = token_provider
        self.profile_cache = profile_cache
        self._tenant_id = tenant_id

    # Session lifecycle

    def login_completed(self, account: AccountIdentity) -> str:
        """Register a freshly signed-in user; returns their user id."""
        user_id = _require_user(account.user_id)
        self.registry.register(user_id, account)
        return user_id

    def logout(self, user_id: str | None) -> None:
        if user_id:
            self.registry.unregister(user_id)

    def heartbeat(self, user_id: str | None) -> None:
        self.registry.touch(_require_user(user_id))

    # Reads

    async def list_tasks(self, user_id: str | None, query: TaskQuery | None = None) -> list[Task]:
        user_id = _require_user(user_id)
        self.registry.touch(user_id)
        return await self.store.filtered_get(user_id, query)

    async def task_stats(self, user_id: str | None) -> dict:
        return await self.store.stats(_require_user(user_id))

    async def filter_options(self, user_id: str | None) -> dict:
        return await self.store.filter_options(_require_user(user_id))

    def task_link(self, task_id: str) -> str:
        return planner_task_url(self._tenant_id, task_id)

    async def user_details(self, account: AccountIdentity, other_user_id: str) -> UserProfile:
        """Profile of an assignee, looked up with the caller's token.

        Raises TokenRefreshFailed or UpstreamError on failure.
        """
        _require_user(account.user_id)
        access_token = await self.token_provider.acquire_silent(account)
        return await self.profile_cache.get_user_details(access_token, other_user_id)

    # Refresh

    async def refresh_now(self, user_id: str | None, account: AccountIdentity) -> SyncResult:
        """Synchronously refresh one user, bypassing the scheduler."""
        user_id = _require_user(user_id)
        logger.info("Manual refresh triggered for user %s", user_id)
        return await self.task_sync.refresh_user(user_id, account)

    def scheduler_status(self) -> dict:
        return self.scheduler.status()

    def trigger_refresh_all(self, user_id: str | None):
        """Start a background tick for everyone; returns the asyncio.Task."""
        user_id = _require_user(user_id)
        logger.info("Manual scheduler trigger by user %s", user_id)
        self.registry.touch(user_id)
        return self.scheduler.trigger_manual_run()
