"""Short-lived cache of other users' Graph profiles.

Task assignments only carry user ids; the dashboard shows names, so each
assignee's profile is fetched once and reused for PROFILE_CACHE_TTL_SECONDS.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from src.data.models import UserProfile
    from src.ports.task_source_port import TaskSource

logger = logging.getLogger(__name__)


class ProfileCache:
    def __init__(
        self,
        task_source: TaskSource,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl_seconds is None:
            from src.config import settings
            ttl_seconds = settings.PROFILE_CACHE_TTL_SECONDS

        self._task_source = task_source
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[UserProfile, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _drop_expired(self, now: float) -> None:
        expired = [uid for uid, (_, fetched_at) in self._entries.items()
                   if now - fetched_at >= self._ttl]
        for uid in expired:
            del self._entries[uid]

    async def get_user_details(self, access_token: str, user_id: str) -> UserProfile:
        now = self._clock()
        cached = self._entries.get(user_id)
        if cached is not None and now - cached[1] < self._ttl:
            logger.debug("[CACHE HIT] Returning cached details for user: %s", user_id)
            return cached[0]

        logger.debug("[CACHE MISS/EXPIRED] Fetching fresh details for user: %s", user_id)
        self._drop_expired(now)
        profile = await self._task_source.get_other_user_profile(access_token, user_id)
        self._entries[user_id] = (profile, now)
        return profile
