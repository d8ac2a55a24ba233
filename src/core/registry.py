"""
Tasks by Me — Active User Registry.

Tracks which users currently have a live browser session and the account
needed to mint tokens for them in the background. Pure bookkeeping: it
never touches stored tasks.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from src.data.models import AccountIdentity, ActiveUserEntry

logger = logging.getLogger(__name__)


class ActiveUserRegistry:
    """Users eligible for background refresh, keyed by user id."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, ActiveUserEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._entries

    def register(self, user_id: str, account: AccountIdentity) -> None:
        """Add or refresh a user after a successful sign-in."""
        self._entries[user_id] = ActiveUserEntry(
            user_id=user_id,
            account=account,
            last_activity_at=self._clock(),
        )
        logger.info("User %s registered for background updates", user_id)

    def unregister(self, user_id: str) -> None:
        if self._entries.pop(user_id, None) is not None:
            logger.info("User %s unregistered from background updates", user_id)

    def touch(self, user_id: str) -> None:
        """Record activity; users already evicted are ignored."""
        entry = self._entries.get(user_id)
        if entry is not None:
            entry.last_activity_at = self._clock()

    def get(self, user_id: str) -> ActiveUserEntry | None:
        return self._entries.get(user_id)

    def entries(self) -> list[ActiveUserEntry]:
        """Copy of all entries in registration order."""
        return list(self._entries.values())

    def evict_inactive(self, threshold_seconds: float) -> int:
        """Drop every user idle for longer than threshold_seconds."""
        cutoff = self._clock() - threshold_seconds
        stale = [
            user_id for user_id, entry in self._entries.items()
            if entry.last_activity_at < cutoff
        ]
        for user_id in stale:
            del self._entries[user_id]
            logger.info("Removed inactive user %s from background updates", user_id)
        return len(stale)

    def snapshot(self) -> dict:
        return {"count": len(self._entries), "user_ids": list(self._entries)}
