"""Tests for src.core.task_sync — the per-user refresh pipeline."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.task_sync import TaskSync
from src.ports.task_source_port import UpstreamError
from src.ports.token_port import TokenRefreshFailed


def _token_provider():
    provider = MagicMock()
    provider.acquire_silent = AsyncMock(side_effect=lambda account: f"token-{account.user_id}")
    return provider


class TestRefreshUser:
    @pytest.mark.asyncio
    async def test_success_stores_tasks(self, task_store, make_task, make_account):
        source = MagicMock()
        source.fetch_all_owned_tasks = AsyncMock(return_value=[make_task("a"), make_task("b")])
        sync = TaskSync(_token_provider(), source, task_store, timeout_seconds=5)

        result = await sync.refresh_user("u1", make_account("u1"))

        assert result.success is True
        assert result.task_count == 2
        source.fetch_all_owned_tasks.assert_awaited_once_with("token-u1")
        assert [t.id for t in await task_store.get("u1")] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_token_failure_skips_fetch(self, task_store, make_account):
        provider = MagicMock()
        provider.acquire_silent = AsyncMock(side_effect=TokenRefreshFailed("invalid_grant"))
        source = MagicMock()
        source.fetch_all_owned_tasks = AsyncMock()
        sync = TaskSync(provider, source, task_store, timeout_seconds=5)

        result = await sync.refresh_user("u1", make_account("u1"))

        assert result.success is False
        assert "invalid_grant" in result.error
        source.fetch_all_owned_tasks.assert_not_called()

    @pytest.mark.asyncio
    async def test_upstream_failure_leaves_previous_snapshot(
        self, task_store, make_task, make_account,
    ):
        await task_store.put("u1", [make_task("old")])
        source = MagicMock()
        source.fetch_all_owned_tasks = AsyncMock(side_effect=UpstreamError("503"))
        sync = TaskSync(_token_provider(), source, task_store, timeout_seconds=5)

        result = await sync.refresh_user("u1", make_account("u1"))

        assert result.success is False
        assert [t.id for t in await task_store.get("u1")] == ["old"]

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, task_store, make_account):
        source = MagicMock()
        source.fetch_all_owned_tasks = AsyncMock(side_effect=KeyError("value"))
        sync = TaskSync(_token_provider(), source, task_store, timeout_seconds=5)

        result = await sync.refresh_user("u1", make_account("u1"))

        assert result.success is False

    @pytest.mark.asyncio
    async def test_hung_fetch_times_out(self, task_store, make_account):
        async def hang(token):
            await asyncio.sleep(10)

        source = MagicMock()
        source.fetch_all_owned_tasks = AsyncMock(side_effect=hang)
        sync = TaskSync(_token_provider(), source, task_store, timeout_seconds=0.05)

        result = await sync.refresh_user("u1", make_account("u1"))

        assert result.success is False
        assert result.error == "timeout"

    @pytest.mark.asyncio
    async def test_refreshes_for_same_user_do_not_interleave(
        self, task_store, make_task, make_account,
    ):
        active = 0
        peak = 0

        async def fetch(token):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return [make_task()]

        source = MagicMock()
        source.fetch_all_owned_tasks = AsyncMock(side_effect=fetch)
        sync = TaskSync(_token_provider(), source, task_store, timeout_seconds=5)
        account = make_account("u1")

        results = await asyncio.gather(
            sync.refresh_user("u1", account),
            sync.refresh_user("u1", account),
        )

        assert all(r.success for r in results)
        assert peak == 1
        assert sync._locks == {}

    @pytest.mark.asyncio
    async def test_locks_released_after_failures(self, task_store, make_account):
        source = MagicMock()
        source.fetch_all_owned_tasks = AsyncMock(side_effect=UpstreamError("503"))
        sync = TaskSync(_token_provider(), source, task_store, timeout_seconds=5)

        for uid in ("u1", "u2", "u3"):
            await sync.refresh_user(uid, make_account(uid))

        assert sync._locks == {}
