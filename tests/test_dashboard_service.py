"""Tests for src.core.dashboard_service — the web layer's entry points."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.dashboard_service import DashboardService, NotAuthenticated
from src.core.profile_cache import ProfileCache
from src.data.models import SyncResult, UserProfile
from src.data.task_store import TaskQuery


@pytest.fixture
def scheduler():
    scheduler = MagicMock()
    scheduler.status.return_value = {"running": True, "totalRuns": 0}
    return scheduler


@pytest.fixture
def task_sync():
    sync = MagicMock()
    sync.refresh_user = AsyncMock(return_value=SyncResult(user_id="u1", success=True, task_count=3))
    return sync


@pytest.fixture
def token_provider():
    provider = MagicMock()
    provider.acquire_silent = AsyncMock(return_value="token-u1")
    return provider


@pytest.fixture
def source():
    source = MagicMock()
    source.get_other_user_profile = AsyncMock(
        return_value=UserProfile(id="user-2", display_name="Dana"),
    )
    return source


@pytest.fixture
def service(registry, task_store, task_sync, scheduler, token_provider, source, clock):
    return DashboardService(
        registry=registry,
        store=task_store,
        task_sync=task_sync,
        scheduler=scheduler,
        token_provider=token_provider,
        profile_cache=ProfileCache(source, ttl_seconds=3600, clock=clock),
        tenant_id="tenant-x",
    )


class TestSession:
    def test_login_registers_user(self, service, registry, make_account):
        user_id = service.login_completed(make_account("u1"))
        assert user_id == "u1"
        assert "u1" in registry

    def test_logout_unregisters_user(self, service, registry, make_account):
        service.login_completed(make_account("u1"))
        service.logout("u1")
        assert "u1" not in registry

    def test_logout_without_session_is_noop(self, service):
        service.logout(None)

    def test_heartbeat_touches_registry(self, service, registry, make_account, clock):
        service.login_completed(make_account("u1"))
        clock.advance(600)
        service.heartbeat("u1")
        assert registry.get("u1").last_activity_at == clock.now

    def test_heartbeat_requires_user(self, service):
        with pytest.raises(NotAuthenticated):
            service.heartbeat("")


class TestReads:
    @pytest.mark.asyncio
    async def test_list_tasks_filters_and_touches(
        self, service, registry, task_store, make_task, make_account, clock,
    ):
        service.login_completed(make_account("u1"))
        await task_store.put("u1", [
            make_task("a", percent_complete=100),
            make_task("b", percent_complete=0),
        ])
        clock.advance(60)

        tasks = await service.list_tasks("u1", TaskQuery(status="completed"))

        assert [t.id for t in tasks] == ["a"]
        assert registry.get("u1").last_activity_at == clock.now

    @pytest.mark.asyncio
    async def test_list_tasks_requires_user(self, service):
        with pytest.raises(NotAuthenticated):
            await service.list_tasks(None)

    @pytest.mark.asyncio
    async def test_stats_and_filter_options(self, service, task_store, make_task):
        await task_store.put("u1", [make_task("a", plan_id="p1", plan_title="One")])

        stats = await service.task_stats("u1")
        options = await service.filter_options("u1")

        assert stats["totalTasks"] == 1
        assert options["plans"] == [{"id": "p1", "title": "One"}]

    def test_task_link(self, service):
        assert service.task_link("abc") == "https://tasks.office.com/tenant-x/Home/Task/abc"


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_now_bypasses_scheduler(
        self, service, task_sync, scheduler, make_account,
    ):
        account = make_account("u1")
        result = await service.refresh_now("u1", account)

        assert result.success is True
        assert result.task_count == 3
        task_sync.refresh_user.assert_awaited_once_with("u1", account)
        scheduler.run_tick.assert_not_called()

    def test_trigger_refresh_all(self, service, scheduler, registry, make_account, clock):
        service.login_completed(make_account("u1"))
        clock.advance(30)
        scheduler.trigger_manual_run.return_value = SimpleNamespace(name="tick")

        task = service.trigger_refresh_all("u1")

        assert task.name == "tick"
        assert registry.get("u1").last_activity_at == clock.now

    def test_scheduler_status(self, service):
        assert service.scheduler_status() == {"running": True, "totalRuns": 0}


class TestUserDetails:
    @pytest.mark.asyncio
    async def test_profiles_are_cached(self, service, source, make_account):
        account = make_account("u1")
        first = await service.user_details(account, "user-2")
        second = await service.user_details(account, "user-2")

        assert first.display_name == "Dana"
        assert second is first
        source.get_other_user_profile.assert_awaited_once_with("token-u1", "user-2")

    @pytest.mark.asyncio
    async def test_cache_expires(self, service, source, make_account, clock):
        account = make_account("u1")
        await service.user_details(account, "user-2")
        clock.advance(3601)
        await service.user_details(account, "user-2")

        assert source.get_other_user_profile.await_count == 2

    @pytest.mark.asyncio
    async def test_expired_profiles_are_dropped(self, source, clock):
        cache = ProfileCache(source, ttl_seconds=3600, clock=clock)
        await cache.get_user_details("token", "user-2")
        await cache.get_user_details("token", "user-3")
        clock.advance(3601)

        await cache.get_user_details("token", "user-4")

        assert len(cache) == 1


def test_factory_wires_services(data_dir):
    from src.adapters.dashboard_factory import create_dashboard_service

    service = create_dashboard_service(data_dir=data_dir)

    assert service.scheduler.running is False
    assert service.scheduler_status()["activeUsers"] == 0
    assert service.task_link("t") == "https://tasks.office.com/tenant-for-tests/Home/Task/t"
