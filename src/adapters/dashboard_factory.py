"""Dashboard factory — wires the concrete adapters into a DashboardService."""

from __future__ import annotations

from src.adapters.msal_token_provider import MsalTokenProvider
from src.adapters.planner_fetcher import PlannerTaskFetcher
from src.core.dashboard_service import DashboardService
from src.core.profile_cache import ProfileCache
from src.core.registry import ActiveUserRegistry
from src.core.scheduler import BackgroundScheduler
from src.core.task_sync import TaskSync
from src.data.task_store import TaskStore


def create_dashboard_service(data_dir: str | None = None) -> DashboardService:
    """Return a DashboardService backed by MSAL, Microsoft Graph and JSON files.

    Args:
        data_dir: Where per-user task files live. Defaults to DATA_DIR.
    """
    registry = ActiveUserRegistry()
    store = TaskStore(data_dir=data_dir)
    token_provider = MsalTokenProvider()
    fetcher = PlannerTaskFetcher()
    task_sync = TaskSync(token_provider, fetcher, store)

    return DashboardService(
        registry=registry,
        store=store,
        task_sync=task_sync,
        scheduler=BackgroundScheduler(registry, task_sync),
        token_provider=token_provider,
        profile_cache=ProfileCache(fetcher),
    )
