"""Planner task adapter — implements TaskSource via Microsoft Graph.

All Graph-specific logic lives here. Core modules never import this
directly; they depend on the TaskSource protocol.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from datetime import time as dt_time
from typing import Any, Callable

from kiota_abstractions.base_request_configuration import RequestConfiguration
from msgraph import GraphServiceClient
from msgraph.generated.users.item.user_item_request_builder import UserItemRequestBuilder

from src.data.models import Task, UserProfile
from src.integrations.ms_auth import get_graph_client
from src.ports.task_source_port import PartialUpstreamError, UpstreamError

logger = logging.getLogger(__name__)

_PROFILE_FIELDS = ["id", "displayName", "userPrincipalName", "mail"]


def planner_task_url(tenant_id: str, task_id: str) -> str:
    """Deep link that opens a task in the Planner web app."""
    return f"https://tasks.office.com/{tenant_id}/Home/Task/{task_id}"


def _iso(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (datetime, date, dt_time)):
        return value.isoformat()
    return str(value)


def _json_safe(value: Any) -> Any:
    """Recursively turn kiota's parsed untyped values into JSON types.

    Nested strings in additional_data come back as UUID / datetime objects.
    """
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, (datetime, date, dt_time)):
        return value.isoformat()
    return str(value)


def _normalize_assignment(value: Any) -> dict:
    """Convert one PlannerAssignment (typed or untyped) to a JSON-safe dict."""
    if isinstance(value, dict):
        return _json_safe(value)

    info: dict = {}
    assigned_at = getattr(value, "assigned_date_time", None)
    if assigned_at is not None:
        info["assignedDateTime"] = _iso(assigned_at)
    order_hint = getattr(value, "order_hint", None)
    if order_hint is not None:
        info["orderHint"] = str(order_hint)
    assigned_by = getattr(getattr(value, "assigned_by", None), "user", None)
    if assigned_by is not None and getattr(assigned_by, "id", None):
        info["assignedBy"] = str(assigned_by.id)
    return info


def _normalize_assignments(assignments: Any) -> dict[str, dict]:
    if not assignments:
        return {}
    data = getattr(assignments, "additional_data", None)
    if data is None and isinstance(assignments, dict):
        data = assignments
    return {
        assignee_id: _normalize_assignment(info)
        for assignee_id, info in (data or {}).items()
        if not assignee_id.startswith("@odata")
    }


def _creator_id(task: Any) -> str | None:
    created_by = getattr(task, "created_by", None)
    user = getattr(created_by, "user", None) if created_by else None
    return getattr(user, "id", None) if user else None


def _normalize_task(task: Any, plan_id: str, plan_title: str) -> Task:
    """Convert a Graph PlannerTask to a Task decorated with its plan."""
    return Task(
        id=task.id or "",
        title=task.title or "",
        percent_complete=task.percent_complete or 0,
        priority=task.priority if task.priority is not None else 5,
        due_date_time=_iso(task.due_date_time),
        created_date_time=_iso(task.created_date_time) or "",
        completed_date_time=_iso(task.completed_date_time),
        assignments=_normalize_assignments(task.assignments),
        created_by=_creator_id(task),
        bucket_id=task.bucket_id,
        plan_id=plan_id,
        plan_title=plan_title,
    )


def _normalize_profile(user: Any) -> UserProfile:
    return UserProfile(
        id=user.id or "",
        display_name=user.display_name or "",
        mail=user.mail,
        user_principal_name=user.user_principal_name,
    )


class PlannerTaskFetcher:
    """Microsoft Planner implementation of TaskSource."""

    def __init__(
        self,
        client_factory: Callable[[str], GraphServiceClient] = get_graph_client,
    ) -> None:
        self._client_factory = client_factory

    async def get_user_profile(self, access_token: str) -> UserProfile:
        try:
            client = self._client_factory(access_token)
            config = RequestConfiguration(
                query_parameters=UserItemRequestBuilder.UserItemRequestBuilderGetQueryParameters(
                    select=_PROFILE_FIELDS,
                ),
            )
            user = await client.me.get(request_configuration=config)
            return _normalize_profile(user)
        except Exception as exc:
            logger.error("Graph API error (get_user_profile): %s", exc)
            raise UpstreamError(f"Failed to fetch user profile: {exc}") from exc

    async def get_other_user_profile(self, access_token: str, user_id: str) -> UserProfile:
        try:
            client = self._client_factory(access_token)
            config = RequestConfiguration(
                query_parameters=UserItemRequestBuilder.UserItemRequestBuilderGetQueryParameters(
                    select=["id", "displayName", "mail"],
                ),
            )
            user = await client.users.by_user_id(user_id).get(request_configuration=config)
            return _normalize_profile(user)
        except Exception as exc:
            logger.error("Graph API error (get_other_user_profile %s): %s", user_id, exc)
            raise UpstreamError(f"Failed to fetch profile for {user_id}: {exc}") from exc

    async def list_plans(self, access_token: str) -> list[tuple[str, str]]:
        """Return (plan_id, title) for every plan shared with the caller."""
        try:
            client = self._client_factory(access_token)
            result = await client.me.planner.plans.get()
            plans = [(p.id, p.title or "") for p in (result.value or []) if p.id]
            logger.info("Found %d plan(s)", len(plans))
            return plans
        except Exception as exc:
            logger.error("Graph API error (list_plans): %s", exc)
            raise UpstreamError(f"Failed to list plans: {exc}") from exc

    async def list_plan_tasks(self, access_token: str, plan_id: str) -> list:
        """Return the raw Graph PlannerTask objects for one plan."""
        try:
            client = self._client_factory(access_token)
            result = await client.planner.plans.by_planner_plan_id(plan_id).tasks.get()
            return list(result.value or [])
        except Exception as exc:
            raise PartialUpstreamError(
                plan_id, f"Failed to fetch tasks for plan {plan_id}: {exc}",
            ) from exc

    async def fetch_all_owned_tasks(self, access_token: str) -> list[Task]:
        """Collect every task the caller created, across all visible plans.

        A plan whose tasks cannot be loaded is logged and skipped; a failing
        profile lookup or plan enumeration raises UpstreamError.
        """
        profile = await self.get_user_profile(access_token)
        plans = await self.list_plans(access_token)

        owned: list[Task] = []
        for plan_id, plan_title in plans:
            try:
                plan_tasks = await self.list_plan_tasks(access_token, plan_id)
            except PartialUpstreamError as exc:
                logger.error("Error processing plan %s: %s", exc.plan_id, exc)
                continue

            owned.extend(
                _normalize_task(t, plan_id, plan_title)
                for t in plan_tasks
                if _creator_id(t) == profile.id
            )

        logger.info(
            "Fetched %d owned task(s) across %d plan(s) for %s",
            len(owned), len(plans), profile.user_principal_name or profile.id,
        )
        return owned
