"""
Tasks by Me — Data Models.

Tasks are pulled from Microsoft Planner and cached locally per user.
Everything here is a plain dataclass; serialization uses Graph's camelCase
keys so cached files look like the upstream payloads they came from.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class AccountIdentity:
    """A signed-in Microsoft account, reusable for silent token renewal.

    Mirrors the account dict MSAL keeps in its token cache, so it can be
    handed back to `acquire_token_silent` later.
    """

    home_account_id: str
    local_account_id: str
    username: str
    name: str = ""
    environment: str = "login.microsoftonline.com"
    realm: str = ""

    @property
    def user_id(self) -> str:
        return self.local_account_id

    def to_msal_account(self) -> dict:
        return {
            "home_account_id": self.home_account_id,
            "local_account_id": self.local_account_id,
            "username": self.username,
            "environment": self.environment,
            "realm": self.realm,
        }

    @classmethod
    def from_msal_account(cls, account: dict, name: str = "") -> AccountIdentity:
        return cls(
            home_account_id=account["home_account_id"],
            local_account_id=account.get("local_account_id") or "",
            username=account.get("username") or "",
            name=name or account.get("name") or "",
            environment=account.get("environment") or "login.microsoftonline.com",
            realm=account.get("realm") or "",
        )


@dataclass
class ActiveUserEntry:
    """A user with a live browser session, eligible for background refresh."""

    user_id: str
    account: AccountIdentity
    last_activity_at: float  # epoch seconds


@dataclass(frozen=True)
class Task:
    """A Planner task created by the signed-in user.

    Upstream fields plus `plan_id` / `plan_title`, which the fetcher merges
    in from the plan the task was found in.
    """

    id: str
    title: str
    percent_complete: int
    priority: int
    created_date_time: str                    # ISO-8601
    plan_id: str
    plan_title: str
    due_date_time: str | None = None          # ISO-8601, None if no due date
    assignments: dict[str, dict] = field(default_factory=dict)
    created_by: str | None = None             # Graph user id of the creator
    bucket_id: str | None = None
    completed_date_time: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "percentComplete": self.percent_complete,
            "priority": self.priority,
            "dueDateTime": self.due_date_time,
            "createdDateTime": self.created_date_time,
            "completedDateTime": self.completed_date_time,
            "assignments": self.assignments,
            "createdBy": self.created_by,
            "bucketId": self.bucket_id,
            "planId": self.plan_id,
            "planTitle": self.plan_title,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        return cls(
            id=data["id"],
            title=data.get("title") or "",
            percent_complete=int(data.get("percentComplete") or 0),
            priority=int(data.get("priority") or 0),
            due_date_time=data.get("dueDateTime"),
            created_date_time=data.get("createdDateTime") or "",
            completed_date_time=data.get("completedDateTime"),
            assignments=dict(data.get("assignments") or {}),
            created_by=data.get("createdBy"),
            bucket_id=data.get("bucketId"),
            plan_id=data.get("planId") or "",
            plan_title=data.get("planTitle") or "",
        )


@dataclass
class UserTaskSnapshot:
    """The complete set of a user's tasks as of the last successful fetch."""

    user_id: str
    tasks: list[Task]
    last_update: int  # epoch milliseconds


@dataclass
class UserProfile:
    """Subset of a Graph user record."""

    id: str
    display_name: str = ""
    mail: str | None = None
    user_principal_name: str | None = None


@dataclass
class SyncResult:
    """Outcome of refreshing one user's tasks."""

    user_id: str
    success: bool
    task_count: int = 0
    error: str | None = None


@dataclass
class RunResult:
    """Counters for one scheduler tick."""

    success_count: int = 0
    failure_count: int = 0
    evicted_count: int = 0
    duration_ms: int = 0


@dataclass
class SchedulerRunStats:
    """Process-wide scheduler state, reported by the status endpoint."""

    running: bool = False
    last_run_time: str | None = None  # ISO-8601
    total_runs: int = 0
    active_user_count: int = 0
    users: list[str] = field(default_factory=list)
