"""
Tasks by Me — Local Task Store.

Write-through cache of each user's Planner tasks. The in-memory map is
authoritative for the running process; one JSON file per user lets the
cache survive restarts. A failed file write is logged and never reported
as a failed `put`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from src.data.models import Task, UserTaskSnapshot

logger = logging.getLogger(__name__)

STATUS_NOT_STARTED = "notStarted"
STATUS_IN_PROGRESS = "inProgress"
STATUS_COMPLETED = "completed"

_STATUS_LABELS = {
    STATUS_NOT_STARTED: "Not Started",
    STATUS_IN_PROGRESS: "In Progress",
    STATUS_COMPLETED: "Completed",
}

SORT_KEYS = ("title", "createdDateTime", "dueDateTime", "priority")


class PersistenceError(Exception):
    """Raised when a user's durable record cannot be written."""


@dataclass
class TaskQuery:
    """Filter + sort options for TaskStore.filtered_get()."""

    status: str | None = None
    plan_id: str | None = None
    search: str | None = None
    sort_by: str = "createdDateTime"
    sort_order: str = "desc"


def _check_user_id(user_id: str) -> None:
    """User ids become file names; anything that could leave data_dir is rejected."""
    if not user_id or any(ch in user_id for ch in ("/", "\\", "\x00")):
        raise ValueError(f"Invalid user id: {user_id!r}")


def task_status(task: Task) -> str:
    """Bucket a task by its percent complete."""
    if task.percent_complete <= 0:
        return STATUS_NOT_STARTED
    if task.percent_complete >= 100:
        return STATUS_COMPLETED
    return STATUS_IN_PROGRESS


def _parse_timestamp(value: str | None) -> float:
    """ISO-8601 → epoch seconds; missing or unparsable values sort as 0."""
    if not value:
        return 0.0
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


_SORT_KEY_FUNCS = {
    "title": lambda t: t.title.lower(),
    "createdDateTime": lambda t: _parse_timestamp(t.created_date_time),
    "priority": lambda t: t.priority,
}


def sort_tasks(tasks: list[Task], sort_by: str, sort_order: str = "asc") -> list[Task]:
    """Stable sort by one of SORT_KEYS.

    For dueDateTime, tasks without a due date always come last, whichever
    direction is requested.
    """
    if sort_by not in SORT_KEYS:
        raise ValueError(f"Unknown sort key: {sort_by!r}")
    descending = sort_order == "desc"

    if sort_by == "dueDateTime":
        dated = [t for t in tasks if t.due_date_time]
        undated = [t for t in tasks if not t.due_date_time]
        dated.sort(key=lambda t: _parse_timestamp(t.due_date_time), reverse=descending)
        return dated + undated

    return sorted(tasks, key=_SORT_KEY_FUNCS[sort_by], reverse=descending)


class TaskStore:
    """In-memory task cache, mirrored to one JSON file per user."""

    def __init__(self, data_dir: str | None = None) -> None:
        if data_dir is None:
            from src.config import settings
            data_dir = settings.DATA_DIR

        self._data_dir = Path(data_dir)
        self._snapshots: dict[str, UserTaskSnapshot] = {}

    def _user_file(self, user_id: str) -> Path:
        _check_user_id(user_id)
        return self._data_dir / f"user_{user_id}.json"

    # ------------------------------------------------------------------
    # Durable record
    # ------------------------------------------------------------------

    def _write_record(self, snapshot: UserTaskSnapshot) -> None:
        record = {
            "userId": snapshot.user_id,
            "tasks": [t.to_dict() for t in snapshot.tasks],
            "lastUpdate": snapshot.last_update,
            "savedAt": datetime.now(timezone.utc).isoformat(),
        }
        path = self._user_file(snapshot.user_id)
        try:
            payload = json.dumps(record, indent=2)
            self._data_dir.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".json.tmp")
            tmp_path.write_text(payload, encoding="utf-8")
            tmp_path.replace(path)
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Could not write {path}: {exc}") from exc

    def _read_record(self, user_id: str) -> UserTaskSnapshot | None:
        path = self._user_file(user_id)
        if not path.exists():
            return None
        try:
            record = json.loads(path.read_text(encoding="utf-8"))
            tasks = [Task.from_dict(t) for t in record.get("tasks") or []]
            return UserTaskSnapshot(
                user_id=user_id,
                tasks=tasks,
                last_update=int(record.get("lastUpdate") or 0),
            )
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Ignoring unreadable data file for user %s: %s", user_id, exc)
            return None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def put(self, user_id: str, tasks: list[Task]) -> bool:
        """Replace a user's snapshot, then persist it best-effort."""
        _check_user_id(user_id)
        snapshot = UserTaskSnapshot(
            user_id=user_id,
            tasks=list(tasks),
            last_update=int(time.time() * 1000),
        )
        self._snapshots[user_id] = snapshot

        try:
            await asyncio.to_thread(self._write_record, snapshot)
            logger.info("Data saved for user %s: %d tasks", user_id, len(snapshot.tasks))
        except PersistenceError as exc:
            logger.error("Error saving data for user %s: %s", user_id, exc)
        return True

    async def get(self, user_id: str) -> list[Task]:
        """Return the user's tasks, loading them from disk on first access."""
        _check_user_id(user_id)
        snapshot = self._snapshots.get(user_id)
        if snapshot is not None:
            return list(snapshot.tasks)

        loaded = await asyncio.to_thread(self._read_record, user_id)
        if loaded is None:
            logger.debug("No existing data file for user %s", user_id)
            return []

        # A put() may have landed while the file was being read.
        snapshot = self._snapshots.setdefault(user_id, loaded)
        return list(snapshot.tasks)

    def last_update(self, user_id: str) -> int:
        """Epoch milliseconds of the last stored snapshot, 0 if none."""
        snapshot = self._snapshots.get(user_id)
        return snapshot.last_update if snapshot else 0

    async def filtered_get(self, user_id: str, query: TaskQuery | None = None) -> list[Task]:
        query = query or TaskQuery()
        tasks = await self.get(user_id)

        if query.status:
            if query.status not in _STATUS_LABELS:
                raise ValueError(f"Unknown status filter: {query.status!r}")
            tasks = [t for t in tasks if task_status(t) == query.status]

        if query.plan_id:
            tasks = [t for t in tasks if t.plan_id == query.plan_id]

        if query.search:
            needle = query.search.lower()
            tasks = [t for t in tasks if needle in t.title.lower()]

        if query.sort_by:
            tasks = sort_tasks(tasks, query.sort_by, query.sort_order)
        return tasks

    async def stats(self, user_id: str) -> dict:
        tasks = await self.get(user_id)
        last_update = self.last_update(user_id)
        counts = {status: 0 for status in _STATUS_LABELS}
        for t in tasks:
            counts[task_status(t)] += 1

        return {
            "totalTasks": len(tasks),
            "notStarted": counts[STATUS_NOT_STARTED],
            "inProgress": counts[STATUS_IN_PROGRESS],
            "completed": counts[STATUS_COMPLETED],
            "lastUpdate": (
                datetime.fromtimestamp(last_update / 1000, tz=timezone.utc).isoformat()
                if last_update else None
            ),
            "plans": len({t.plan_title for t in tasks}),
        }

    async def filter_options(self, user_id: str) -> dict:
        """Distinct plans and per-status counts for the filter dropdowns."""
        tasks = await self.get(user_id)

        plans: dict[str, str] = {}
        for t in tasks:
            if t.plan_id and t.plan_id not in plans:
                plans[t.plan_id] = t.plan_title

        statuses = [
            {
                "value": status,
                "label": label,
                "count": sum(1 for t in tasks if task_status(t) == status),
            }
            for status, label in _STATUS_LABELS.items()
        ]
        return {
            "plans": [{"id": pid, "title": title} for pid, title in plans.items()],
            "statuses": statuses,
        }
