"""Background fetch tasks: progress tracking and polling results."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

FETCH_TASK_POLL_INTERVAL = 0.1
FETCH_DEFAULT_SPEED_BPS = 512.0 * 1024.0


class TaskStatus(Enum):
    """Lifecycle state of a fetch task."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class CompletedFetchResult:
    """Where and how a fetched file was saved."""

    workspace_path: str
    file_name: str
    mime_type: str
    size_bytes: int
    source: str
    mode: str
    resolved_url: str | None = None


@dataclass
class FetchTaskState:
    """Progress and outcome of one fetch task."""

    source_label: str
    total_bytes: int | None = None
    downloaded_bytes: int = 0
    speed_bps_hint: float = FETCH_DEFAULT_SPEED_BPS
    status: TaskStatus = TaskStatus.RUNNING
    result: CompletedFetchResult | None = None
    error: str | None = None
    started_at: float = field(default_factory=time.monotonic)


def _elapsed(task: FetchTaskState) -> float:
    return max(time.monotonic() - task.started_at, 0.0)


class FetchTaskRegistry:
    """In-memory table of fetch tasks plus a running average download speed."""

    def __init__(self) -> None:
        self._tasks: dict[str, FetchTaskState] = {}
        self._average_speed_bps = FETCH_DEFAULT_SPEED_BPS

    async def create_task(self, source_label: str, total_bytes: int | None) -> str:
        """Register a running task and return its id."""
        task_id = str(uuid.uuid4())
        self._tasks[task_id] = FetchTaskState(
            source_label=source_label,
            total_bytes=total_bytes,
            speed_bps_hint=self._average_speed_bps,
        )
        return task_id

    async def average_speed_bps(self) -> float:
        """Exponentially smoothed download speed of past fetches."""
        return self._average_speed_bps

    async def set_total_bytes(self, task_id: str, total_bytes: int | None) -> None:
        """Record the expected size; None leaves the current value."""
        task = self._tasks.get(task_id)
        if task is not None and total_bytes is not None:
            task.total_bytes = total_bytes

    async def add_downloaded_bytes(self, task_id: str, delta: int) -> None:
        task = self._tasks.get(task_id)
        if task is not None:
            task.downloaded_bytes += delta

    async def set_downloaded_bytes(self, task_id: str, downloaded_bytes: int) -> None:
        task = self._tasks.get(task_id)
        if task is not None:
            task.downloaded_bytes = downloaded_bytes

    async def complete(
        self, task_id: str, result: CompletedFetchResult, downloaded_bytes: int
    ) -> None:
        """Mark a task completed with its result."""
        task = self._tasks.get(task_id)
        if task is not None:
            task.downloaded_bytes = downloaded_bytes
            task.total_bytes = downloaded_bytes
            task.status = TaskStatus.COMPLETED
            task.result = result

    async def fail(self, task_id: str, error: str) -> None:
        """Mark a task failed with an error message."""
        task = self._tasks.get(task_id)
        if task is not None:
            task.status = TaskStatus.FAILED
            task.error = error

    async def snapshot(self, task_id: str) -> FetchTaskState | None:
        """A copy of a task's current state."""
        task = self._tasks.get(task_id)
        return dataclasses.replace(task) if task is not None else None

    async def take(self, task_id: str) -> FetchTaskState | None:
        """Remove a task and return its final state."""
        return self._tasks.pop(task_id, None)

    async def wait_for_terminal(self, task_id: str, timeout: float) -> FetchTaskState | None:
        """Wait up to ``timeout`` seconds for a task to finish; None on timeout or unknown id."""
        started = time.monotonic()
        while True:
            snapshot = await self.snapshot(task_id)
            if snapshot is None:
                return None
            if snapshot.status is not TaskStatus.RUNNING:
                return snapshot
            elapsed = time.monotonic() - started
            if elapsed >= timeout:
                return None
            await asyncio.sleep(min(timeout - elapsed, FETCH_TASK_POLL_INTERVAL))

    async def record_speed_sample(self, nbytes: int, elapsed: float) -> None:
        """Fold one observed download speed into the running average."""
        if nbytes == 0 or elapsed <= 0:
            return
        sample = nbytes / elapsed
        self._average_speed_bps = self._average_speed_bps * 0.7 + sample * 0.3


class FetchProgressReporter:
    """Progress updates bound to one task of a registry."""

    def __init__(self, task_id: str, tasks: FetchTaskRegistry) -> None:
        self.task_id = task_id
        self.tasks = tasks

    async def set_total_bytes(self, total_bytes: int | None) -> None:
        await self.tasks.set_total_bytes(self.task_id, total_bytes)

    async def add_downloaded_bytes(self, delta: int) -> None:
        await self.tasks.add_downloaded_bytes(self.task_id, delta)

    async def set_downloaded_bytes(self, downloaded_bytes: int) -> None:
        await self.tasks.set_downloaded_bytes(self.task_id, downloaded_bytes)

    async def complete(
        self, result: CompletedFetchResult, downloaded_bytes: int, elapsed: float
    ) -> None:
        """Complete the task and record its speed."""
        await self.tasks.complete(self.task_id, result, downloaded_bytes)
        await self.tasks.record_speed_sample(downloaded_bytes, elapsed)

    async def fail(self, error: str) -> None:
        await self.tasks.fail(self.task_id, error)


def fetch_running_value(
    task_id: str, task: FetchTaskState, average_speed_bps: float
) -> dict[str, Any]:
    """Progress report for a task that is still running."""
    elapsed_seconds = _elapsed(task)
    if task.downloaded_bytes > 0 and elapsed_seconds > 0.0:
        speed_bps = task.downloaded_bytes / elapsed_seconds
    else:
        speed_bps = max(task.speed_bps_hint, average_speed_bps)

    estimated_total = estimated_remaining = None
    if task.total_bytes is not None and speed_bps > 0.0:
        estimated_total = task.total_bytes / speed_bps
        estimated_remaining = max(estimated_total - elapsed_seconds, 0.0)

    return {
        "status": "running",
        "task_id": task_id,
        "source": task.source_label,
        "elapsed_seconds": elapsed_seconds,
        "downloaded_bytes": task.downloaded_bytes,
        "total_bytes": task.total_bytes,
        "estimated_speed_bytes_per_sec": speed_bps,
        "estimated_total_seconds": estimated_total,
        "estimated_remaining_seconds": estimated_remaining,
        "poll_hint": f"Call fetch again with task_id={task_id} to poll the result.",
    }


def fetch_terminal_value(task_id: str | None, task: FetchTaskState) -> dict[str, Any]:
    """Final report for a completed or failed task."""
    if task.status is TaskStatus.COMPLETED and task.result is not None:
        result = task.result
        value: dict[str, Any] = {
            "status": "completed",
            "workspace_path": result.workspace_path,
            "file_name": result.file_name,
            "mime_type": result.mime_type,
            "size_bytes": result.size_bytes,
            "source": result.source,
            "mode": result.mode,
            "elapsed_seconds": _elapsed(task),
        }
        if task_id is not None:
            value["task_id"] = task_id
        if result.resolved_url is not None:
            value["resolved_url"] = result.resolved_url
        return value
    if task.status is TaskStatus.FAILED:
        return {
            "status": "failed",
            "task_id": task_id,
            "source": task.source_label,
            "elapsed_seconds": _elapsed(task),
            "error": task.error or "",
        }
    return {"status": "running", "task_id": task_id, "source": task.source_label}


def json_text(value: Any) -> str:
    """Pretty JSON with sorted keys."""
    return json.dumps(value, indent=2, sort_keys=True, ensure_ascii=False)