"""
Task Store — keyed registry of job-action tasks.

Every task lives in exactly one of three states:
  pending   — waiting in FIFO order for a concurrency slot
  active    — its handler is currently running
  deferred  — waiting on a retry timer

A single table keyed by "<job_id>:<action>" holds the task together with its
state and, while deferred, the timer handle. Pending order is kept in a
separate insertion-ordered index so dequeue is FIFO and removal is O(1).

A terminal purge cannot stop a handler that is already running. Such a task
leaves the table but is kept as "draining": it still holds its concurrency
slot, and no other task for the same key starts until it settles.
"""
from __future__ import annotations

import asyncio
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from models.schemas import Job, JobAction, Memo


def task_key(job_id: int, action: JobAction) -> str:
    return f"{job_id}:{action.value}"


class TaskState(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    DEFERRED = "deferred"


class DuplicateTaskError(Exception):
    """Raised when a task is enqueued for a key that is already registered."""
    pass


@dataclass
class JobTask:
    """A one-time action for a job. job/memo are refreshed in place."""
    job: Job
    action: JobAction
    memo: Optional[Memo] = None
    attempt: int = 0

    @property
    def key(self) -> str:
        return task_key(self.job.id, self.action)

    @property
    def job_id(self) -> int:
        return self.job.id

    def refresh(self, job: Job, memo: Optional[Memo]) -> None:
        self.job = job
        self.memo = memo


@dataclass
class _Entry:
    task: JobTask
    state: TaskState
    timer: Optional[asyncio.TimerHandle] = None


class TaskStore:

    def __init__(self):
        self._entries: dict[str, _Entry] = {}
        self._pending: OrderedDict[str, JobTask] = OrderedDict()
        self._draining: dict[str, JobTask] = {}

    # ── Lookup ────────────────────────────────────────────────

    def exists(self, key: str) -> tuple[Optional[TaskState], Optional[JobTask]]:
        entry = self._entries.get(key)
        if entry is None:
            return None, None
        return entry.state, entry.task

    def owns(self, task: JobTask) -> bool:
        """True while the registered entry for task.key is this very task."""
        entry = self._entries.get(task.key)
        return entry is not None and entry.task is task

    def is_draining(self, task: JobTask) -> bool:
        """True while task is a purged attempt whose handler has not settled."""
        return self._draining.get(task.key) is task

    def timer_for(self, key: str) -> Optional[asyncio.TimerHandle]:
        entry = self._entries.get(key)
        return entry.timer if entry is not None else None

    def __len__(self) -> int:
        return len(self._entries) + len(self._draining)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def active_count(self) -> int:
        active = sum(1 for e in self._entries.values() if e.state == TaskState.ACTIVE)
        return active + len(self._draining)

    @property
    def draining_count(self) -> int:
        return len(self._draining)

    @property
    def deferred_count(self) -> int:
        return sum(1 for e in self._entries.values() if e.state == TaskState.DEFERRED)

    # ── Transfers ─────────────────────────────────────────────

    def enqueue(self, task: JobTask) -> None:
        key = task.key
        if key in self._entries:
            raise DuplicateTaskError(f"Task {key} is already {self._entries[key].state.value}")
        self._entries[key] = _Entry(task=task, state=TaskState.PENDING)
        self._pending[key] = task

    def dequeue_next(self) -> Optional[JobTask]:
        """
        Pop the oldest pending task whose key has no draining attempt.
        It stays registered until promoted.
        """
        for key, task in self._pending.items():
            if key not in self._draining:
                del self._pending[key]
                return task
        return None

    def promote_to_active(self, task: JobTask) -> None:
        entry = self._entries[task.key]
        self._pending.pop(task.key, None)
        entry.state = TaskState.ACTIVE
        entry.timer = None

    def promote_to_deferred(self, task: JobTask, timer: asyncio.TimerHandle) -> None:
        entry = self._entries[task.key]
        self._pending.pop(task.key, None)
        entry.state = TaskState.DEFERRED
        entry.timer = timer

    def requeue(self, task: JobTask) -> None:
        """Deferred → pending, appended at the tail of the FIFO."""
        entry = self._entries[task.key]
        entry.state = TaskState.PENDING
        entry.timer = None
        self._pending[task.key] = task

    def remove(self, key: str) -> Optional[JobTask]:
        entry = self._entries.pop(key, None)
        if entry is None:
            return None
        self._pending.pop(key, None)
        if entry.timer is not None:
            entry.timer.cancel()
        return entry.task

    def settle_draining(self, task: JobTask) -> None:
        if self.is_draining(task):
            del self._draining[task.key]

    def purge_job(self, job_id: int) -> int:
        """
        Drop the pending and deferred tasks of a job, cancelling retry timers.
        Active tasks move to draining and are not counted.
        """
        removed = 0
        keys = [k for k, e in self._entries.items() if e.task.job_id == job_id]
        for key in keys:
            entry = self._entries[key]
            if entry.state == TaskState.ACTIVE:
                del self._entries[key]
                self._draining[key] = entry.task
            else:
                self.remove(key)
                removed += 1
        return removed

    def clear(self) -> int:
        keys = list(self._entries)
        for key in keys:
            self.remove(key)
        self._draining.clear()
        return len(keys)
