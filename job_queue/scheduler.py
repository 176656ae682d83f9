"""
Job Scheduler — runs each job's one-time actions at most once successfully.

Flow for every notification pushed by the protocol client:

  notification ──▶ terminal? ──yes──▶ purge tasks + progress
                      │no
                      ▼
                 resolve action ──none──▶ ignore
                      │
                      ▼
              already succeeded? ──yes──▶ ignore (echo)
                      │no
                      ▼
              task registered? ──yes──▶ refresh snapshot in place
                      │no
                      ▼
                   enqueue ──▶ dispatch (≤ max_concurrency active)
                                   │
                     ┌─────────────┴──────────────┐
                  success                      failure
                     │                            │
              mark progress           attempt < max? ──no──▶ drop
                                                  │yes
                                                  ▼
                                deferred ── timer(base·2^(n-1)) ──▶ pending

All bookkeeping happens on the event loop thread; handlers overlap only while
awaiting I/O.
"""
from __future__ import annotations

import asyncio
import structlog
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

from job_queue.progress import ProgressTracker
from job_queue.resolver import resolve_action
from job_queue.task_store import JobTask, TaskState, TaskStore, task_key
from models.schemas import Job, JobAction, Memo, phase_label

logger = structlog.get_logger()

JobHandler = Callable[[Job, Optional[Memo], int], Awaitable[None]]


@dataclass(frozen=True)
class QueueOptions:
    max_concurrency: int = 3
    max_attempts: int = 5
    base_retry_delay_ms: int = 5_000

    def __post_init__(self):
        for name in ("max_concurrency", "max_attempts", "base_retry_delay_ms"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")


class JobScheduler:
    """
    In-memory scheduler for seller job actions.

    Usage:
        scheduler = JobScheduler({JobAction.RESPOND: respond, JobAction.DELIVER: deliver})
        scheduler.schedule(job, memo)   # from inside the running event loop
        await scheduler.stop()
    """

    def __init__(
        self,
        handlers: Mapping[JobAction, JobHandler],
        options: QueueOptions = None,
    ):
        missing = [a.value for a in JobAction if a not in handlers]
        if missing:
            raise ValueError(f"Missing handlers for: {', '.join(missing)}")
        self._handlers = dict(handlers)
        self.options = options or QueueOptions()
        self._store = TaskStore()
        self._progress = ProgressTracker()
        self._running: set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def store(self) -> TaskStore:
        return self._store

    @property
    def progress(self) -> ProgressTracker:
        return self._progress

    def retry_delay_ms(self, attempt: int) -> int:
        return self.options.base_retry_delay_ms * 2 ** (attempt - 1)

    def stats(self) -> dict[str, Any]:
        return {
            "pending": self._store.pending_count,
            "active": self._store.active_count,
            "deferred": self._store.deferred_count,
            "tracked_jobs": len(self._progress),
            "max_concurrency": self.options.max_concurrency,
        }

    # ── Admission ─────────────────────────────────────────────

    def schedule(self, job: Job, memo: Optional[Memo] = None) -> None:
        """Entry point for every job notification. Never raises."""
        if job.phase.is_terminal:
            self._clear_job(job)
            return

        next_phase = memo.next_phase if memo is not None else None
        if next_phase is None and job.latest_memo is not None:
            next_phase = job.latest_memo.next_phase
        action = resolve_action(job.phase, next_phase)
        if action is None:
            logger.info("job_no_action",
                        job_id=job.id,
                        phase=phase_label(job.phase),
                        next_phase=phase_label(next_phase),
                        memo_id=memo.id if memo is not None else None)
            return

        if self._progress.has_succeeded(job.id, action):
            logger.info("job_duplicate_skipped", job_id=job.id, action=action.value)
            return

        key = task_key(job.id, action)
        state, existing = self._store.exists(key)
        if existing is not None:
            existing.refresh(job, memo)
            logger.info("job_snapshot_refreshed",
                        job_id=job.id,
                        action=action.value,
                        state=state.value)
            return

        self._store.enqueue(JobTask(job=job, memo=memo, action=action))
        self._idle.clear()
        logger.info("job_enqueued",
                    job_id=job.id,
                    action=action.value,
                    transition=f"{phase_label(job.phase)} -> {phase_label(next_phase)}",
                    pending=self._store.pending_count,
                    active=self._store.active_count)
        self._dispatch()

    def _clear_job(self, job: Job) -> None:
        logger.info("job_terminal_clearing", job_id=job.id, phase=phase_label(job.phase))
        self._progress.clear(job.id)
        removed = self._store.purge_job(job.id)
        if removed:
            logger.info("job_tasks_purged", job_id=job.id, removed=removed)
        self._check_idle()

    # ── Dispatch ──────────────────────────────────────────────

    def _dispatch(self) -> None:
        limit = self.options.max_concurrency
        if self._store.active_count >= limit and self._store.pending_count:
            logger.warning("queue_concurrency_maxed",
                           active=self._store.active_count,
                           max_concurrency=limit,
                           backlog=self._store.pending_count)

        while self._store.active_count < limit:
            task = self._store.dequeue_next()
            if task is None:
                break
            self._start(task)
        self._check_idle()

    def _start(self, task: JobTask) -> None:
        task.attempt += 1
        self._store.promote_to_active(task)
        logger.info("job_attempt_started",
                    job_id=task.job_id,
                    action=task.action.value,
                    attempt=task.attempt,
                    active=self._store.active_count,
                    max_concurrency=self.options.max_concurrency)

        runner = asyncio.create_task(
            self._run(task, task.job, task.memo, task.attempt),
            name=f"job-action:{task.key}",
        )
        self._running.add(runner)
        runner.add_done_callback(self._running.discard)

    async def _run(self, task: JobTask, job: Job, memo: Optional[Memo], attempt: int) -> None:
        try:
            await self._handlers[task.action](job, memo, attempt)
        except Exception as e:
            self._on_failure(task, e)
        else:
            self._on_success(task)
        self._dispatch()

    # ── Outcomes ──────────────────────────────────────────────

    def _on_success(self, task: JobTask) -> None:
        if not self._store.owns(task):
            self._store.settle_draining(task)
            logger.info("job_settled_after_purge",
                        job_id=task.job_id,
                        action=task.action.value,
                        outcome="success")
            return

        self._store.remove(task.key)
        self._progress.mark_succeeded(task.job_id, task.action)
        logger.info("job_attempt_completed",
                    job_id=task.job_id,
                    action=task.action.value,
                    attempt=task.attempt,
                    pending=self._store.pending_count,
                    retries=self._store.deferred_count)

    def _on_failure(self, task: JobTask, error: Exception) -> None:
        if not self._store.owns(task):
            self._store.settle_draining(task)
            logger.info("job_settled_after_purge",
                        job_id=task.job_id,
                        action=task.action.value,
                        outcome="failure",
                        error=str(error))
            return

        if task.attempt >= self.options.max_attempts:
            self._store.remove(task.key)
            logger.error("job_attempts_exhausted",
                         job_id=task.job_id,
                         action=task.action.value,
                         attempts=task.attempt,
                         error=str(error))
            return

        delay_ms = self.retry_delay_ms(task.attempt)
        timer = asyncio.get_running_loop().call_later(delay_ms / 1000, self._retry, task)
        self._store.promote_to_deferred(task, timer)
        logger.error("job_attempt_failed",
                     job_id=task.job_id,
                     action=task.action.value,
                     attempt=task.attempt,
                     error=str(error),
                     retry_in_ms=delay_ms,
                     pending=self._store.pending_count,
                     retries=self._store.deferred_count)

    def _retry(self, task: JobTask) -> None:
        state, registered = self._store.exists(task.key)
        if registered is not task or state != TaskState.DEFERRED:
            return
        self._store.requeue(task)
        logger.info("job_requeued",
                    job_id=task.job_id,
                    action=task.action.value,
                    next_attempt=task.attempt + 1,
                    pending=self._store.pending_count)
        self._dispatch()

    # ── Lifecycle ─────────────────────────────────────────────

    def _check_idle(self) -> None:
        if len(self._store) == 0:
            self._idle.set()
        else:
            self._idle.clear()

    async def wait_idle(self) -> None:
        """Wait until no task is pending, active or deferred."""
        await self._idle.wait()

    async def stop(self) -> None:
        """Cancel retry timers and in-flight handlers; drop all queued work."""
        dropped = self._store.clear()
        runners = list(self._running)
        for runner in runners:
            runner.cancel()
        if runners:
            await asyncio.gather(*runners, return_exceptions=True)
        self._check_idle()
        logger.info("job_scheduler_stopped", dropped=dropped, cancelled=len(runners))
