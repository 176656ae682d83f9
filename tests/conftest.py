"""Shared test fixtures for the seller agent."""
import asyncio
import pytest
from typing import Callable, Optional

from models.schemas import Job, JobPhase, Memo


class ControlledHandler:
    """
    Async action handler double.

    Fails its first `failures` calls, optionally blocks every call until
    `release` is set, and tracks how many calls overlap.
    """

    def __init__(self, failures: int = 0, block: bool = False):
        self.failures = failures
        self.calls: list[tuple[Job, Optional[Memo], int]] = []
        self.release = asyncio.Event()
        self.started = asyncio.Event()
        self.in_flight = 0
        self.max_in_flight = 0
        if not block:
            self.release.set()

    async def __call__(self, job: Job, memo: Optional[Memo], attempt: int) -> None:
        self.calls.append((job, memo, attempt))
        call_number = len(self.calls)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.started.set()
        try:
            await self.release.wait()
            if call_number <= self.failures:
                raise RuntimeError(f"handler failure on attempt {attempt}")
        finally:
            self.in_flight -= 1

    @property
    def attempts(self) -> list[int]:
        return [attempt for _, _, attempt in self.calls]


@pytest.fixture
def handler_factory():
    return ControlledHandler


@pytest.fixture
def make_job() -> Callable[..., tuple[Job, Memo]]:
    """Build a job snapshot plus the memo announcing its next phase."""
    def _make(job_id: int, phase: JobPhase, next_phase: Optional[JobPhase] = None,
              price: float = 1.5, memo_id: int = 100):
        memo = Memo(id=memo_id, next_phase=next_phase)
        job = Job(id=job_id, phase=phase, price=price, memos=[memo])
        return job, memo
    return _make


@pytest.fixture
def until():
    """Poll an (sync) predicate on the event loop until it holds."""
    async def _until(predicate: Callable[[], bool], timeout: float = 1.0):
        async def _poll():
            while not predicate():
                await asyncio.sleep(0.001)
        await asyncio.wait_for(_poll(), timeout)
    return _until
