"""
Progress Tracker — remembers which one-time actions succeeded per job.

Records are created lazily on the first lookup and dropped once the job
reaches a terminal phase.
"""
from __future__ import annotations

from models.schemas import JobAction, JobProgress


class ProgressTracker:

    def __init__(self):
        self._progress: dict[int, JobProgress] = {}

    def get(self, job_id: int) -> JobProgress:
        progress = self._progress.get(job_id)
        if progress is None:
            progress = JobProgress()
            self._progress[job_id] = progress
        return progress

    def has_succeeded(self, job_id: int, action: JobAction) -> bool:
        return self.get(job_id).succeeded(action)

    def mark_succeeded(self, job_id: int, action: JobAction) -> None:
        self.get(job_id).mark(action)

    def clear(self, job_id: int) -> None:
        self._progress.pop(job_id, None)

    def __contains__(self, job_id: int) -> bool:
        return job_id in self._progress

    def __len__(self) -> int:
        return len(self._progress)
