"""
Seller Agent — the action handlers behind the job scheduler.

  respond  → accept the job at its listed price
  deliver  → fetch trade signals and submit them as the deliverable

Every protocol notification goes through on_new_task(), which is nothing more
than JobScheduler.schedule(); the scheduler decides whether and when the
handlers run.
"""
from __future__ import annotations

import structlog
from typing import Any, Optional

from backend.connector import JobGateway
from backend.signals import SignalFetcher, summarize_payload
from job_queue.scheduler import JobScheduler, QueueOptions
from models.schemas import Deliverable, Job, JobAction, Memo

logger = structlog.get_logger()


class SellerAgent:

    def __init__(
        self,
        gateway: JobGateway,
        signals: SignalFetcher,
        options: QueueOptions = None,
    ):
        self.gateway = gateway
        self.signals = signals
        self.scheduler = JobScheduler(
            {JobAction.RESPOND: self.respond, JobAction.DELIVER: self.deliver},
            options,
        )
        opts = self.scheduler.options
        logger.info("seller_queue_initialized",
                    max_concurrency=opts.max_concurrency,
                    max_attempts=opts.max_attempts,
                    base_retry_delay_ms=opts.base_retry_delay_ms)

    def on_new_task(self, job: Job, memo: Optional[Memo] = None) -> None:
        self.scheduler.schedule(job, memo)

    async def respond(self, job: Job, memo: Optional[Memo], attempt: int) -> None:
        logger.info("seller_responding", job_id=job.id, attempt=attempt, price=job.price)
        await self.gateway.respond_job(job.id, accept=True)
        logger.info("seller_responded", job_id=job.id)

    async def deliver(self, job: Job, memo: Optional[Memo], attempt: int) -> None:
        logger.info("seller_delivering", job_id=job.id, attempt=attempt)
        payload = await self.signals.fetch(job.id)
        logger.info("seller_signals_fetched", job_id=job.id, summary=summarize_payload(payload))

        deliverable = Deliverable(type="object", value={"signals": payload})
        await self.gateway.deliver_job(job.id, deliverable)
        logger.info("seller_delivered", job_id=job.id)

    def stats(self) -> dict[str, Any]:
        return self.scheduler.stats()

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.signals.close()
        await self.gateway.close()
