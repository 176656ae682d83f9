"""
FastAPI Application — inbound job notifications for the seller agent.

Provides:
- Webhook the protocol client pushes job notifications to
- Scheduler stats for monitoring
- Health check
"""
from __future__ import annotations

import structlog
from datetime import datetime
from contextlib import asynccontextmanager

# Load .env before any config is read
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, HTTPException, Request

from config.settings import Settings, get_settings
from backend.connector import create_job_gateway
from backend.signals import SignalFetcher
from core.seller import SellerAgent
from job_queue.scheduler import QueueOptions
from models.schemas import JobNotification, phase_label

logger = structlog.get_logger()


def build_seller_agent(settings: Settings) -> SellerAgent:
    q = settings.queue
    return SellerAgent(
        gateway=create_job_gateway(settings.gateway),
        signals=SignalFetcher(settings.signals),
        options=QueueOptions(
            max_concurrency=q.max_concurrency,
            max_attempts=q.max_attempts,
            base_retry_delay_ms=q.base_retry_delay_ms,
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    app.state.seller = build_seller_agent(settings)
    logger.info("seller_agent_started", app_name=settings.app_name)
    yield

    await app.state.seller.close()
    logger.info("seller_agent_stopped")


# ──────────────────────────────────────────────────────────────
#  App
# ──────────────────────────────────────────────────────────────

app = FastAPI(
    title="Seller Agent API",
    description="Job-action scheduler for an agent-commerce seller",
    version="1.0.0",
    lifespan=lifespan,
)


def _seller(request: Request) -> SellerAgent:
    seller = getattr(request.app.state, "seller", None)
    if seller is None:
        raise HTTPException(status_code=503, detail="Seller agent not started")
    return seller


# ══════════════════════════════════════════════════════════════
#  HEALTH & DIAGNOSTICS
# ══════════════════════════════════════════════════════════════

@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.get("/api/v1/scheduler/stats")
async def scheduler_stats(request: Request):
    return _seller(request).stats()


# ══════════════════════════════════════════════════════════════
#  JOB NOTIFICATIONS
# ══════════════════════════════════════════════════════════════

@app.post("/api/v1/jobs/notifications")
async def receive_job_notification(notification: JobNotification, request: Request):
    seller = _seller(request)
    job = notification.job
    logger.info("job_notification_received",
                job_id=job.id,
                phase=phase_label(job.phase),
                memo_id=notification.memo.id if notification.memo is not None else None)
    seller.on_new_task(job, notification.memo)
    return {"status": "received", "job_id": job.id, "scheduler": seller.stats()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
