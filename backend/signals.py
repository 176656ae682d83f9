"""
Signal Fetcher — pulls the trade-signal payload the seller delivers.

Has its own bounded retry (fixed attempt cap, exponential backoff), separate
from the scheduler's action-level retry: exhaustion here surfaces as a single
deliver-handler failure.
"""
from __future__ import annotations

import structlog
from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential

from config.settings import SignalConfig, get_settings

logger = structlog.get_logger()


class SignalFetchError(Exception):
    """Raised when the signal API answers with a non-success status."""
    pass


def summarize_payload(payload: Any) -> str:
    """Short description of a fetched payload for the delivery log."""
    if isinstance(payload, list):
        return f"array length {len(payload)}"
    if isinstance(payload, dict):
        return f"keys={','.join(list(payload)[:5])}"
    return type(payload).__name__


class SignalFetcher:

    def __init__(self, config: SignalConfig = None, client: httpx.AsyncClient = None):
        self.config = config or get_settings().signals
        self.client: Optional[httpx.AsyncClient] = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            self.client = httpx.AsyncClient(timeout=self.config.timeout_s)
        return self.client

    async def _get(self, job_id: int, attempt: int) -> Any:
        if attempt > 1:
            logger.info("signals_fetching", job_id=job_id, retry=f"{attempt}/{self.config.max_attempts}")
        else:
            logger.info("signals_fetching", job_id=job_id)

        client = await self._get_client()
        response = await client.get(
            self.config.api_url,
            headers={
                "accept": "application/json",
                "X-Api-Key": self.config.api_key,
            },
        )
        if response.is_error:
            raise SignalFetchError(f"Signal API returned {response.status_code}")
        return response.json()

    def _log_retry(self, job_id: int):
        def before_sleep(state: RetryCallState):
            logger.error("signals_fetch_attempt_failed",
                         job_id=job_id,
                         attempt=state.attempt_number,
                         error=str(state.outcome.exception()),
                         retry_in_s=state.next_action.sleep)
        return before_sleep

    async def fetch(self, job_id: int) -> Any:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=wait_exponential(multiplier=self.config.base_delay_s),
            before_sleep=self._log_retry(job_id),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._get(job_id, attempt.retry_state.attempt_number)
        except (httpx.HTTPError, SignalFetchError, ValueError) as e:
            logger.error("signals_fetch_failed",
                         job_id=job_id,
                         attempts=self.config.max_attempts,
                         error=str(e))
            raise

    async def close(self):
        if self.client:
            await self.client.aclose()
