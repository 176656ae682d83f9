"""
Job Gateway — outbound side of the agent-commerce protocol client.

The protocol client (contract calls, memo signing) runs outside this process.
The gateway is the narrow interface the seller's action handlers use to ask it
to respond to or deliver a job. REST talks to a protocol sidecar; the mock
records calls for development and tests.
"""
from __future__ import annotations

import abc
import structlog
from typing import Any, Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential

from config.settings import GatewayConfig, get_settings
from models.schemas import Deliverable

logger = structlog.get_logger()


class JobGateway(abc.ABC):
    """Abstract base for protocol job gateways."""

    @abc.abstractmethod
    async def respond_job(self, job_id: int, accept: bool, reason: str = "") -> dict[str, Any]:
        """Accept or reject a job in its request phase."""
        ...

    @abc.abstractmethod
    async def deliver_job(self, job_id: int, deliverable: Deliverable) -> dict[str, Any]:
        """Submit the deliverable for a paid job."""
        ...

    async def close(self):
        pass


class RESTJobGateway(JobGateway):
    """
    REST gateway to a protocol sidecar.
    Endpoint paths come from settings and may contain a {job_id} placeholder.
    """

    def __init__(self, config: GatewayConfig = None, client: httpx.AsyncClient = None):
        self.config = config or get_settings().gateway
        self.client: Optional[httpx.AsyncClient] = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            headers = {}
            if self.config.auth_type == "bearer":
                token = self.config.auth_credentials.get("token", "")
                headers["Authorization"] = f"Bearer {token}"
            elif self.config.auth_type == "api_key":
                key_name = self.config.auth_credentials.get("header_name", "X-API-Key")
                headers[key_name] = self.config.auth_credentials.get("api_key", "")

            self.client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers=headers,
                timeout=30.0,
            )
        return self.client

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, max=10), reraise=True)
    async def _request(self, method: str, endpoint: str, **kwargs) -> dict[str, Any]:
        client = await self._get_client()
        url = self.config.endpoints.get(endpoint, endpoint)
        for k, v in kwargs.pop("path_params", {}).items():
            url = url.replace(f"{{{k}}}", str(v))

        response = await client.request(method, url, **kwargs)
        response.raise_for_status()
        return response.json() if response.content else {}

    async def respond_job(self, job_id: int, accept: bool, reason: str = "") -> dict[str, Any]:
        result = await self._request(
            "POST", "respond_job",
            path_params={"job_id": job_id},
            json={"accept": accept, "reason": reason},
        )
        logger.info("gateway_job_responded", job_id=job_id, accept=accept)
        return result

    async def deliver_job(self, job_id: int, deliverable: Deliverable) -> dict[str, Any]:
        result = await self._request(
            "POST", "deliver_job",
            path_params={"job_id": job_id},
            json=deliverable.model_dump(),
        )
        logger.info("gateway_job_delivered", job_id=job_id)
        return result

    async def close(self):
        if self.client:
            await self.client.aclose()


class MockJobGateway(JobGateway):
    """Records every call; used when no gateway URL is configured."""

    def __init__(self):
        self.responses: list[dict[str, Any]] = []
        self.deliveries: list[dict[str, Any]] = []

    async def respond_job(self, job_id: int, accept: bool, reason: str = "") -> dict[str, Any]:
        self.responses.append({"job_id": job_id, "accept": accept, "reason": reason})
        logger.info("mock_gateway_respond", job_id=job_id, accept=accept)
        return {"status": "ok", "mock": True}

    async def deliver_job(self, job_id: int, deliverable: Deliverable) -> dict[str, Any]:
        self.deliveries.append({"job_id": job_id, "deliverable": deliverable.model_dump()})
        logger.info("mock_gateway_deliver", job_id=job_id, value_keys=list(deliverable.value.keys()))
        return {"status": "ok", "mock": True}


def create_job_gateway(config: GatewayConfig = None) -> JobGateway:
    """Factory function to create the appropriate job gateway."""
    config = config or get_settings().gateway
    if config.type == "rest" and config.base_url:
        return RESTJobGateway(config)
    logger.warning("using_mock_gateway", reason="no gateway configured or base_url empty")
    return MockJobGateway()
