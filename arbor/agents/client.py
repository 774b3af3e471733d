"""Agents API client.

Builds the streaming chat request and exposes it as a WireLineSource.
Also fetches agent metadata from the agents root endpoint.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field

from arbor.exceptions import (
    ConfigurationError,
    StreamDecodeError,
    StreamTransportError,
    classify_status,
)
from arbor.settings import get_settings
from arbor.streaming.correlation import CorrelationContext
from arbor.streaming.lines import WireLineSource

logger = logging.getLogger(__name__)

STREAM_PATH = "/chat/stream"


class AgentsClientConfig(BaseModel):
    """Configuration for the agents client."""

    base_url: str = Field(..., description="Agents API base URL, e.g. https://host/api/agents")
    token: str | None = Field(default=None, description="Bearer token (None = no auth header)")
    timeout: float = Field(default=60.0, description="Request timeout in seconds")


class AgentStreamRequest(BaseModel):
    """Body of ``POST {base_url}/chat/stream``."""

    messages: list[dict[str, str]]
    thread_id: str | None = Field(default=None, serialization_alias="threadId")
    resource_id: str | None = Field(default=None, serialization_alias="resourceId")

    @classmethod
    def from_prompt(
        cls,
        prompt: str,
        correlation: CorrelationContext | None = None,
    ) -> AgentStreamRequest:
        correlation = correlation or CorrelationContext()
        return cls(
            messages=[{"role": "user", "content": prompt}],
            thread_id=correlation.thread_id,
            resource_id=correlation.resource_id,
        )

    def to_body(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class AgentsClient:
    """HTTP client for the agents backend.

    Usage:
        client = AgentsClient()
        source = client.open_stream("Hello", CorrelationContext(thread_id="chat-1"))
        async for line in source.lines():
            ...
        await client.close()
    """

    def __init__(
        self,
        config: AgentsClientConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the agents client.

        Args:
            config: Optional configuration (uses settings if not provided)
            http_client: Optional pre-built httpx client (tests, shared pools)
        """
        if config is None:
            config = self._resolve_config()
        if not config.base_url:
            raise ConfigurationError("Agents base URL is not configured")
        self.config = config
        self._http_client = http_client
        self._owns_client = http_client is None

    @staticmethod
    def _resolve_config() -> AgentsClientConfig:
        settings = get_settings()
        token = settings.api_token.get_secret_value()
        return AgentsClientConfig(
            base_url=settings.agents_base_url,
            token=token or None,
            timeout=settings.request_timeout,
        )

    @property
    def stream_url(self) -> str:
        return self.config.base_url.rstrip("/") + STREAM_PATH

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create a shared httpx.AsyncClient with connection pooling."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    def _headers(self, accept: str) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": accept}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    def build_stream_request(
        self,
        prompt: str,
        correlation: CorrelationContext | None = None,
    ) -> httpx.Request:
        """Prepare the streaming POST for one prompt."""
        body = AgentStreamRequest.from_prompt(prompt, correlation).to_body()
        logger.debug(
            "Stream request to %s (threadId=%s, resourceId=%s)",
            self.stream_url,
            body.get("threadId"),
            body.get("resourceId"),
        )
        return self._get_http_client().build_request(
            "POST",
            self.stream_url,
            json=body,
            headers=self._headers("text/event-stream"),
        )

    def open_stream(
        self,
        prompt: str,
        correlation: CorrelationContext | None = None,
    ) -> WireLineSource:
        """Return a line source for the response to ``prompt``.

        Nothing is sent until the source's ``lines()`` is iterated.
        """
        request = self.build_stream_request(prompt, correlation)
        return WireLineSource(self._get_http_client(), request)

    async def get_agent_info(self) -> dict[str, Any]:
        """Fetch agent metadata from the agents root endpoint.

        Raises:
            StreamHTTPError: Non-2xx status.
            StreamTransportError: Connection failure.
            StreamDecodeError: Body is not a JSON object.
        """
        client = self._get_http_client()
        try:
            response = await client.get(self.config.base_url, headers=self._headers("application/json"))
        except httpx.HTTPError as e:
            raise StreamTransportError(f"Agent info request failed: {type(e).__name__}") from e

        logger.debug("Agent info response status: %s", response.status_code)
        if not response.is_success:
            raise classify_status(response.status_code, response.text or None)

        try:
            data = response.json()
        except ValueError as e:
            raise StreamDecodeError("Agent info is not valid JSON", raw=response.text[:200]) from e
        if not isinstance(data, dict):
            raise StreamDecodeError("Agent info must be a JSON object", raw=response.text[:200])
        return data
