"""Chat history API client.

Thin CRUD calls against the remote chat history store. The streaming
pipeline only needs ``add_message``; the rest back the CLI and the
controller's chat bootstrap.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx
from pydantic import BaseModel, Field, ValidationError

from arbor.exceptions import HistoryStoreError
from arbor.models import NEW_CHAT_TITLE, Chat, Message
from arbor.settings import get_settings

logger = logging.getLogger(__name__)


class HistoryClientConfig(BaseModel):
    """Configuration for the history client."""

    base_url: str = Field(..., description="History API base URL")
    token: str | None = Field(default=None, description="Bearer token (None = no auth header)")
    timeout: float = Field(default=30.0, description="Request timeout in seconds")


class HistoryClient:
    """HTTP client for ``/api/chats``.

    Usage:
        client = HistoryClient()
        chat = await client.create_chat(initial_message="Hi")
        await client.add_message(Message.create_user("Hi"), chat.id)
    """

    def __init__(
        self,
        config: HistoryClientConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ):
        if config is None:
            config = self._resolve_config()
        self.config = config
        self._http_client = http_client
        self._owns_client = http_client is None

    @staticmethod
    def _resolve_config() -> HistoryClientConfig:
        settings = get_settings()
        token = settings.api_token.get_secret_value()
        return HistoryClientConfig(
            base_url=settings.api_base_url,
            token=token or None,
            timeout=settings.request_timeout,
        )

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.config.timeout,
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json: dict | None = None,
    ) -> Any:
        """Make a request to the history API.

        Returns:
            Decoded JSON, ``{}`` for an empty 2xx body, or None on 404.

        Raises:
            HistoryStoreError: Connection failure or any other non-2xx status.
        """
        url = f"{self.config.base_url.rstrip('/')}{path}"
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"

        start_time = time.perf_counter()
        try:
            response = await self._get_http_client().request(method, url, headers=headers, json=json)
        except httpx.ConnectError as e:
            raise HistoryStoreError(f"{url}: Connection failed", operation=operation) from e
        except httpx.TimeoutException as e:
            raise HistoryStoreError(f"{url}: Timeout", operation=operation) from e
        except httpx.HTTPError as e:
            raise HistoryStoreError(f"{url}: {type(e).__name__}", operation=operation) from e

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.debug("%s %s -> %s (%.1f ms)", method, path, response.status_code, duration_ms)

        if response.is_success:
            return response.json() if response.content else {}
        if response.status_code == 404:
            return None
        raise HistoryStoreError(
            f"{method} {path} failed: HTTP {response.status_code}",
            operation=operation,
            status_code=response.status_code,
        )

    async def list_chats(self) -> list[Chat]:
        """All chats, most recently updated first."""
        data = await self._request("GET", "/api/chats", operation="list_chats")
        chats = [self._parse(Chat, item, "list_chats") for item in data or []]
        return sorted(chats, key=lambda c: c.updated_at, reverse=True)

    async def get_chat(self, chat_id: str) -> Chat | None:
        data = await self._request("GET", f"/api/chats/{chat_id}", operation="get_chat")
        return self._parse(Chat, data, "get_chat") if data else None

    async def create_chat(
        self,
        title: str = NEW_CHAT_TITLE,
        initial_message: str | None = None,
        project_id: str | None = None,
    ) -> Chat:
        """Create a chat, optionally seeded with the first user message."""
        body: dict[str, Any] = {"title": title}
        if initial_message is not None:
            body["message"] = initial_message
        if project_id is not None:
            body["projectId"] = project_id
        data = await self._request("POST", "/api/chats", operation="create_chat", json=body)
        if not data:
            raise HistoryStoreError("Chat creation returned no chat", operation="create_chat")
        return self._parse(Chat, data, "create_chat")

    async def get_messages(self, chat_id: str) -> list[Message]:
        """Stored messages of a chat (empty when the chat does not exist)."""
        data = await self._request(
            "GET", f"/api/chats/{chat_id}/messages", operation="get_messages"
        )
        return [self._parse(Message, item, "get_messages") for item in data or []]

    async def add_message(self, message: Message, chat_id: str) -> Message | None:
        """Store one message in a chat.

        Returns:
            The stored message as echoed by the server, or None if the
            server returned no body.
        """
        data = await self._request(
            "POST",
            f"/api/chats/{chat_id}/messages",
            operation="add_message",
            json=message.to_history_payload(),
        )
        return self._parse(Message, data, "add_message") if data else None

    @staticmethod
    def _parse(model: type[Any], data: Any, operation: str) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise HistoryStoreError(
                f"Unexpected {model.__name__} payload from history API",
                operation=operation,
            ) from e
