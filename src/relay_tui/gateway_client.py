"""HTTP client for the messaging gateway.

All requests carry the X-Api-Key header, go through the retry handler and
report their outcome to an optional NetworkMonitor. HTTP failures are mapped
onto the exception hierarchy in errors.py so callers never see raw aiohttp
exceptions.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any
from urllib.parse import quote

import aiohttp

from .chat_types import ChatSummary, Message, SessionInfo, SessionPresence, serialized_id
from .errors import (
    AuthError,
    GatewayAPIError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RelayError,
    ServerError,
    ValidationError,
)
from .network import NetworkMonitor
from .retry_handler import RetryConfig, RetryHandler, SleepFn
from .utils import Config

logger = logging.getLogger(__name__)


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def error_for_status(
    status: int,
    body: str = "",
    *,
    retry_after: float | None = None,
    context: dict[str, Any] | None = None,
) -> RelayError:
    """Build the typed exception for an HTTP error status.

    Args:
        status: HTTP status code (>= 400)
        body: Response body, used as the message when present
        retry_after: Parsed Retry-After header for 429 responses
        context: Request details (method, path)

    Returns:
        Exception instance carrying the status
    """
    message = body.strip()[:200] or None
    if status in (401, 403):
        return AuthError(message, status=status, context=context)
    if status == 404:
        return NotFoundError(message, status=status, context=context)
    if status == 429:
        return RateLimitError(message, retry_after=retry_after, status=status, context=context)
    if status >= 500:
        return ServerError(message, status=status, context=context)
    return GatewayAPIError(message, status=status, context=context)


class GatewayClient:
    """Async client for the gateway REST API."""

    def __init__(
        self,
        config: Config,
        http_session: aiohttp.ClientSession | None = None,
        network_monitor: NetworkMonitor | None = None,
        retry_config: RetryConfig | None = None,
        rng: random.Random | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """Initialize gateway client.

        Args:
            config: Runtime configuration (gateway URL, API key, timeouts)
            http_session: Shared aiohttp session; one is created lazily if None
            network_monitor: Receives success/failure of each request
            retry_config: Retry policy (config.retry_config() if None)
            rng: Random source for retry jitter
            sleep: Coroutine function used between retries
        """
        self.config = config
        self.base_url = config.gateway_url.rstrip("/")
        self.network_monitor = network_monitor
        self.retry_handler = RetryHandler(
            retry_config or config.retry_config(), rng=rng, sleep=sleep
        )
        self._http_session = http_session
        self._owns_session = http_session is None

    async def __aenter__(self) -> GatewayClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.config.api_key:
            headers["X-Api-Key"] = self.config.api_key
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._http_session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_seconds)
            self._http_session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._http_session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._http_session is not None:
            await self._http_session.close()
        self._http_session = None

    async def _request_once(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None,
        payload: dict[str, Any] | None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        context = {"method": method, "path": path}
        try:
            async with self._get_session().request(
                method, url, params=params, json=payload, headers=self._headers()
            ) as response:
                body = await response.text()
                if response.status >= 400:
                    self._mark_online()
                    raise error_for_status(
                        response.status,
                        body,
                        retry_after=_parse_retry_after(response.headers.get("Retry-After")),
                        context=context,
                    )
                self._mark_online()
                if not body:
                    return None
                try:
                    return await response.json(content_type=None)
                except ValueError as err:
                    raise GatewayAPIError(
                        f"Invalid JSON from {method} {path}",
                        status=response.status,
                        context=context,
                    ) from err
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as err:
            if self.network_monitor is not None:
                self.network_monitor.mark_failure()
            raise NetworkError(
                f"{method} {path} failed: {err or type(err).__name__}", context=context
            ) from err

    def _mark_online(self) -> None:
        if self.network_monitor is not None:
            self.network_monitor.mark_online()

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        """Perform a request under the retry policy and return decoded JSON.

        Raises:
            RelayError: Subclass matching the failure once retries are exhausted
        """
        name = f"{method} {path}"
        logger.debug(f"Gateway request {name}", extra={"extra_context": {"params": params}})
        return await self.retry_handler.execute(
            lambda: self._request_once(method, path, params, payload), name=name
        )

    # Sessions

    async def list_sessions(self) -> list[SessionInfo]:
        """List all sessions known to the gateway."""
        data = await self.request("GET", "/api/sessions", params={"all": "true"})
        return [SessionInfo.from_payload(item) for item in data or [] if isinstance(item, dict)]

    async def get_me(self, session: str) -> str | None:
        """Return the account id of a session, or None if it is not logged in."""
        data = await self.request("GET", f"/api/sessions/{quote(session)}/me")
        if not isinstance(data, dict):
            return None
        return serialized_id(data.get("id")) or None

    # Chats and messages

    async def list_chats(
        self, session: str, limit: int | None = None, offset: int | None = None
    ) -> list[ChatSummary]:
        """Fetch the chat overview (chat list with last messages)."""
        params: dict[str, Any] = {}
        if limit is not None:
            params["limit"] = limit
        if offset is not None:
            params["offset"] = offset
        data = await self.request(
            "GET", f"/api/{quote(session)}/chats/overview", params=params or None
        )
        return [ChatSummary.from_payload(item) for item in data or [] if isinstance(item, dict)]

    async def get_messages(
        self, session: str, chat_id: str, limit: int | None = None
    ) -> list[Message]:
        """Fetch the most recent messages of a chat, oldest first."""
        params = {
            "limit": limit or self.config.messages_page_size,
            "downloadMedia": "false",
        }
        data = await self.request(
            "GET",
            f"/api/{quote(session)}/chats/{quote(chat_id, safe='@.')}/messages",
            params=params,
        )
        messages = [
            Message.from_payload(item, chat_id=chat_id)
            for item in data or []
            if isinstance(item, dict)
        ]
        return sorted(messages, key=lambda m: m.timestamp)

    async def send_text(self, session: str, chat_id: str, text: str) -> Message:
        """Send a text message and return the gateway's record of it.

        Raises:
            ValidationError: If text is empty
        """
        if not text.strip():
            raise ValidationError("Cannot send an empty message")
        data = await self.request(
            "POST",
            "/api/sendText",
            payload={"session": session, "chatId": chat_id, "text": text},
        )
        if isinstance(data, dict):
            return Message.from_payload(data, chat_id=chat_id)
        return Message(id="", chat_id=chat_id, body=text, from_me=True)

    # Presence

    async def set_presence(self, session: str, presence: SessionPresence) -> None:
        """Announce this session as online or offline."""
        await self.request(
            "POST",
            f"/api/{quote(session)}/presence",
            payload={"presence": presence.value},
        )

    async def subscribe_presence(self, session: str, chat_id: str) -> None:
        """Ask the gateway to stream presence.update events for a chat."""
        await self.request(
            "POST", f"/api/{quote(session)}/presence/{quote(chat_id, safe='@.')}/subscribe"
        )
