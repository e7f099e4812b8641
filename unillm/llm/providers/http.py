"""
Shared HTTP plumbing for provider adapters.

``HTTPProvider`` owns the parts every vendor adapter repeats: JSON POSTs,
Server-Sent-Event decoding, retries on transient failures and mapping HTTP
status codes onto ``unillm.errors``.  Subclasses only describe their wire
format (``render_payload``, ``parse_completion_response``, ``build_chunk``).

Dependencies: ``httpx`` (async HTTP client).
"""

from __future__ import annotations

import json
import logging
from abc import abstractmethod
from typing import TYPE_CHECKING, AsyncIterator

import httpx

from unillm.errors import ConnectionFailedError, ProviderError, error_for_status
from unillm.llm.providers.base import Provider
from unillm.llm.types import Chunk, Message

if TYPE_CHECKING:
    from unillm.config import UnillmConfig
    from unillm.tools.base import Tool

logger = logging.getLogger(__name__)

_STREAM_ERROR_STATUS = {
    "invalid_request_error": 400,
    "authentication_error": 401,
    "permission_error": 403,
    "rate_limit_error": 429,
    "api_error": 500,
    "overloaded_error": 529,
}


class HTTPProvider(Provider):
    """
    Base class for adapters that talk JSON over HTTP.

    Parameters
    ----------
    api_base:
        Base URL of the API, e.g. ``"https://api.openai.com/v1"``.
    api_key:
        Credential sent by ``headers()``.  Pass ``""`` for local endpoints.
    timeout:
        HTTP request timeout in seconds.
    max_retries:
        Number of automatic retries on transient HTTP errors (5xx, 429)
        and connection failures.
    transport:
        Optional ``httpx`` transport, mainly for tests.
    """

    def __init__(
        self,
        api_base: str,
        api_key: str = "",
        timeout: float = 120.0,
        max_retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_base = api_base.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._transport = transport

    @classmethod
    def from_config(cls, config: UnillmConfig, **kwargs) -> HTTPProvider:
        settings = config.provider(cls.default_slug())
        return cls(
            api_base=settings.api_base,
            api_key=settings.api_key(),
            timeout=float(settings.timeout_seconds),
            max_retries=settings.max_retries,
            **kwargs,
        )

    @classmethod
    def default_slug(cls) -> str:
        return cls.__name__.lower().removesuffix("provider")

    @property
    def slug(self) -> str:
        return self.default_slug()

    # ------------------------------------------------------------------
    # Wire format hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def completion_url(self, model_id: str) -> str:
        """Path (relative to ``api_base``) of the chat endpoint."""
        ...

    def stream_url(self, model_id: str) -> str:
        return self.completion_url(model_id)

    @abstractmethod
    def render_payload(
        self,
        messages: list[Message],
        tools: list[Tool],
        model_id: str,
        temperature: float | None,
        stream: bool,
    ) -> dict:
        ...

    @abstractmethod
    def parse_completion_response(self, data: dict) -> Message:
        ...

    @abstractmethod
    def build_chunk(self, data: dict) -> Chunk | None:
        """Convert one decoded SSE payload into a ``Chunk`` (``None`` to skip)."""
        ...

    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def parse_error(self, body: str) -> str | None:
        """Pull a human-readable message out of an error body."""
        if not body:
            return None
        try:
            data = json.loads(body)
        except json.JSONDecodeError:
            return body
        if isinstance(data, dict):
            err = data.get("error")
            if isinstance(err, dict):
                return err.get("message")
            if isinstance(err, str):
                return err
            return data.get("message")
        if isinstance(data, list):
            parts = [
                p["error"].get("message", "")
                for p in data
                if isinstance(p, dict) and isinstance(p.get("error"), dict)
            ]
            return ". ".join(parts) or None
        return body

    def parse_streaming_error(self, data: dict) -> tuple[int, str | None]:
        err = data.get("error", data)
        if not isinstance(err, dict):
            return 500, str(err)
        status = _STREAM_ERROR_STATUS.get(err.get("type", ""), 500)
        return status, err.get("message")

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    async def complete(
        self,
        messages: list[Message],
        tools: list[Tool],
        model_id: str,
        *,
        temperature: float | None = None,
    ) -> Message:
        body = self.render_payload(messages, tools, model_id, temperature, False)
        url = self._url(self.completion_url(model_id))
        data = await self._post_json(url, body)
        return self.parse_completion_response(data)

    async def stream(
        self,
        messages: list[Message],
        tools: list[Tool],
        model_id: str,
        *,
        temperature: float | None = None,
    ) -> AsyncIterator[Chunk]:
        body = self.render_payload(messages, tools, model_id, temperature, True)
        url = self._url(self.stream_url(model_id))
        headers = {**self.headers(), "Accept": "text/event-stream"}

        last_error: Exception | None = None
        delivered = False
        for attempt in range(1 + self._max_retries):
            try:
                async with self._client() as client:
                    async with client.stream(
                        "POST", url, json=body, headers=headers
                    ) as response:
                        if response.status_code >= 400:
                            raw = (await response.aread()).decode("utf-8", errors="replace")
                            error = self._error_for(response, raw)
                            if self._retryable(response.status_code) and attempt < self._max_retries:
                                logger.warning(
                                    "Retrying stream after HTTP %s (attempt %d)",
                                    response.status_code,
                                    attempt + 1,
                                )
                                last_error = error
                                continue
                            raise error

                        async for chunk in self._parse_sse_stream(response):
                            delivered = True
                            yield chunk
                        return
            except httpx.TransportError as exc:
                last_error = exc
                # Only retry before the first chunk reaches the consumer.
                if not delivered and attempt < self._max_retries:
                    logger.warning("Retrying stream after %s (attempt %d)", exc, attempt + 1)
                    continue
                raise ConnectionFailedError(str(exc) or type(exc).__name__) from exc

        if last_error is not None:
            raise last_error

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._api_base}/{path.lstrip('/')}"

    @staticmethod
    def _retryable(status_code: int) -> bool:
        return status_code == 429 or status_code >= 500

    def _error_for(self, response: httpx.Response, body: str) -> ProviderError:
        message = self.parse_error(body)
        error = error_for_status(response.status_code, message, response)
        if error is None:
            error = ProviderError(message, response=response)
        return error

    async def _post_json(self, url: str, body: dict) -> dict:
        last_error: Exception | None = None
        for attempt in range(1 + self._max_retries):
            try:
                async with self._client() as client:
                    resp = await client.post(url, json=body, headers=self.headers())
            except httpx.TransportError as exc:
                last_error = exc
                if attempt < self._max_retries:
                    logger.warning("Retrying request after %s (attempt %d)", exc, attempt + 1)
                    continue
                raise ConnectionFailedError(str(exc) or type(exc).__name__) from exc

            if resp.status_code >= 400:
                error = self._error_for(resp, resp.text)
                if self._retryable(resp.status_code) and attempt < self._max_retries:
                    logger.warning(
                        "Retrying request after HTTP %s (attempt %d)",
                        resp.status_code,
                        attempt + 1,
                    )
                    last_error = error
                    continue
                raise error

            try:
                return resp.json()
            except json.JSONDecodeError as exc:
                raise ProviderError(
                    f"Malformed response body: {exc}", response=resp
                ) from exc

        if last_error is not None:
            raise last_error
        raise RuntimeError("unreachable")  # pragma: no cover

    async def _iter_sse_events(
        self, response: httpx.Response
    ) -> AsyncIterator[tuple[str | None, str]]:
        """
        Decode Server-Sent Events into ``(event, data)`` pairs.

        Events are separated by blank lines; multi-line ``data:`` fields are
        joined with newlines.  Comment lines (``:``) are ignored.
        """
        event: str | None = None
        data_lines: list[str] = []
        async for line in response.aiter_lines():
            line = line.rstrip("\r")
            if not line:
                if data_lines:
                    yield event, "\n".join(data_lines)
                event, data_lines = None, []
                continue
            if line.startswith(":"):
                continue
            field, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
            if field == "event":
                event = value
            elif field == "data":
                data_lines.append(value)
        if data_lines:
            yield event, "\n".join(data_lines)

    async def _parse_sse_stream(self, response: httpx.Response) -> AsyncIterator[Chunk]:
        async for event, data in self._iter_sse_events(response):
            if data == "[DONE]":
                return
            try:
                payload = json.loads(data)
            except json.JSONDecodeError as exc:
                raise ProviderError(
                    f"Malformed stream frame: {data[:200]}", response=response
                ) from exc

            if event == "error":
                status, message = self.parse_streaming_error(payload)
                raise error_for_status(status, message, response) or ProviderError(
                    message, response=response
                )

            chunk = self.build_chunk(payload)
            if chunk is not None:
                yield chunk
