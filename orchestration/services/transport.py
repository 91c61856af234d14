"""httpx-based transport for the AI API: single requests and SSE chunk streams."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, Optional, Union

import httpx

from ..config import settings
from ..errors import OrchestrationServiceError, StreamIntegrityError
from .cancellation import CancellationToken, run_cancellable

logger = logging.getLogger(__name__)

RESOURCE_GROUP_HEADER = "AI-Resource-Group"
_SSE_DATA_PREFIX = "data:"
_SSE_DONE = "[DONE]"


@dataclass(frozen=True)
class Endpoint:
    """Path relative to the AI API base URL plus the resource group to send it to."""

    url: str
    resource_group: Optional[str] = None


@dataclass
class RequestConfig:
    """Per-call overrides for a transport request."""

    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    timeout: Optional[float] = None
    serializer: Optional[Callable[[Dict[str, Any]], Union[str, bytes]]] = None
    cancellation: Optional[CancellationToken] = None


class SseChunkStream:
    """Async iterator of parsed JSON chunks read from a server-sent event response.

    Owns the response and its client; `aclose` releases both and is safe to call
    more than once.
    """

    def __init__(self, response: httpx.Response, client: httpx.AsyncClient) -> None:
        self._response = response
        self._client = client
        self._lines: AsyncIterator[str] = response.aiter_lines()
        self._done = False
        self._closed = False

    def __aiter__(self) -> "SseChunkStream":
        return self

    async def __anext__(self) -> Dict[str, Any]:
        if self._done or self._closed:
            raise StopAsyncIteration
        async for line in self._lines:
            line = line.strip()
            if not line or line.startswith(":"):
                continue
            if not line.startswith(_SSE_DATA_PREFIX):
                # event:, id: and retry: fields carry nothing the client needs.
                continue
            data = line[len(_SSE_DATA_PREFIX):].strip()
            if data == _SSE_DONE:
                self._done = True
                raise StopAsyncIteration
            return self._decode(data)
        raise StreamIntegrityError("Stream ended before the [DONE] marker was received")

    @staticmethod
    def _decode(data: str) -> Dict[str, Any]:
        try:
            payload = json.loads(data)
        except json.JSONDecodeError as exc:
            raise StreamIntegrityError(f"Received a chunk that is not valid JSON: {data[:200]!r}") from exc
        if not isinstance(payload, dict):
            raise StreamIntegrityError(f"Received a chunk that is not a JSON object: {data[:200]!r}")
        if "orchestration_result" not in payload and "code" in payload and "message" in payload:
            raise OrchestrationServiceError(payload)
        if isinstance(payload.get("error"), dict):
            raise OrchestrationServiceError(payload["error"])
        return payload

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._lines.aclose()  # type: ignore[attr-defined]
            await self._response.aclose()
        finally:
            await self._client.aclose()


class HttpTransport:
    """Executes requests against the AI API base URL with bearer authentication."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        auth_token: Optional[str] = None,
        resource_group: Optional[str] = None,
        timeout: Optional[float] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        raw_base = (base_url or settings.base_url or "").strip()
        if not raw_base:
            raise RuntimeError("AICORE_BASE_URL missing; set the AI API base URL")
        if not raw_base.startswith(("http://", "https://")):
            raise RuntimeError("AICORE_BASE_URL must include http/https scheme")
        self._base_url = raw_base.rstrip("/")
        self._auth_token = auth_token if auth_token is not None else settings.auth_token
        self._resource_group = resource_group or settings.resource_group
        self._timeout = timeout if timeout is not None else settings.request_timeout
        self._http_transport = http_transport

    def _client(self, timeout: Optional[float]) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout if timeout is not None else self._timeout,
            transport=self._http_transport,
        )

    def _headers(self, resource_group: Optional[str], extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            RESOURCE_GROUP_HEADER: resource_group or self._resource_group,
        }
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"
        if extra:
            headers.update(extra)
        return headers

    @staticmethod
    def _serialize(body: Dict[str, Any], request_config: RequestConfig) -> Union[str, bytes]:
        if request_config.serializer is not None:
            return request_config.serializer(body)
        return json.dumps(body)

    async def execute(
        self,
        endpoint: Endpoint,
        body: Dict[str, Any],
        request_config: Optional[RequestConfig] = None,
    ) -> httpx.Response:
        """POST `body` and return the fully read response; HTTP errors are raised."""

        request_config = request_config or RequestConfig()
        headers = self._headers(endpoint.resource_group, request_config.headers)
        content = self._serialize(body, request_config)
        logger.info("POST %s (resource group %s)", endpoint.url, headers[RESOURCE_GROUP_HEADER])
        async with self._client(request_config.timeout) as client:
            response = await run_cancellable(
                request_config.cancellation,
                client.post(endpoint.url, content=content, headers=headers, params=request_config.params),
            )
            response.raise_for_status()
            return response

    async def open_stream(
        self,
        endpoint: Endpoint,
        body: Dict[str, Any],
        request_config: Optional[RequestConfig] = None,
    ) -> SseChunkStream:
        """POST `body` and return the event stream once the response headers arrive."""

        request_config = request_config or RequestConfig()
        headers = self._headers(endpoint.resource_group, request_config.headers)
        headers["Accept"] = "text/event-stream"
        client = self._client(request_config.timeout)
        request = client.build_request(
            "POST",
            endpoint.url,
            content=self._serialize(body, request_config),
            headers=headers,
            params=request_config.params,
        )
        logger.info("POST %s as stream (resource group %s)", endpoint.url, headers[RESOURCE_GROUP_HEADER])
        try:
            response = await run_cancellable(request_config.cancellation, client.send(request, stream=True))
        except BaseException:
            await client.aclose()
            raise

        if response.is_error:
            try:
                await response.aread()
            finally:
                await response.aclose()
                await client.aclose()
            response.raise_for_status()
        return SseChunkStream(response, client)

    async def get_json(
        self,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        resource_group: Optional[str] = None,
    ) -> Any:
        headers = self._headers(resource_group)
        async with self._client(None) as client:
            resp = await client.get(path, params=params, headers=headers)
            resp.raise_for_status()
            return resp.json()
