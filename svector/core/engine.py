"""
engine.py - HTTP request orchestration: URL and header building, deadlines,
status classification and exponential-backoff retries.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx

from .. import __version__
from ..config import ClientConfig
from .errors import (
    APIConnectionError,
    APIConnectionTimeoutError,
    APIError,
    SVECTORError,
    error_from_status,
    extract_error_message,
    is_retryable_status,
)
from .runtime import FetchFunction, FileTuple

logger = logging.getLogger(__name__)

USER_AGENT = f"svector-python/{__version__}"
REQUEST_ID_HEADER = "x-request-id"
MAX_BACKOFF = 8.0


@dataclass(frozen=True)
class RequestOptions:
    """Per-call overrides. Unset fields fall back to the client configuration."""

    headers: Optional[Mapping[str, str]] = None
    query: Optional[Mapping[str, Any]] = None
    timeout: Optional[float] = None
    max_retries: Optional[int] = None

    def with_headers(self, defaults: Mapping[str, str]) -> "RequestOptions":
        """Return a copy whose headers are ``defaults`` overlaid by our own."""
        return replace(self, headers={**defaults, **(self.headers or {})})


@dataclass
class MultipartForm:
    """A multipart/form-data body; passed to the transport without JSON encoding."""

    fields: Dict[str, str] = field(default_factory=dict)
    files: Dict[str, FileTuple] = field(default_factory=dict)


def backoff_delay(retries: int, cap: float = MAX_BACKOFF) -> float:
    """Seconds to wait before retry number ``retries``."""
    return min(2 ** retries * 1.0, cap)


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


def attach_request_id(payload: Any, response: httpx.Response) -> Any:
    request_id = response.headers.get(REQUEST_ID_HEADER)
    if request_id and isinstance(payload, dict):
        payload["_request_id"] = request_id
    return payload


def error_from_response(response: httpx.Response) -> SVECTORError:
    """Classify a non-2xx response whose body has already been read."""
    try:
        body = response.json()
    except ValueError:
        body = None
    message = extract_error_message(body, response.status_code, response.reason_phrase)
    return error_from_status(
        response.status_code,
        message,
        request_id=response.headers.get(REQUEST_ID_HEADER),
        headers=response.headers,
    )


class RequestEngine:
    """Issues requests against the configured base URL."""

    def __init__(self, config: ClientConfig, fetch: FetchFunction):
        self._config = config
        self._fetch = fetch

    @property
    def config(self) -> ClientConfig:
        return self._config

    # --------------------------------------------------------------------------
    # Request building
    # --------------------------------------------------------------------------

    def build_url(self, path: str, query: Mapping[str, Any] = None) -> httpx.URL:
        url = httpx.URL(f"{self._config.base_url}{path}")
        if query:
            url = url.copy_merge_params(dict(query))
        return url

    def build_headers(self, body: Any = None, headers: Mapping[str, str] = None) -> Dict[str, str]:
        result = {
            "Authorization": f"Bearer {self._config.api_key}",
            "User-Agent": USER_AGENT,
        }
        result.update(self._config.default_headers)
        if headers:
            result.update(headers)

        has_content_type = any(key.lower() == "content-type" for key in result)
        if body is not None and not isinstance(body, MultipartForm) and not has_content_type:
            result["Content-Type"] = "application/json"
        return result

    def build_request(
        self,
        method: str,
        path: str,
        body: Any = None,
        options: RequestOptions = None,
        accept: str = None,
    ) -> httpx.Request:
        options = options or RequestOptions()
        url = self.build_url(path, options.query)
        headers = self.build_headers(body, options.headers)
        if accept:
            headers["Accept"] = accept

        if isinstance(body, MultipartForm):
            return httpx.Request(method.upper(), url, headers=headers, data=body.fields, files=body.files)
        content = json.dumps(body).encode("utf-8") if body is not None else None
        return httpx.Request(method.upper(), url, headers=headers, content=content)

    # --------------------------------------------------------------------------
    # Execution
    # --------------------------------------------------------------------------

    async def send(self, request: httpx.Request, timeout: float, stream: bool = False) -> httpx.Response:
        """One attempt under a deadline. Non-streaming bodies are fully read."""

        async def attempt() -> httpx.Response:
            response = await self._fetch(request)
            if not stream:
                try:
                    await response.aread()
                finally:
                    await response.aclose()
            return response

        try:
            return await asyncio.wait_for(attempt(), timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise APIConnectionTimeoutError(f"Request timed out after {timeout:g}s") from exc
        except (httpx.TransportError, OSError) as exc:
            # Plain socket errors from a caller-supplied fetch
            raise APIConnectionError(f"Connection error: {exc}") from exc

    async def execute(self, method: str, path: str, body: Any = None, options: RequestOptions = None) -> Any:
        """Send a request and return the parsed JSON payload."""
        payload, _ = await self.execute_with_response(method, path, body, options)
        return payload

    async def execute_with_response(
        self,
        method: str,
        path: str,
        body: Any = None,
        options: RequestOptions = None,
    ) -> Tuple[Any, httpx.Response]:
        """Like execute(), also returning the final httpx.Response."""
        options = options or RequestOptions()
        max_retries = self._config.max_retries if options.max_retries is None else options.max_retries
        timeout = self._config.timeout if options.timeout is None else options.timeout

        retries = 0
        while True:
            request = self.build_request(method, path, body, options)
            logger.debug("%s %s (attempt %d/%d)", request.method, request.url, retries + 1, max_retries + 1)
            response = await self.send(request, timeout)

            if response.is_success:
                return self.parse_success(response), response

            error = error_from_response(response)
            if not is_retryable_status(error.status):
                raise error
            if retries >= max_retries:
                raise APIConnectionError(
                    f"Max retries exceeded ({max_retries}). Last error: {error}",
                    request_id=error.request_id,
                    headers=error.headers,
                ) from error

            retries += 1
            delay = backoff_delay(retries)
            logger.warning(
                "%s %s returned %s, retry %d/%d in %.1fs",
                request.method, request.url, error.status, retries, max_retries, delay,
            )
            await _sleep(delay)

    async def stream(
        self,
        method: str,
        path: str,
        body: Any = None,
        options: RequestOptions = None,
    ) -> httpx.Response:
        """Open a streaming response. The caller owns closing it."""
        options = options or RequestOptions()
        timeout = self._config.timeout if options.timeout is None else options.timeout

        request = self.build_request(method, path, body, options, accept="text/event-stream")
        logger.debug("%s %s (stream)", request.method, request.url)
        response = await self.send(request, timeout, stream=True)

        if not response.is_success:
            try:
                await response.aread()
            finally:
                await response.aclose()
            raise error_from_response(response)
        return response

    def parse_success(self, response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            payload = response.json()
        except ValueError as exc:
            raise APIError(
                f"Invalid JSON in response: {response.text[:200]}",
                status=response.status_code,
                request_id=response.headers.get(REQUEST_ID_HEADER),
                headers=response.headers,
            ) from exc
        return attach_request_id(payload, response)
