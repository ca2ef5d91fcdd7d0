"""
runtime.py - Host runtime detection, transport resolution and file building.

Everything here is resolved once, when a client is constructed:

* which kind of runtime the interpreter is embedded in (regular server
  process, a browser page via Pyodide, a web worker, an edge function),
* the ``fetch`` coroutine used to send requests,
* whether the restricted-browser guard applies.
"""

from __future__ import annotations

import functools
import io
import mimetypes
import os
import sys
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterable, Awaitable, Callable, Iterable, Optional, Tuple, Union

import httpx

from .errors import SVECTORError

# Sends a prepared request and returns a response whose body may still be unread.
FetchFunction = Callable[[httpx.Request], Awaitable[httpx.Response]]

# (filename, content, content type) - the shape httpx accepts in ``files=``.
FileTuple = Tuple[str, bytes, str]

FileInput = Union[str, bytes, bytearray, memoryview, io.IOBase, Iterable[bytes], AsyncIterable[bytes], FileTuple]


class RuntimeKind(str, Enum):
    SERVER = "server"
    BROWSER = "browser"
    WORKER = "worker"
    EDGE = "edge"


def detect_runtime(platform: str = None) -> RuntimeKind:
    """Probe the interpreter once. Only WebAssembly builds can be in a browser."""
    platform = platform or sys.platform
    if platform != "emscripten":
        return RuntimeKind.SERVER

    try:
        import js  # type: ignore[import-not-found]
    except ImportError:
        return RuntimeKind.EDGE

    if getattr(js, "EdgeRuntime", None) is not None:
        return RuntimeKind.EDGE
    if getattr(js, "document", None) is not None:
        return RuntimeKind.BROWSER
    if getattr(js, "importScripts", None) is not None:
        return RuntimeKind.WORKER
    return RuntimeKind.EDGE


def check_browser_usage(runtime: RuntimeKind, dangerously_allow_browser: bool = False) -> None:
    """Refuse to run in a browser page unless the caller opted in."""
    if runtime is RuntimeKind.BROWSER and not dangerously_allow_browser:
        raise SVECTORError(
            "The SVECTOR client is being used in a browser environment without "
            "dangerously_allow_browser=True. This is strongly discouraged as it exposes "
            "your API key to client-side code. If you understand the risks, pass "
            "dangerously_allow_browser=True to the client."
        )


def resolve_fetch(
    fetch: Optional[FetchFunction] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    runtime: RuntimeKind = RuntimeKind.SERVER,
) -> Tuple[FetchFunction, Optional[httpx.AsyncClient]]:
    """Pick the transport. Returns the fetch function and the client we own, if any."""
    if fetch is not None:
        return fetch, None
    if http_client is not None:
        return functools.partial(http_client.send, stream=True), None
    if runtime is RuntimeKind.SERVER:
        # Deadlines are enforced per request by the engine.
        owned = httpx.AsyncClient(timeout=None)
        return functools.partial(owned.send, stream=True), owned

    raise SVECTORError(
        f"No HTTP transport available for the {runtime.value} runtime. "
        "Pass fetch= (an async callable taking an httpx.Request) or http_client= "
        "when constructing the client."
    )


# =============================================================================
# File construction
# =============================================================================

def _guess_type(filename: str, fallback: str) -> str:
    return mimetypes.guess_type(filename)[0] or fallback


async def to_file(value: FileInput, filename: str = None, content_type: str = None) -> FileTuple:
    """Turn strings, bytes, file objects or byte streams into an upload tuple."""
    if isinstance(value, tuple):
        name, data = value[0], value[1]
        ctype = value[2] if len(value) > 2 else None
        data = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        name = filename or name
        return name, data, content_type or ctype or _guess_type(name, "application/octet-stream")

    if isinstance(value, str):
        name = filename or "file.txt"
        return name, value.encode("utf-8"), content_type or "text/plain"

    if isinstance(value, (bytes, bytearray, memoryview)):
        name = filename or "file"
        return name, bytes(value), content_type or _guess_type(name, "application/octet-stream")

    if isinstance(value, httpx.Response):
        data = await value.aread()
        name = filename or "file"
        return name, data, content_type or value.headers.get("content-type") or "application/octet-stream"

    if hasattr(value, "read"):
        data = value.read()
        if isinstance(data, str):
            data = data.encode("utf-8")
        name = filename or os.path.basename(getattr(value, "name", "") or "") or "file"
        return name, data, content_type or _guess_type(name, "application/octet-stream")

    if hasattr(value, "__aiter__"):
        chunks = [bytes(chunk) async for chunk in value]
    elif hasattr(value, "__iter__"):
        chunks = [bytes(chunk) for chunk in value]
    else:
        raise TypeError(f"Unsupported input type for to_file(): {type(value).__name__}")

    name = filename or "file"
    return name, b"".join(chunks), content_type or _guess_type(name, "application/octet-stream")


@dataclass
class RuntimeAdapter:
    """Capabilities resolved for one client instance."""

    kind: RuntimeKind
    fetch: FetchFunction
    owned_client: Optional[httpx.AsyncClient] = None
    to_file: Callable[..., Awaitable[FileTuple]] = to_file

    @property
    def is_restricted_browser(self) -> bool:
        return self.kind is RuntimeKind.BROWSER

    @classmethod
    def create(
        cls,
        fetch: Optional[FetchFunction] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        runtime: Optional[RuntimeKind] = None,
        dangerously_allow_browser: bool = False,
    ) -> "RuntimeAdapter":
        kind = runtime or detect_runtime()
        check_browser_usage(kind, dangerously_allow_browser)
        fetch_fn, owned = resolve_fetch(fetch, http_client, kind)
        return cls(kind=kind, fetch=fetch_fn, owned_client=owned)

    async def aclose(self) -> None:
        if self.owned_client is not None:
            await self.owned_client.aclose()
