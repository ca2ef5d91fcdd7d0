"""
client.py - The SVECTOR client: configuration, transport and resources.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

import httpx

from ..config import ClientConfig, EnvironmentProvider
from .api import ChatCompletions, Conversations, Files, Knowledge, Models
from .engine import RequestEngine, RequestOptions
from .runtime import FetchFunction, RuntimeAdapter, RuntimeKind
from .vision import Vision, VisionFailover


class Client:
    """
    Async client for the SVECTOR Spec-Chat API.

    Usage:
        async with Client(api_key="...") as client:
            # Chat
            response = await client.chat.create(
                model="spec-3-turbo",
                messages=[{"role": "user", "content": "Hello!"}],
            )
            print(response.content)

            # Streaming
            async with await client.chat.create_stream(model="spec-3-turbo", messages=[...]) as stream:
                async for event in stream:
                    print(event.choices[0].delta.content or "", end="")

            # Conversations
            reply = await client.conversations.create(
                model="spec-3-turbo", instructions="Be brief.", input="What is SSE?",
            )

            # Vision
            result = await client.vision.analyze_from_url("https://example.com/cat.jpg")
    """

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        timeout: float = None,
        max_retries: int = None,
        fetch: Optional[FetchFunction] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        runtime: Optional[RuntimeKind] = None,
        dangerously_allow_browser: bool = False,
        vision_timeout: float = None,
        vision_max_retries: int = None,
        vision_fallback_urls: Sequence[str] = None,
        default_headers: Dict[str, str] = None,
        environ: EnvironmentProvider = None,
    ):
        self._config = ClientConfig.resolve(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
            dangerously_allow_browser=dangerously_allow_browser,
            vision_timeout=vision_timeout,
            vision_max_retries=vision_max_retries,
            vision_fallback_urls=vision_fallback_urls,
            default_headers=default_headers,
            environ=environ,
        )
        self._runtime = RuntimeAdapter.create(
            fetch=fetch,
            http_client=http_client,
            runtime=runtime,
            dangerously_allow_browser=self._config.dangerously_allow_browser,
        )
        self._engine = RequestEngine(self._config, self._runtime.fetch)

        # Resource namespaces
        self.chat = ChatCompletions(self._engine)
        self.conversations = Conversations(self.chat)
        self.models = Models(self._engine)
        self.files = Files(self._engine, file_factory=self._runtime.to_file)
        self.knowledge = Knowledge(self._engine)
        self.vision = Vision(VisionFailover(self._engine))

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def runtime(self) -> RuntimeAdapter:
        return self._runtime

    @property
    def base_url(self) -> str:
        return self._config.base_url

    # Raw access for endpoints without a wrapper

    async def request(self, method: str, path: str, body: Any = None, options: RequestOptions = None) -> Any:
        return await self._engine.execute(method, path, body, options)

    async def get(self, path: str, options: RequestOptions = None) -> Any:
        return await self.request("GET", path, options=options)

    async def post(self, path: str, body: Any = None, options: RequestOptions = None) -> Any:
        return await self.request("POST", path, body, options)

    async def put(self, path: str, body: Any = None, options: RequestOptions = None) -> Any:
        return await self.request("PUT", path, body, options)

    async def delete(self, path: str, options: RequestOptions = None) -> Any:
        return await self.request("DELETE", path, options=options)

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        await self._runtime.aclose()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    def __repr__(self):
        return f"Client(base_url={self.base_url!r}, api_key={'***' if self._config.api_key else None!r})"


SVECTOR = Client
