"""
streaming.py - Server-Sent Events decoding for streamed chat completions.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import AsyncIterator, Dict, List, Optional

import httpx

from .errors import SVECTORError
from .models import ChatCompletion, ChatMessage, Choice, StreamEvent, parse_stream_event

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_LINE = "data: [DONE]"


class _Done(Exception):
    pass


def _decode_line(line: str) -> Optional[dict]:
    """Return the JSON object carried by one SSE line, or None to skip it."""
    line = line.strip()
    if not line:
        return None
    if line == DONE_LINE:
        raise _Done()
    if not line.startswith(DATA_PREFIX):
        return None
    try:
        data = json.loads(line[len(DATA_PREFIX):])
    except json.JSONDecodeError:
        # Malformed payloads are dropped to keep the stream alive.
        return None
    return data if isinstance(data, dict) else None


async def iter_sse_events(response: httpx.Response) -> AsyncIterator[StreamEvent]:
    """Yield a StreamEvent per ``data:`` line until ``[DONE]`` or end of body.

    The response is closed on every exit path, including when the consumer
    stops early and the generator is closed.
    """
    if getattr(response, "stream", None) is None:
        raise SVECTORError("No response body for streaming")

    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    try:
        try:
            async for chunk in response.aiter_bytes():
                buffer += decoder.decode(chunk)
                lines = buffer.split("\n")
                buffer = lines.pop()
                for line in lines:
                    data = _decode_line(line)
                    if data is not None:
                        yield parse_stream_event(data)

            buffer += decoder.decode(b"", final=True)
            data = _decode_line(buffer)
            if data is not None:
                yield parse_stream_event(data)
        except _Done:
            return
    finally:
        await response.aclose()
        logger.debug("Stream closed")


class AsyncStream:
    """Single-pass wrapper around a decoded event stream.

    Usage:
        async with await client.chat.create_stream(...) as stream:
            async for event in stream:
                print(event.choices[0].delta.content or "", end="")
    """

    def __init__(self, response: httpx.Response):
        self.response = response
        self._iterator = iter_sse_events(response)
        self._collected: List[StreamEvent] = []
        self._started = False
        self._consumed = False

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        if self._started:
            raise SVECTORError("Stream has already been consumed")
        self._started = True
        return self._stream()

    async def _stream(self) -> AsyncIterator[StreamEvent]:
        # Runs when the consumer breaks out early and this wrapper is finalized
        try:
            async for event in self._iterator:
                self._collected.append(event)
                yield event
        finally:
            await self._iterator.aclose()
        self._consumed = True

    async def __aenter__(self) -> "AsyncStream":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop reading and release the underlying response."""
        await self._iterator.aclose()
        # aclose() on a generator that never started skips its finally block
        await self.response.aclose()
        self._consumed = True

    @property
    def request_id(self) -> Optional[str]:
        return self.response.headers.get("x-request-id")

    async def collect(self) -> ChatCompletion:
        """Consume the rest of the stream and merge it into one ChatCompletion."""
        if not self._started:
            async for _ in self:
                pass
        elif not self._consumed:
            raise SVECTORError("Stream is being iterated elsewhere")

        contents: Dict[int, List[str]] = {}
        roles: Dict[int, str] = {}
        finish_reasons: Dict[int, str] = {}
        completion_id = None
        model = None

        for event in self._collected:
            completion_id = event.get("id") or completion_id
            model = event.get("model") or model
            for choice in event.choices:
                idx = choice.index
                if idx in finish_reasons:
                    continue
                if choice.delta.role:
                    roles[idx] = choice.delta.role
                if choice.delta.content:
                    contents.setdefault(idx, []).append(choice.delta.content)
                if choice.finish_reason:
                    finish_reasons[idx] = choice.finish_reason

        indices = sorted(set(contents) | set(roles) | set(finish_reasons))
        choices = [
            Choice(
                index=idx,
                message=ChatMessage(role=roles.get(idx, "assistant"), content="".join(contents.get(idx, []))),
                finish_reason=finish_reasons.get(idx, "stop"),
            )
            for idx in indices
        ]
        completion = ChatCompletion(id=completion_id, object="chat.completion", model=model, choices=choices)
        if self.request_id:
            completion["_request_id"] = self.request_id
        return completion

    async def text(self) -> str:
        """Joined content of the first choice."""
        return (await self.collect()).content
