import json

import httpx
import pytest

from svector import Client
from svector.config import no_environ

BASE_URL = "https://api.test"


def completion_body(content="Hello there", **extra):
    body = {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "model": "spec-3-turbo",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5},
    }
    body.update(extra)
    return body


def sse_body(*payloads, done=True):
    lines = [f"data: {json.dumps(p)}\n\n" for p in payloads]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


class Recorder:
    """Fake fetch function. Answers with queued responses and keeps every request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if callable(response):
            response = response(request)
        return response

    @property
    def urls(self):
        return [str(r.url) for r in self.requests]

    def json(self, index=-1):
        return json.loads(self.requests[index].content)


@pytest.fixture
def sleeps(monkeypatch):
    """Record backoff sleeps instead of waiting."""
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    monkeypatch.setattr("svector.core.engine._sleep", fake_sleep)
    monkeypatch.setattr("svector.core.vision._sleep", fake_sleep)
    return delays


@pytest.fixture
def make_client():
    def factory(fetch, **kwargs):
        kwargs.setdefault("api_key", "test-key")
        kwargs.setdefault("base_url", BASE_URL)
        kwargs.setdefault("environ", no_environ)
        return Client(fetch=fetch, **kwargs)
    return factory
