"""Endpoint wrappers: chat, conversations, models, files and knowledge."""
import httpx
import pytest

from svector import Client
from svector.config import no_environ
from svector.core.api import DEFAULT_SYSTEM_PROMPT, Conversations, file_reference, normalize_system_content
from svector.core.engine import RequestOptions
from svector.core.errors import APIError
from svector.core.streaming import AsyncStream

from conftest import BASE_URL, Recorder, completion_body, sse_body


def stream_response(*payloads, **kwargs):
    return httpx.Response(200, content=sse_body(*payloads), headers={"content-type": "text/event-stream"}, **kwargs)


# ── chat ──────────────────────────────────────────────────────────────────────


async def test_chat_create_posts_messages(make_client):
    fetch = Recorder(httpx.Response(200, json=completion_body("Hi!"), headers={"x-request-id": "req_c"}))
    client = make_client(fetch)

    completion = await client.chat.create(
        model="spec-3-turbo",
        messages=[{"role": "user", "content": "Hello"}],
        temperature=0.2,
        files=[file_reference("file-1")],
    )

    assert fetch.urls == [f"{BASE_URL}/api/chat/completions"]
    body = fetch.json()
    assert body == {
        "model": "spec-3-turbo",
        "messages": [{"role": "user", "content": "Hello"}],
        "temperature": 0.2,
        "files": [{"type": "file", "id": "file-1"}],
    }
    assert completion.content == "Hi!"
    assert completion.choices[0].message.role == "assistant"
    assert completion.usage.prompt_tokens == 3
    assert completion["_request_id"] == "req_c"


async def test_chat_create_rejects_stream_flag(make_client):
    client = make_client(Recorder(httpx.Response(200)))
    with pytest.raises(ValueError, match="create_stream"):
        await client.chat.create(model="m", messages=[], stream=True)


async def test_chat_create_with_response_returns_raw_response(make_client):
    client = make_client(Recorder(httpx.Response(200, json=completion_body(), headers={"x-request-id": "req_r"})))

    completion, response = await client.chat.create_with_response(model="m", messages=[])

    assert response.status_code == 200
    assert response.headers["x-request-id"] == completion["_request_id"] == "req_r"


@pytest.mark.parametrize("response", [
    httpx.Response(200),
    httpx.Response(200, json=["not", "a", "completion"]),
])
async def test_chat_create_rejects_non_object_body(make_client, response):
    client = make_client(Recorder(response))

    with pytest.raises(APIError, match="Unexpected chat completion payload"):
        await client.chat.create(model="m", messages=[])
    with pytest.raises(APIError, match="Unexpected chat completion payload"):
        await client.chat.create_with_response(model="m", messages=[])


async def test_chat_create_skips_odd_choices(make_client):
    body = {"id": "c1", "choices": ["x", {"index": 0, "message": "hi"}]}
    client = make_client(Recorder(httpx.Response(200, json=body)))

    completion = await client.chat.create(model="m", messages=[])

    assert len(completion.choices) == 1
    assert completion.content == ""


async def test_chat_create_stream(make_client):
    fetch = Recorder(stream_response(
        {"choices": [{"index": 0, "delta": {"content": "Hel"}}]},
        {"choices": [{"index": 0, "delta": {"content": "lo"}, "finish_reason": "stop"}]},
    ))
    client = make_client(fetch)

    stream = await client.chat.create_stream(model="m", messages=[{"role": "user", "content": "hi"}])

    assert isinstance(stream, AsyncStream)
    assert await stream.text() == "Hello"
    assert fetch.json()["stream"] is True
    assert fetch.requests[0].headers["Accept"] == "text/event-stream"


async def test_system_prompt_is_normalized(make_client):
    fetch = Recorder(httpx.Response(200, json=completion_body()))
    client = make_client(fetch)

    await client.chat.create(model="m", messages=[
        {"role": "system", "content": {"text": "Be terse."}},
        {"role": "user", "content": "Hi"},
    ])

    assert fetch.json()["messages"][0] == {"role": "system", "content": "Be terse."}


@pytest.mark.parametrize("content, expected", [
    ("as is", "as is"),
    (lambda: "from callable", "from callable"),
    ({"value": "from mapping"}, "from mapping"),
    ({"tone": "dry"}, '{"tone": "dry"}'),
    (None, DEFAULT_SYSTEM_PROMPT),
    ("", ""),
])
def test_normalize_system_content(content, expected):
    assert normalize_system_content(content) == expected


def test_normalize_system_content_failing_callable_uses_default():
    def broken():
        raise RuntimeError("no prompt")

    assert normalize_system_content(broken) == DEFAULT_SYSTEM_PROMPT


async def test_request_options_reach_the_wire(make_client):
    fetch = Recorder(httpx.Response(200, json=completion_body()))
    client = make_client(fetch)

    await client.chat.create(
        model="m", messages=[],
        options=RequestOptions(headers={"X-Trace": "t1"}, query={"debug": "1"}),
    )

    request = fetch.requests[0]
    assert request.headers["X-Trace"] == "t1"
    assert request.url.params["debug"] == "1"


# ── conversations ─────────────────────────────────────────────────────────────


def test_build_messages_alternates_context():
    messages = Conversations.build_messages("And now?", instructions="Be brief.", context=["Q1", "A1", "Q2", "A2"])
    assert messages == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "Q1"},
        {"role": "assistant", "content": "A1"},
        {"role": "user", "content": "Q2"},
        {"role": "assistant", "content": "A2"},
        {"role": "user", "content": "And now?"},
    ]


def test_build_messages_uses_default_instructions():
    assert Conversations.build_messages("Hi")[0] == {"role": "system", "content": DEFAULT_SYSTEM_PROMPT}


async def test_conversation_create(make_client):
    fetch = Recorder(httpx.Response(200, json=completion_body("Paris."), headers={"x-request-id": "req_k"}))
    client = make_client(fetch)

    response = await client.conversations.create(
        model="spec-3-turbo", instructions="Answer in one word.", input="Capital of France?",
    )

    assert response.output == "Paris."
    assert response.usage.total_tokens == 5
    assert response["_request_id"] == "req_k"
    assert [m["role"] for m in fetch.json()["messages"]] == ["system", "user"]


async def test_conversation_create_with_response(make_client):
    client = make_client(Recorder(httpx.Response(200, json=completion_body("ok"))))

    result, response = await client.conversations.create_with_response(model="m", input="ping")

    assert result.output == "ok"
    assert isinstance(response, httpx.Response)


async def test_conversation_stream_yields_chunks(make_client):
    client = make_client(Recorder(stream_response(
        {"choices": [{"index": 0, "delta": {"role": "assistant"}}]},
        {"choices": [{"index": 0, "delta": {"content": "Bon"}}]},
        {"choices": [{"index": 0, "delta": {"content": "jour"}}]},
        {"choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}]},
    )))

    stream = await client.conversations.create_stream(model="m", input="Say hello in French")
    chunks = [(chunk.content, chunk.done) async for chunk in stream]

    assert chunks == [("Bon", False), ("jour", False), ("", True)]


# ── models / files / knowledge ────────────────────────────────────────────────


@pytest.mark.parametrize("payload", [
    {"models": ["spec-3-turbo", "spec-3"]},
    {"data": [{"id": "spec-3-turbo"}, {"id": "spec-3"}]},
    ["spec-3-turbo", "spec-3"],
])
async def test_models_list(make_client, payload):
    fetch = Recorder(httpx.Response(200, json=payload))
    client = make_client(fetch)

    models = await client.models.list()

    assert list(models) == ["spec-3-turbo", "spec-3"]
    assert fetch.requests[0].method == "GET"
    assert fetch.urls == [f"{BASE_URL}/api/models"]


async def test_file_upload_is_multipart(make_client):
    fetch = Recorder(httpx.Response(200, json={"file_id": "file-abc"}))
    client = make_client(fetch)

    uploaded = await client.files.create(b"%PDF-1.7", filename="report.pdf")

    request = fetch.requests[0]
    assert str(request.url) == f"{BASE_URL}/api/v1/files/"
    assert request.headers["Accept"] == "application/json"
    assert request.headers["Content-Type"].startswith("multipart/form-data")
    body = request.read()
    assert b'filename="report.pdf"' in body
    assert b"rag" in body
    assert uploaded.file_id == "file-abc"


async def test_file_upload_maps_id_field(make_client):
    client = make_client(Recorder(httpx.Response(200, json={"id": "file-xyz", "filename": "a.txt"})))

    uploaded = await client.files.create("some text", purpose="assistants")

    assert uploaded.file_id == "file-xyz"
    assert uploaded.filename == "a.txt"


async def test_file_upload_from_path(make_client, tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("remember this")
    fetch = Recorder(httpx.Response(200, json={"file_id": "file-n"}))
    client = make_client(fetch)

    uploaded = await client.files.create_from_path(str(path))

    body = fetch.requests[0].read()
    assert b'filename="notes.txt"' in body
    assert b"remember this" in body
    assert uploaded.file_id == "file-n"


async def test_file_upload_from_missing_path(make_client, tmp_path):
    client = make_client(Recorder(httpx.Response(200)))
    with pytest.raises(FileNotFoundError):
        await client.files.create_from_path(str(tmp_path / "missing.txt"))


async def test_knowledge_add_file(make_client):
    fetch = Recorder(httpx.Response(200, json={"status": "success", "message": "added"}))
    client = make_client(fetch)

    result = await client.knowledge.add_file("kb-1", "file-abc")

    assert fetch.urls == [f"{BASE_URL}/api/v1/knowledge/kb-1/file/add"]
    assert fetch.json() == {"file_id": "file-abc"}
    assert result.status == "success"


# ── client ────────────────────────────────────────────────────────────────────


async def test_generic_helpers(make_client):
    fetch = Recorder(lambda request: httpx.Response(200, json={"method": request.method}))
    client = make_client(fetch)

    assert (await client.get("/api/ping"))["method"] == "GET"
    assert (await client.post("/api/ping", {"a": 1}))["method"] == "POST"
    assert (await client.put("/api/ping", {"a": 2}))["method"] == "PUT"
    assert (await client.delete("/api/ping"))["method"] == "DELETE"


async def test_client_over_mock_transport():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"models": ["m1"]}))

    async with httpx.AsyncClient(transport=transport) as http_client:
        async with Client(api_key="k", http_client=http_client, environ=no_environ) as client:
            models = await client.models.list()
        assert not http_client.is_closed

    assert list(models) == ["m1"]
