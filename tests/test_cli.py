"""svector command line front-end and chat session."""
import httpx
import pytest

from svector import Client
from svector.config import no_environ
from svector.core.session import ChatSession
from svector.main import build_parser, main

from conftest import Recorder, completion_body, sse_body


@pytest.fixture
def cli(monkeypatch):
    """Run ``main`` against a fake transport."""
    monkeypatch.setattr("svector.main._setup_logging", lambda level: None)

    def run(fetch, *argv):
        def client_factory(api_key=None, **kwargs):
            return Client(api_key=api_key or "test-key", fetch=fetch, environ=no_environ, **kwargs)

        monkeypatch.setattr("svector.main.Client", client_factory)
        return main(list(argv))
    return run


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_models_command(cli, capsys):
    code = cli(Recorder(httpx.Response(200, json={"models": ["spec-3-turbo", "spec-3"]})), "models")

    out = capsys.readouterr().out
    assert code == 0
    assert "spec-3-turbo" in out
    assert "spec-3" in out


def test_chat_command_without_streaming(cli, capsys):
    fetch = Recorder(httpx.Response(200, json=completion_body("Forty-two.")))

    code = cli(fetch, "chat", "What is the answer?", "--no-stream", "--system", "Be brief.")

    assert code == 0
    assert "Forty-two." in capsys.readouterr().out
    assert fetch.json()["messages"][0] == {"role": "system", "content": "Be brief."}


def test_chat_command_streams(cli, capsys):
    fetch = Recorder(httpx.Response(200, content=sse_body(
        {"choices": [{"index": 0, "delta": {"content": "Stream"}}]},
        {"choices": [{"index": 0, "delta": {"content": "ed reply"}, "finish_reason": "stop"}]},
    )))

    code = cli(fetch, "chat", "hello", "--file-id", "file-1")

    assert code == 0
    assert "Streamed reply" in capsys.readouterr().out
    assert fetch.json()["files"] == [{"type": "file", "id": "file-1"}]


def test_api_error_exits_with_status_1(cli, capsys):
    fetch = Recorder(httpx.Response(401, json={"message": "invalid api key"}))

    code = cli(fetch, "models")

    assert code == 1
    assert "invalid api key" in capsys.readouterr().out


def test_upload_command_adds_to_knowledge(cli, capsys, tmp_path):
    path = tmp_path / "handbook.md"
    path.write_text("# Handbook")
    fetch = Recorder(
        httpx.Response(200, json={"file_id": "file-h"}),
        httpx.Response(200, json={"status": "success", "message": "File added to knowledge"}),
    )

    code = cli(fetch, "upload", str(path), "--knowledge-id", "kb-9")

    out = capsys.readouterr().out
    assert code == 0
    assert "file-h" in out
    assert fetch.urls[-1].endswith("/api/v1/knowledge/kb-9/file/add")


def test_vision_command_with_local_image(cli, capsys, tmp_path):
    path = tmp_path / "pixel.png"
    path.write_bytes(b"\x89PNG\r\n")
    fetch = Recorder(httpx.Response(200, json=completion_body("A single pixel. [Confidence: 40%]")))

    code = cli(fetch, "vision", str(path), "--confidence", "--detail", "low")

    out = capsys.readouterr().out
    assert code == 0
    assert "A single pixel." in out
    assert "40%" in out
    image = fetch.json()["messages"][0]["content"][1]["image_url"]
    assert image["url"].startswith("data:image/png;base64,")
    assert image["detail"] == "low"


async def test_chat_session_keeps_turns(make_client):
    fetch = Recorder(
        httpx.Response(200, content=sse_body({"choices": [{"index": 0, "delta": {"content": "Hi Ada"}}]})),
        httpx.Response(200, content=sse_body({"choices": [{"index": 0, "delta": {"content": "Ada"}}]})),
    )
    session = ChatSession(make_client(fetch), "spec-3-turbo", instructions="Be friendly.")

    assert [c async for c in session.send("I am Ada")] == ["Hi Ada"]
    assert [c async for c in session.send("Who am I?")] == ["Ada"]

    roles = [m["role"] for m in fetch.json()["messages"]]
    assert roles == ["system", "user", "assistant", "user"]
    assert session.context == ["I am Ada", "Hi Ada", "Who am I?", "Ada"]

    session.reset()
    assert session.context == []
