"""Client configuration resolution."""
import dataclasses

import httpx
import pytest

from svector import Client
from svector.config import DEFAULT_BASE_URL, ClientConfig, no_environ
from svector.core.errors import AuthenticationError, ErrorKind


def env(**values):
    return values.get


def test_empty_key_without_environment_fails_before_network():
    calls = []

    async def fetch(request):
        calls.append(request)
        return httpx.Response(200)

    with pytest.raises(AuthenticationError) as excinfo:
        Client(api_key="", fetch=fetch, environ=no_environ)

    assert excinfo.value.kind is ErrorKind.AUTHENTICATION
    assert "SVECTOR_API_KEY" in excinfo.value.message
    assert calls == []


def test_whitespace_key_is_rejected():
    with pytest.raises(AuthenticationError):
        ClientConfig.resolve(api_key="   ", environ=no_environ)


def test_environment_provides_key_and_base_url():
    config = ClientConfig.resolve(environ=env(SVECTOR_API_KEY="env-key", SVECTOR_BASE_URL="https://eu.test/"))
    assert config.api_key == "env-key"
    assert config.base_url == "https://eu.test"


def test_explicit_arguments_beat_environment():
    config = ClientConfig.resolve(
        api_key="arg-key",
        base_url="https://arg.test",
        environ=env(SVECTOR_API_KEY="env-key", SVECTOR_BASE_URL="https://env.test"),
    )
    assert config.api_key == "arg-key"
    assert config.base_url == "https://arg.test"


def test_defaults():
    config = ClientConfig.resolve(api_key="k", environ=no_environ)
    assert config.base_url == DEFAULT_BASE_URL
    assert config.timeout == 600.0
    assert config.max_retries == 2
    assert config.vision_timeout == 60.0
    assert config.vision_max_retries == 2
    assert config.vision_fallback_urls == (DEFAULT_BASE_URL, DEFAULT_BASE_URL)
    assert config.dangerously_allow_browser is False


def test_default_environ_loads_dotenv_once(monkeypatch):
    loads = []
    monkeypatch.setattr("svector.config.load_dotenv", lambda *a, **kw: loads.append(1))
    monkeypatch.setattr("svector.config._dotenv_loaded", False)
    monkeypatch.setenv("SVECTOR_API_KEY", "from-env")

    assert ClientConfig.resolve().api_key == "from-env"
    ClientConfig.resolve()

    assert loads == [1]


@pytest.mark.parametrize("kwargs", [
    {"timeout": 0},
    {"max_retries": -1},
    {"vision_max_retries": 0},
])
def test_invalid_values_are_rejected(kwargs):
    with pytest.raises(ValueError):
        ClientConfig.resolve(api_key="k", environ=no_environ, **kwargs)


def test_config_is_immutable():
    config = ClientConfig.resolve(api_key="k", environ=no_environ)
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.api_key = "other"


async def test_client_repr_masks_key(make_client):
    client = make_client(lambda request: None, api_key="sk-secret")
    assert "sk-secret" not in repr(client)
    assert "***" in repr(client)
