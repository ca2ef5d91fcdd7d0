from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Callable, Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv

from .core.errors import AuthenticationError

DEFAULT_BASE_URL = "https://spec-chat.tech"
DEFAULT_TIMEOUT = 10 * 60.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_VISION_TIMEOUT = 60.0
DEFAULT_VISION_MAX_RETRIES = 2
# Two extra passes over the public host, three endpoint passes in total
DEFAULT_VISION_FALLBACK_URLS: Tuple[str, ...] = (DEFAULT_BASE_URL, DEFAULT_BASE_URL)

API_KEY_ENV = "SVECTOR_API_KEY"
BASE_URL_ENV = "SVECTOR_BASE_URL"
LOG_LEVEL_ENV = "SVECTOR_LOG_LEVEL"

# Looks up one environment variable by name.
EnvironmentProvider = Callable[[str], Optional[str]]

_dotenv_loaded = False


def default_environ(name: str) -> Optional[str]:
    """Read ``name`` from the process environment after loading ``.env`` once."""
    global _dotenv_loaded
    if not _dotenv_loaded:
        load_dotenv()
        _dotenv_loaded = True
    return os.environ.get(name)


def no_environ(name: str) -> Optional[str]:
    return None


@dataclass(frozen=True)
class ClientConfig:
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    dangerously_allow_browser: bool = False
    vision_timeout: float = DEFAULT_VISION_TIMEOUT
    vision_max_retries: int = DEFAULT_VISION_MAX_RETRIES
    vision_fallback_urls: Tuple[str, ...] = DEFAULT_VISION_FALLBACK_URLS
    default_headers: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def resolve(
        cls,
        api_key: str = None,
        base_url: str = None,
        timeout: float = None,
        max_retries: int = None,
        dangerously_allow_browser: bool = False,
        vision_timeout: float = None,
        vision_max_retries: int = None,
        vision_fallback_urls: Tuple[str, ...] = None,
        default_headers: Dict[str, str] = None,
        environ: EnvironmentProvider = None,
    ) -> "ClientConfig":
        """Merge explicit arguments over the environment over the defaults."""
        environ = environ or default_environ

        return cls._validate(
            api_key=api_key or environ(API_KEY_ENV) or "",
            base_url=base_url or environ(BASE_URL_ENV) or DEFAULT_BASE_URL,
            timeout=DEFAULT_TIMEOUT if timeout is None else float(timeout),
            max_retries=DEFAULT_MAX_RETRIES if max_retries is None else int(max_retries),
            dangerously_allow_browser=bool(dangerously_allow_browser),
            vision_timeout=DEFAULT_VISION_TIMEOUT if vision_timeout is None else float(vision_timeout),
            vision_max_retries=(
                DEFAULT_VISION_MAX_RETRIES if vision_max_retries is None else int(vision_max_retries)
            ),
            vision_fallback_urls=(
                DEFAULT_VISION_FALLBACK_URLS if vision_fallback_urls is None else tuple(vision_fallback_urls)
            ),
            default_headers=dict(default_headers or {}),
        )

    @staticmethod
    def _validate(api_key: str, base_url: str, timeout: float, max_retries: int,
                  vision_max_retries: int, **kwargs) -> "ClientConfig":
        if not api_key.strip():
            raise AuthenticationError(
                "SVECTOR API key is required. Set it via the api_key option "
                f"or the {API_KEY_ENV} environment variable."
            )
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        if max_retries < 0:
            raise ValueError("max_retries must be zero or more")
        if vision_max_retries < 1:
            raise ValueError("vision_max_retries must be at least 1")

        return ClientConfig(
            api_key=api_key,
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            max_retries=max_retries,
            vision_max_retries=vision_max_retries,
            **kwargs,
        )
