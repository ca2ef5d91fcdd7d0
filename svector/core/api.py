"""
api.py - Endpoint wrappers: chat, conversations, models, files and knowledge.

Each resource only marshals parameters; requests go through the shared
RequestEngine and streamed responses through AsyncStream.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Tuple, Union

import httpx

from .engine import MultipartForm, RequestEngine, RequestOptions
from .errors import APIError
from .models import (
    ChatCompletion,
    ConversationChunk,
    ConversationResponse,
    FileUploadResponse,
    KnowledgeAddFileResponse,
    ModelList,
    parse_completion,
    parse_model_list,
)
from .runtime import FileInput, FileTuple, to_file
from .streaming import AsyncStream
from ..utils.files import read_upload

logger = logging.getLogger(__name__)

CHAT_PATH = "/api/chat/completions"
MODELS_PATH = "/api/models"
FILES_PATH = "/api/v1/files/"
KNOWLEDGE_ADD_FILE_PATH = "/api/v1/knowledge/{knowledge_id}/file/add"

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


def normalize_system_content(content: Any) -> str:
    """Coerce the many accepted shapes of a system prompt into a string."""
    if isinstance(content, str):
        return content

    if callable(content):
        try:
            result = content()
        except Exception as e:
            logger.warning("System prompt callable failed, using default prompt: %s", e)
            return DEFAULT_SYSTEM_PROMPT
        return result if isinstance(result, str) else str(result)

    if content and isinstance(content, dict):
        for key in ("content", "text", "value"):
            if content.get(key):
                return str(content[key])
        try:
            return json.dumps(content)
        except (TypeError, ValueError):
            return str(content)

    if content is not None and not isinstance(content, (list, dict)):
        for key in ("content", "text", "value"):
            value = getattr(content, key, None)
            if value:
                return str(value)

    return str(content) if content else DEFAULT_SYSTEM_PROMPT


def _process_system_prompts(messages: List[dict]) -> List[dict]:
    return [
        {**message, "content": normalize_system_content(message.get("content"))}
        if message.get("role") == "system" else message
        for message in messages
    ]


def _build_chat_body(model: str, messages: List[dict], **params) -> dict:
    body = {"model": model, "messages": _process_system_prompts(messages)}
    for key, value in params.items():
        if value is not None:
            body[key] = value
    return body


def _to_completion(data: Any) -> ChatCompletion:
    if not isinstance(data, dict):
        raise APIError(f"Unexpected chat completion payload: {type(data).__name__}")
    return parse_completion(data)


# =============================================================================
# Resource Classes
# =============================================================================

class ChatCompletions:
    """chat resource - POST /api/chat/completions."""

    def __init__(self, engine: RequestEngine):
        self._engine = engine

    async def create(
        self,
        *,
        model: str,
        messages: List[dict],
        max_tokens: int = None,
        temperature: float = None,
        stream: bool = False,
        files: List[dict] = None,
        options: RequestOptions = None,
        **kwargs,
    ) -> ChatCompletion:
        """Create a chat completion."""
        if stream:
            raise ValueError("Use create_stream() for streaming responses")
        body = _build_chat_body(model, messages, max_tokens=max_tokens, temperature=temperature,
                                files=files, **kwargs)
        data = await self._engine.execute("POST", CHAT_PATH, body, options)
        return _to_completion(data)

    async def create_with_response(
        self,
        *,
        model: str,
        messages: List[dict],
        max_tokens: int = None,
        temperature: float = None,
        stream: bool = False,
        files: List[dict] = None,
        options: RequestOptions = None,
        **kwargs,
    ) -> Tuple[ChatCompletion, httpx.Response]:
        """Create a chat completion and also return the raw response."""
        if stream:
            raise ValueError("Use create_stream_with_response() for streaming responses")
        body = _build_chat_body(model, messages, max_tokens=max_tokens, temperature=temperature,
                                files=files, **kwargs)
        data, response = await self._engine.execute_with_response("POST", CHAT_PATH, body, options)
        return _to_completion(data), response

    async def create_stream(
        self,
        *,
        model: str,
        messages: List[dict],
        max_tokens: int = None,
        temperature: float = None,
        files: List[dict] = None,
        options: RequestOptions = None,
        **kwargs,
    ) -> AsyncStream:
        """Create a streaming chat completion."""
        stream, _ = await self.create_stream_with_response(
            model=model, messages=messages, max_tokens=max_tokens, temperature=temperature,
            files=files, options=options, **kwargs,
        )
        return stream

    async def create_stream_with_response(
        self,
        *,
        model: str,
        messages: List[dict],
        max_tokens: int = None,
        temperature: float = None,
        files: List[dict] = None,
        options: RequestOptions = None,
        **kwargs,
    ) -> Tuple[AsyncStream, httpx.Response]:
        body = _build_chat_body(model, messages, max_tokens=max_tokens, temperature=temperature,
                                files=files, stream=True, **kwargs)
        response = await self._engine.stream("POST", CHAT_PATH, body, options)
        return AsyncStream(response), response


class Conversations:
    """Instructions/input convenience layer over chat completions."""

    def __init__(self, chat: ChatCompletions):
        self._chat = chat

    @staticmethod
    def build_messages(
        input: Union[str, list],
        instructions: Any = None,
        context: List[str] = None,
    ) -> List[dict]:
        """System instructions, then context as alternating user/assistant turns, then the input."""
        messages = []
        system = normalize_system_content(instructions)
        if system.strip():
            messages.append({"role": "system", "content": system})

        for i, turn in enumerate(context or []):
            messages.append({"role": "user" if i % 2 == 0 else "assistant", "content": turn})

        messages.append({"role": "user", "content": input})
        return messages

    @staticmethod
    def _to_response(completion: ChatCompletion) -> ConversationResponse:
        response = ConversationResponse(output=completion.content, usage=completion.usage)
        if completion.get("_request_id"):
            response["_request_id"] = completion["_request_id"]
        return response

    async def create(
        self,
        *,
        model: str,
        input: Union[str, list],
        instructions: Any = None,
        context: List[str] = None,
        max_tokens: int = None,
        temperature: float = None,
        files: List[dict] = None,
        options: RequestOptions = None,
    ) -> ConversationResponse:
        completion = await self._chat.create(
            model=model,
            messages=self.build_messages(input, instructions, context),
            max_tokens=max_tokens,
            temperature=temperature,
            files=files,
            options=options,
        )
        return self._to_response(completion)

    async def create_with_response(
        self,
        *,
        model: str,
        input: Union[str, list],
        instructions: Any = None,
        context: List[str] = None,
        max_tokens: int = None,
        temperature: float = None,
        files: List[dict] = None,
        options: RequestOptions = None,
    ) -> Tuple[ConversationResponse, httpx.Response]:
        completion, response = await self._chat.create_with_response(
            model=model,
            messages=self.build_messages(input, instructions, context),
            max_tokens=max_tokens,
            temperature=temperature,
            files=files,
            options=options,
        )
        return self._to_response(completion), response

    async def create_stream(
        self,
        *,
        model: str,
        input: Union[str, list],
        instructions: Any = None,
        context: List[str] = None,
        max_tokens: int = None,
        temperature: float = None,
        files: List[dict] = None,
        options: RequestOptions = None,
    ) -> AsyncIterator[ConversationChunk]:
        """Stream ConversationChunk(content, done) items."""
        stream = await self._chat.create_stream(
            model=model,
            messages=self.build_messages(input, instructions, context),
            max_tokens=max_tokens,
            temperature=temperature,
            files=files,
            options=options,
        )
        return self._transform(stream)

    @staticmethod
    async def _transform(stream: AsyncStream) -> AsyncIterator[ConversationChunk]:
        async with stream:
            async for event in stream:
                if not event.choices:
                    continue
                choice = event.choices[0]
                if choice.delta.content:
                    yield ConversationChunk(content=choice.delta.content, done=False)
                elif choice.finish_reason:
                    yield ConversationChunk(content="", done=True)


class Models:
    """Models resource."""

    def __init__(self, engine: RequestEngine):
        self._engine = engine

    async def list(self, options: RequestOptions = None) -> ModelList:
        """List available model identifiers."""
        data = await self._engine.execute("GET", MODELS_PATH, options=options)
        return parse_model_list(data or {})


class Files:
    """File uploads for retrieval-augmented responses."""

    def __init__(self, engine: RequestEngine, file_factory: Callable[..., Any] = to_file):
        self._engine = engine
        self._to_file = file_factory

    async def create(
        self,
        file: FileInput,
        purpose: str = "rag",
        filename: str = None,
        options: RequestOptions = None,
    ) -> FileUploadResponse:
        """Upload a file. Accepts text, bytes, file objects, byte streams or a (name, bytes, type) tuple."""
        upload: FileTuple = await self._to_file(file, filename)
        form = MultipartForm(fields={"purpose": purpose}, files={"file": upload})
        options = (options or RequestOptions()).with_headers({"Accept": "application/json"})
        data = dict(await self._engine.execute("POST", FILES_PATH, form, options) or {})
        # Some deployments answer with "id" instead of "file_id"
        if "file_id" not in data and "id" in data:
            data["file_id"] = data.pop("id")
        return FileUploadResponse(**data)

    async def create_from_path(
        self,
        path: str,
        purpose: str = "rag",
        options: RequestOptions = None,
    ) -> FileUploadResponse:
        """Upload a local file."""
        upload = await read_upload(path)
        return await self.create(upload, purpose=purpose, options=options)


class Knowledge:
    """Knowledge collections."""

    def __init__(self, engine: RequestEngine):
        self._engine = engine

    async def add_file(
        self,
        knowledge_id: str,
        file_id: str,
        options: RequestOptions = None,
    ) -> KnowledgeAddFileResponse:
        """Attach an uploaded file to a knowledge collection."""
        path = KNOWLEDGE_ADD_FILE_PATH.format(knowledge_id=knowledge_id)
        data = await self._engine.execute("POST", path, {"file_id": file_id}, options)
        return KnowledgeAddFileResponse(**(data or {}))


def file_reference(file_id: str, type: str = "file") -> Dict[str, str]:
    """Build an entry for the ``files`` parameter of chat/conversation calls."""
    return {"type": type, "id": file_id}
