"""
models.py - Response structures returned by the endpoint wrappers.

The models are deliberately loose: unknown keys sent by the server are kept as
attributes, and every model allows ``obj["field"]`` and ``obj.get("field")``
next to attribute access.
"""

from __future__ import annotations

import json
from typing import Any, List, Optional, Union


# =============================================================================
# Base
# =============================================================================

class BaseModel:
    """Base model with dict-like access and serialization."""

    def __init__(self, **kwargs):
        for key, value in kwargs.items():
            setattr(self, key, value)

    def __getitem__(self, key):
        return getattr(self, key)

    def __setitem__(self, key, value):
        setattr(self, key, value)

    def __contains__(self, key):
        return getattr(self, key, None) is not None

    def __eq__(self, other):
        if not isinstance(other, BaseModel):
            return NotImplemented
        return type(self) is type(other) and self.to_dict() == other.to_dict()

    def get(self, key, default=None):
        return getattr(self, key, default)

    def to_dict(self) -> dict:
        result = {}
        for key, value in self.__dict__.items():
            if value is None:
                continue
            if isinstance(value, BaseModel):
                result[key] = value.to_dict()
            elif isinstance(value, list):
                result[key] = [
                    item.to_dict() if isinstance(item, BaseModel) else item
                    for item in value
                ]
            else:
                result[key] = value
        return result

    def model_dump(self) -> dict:
        return self.to_dict()

    def model_dump_json(self, indent: int = None) -> str:
        return json.dumps(self.model_dump(), indent=indent, default=str)

    def __repr__(self):
        fields = ", ".join(f"{k}={v!r}" for k, v in self.__dict__.items() if v is not None)
        return f"{self.__class__.__name__}({fields})"


# =============================================================================
# Chat
# =============================================================================

class Usage(BaseModel):
    """Token usage information."""
    def __init__(self, prompt_tokens: int = 0, completion_tokens: int = 0, total_tokens: int = 0, **kwargs):
        super().__init__(**kwargs)
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.total_tokens = total_tokens


class ChatMessage(BaseModel):
    """A message inside a completion choice."""
    def __init__(self, role: str = None, content: Union[str, list, None] = None, **kwargs):
        super().__init__(**kwargs)
        self.role = role
        self.content = content


class Choice(BaseModel):
    def __init__(self, index: int = 0, message: ChatMessage = None, finish_reason: str = None, **kwargs):
        super().__init__(**kwargs)
        self.index = index
        self.message = message
        self.finish_reason = finish_reason


class ChatCompletion(BaseModel):
    """Represents a chat completion response."""
    def __init__(
        self,
        id: str = None,
        object: str = None,
        created: int = None,
        model: str = None,
        choices: List[Choice] = None,
        usage: Usage = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.id = id
        self.object = object
        self.created = created
        self.model = model
        self.choices = choices or []
        self.usage = usage

    @property
    def content(self) -> str:
        """Text of the first choice, or an empty string."""
        if self.choices and self.choices[0].message:
            return self.choices[0].message.content or ""
        return ""


# =============================================================================
# Streaming
# =============================================================================

class DeltaMessage(BaseModel):
    """Incremental content fragment of a streamed choice."""
    def __init__(self, content: str = None, role: str = None, **kwargs):
        super().__init__(**kwargs)
        self.content = content
        self.role = role


class StreamChoice(BaseModel):
    def __init__(self, index: int = 0, delta: DeltaMessage = None, finish_reason: str = None, **kwargs):
        super().__init__(**kwargs)
        self.index = index
        self.delta = delta or DeltaMessage()
        self.finish_reason = finish_reason


class StreamEvent(BaseModel):
    """One decoded SSE ``data:`` payload."""
    def __init__(
        self,
        id: str = None,
        event: str = None,
        choices: List[StreamChoice] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.id = id
        self.event = event
        self.choices = choices or []


# =============================================================================
# Other resources
# =============================================================================

class ModelList(BaseModel):
    """Model identifiers available on the platform."""
    def __init__(self, models: List[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.models = models or []

    def __iter__(self):
        return iter(self.models)

    def __len__(self):
        return len(self.models)


class FileUploadResponse(BaseModel):
    def __init__(self, file_id: str = None, **kwargs):
        super().__init__(**kwargs)
        self.file_id = file_id


class KnowledgeAddFileResponse(BaseModel):
    def __init__(self, status: str = None, message: str = None, **kwargs):
        super().__init__(**kwargs)
        self.status = status
        self.message = message


class ConversationResponse(BaseModel):
    """Result of an instructions/input conversation call."""
    def __init__(self, output: str = "", usage: Usage = None, **kwargs):
        super().__init__(**kwargs)
        self.output = output
        self.usage = usage


class ConversationChunk(BaseModel):
    def __init__(self, content: str = "", done: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.content = content
        self.done = done


class ImageAnalysisResponse(BaseModel):
    """Result of a vision analysis call."""
    def __init__(self, analysis: str = "", usage: Usage = None, confidence: Optional[int] = None, **kwargs):
        super().__init__(**kwargs)
        self.analysis = analysis
        self.usage = usage
        self.confidence = confidence


class VisionOutput(BaseModel):
    """Result of the input_text/input_image style vision call."""
    def __init__(self, output_text: str = "", usage: Usage = None, **kwargs):
        super().__init__(**kwargs)
        self.output_text = output_text
        self.usage = usage


# =============================================================================
# Parsing Helpers
# =============================================================================

def _parse_usage(data: Any) -> Optional[Usage]:
    if not isinstance(data, dict):
        return None
    return Usage(**data)


def _extra(data: dict, *known: str) -> dict:
    """Keys the server sent that a model does not name explicitly."""
    return {k: v for k, v in data.items() if k not in known}


def _choice_items(data: dict) -> List[dict]:
    # Non-object choices are skipped so one odd chunk cannot end a stream
    choices = data.get("choices")
    if not isinstance(choices, list):
        return []
    return [c for c in choices if isinstance(c, dict)]


def parse_completion(data: dict) -> ChatCompletion:
    """Parse a completion response dict."""
    choices = []
    for c_data in _choice_items(data):
        message = c_data.get("message")
        if not isinstance(message, dict):
            message = {}
        choices.append(Choice(
            index=c_data.get("index", 0),
            message=ChatMessage(**message),
            finish_reason=c_data.get("finish_reason"),
        ))
    return ChatCompletion(
        choices=choices,
        usage=_parse_usage(data.get("usage")),
        **_extra(data, "choices", "usage"),
    )


def parse_stream_event(data: dict) -> StreamEvent:
    """Parse one streamed payload dict."""
    choices = []
    for c_data in _choice_items(data):
        delta = c_data.get("delta")
        if not isinstance(delta, dict):
            delta = {}
        choices.append(StreamChoice(
            index=c_data.get("index", 0),
            delta=DeltaMessage(**delta),
            finish_reason=c_data.get("finish_reason"),
            **_extra(c_data, "index", "delta", "finish_reason"),
        ))
    return StreamEvent(choices=choices, **_extra(data, "choices"))


def parse_model_list(data: Any) -> ModelList:
    if isinstance(data, list):
        return ModelList(models=data)
    models = data.get("models")
    if models is None:
        # OpenAI-style {"data": [{"id": ...}]} listings
        models = [m.get("id") if isinstance(m, dict) else m for m in data.get("data") or []]
    return ModelList(models=models, **_extra(data, "models", "data"))
