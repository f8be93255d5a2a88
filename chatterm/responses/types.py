"""Typed payloads for the responses endpoints.

Request ``input`` is either plain text or a list of message items, and
response ``output`` is a list of tagged items. Both are modelled as small
dataclass families with ``to_dict`` / ``from_dict``. Output items and content
parts with a tag we do not know are kept as their raw dict and re-emitted
verbatim.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from chatterm.errors import MalformedResponseError


def _drop_none(d: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}


# ── Input ────────────────────────────────────────────────────────────────────

@dataclass
class InputText:
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "input_text", "text": self.text}


@dataclass
class InputImage:
    image_url: str | None = None
    file_id: str | None = None
    detail: str = "auto"

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "type": "input_image",
            "image_url": self.image_url,
            "file_id": self.file_id,
            "detail": self.detail,
        })


@dataclass
class InputFile:
    file_id: str | None = None
    filename: str | None = None
    file_data: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "type": "input_file",
            "file_id": self.file_id,
            "filename": self.filename,
            "file_data": self.file_data,
        })


ContentPart = Union[InputText, InputImage, InputFile]

_INPUT_PARTS = {
    "input_text": lambda d: InputText(d.get("text", "")),
    "input_image": lambda d: InputImage(d.get("image_url"), d.get("file_id"), d.get("detail", "auto")),
    "input_file": lambda d: InputFile(d.get("file_id"), d.get("filename"), d.get("file_data")),
}


@dataclass
class Message:
    """One ``{"type": "message"}`` input item."""

    role: str
    content: str | list[ContentPart]

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            content: Any = self.content
        else:
            content = [part.to_dict() for part in self.content]
        return {"type": "message", "role": self.role, "content": content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        content = data.get("content", "")
        if isinstance(content, list):
            parts = []
            for part in content:
                factory = _INPUT_PARTS.get(part.get("type", ""))
                if factory is None:
                    raise MalformedResponseError(f"unknown input part type {part.get('type')!r}")
                parts.append(factory(part))
            content = parts
        return cls(role=data.get("role", "user"), content=content)


@dataclass
class TextInput:
    """A bare string: a one-shot user message."""

    text: str

    def to_payload(self) -> str:
        return self.text


@dataclass
class ItemListInput:
    items: list[Message] = field(default_factory=list)

    def to_payload(self) -> list[dict[str, Any]]:
        return [item.to_dict() for item in self.items]


RequestInput = Union[TextInput, ItemListInput]


# ── Tools and controls ───────────────────────────────────────────────────────

@dataclass
class WebSearchPreviewTool:
    def to_dict(self) -> dict[str, Any]:
        return {"type": "web_search_preview"}


@dataclass
class FunctionTool:
    name: str
    parameters: dict[str, Any]
    description: str = ""
    strict: bool | None = None

    def __post_init__(self):
        if not isinstance(self.parameters, dict) or self.parameters.get("type") != "object":
            raise ValueError(f"parameters of function tool {self.name!r} must be a JSON Schema object")

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "type": "function",
            "name": self.name,
            "description": self.description or None,
            "parameters": self.parameters,
            "strict": self.strict,
        })


Tool = Union[WebSearchPreviewTool, FunctionTool]


class ToolChoice(str, Enum):
    AUTO = "auto"
    NONE = "none"
    REQUIRED = "required"


class Truncation(str, Enum):
    AUTO = "auto"
    DISABLED = "disabled"


@dataclass
class Reasoning:
    """Structured reasoning controls for reasoning-capable models."""

    effort: str | None = None  # low | medium | high
    summary: str | None = None  # auto | concise | detailed

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({"effort": self.effort, "summary": self.summary})


@dataclass
class ResponseRequest:
    """Body of ``POST /responses``."""

    model: str
    input: RequestInput
    previous_response_id: str | None = None
    instructions: str | None = None
    tools: list[Tool] = field(default_factory=list)
    tool_choice: ToolChoice | None = None
    reasoning: Reasoning | None = None
    store: bool | None = None
    max_output_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    truncation: Truncation | None = None
    metadata: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "model": self.model,
            "input": self.input.to_payload(),
            "previous_response_id": self.previous_response_id,
            "instructions": self.instructions,
            "tools": [t.to_dict() for t in self.tools] or None,
            "tool_choice": self.tool_choice.value if self.tool_choice else None,
            "reasoning": self.reasoning.to_dict() if self.reasoning else None,
            "store": self.store,
            "max_output_tokens": self.max_output_tokens,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "truncation": self.truncation.value if self.truncation else None,
            "metadata": self.metadata,
        })


# ── Output ───────────────────────────────────────────────────────────────────

@dataclass
class OutputText:
    text: str
    annotations: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "output_text", "text": self.text, "annotations": self.annotations}


@dataclass
class Refusal:
    refusal: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "refusal", "refusal": self.refusal}


@dataclass
class UnknownContent:
    raw: dict[str, Any]

    @property
    def type(self) -> str:
        return self.raw.get("type", "")

    def to_dict(self) -> dict[str, Any]:
        return self.raw


OutputContent = Union[OutputText, Refusal, UnknownContent]


def _parse_content(data: dict[str, Any]) -> OutputContent:
    kind = data.get("type")
    if kind == "output_text":
        return OutputText(data.get("text", ""), list(data.get("annotations") or []))
    if kind == "refusal":
        # Older payloads carry the refusal under "text"
        return Refusal(data.get("refusal", data.get("text", "")))
    return UnknownContent(dict(data))


@dataclass
class OutputMessage:
    id: str
    role: str = "assistant"
    status: str | None = None
    content: list[OutputContent] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "type": "message",
            "id": self.id,
            "role": self.role,
            "status": self.status,
            "content": [c.to_dict() for c in self.content],
        })


@dataclass
class FunctionCall:
    id: str
    call_id: str
    name: str
    arguments: str
    status: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "type": "function_call",
            "id": self.id,
            "call_id": self.call_id,
            "name": self.name,
            "arguments": self.arguments,
            "status": self.status,
        })


@dataclass
class ReasoningItem:
    id: str
    summary: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "reasoning", "id": self.id, "summary": self.summary}


@dataclass
class WebSearchCall:
    id: str
    status: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({"type": "web_search_call", "id": self.id, "status": self.status})


@dataclass
class UnknownOutputItem:
    raw: dict[str, Any]

    @property
    def type(self) -> str:
        return self.raw.get("type", "")

    def to_dict(self) -> dict[str, Any]:
        return self.raw


OutputItem = Union[OutputMessage, FunctionCall, ReasoningItem, WebSearchCall, UnknownOutputItem]


def parse_output_item(data: dict[str, Any]) -> OutputItem:
    """Decode one output item, keeping unknown tags as raw dicts."""
    if not isinstance(data, dict):
        raise MalformedResponseError(f"output item must be an object, got {type(data).__name__}")
    kind = data.get("type")
    try:
        if kind == "message":
            return OutputMessage(
                id=data.get("id", ""),
                role=data.get("role", "assistant"),
                status=data.get("status"),
                content=[_parse_content(c) for c in data.get("content") or []],
            )
        if kind == "function_call":
            return FunctionCall(
                id=data.get("id", ""),
                call_id=data["call_id"],
                name=data["name"],
                arguments=data.get("arguments", ""),
                status=data.get("status"),
            )
        if kind == "reasoning":
            return ReasoningItem(id=data.get("id", ""), summary=list(data.get("summary") or []))
        if kind == "web_search_call":
            return WebSearchCall(id=data.get("id", ""), status=data.get("status"))
    except (KeyError, TypeError, AttributeError) as e:
        raise MalformedResponseError(f"malformed {kind} item: {e}") from e
    return UnknownOutputItem(dict(data))


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Usage":
        data = data or {}
        try:
            return cls(
                input_tokens=int(data.get("input_tokens") or 0),
                output_tokens=int(data.get("output_tokens") or 0),
                total_tokens=int(data.get("total_tokens") or 0),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise MalformedResponseError(f"malformed usage: {e}") from e

    def to_dict(self) -> dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class Response:
    id: str
    output: list[OutputItem] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    model: str | None = None
    status: str | None = None
    previous_response_id: str | None = None

    @property
    def output_text(self) -> str:
        """Concatenation of every output_text part of every message item."""
        chunks = []
        for item in self.output:
            if isinstance(item, OutputMessage):
                chunks.extend(c.text for c in item.content if isinstance(c, OutputText))
        return "".join(chunks)

    @property
    def refusal(self) -> str | None:
        for item in self.output:
            if isinstance(item, OutputMessage):
                for c in item.content:
                    if isinstance(c, Refusal):
                        return c.refusal
        return None

    @classmethod
    def from_dict(cls, data: Any) -> "Response":
        if not isinstance(data, dict) or not data.get("id"):
            raise MalformedResponseError("response payload has no id")
        output = data.get("output") or []
        if not isinstance(output, list):
            raise MalformedResponseError("response output must be a list")
        return cls(
            id=data["id"],
            output=[parse_output_item(item) for item in output],
            usage=Usage.from_dict(data.get("usage")),
            model=data.get("model"),
            status=data.get("status"),
            previous_response_id=data.get("previous_response_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "id": self.id,
            "object": "response",
            "model": self.model,
            "status": self.status,
            "previous_response_id": self.previous_response_id,
            "output": [item.to_dict() for item in self.output],
            "usage": self.usage.to_dict(),
        })


@dataclass
class InputItemsPage:
    """One page of ``GET /responses/{id}/input_items``."""

    data: list[dict[str, Any]] = field(default_factory=list)
    first_id: str | None = None
    last_id: str | None = None
    has_more: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> "InputItemsPage":
        if not isinstance(data, dict) or not isinstance(data.get("data", []), list):
            raise MalformedResponseError("input items payload must be an object with a data list")
        return cls(
            data=list(data.get("data") or []),
            first_id=data.get("first_id"),
            last_id=data.get("last_id"),
            has_more=bool(data.get("has_more", False)),
        )
