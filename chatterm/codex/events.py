"""Events emitted by ``codex exec --json``, one JSON object per line."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from chatterm.errors import CodexError


class EventType(str, Enum):
    THREAD_STARTED = "thread.started"
    TURN_STARTED = "turn.started"
    TURN_COMPLETED = "turn.completed"
    TURN_FAILED = "turn.failed"
    ITEM_STARTED = "item.started"
    ITEM_UPDATED = "item.updated"
    ITEM_COMPLETED = "item.completed"
    ERROR = "error"


class ItemType(str, Enum):
    AGENT_MESSAGE = "agent_message"
    REASONING = "reasoning"
    COMMAND_EXECUTION = "command_execution"
    FILE_CHANGE = "file_change"
    MCP_TOOL_CALL = "mcp_tool_call"
    WEB_SEARCH = "web_search"
    TODO_LIST = "todo_list"
    ERROR = "error"
    UNKNOWN = "unknown"


@dataclass
class ThreadItem:
    """An item of the agent's turn.

    Known types expose their common payload fields; ``raw`` always holds the
    item exactly as received, so unknown types survive untouched.
    """

    id: str
    type: ItemType
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.raw.get("text") or self.raw.get("message") or ""

    @property
    def command(self) -> str:
        return self.raw.get("command", "")

    @property
    def status(self) -> str:
        return self.raw.get("status", "")

    @property
    def exit_code(self) -> int | None:
        return self.raw.get("exit_code")

    @property
    def changes(self) -> list[dict[str, Any]]:
        return list(self.raw.get("changes") or [])

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ThreadItem":
        try:
            kind = ItemType(data.get("type"))
        except ValueError:
            kind = ItemType.UNKNOWN
        return cls(id=str(data.get("id", "")), type=kind, raw=dict(data))


@dataclass
class TurnUsage:
    input_tokens: int = 0
    cached_input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class ThreadEvent:
    type: EventType
    thread_id: str | None = None
    usage: TurnUsage | None = None
    item: ThreadItem | None = None
    message: str = ""


def parse_event(line: str | bytes) -> ThreadEvent:
    """Decode one line of the event stream."""
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise CodexError(f"invalid event line: {e}") from e
    if not isinstance(data, dict):
        raise CodexError("event must be a JSON object")
    try:
        kind = EventType(data.get("type"))
    except ValueError:
        raise CodexError(f"unknown event type {data.get('type')!r}") from None

    event = ThreadEvent(type=kind)
    if kind is EventType.THREAD_STARTED:
        event.thread_id = data.get("thread_id")
    elif kind is EventType.TURN_COMPLETED:
        usage = data.get("usage") or {}
        event.usage = TurnUsage(
            input_tokens=int(usage.get("input_tokens") or 0),
            cached_input_tokens=int(usage.get("cached_input_tokens") or 0),
            output_tokens=int(usage.get("output_tokens") or 0),
        )
    elif kind is EventType.TURN_FAILED:
        event.message = (data.get("error") or {}).get("message", "")
    elif kind is EventType.ERROR:
        event.message = data.get("message", "")
    elif kind in (EventType.ITEM_STARTED, EventType.ITEM_UPDATED, EventType.ITEM_COMPLETED):
        item = data.get("item")
        if not isinstance(item, dict):
            raise CodexError(f"{kind.value} event without an item")
        event.item = ThreadItem.from_dict(item)
    return event
