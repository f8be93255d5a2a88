"""In-memory conversation buffer."""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable

_key_counter = itertools.count()


def new_turn_key() -> str:
    """Time-ordered unique key for a turn."""
    return f"{time.time_ns():020d}-{next(_key_counter) % 1_000_000:06d}"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass
class Turn:
    """One message in the dialogue."""

    role: Role
    content: str
    remote_id: str | None = None
    tokens_used: int = 0
    key: str = field(default_factory=new_turn_key)
    # Uploaded file ids attached to a user message (input_file parts)
    file_ids: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.role = Role(self.role)
        if self.tokens_used < 0:
            raise ValueError("tokens_used must be non-negative")

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "role": self.role.value,
            "content": self.content,
            "tokens_used": self.tokens_used,
        }
        if self.remote_id:
            d["remote_id"] = self.remote_id
        if self.file_ids:
            d["file_ids"] = list(self.file_ids)
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any], key: str | None = None) -> "Turn":
        kwargs: dict[str, Any] = {
            "role": Role(data["role"]),
            "content": data.get("content", ""),
            "remote_id": data.get("remote_id"),
            "tokens_used": int(data.get("tokens_used", 0)),
            "file_ids": list(data.get("file_ids", [])),
        }
        if key is not None:
            kwargs["key"] = key
        return cls(**kwargs)


class ConversationBuffer:
    """Ordered turns plus a running token counter.

    The counter always equals the sum of ``tokens_used`` over the buffer,
    except right after ``reset`` with an explicit token count.
    """

    def __init__(self, turns: Iterable[Turn] = ()):
        self._turns: list[Turn] = list(turns)
        self._tokens = sum(t.tokens_used for t in self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self):
        return iter(list(self._turns))

    @property
    def cumulative_tokens(self) -> int:
        return self._tokens

    @property
    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def append(self, turn: Turn) -> None:
        self._turns.append(turn)
        self._tokens += turn.tokens_used

    def drop_last(self) -> Turn | None:
        """Remove and return the last turn; no-op on an empty buffer."""
        if not self._turns:
            return None
        turn = self._turns.pop()
        self._tokens -= turn.tokens_used
        return turn

    def replace_last(self, turn: Turn) -> Turn | None:
        old = self.drop_last()
        self.append(turn)
        return old

    def remove_where(self, predicate: Callable[[Turn], bool]) -> list[Turn]:
        """Remove every turn matching predicate, returning the removed ones."""
        removed = [t for t in self._turns if predicate(t)]
        if removed:
            self._turns = [t for t in self._turns if not predicate(t)]
            self._tokens -= sum(t.tokens_used for t in removed)
        return removed

    def reset(self, turns: Iterable[Turn] = (), tokens: int | None = None) -> None:
        self._turns = list(turns)
        self._tokens = sum(t.tokens_used for t in self._turns) if tokens is None else tokens

    def snapshot(self) -> list[Turn]:
        return list(self._turns)
