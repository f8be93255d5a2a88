"""Backend interface shared by every history store.

Iteration order is descending recency: the most recently inserted key comes
first. Overwriting an existing key replaces its value without moving it.
A page token is the key of the last entry of the previous page; the next page
starts strictly after it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterator

from chatterm.errors import PageTokenError, StorageError
from chatterm.storage.codec import Codec, JSONCodec


@dataclass
class Entry:
    key: Any
    value: Any


@dataclass
class Page:
    """One List result: the entries plus the token for the strictly-older rest."""

    entries: list[Entry] = field(default_factory=list)
    next_token: Any = None

    def __iter__(self) -> Iterator[Entry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


class Backend(ABC):
    """Ordered key/value store with paging."""

    def __init__(self, codec: Codec | None = None):
        self.codec = codec or JSONCodec()
        self._closed = False

    @abstractmethod
    def get(self, key: Any) -> tuple[Any, bool]:
        """Return (value, found)."""

    @abstractmethod
    def set(self, key: Any, value: Any) -> None:
        ...

    @abstractmethod
    def delete(self, key: Any) -> None:
        """Remove a key. Deleting a missing key is not an error."""

    @abstractmethod
    def _ordered_keys(self) -> list[bytes]:
        """Encoded keys, newest first."""

    @abstractmethod
    def _load(self, raw_key: bytes) -> bytes:
        ...

    def list(self, page_size: int | None = None, page_token: Any = None) -> Page:
        """Return entries newest-first.

        page_size=None returns everything after the token. The returned token
        is None once the remainder is exhausted.
        """
        self._check_open()
        if page_size is not None and page_size <= 0:
            raise ValueError("page_size must be positive")

        keys = self._ordered_keys()
        start = 0
        if page_token is not None:
            raw_token = self.codec.encode_key(page_token)
            try:
                start = keys.index(raw_token) + 1
            except ValueError:
                raise PageTokenError(f"page token {page_token!r} no longer exists") from None

        end = len(keys) if page_size is None else min(len(keys), start + page_size)
        entries = [
            Entry(self.codec.decode_key(k), self.codec.decode_value(self._load(k)))
            for k in keys[start:end]
        ]
        next_token = entries[-1].key if entries and end < len(keys) else None
        return Page(entries=entries, next_token=next_token)

    def iter_all(self, page_size: int = 25) -> Iterator[Entry]:
        """Walk every entry newest-first, following page tokens."""
        token = None
        while True:
            page = self.list(page_size, token)
            yield from page.entries
            if page.next_token is None:
                return
            token = page.next_token

    def flush(self) -> None:
        self._check_open()

    def close(self) -> None:
        if self._closed:
            return
        self.flush()
        self._closed = True

    def _check_open(self) -> None:
        if self._closed:
            raise StorageError("store is closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
