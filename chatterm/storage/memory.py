"""Volatile in-process backend."""

from __future__ import annotations

from typing import Any

from chatterm.storage.base import Backend


class MemoryBackend(Backend):
    """A list of encoded entries with front insertion."""

    def __init__(self, codec=None):
        super().__init__(codec)
        self._entries: list[tuple[bytes, bytes]] = []

    def _find(self, raw_key: bytes) -> int:
        for i, (k, _) in enumerate(self._entries):
            if k == raw_key:
                return i
        return -1

    def get(self, key: Any) -> tuple[Any, bool]:
        self._check_open()
        i = self._find(self.codec.encode_key(key))
        if i < 0:
            return None, False
        return self.codec.decode_value(self._entries[i][1]), True

    def set(self, key: Any, value: Any) -> None:
        self._check_open()
        raw_key = self.codec.encode_key(key)
        raw_value = self.codec.encode_value(value)
        i = self._find(raw_key)
        if i >= 0:
            self._entries[i] = (raw_key, raw_value)
        else:
            self._entries.insert(0, (raw_key, raw_value))

    def delete(self, key: Any) -> None:
        self._check_open()
        i = self._find(self.codec.encode_key(key))
        if i >= 0:
            del self._entries[i]

    def _ordered_keys(self) -> list[bytes]:
        return [k for k, _ in self._entries]

    def _load(self, raw_key: bytes) -> bytes:
        return self._entries[self._find(raw_key)][1]
