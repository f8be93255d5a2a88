"""Key and value serialization for history backends."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from chatterm.errors import StorageError


class Codec(ABC):
    """Encodes keys and values to bytes and back."""

    @abstractmethod
    def encode_key(self, key: Any) -> bytes:
        ...

    @abstractmethod
    def decode_key(self, data: bytes) -> Any:
        ...

    @abstractmethod
    def encode_value(self, value: Any) -> bytes:
        ...

    @abstractmethod
    def decode_value(self, data: bytes) -> Any:
        ...


class JSONCodec(Codec):
    """UTF-8 string keys, JSON values."""

    def encode_key(self, key: str) -> bytes:
        if not isinstance(key, str):
            raise StorageError(f"key must be a string, got {type(key).__name__}")
        return key.encode("utf-8")

    def decode_key(self, data: bytes) -> str:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StorageError(f"undecodable key: {e}") from e

    def encode_value(self, value: Any) -> bytes:
        try:
            return json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise StorageError(f"cannot encode value: {e}") from e

    def decode_value(self, data: bytes) -> Any:
        try:
            return json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StorageError(f"cannot decode value: {e}") from e
