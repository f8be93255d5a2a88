"""Durable append-only log backend.

Every mutation is appended to ``data.log`` as one framed record::

    op (1 byte) | key_len (u32) | value_len (u32) | key | value | crc32 (u32)

The in-memory index is rebuilt by replaying the log on open. A record whose
checksum does not match, or that runs past end of file, marks a torn write:
the file is truncated back to the last good record. When dead records (old
versions and deletions) outnumber live ones the log is rewritten.
"""

from __future__ import annotations

import logging
import os
import struct
import tempfile
import zlib
from pathlib import Path
from typing import Any

from chatterm.errors import StorageError
from chatterm.storage.base import Backend

logger = logging.getLogger("chatterm.storage")

LOG_NAME = "data.log"

OP_SET = 1
OP_DELETE = 2

_HEADER = struct.Struct(">BII")
_CRC = struct.Struct(">I")

# Compaction triggers once there are this many dead records and they outnumber live ones
COMPACT_MIN_DEAD = 64


def _frame(op: int, key: bytes, value: bytes) -> bytes:
    body = _HEADER.pack(op, len(key), len(value)) + key + value
    return body + _CRC.pack(zlib.crc32(body))


class LogBackend(Backend):
    """History store persisted as a single append-only file under ``path``."""

    def __init__(self, path: str | Path, codec=None, compact_min_dead: int = COMPACT_MIN_DEAD):
        super().__init__(codec)
        self.path = Path(path)
        self.compact_min_dead = compact_min_dead
        # Newest first; values are encoded bytes
        self._order: list[bytes] = []
        self._values: dict[bytes, bytes] = {}
        self._dead = 0

        try:
            self.path.mkdir(parents=True, exist_ok=True)
            self._replay()
            self._file = open(self.log_path, "ab")
        except OSError as e:
            raise StorageError(f"cannot open history store at {self.path}: {e}") from e

        self._maybe_compact()

    @property
    def log_path(self) -> Path:
        return self.path / LOG_NAME

    # ── Replay ──────────────────────────────────────────────────────────

    def _replay(self) -> None:
        if not self.log_path.exists():
            return
        data = self.log_path.read_bytes()
        offset = 0
        good = 0
        while offset < len(data):
            record = self._read_record(data, offset)
            if record is None:
                break
            op, key, value, offset = record
            self._apply(op, key, value)
            good = offset

        if good < len(data):
            logger.warning(
                "Truncating torn tail of %s (%d bytes)", self.log_path, len(data) - good
            )
            with open(self.log_path, "r+b") as f:
                f.truncate(good)

    @staticmethod
    def _read_record(data: bytes, offset: int):
        end_header = offset + _HEADER.size
        if end_header > len(data):
            return None
        op, key_len, value_len = _HEADER.unpack_from(data, offset)
        end_body = end_header + key_len + value_len
        end = end_body + _CRC.size
        if op not in (OP_SET, OP_DELETE) or end > len(data):
            return None
        (crc,) = _CRC.unpack_from(data, end_body)
        if crc != zlib.crc32(data[offset:end_body]):
            return None
        key = data[end_header:end_header + key_len]
        value = data[end_header + key_len:end_body]
        return op, key, value, end

    def _apply(self, op: int, key: bytes, value: bytes) -> None:
        exists = key in self._values
        if op == OP_SET:
            if exists:
                self._dead += 1
            else:
                self._order.insert(0, key)
            self._values[key] = value
        else:
            # The delete record itself is dead weight as well as the value it removes
            if exists:
                self._order.remove(key)
                del self._values[key]
                self._dead += 1
            self._dead += 1

    # ── Operations ──────────────────────────────────────────────────────

    def _append(self, op: int, key: bytes, value: bytes = b"") -> None:
        try:
            self._file.write(_frame(op, key, value))
        except OSError as e:
            raise StorageError(f"write to {self.log_path} failed: {e}") from e
        self._apply(op, key, value)

    def get(self, key: Any) -> tuple[Any, bool]:
        self._check_open()
        raw = self._values.get(self.codec.encode_key(key))
        if raw is None:
            return None, False
        return self.codec.decode_value(raw), True

    def set(self, key: Any, value: Any) -> None:
        self._check_open()
        self._append(OP_SET, self.codec.encode_key(key), self.codec.encode_value(value))

    def delete(self, key: Any) -> None:
        self._check_open()
        raw_key = self.codec.encode_key(key)
        if raw_key in self._values:
            self._append(OP_DELETE, raw_key)

    def _ordered_keys(self) -> list[bytes]:
        return list(self._order)

    def _load(self, raw_key: bytes) -> bytes:
        return self._values[raw_key]

    def flush(self) -> None:
        self._check_open()
        try:
            self._file.flush()
            os.fsync(self._file.fileno())
        except OSError as e:
            raise StorageError(f"flush of {self.log_path} failed: {e}") from e
        self._maybe_compact()

    def close(self) -> None:
        if self._closed:
            return
        try:
            self.flush()
        finally:
            self._file.close()
            self._closed = True

    # ── Compaction ──────────────────────────────────────────────────────

    @property
    def dead_records(self) -> int:
        return self._dead

    def _maybe_compact(self) -> None:
        if self._dead >= self.compact_min_dead and self._dead > len(self._values):
            self.compact()

    def compact(self) -> None:
        """Rewrite the log with only live records, oldest first."""
        self._check_open()
        fd, tmp = tempfile.mkstemp(dir=str(self.path), prefix=".compact-", suffix=".log")
        try:
            with os.fdopen(fd, "wb") as f:
                for key in reversed(self._order):
                    f.write(_frame(OP_SET, key, self._values[key]))
                f.flush()
                os.fsync(f.fileno())
            self._file.close()
            os.replace(tmp, self.log_path)
        except OSError as e:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise StorageError(f"compaction of {self.log_path} failed: {e}") from e
        finally:
            if self._file.closed:
                self._file = open(self.log_path, "ab")
        logger.debug("Compacted %s: dropped %d dead records", self.log_path, self._dead)
        self._dead = 0
