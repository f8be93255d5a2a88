"""Deferred release of resources that outlive the statement that acquired them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

logger = logging.getLogger("chatterm.cleanup")


class ResourceKind(str, Enum):
    TERMINAL_MODE = "terminal_mode"
    REMOTE_RESPONSE = "remote_response"
    REMOTE_FILE = "remote_file"
    TEMP_FILE = "temp_file"
    FILE_HANDLE = "file_handle"


@dataclass
class LedgerEntry:
    kind: ResourceKind
    description: str
    fn: Callable[[], None]
    done: bool = False

    def release(self) -> bool:
        """Run the closure once. Returns False if it raised."""
        if self.done:
            return True
        self.done = True
        try:
            self.fn()
        except Exception as e:
            logger.warning(
                "Cleanup of %s failed: %s", self.description, e,
                extra={"resource_kind": self.kind.value},
            )
            return False
        logger.debug("Released %s", self.description, extra={"resource_kind": self.kind.value})
        return True


class CleanupLedger:
    """Closures run newest-first, each at most once, failures logged and skipped.

    Register a resource immediately after acquiring it. The ledger is a
    context manager; leaving the block (normally, by exception or by
    KeyboardInterrupt) unwinds it.
    """

    def __init__(self):
        self._entries: list[LedgerEntry] = []

    def register(self, kind: ResourceKind, description: str, fn: Callable[[], None]) -> LedgerEntry:
        entry = LedgerEntry(ResourceKind(kind), description, fn)
        self._entries.append(entry)
        return entry

    def release(self, entry: LedgerEntry) -> bool:
        """Run one entry early and drop it from the ledger."""
        ok = entry.release()
        if entry in self._entries:
            self._entries.remove(entry)
        return ok

    @property
    def pending(self) -> list[LedgerEntry]:
        return [e for e in self._entries if not e.done]

    def run(self) -> int:
        """Unwind every pending entry. Returns the number of failures."""
        failures = 0
        while self._entries:
            entry = self._entries.pop()
            try:
                if not entry.release():
                    failures += 1
            except KeyboardInterrupt:
                # A second interrupt must not leave earlier entries (raw mode) unreleased
                logger.warning("Interrupted while releasing %s", entry.description)
                failures += 1
        return failures

    def __enter__(self) -> "CleanupLedger":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.run()
