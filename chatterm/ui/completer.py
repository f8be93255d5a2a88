"""Tab completion for built-in verbs, ``<clipboard>`` and cycling ``#file:`` globs."""

from __future__ import annotations

import glob
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

VERBS = (
    "exit",
    "clear",
    "delete",
    "copy",
    "tokens",
    "help",
    "erase",
    "system:",
    "upload",
    "speak",
    "@codex",
)

FILE_PREFIX = "#file:"
CLIPBOARD_TOKEN = "<clipboard>"
CLIPBOARD_TRIGGER = "<clip"


class Key(str, Enum):
    TAB = "tab"
    ALT_RIGHT = "alt-right"
    ALT_LEFT = "alt-left"


@dataclass
class _Cycle:
    prefix: str
    matches: list[str] = field(default_factory=list)
    index: int = -1

    @property
    def current(self) -> str:
        return FILE_PREFIX + self.matches[self.index]


def _default_glob(pattern: str) -> list[str]:
    return sorted(glob.glob(os.path.expanduser(pattern)))


class Completer:
    """Pure completion logic: ``complete(line, cursor, key)`` -> ``(line, cursor, handled)``.

    The ``#file:`` cycle is keyed on the exact prefix typed after ``#file:``.
    While the word under the cursor is still the completion we inserted, the
    next press moves through the same matches; any other word starts a fresh
    cycle at the first match.
    """

    def __init__(self, verbs: tuple[str, ...] = VERBS, glob_fn: Callable[[str], list[str]] = _default_glob):
        self.verbs = verbs
        self._glob = glob_fn
        self._cycle: _Cycle | None = None

    def complete(self, line: str, cursor: int, key: Key | str) -> tuple[str, int, bool]:
        key = Key(key)
        cursor = max(0, min(cursor, len(line)))
        head, tail = line[:cursor], line[cursor:]
        word_start = max(head.rfind(" "), head.rfind("\t")) + 1
        word = head[word_start:]

        if word.startswith(FILE_PREFIX):
            return self._cycle_files(head[:word_start], word, tail, key)

        if key is not Key.TAB:
            return line, cursor, False

        if word and word != CLIPBOARD_TOKEN and word.startswith(CLIPBOARD_TRIGGER) and CLIPBOARD_TOKEN.startswith(word):
            new_head = head[:word_start] + CLIPBOARD_TOKEN
            return new_head + tail, len(new_head), True

        if line and not tail:
            for verb in self.verbs:
                if verb.startswith(line) and verb != line:
                    return verb, len(verb), True

        return line, cursor, False

    def _cycle_files(self, before: str, word: str, tail: str, key: Key) -> tuple[str, int, bool]:
        cycle = self._cycle
        if cycle is not None and cycle.index >= 0 and word == cycle.current:
            step = -1 if key is Key.ALT_LEFT else 1
            cycle.index = (cycle.index + step) % len(cycle.matches)
        else:
            prefix = word[len(FILE_PREFIX):]
            cycle = _Cycle(prefix=prefix, matches=self._glob(prefix + "*"))
            self._cycle = cycle
            if not cycle.matches:
                return before + word + tail, len(before + word), False
            cycle.index = 0

        new_head = before + cycle.current
        return new_head + tail, len(new_head), True

    def reset(self) -> None:
        self._cycle = None
