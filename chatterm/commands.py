"""Built-in verb recognition.

Commands are matched on the raw line, before any token substitution:
exact verbs first, then verbs that take an argument.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Verb(str, Enum):
    EXIT = "exit"
    CLEAR = "clear"
    HELP = "help"
    ERASE = "erase"
    DELETE = "delete"
    COPY = "copy"
    TOKENS = "tokens"
    SPEAK = "speak"
    SYSTEM = "system:"
    UPLOAD = "upload"
    CODEX = "@codex"


EXACT_VERBS = (Verb.EXIT, Verb.CLEAR, Verb.HELP, Verb.ERASE, Verb.DELETE, Verb.COPY, Verb.TOKENS, Verb.SPEAK)

# Verbs followed by a space and an argument
ARG_VERBS = (Verb.DELETE, Verb.UPLOAD, Verb.CODEX)


@dataclass
class Command:
    verb: Verb
    arg: str = ""


def parse_command(line: str) -> Command | None:
    """Return the command a line invokes, or None for a normal message."""
    text = line.strip()
    if not text:
        return None

    for verb in EXACT_VERBS:
        if text == verb.value:
            return Command(verb)

    if text.startswith(Verb.SYSTEM.value):
        return Command(Verb.SYSTEM, text[len(Verb.SYSTEM.value):].strip())

    head, _, rest = text.partition(" ")
    for verb in ARG_VERBS:
        if head == verb.value:
            return Command(verb, rest.strip())
    return None
