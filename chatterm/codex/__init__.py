"""Runner for the external code agent and its JSON event stream."""

from chatterm.codex.events import ThreadEvent, parse_event
from chatterm.codex.runner import CodexArgs, CodexRunner, SandboxMode

__all__ = ["CodexArgs", "CodexRunner", "SandboxMode", "ThreadEvent", "parse_event"]
