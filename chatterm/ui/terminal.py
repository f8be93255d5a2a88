"""Terminal ownership: raw mode, prompt, line input, screen control."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.history import FileHistory
from prompt_toolkit.key_binding import KeyBindings
from rich.console import Console

from chatterm.cleanup import CleanupLedger, ResourceKind
from chatterm.config import HISTORY_FILE
from chatterm.errors import TerminalError
from chatterm.ui import renderer
from chatterm.ui.completer import Completer, Key

logger = logging.getLogger("chatterm.ui")

PROMPT_GLYPH = "‣ "
CLEAR_SCREEN = "\033[2J\033[H"


class Terminal:
    """The interactive terminal. Owns stdin/stdout for the whole session."""

    def __init__(
        self,
        completer: Completer | None = None,
        history_file: Path | None = HISTORY_FILE,
        console: Console | None = None,
    ):
        self.completer = completer or Completer()
        self.history_file = history_file
        self.console = console or renderer.console
        self._session: PromptSession | None = None

    @property
    def width(self) -> int:
        return renderer.terminal_width()

    # ── Raw mode ────────────────────────────────────────────────────────

    def enter_raw_mode(self, ledger: CleanupLedger) -> None:
        """Capture the terminal mode, switch to cbreak, register the restore."""
        if not sys.stdin.isatty():
            return
        try:
            import termios
            import tty
        except ImportError:
            # No termios on this platform; prompt_toolkit handles the console itself
            return

        fd = sys.stdin.fileno()
        try:
            saved = termios.tcgetattr(fd)
        except termios.error as e:
            raise TerminalError(f"cannot read terminal mode: {e}") from e

        def restore():
            try:
                termios.tcsetattr(fd, termios.TCSADRAIN, saved)
            except termios.error as e:
                raise TerminalError(f"cannot restore terminal mode: {e}") from e

        # Registered before switching so a failed switch still restores
        ledger.register(ResourceKind.TERMINAL_MODE, "terminal mode", restore)
        try:
            tty.setcbreak(fd)
        except termios.error as e:
            raise TerminalError(f"cannot enter raw mode: {e}") from e

    # ── Input ───────────────────────────────────────────────────────────

    def _key_bindings(self) -> KeyBindings:
        bindings = KeyBindings()

        def _complete(event, key: Key):
            buf = event.current_buffer
            text, cursor, handled = self.completer.complete(buf.text, buf.cursor_position, key)
            if handled:
                buf.text = text
                buf.cursor_position = cursor

        @bindings.add("tab")
        def _(event):
            """Tab completes verbs, <clipboard> and #file: paths."""
            _complete(event, Key.TAB)

        @bindings.add("escape", "right")
        def _(event):
            """Alt+Right cycles #file: matches forward."""
            _complete(event, Key.ALT_RIGHT)

        @bindings.add("escape", "left")
        def _(event):
            """Alt+Left cycles #file: matches backward."""
            _complete(event, Key.ALT_LEFT)

        return bindings

    def _build_session(self) -> PromptSession:
        history = None
        if self.history_file is not None:
            self.history_file.parent.mkdir(parents=True, exist_ok=True)
            history = FileHistory(str(self.history_file))

        return PromptSession(
            history=history,
            auto_suggest=AutoSuggestFromHistory(),
            multiline=False,
            key_bindings=self._key_bindings(),
            enable_history_search=True,
        )

    def read_line(self) -> str | None:
        """Prompt and return the next line, or None at end of input.

        Ctrl+C raises KeyboardInterrupt to the caller.
        """
        if self._session is None:
            self._session = self._build_session()
        try:
            return self._session.prompt(FormattedText([("bold", PROMPT_GLYPH)]))
        except EOFError:
            return None

    # ── Output ──────────────────────────────────────────────────────────

    def write(self, text: str) -> None:
        self.console.file.write(text)
        self.console.file.flush()

    def clear(self) -> None:
        self.write(CLEAR_SCREEN)
