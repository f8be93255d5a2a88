"""System clipboard access through the usual command-line tools."""

from __future__ import annotations

import logging
import subprocess

from chatterm.errors import ClipboardUnavailable

logger = logging.getLogger("chatterm.clipboard")

COPY_COMMANDS = ["wl-copy", "xclip -selection clipboard", "xsel --clipboard --input", "pbcopy"]
PASTE_COMMANDS = ["wl-paste --no-newline", "xclip -selection clipboard -o", "xsel --clipboard --output", "pbpaste"]


def copy_to_clipboard(text: str) -> None:
    """Copy text to the system clipboard; raise ClipboardUnavailable if no tool worked."""
    for cmd in COPY_COMMANDS:
        try:
            proc = subprocess.run(
                cmd.split(),
                input=text,
                text=True,
                capture_output=True,
                timeout=5,
            )
            if proc.returncode == 0:
                return
        except (FileNotFoundError, subprocess.TimeoutExpired):
            continue
    raise ClipboardUnavailable("No clipboard tool available (tried wl-copy, xclip, xsel, pbcopy).")


def read_clipboard() -> str:
    """Return the clipboard contents as text."""
    for cmd in PASTE_COMMANDS:
        try:
            proc = subprocess.run(
                cmd.split(),
                text=True,
                capture_output=True,
                timeout=5,
            )
            if proc.returncode == 0:
                return proc.stdout
            logger.debug("%s exited with %d", cmd, proc.returncode)
        except (FileNotFoundError, subprocess.TimeoutExpired):
            continue
    raise ClipboardUnavailable("No clipboard tool available (tried wl-paste, xclip, xsel, pbpaste).")
