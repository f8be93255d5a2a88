"""Speech playback through whichever command-line audio player is installed."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile

from chatterm.cleanup import CleanupLedger, ResourceKind
from chatterm.errors import ChatError, NoAudioPlayer

logger = logging.getLogger("chatterm.audio")

PLAYERS = [
    ["afplay"],
    ["mpg123", "-q"],
    ["ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet"],
]


def find_player() -> list[str]:
    for cmd in PLAYERS:
        if shutil.which(cmd[0]):
            return cmd
    raise NoAudioPlayer("No audio player available (tried afplay, mpg123, ffplay).")


def write_temp_audio(data: bytes, ledger: CleanupLedger, suffix: str = ".mp3") -> str:
    """Write audio bytes to a temp file registered for removal."""
    fd, path = tempfile.mkstemp(prefix="chatterm-speech-", suffix=suffix)
    ledger.register(ResourceKind.TEMP_FILE, f"speech file {path}", lambda: _remove(path))
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    return path


def _remove(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


def play(path: str) -> None:
    """Play an audio file, blocking until it finishes. Ctrl+C stops playback."""
    cmd = find_player() + [path]
    logger.debug("Playing %s with %s", path, cmd[0])
    proc = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    try:
        code = proc.wait()
    except KeyboardInterrupt:
        proc.terminate()
        proc.wait()
        raise
    if code != 0:
        raise ChatError(f"{cmd[0]} exited with code {code}")
