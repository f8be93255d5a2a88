"""Exception hierarchy shared by every chatterm component."""

from __future__ import annotations


class ChatError(Exception):
    """Base class for errors reported to the user inside a session."""


# ── Token substitution ───────────────────────────────────────────────────────

class SubstitutionError(ChatError):
    """A #file:, #url: or <clipboard> token could not be expanded."""


class FileInclusionError(SubstitutionError, OSError):
    """A #file: token referenced a file that could not be read."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"failed to open file {path!r}: {reason}")
        self.path = path


class URLFetchError(SubstitutionError):
    """A #url: fetch failed or returned a non-2xx status."""

    def __init__(self, url: str, status_code: int | None = None, reason: str = ""):
        detail = f"HTTP {status_code}" if status_code is not None else reason
        super().__init__(f"failed to fetch URL {url!r}: {detail}")
        self.url = url
        self.status_code = status_code


class ClipboardUnavailable(SubstitutionError):
    """No clipboard tool is available, or it failed."""


class UnsafeURLScheme(SubstitutionError):
    """A #url: token named a scheme other than http or https."""

    def __init__(self, url: str, scheme: str):
        super().__init__(f"refusing to fetch {url!r}: unsupported scheme {scheme!r}")
        self.url = url
        self.scheme = scheme


# ── Remote service ───────────────────────────────────────────────────────────

class APIError(ChatError):
    """The remote service answered with an error status."""

    def __init__(self, status_code: int, message: str, code: str = "", type: str = ""):
        parts = [p for p in (code, type) if p]
        prefix = f"API error {status_code}"
        if parts:
            prefix += f" ({': '.join(parts)})"
        super().__init__(f"{prefix}: {message}")
        self.status_code = status_code
        self.message = message
        self.code = code
        self.type = type

    @property
    def retryable(self) -> bool:
        return self.status_code == 429 or self.status_code >= 500


class RateLimitError(APIError):
    """HTTP 429."""


class ServerError(APIError):
    """HTTP 5xx."""


class TransportError(ChatError):
    """Network failure or timeout that outlived the retry budget."""


class MalformedResponseError(ChatError):
    """The remote service returned a payload that could not be decoded."""


# ── Storage / terminal / agent ───────────────────────────────────────────────

class StorageError(ChatError):
    """History store failure (codec or IO)."""


class PageTokenError(StorageError):
    """A List continuation token no longer refers to a stored key."""


class TerminalError(ChatError):
    """The terminal could not enter or leave raw mode. Fatal."""


class CodexError(ChatError):
    """The code-agent runner could not be started or exited with an error."""


class NoAudioPlayer(ChatError):
    """None of the supported audio players is installed."""
