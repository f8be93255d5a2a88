"""Expansion of ``#file:``, ``#url:`` and ``<clipboard>`` tokens in user input.

Substitutions run in a fixed order: files, then URLs, then the clipboard.
File and URL tokens are resolved from the line as typed, so text pulled in
from a file is never scanned for further tokens. Any failure aborts the
whole expansion; callers keep the original line and report the error.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable

import httpx

from chatterm.clipboard import read_clipboard
from chatterm.config import URL_FETCH_TIMEOUT
from chatterm.errors import FileInclusionError, UnsafeURLScheme, URLFetchError

logger = logging.getLogger("chatterm.substitution")

FILE_PREFIX = "#file:"
URL_PREFIX = "#url:"
CLIPBOARD_TOKEN = "<clipboard>"

_FILE_TOKEN = re.compile(r"(?<!\S)#file:(\S+)")
_URL_TOKEN = re.compile(r"(?<!\S)#url:(\S+)")
_ANY_TOKEN = re.compile(r"(?<!\S)#(?:file|url):\S+|<clipboard>")
_SCHEME = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*)://")
# Schemes that can appear without "//"
_BARE_SCHEMES = ("javascript", "data", "file", "mailto", "ftp", "vbscript")


def normalize_url(raw: str) -> str:
    """Force https: upgrade http://, add https:// when no scheme, refuse anything else."""
    match = _SCHEME.match(raw)
    if match:
        scheme = match.group(1).lower()
        rest = raw[match.end():]
        if scheme in ("http", "https"):
            return "https://" + rest
        raise UnsafeURLScheme(raw, scheme)
    head = raw.split(":", 1)[0].lower()
    if ":" in raw and head in _BARE_SCHEMES:
        raise UnsafeURLScheme(raw, head)
    return "https://" + raw


class Substituter:
    """Expands trigger tokens in one input line."""

    def __init__(
        self,
        http_client: httpx.Client | None = None,
        clipboard: Callable[[], str] = read_clipboard,
        cwd: Path | None = None,
        url_timeout: float = URL_FETCH_TIMEOUT,
    ):
        self._http = http_client or httpx.Client(timeout=url_timeout, follow_redirects=True)
        self._clipboard = clipboard
        self.cwd = cwd

    def close(self) -> None:
        self._http.close()

    def expand(self, line: str) -> str:
        if FILE_PREFIX not in line and URL_PREFIX not in line and CLIPBOARD_TOKEN not in line:
            return line

        resolved: dict[str, str] = {}
        for m in _FILE_TOKEN.finditer(line):
            if m.group(0) not in resolved:
                resolved[m.group(0)] = self._read_file(m.group(1))
        for m in _URL_TOKEN.finditer(line):
            if m.group(0) not in resolved:
                resolved[m.group(0)] = self._fetch(m.group(1))
        if CLIPBOARD_TOKEN in line:
            resolved[CLIPBOARD_TOKEN] = self._clipboard()

        # One pass over the typed line; substituted text is never rescanned
        return _ANY_TOKEN.sub(lambda m: resolved[m.group(0)], line)

    def _read_file(self, raw_path: str) -> str:
        path = Path(raw_path).expanduser()
        if self.cwd is not None and not path.is_absolute():
            path = self.cwd / path
        try:
            return path.read_bytes().decode("utf-8", errors="replace")
        except OSError as e:
            raise FileInclusionError(raw_path, e.strerror or str(e)) from e

    def fetch(self, raw_url: str) -> httpx.Response:
        """GET a URL over https. Non-2xx statuses raise URLFetchError."""
        url = normalize_url(raw_url)
        logger.debug("Fetching %s", url)
        try:
            resp = self._http.get(url)
        except httpx.HTTPError as e:
            raise URLFetchError(url, reason=str(e)) from e
        if not resp.is_success:
            raise URLFetchError(url, status_code=resp.status_code)
        return resp

    def _fetch(self, raw_url: str) -> str:
        return self.fetch(raw_url).text
