"""Pluggable ordered key/value history stores."""

from chatterm.storage.base import Backend, Entry, Page
from chatterm.storage.codec import Codec, JSONCodec
from chatterm.storage.logfile import LogBackend
from chatterm.storage.memory import MemoryBackend

__all__ = [
    "Backend",
    "Codec",
    "Entry",
    "JSONCodec",
    "LogBackend",
    "MemoryBackend",
    "Page",
]
