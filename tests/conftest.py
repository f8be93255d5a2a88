"""Shared fixtures for chatterm tests."""

import io
import json
from pathlib import Path

import httpx
import pytest
from rich.console import Console

from chatterm.cleanup import ResourceKind
from chatterm.config import AppConfig
from chatterm.responses.client import ResponsesClient
from chatterm.session import Session
from chatterm.storage.memory import MemoryBackend
from chatterm.substitution import Substituter


def make_response(response_id: str, text: str, total_tokens: int = 5) -> dict:
    """A minimal responses API payload with one assistant message."""
    return {
        "id": response_id,
        "object": "response",
        "model": "gpt-test",
        "status": "completed",
        "output": [
            {
                "type": "message",
                "id": f"msg_{response_id}",
                "role": "assistant",
                "status": "completed",
                "content": [{"type": "output_text", "text": text, "annotations": []}],
            }
        ],
        "usage": {"input_tokens": total_tokens - 1, "output_tokens": 1, "total_tokens": total_tokens},
    }


class FakeAPI:
    """Scriptable stand-in for the remote service, served through httpx.MockTransport."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.replies: list[tuple[str, int]] = []
        # Per-create override: an error status, or None for a normal reply
        self.statuses: list[int | None] = []
        # Verbatim JSON bodies served before any queued reply
        self.raw_bodies: list[dict] = []
        self.interrupt_on_create = False
        self.deleted: list[str] = []
        self.deleted_files: list[str] = []
        self._count = 0

    def queue(self, text: str, total_tokens: int = 5) -> None:
        self.replies.append((text, total_tokens))

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        method = request.method

        if method == "POST" and path.endswith("/responses"):
            if self.interrupt_on_create:
                raise KeyboardInterrupt
            status = self.statuses.pop(0) if self.statuses else None
            if status is not None:
                return httpx.Response(
                    status, json={"error": {"message": f"status {status}", "type": "test_error", "code": "x"}}
                )
            if self.raw_bodies:
                return httpx.Response(200, json=self.raw_bodies.pop(0))
            self._count += 1
            text, tokens = self.replies.pop(0) if self.replies else (f"reply {self._count}", 5)
            return httpx.Response(200, json=make_response(f"resp_{self._count}", text, tokens))

        if method == "DELETE" and "/responses/" in path:
            self.deleted.append(path.rsplit("/", 1)[-1])
            return httpx.Response(204)

        if method == "GET" and path.endswith("/input_items"):
            return httpx.Response(200, json={
                "object": "list",
                "data": [{"id": "msg_1", "type": "message", "role": "user", "content": [{"type": "input_text", "text": "hi"}]}],
                "first_id": "msg_1",
                "last_id": "msg_1",
                "has_more": False,
            })

        if method == "GET" and "/responses/" in path:
            return httpx.Response(200, json=make_response(path.rsplit("/", 1)[-1], "stored"))

        if method == "POST" and path.endswith("/files"):
            return httpx.Response(200, json={"id": "file_1", "object": "file", "purpose": "assistants"})

        if method == "DELETE" and "/files/" in path:
            self.deleted_files.append(path.rsplit("/", 1)[-1])
            return httpx.Response(204)

        if method == "POST" and path.endswith("/audio/speech"):
            return httpx.Response(200, content=b"ID3fake-mp3")

        if method == "POST" and path.endswith("/images/generations"):
            return httpx.Response(200, json={"data": [{"url": "https://img.example/1.png", "revised_prompt": "A cat"}]})

        return httpx.Response(404, json={"error": {"message": "not found"}})

    def bodies(self, method: str = "POST", suffix: str = "/responses") -> list[dict]:
        return [
            json.loads(r.content)
            for r in self.requests
            if r.method == method and r.url.path.endswith(suffix)
        ]

    def client(self, **kwargs) -> ResponsesClient:
        kwargs.setdefault("retry_base_delay", 0.0)
        return ResponsesClient(
            api_key="sk-test",
            base_url="https://api.test/v1",
            transport=httpx.MockTransport(self.handle),
            sleep=lambda s: None,
            **kwargs,
        )


class ScriptedTerminal:
    """Terminal double: feeds scripted lines and records output.

    A script item that is an exception (class or instance) is raised from
    read_line, which is how tests simulate Ctrl+C. A callable item is called
    and its result used as the line.
    """

    def __init__(self, lines=(), width: int = 100):
        self.lines = list(lines)
        self.width = width
        self.console = Console(file=io.StringIO(), width=width, force_terminal=False, color_system=None)
        self.raw = False
        self.restored = False
        self.cleared = 0

    def enter_raw_mode(self, ledger):
        ledger.register(ResourceKind.TERMINAL_MODE, "terminal mode", self._restore)
        self.raw = True

    def _restore(self):
        self.raw = False
        self.restored = True

    def read_line(self):
        if not self.lines:
            return None
        item = self.lines.pop(0)
        if isinstance(item, BaseException) or (isinstance(item, type) and issubclass(item, BaseException)):
            raise item
        if callable(item):
            return item()
        return item

    def write(self, text: str) -> None:
        self.console.file.write(text)

    def clear(self) -> None:
        self.cleared += 1

    @property
    def output(self) -> str:
        return self.console.file.getvalue()


@pytest.fixture
def api() -> FakeAPI:
    return FakeAPI()


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(api_key="sk-test", model="gpt-test", cache_path=tmp_path / "cache", retry_base_delay=0.0)


@pytest.fixture
def store() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def clipboard_log() -> list[str]:
    return []


@pytest.fixture
def make_session(api, config, store, clipboard_log):
    """Factory: build a Session around the fake API and a scripted terminal."""

    def factory(lines=(), mode="chat", substituter=None, **kwargs):
        terminal = ScriptedTerminal(lines)
        session = Session(
            config,
            api.client(),
            kwargs.pop("backend", store),
            terminal,
            mode=mode,
            substituter=substituter or Substituter(
                http_client=httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200, text="page"))),
                clipboard=lambda: "CLIP",
            ),
            clipboard_writer=clipboard_log.append,
            **kwargs,
        )
        return session, terminal

    return factory
