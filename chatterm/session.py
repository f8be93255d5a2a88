"""Interactive session: the per-turn state machine behind every chat mode."""

from __future__ import annotations

import contextlib
import io
import logging
import os
import signal
from pathlib import Path
from typing import Callable
from urllib.parse import urlparse

from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn

from chatterm import audio
from chatterm.cleanup import CleanupLedger, ResourceKind
from chatterm.clipboard import copy_to_clipboard
from chatterm.codex import CodexArgs, CodexRunner, SandboxMode
from chatterm.codex.events import EventType, ItemType
from chatterm.commands import Command, Verb, parse_command
from chatterm.config import DEFAULT_SPEECH_MODEL, DEFAULT_SPEECH_VOICE, RENDER_RATIOS, AppConfig
from chatterm.conversation import ConversationBuffer, Role, Turn
from chatterm.errors import ChatError, StorageError
from chatterm.responses.client import ResponsesClient
from chatterm.responses.types import (
    InputFile,
    InputText,
    ItemListInput,
    Message,
    RequestInput,
    ResponseRequest,
    TextInput,
    WebSearchPreviewTool,
)
from chatterm.storage.base import Backend
from chatterm.substitution import Substituter
from chatterm.summarize import Summarizer
from chatterm.ui import renderer

logger = logging.getLogger("chatterm.session")


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt


def install_signal_handlers() -> None:
    """Treat SIGTERM like Ctrl+C so the session unwinds its cleanup ledger."""
    signal.signal(signal.SIGTERM, _raise_interrupt)


class Session:
    """One interactive conversation.

    Modes:
        chat       nothing stored remotely; every request carries the whole buffer
        responses  responses are stored and threaded through previous_response_id
        assistant  responses mode at a narrower render width (deprecated)
    """

    def __init__(
        self,
        config: AppConfig,
        client: ResponsesClient,
        store: Backend,
        terminal,
        mode: str = "chat",
        substituter: Substituter | None = None,
        summarizer: Summarizer | None = None,
        codex_runner: CodexRunner | None = None,
        ledger: CleanupLedger | None = None,
        clipboard_writer: Callable[[str], None] = copy_to_clipboard,
    ):
        if mode not in RENDER_RATIOS:
            raise ValueError(f"unknown session mode {mode!r}")
        self.config = config
        self.client = client
        self.store = store
        self.terminal = terminal
        self.mode = mode
        self.remote = mode != "chat"
        self.substituter = substituter or Substituter(url_timeout=config.url_timeout)
        self.summarizer = summarizer or Summarizer(client, config.model, config.max_context_window)
        self.codex = codex_runner or CodexRunner()
        self.ledger = ledger or CleanupLedger()
        self._copy = clipboard_writer

        self.buffer = ConversationBuffer()
        self.previous_remote_id: str | None = None
        self.last_rendered_text = ""
        self.pending_remote_ids: list[str] = []
        self._pending_file_ids: list[str] = []
        self._stored_keys: set[str] = set()
        # A system: turn not yet sent with a message; a second system: replaces it
        self._unsent_system_key: str | None = None
        self._running = True

    @property
    def out(self):
        return self.terminal.console

    # ── Lifecycle ───────────────────────────────────────────────────────

    def run(self) -> int:
        """Drive the REPL until exit, end of input or interrupt. Returns the exit code."""
        with self.ledger:
            self.terminal.enter_raw_mode(self.ledger)
            self.ledger.register(ResourceKind.FILE_HANDLE, "history store", self.store.close)
            self.ledger.register(ResourceKind.FILE_HANDLE, "url fetcher", self.substituter.close)
            if self.remote and self.config.cleanup_server_state:
                self.ledger.register(ResourceKind.REMOTE_RESPONSE, "stored responses", self.drain_pending)

            self.restore()
            renderer.show_welcome(self.mode, self.config.model, out=self.out)
            if self.mode == "assistant":
                renderer.show_warning("The assistant mode is deprecated; use `responses chat`.", out=self.out)

            try:
                while self._running:
                    line = self.terminal.read_line()
                    if line is None:
                        break
                    self.handle_line(line)
            except KeyboardInterrupt:
                self.out.print()
                logger.info("Interrupted, shutting down")
        return 0

    def restore(self) -> None:
        """Load the persisted buffer. The threading pointer always starts empty."""
        entries = list(self.store.iter_all())
        turns = [Turn.from_dict(e.value, key=e.key) for e in reversed(entries)]
        self.buffer.reset(turns)
        self._stored_keys = {t.key for t in turns}
        if turns:
            logger.debug("Restored %d turns", len(turns))

    def persist(self) -> bool:
        """Mirror the buffer into the store. Unsaved changes are retried next time."""
        current = {t.key for t in self.buffer}
        try:
            for key in sorted(self._stored_keys - current):
                self.store.delete(key)
                self._stored_keys.discard(key)
            for turn in self.buffer:
                if turn.key not in self._stored_keys:
                    self.store.set(turn.key, turn.to_dict())
                    self._stored_keys.add(turn.key)
            self.store.flush()
        except StorageError as e:
            logger.error("Failed to persist history: %s", e)
            renderer.show_error(f"History not saved: {e}", out=self.out)
            return False
        return True

    def drain_pending(self) -> None:
        """Delete every stored response, newest first, with a progress bar."""
        if not self.pending_remote_ids:
            return
        ids = list(reversed(self.pending_remote_ids))
        progress = Progress(
            TextColumn("{task.description}"),
            BarColumn(bar_width=20),
            TaskProgressColumn(),
            console=self.out,
            transient=True,
        )
        with progress:
            task = progress.add_task("Deleting responses", total=len(ids))
            for response_id in ids:
                try:
                    self.client.delete(
                        response_id,
                        max_retries=1,
                        timeout=self.config.cleanup_timeout,
                    )
                except ChatError as e:
                    logger.warning(
                        "Could not delete response %s: %s", response_id, e,
                        extra={"response_id": response_id, "resource_kind": ResourceKind.REMOTE_RESPONSE.value},
                    )
                self.pending_remote_ids.remove(response_id)
                if self.previous_remote_id == response_id:
                    self.previous_remote_id = None
                progress.advance(task)

    # ── Per-turn state machine ──────────────────────────────────────────

    def handle_line(self, line: str) -> None:
        command = parse_command(line)
        if command is not None:
            self.dispatch(command)
            return
        if not line.strip():
            return

        try:
            text = self.substituter.expand(line)
        except ChatError as e:
            renderer.show_error(str(e), out=self.out)
            return
        self.send(text)

    def _build_input(self, user: Turn) -> RequestInput:
        turns = self.buffer.snapshot()
        if self.remote and self.previous_remote_id:
            for i, turn in enumerate(turns):
                if turn.remote_id == self.previous_remote_id:
                    turns = turns[i + 1:]
                    break
        turns.append(user)

        if len(turns) == 1 and not user.file_ids:
            return TextInput(user.content)
        return ItemListInput([self._to_message(t) for t in turns])

    @staticmethod
    def _to_message(turn: Turn) -> Message:
        if not turn.file_ids:
            return Message(turn.role.value, turn.content)
        parts = [InputFile(file_id=fid) for fid in turn.file_ids]
        return Message(turn.role.value, [InputText(turn.content)] + parts)

    def send(self, text: str) -> bool:
        """Send one user message. The buffer changes only if the call succeeds."""
        user = Turn(Role.USER, text, file_ids=list(self._pending_file_ids))
        request = ResponseRequest(
            model=self.config.model,
            input=self._build_input(user),
            previous_response_id=self.previous_remote_id if self.remote else None,
            tools=[WebSearchPreviewTool()] if self.remote and self.config.web_search else [],
            store=self.remote,
            max_output_tokens=self.config.max_output_tokens,
        )

        try:
            with self.out.status("[dim]Thinking...[/dim]", spinner="dots"):
                response = self.client.create(request)
        except ChatError as e:
            renderer.show_error(str(e), out=self.out)
            return False

        self._pending_file_ids.clear()
        self._unsent_system_key = None
        reply = response.output_text or response.refusal or ""
        self.buffer.append(user)
        self.buffer.append(
            Turn(Role.ASSISTANT, reply, remote_id=response.id, tokens_used=response.usage.total_tokens)
        )
        if self.remote:
            self.pending_remote_ids.append(response.id)
            self.previous_remote_id = response.id

        try:
            self.render(reply)
            if self.summarizer.needed(self.buffer):
                self._summarize()
        finally:
            # The exchange is in the buffer; a Ctrl+C from here on must not lose it
            self.persist()
        return True

    def _summarize(self) -> None:
        try:
            with self.out.status("[dim]Summarizing conversation...[/dim]", spinner="dots"):
                self.summarizer.summarize(self.buffer)
        except ChatError as e:
            renderer.show_error(f"Summarization failed: {e}", out=self.out)
            return
        # Server-side context is superseded by the summary turn
        self.previous_remote_id = None
        renderer.show_info("Conversation summarized to stay within the context window.", out=self.out)

    def render(self, text: str) -> None:
        width = int(self.terminal.width * RENDER_RATIOS[self.mode])
        self.terminal.write(renderer.render_markdown(text, width))
        self.last_rendered_text = text

    # ── Built-in verbs ──────────────────────────────────────────────────

    def dispatch(self, command: Command) -> None:
        handlers = {
            Verb.EXIT: self._handle_exit,
            Verb.CLEAR: self._handle_clear,
            Verb.HELP: self._handle_help,
            Verb.ERASE: self._handle_erase,
            Verb.DELETE: self._handle_delete,
            Verb.COPY: self._handle_copy,
            Verb.TOKENS: self._handle_tokens,
            Verb.SPEAK: self._handle_speak,
            Verb.SYSTEM: self._handle_system,
            Verb.UPLOAD: self._handle_upload,
            Verb.CODEX: self._handle_codex,
        }
        try:
            handlers[command.verb](command.arg)
        except ChatError as e:
            renderer.show_error(str(e), out=self.out)

    def _handle_exit(self, arg: str):
        self._running = False

    def _handle_clear(self, arg: str):
        self.terminal.clear()

    def _handle_help(self, arg: str):
        self.terminal.clear()
        renderer.show_welcome(self.mode, self.config.model, out=self.out)
        renderer.show_help(self.mode, out=self.out)

    def _handle_erase(self, arg: str):
        self.buffer.reset()
        self.previous_remote_id = None
        self.persist()
        renderer.show_info("Conversation erased.", out=self.out)

    def _handle_delete(self, arg: str):
        if not self.remote:
            if arg:
                renderer.show_error("Usage: delete (drops the last message)", out=self.out)
                return
            dropped = self.buffer.drop_last()
            if dropped is None:
                renderer.show_info("Nothing to delete.", out=self.out)
                return
            self.persist()
            renderer.show_info(f"Dropped last {dropped.role.value} message.", out=self.out)
            return

        try:
            count = int(arg)
        except ValueError:
            count = 0
        if count <= 0:
            renderer.show_error("Usage: delete <n> (deletes the last n stored responses)", out=self.out)
            return

        deleted = 0
        while deleted < count and self.pending_remote_ids:
            response_id = self.pending_remote_ids[-1]
            try:
                self.client.delete(response_id)
            except ChatError as e:
                renderer.show_error(f"Could not delete {response_id}: {e}", out=self.out)
                break
            self.pending_remote_ids.pop()
            self._drop_exchange(response_id)
            if self.previous_remote_id == response_id:
                self.previous_remote_id = None
            deleted += 1

        if deleted:
            self.persist()
        renderer.show_info(f"Deleted {deleted} response{'s' if deleted != 1 else ''}.", out=self.out)

    def _drop_exchange(self, response_id: str) -> None:
        """Remove the reply with this remote id and the user message(s) that led to it."""
        turns = self.buffer.snapshot()
        end = next((i for i, t in enumerate(turns) if t.remote_id == response_id), None)
        if end is None:
            return
        start = end
        while start > 0 and turns[start - 1].role is Role.USER:
            start -= 1
        doomed = {t.key for t in turns[start:end + 1]}
        self.buffer.remove_where(lambda t: t.key in doomed)

    def _handle_copy(self, arg: str):
        if not self.last_rendered_text:
            renderer.show_info("Nothing to copy yet.", out=self.out)
            return
        self._copy(self.last_rendered_text)
        renderer.show_info(f"Copied {len(self.last_rendered_text)} chars to clipboard.", out=self.out)

    def _handle_tokens(self, arg: str):
        renderer.show_tokens(self.buffer.cumulative_tokens, self.config.max_context_window, out=self.out)

    def _handle_system(self, arg: str):
        if not arg:
            renderer.show_error("Usage: system:<instructions>", out=self.out)
            return
        turn = Turn(Role.SYSTEM, arg)
        last = self.buffer.last
        if last is not None and last.key == self._unsent_system_key:
            self.buffer.replace_last(turn)
        else:
            self.buffer.append(turn)
        self._unsent_system_key = turn.key
        self.persist()
        renderer.show_info("System instructions set.", out=self.out)

    def _handle_upload(self, arg: str):
        if not arg:
            renderer.show_error("Usage: upload <path-or-url>", out=self.out)
            return

        if arg.startswith(("http://", "https://")):
            resp = self.substituter.fetch(arg)
            filename = os.path.basename(urlparse(str(resp.url)).path) or "download"
            fileobj = io.BytesIO(resp.content)
        else:
            path = Path(arg).expanduser()
            try:
                fileobj = open(path, "rb")
            except OSError as e:
                raise ChatError(f"cannot open {arg}: {e.strerror or e}") from e
            filename = path.name

        handle = self.ledger.register(ResourceKind.FILE_HANDLE, f"upload stream {filename}", fileobj.close)
        try:
            with self.out.status(f"[dim]Uploading {filename}...[/dim]", spinner="dots"):
                uploaded = self.client.upload_file(filename, fileobj)
        finally:
            self.ledger.release(handle)

        file_id = uploaded["id"]
        if self.config.cleanup_server_state:
            self.ledger.register(
                ResourceKind.REMOTE_FILE,
                f"uploaded file {file_id}",
                lambda: self.client.delete_file(file_id, max_retries=1, timeout=self.config.cleanup_timeout),
            )
        self._pending_file_ids.append(file_id)
        renderer.show_info(f"Uploaded {filename} as {file_id}; attached to your next message.", out=self.out)

    def _handle_speak(self, arg: str):
        if not self.last_rendered_text:
            renderer.show_info("Nothing to speak yet.", out=self.out)
            return
        with self.out.status("[dim]Generating speech...[/dim]", spinner="dots"):
            data = self.client.create_speech(self.last_rendered_text, DEFAULT_SPEECH_MODEL, DEFAULT_SPEECH_VOICE)
        path = audio.write_temp_audio(data, self.ledger)
        audio.play(path)

    def _handle_codex(self, arg: str):
        if not arg:
            renderer.show_error("Usage: @codex <prompt>", out=self.out)
            return
        args = CodexArgs(
            input=arg,
            base_url=self.config.base_url,
            api_key=self.config.api_key,
            model=self.config.codex_model,
            sandbox=SandboxMode(self.config.codex_sandbox),
            skip_git_repo_check=True,
        )
        width = int(self.terminal.width * RENDER_RATIOS[self.mode])
        with contextlib.closing(self.codex.run(args, self.ledger)) as events:
            for event in events:
                if event.type is EventType.ITEM_COMPLETED and event.item is not None:
                    item = event.item
                    if item.type is ItemType.AGENT_MESSAGE:
                        self.terminal.write(renderer.render_markdown(item.text, width))
                        self.last_rendered_text = item.text
                    elif item.type is ItemType.COMMAND_EXECUTION:
                        renderer.show_info(f"$ {item.command} (exit {item.exit_code})", out=self.out)
                    elif item.type is ItemType.FILE_CHANGE:
                        for change in item.changes:
                            renderer.show_info(f"{change.get('kind', 'update')}: {change.get('path', '')}", out=self.out)
                elif event.type is EventType.TURN_COMPLETED and event.usage is not None:
                    renderer.show_info(
                        f"codex used {event.usage.input_tokens} input / {event.usage.output_tokens} output tokens",
                        out=self.out,
                    )
                elif event.type in (EventType.TURN_FAILED, EventType.ERROR):
                    renderer.show_error(f"codex: {event.message}", out=self.out)
