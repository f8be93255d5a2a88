"""Launch ``codex exec`` and stream its events."""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
import tempfile
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import IO, Any, Iterator

from chatterm.cleanup import CleanupLedger, ResourceKind
from chatterm.codex.events import EventType, ThreadEvent, parse_event
from chatterm.errors import CodexError

logger = logging.getLogger("chatterm.codex")

ORIGINATOR_ENV = "CODEX_INTERNAL_ORIGINATOR_OVERRIDE"
ORIGINATOR = "chatterm_python"


class SandboxMode(str, Enum):
    READ_ONLY = "read-only"
    WORKSPACE_WRITE = "workspace-write"
    DANGER_FULL_ACCESS = "danger-full-access"


@dataclass
class CodexArgs:
    input: str
    base_url: str = ""
    api_key: str = ""
    thread_id: str = ""
    images: list[str] = field(default_factory=list)
    model: str = ""
    sandbox: SandboxMode | None = None
    working_directory: str = ""
    skip_git_repo_check: bool = False
    output_schema: dict[str, Any] | None = None
    output_last_message: str = ""
    enable: list[str] = field(default_factory=list)
    config_file: str = ""
    full_auto: bool = False
    include_plan_tool: bool = False


def build_command(args: CodexArgs, schema_path: str = "") -> list[str]:
    """Command-line arguments after the executable, in the order codex expects."""
    cmd = ["exec", "--json"]
    if args.model:
        cmd += ["--model", args.model]
    if args.sandbox:
        cmd += ["--sandbox", SandboxMode(args.sandbox).value]
    if args.working_directory:
        cmd += ["--cd", args.working_directory]
    if args.skip_git_repo_check:
        cmd.append("--skip-git-repo-check")
    if schema_path:
        cmd += ["--output-schema", schema_path]
    if args.output_last_message:
        cmd += ["--output-last-message", args.output_last_message]
    for image in args.images:
        if image:
            cmd += ["--image", image]
    for feature in args.enable:
        if feature:
            cmd += ["--enable", feature]
    if args.config_file:
        cmd += ["--config", args.config_file]
    if args.full_auto:
        cmd.append("--full-auto")
    if args.include_plan_tool:
        cmd.append("--include-plan-tool")
    if args.thread_id:
        cmd += ["resume", args.thread_id]
    return cmd


def build_environment(base_url: str, api_key: str, base: dict[str, str] | None = None) -> dict[str, str]:
    env = dict(os.environ if base is None else base)
    if not env.get(ORIGINATOR_ENV):
        env[ORIGINATOR_ENV] = ORIGINATOR
    if base_url:
        env["OPENAI_BASE_URL"] = base_url
    if api_key:
        env["CODEX_API_KEY"] = api_key
    return env


def write_output_schema(schema: dict[str, Any], ledger: CleanupLedger) -> str:
    """Write the schema to a private temp dir registered for removal; return its path."""
    if not isinstance(schema, dict):
        raise CodexError("output schema must be a JSON object")
    tmpdir = tempfile.mkdtemp(prefix="codex-output-schema-")
    ledger.register(
        ResourceKind.TEMP_FILE,
        f"output schema {tmpdir}",
        lambda: shutil.rmtree(tmpdir, ignore_errors=True),
    )
    path = Path(tmpdir) / "schema.json"
    path.write_text(json.dumps(schema))
    path.chmod(0o600)
    return str(path)


def _feed_stdin(stream: IO[str], text: str) -> None:
    try:
        stream.write(text)
    except (BrokenPipeError, ValueError) as e:
        # The agent exited (or was terminated) before reading all of its input
        logger.debug("codex stopped reading its prompt: %s", e)
    finally:
        try:
            stream.close()
        except BrokenPipeError:
            pass


class CodexRunner:
    """Runs the agent and yields its events; the thread id is kept for resumption."""

    def __init__(self, executable: str | None = None):
        self.executable = executable
        self.thread_id: str = ""

    def _find_executable(self) -> str:
        path = self.executable or shutil.which("codex")
        if not path:
            raise CodexError("codex executable not found on PATH")
        return path

    def run(self, args: CodexArgs, ledger: CleanupLedger) -> Iterator[ThreadEvent]:
        """Start the agent and yield events until it exits.

        Closing the generator (or a KeyboardInterrupt while it is being
        consumed) terminates the subprocess.
        """
        if not args.thread_id and self.thread_id:
            args.thread_id = self.thread_id
        schema_path = write_output_schema(args.output_schema, ledger) if args.output_schema is not None else ""
        cmd = [self._find_executable()] + build_command(args, schema_path)
        logger.debug("Starting %s", " ".join(cmd))

        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=build_environment(args.base_url, args.api_key),
                text=True,
            )
        except OSError as e:
            raise CodexError(f"cannot start codex: {e}") from e

        stderr_chunks: list[str] = []
        reader = threading.Thread(target=lambda: stderr_chunks.append(proc.stderr.read()), daemon=True)
        reader.start()
        # The prompt may exceed the pipe buffer, so it is fed while stdout drains
        writer = threading.Thread(target=_feed_stdin, args=(proc.stdin, args.input), daemon=True)
        writer.start()

        finished = False
        try:
            for line in proc.stdout:
                if not line.strip():
                    continue
                event = parse_event(line)
                if event.type is EventType.THREAD_STARTED and event.thread_id:
                    self.thread_id = event.thread_id
                yield event

            code = proc.wait()
            reader.join(timeout=1)
            writer.join(timeout=1)
            finished = True
            if code != 0:
                detail = "".join(stderr_chunks).strip()
                raise CodexError(f"codex exec failed with exit code {code}" + (f": {detail}" if detail else ""))
        finally:
            if not finished and proc.poll() is None:
                logger.debug("Terminating codex (pid %d)", proc.pid)
                proc.terminate()
                try:
                    proc.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    proc.kill()
                    proc.wait()
            proc.stdout.close()
