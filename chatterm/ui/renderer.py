"""Rich output: markdown replies, banners, and status lines."""

from __future__ import annotations

import io
import logging
import shutil

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

logger = logging.getLogger("chatterm.ui")

console = Console()
err_console = Console(stderr=True)

_MODE_TITLES = {
    "chat": "Chat",
    "responses": "Responses",
    "assistant": "Assistant (deprecated)",
}


def terminal_width() -> int:
    return shutil.get_terminal_size((80, 24)).columns


def render_markdown(text: str, width: int) -> str:
    """Render markdown to an ANSI string at the given width. Falls back to the raw text."""
    buf = io.StringIO()
    try:
        out = Console(file=buf, width=max(20, width), force_terminal=True, color_system="truecolor")
        out.print(Markdown(text))
    except Exception as e:
        logger.warning("Markdown rendering failed, printing raw text: %s", e)
        return text if text.endswith("\n") else text + "\n"
    return buf.getvalue()


def show_welcome(mode: str, model: str, out: Console | None = None):
    """Banner shown at session start and by `help`."""
    out = out or console
    title = _MODE_TITLES.get(mode, mode)
    out.print(
        Panel(
            f"[bold cyan]chatterm[/bold cyan] - {title}\n"
            f"Model: [green]{model}[/green]\n"
            f"Type [bold]help[/bold] for commands, [bold]exit[/bold] or [bold]Ctrl+C[/bold] to quit",
            border_style="cyan",
            padding=(1, 2),
        )
    )
    out.print()


def show_help(mode: str, out: Console | None = None):
    """Display help table."""
    out = out or console
    table = Table(title="Commands", border_style="dim")
    table.add_column("Command", style="bold cyan", no_wrap=True)
    table.add_column("Description")
    table.add_row("exit", "End the session")
    table.add_row("clear", "Clear the screen")
    table.add_row("help", "Clear the screen and show this help")
    table.add_row("erase", "Forget the whole conversation")
    if mode == "chat":
        table.add_row("delete", "Drop the last message from the conversation")
    else:
        table.add_row("delete <n>", "Delete the last n stored responses")
    table.add_row("copy", "Copy the last reply to the clipboard")
    table.add_row("tokens", "Show tokens used by the conversation")
    table.add_row("system:<text>", "Set the system instructions")
    table.add_row("upload <path|url>", "Upload a file and attach it to the next message")
    table.add_row("speak", "Read the last reply aloud")
    table.add_row("@codex <prompt>", "Hand a task to the code agent")
    table.add_row("", "")
    table.add_row("[bold]Inline tokens[/bold]", "")
    table.add_row("#file:<path>", "Insert the contents of a file")
    table.add_row("#url:<url>", "Insert the body of a web page (https only)")
    table.add_row("<clipboard>", "Insert the clipboard contents")
    table.add_row("", "")
    table.add_row("[bold]Shortcuts[/bold]", "")
    table.add_row("Tab", "Complete a command, <clipboard> or #file: path")
    table.add_row("Alt+Right / Alt+Left", "Cycle forward / backward through #file: matches")
    table.add_row("Up/Down", "Navigate input history")
    table.add_row("Ctrl+C / Ctrl+D", "Exit")
    out.print(table)
    out.print()


def show_error(message: str, out: Console | None = None):
    (out or console).print(f"[bold red]Error:[/bold red] {escape(message)}")


def show_warning(message: str, out: Console | None = None):
    (out or console).print(f"[bold yellow]Warning:[/bold yellow] {escape(message)}")


def show_info(message: str, out: Console | None = None):
    (out or console).print(f"[dim]{escape(message)}[/dim]")


def show_tokens(tokens: int, window: int, out: Console | None = None):
    (out or console).print(f"[cyan]{tokens}[/cyan] tokens used [dim](summarizes at {window})[/dim]")
