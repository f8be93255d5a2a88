#!/usr/bin/env python3
"""chatterm - terminal chat sessions against a remote responses API. Entry point."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.markdown import Markdown
from rich.table import Table

from chatterm.config import DEFAULT_IMAGE_MODEL, AppConfig
from chatterm.errors import ChatError
from chatterm.logging_config import setup_logging
from chatterm.responses.client import ResponsesClient
from chatterm.responses.types import ResponseRequest, TextInput, WebSearchPreviewTool
from chatterm.session import Session, install_signal_handlers
from chatterm.storage.logfile import LogBackend
from chatterm.ui import renderer
from chatterm.ui.terminal import Terminal


def _fail(message: str):
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def load_config(ctx: click.Context, **overrides) -> AppConfig:
    """Resolve configuration for a subcommand and set up logging."""
    merged = dict(ctx.obj or {})
    merged.update(overrides)
    try:
        config = AppConfig.from_sources(merged)
    except (TypeError, ValueError) as e:
        _fail(f"invalid configuration: {e}")
    if not config.api_key:
        _fail("API_KEY environment variable is not set")
    setup_logging(config.verbose)
    return config


def make_client(config: AppConfig) -> ResponsesClient:
    return ResponsesClient(
        api_key=config.api_key,
        base_url=config.base_url,
        timeout=config.request_timeout,
        max_retries=config.max_retries,
        retry_base_delay=config.retry_base_delay,
    )


def run_session(config: AppConfig, mode: str):
    """Open the mode's history store and run an interactive session until exit."""
    try:
        store = LogBackend(config.store_path(mode))
    except ChatError as e:
        _fail(str(e))

    client = make_client(config)
    install_signal_handlers()
    try:
        code = Session(config, client, store, Terminal(), mode=mode).run()
    except ChatError as e:
        _fail(str(e))
    finally:
        client.close()
    sys.exit(code)


@click.group()
@click.option("-m", "--model", default=None, help="Model to use (default from MODEL env var or config.toml)")
@click.option("-v", "--verbose", is_flag=True, default=None, help="Echo warnings and errors from the log to the terminal")
@click.option("--cache-path", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Directory holding conversation history (default ~/.chat-cache)")
@click.option("--max-context-window", type=int, default=None,
              help="Token count at which the conversation is summarized")
@click.version_option(package_name="chatterm")
@click.pass_context
def main(ctx: click.Context, model: str | None, verbose: bool | None, cache_path: Path | None,
         max_context_window: int | None):
    """chatterm - chat with a remote language model from your terminal."""
    ctx.obj = {
        "model": model,
        "verbose": verbose or None,
        "cache_path": cache_path,
        "max_context_window": max_context_window,
    }


@main.command()
@click.pass_context
def chat(ctx: click.Context):
    """Interactive chat; nothing is stored server-side."""
    run_session(load_config(ctx), "chat")


@main.group()
def responses():
    """Conversations and stored responses through the responses API."""


@responses.command("chat")
@click.option("--keep", is_flag=True, help="Keep stored responses and uploads on the server after exit")
@click.pass_context
def responses_chat(ctx: click.Context, keep: bool):
    """Interactive chat threaded through stored responses."""
    config = load_config(ctx, cleanup_server_state=False if keep else None)
    run_session(config, "responses")


@responses.command("get")
@click.argument("text", nargs=-1, required=True)
@click.pass_context
def responses_get(ctx: click.Context, text: tuple[str, ...]):
    """One-shot question with web search; prints the answer."""
    config = load_config(ctx)
    with make_client(config) as client:
        request = ResponseRequest(
            model=config.model,
            input=TextInput(" ".join(text)),
            tools=[WebSearchPreviewTool()] if config.web_search else [],
            store=False,
            max_output_tokens=config.max_output_tokens,
        )
        try:
            response = client.create(request)
        except ChatError as e:
            _fail(str(e))
    renderer.console.print(Markdown(response.output_text or response.refusal or ""))


@responses.command("delete")
@click.argument("response_id")
@click.pass_context
def responses_delete(ctx: click.Context, response_id: str):
    """Delete a stored response."""
    config = load_config(ctx)
    with make_client(config) as client:
        try:
            client.delete(response_id)
        except ChatError as e:
            _fail(str(e))
    click.echo(f"Deleted {response_id}")


@responses.command("show")
@click.argument("response_id")
@click.pass_context
def responses_show(ctx: click.Context, response_id: str):
    """Show a stored response."""
    config = load_config(ctx)
    with make_client(config) as client:
        try:
            response = client.get(response_id)
        except ChatError as e:
            _fail(str(e))

    renderer.console.print(f"[bold]{response.id}[/bold] [dim]{response.model or ''} {response.status or ''}[/dim]")
    renderer.console.print(Markdown(response.output_text or response.refusal or ""))
    usage = response.usage
    renderer.console.print(
        f"[dim]tokens: {usage.input_tokens} in / {usage.output_tokens} out / {usage.total_tokens} total[/dim]"
    )


def _item_text(item: dict) -> str:
    content = item.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(part.get("text", "") for part in content if isinstance(part, dict))
    return ""


@responses.command("input-items")
@click.argument("response_id")
@click.option("--limit", type=click.IntRange(1, 100), default=None, help="Items per page")
@click.option("--order", type=click.Choice(["asc", "desc"]), default=None, help="Sort order")
@click.pass_context
def responses_input_items(ctx: click.Context, response_id: str, limit: int | None, order: str | None):
    """List the input items recorded for a stored response."""
    config = load_config(ctx)
    with make_client(config) as client:
        try:
            page = client.get_input_items(response_id, limit=limit, order=order)
        except ChatError as e:
            _fail(str(e))

    table = Table(title=f"Input items for {response_id}", border_style="dim")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Role", style="bold cyan")
    table.add_column("Content")
    for item in page.data:
        table.add_row(item.get("id", ""), item.get("role", item.get("type", "")), _item_text(item))
    renderer.console.print(table)
    if page.has_more:
        renderer.console.print(f"[dim]More items after {page.last_id}[/dim]")


@main.command()
@click.argument("prompt", nargs=-1, required=True)
@click.option("--model", "image_model", default=DEFAULT_IMAGE_MODEL, show_default=True, help="Image model")
@click.option("--size", default="1792x1024", show_default=True, help="Image size")
@click.option("--quality", default="hd", show_default=True, help="Image quality")
@click.option("--style", default="vivid", show_default=True, help="Image style")
@click.option("-n", "count", type=click.IntRange(1, 10), default=1, show_default=True, help="Number of images")
@click.pass_context
def image(ctx: click.Context, prompt: tuple[str, ...], image_model: str, size: str, quality: str,
          style: str, count: int):
    """Generate images from a prompt and print their URLs."""
    config = load_config(ctx)
    with make_client(config) as client:
        try:
            images = client.generate_image(" ".join(prompt), image_model, size, quality, style, n=count)
        except ChatError as e:
            _fail(str(e))

    for data in images:
        if data.get("revised_prompt"):
            renderer.console.print(Markdown(data["revised_prompt"]))
        if data.get("url"):
            click.echo(data["url"])


@main.command()
@click.pass_context
def assistant(ctx: click.Context):
    """Deprecated: interactive chat rendered the old assistant way."""
    click.echo("Warning: `assistant` is deprecated; use `responses chat`.", err=True)
    run_session(load_config(ctx), "assistant")


if __name__ == "__main__":
    main()
