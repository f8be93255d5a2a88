"""Settings: defaults, file locations, and AppConfig resolution."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path


# Default model for dialogue turns
DEFAULT_MODEL = "gpt-4o"
DEFAULT_CODEX_MODEL = "gpt-5-codex"
DEFAULT_IMAGE_MODEL = "dall-e-3"
DEFAULT_SPEECH_MODEL = "tts-1-hd"
DEFAULT_SPEECH_VOICE = "fable"

DEFAULT_BASE_URL = "https://api.openai.com/v1"

# Base directory for all chatterm data
DATA_DIR = Path.home() / ".chatterm"
CONFIG_FILE = DATA_DIR / "config.toml"
HISTORY_FILE = DATA_DIR / "history"

# Conversation cache, kept where the original CLI kept it
DEFAULT_CACHE_PATH = Path(
    os.environ.get("HOME") or os.environ.get("USERPROFILE") or str(Path.home())
) / ".chat-cache"

# Summarization threshold and reply cap (tokens)
DEFAULT_MAX_CONTEXT_WINDOW = 4096
DEFAULT_MAX_OUTPUT_TOKENS = 2048

# Timeouts (seconds)
REQUEST_TIMEOUT = 300  # remote create calls
URL_FETCH_TIMEOUT = 30  # #url: substitutions and upload downloads
CLEANUP_TIMEOUT = 10  # per-call deadline while the ledger drains

# Retry settings
MAX_RETRIES = 3
RETRY_BASE_DELAY = 1.0

# Summarization retry policy (rate limits only)
SUMMARY_MAX_ATTEMPTS = 5
SUMMARY_RETRY_WAIT = 5.0

# Rendering width ratios per session mode
RENDER_RATIOS: dict[str, float] = {
    "chat": 1.0,
    "responses": 0.75,
    "assistant": 0.6,
}

SESSION_MODES = tuple(RENDER_RATIOS)

SANDBOX_MODES = ("read-only", "workspace-write", "danger-full-access")


def load_config_file(path: Path | None = None) -> dict:
    """Load settings from ~/.chatterm/config.toml. Returns empty dict if not found."""
    path = path or CONFIG_FILE
    if not path.exists():
        return {}
    try:
        # tomllib is stdlib from 3.11
        try:
            import tomllib
        except ImportError:
            import tomli as tomllib  # type: ignore[no-redef]
        return tomllib.loads(path.read_text())
    except (OSError, ValueError):
        return {}


def _env_settings() -> dict:
    """Settings taken from the environment."""
    env: dict = {}
    api_key = os.environ.get("API_KEY") or os.environ.get("OPENAI_API_KEY")
    if api_key:
        env["api_key"] = api_key
    if os.environ.get("MODEL"):
        env["model"] = os.environ["MODEL"]
    if os.environ.get("BASE_URL"):
        env["base_url"] = os.environ["BASE_URL"]
    return env


@dataclass
class AppConfig:
    """Resolved settings for one chatterm invocation."""

    api_key: str = ""
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    max_context_window: int = DEFAULT_MAX_CONTEXT_WINDOW
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    request_timeout: float = REQUEST_TIMEOUT
    url_timeout: float = URL_FETCH_TIMEOUT
    cleanup_timeout: float = CLEANUP_TIMEOUT
    max_retries: int = MAX_RETRIES
    retry_base_delay: float = RETRY_BASE_DELAY
    cache_path: Path = field(default_factory=lambda: DEFAULT_CACHE_PATH)
    cleanup_server_state: bool = True
    web_search: bool = True
    codex_model: str = DEFAULT_CODEX_MODEL
    codex_sandbox: str = "read-only"
    verbose: bool = False

    def __post_init__(self):
        self.cache_path = Path(self.cache_path).expanduser()
        if self.codex_sandbox not in SANDBOX_MODES:
            raise ValueError(
                f"codex_sandbox must be one of {', '.join(SANDBOX_MODES)}, got {self.codex_sandbox!r}"
            )

    @classmethod
    def from_sources(cls, cli_overrides: dict, config_file: Path | None = None) -> "AppConfig":
        """Create AppConfig by merging every configuration source.

        Priority: CLI flags > environment > config.toml > dataclass defaults
        """
        known = {f.name for f in fields(cls)}
        merged: dict = {}

        for key, value in load_config_file(config_file).items():
            if key in known:
                merged[key] = value

        merged.update(_env_settings())

        # CLI overrides take priority (only non-None values)
        for key, value in cli_overrides.items():
            if value is not None and key in known:
                merged[key] = value

        return cls(**merged)

    def store_path(self, mode: str) -> Path:
        """Directory of the history store used by a session mode."""
        # assistant sessions share the responses history
        name = "chat" if mode == "chat" else "responses"
        return self.cache_path / name
