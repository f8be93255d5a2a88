"""Tests for the command-line entry point."""

import json

import pytest
from click.testing import CliRunner

from chatterm import main as cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path, api):
    """No real config file, log directory, or network."""
    monkeypatch.setattr("chatterm.config.CONFIG_FILE", tmp_path / "config.toml")
    monkeypatch.setattr(cli, "setup_logging", lambda *a, **kw: None)
    monkeypatch.setattr(cli, "make_client", lambda config: api.client())
    for name in ("API_KEY", "OPENAI_API_KEY", "MODEL", "BASE_URL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("API_KEY", "sk-test")


@pytest.fixture
def sessions(monkeypatch):
    """Capture interactive launches instead of opening a terminal."""
    launched = []
    monkeypatch.setattr(cli, "run_session", lambda config, mode: launched.append((config, mode)))
    return launched


class TestConfiguration:
    def test_missing_api_key(self, runner, monkeypatch):
        monkeypatch.delenv("API_KEY")
        result = runner.invoke(cli.main, ["responses", "get", "hi"])
        assert result.exit_code == 1
        assert "API_KEY environment variable is not set" in result.output

    def test_global_options_reach_config(self, runner, sessions, tmp_path):
        result = runner.invoke(cli.main, ["-m", "gpt-cli", "--cache-path", str(tmp_path / "c"),
                                          "--max-context-window", "100", "chat"])
        assert result.exit_code == 0
        config, mode = sessions[0]
        assert mode == "chat"
        assert config.model == "gpt-cli"
        assert config.cache_path == tmp_path / "c"
        assert config.max_context_window == 100

    def test_keep_disables_server_cleanup(self, runner, sessions):
        runner.invoke(cli.main, ["responses", "chat"])
        runner.invoke(cli.main, ["responses", "chat", "--keep"])
        assert [(c.cleanup_server_state, m) for c, m in sessions] == [(True, "responses"), (False, "responses")]

    def test_assistant_is_deprecated(self, runner, sessions):
        result = runner.invoke(cli.main, ["assistant"])
        assert "deprecated" in result.output
        assert sessions[0][1] == "assistant"


class TestOneShotCommands:
    def test_get(self, runner, api):
        api.queue("It is **sunny**.")
        result = runner.invoke(cli.main, ["responses", "get", "weather", "today"])
        assert result.exit_code == 0
        assert "sunny" in result.output
        body = api.bodies()[0]
        assert body["input"] == "weather today"
        assert body["store"] is False
        assert body["tools"] == [{"type": "web_search_preview"}]

    def test_get_failure_exits_nonzero(self, runner, api):
        api.statuses = [400]
        result = runner.invoke(cli.main, ["responses", "get", "x"])
        assert result.exit_code == 1
        assert "status 400" in result.output

    def test_delete(self, runner, api):
        result = runner.invoke(cli.main, ["responses", "delete", "resp_3"])
        assert result.exit_code == 0
        assert api.deleted == ["resp_3"]
        assert "Deleted resp_3" in result.output

    def test_show(self, runner):
        result = runner.invoke(cli.main, ["responses", "show", "resp_9"])
        assert result.exit_code == 0
        assert "resp_9" in result.output
        assert "stored" in result.output

    def test_input_items(self, runner, api):
        result = runner.invoke(cli.main, ["responses", "input-items", "resp_1", "--limit", "5", "--order", "asc"])
        assert result.exit_code == 0
        assert "msg_1" in result.output
        params = dict(api.requests[0].url.params)
        assert params == {"limit": "5", "order": "asc"}

    def test_image(self, runner, api):
        result = runner.invoke(cli.main, ["image", "a", "cat"])
        assert result.exit_code == 0
        assert "https://img.example/1.png" in result.output
        assert json.loads(api.requests[0].content)["prompt"] == "a cat"
