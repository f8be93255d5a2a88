"""Tests for built-in verb recognition."""

import pytest

from chatterm.commands import Command, Verb, parse_command


class TestParseCommand:
    @pytest.mark.parametrize("verb", ["exit", "clear", "help", "erase", "delete", "copy", "tokens", "speak"])
    def test_exact_verbs(self, verb):
        assert parse_command(f"  {verb}  ") == Command(Verb(verb))

    def test_delete_with_count(self):
        assert parse_command("delete 3") == Command(Verb.DELETE, "3")

    def test_system_prefix(self):
        assert parse_command("system: be terse") == Command(Verb.SYSTEM, "be terse")
        assert parse_command("system:x") == Command(Verb.SYSTEM, "x")

    def test_upload_and_codex(self):
        assert parse_command("upload ./a.pdf") == Command(Verb.UPLOAD, "./a.pdf")
        assert parse_command("@codex fix the tests") == Command(Verb.CODEX, "fix the tests")
        assert parse_command("upload") == Command(Verb.UPLOAD, "")

    @pytest.mark.parametrize("line", ["", "   ", "hello", "exit now please", "uploaded it", "clearly", "copy that"])
    def test_plain_messages(self, line):
        assert parse_command(line) is None

    def test_tokens_are_not_substituted_first(self):
        assert parse_command("#file:exit") is None
