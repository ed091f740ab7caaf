"""Tests for REPL helpers and the command line."""

import pytest

from zz.__main__ import build_parser, resolve_log_path
from zz.runner import BoundedHistory, parse_command


class TestParseCommand:
    """Tests for slash command recognition."""

    def test_commands(self):
        """Known commands are recognized."""
        assert parse_command("/help") == "help"
        assert parse_command("/interrupt") == "interrupt"
        assert parse_command("/exit") == "exit"

    def test_other_input(self):
        """Anything else is a prompt for the model."""
        assert parse_command("/unknown") is None
        assert parse_command("hello /exit") is None


class TestBoundedHistory:
    """Tests for REPL input history."""

    def test_consecutive_duplicates(self):
        """Repeating the last entry does not add it again."""
        history = BoundedHistory()
        history.append_string("a")
        history.append_string("a")
        history.append_string("b")
        history.append_string("a")
        assert history.get_strings() == ["a", "b", "a"]

    def test_limit(self):
        """Only the newest entries are kept."""
        history = BoundedHistory(limit=3)
        for text in ["1", "2", "3", "4", "5"]:
            history.append_string(text)
        assert history.get_strings() == ["3", "4", "5"]


class TestCommandLine:
    """Tests for argument parsing and log path resolution."""

    def test_query_words(self):
        """Positional words form the query."""
        args = build_parser().parse_args(["explain", "this", "repo"])
        assert args.query == ["explain", "this", "repo"]
        assert not args.setup
        assert not args.debug

    def test_flags(self):
        """Mode flags are parsed."""
        args = build_parser().parse_args(["--setup", "--verbose"])
        assert args.setup
        assert args.verbose
        assert args.query == []

    def test_log_path_disabled(self, monkeypatch):
        """An empty ZZ_LOG_FILE disables logging."""
        monkeypatch.setenv("ZZ_LOG_FILE", "")
        assert resolve_log_path() is None

    def test_log_path_override(self, monkeypatch, tmp_path):
        """ZZ_LOG_FILE names the log file."""
        target = str(tmp_path / "zz.log")
        monkeypatch.setenv("ZZ_LOG_FILE", target)
        assert resolve_log_path() == target

    def test_log_path_default(self, monkeypatch):
        """Without ZZ_LOG_FILE the log goes to the temp directory."""
        monkeypatch.delenv("ZZ_LOG_FILE", raising=False)
        assert resolve_log_path().endswith("zz.log")
