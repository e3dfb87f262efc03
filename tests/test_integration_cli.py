"""Integration tests for CLI functionality."""

import json
import os
import subprocess
import sys

import pytest

from crcalc import cli
from crcalc.cli import main_entry
from crcalc.config import VERSION


def _run(*args, stdin=None):
    return subprocess.run(
        [sys.executable, "-m", "crcalc", *args],
        input=stdin,
        env={**os.environ, "PYTHONIOENCODING": "utf-8"},
        capture_output=True,
        encoding="utf-8",
        timeout=30,
    )


def test_cli_version():
    """Test --version flag."""
    result = _run("--version")
    assert result.returncode == 0
    assert result.stdout.strip() == VERSION


def test_cli_eval_json():
    """Test CLI evaluation with JSON output."""
    result = _run("-e", "2+2", "--format", "json")
    assert result.returncode == 0
    data = json.loads(result.stdout.strip())
    assert data == {"ok": True, "result": "4", "exact": "4"}


def test_cli_eval_human():
    """Test CLI evaluation with human output."""
    result = _run("--expr", "sqrt(8)", "--digits", "5")
    assert result.returncode == 0
    assert result.stdout.strip() == "2.82842  (2√2)"


def test_cli_invalid_input():
    """Test CLI with invalid input."""
    result = _run("-e", "__import__('os')", "--format", "json")
    assert result.returncode == 1
    data = json.loads(result.stdout.strip())
    assert data["ok"] is False
    assert data["error_code"] == "FORBIDDEN_TOKEN"


def test_cli_bad_radix():
    result = _run("-e", "2", "--radix", "17")
    assert result.returncode == 2
    assert "radix" in result.stderr


def test_cli_help():
    """Test --help flag."""
    result = _run("--help")
    assert result.returncode == 0
    assert "--digits" in result.stdout


@pytest.mark.slow
def test_cli_repl_history():
    """Results are numbered and can be referred to."""
    result = _run(stdin="2+3\n$1*2\ndegrees\nsin(30)\nhistory\nquit\n")
    assert result.returncode == 0
    assert "$1 = 5" in result.stdout
    assert "$2 = 10" in result.stdout
    assert "Angle mode: degrees" in result.stdout
    assert "$3 = 0.5" in result.stdout
    assert "$2: $1*2" in result.stdout


@pytest.mark.slow
def test_cli_repl_end_of_input():
    result = _run(stdin="1/0\n")
    assert result.returncode == 0
    assert "Error:" in result.stdout
    assert "Goodbye." in result.stdout


class TestMainEntry:
    """Calling the entry point in-process."""

    def test_percent(self, capsys):
        assert main_entry(["-e", "100+10%"]) == 0
        assert capsys.readouterr().out.strip() == "110"

    def test_degrees(self, capsys):
        assert main_entry(["-e", "asin(1)", "--degrees"]) == 0
        assert capsys.readouterr().out.strip() == "90"

    def test_radix(self, capsys):
        assert main_entry(["-e", "255", "--radix", "16", "--digits", "0"]) == 0
        assert capsys.readouterr().out.strip() == "ff  (255)"

    def test_error_exit_code(self, capsys):
        assert main_entry(["-e", "sqrt(-1)", "--format", "json"]) == 1
        assert json.loads(capsys.readouterr().out)["error_code"] == "DOMAIN_ERROR"

    def test_bad_digits(self):
        with pytest.raises(SystemExit):
            main_entry(["-e", "1", "--digits", "-3"])

    def test_repl_interrupt(self, capsys, monkeypatch):
        """Ctrl-C abandons the current input and the loop keeps reading."""
        lines = iter(["2^10", "3+4", "quit"])
        monkeypatch.setattr("builtins.input", lambda prompt="": next(lines))
        real_evaluate = cli.evaluate_safely

        def interrupt_first(text, *args, **kwargs):
            if text == "2^10":
                raise KeyboardInterrupt
            return real_evaluate(text, *args, **kwargs)

        monkeypatch.setattr(cli, "evaluate_safely", interrupt_first)
        assert main_entry([]) == 0
        out = capsys.readouterr().out
        assert "[Cancelled]" in out
        assert "$1 = 7" in out
