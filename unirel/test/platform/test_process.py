"""Tests for unirel.platform.process module."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from unirel.core.result import Err, Ok
from unirel.platform.process import ProcessError, run


class TestProcessError:
    def test_str_short_command(self) -> None:
        error = ProcessError(
            command=("git", "status"),
            returncode=1,
            stdout="",
            stderr="fatal: not a git repository",
        )
        assert str(error) == "git status failed (exit 1)"

    def test_str_long_command_truncated(self) -> None:
        error = ProcessError(("git", "-C", "/repo", "tag", "--list"), 128, "", "")
        assert str(error) == "git -C /repo ... failed (exit 128)"

    def test_detail_prefers_stderr(self) -> None:
        assert ProcessError(("git",), 1, "out", " err\n").detail == "err"
        assert ProcessError(("git",), 1, "out\n", "").detail == "out"

    def test_frozen(self) -> None:
        error = ProcessError(("cmd",), 1, "", "")
        with pytest.raises(AttributeError):
            error.returncode = 2  # type: ignore[misc]


class TestRun:
    def test_success_returns_stdout(self, tmp_path: Path) -> None:
        result = run([sys.executable, "-c", "print('hello')"], cwd=tmp_path)
        assert isinstance(result, Ok)
        assert result.value.strip() == "hello"

    def test_failure_returns_error(self, tmp_path: Path) -> None:
        result = run(
            [sys.executable, "-c", "import sys; sys.stderr.write('bad'); sys.exit(42)"],
            cwd=tmp_path,
        )
        assert isinstance(result, Err)
        assert result.error.returncode == 42
        assert result.error.stderr == "bad"

    def test_input_text(self, tmp_path: Path) -> None:
        result = run(
            [sys.executable, "-c", "import sys; print(sys.stdin.read().upper())"],
            cwd=tmp_path,
            input_text="release",
        )
        assert isinstance(result, Ok)
        assert "RELEASE" in result.value

    def test_timeout(self, tmp_path: Path) -> None:
        result = run(
            [sys.executable, "-c", "import time; time.sleep(5)"], cwd=tmp_path, timeout=0.2
        )
        assert isinstance(result, Err)
        assert result.error.returncode == -1
        assert result.error.timed_out is True
        assert "timed out" in result.error.stderr
        assert str(result.error).endswith("timed out")

    def test_command_not_found(self, tmp_path: Path) -> None:
        result = run(["nonexistent_command_12345"], cwd=tmp_path)
        assert isinstance(result, Err)
        assert result.error.returncode == -1
