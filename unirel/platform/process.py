"""Subprocess execution with Result-based error handling.

Every git call unirel makes goes through ``run``; failures come back as
``ProcessError`` values carrying whatever the process printed.

Usage:
    result = run(["git", "rev-parse", "HEAD"], cwd=repo_root, timeout=30)
    match result:
        case Ok(stdout):
            print(stdout.strip())
        case Err(error):
            print(f"Failed: {error.detail}")
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

from unirel.core.result import Err, Ok, Result

__all__ = ["ProcessError", "run"]


@dataclass(frozen=True, slots=True)
class ProcessError:
    """A command that exited non-zero, timed out, or never started.

    Attributes:
        command: The command that was executed.
        returncode: Exit code, or -1 if the process never ran or timed out.
        stdout: Standard output (may be empty).
        stderr: Standard error, or the launch/timeout reason.
        timed_out: True when the timeout killed the process.
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def detail(self) -> str:
        """Most useful text to show a user: stderr first, then stdout."""
        return self.stderr.strip() or self.stdout.strip()

    def __str__(self) -> str:
        shown = " ".join(self.command[:3])
        if len(self.command) > 3:
            shown += " ..."
        if self.timed_out:
            return f"{shown} timed out"
        return f"{shown} failed (exit {self.returncode})"


def run(
    cmd: list[str],
    cwd: Path,
    env: dict[str, str] | None = None,
    *,
    timeout: float | None = None,
    input_text: str | None = None,
) -> Result[str, ProcessError]:
    """Run ``cmd`` in ``cwd`` and return its stdout.

    Args:
        cmd: Command and arguments.
        cwd: Working directory.
        env: Environment (inherits the current one if None).
        timeout: Seconds before the process is killed (None waits forever).
        input_text: Text fed to stdin.
    """
    command = tuple(cmd)
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            env=env,
            input=input_text,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        partial = e.stdout if isinstance(e.stdout, str) else ""
        reason = f"Command timed out after {timeout}s"
        return Err(ProcessError(command, -1, partial, reason, timed_out=True))
    except OSError as e:
        return Err(ProcessError(command, -1, "", str(e)))

    if proc.returncode != 0:
        return Err(ProcessError(command, proc.returncode, proc.stdout, proc.stderr))
    return Ok(proc.stdout)
