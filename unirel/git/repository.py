"""Git repository abstraction.

This module provides the Repository class: the read operations release
planning needs (history, tags, HEAD, remote) and the few writes used to
publish a release branch from a throwaway worktree.

Usage:
    repo = Repository(Path("/path/to/repo"))

    match repo.list_commits_since("v1.2.0"):
        case Ok(commits):
            print(f"{len(commits)} commits since v1.2.0")
        case Err(e):
            print(f"Error: {e.message}")
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from unirel.core.result import Err, Ok, Result
from unirel.platform.process import ProcessError
from unirel.platform.process import run as run_process
from unirel.services.release.model import Commit
from unirel.services.release.timeouts import GIT_NETWORK_TIMEOUT_SECONDS, GIT_TIMEOUT_SECONDS

__all__ = [
    "GitError",
    "Repository",
]

# Field and record separators for `git log` output; never present in messages.
_FS = "\x1f"
_RS = "\x1e"


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git command that failed
        message: Error message
        returncode: Process return code
    """

    command: str
    message: str
    returncode: int = 1

    def __str__(self) -> str:
        return f"git {self.command}: {self.message}"


class Repository:
    """Git repository abstraction.

    Attributes:
        path: Path to the repository root (or a worktree)
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def is_clean(self) -> bool:
        """Check if working tree is clean (no changes).

        Returns False if status cannot be determined.
        """
        result = self._run(["status", "--porcelain"])
        match result:
            case Ok(stdout):
                return stdout.strip() == ""
            case Err(_):
                return False

    def current_branch(self) -> str | None:
        """Get current branch name.

        Returns None if detached HEAD or error.
        """
        result = self._run(["rev-parse", "--abbrev-ref", "HEAD"])
        match result:
            case Ok(stdout):
                branch = stdout.strip()
                return None if branch == "HEAD" else branch
            case Err(_):
                return None

    def default_branch(self, remote: str = "origin") -> str | None:
        """Branch the remote HEAD points to (e.g. ``main``)."""
        result = self._run(["symbolic-ref", "--short", f"refs/remotes/{remote}/HEAD"])
        match result:
            case Ok(stdout):
                ref = stdout.strip()
                return ref.split("/", 1)[1] if "/" in ref else ref or None
            case Err(_):
                return None

    def head_sha(self) -> Result[str, GitError]:
        return self._simple(["rev-parse", "HEAD"], "rev-parse HEAD")

    def remote_url(self, remote: str = "origin") -> Result[str, GitError]:
        return self._simple(["remote", "get-url", remote], f"remote get-url {remote}")

    def tags(self) -> Result[list[str], GitError]:
        result = self._simple(["tag", "--list"], "tag --list")
        if isinstance(result, Err):
            return result
        return Ok([t.strip() for t in result.value.splitlines() if t.strip()])

    def fetch_tags(self, remote: str = "origin") -> Result[None, GitError]:
        """Fetch tags from ``remote`` so history matches the forge."""
        result = self._simple(["fetch", "--tags", "--quiet", remote], f"fetch --tags {remote}")
        if isinstance(result, Err):
            return result
        return Ok(None)

    def list_commits_since(
        self,
        ref: str | None,
        *,
        head: str = "HEAD",
        limit: int | None = None,
    ) -> Result[list[Commit], GitError]:
        """Commits reachable from ``head`` but not from ``ref``, newest first.

        ``ref=None`` reads from the start of history; ``limit`` bounds the count.
        """
        args = ["log", f"--format=%H{_FS}%aI{_FS}%B{_RS}"]
        if limit is not None:
            args.append(f"--max-count={limit}")
        args.append(f"{ref}..{head}" if ref else head)
        result = self._run(args)
        match result:
            case Err(e):
                return Err(
                    GitError(
                        command="log",
                        message=e.detail or "git log failed",
                        returncode=e.returncode,
                    )
                )
            case Ok(stdout):
                return self._parse_log(stdout)

    def add_worktree(self, path: Path, branch: str, start: str = "HEAD") -> Result[None, GitError]:
        """Check out ``branch`` (reset to ``start``) in a new worktree at ``path``."""
        result = self._simple(
            ["worktree", "add", "--force", "-B", branch, str(path), start],
            "worktree add",
        )
        if isinstance(result, Err):
            return result
        return Ok(None)

    def remove_worktree(self, path: Path) -> Result[None, GitError]:
        result = self._simple(["worktree", "remove", "--force", str(path)], "worktree remove")
        if isinstance(result, Err):
            return result
        return Ok(None)

    def commit_all(self, message: str) -> Result[str, GitError]:
        """Stage everything and commit; returns the new HEAD sha."""
        added = self._simple(["add", "--all"], "add")
        if isinstance(added, Err):
            return added
        committed = self._simple(["commit", "--no-verify", "-m", message], "commit")
        if isinstance(committed, Err):
            return committed
        return self.head_sha()

    def push_branch(self, branch: str, remote: str = "origin") -> Result[None, GitError]:
        """Force-push ``branch``; the release branch is always regenerated."""
        result = self._simple(
            ["push", "--force", remote, f"HEAD:refs/heads/{branch}"],
            f"push {remote} {branch}",
        )
        if isinstance(result, Err):
            return result
        return Ok(None)

    def _simple(self, args: list[str], command: str) -> Result[str, GitError]:
        result = self._run(args)
        match result:
            case Err(e):
                return Err(
                    GitError(
                        command=command,
                        message=e.detail or f"{command} failed",
                        returncode=e.returncode,
                    )
                )
            case Ok(stdout):
                return Ok(stdout.strip())

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        command = args[0] if args else ""
        network = command in {"fetch", "push"}
        timeout = GIT_NETWORK_TIMEOUT_SECONDS if network else GIT_TIMEOUT_SECONDS
        return run_process(["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout)

    def _parse_log(self, output: str) -> Result[list[Commit], GitError]:
        commits: list[Commit] = []
        for record in output.split(_RS):
            record = record.strip("\n")
            if not record.strip():
                continue
            parts = record.split(_FS, 2)
            if len(parts) != 3:
                return Err(GitError(command="log", message=f"unexpected log record: {record!r}"))
            sha, date, message = parts
            try:
                when = datetime.fromisoformat(date.strip())
            except ValueError:
                return Err(GitError(command="log", message=f"invalid author date: {date!r}"))
            commits.append(Commit(id=sha.strip(), message=message.strip(), author_date=when))
        return Ok(commits)
