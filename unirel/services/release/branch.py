"""Release branch publishing.

The release PR's head branch is regenerated on every run: a throwaway git
worktree is reset to the current HEAD, the plan's manifest versions and
changelog section are written into it, the result is committed and
force-pushed. The user's checkout is never touched.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Protocol

from unirel.core.result import Err, Ok, Result
from unirel.git.repository import GitError, Repository
from unirel.services.release.errors import ReleaseError
from unirel.services.release.manifest import (
    WorkspaceManifest,
    write_changelog_file,
    write_versions,
)
from unirel.services.release.model import ReleasePlan


class BranchPublisher(Protocol):
    def publish(self, branch: str, plan: ReleasePlan) -> Result[str, ReleaseError]:
        """Push ``branch`` carrying the plan's file changes; returns its head sha."""
        ...


class GitBranchPublisher:
    def __init__(
        self,
        repo: Repository,
        workspace: WorkspaceManifest,
        *,
        changelog_path: str | None,
        changelog_header: str | None = None,
        remote: str = "origin",
    ) -> None:
        self._repo = repo
        self._workspace = workspace
        self._changelog_path = changelog_path
        self._changelog_header = changelog_header
        self._remote = remote

    def publish(self, branch: str, plan: ReleasePlan) -> Result[str, ReleaseError]:
        with tempfile.TemporaryDirectory(prefix="unirel-") as tmp:
            worktree = Path(tmp) / "worktree"
            added = self._repo.add_worktree(worktree, branch)
            if isinstance(added, Err):
                return Err(_git_error(added.error, "push_release_branch"))
            try:
                return self._commit_and_push(Repository(worktree), branch, plan)
            finally:
                self._repo.remove_worktree(worktree)

    def _commit_and_push(
        self, tree: Repository, branch: str, plan: ReleasePlan
    ) -> Result[str, ReleaseError]:
        root = tree.path / self._workspace_offset()
        written = write_versions(self._workspace, plan.package_versions, root=root)
        if isinstance(written, Err):
            return written
        if self._changelog_path and plan.changelog_text:
            changelog = write_changelog_file(
                root / self._changelog_path,
                plan.changelog_text,
                plan.version,
                self._changelog_header,
            )
            if isinstance(changelog, Err):
                return changelog

        sha = tree.commit_all(plan.pr_title)
        if isinstance(sha, Err):
            return Err(_git_error(sha.error, "push_release_branch"))
        pushed = tree.push_branch(branch, self._remote)
        if isinstance(pushed, Err):
            return Err(_git_error(pushed.error, "push_release_branch"))
        return Ok(sha.value)

    def _workspace_offset(self) -> Path:
        """Workspace root relative to the repository (manifests may live in a subdir)."""
        try:
            return self._workspace.root.resolve().relative_to(self._repo.path.resolve())
        except ValueError:
            return Path()


class MockBranchPublisher:
    """Records pushes instead of touching git."""

    def __init__(self, *, error: ReleaseError | None = None) -> None:
        self.pushed: list[tuple[str, ReleasePlan]] = []
        self._error = error

    def publish(self, branch: str, plan: ReleasePlan) -> Result[str, ReleaseError]:
        if self._error is not None:
            return Err(self._error)
        self.pushed.append((branch, plan))
        return Ok(f"{len(self.pushed):040x}")


def _git_error(error: GitError, step: str) -> ReleaseError:
    return ReleaseError(kind="git_failed", message=str(error), step=step)
