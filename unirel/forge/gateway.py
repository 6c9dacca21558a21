"""Host gateway: the capability set every forge adapter provides.

Adapters (GitHub, Gitea, GitLab) implement HostGateway structurally; there
is no shared base class. Mutating calls are keyed by a natural identity
(branch name for pull requests, tag name for tags and releases) and check
remote state before acting, so a retried or repeated call never duplicates
anything.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol, runtime_checkable

from unirel.core.result import Result
from unirel.services.release.model import Commit, ReleaseRecord, RemotePrState, TagRecord

__all__ = [
    "GatewayError",
    "GatewayErrorKind",
    "HostGateway",
    "PrRequest",
    "ReleaseRequest",
]

GatewayErrorKind = Literal[
    "transient",
    "conflict",
    "not_found",
    "auth",
    "invalid_response",
    "failed",
]


@dataclass(frozen=True, slots=True)
class GatewayError:
    """A forge call that did not succeed.

    ``transient`` is only returned once retries are exhausted; ``conflict``
    means the resource already exists and the caller should re-read.
    """

    kind: GatewayErrorKind
    message: str
    status: int = 0
    url: str = ""

    def __str__(self) -> str:
        if self.status:
            return f"HTTP {self.status}: {self.message}"
        return self.message


@dataclass(frozen=True, slots=True)
class PrRequest:
    title: str
    body: str
    head_branch: str
    base_branch: str
    draft: bool = False
    labels: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ReleaseRequest:
    tag_name: str
    name: str
    body: str
    draft: bool = False
    prerelease: bool = False
    make_latest: bool | None = None


@runtime_checkable
class HostGateway(Protocol):
    """Forge capabilities used by the reconciler."""

    def find_open_release_pr(
        self, branch_prefix: str
    ) -> Result[list[RemotePrState], GatewayError]:
        """Open PRs whose head branch starts with ``branch_prefix``, newest first."""
        ...

    def create_pr(self, request: PrRequest) -> Result[RemotePrState, GatewayError]:
        """Open a PR; conflict if one is already open on ``head_branch``."""
        ...

    def update_pr(
        self, number: int, title: str, body: str
    ) -> Result[RemotePrState, GatewayError]:
        """Replace title and body, keeping the PR's draft state."""
        ...

    def close_pr(self, number: int) -> Result[None, GatewayError]: ...

    def get_tag(self, tag_name: str) -> Result[TagRecord | None, GatewayError]:
        """The tag and the commit it points to, or None if absent."""
        ...

    def create_tag(self, tag_name: str, sha: str, message: str) -> Result[TagRecord, GatewayError]:
        """Create an annotated tag; conflict if it exists on another commit."""
        ...

    def get_release(self, tag_name: str) -> Result[ReleaseRecord | None, GatewayError]: ...

    def create_release(self, request: ReleaseRequest) -> Result[ReleaseRecord, GatewayError]: ...

    def list_commits_since(
        self, ref: str | None, head: str
    ) -> Result[list[Commit], GatewayError]:
        """Commits in ``ref..head`` (whole history if ``ref`` is None), newest first."""
        ...

    def prs_for_commit(self, sha: str) -> Result[list[RemotePrState], GatewayError]:
        """Pull requests associated with a commit (open or merged)."""
        ...
