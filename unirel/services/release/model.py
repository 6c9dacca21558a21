from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from unirel.services.release.semver import SemVer


CommitType = Literal["feat", "fix", "other", "custom"]
BumpKind = Literal["none", "patch", "minor", "major"]

BUMP_SEVERITY: dict[BumpKind, int] = {"none": 0, "patch": 1, "minor": 2, "major": 3}


@dataclass(frozen=True, slots=True)
class Commit:
    """A commit as read from version control."""

    id: str
    message: str
    author_date: datetime

    @property
    def short_id(self) -> str:
        return self.id[:8]

    @property
    def subject(self) -> str:
        return self.message.split("\n", 1)[0]


@dataclass(frozen=True, slots=True)
class ClassifiedCommit:
    """A commit with its conventional-commit reading.

    ``raw_type`` is the type as written (lowercased), empty when the message
    has no conventional prefix. ``known`` is False for unparseable messages
    and unknown types; those land in the ``other`` group.
    """

    commit: Commit
    type: CommitType
    raw_type: str
    scope: str | None
    breaking: bool
    description: str
    group: str
    bump_eligible: bool
    known: bool = True

    @property
    def id(self) -> str:
        return self.commit.id

    @property
    def message(self) -> str:
        return self.commit.message

    @property
    def author_date(self) -> datetime:
        return self.commit.author_date


@dataclass(frozen=True, slots=True)
class VersionDecision:
    current: SemVer
    next: SemVer
    bump: BumpKind

    def __post_init__(self) -> None:
        if self.next < self.current:
            raise ValueError(f"next version {self.next} is lower than {self.current}")
        if self.bump == "none" and self.next != self.current:
            raise ValueError("a 'none' bump must keep the current version")

    @property
    def is_release(self) -> bool:
        return self.bump != "none"


@dataclass(frozen=True, slots=True)
class ChangelogGroup:
    name: str
    commits: tuple[ClassifiedCommit, ...]


@dataclass(frozen=True, slots=True)
class ReleasePlan:
    """Everything one run intends the remote to look like.

    Built fresh every invocation and compared by value.
    """

    version: SemVer
    previous_version: SemVer
    tag_name: str
    pr_title: str
    pr_body: str
    changelog_groups: tuple[ChangelogGroup, ...]
    package_versions: Mapping[str, SemVer]
    changelog_text: str = ""


@dataclass(frozen=True, slots=True)
class RemotePrState:
    """An open (or merged) release pull request as seen on the forge."""

    number: int
    branch_name: str
    head_fingerprint: str | None
    is_open: bool
    url: str = ""
    title: str = ""
    body: str = ""
    is_merged: bool = False


@dataclass(frozen=True, slots=True)
class TagRecord:
    tag_name: str
    sha: str


@dataclass(frozen=True, slots=True)
class ReleaseRecord:
    tag_name: str
    release_id: str
    is_draft: bool
    is_prerelease: bool
    url: str = ""
