"""Next-version computation.

Severity over bump-eligible commits: breaking -> major, feat -> minor,
fix -> patch. On a ``0.x`` line:

- a minor bump caused by ``feat`` becomes a patch bump unless
  ``features_always_increment_minor`` is set;
- a major bump becomes a minor bump unless ``breaking_always_increment_major``
  is set. This also applies to ``0.0.x``: breaking changes always move at
  least the minor component.

A pre-release current version moves to its next pre-release.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from unirel.core.config import BumpPolicy
from unirel.services.release.model import (
    BUMP_SEVERITY,
    BumpKind,
    ClassifiedCommit,
    VersionDecision,
)
from unirel.services.release.semver import SemVer


def severity(classified: Iterable[ClassifiedCommit], policy: BumpPolicy) -> tuple[BumpKind, bool]:
    """Return the raw bump kind and whether a minor comes only from ``feat``.

    Only bump-eligible commits count.
    """
    major_re = _compile(policy.custom_major_increment_regex)
    minor_re = _compile(policy.custom_minor_increment_regex)

    kind: BumpKind = "none"
    explicit_minor = False
    for c in classified:
        if not c.bump_eligible:
            continue
        if c.breaking or (major_re is not None and c.raw_type and major_re.search(c.raw_type)):
            return ("major", False)
        if minor_re is not None and c.raw_type and minor_re.search(c.raw_type):
            explicit_minor = True
            kind = _max(kind, "minor")
        elif c.type == "feat":
            kind = _max(kind, "minor")
        elif c.type == "fix":
            kind = _max(kind, "patch")
    return (kind, kind == "minor" and not explicit_minor)


def compute_next(
    current: SemVer,
    classified: Iterable[ClassifiedCommit],
    policy: BumpPolicy,
) -> VersionDecision:
    kind, feat_only_minor = severity(classified, policy)

    if current.major == 0:
        if kind == "major" and not policy.breaking_always_increment_major:
            kind = "minor"
        elif kind == "minor" and feat_only_minor and not policy.features_always_increment_minor:
            kind = "patch"

    if kind == "none":
        return VersionDecision(current=current, next=current, bump="none")

    if current.is_prerelease:
        return VersionDecision(current=current, next=current.next_prerelease(), bump=kind)

    return VersionDecision(current=current, next=current.bump(kind), bump=kind)


def _max(a: BumpKind, b: BumpKind) -> BumpKind:
    return a if BUMP_SEVERITY[a] >= BUMP_SEVERITY[b] else b


def _compile(pattern: str | None) -> re.Pattern[str] | None:
    return re.compile(pattern) if pattern else None
