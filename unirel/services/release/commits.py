"""Conventional commit classification.

Every commit yields exactly one ClassifiedCommit. Messages without a
conventional prefix, and prefixes with an unknown type, classify as
``other`` and never drive a version bump on their own.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import UTC, datetime

from unirel.core.config import ClassificationConfig
from unirel.services.release.model import ClassifiedCommit, Commit, CommitType

BUMPING_TYPES = frozenset({"feat", "fix"})
NON_BUMPING_TYPES = frozenset(
    {"docs", "style", "refactor", "perf", "test", "chore", "ci", "build", "revert"}
)
OTHER_GROUP = "other"

_HEADER_RE = re.compile(
    r"^(?P<type>[A-Za-z][A-Za-z0-9_-]*)"
    r"(?:\((?P<scope>[^()\r\n]*)\))?"
    r"(?P<bang>!)?"
    r":\s+(?P<description>\S.*)$"
)
_BREAKING_FOOTER_RE = re.compile(r"^BREAKING[ -]CHANGE:\s*\S", re.MULTILINE)


def classify(
    commits: Iterable[Commit],
    config: ClassificationConfig,
) -> list[ClassifiedCommit]:
    """Classify commits, preserving order."""
    release_re = re.compile(config.release_commits) if config.release_commits else None
    custom = frozenset(t.lower() for t in config.custom_types)
    return [_classify_one(c, config, release_re, custom) for c in commits]


def classify_message(message: str, config: ClassificationConfig | None = None) -> ClassifiedCommit:
    """Classify a bare message (mostly useful in tests and previews)."""
    commit = Commit(id="", message=message, author_date=datetime.fromtimestamp(0, UTC))
    return classify([commit], config or ClassificationConfig())[0]


def _classify_one(
    commit: Commit,
    config: ClassificationConfig,
    release_re: re.Pattern[str] | None,
    custom: frozenset[str],
) -> ClassifiedCommit:
    subject, _, body = commit.message.strip().partition("\n")
    eligible = _bump_eligible(commit.message, config, release_re)

    m = _HEADER_RE.match(subject.strip())
    if m is None:
        return ClassifiedCommit(
            commit=commit,
            type="other",
            raw_type="",
            scope=None,
            breaking=False,
            description=subject.strip(),
            group=_group_name(OTHER_GROUP, config),
            bump_eligible=eligible,
            known=False,
        )

    raw_type = m.group("type").lower()
    scope = (m.group("scope") or "").strip() or None
    breaking = m.group("bang") is not None or _BREAKING_FOOTER_RE.search(body) is not None

    commit_type: CommitType
    known = True
    if raw_type in BUMPING_TYPES:
        commit_type = "feat" if raw_type == "feat" else "fix"
    elif raw_type in custom:
        commit_type = "custom"
    elif raw_type in NON_BUMPING_TYPES:
        commit_type = "other"
    else:
        commit_type = "other"
        known = False

    return ClassifiedCommit(
        commit=commit,
        type=commit_type,
        raw_type=raw_type,
        scope=scope,
        breaking=breaking,
        description=m.group("description").strip(),
        group=_group_name(raw_type if known else OTHER_GROUP, config),
        bump_eligible=eligible,
        known=known,
    )


def _bump_eligible(
    message: str,
    config: ClassificationConfig,
    release_re: re.Pattern[str] | None,
) -> bool:
    if any(p in message for p in config.skip_release_patterns):
        return False
    if release_re is not None and release_re.search(message) is None:
        return False
    return True


def _group_name(key: str, config: ClassificationConfig) -> str:
    return config.groups.get(key, key)
