"""Changelog assembly and default rendering.

``assemble`` turns classified commits into ordered groups; it owns every
semantic decision (filtering, ordering, trimming). ``render_markdown`` and
``render_changelog`` only format what they are given.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import date

from unirel.core.config import ChangelogConfig
from unirel.services.release.model import ChangelogGroup, ClassifiedCommit
from unirel.services.release.semver import SemVer
from unirel.services.release.templates import render

DEFAULT_HEADER = (
    "# Changelog\n\n"
    "All notable changes to this project will be documented in this file.\n"
)

_GROUP_TITLES = {
    "feat": "Features",
    "fix": "Bug Fixes",
    "perf": "Performance",
    "refactor": "Refactor",
    "docs": "Documentation",
    "style": "Styling",
    "test": "Testing",
    "build": "Build",
    "ci": "CI",
    "chore": "Miscellaneous Tasks",
    "revert": "Revert",
    "other": "Other",
}


def assemble(
    classified: Iterable[ClassifiedCommit],
    config: ChangelogConfig,
) -> list[ChangelogGroup]:
    """Group, filter and order commits for the changelog."""
    patterns = [re.compile(p) for p in config.exclude_patterns]
    kept: list[ClassifiedCommit] = []
    for c in classified:
        if not _included(c, config, patterns):
            continue
        if config.trim:
            description = c.description.strip()
            if not description:
                continue
            c = replace(c, description=description)
        kept.append(c)

    # sorted() is stable in both directions, so same-date commits keep history order.
    ordered = sorted(kept, key=lambda c: c.author_date, reverse=config.sort_commits == "newest")

    groups: dict[str, list[ClassifiedCommit]] = {}
    for c in ordered:
        groups.setdefault(c.group, []).append(c)

    names = list(groups)
    if config.group_order:
        listed = [g for g in config.group_order if g in groups]
        names = listed + [g for g in names if g not in listed]

    return [ChangelogGroup(name=n, commits=tuple(groups[n])) for n in names if groups[n]]


def _included(
    c: ClassifiedCommit,
    config: ChangelogConfig,
    patterns: Sequence[re.Pattern[str]],
) -> bool:
    if config.protect_breaking_commits and c.breaking:
        return True
    if c.raw_type and c.raw_type in config.exclude_types:
        return False
    if c.group in config.exclude_groups:
        return False
    if any(p.search(c.description) for p in patterns):
        return False
    if not config.include_other and not c.known:
        return False
    return True


def group_title(name: str) -> str:
    return _GROUP_TITLES.get(name, name)


def render_entry(c: ClassifiedCommit) -> str:
    scope = f"*({c.scope})* " if c.scope else ""
    breaking = "[**breaking**] " if c.breaking else ""
    return f"- {scope}{breaking}{c.description}"


def render_markdown(version: SemVer, groups: Sequence[ChangelogGroup], day: date) -> str:
    """Render one Keep-a-Changelog style section."""
    lines = [f"## [{version}] - {day.isoformat()}"]
    for group in groups:
        lines.append("")
        lines.append(f"### {group_title(group.name)}")
        lines.append("")
        lines.extend(render_entry(c) for c in group.commits)
    return "\n".join(lines)


def render_changelog(
    version: SemVer,
    groups: Sequence[ChangelogGroup],
    day: date,
    config: ChangelogConfig,
    variables: dict[str, object] | None = None,
) -> str:
    """Render the section text, through ``config.body`` when one is set.

    A custom body sees ``{{ entries }}`` (the default rendering of the
    groups) plus the plan variables.
    """
    text = render_markdown(version, groups, day)
    if config.body is not None:
        scope: dict[str, object] = dict(variables or {})
        scope.setdefault("version", str(version))
        scope.setdefault("date", day.isoformat())
        scope["entries"] = "\n".join(text.splitlines()[1:]).strip("\n")
        text = render(config.body, scope)
    if config.trim:
        text = trim_blank_lines(text)
    return text


def trim_blank_lines(text: str) -> str:
    """Drop leading and trailing blank lines, keep inner layout."""
    lines = text.splitlines()
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return "\n".join(line.rstrip() for line in lines)
