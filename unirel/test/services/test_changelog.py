"""Tests for changelog assembly and rendering."""

from __future__ import annotations

from datetime import UTC, date, datetime

from unirel.core.config import ChangelogConfig, ClassificationConfig
from unirel.services.release.changelog import (
    assemble,
    render_changelog,
    render_markdown,
    trim_blank_lines,
)
from unirel.services.release.commits import classify
from unirel.services.release.model import ClassifiedCommit, Commit
from unirel.services.release.semver import SemVer


def _classified(*messages: str) -> list[ClassifiedCommit]:
    """Commits one day apart, oldest first."""
    commits = [
        Commit(id=f"{i:040x}", message=m, author_date=datetime(2026, 1, i + 1, tzinfo=UTC))
        for i, m in enumerate(messages)
    ]
    return classify(commits, ClassificationConfig())


def _descriptions(groups: list) -> list[list[str]]:
    return [[c.description for c in g.commits] for g in groups]


class TestAssemble:
    def test_groups_newest_first(self) -> None:
        groups = assemble(_classified("feat: a", "fix: b", "feat: c"), ChangelogConfig())
        assert [g.name for g in groups] == ["feat", "fix"]
        assert _descriptions(groups) == [["c", "a"], ["b"]]

    def test_oldest_first(self) -> None:
        groups = assemble(
            _classified("feat: a", "feat: c"), ChangelogConfig(sort_commits="oldest")
        )
        assert _descriptions(groups) == [["a", "c"]]

    def test_group_order(self) -> None:
        groups = assemble(
            _classified("feat: a", "fix: b", "docs: c"),
            ChangelogConfig(group_order=("fix", "docs")),
        )
        assert [g.name for g in groups] == ["fix", "docs", "feat"]

    def test_exclude_types(self) -> None:
        groups = assemble(
            _classified("feat: a", "chore: b"), ChangelogConfig(exclude_types=("chore",))
        )
        assert [g.name for g in groups] == ["feat"]

    def test_protect_breaking_commits(self) -> None:
        commits = _classified("chore!: drop old api", "chore: tidy")
        config = ChangelogConfig(exclude_types=("chore",), protect_breaking_commits=True)
        groups = assemble(commits, config)
        assert _descriptions(groups) == [["drop old api"]]

    def test_protect_breaking_commits_from_excluded_group(self) -> None:
        commits = _classified("feat: a", "chore!: drop old api", "chore: tidy")
        config = ChangelogConfig(exclude_groups=("chore",), protect_breaking_commits=True)
        groups = assemble(commits, config)
        assert [g.name for g in groups] == ["chore", "feat"]
        assert _descriptions(groups) == [["drop old api"], ["a"]]

    def test_excluded_group_drops_breaking_without_protection(self) -> None:
        commits = _classified("feat: a", "chore!: drop old api")
        groups = assemble(commits, ChangelogConfig(exclude_groups=("chore",)))
        assert _descriptions(groups) == [["a"]]

    def test_exclude_patterns(self) -> None:
        groups = assemble(
            _classified("fix: typo", "fix: real bug"),
            ChangelogConfig(exclude_patterns=(r"^typo",)),
        )
        assert _descriptions(groups) == [["real bug"]]

    def test_exclude_other(self) -> None:
        groups = assemble(
            _classified("feat: a", "merge branch"), ChangelogConfig(include_other=False)
        )
        assert [g.name for g in groups] == ["feat"]

    def test_trim_drops_empty_descriptions(self) -> None:
        groups = assemble(_classified("   ", "fix: b"), ChangelogConfig())
        assert _descriptions(groups) == [["b"]]

    def test_no_commits(self) -> None:
        assert assemble([], ChangelogConfig()) == []


class TestRender:
    def test_markdown(self) -> None:
        groups = assemble(_classified("feat(api): add x", "fix!: y"), ChangelogConfig())
        text = render_markdown(SemVer(1, 2, 0), groups, date(2026, 1, 2))
        assert text == (
            "## [1.2.0] - 2026-01-02\n"
            "\n"
            "### Bug Fixes\n"
            "\n"
            "- [**breaking**] y\n"
            "\n"
            "### Features\n"
            "\n"
            "- *(api)* add x"
        )

    def test_custom_body(self) -> None:
        groups = assemble(_classified("fix: y"), ChangelogConfig())
        config = ChangelogConfig(body="\n\nv{{ version }} ({{ date }})\n{{ entries }}\n\n")
        text = render_changelog(SemVer(1, 0, 1), groups, date(2026, 5, 1), config)
        assert text == "v1.0.1 (2026-05-01)\n### Bug Fixes\n\n- y"

    def test_custom_body_sees_plan_variables(self) -> None:
        config = ChangelogConfig(body="{{ package }} {{ version }}")
        text = render_changelog(
            SemVer(1, 0, 1), [], date(2026, 5, 1), config, {"package": "core"}
        )
        assert text == "core 1.0.1"


def test_trim_blank_lines() -> None:
    assert trim_blank_lines("\n\n  a  \n\nb\n\n") == "  a\n\nb"
