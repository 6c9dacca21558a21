"""Tests for tag history and release plan construction."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone

from unirel.core.config import ClassificationConfig
from unirel.services.release.commits import classify, classify_message
from unirel.services.release.model import ClassifiedCommit, Commit, VersionDecision
from unirel.services.release.planner import (
    PlanTemplates,
    build,
    compute_history,
    release_day,
    tag_name_for,
)
from unirel.services.release.semver import SemVer

DAY = date(2026, 3, 14)


class TestTagHistory:
    def test_recovers_versions(self) -> None:
        history = compute_history(["v0.1.0", "v0.2.0", "nightly", "v1.0.0-rc.1", "vbad"])
        assert history.latest == SemVer(1, 0, 0, "rc.1")
        assert history.tag_for(SemVer(0, 2, 0)) == "v0.2.0"
        assert history.tag_for(SemVer(9, 9, 9)) is None

    def test_previous(self) -> None:
        history = compute_history(["v0.1.0", "v0.2.0", "v0.3.0"])
        assert history.previous(SemVer(0, 3, 0)) == "v0.2.0"
        assert history.previous(SemVer(0, 2, 5)) == "v0.2.0"
        assert history.previous(SemVer(0, 1, 0)) is None
        assert history.previous_version(SemVer(1, 0, 0)) == SemVer(0, 3, 0)

    def test_custom_tag_template(self) -> None:
        history = compute_history(["release-1.0.0", "v2.0.0"], "release-{{ version }}")
        assert history.latest == SemVer(1, 0, 0)

    def test_empty(self) -> None:
        assert compute_history([]).latest is None

    def test_tag_name_for(self) -> None:
        assert tag_name_for(SemVer(1, 2, 3)) == "v1.2.3"
        assert tag_name_for(SemVer(1, 2, 3), "rel/{{ version }}") == "rel/1.2.3"


class TestBuild:
    def _decisions(self) -> dict[str, VersionDecision]:
        return {
            "core": VersionDecision(SemVer(0, 2, 0), SemVer(0, 2, 1), "patch"),
            "cli": VersionDecision(SemVer(0, 1, 0), SemVer(0, 1, 0), "none"),
        }

    def test_unified_version(self) -> None:
        plan = build(
            {"core": SemVer(0, 2, 0), "cli": SemVer(0, 1, 0)},
            [classify_message("fix: repair parser")],
            self._decisions(),
            PlanTemplates(),
            day=DAY,
        )
        assert plan is not None
        assert plan.version == SemVer(0, 2, 1)
        assert plan.previous_version == SemVer(0, 2, 0)
        assert dict(plan.package_versions) == {"cli": SemVer(0, 2, 1), "core": SemVer(0, 2, 1)}
        assert plan.tag_name == "v0.2.1"
        assert plan.pr_title == "chore: release v0.2.1"
        assert "`cli, core`: 0.2.0 -> 0.2.1" in plan.pr_body
        assert "## [0.2.1] - 2026-03-14" in plan.changelog_text
        assert "- repair parser" in plan.pr_body
        assert [g.name for g in plan.changelog_groups] == ["fix"]

    def test_custom_templates(self) -> None:
        templates = PlanTemplates(
            tag="{{ package }}@{{ version }}",
            pr_title="Release {{ tag }}",
            pr_body="{{ previous_version }} to {{ version }} on {{ date }}",
        )
        plan = build(
            {"core": SemVer(1, 0, 0)},
            [classify_message("feat: new")],
            {"core": VersionDecision(SemVer(1, 0, 0), SemVer(1, 1, 0), "minor")},
            templates,
            day=DAY,
        )
        assert plan is not None
        assert plan.tag_name == "core@1.1.0"
        assert plan.pr_title == "Release core@1.1.0"
        assert plan.pr_body == "1.0.0 to 1.1.0 on 2026-03-14"

    def test_nothing_to_release(self) -> None:
        decisions = {"core": VersionDecision(SemVer(1, 0, 0), SemVer(1, 0, 0), "none")}
        plan = build({"core": SemVer(1, 0, 0)}, [], decisions, PlanTemplates(), day=DAY)
        assert plan is None

    def test_never_plans_below_a_present_version(self) -> None:
        decisions = {
            "a": VersionDecision(SemVer(0, 1, 0), SemVer(0, 1, 1), "patch"),
            "b": VersionDecision(SemVer(0, 5, 0), SemVer(0, 5, 0), "none"),
        }
        plan = build(
            {"a": SemVer(0, 1, 0), "b": SemVer(0, 5, 0)},
            [classify_message("fix: x")],
            decisions,
            PlanTemplates(),
            day=DAY,
        )
        assert plan is None

    def test_same_inputs_same_plan(self) -> None:
        args = (
            {"core": SemVer(0, 2, 0), "cli": SemVer(0, 1, 0)},
            [classify_message("fix: repair parser")],
            self._decisions(),
            PlanTemplates(),
        )
        assert build(*args, day=DAY) == build(*args, today=DAY)


class TestReleaseDay:
    def _classified(self, *dates: datetime) -> list[ClassifiedCommit]:
        commits = [
            Commit(id=f"{i:040x}", message="fix: x", author_date=d) for i, d in enumerate(dates)
        ]
        return classify(commits, ClassificationConfig())

    def test_newest_commit_in_utc(self) -> None:
        late_evening = datetime(2026, 3, 2, 22, 0, tzinfo=timezone(timedelta(hours=-5)))
        classified = self._classified(datetime(2026, 3, 1, tzinfo=UTC), late_evening)
        assert release_day(classified) == date(2026, 3, 3)

    def test_empty_range(self) -> None:
        assert release_day([]) is None

    def test_plan_is_dated_by_its_commits(self) -> None:
        classified = self._classified(datetime(2026, 3, 1, tzinfo=UTC))
        decisions = {"core": VersionDecision(SemVer(0, 2, 0), SemVer(0, 2, 1), "patch")}
        plan = build({"core": SemVer(0, 2, 0)}, classified, decisions, PlanTemplates())
        assert plan is not None
        assert "## [0.2.1] - 2026-03-01" in plan.changelog_text
