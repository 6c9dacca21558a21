from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime

from unirel.core.config import DEFAULT_PR_TITLE_TEMPLATE, DEFAULT_TAG_TEMPLATE, ChangelogConfig
from unirel.services.release.changelog import assemble, render_changelog
from unirel.services.release.model import ClassifiedCommit, ReleasePlan, VersionDecision
from unirel.services.release.semver import SemVer, parse_version
from unirel.services.release.templates import render, template_regex

DEFAULT_PR_BODY_TEMPLATE = (
    "## 🤖 New release\n\n"
    "* `{{ package }}`: {{ previous_version }} -> {{ version }}\n\n"
    "<details><summary><i><b>Changelog</b></i></summary><p>\n\n"
    "{{ changelog }}\n\n"
    "</p></details>\n\n"
    "---\n"
    "This PR was generated by unirel. Merge it to release `{{ tag }}`."
)


@dataclass(frozen=True, slots=True)
class PlanTemplates:
    tag: str = DEFAULT_TAG_TEMPLATE
    pr_title: str = DEFAULT_PR_TITLE_TEMPLATE
    pr_body: str = DEFAULT_PR_BODY_TEMPLATE
    changelog: ChangelogConfig = field(default_factory=ChangelogConfig)


@dataclass(frozen=True, slots=True)
class TagHistory:
    """Versions recovered from existing tag names."""

    versions: Mapping[SemVer, str]

    @property
    def latest(self) -> SemVer | None:
        return max(self.versions) if self.versions else None

    def tag_for(self, version: SemVer) -> str | None:
        return self.versions.get(version)

    def previous_version(self, version: SemVer) -> SemVer | None:
        """Highest tagged version strictly below ``version``."""
        lower = [v for v in self.versions if v < version]
        return max(lower) if lower else None

    def previous(self, version: SemVer) -> str | None:
        """Tag of the highest version strictly below ``version``."""
        found = self.previous_version(version)
        return self.versions[found] if found is not None else None


def compute_history(tags: Iterable[str], tag_template: str = DEFAULT_TAG_TEMPLATE) -> TagHistory:
    pattern = template_regex(tag_template, "version")
    versions: dict[SemVer, str] = {}
    for tag in tags:
        m = pattern.match(tag)
        if m is None:
            continue
        v = parse_version(m.group("version"))
        if v is not None:
            versions[v] = tag
    return TagHistory(versions=versions)


def release_day(classified: Iterable[ClassifiedCommit]) -> date | None:
    """UTC date of the newest commit, None for an empty range."""
    dates = [c.commit.author_date for c in classified]
    if not dates:
        return None
    return max(dates).astimezone(UTC).date()


def tag_name_for(version: SemVer, template: str = DEFAULT_TAG_TEMPLATE) -> str:
    return render(template, {"version": str(version)})


def plan_variables(
    *,
    version: SemVer,
    previous: SemVer,
    packages: Sequence[str],
    day: date,
    tag_template: str,
) -> dict[str, object]:
    variables: dict[str, object] = {
        "version": str(version),
        "previous_version": str(previous),
        "package": ", ".join(packages),
        "date": day.isoformat(),
    }
    variables["tag"] = render(tag_template, variables)
    return variables


def build(
    current_versions: Mapping[str, SemVer],
    classified: Sequence[ClassifiedCommit],
    decisions: Mapping[str, VersionDecision],
    templates: PlanTemplates,
    *,
    day: date | None = None,
) -> ReleasePlan | None:
    """Build the unified release plan, or None when nothing bumps.

    Every package receives the highest next version, including packages
    whose own decision was ``none``. The changelog is dated ``day``, or by
    the newest commit in the range, so the same history always renders the
    same plan.
    """
    releasing = [d for d in decisions.values() if d.is_release]
    if not releasing or not current_versions:
        return None

    previous = max(current_versions.values())
    version = max(d.next for d in releasing)
    if version <= previous:
        # Drifted manifests: never plan a version at or below one already present.
        return None

    day = day or release_day(classified) or datetime.now(UTC).date()
    packages = sorted(current_versions)
    variables = plan_variables(
        version=version,
        previous=previous,
        packages=packages,
        day=day,
        tag_template=templates.tag,
    )
    groups = tuple(assemble(classified, templates.changelog))
    changelog_text = render_changelog(version, groups, day, templates.changelog, variables)
    variables["changelog"] = changelog_text

    return ReleasePlan(
        version=version,
        previous_version=previous,
        tag_name=str(variables["tag"]),
        pr_title=render(templates.pr_title, variables).strip(),
        pr_body=render(templates.pr_body, variables).strip(),
        changelog_groups=groups,
        package_versions={name: version for name in packages},
        changelog_text=changelog_text,
    )
