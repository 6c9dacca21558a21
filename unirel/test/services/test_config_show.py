"""Tests for the effective configuration report."""

from __future__ import annotations

import json
from pathlib import Path

from unirel.core.config import Config
from unirel.services.release.config_show import build_display, render_json, render_text
from unirel.services.release.manifest import Member, WorkspaceManifest
from unirel.services.release.semver import parse_version


def _workspace(root: Path) -> WorkspaceManifest:
    members = []
    for name, sub in (("core", "packages/core"), ("cli", "packages/cli")):
        version = parse_version("1.4.0")
        assert version is not None
        members.append(Member(name=name, path=root / sub, version=version))
    return WorkspaceManifest(root=root, members=tuple(members))


def _config() -> Config:
    return Config.from_dict(
        {
            "workspace": {
                "git_release_draft": True,
                "pr_labels": ["release", "bot"],
                "allow_dirty": True,
                "max_analyze_commits": 1000,
            },
            "package": [{"name": "cli", "git_tag_enable": False}],
        }
    )


def test_defaults_only(tmp_path: Path) -> None:
    display = build_display(Config(), _workspace(tmp_path))
    assert display.config_source == "defaults (no unirel.toml)"
    text = render_text(display)
    assert "(No explicit workspace defaults set)" in text
    assert "(No workspace-specific settings set)" in text
    assert "No packages have explicit overrides" in text


def test_partitions_explicit_values(tmp_path: Path) -> None:
    display = build_display(_config(), _workspace(tmp_path))
    assert display.workspace_defaults == {"git_release_draft": True}
    # The default commit window is not reported.
    assert display.workspace_settings == {"allow_dirty": True, "pr_labels": ["release", "bot"]}
    assert [p.name for p in display.packages] == ["core", "cli"]
    assert display.packages[1].explicit_overrides == {"git_tag_enable": False}
    assert display.packages[1].path == "packages/cli"


def test_text_lists_packages_with_overrides(tmp_path: Path) -> None:
    text = render_text(build_display(_config(), _workspace(tmp_path)))
    assert "  git_release_draft: true" in text
    assert '  pr_labels: ["release", "bot"]' in text
    assert "Package: cli (packages/cli)" in text
    assert "    git_tag_enable: false" in text
    assert "Package: core" not in text


def test_package_filter(tmp_path: Path) -> None:
    display = build_display(_config(), _workspace(tmp_path), package="core")
    assert [p.name for p in display.packages] == ["core"]
    assert display.packages[0].explicit_overrides == {}


def test_json(tmp_path: Path) -> None:
    data = json.loads(render_json(build_display(_config(), _workspace(tmp_path))))
    assert set(data) == {"config_source", "workspace_defaults", "workspace_settings", "packages"}
    assert data["packages"][1] == {
        "name": "cli",
        "path": "packages/cli",
        "version": "1.4.0",
        "explicit_overrides": {"git_tag_enable": False},
    }
