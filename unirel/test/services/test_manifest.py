"""Tests for workspace discovery and manifest/changelog writes."""

from __future__ import annotations

from pathlib import Path

from unirel.core.result import Err, Ok
from unirel.services.release.changelog import DEFAULT_HEADER
from unirel.services.release.manifest import (
    discover_workspace,
    prepend_section,
    set_manifest_version,
    write_changelog_file,
    write_versions,
)
from unirel.services.release.semver import SemVer

ROOT_MANIFEST = """\
[project]
name = "root"
version = "0.1.0"  # keep this comment

[tool.uv.workspace]
members = ["packages/*"]
exclude = ["packages/skipped"]
"""


def _package(root: Path, name: str, version: str) -> Path:
    path = root / "packages" / name
    path.mkdir(parents=True)
    (path / "pyproject.toml").write_text(
        f'[project]\nname = "{name}"\nversion = "{version}"\n', encoding="utf-8"
    )
    return path


def _workspace(tmp_path: Path) -> Path:
    (tmp_path / "pyproject.toml").write_text(ROOT_MANIFEST, encoding="utf-8")
    _package(tmp_path, "core", "0.2.0")
    _package(tmp_path, "skipped", "9.0.0")
    (tmp_path / "packages" / "docs").mkdir()
    return tmp_path


class TestDiscover:
    def test_members(self, tmp_path: Path) -> None:
        result = discover_workspace(_workspace(tmp_path))
        assert isinstance(result, Ok)
        ws = result.value
        assert [m.name for m in ws.members] == ["root", "core"]
        assert ws.current_version == SemVer(0, 2, 0)
        assert ws.versions == {"root": SemVer(0, 1, 0), "core": SemVer(0, 2, 0)}
        assert ws.member("core") is not None
        assert ws.member("skipped") is None

    def test_missing_root_manifest(self, tmp_path: Path) -> None:
        result = discover_workspace(tmp_path)
        assert isinstance(result, Err)
        assert result.error.kind == "invalid_manifest"
        assert result.error.hint is not None

    def test_dynamic_version_rejected(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text(
            '[project]\nname = "x"\ndynamic = ["version"]\n', encoding="utf-8"
        )
        result = discover_workspace(tmp_path)
        assert isinstance(result, Err)
        assert "version missing" in result.error.message

    def test_non_semver_version(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text(
            '[project]\nname = "x"\nversion = "2024.1"\n', encoding="utf-8"
        )
        result = discover_workspace(tmp_path)
        assert isinstance(result, Err)
        assert "not semver" in result.error.message

    def test_no_packages(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text("[tool.ruff]\n", encoding="utf-8")
        result = discover_workspace(tmp_path)
        assert isinstance(result, Err)
        assert "no packages" in result.error.message

    def test_duplicate_names(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text(
            '[project]\nname = "core"\nversion = "0.1.0"\n'
            '[tool.uv.workspace]\nmembers = ["packages/*"]\n',
            encoding="utf-8",
        )
        _package(tmp_path, "core", "0.1.0")
        result = discover_workspace(tmp_path)
        assert isinstance(result, Err)
        assert "duplicate" in result.error.message


class TestVersionWrites:
    def test_set_manifest_version_only_touches_project(self) -> None:
        content = (
            '[project]\nname = "x"\nversion = "0.1.0"  # pinned\n\n'
            '[tool.other]\nversion = "0.1.0"\n'
        )
        updated = set_manifest_version(content, SemVer(0, 2, 0))
        assert updated == (
            '[project]\nname = "x"\nversion = "0.2.0"  # pinned\n\n'
            '[tool.other]\nversion = "0.1.0"\n'
        )

    def test_set_manifest_version_without_project(self) -> None:
        assert set_manifest_version("[tool.x]\nversion = '1'\n", SemVer(1, 0, 0)) is None

    def test_write_versions(self, tmp_path: Path) -> None:
        ws = discover_workspace(_workspace(tmp_path)).unwrap()
        result = write_versions(ws, {"root": SemVer(0, 2, 1), "core": SemVer(0, 2, 1)})
        assert isinstance(result, Ok)
        assert len(result.value) == 2
        root_text = (tmp_path / "pyproject.toml").read_text(encoding="utf-8")
        assert 'version = "0.2.1"  # keep this comment' in root_text
        assert discover_workspace(tmp_path).unwrap().current_version == SemVer(0, 2, 1)

    def test_write_versions_unchanged(self, tmp_path: Path) -> None:
        ws = discover_workspace(_workspace(tmp_path)).unwrap()
        assert write_versions(ws, {"core": SemVer(0, 2, 0)}) == Ok([])

    def test_write_versions_relocated(self, tmp_path: Path) -> None:
        source = tmp_path / "source"
        copy = tmp_path / "copy"
        source.mkdir()
        copy.mkdir()
        _workspace(source)
        _workspace(copy)
        ws = discover_workspace(source).unwrap()
        write_versions(ws, {"core": SemVer(0, 3, 0)}, root=copy)
        assert discover_workspace(copy).unwrap().versions["core"] == SemVer(0, 3, 0)
        assert discover_workspace(source).unwrap().versions["core"] == SemVer(0, 2, 0)

    def test_write_versions_unknown_package(self, tmp_path: Path) -> None:
        ws = discover_workspace(_workspace(tmp_path)).unwrap()
        result = write_versions(ws, {"ghost": SemVer(1, 0, 0)})
        assert isinstance(result, Err)
        assert result.error.kind == "invalid_input"


class TestChangelogFile:
    SECTION = "## [0.2.0] - 2026-03-14\n\n### Features\n\n- b"

    def test_new_file_gets_header(self) -> None:
        text = prepend_section(None, self.SECTION, SemVer(0, 2, 0))
        assert text == f"{DEFAULT_HEADER}\n{self.SECTION}\n"

    def test_inserted_above_newest(self) -> None:
        existing = "# Changelog\n\n## [0.1.0] - 2026-01-01\n\n- a\n"
        text = prepend_section(existing, self.SECTION, SemVer(0, 2, 0))
        assert text == f"# Changelog\n\n{self.SECTION}\n\n## [0.1.0] - 2026-01-01\n\n- a\n"

    def test_custom_header(self) -> None:
        text = prepend_section(None, self.SECTION, SemVer(0, 2, 0), "# History\n")
        assert text == f"# History\n\n{self.SECTION}\n"

    def test_empty_header(self) -> None:
        assert prepend_section("", self.SECTION, SemVer(0, 2, 0), "") == f"{self.SECTION}\n"

    def test_existing_version_is_skipped(self) -> None:
        existing = f"# Changelog\n\n{self.SECTION}\n"
        assert prepend_section(existing, self.SECTION, SemVer(0, 2, 0)) is None

    def test_existing_section_text_is_skipped(self) -> None:
        # A body template whose heading does not follow "## [version]".
        section = "## Release 0.2.0\n\n- b"
        existing = f"# Changelog\n\n{section}\n\n## Release 0.1.0\n\n- a\n"
        assert prepend_section(existing, section, SemVer(0, 2, 0)) is None
        assert prepend_section(existing, "## Release 0.3.0\n\n- c", SemVer(0, 3, 0)) is not None

    def test_write_uses_header(self, tmp_path: Path) -> None:
        path = tmp_path / "CHANGELOG.md"
        assert write_changelog_file(path, self.SECTION, SemVer(0, 2, 0), "# History") == Ok(True)
        assert path.read_text(encoding="utf-8").startswith("# History\n\n## [0.2.0]")

    def test_write_changelog_file(self, tmp_path: Path) -> None:
        path = tmp_path / "docs" / "CHANGELOG.md"
        assert write_changelog_file(path, self.SECTION, SemVer(0, 2, 0)) == Ok(True)
        assert self.SECTION in path.read_text(encoding="utf-8")
        assert write_changelog_file(path, self.SECTION, SemVer(0, 2, 0)) == Ok(False)
