"""Workspace manifests: member discovery, version reads and writes.

Members come from the root ``pyproject.toml``: the root ``[project]`` (if
any) plus every directory matched by ``[tool.uv.workspace].members`` that
holds its own ``pyproject.toml``. Versions are read with tomllib and written
back with a targeted regex so formatting and comments survive.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from unirel.core.result import Err, Ok, Result
from unirel.core.structured import StrDict, as_str_dict, get_str, get_str_list, get_table
from unirel.services.release.changelog import DEFAULT_HEADER
from unirel.services.release.errors import ReleaseError
from unirel.services.release.semver import SemVer, parse_version

MANIFEST_NAME = "pyproject.toml"

_PROJECT_SECTION_RE = re.compile(r"^\[project\][^\n]*\n.*?(?=^\[|\Z)", re.MULTILINE | re.DOTALL)
_VERSION_LINE_RE = re.compile(r"""^(version\s*=\s*)(["'])[^"']*\2""", re.MULTILINE)


@dataclass(frozen=True, slots=True)
class Member:
    name: str
    path: Path  # directory holding the manifest
    version: SemVer

    @property
    def manifest(self) -> Path:
        return self.path / MANIFEST_NAME


@dataclass(frozen=True, slots=True)
class WorkspaceManifest:
    root: Path
    members: tuple[Member, ...]

    @property
    def current_version(self) -> SemVer:
        """Unified version: the highest member version."""
        return max(m.version for m in self.members)

    @property
    def versions(self) -> dict[str, SemVer]:
        return {m.name: m.version for m in self.members}

    def member(self, name: str) -> Member | None:
        for m in self.members:
            if m.name == name:
                return m
        return None


def _read_toml(path: Path) -> Result[StrDict, ReleaseError]:
    import tomllib

    try:
        data = as_str_dict(tomllib.loads(path.read_text(encoding="utf-8")))
    except FileNotFoundError:
        return Err(
            ReleaseError(
                kind="invalid_manifest",
                message=f"manifest not found: {path}",
                hint="Run unirel from the repository root or pass --manifest-path.",
            )
        )
    except (OSError, UnicodeDecodeError) as e:
        return Err(ReleaseError(kind="io_failed", message=f"failed to read {path}: {e}"))
    except tomllib.TOMLDecodeError as e:
        return Err(ReleaseError(kind="invalid_manifest", message=f"invalid TOML in {path}: {e}"))
    if data is None:
        return Err(ReleaseError(kind="invalid_manifest", message=f"invalid manifest: {path}"))
    return Ok(data)


def _member_from(path: Path, data: StrDict) -> Result[Member | None, ReleaseError]:
    project = get_table(data, "project")
    if project is None:
        return Ok(None)
    name = get_str(project, "name")
    if name is None:
        return Err(
            ReleaseError(kind="invalid_manifest", message=f"[project].name missing in {path}")
        )
    raw_version = get_str(project, "version")
    if raw_version is None:
        return Err(
            ReleaseError(
                kind="invalid_manifest",
                message=f"[project].version missing in {path}",
                hint="Dynamic versions are not supported; set a static version.",
            )
        )
    version = parse_version(raw_version)
    if version is None:
        return Err(
            ReleaseError(
                kind="invalid_manifest",
                message=f"{name}: version {raw_version!r} is not semver",
                hint=str(path),
            )
        )
    return Ok(Member(name=name, path=path.parent, version=version))


def discover_workspace(root: Path) -> Result[WorkspaceManifest, ReleaseError]:
    """Find every workspace member under ``root``."""
    root_manifest = root / MANIFEST_NAME
    data = _read_toml(root_manifest)
    if isinstance(data, Err):
        return data

    members: list[Member] = []
    root_member = _member_from(root_manifest, data.value)
    if isinstance(root_member, Err):
        return root_member
    if root_member.value is not None:
        members.append(root_member.value)

    tool = get_table(data.value, "tool") or {}
    uv = get_table(tool, "uv") or {}
    workspace = get_table(uv, "workspace") or {}
    patterns = get_str_list(workspace, "members") or []
    exclude_patterns = get_str_list(workspace, "exclude") or []
    excluded = {p.resolve() for pat in exclude_patterns for p in root.glob(pat)}

    seen: set[Path] = {root.resolve()}
    for pattern in patterns:
        for candidate in sorted(root.glob(pattern)):
            resolved = candidate.resolve()
            if resolved in seen or resolved in excluded:
                continue
            manifest = candidate / MANIFEST_NAME
            if not manifest.is_file():
                continue
            seen.add(resolved)
            parsed = _read_toml(manifest)
            if isinstance(parsed, Err):
                return parsed
            member = _member_from(manifest, parsed.value)
            if isinstance(member, Err):
                return member
            if member.value is not None:
                members.append(member.value)

    if not members:
        return Err(
            ReleaseError(
                kind="invalid_manifest",
                message=f"no packages found in {root_manifest}",
                hint="Add a [project] table or [tool.uv.workspace].members.",
            )
        )

    names = [m.name for m in members]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        return Err(
            ReleaseError(kind="invalid_manifest", message=f"duplicate package names: {dupes}")
        )
    return Ok(WorkspaceManifest(root=root, members=tuple(members)))


def set_manifest_version(content: str, version: SemVer) -> str | None:
    """Return content with [project].version replaced, None if not found."""
    section = _PROJECT_SECTION_RE.search(content)
    if section is None:
        return None
    text = section.group(0)
    updated, count = _VERSION_LINE_RE.subn(lambda m: f'{m.group(1)}"{version}"', text, count=1)
    if count == 0:
        return None
    return content[: section.start()] + updated + content[section.end() :]


def write_versions(
    workspace: WorkspaceManifest,
    package_versions: Mapping[str, SemVer],
    *,
    root: Path | None = None,
) -> Result[list[Path], ReleaseError]:
    """Write versions to member manifests; returns the files changed.

    ``root`` relocates the workspace (e.g. into a git worktree).
    """
    base = root or workspace.root
    changed: list[Path] = []
    for name, version in package_versions.items():
        member = workspace.member(name)
        if member is None:
            return Err(ReleaseError(kind="invalid_input", message=f"unknown package: {name}"))
        path = base / member.manifest.relative_to(workspace.root)
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            return Err(ReleaseError(kind="io_failed", message=f"failed to read {path}: {e}"))
        updated = set_manifest_version(content, version)
        if updated is None:
            return Err(
                ReleaseError(
                    kind="invalid_manifest",
                    message=f"could not find [project].version in {path}",
                )
            )
        if updated == content:
            continue
        try:
            path.write_text(updated, encoding="utf-8")
        except OSError as e:
            return Err(ReleaseError(kind="io_failed", message=f"failed to write {path}: {e}"))
        changed.append(path)
    return Ok(changed)


def prepend_section(
    existing: str | None, section: str, version: SemVer, header: str | None = None
) -> str | None:
    """Insert a changelog section above the newest one.

    A new or empty changelog starts with ``header`` (the stock header when
    None, nothing when empty). Returns None when the section text or a
    section for ``version`` is already present.
    """
    section = section.strip("\n")
    if not existing or not existing.strip():
        top = (DEFAULT_HEADER if header is None else header).strip("\n")
        return f"{top}\n\n{section}\n" if top else f"{section}\n"

    if section in existing:
        return None
    if re.search(rf"^## \[?v?{re.escape(str(version))}\]?(\s|$)", existing, re.MULTILINE):
        return None

    m = re.search(r"^## ", existing, re.MULTILINE)
    if m is None:
        return f"{existing.rstrip()}\n\n{section}\n"
    head = existing[: m.start()].rstrip("\n")
    tail = existing[m.start() :]
    prefix = f"{head}\n\n" if head else ""
    return f"{prefix}{section}\n\n{tail}"


def write_changelog_file(
    path: Path, text: str, version: SemVer, header: str | None = None
) -> Result[bool, ReleaseError]:
    """Prepend ``text`` to the changelog at ``path``; False if already there."""
    try:
        existing = path.read_text(encoding="utf-8") if path.exists() else None
    except OSError as e:
        return Err(ReleaseError(kind="io_failed", message=f"failed to read {path}: {e}"))
    updated = prepend_section(existing, text, version, header)
    if updated is None:
        return Ok(False)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(updated, encoding="utf-8")
    except OSError as e:
        return Err(ReleaseError(kind="io_failed", message=f"failed to write {path}: {e}"))
    return Ok(True)
