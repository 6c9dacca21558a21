"""Typed configuration loading and access.

This module turns ``unirel.toml`` into immutable dataclasses, resolved once
before any release work starts:

    [workspace]          # package defaults + workspace-only settings
    [changelog]          # grouping, filtering and ordering of entries
    [changelog.groups]   # commit type -> display group
    [[package]]          # per-package overrides (name is required)

Values of the wrong type, unknown keys and invalid regular expressions are
reported as ConfigError before a release plan is built.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_list, get_table

__all__ = [
    "BumpPolicy",
    "ChangelogConfig",
    "ClassificationConfig",
    "Config",
    "ConfigError",
    "PackageConfig",
    "PrSettings",
    "ReleaseSettings",
    "WorkspaceSettings",
    "CONFIG_FILE_NAME",
    "PACKAGE_KEYS",
    "WORKSPACE_ONLY_KEYS",
    "find_config",
    "load_config",
    "load_config_or_default",
]

CONFIG_FILE_NAME = "unirel.toml"

DEFAULT_TAG_TEMPLATE = "v{{ version }}"
DEFAULT_PR_TITLE_TEMPLATE = "chore: release v{{ version }}"
DEFAULT_BRANCH_PREFIX = "unirel-"
DEFAULT_MAX_ANALYZE_COMMITS = 1000
DEFAULT_CHANGELOG_PATH = "CHANGELOG.md"

SortOrder = Literal["newest", "oldest"]
GitReleaseType = Literal["prod", "pre", "auto"]

# Keys that may be set in [workspace] as defaults and overridden per package.
PACKAGE_KEYS = frozenset(
    {
        "features_always_increment_minor",
        "breaking_always_increment_major",
        "git_release_enable",
        "git_release_body",
        "git_release_type",
        "git_release_draft",
        "git_release_latest",
        "git_release_name",
        "git_tag_enable",
        "git_tag_name",
    }
)

# Keys that only make sense once per repository.
WORKSPACE_ONLY_KEYS = frozenset(
    {
        "repo_url",
        "changelog_path",
        "changelog_update",
        "allow_dirty",
        "max_analyze_commits",
        "release_always",
        "release_commits",
        "skip_release_patterns",
        "custom_types",
        "custom_major_increment_regex",
        "custom_minor_increment_regex",
        "pr_name",
        "pr_body",
        "pr_draft",
        "pr_labels",
        "pr_branch_prefix",
    }
)

_CHANGELOG_KEYS = frozenset(
    {
        "header",
        "body",
        "trim",
        "protect_breaking_commits",
        "sort_commits",
        "group_order",
        "groups",
        "exclude_types",
        "exclude_groups",
        "exclude_patterns",
        "include_other",
    }
)


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None

    def __str__(self) -> str:
        if self.path is not None:
            return f"{self.message} ({self.path})"
        return self.message


@dataclass(frozen=True, slots=True)
class ClassificationConfig:
    """How raw commit messages become classified commits.

    Attributes:
        custom_types: Extra conventional types recognized as ``custom``.
        groups: Commit type -> changelog group name.
        release_commits: Regex a commit message must match to be bump-eligible.
        skip_release_patterns: Substrings that make a commit non-bump-eligible.
    """

    custom_types: tuple[str, ...] = ()
    groups: Mapping[str, str] = field(default_factory=dict[str, str])
    release_commits: str | None = None
    skip_release_patterns: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class BumpPolicy:
    """Version bump policy knobs."""

    features_always_increment_minor: bool = False
    breaking_always_increment_major: bool = False
    custom_major_increment_regex: str | None = None
    custom_minor_increment_regex: str | None = None


@dataclass(frozen=True, slots=True)
class ChangelogConfig:
    """Changelog grouping, filtering and ordering."""

    header: str | None = None
    body: str | None = None
    trim: bool = True
    protect_breaking_commits: bool = False
    sort_commits: SortOrder = "newest"
    group_order: tuple[str, ...] = ()
    exclude_types: tuple[str, ...] = ()
    exclude_groups: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = ()
    include_other: bool = True


@dataclass(frozen=True, slots=True)
class PrSettings:
    """Release pull request settings."""

    title_template: str = DEFAULT_PR_TITLE_TEMPLATE
    body_template: str | None = None
    draft: bool = False
    labels: tuple[str, ...] = ()
    branch_prefix: str = DEFAULT_BRANCH_PREFIX

    @property
    def branch_name(self) -> str:
        return f"{self.branch_prefix}release"


@dataclass(frozen=True, slots=True)
class ReleaseSettings:
    """Tag and forge release settings."""

    release_always: bool = True
    git_tag_enable: bool = True
    git_tag_name: str = DEFAULT_TAG_TEMPLATE
    git_release_enable: bool = True
    git_release_body: str | None = None
    git_release_type: GitReleaseType = "prod"
    git_release_draft: bool = False
    git_release_latest: bool | None = None
    git_release_name: str | None = None


@dataclass(frozen=True, slots=True)
class WorkspaceSettings:
    """Repository-wide settings that have no per-package meaning."""

    repo_url: str | None = None
    allow_dirty: bool = False
    max_analyze_commits: int = DEFAULT_MAX_ANALYZE_COMMITS
    changelog_path: str = DEFAULT_CHANGELOG_PATH
    changelog_update: bool = True


@dataclass(frozen=True, slots=True)
class PackageConfig:
    """Explicit overrides for one workspace member.

    Only keys present in the file are set; everything else inherits the
    [workspace] defaults.
    """

    name: str
    overrides: Mapping[str, object] = field(default_factory=dict[str, object])

    def get(self, key: str) -> object | None:
        return self.overrides.get(key)


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    workspace: WorkspaceSettings = field(default_factory=WorkspaceSettings)
    classification: ClassificationConfig = field(default_factory=ClassificationConfig)
    bump: BumpPolicy = field(default_factory=BumpPolicy)
    changelog: ChangelogConfig = field(default_factory=ChangelogConfig)
    pr: PrSettings = field(default_factory=PrSettings)
    release: ReleaseSettings = field(default_factory=ReleaseSettings)
    packages: tuple[PackageConfig, ...] = ()
    workspace_table: Mapping[str, object] = field(default_factory=dict[str, object])
    source: Path | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, source: Path | None = None) -> Config:
        """Create Config from a mapping (parsed TOML).

        Raises:
            ValueError: On unknown keys, wrong value types or invalid regexes.
        """
        _reject_unknown(data, {"workspace", "changelog", "package"}, "top level")
        ws: StrDict = _table(data, "workspace")
        cl: StrDict = _table(data, "changelog")
        _reject_unknown(ws, PACKAGE_KEYS | WORKSPACE_ONLY_KEYS, "[workspace]")
        _reject_unknown(cl, _CHANGELOG_KEYS, "[changelog]")

        release_commits = _opt_regex(ws, "release_commits", "[workspace]")
        major_re = _opt_regex(ws, "custom_major_increment_regex", "[workspace]")
        minor_re = _opt_regex(ws, "custom_minor_increment_regex", "[workspace]")

        max_commits = _opt_int(ws, "max_analyze_commits", "[workspace]")
        if max_commits is not None and max_commits < 1:
            raise ValueError("[workspace].max_analyze_commits must be >= 1")

        return cls(
            workspace=WorkspaceSettings(
                repo_url=_opt_str(ws, "repo_url", "[workspace]"),
                allow_dirty=_bool(ws, "allow_dirty", "[workspace]", False),
                max_analyze_commits=max_commits or DEFAULT_MAX_ANALYZE_COMMITS,
                changelog_path=_opt_str(ws, "changelog_path", "[workspace]")
                or DEFAULT_CHANGELOG_PATH,
                changelog_update=_bool(ws, "changelog_update", "[workspace]", True),
            ),
            classification=ClassificationConfig(
                custom_types=_str_tuple(ws, "custom_types", "[workspace]"),
                groups=_str_map(cl, "groups", "[changelog]"),
                release_commits=release_commits,
                skip_release_patterns=_str_tuple(ws, "skip_release_patterns", "[workspace]"),
            ),
            bump=BumpPolicy(
                features_always_increment_minor=_bool(
                    ws, "features_always_increment_minor", "[workspace]", False
                ),
                breaking_always_increment_major=_bool(
                    ws, "breaking_always_increment_major", "[workspace]", False
                ),
                custom_major_increment_regex=major_re,
                custom_minor_increment_regex=minor_re,
            ),
            changelog=_changelog_from(cl),
            pr=PrSettings(
                title_template=_opt_raw_str(ws, "pr_name", "[workspace]")
                or DEFAULT_PR_TITLE_TEMPLATE,
                body_template=_opt_raw_str(ws, "pr_body", "[workspace]"),
                draft=_bool(ws, "pr_draft", "[workspace]", False),
                labels=_str_tuple(ws, "pr_labels", "[workspace]"),
                branch_prefix=_opt_str(ws, "pr_branch_prefix", "[workspace]")
                or DEFAULT_BRANCH_PREFIX,
            ),
            release=_release_from(ws, "[workspace]", ReleaseSettings()),
            packages=_packages_from(data),
            workspace_table=dict(ws),
            source=source,
        )

    def package(self, name: str) -> PackageConfig | None:
        for pkg in self.packages:
            if pkg.name == name:
                return pkg
        return None

    def bump_policy_for(self, name: str) -> BumpPolicy:
        """Workspace bump policy with the package's overrides applied."""
        pkg = self.package(name)
        if pkg is None:
            return self.bump
        feats = pkg.get("features_always_increment_minor")
        breaking = pkg.get("breaking_always_increment_major")
        return BumpPolicy(
            features_always_increment_minor=(
                feats if isinstance(feats, bool) else self.bump.features_always_increment_minor
            ),
            breaking_always_increment_major=(
                breaking
                if isinstance(breaking, bool)
                else self.bump.breaking_always_increment_major
            ),
            custom_major_increment_regex=self.bump.custom_major_increment_regex,
            custom_minor_increment_regex=self.bump.custom_minor_increment_regex,
        )

    def workspace_defaults(self) -> dict[str, object]:
        """Package-default keys explicitly set in [workspace]."""
        return {k: v for k, v in self.workspace_table.items() if k in PACKAGE_KEYS}

    def workspace_only(self) -> dict[str, object]:
        """Workspace-only keys explicitly set in [workspace]."""
        return {k: v for k, v in self.workspace_table.items() if k in WORKSPACE_ONLY_KEYS}


def _reject_unknown(
    table: Mapping[str, object], allowed: frozenset[str] | set[str], where: str
) -> None:
    unknown = sorted(k for k in table if k not in allowed)
    if unknown:
        raise ValueError(f"unknown key(s) in {where}: {', '.join(unknown)}")


def _table(data: Mapping[str, object], key: str) -> StrDict:
    if key not in data:
        return {}
    table = get_table(data, key)
    if table is None:
        raise ValueError(f"[{key}] must be a table")
    return table


def _opt_str(table: Mapping[str, object], key: str, where: str) -> str | None:
    value = _opt_raw_str(table, key, where)
    if value is None:
        return None
    return value.strip() or None


def _opt_raw_str(table: Mapping[str, object], key: str, where: str) -> str | None:
    value = table.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{where}.{key} must be a string")
    return value


def _opt_int(table: Mapping[str, object], key: str, where: str) -> int | None:
    value = table.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{where}.{key} must be an integer")
    return value


def _opt_bool(table: Mapping[str, object], key: str, where: str) -> bool | None:
    value = table.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValueError(f"{where}.{key} must be true or false")
    return value


def _bool(table: Mapping[str, object], key: str, where: str, default: bool) -> bool:
    value = _opt_bool(table, key, where)
    return default if value is None else value


def _str_tuple(table: Mapping[str, object], key: str, where: str) -> tuple[str, ...]:
    if key not in table:
        return ()
    items = get_list(table, key)
    if items is None or not all(isinstance(i, str) for i in items):
        raise ValueError(f"{where}.{key} must be a list of strings")
    return tuple(str(i) for i in items)


def _str_map(table: Mapping[str, object], key: str, where: str) -> dict[str, str]:
    if key not in table:
        return {}
    sub = get_table(table, key)
    if sub is None:
        raise ValueError(f"{where}.{key} must be a table")
    out: dict[str, str] = {}
    for k, v in sub.items():
        if not isinstance(v, str):
            raise ValueError(f"{where}.{key}.{k} must be a string")
        out[k] = v
    return out


def _opt_regex(table: Mapping[str, object], key: str, where: str) -> str | None:
    pattern = _opt_raw_str(table, key, where)
    if pattern is None:
        return None
    try:
        re.compile(pattern)
    except re.error as e:
        raise ValueError(f"{where}.{key} is not a valid regex: {e}") from e
    return pattern


def _changelog_from(cl: StrDict) -> ChangelogConfig:
    where = "[changelog]"
    sort = _opt_str(cl, "sort_commits", where) or "newest"
    if sort not in ("newest", "oldest"):
        raise ValueError(f"{where}.sort_commits must be 'newest' or 'oldest', got {sort!r}")
    patterns = _str_tuple(cl, "exclude_patterns", where)
    for pattern in patterns:
        try:
            re.compile(pattern)
        except re.error as e:
            raise ValueError(f"{where}.exclude_patterns has an invalid regex: {e}") from e
    return ChangelogConfig(
        header=_opt_raw_str(cl, "header", where),
        body=_opt_raw_str(cl, "body", where),
        trim=_bool(cl, "trim", where, True),
        protect_breaking_commits=_bool(cl, "protect_breaking_commits", where, False),
        sort_commits="oldest" if sort == "oldest" else "newest",
        group_order=_str_tuple(cl, "group_order", where),
        exclude_types=_str_tuple(cl, "exclude_types", where),
        exclude_groups=_str_tuple(cl, "exclude_groups", where),
        exclude_patterns=patterns,
        include_other=_bool(cl, "include_other", where, True),
    )


def _release_type(
    table: Mapping[str, object], where: str, default: GitReleaseType
) -> GitReleaseType:
    value = _opt_str(table, "git_release_type", where)
    match value:
        case None:
            return default
        case "prod" | "pre" | "auto":
            return value
        case _:
            raise ValueError(f"{where}.git_release_type must be prod, pre or auto, got {value!r}")


def _release_from(table: StrDict, where: str, base: ReleaseSettings) -> ReleaseSettings:
    tag_name = _opt_raw_str(table, "git_tag_name", where)
    if tag_name is not None and not tag_name.strip():
        raise ValueError(f"{where}.git_tag_name must not be empty")
    latest = _opt_bool(table, "git_release_latest", where)
    return ReleaseSettings(
        release_always=_bool(table, "release_always", where, base.release_always),
        git_tag_enable=_bool(table, "git_tag_enable", where, base.git_tag_enable),
        git_tag_name=tag_name or base.git_tag_name,
        git_release_enable=_bool(table, "git_release_enable", where, base.git_release_enable),
        git_release_body=_opt_raw_str(table, "git_release_body", where) or base.git_release_body,
        git_release_type=_release_type(table, where, base.git_release_type),
        git_release_draft=_bool(table, "git_release_draft", where, base.git_release_draft),
        git_release_latest=latest if latest is not None else base.git_release_latest,
        git_release_name=_opt_raw_str(table, "git_release_name", where) or base.git_release_name,
    )


def _packages_from(data: Mapping[str, object]) -> tuple[PackageConfig, ...]:
    if "package" not in data:
        return ()
    items = get_list(data, "package")
    if items is None:
        raise ValueError("[[package]] must be an array of tables")

    packages: list[PackageConfig] = []
    seen: set[str] = set()
    for index, item in enumerate(items):
        table = as_str_dict(item)
        if table is None:
            raise ValueError(f"[[package]] entry {index} must be a table")
        name = _opt_str(table, "name", f"[[package]] #{index}")
        if name is None:
            raise ValueError(f"[[package]] entry {index} is missing 'name'")
        if name in seen:
            raise ValueError(f"[[package]] '{name}' is declared twice")
        seen.add(name)
        where = f"[[package]] '{name}'"
        _reject_unknown(table, PACKAGE_KEYS | {"name"}, where)
        # Validates the value types of every override.
        _release_from(table, where, ReleaseSettings())
        _opt_bool(table, "features_always_increment_minor", where)
        _opt_bool(table, "breaking_always_increment_major", where)
        overrides = {k: v for k, v in table.items() if k != "name"}
        packages.append(PackageConfig(name=name, overrides=overrides))
    return tuple(packages)


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling import and parse errors."""
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def find_config(repo_root: Path) -> Path | None:
    """Return the repository's unirel.toml, if present."""
    candidate = repo_root / CONFIG_FILE_NAME
    return candidate if candidate.is_file() else None


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and parse configuration from a TOML file.

    Args:
        path: Path to unirel.toml

    Returns:
        Ok(Config) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        config = Config.from_dict(result.value, source=path)
        return Ok(config)
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config: {e}", path=path))


def load_config_or_default(
    repo_root: Path, explicit: Path | None = None
) -> Result[Config, ConfigError]:
    """Load an explicit or discovered config; defaults when none exists.

    An explicit path that cannot be read is an error, a missing
    ``unirel.toml`` at the repository root is not.
    """
    if explicit is not None:
        return load_config(explicit)
    found = find_config(repo_root)
    if found is None:
        return Ok(Config())
    return load_config(found)
