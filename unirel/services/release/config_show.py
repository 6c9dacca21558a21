"""Effective configuration report for ``unirel config show``."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from unirel.core.config import (
    DEFAULT_MAX_ANALYZE_COMMITS,
    PACKAGE_KEYS,
    WORKSPACE_ONLY_KEYS,
    Config,
)
from unirel.services.release.manifest import WorkspaceManifest


@dataclass(frozen=True, slots=True)
class PackageDisplay:
    name: str
    path: str
    version: str
    explicit_overrides: dict[str, object]


@dataclass(frozen=True, slots=True)
class ConfigDisplay:
    config_source: str
    workspace_defaults: dict[str, object]
    workspace_settings: dict[str, object]
    packages: tuple[PackageDisplay, ...]

    def to_dict(self) -> dict[str, object]:
        return {
            "config_source": self.config_source,
            "workspace_defaults": self.workspace_defaults,
            "workspace_settings": self.workspace_settings,
            "packages": [
                {
                    "name": p.name,
                    "path": p.path,
                    "version": p.version,
                    "explicit_overrides": p.explicit_overrides,
                }
                for p in self.packages
            ],
        }


def build_display(
    config: Config,
    workspace: WorkspaceManifest,
    *,
    package: str | None = None,
) -> ConfigDisplay:
    """Collect explicitly set values; ``package`` filters the member list."""
    source = str(config.source) if config.source is not None else "defaults (no unirel.toml)"
    defaults = {
        k: config.workspace_table[k] for k in sorted(PACKAGE_KEYS) if k in config.workspace_table
    }
    settings = {
        k: config.workspace_table[k]
        for k in sorted(WORKSPACE_ONLY_KEYS)
        if k in config.workspace_table
    }
    # The default commit window is noise.
    if settings.get("max_analyze_commits") == DEFAULT_MAX_ANALYZE_COMMITS:
        del settings["max_analyze_commits"]

    packages: list[PackageDisplay] = []
    for member in workspace.members:
        if package is not None and member.name != package:
            continue
        pkg = config.package(member.name)
        overrides = dict(sorted(pkg.overrides.items())) if pkg is not None else {}
        packages.append(
            PackageDisplay(
                name=member.name,
                path=_relative(member.path, workspace.root),
                version=str(member.version),
                explicit_overrides=overrides,
            )
        )
    return ConfigDisplay(
        config_source=source,
        workspace_defaults=defaults,
        workspace_settings=settings,
        packages=tuple(packages),
    )


def render_text(display: ConfigDisplay) -> str:
    lines = [f"Configuration source: {display.config_source}", ""]

    lines.append("=== Workspace Defaults ===")
    lines.append("(These apply to all packages unless overridden)")
    lines.append("")
    lines.extend(_fields(display.workspace_defaults, "(No explicit workspace defaults set)"))
    lines.append("")

    lines.append("=== Workspace-Specific Settings ===")
    lines.append("(These don't apply to individual packages)")
    lines.append("")
    lines.extend(_fields(display.workspace_settings, "(No workspace-specific settings set)"))
    lines.append("")

    lines.append("=== Package Configurations ===")
    lines.append("(Only showing packages with explicit overrides)")
    lines.append("")
    with_overrides = [p for p in display.packages if p.explicit_overrides]
    if not with_overrides:
        lines.append("  No packages have explicit overrides")
        lines.append("  All packages use workspace defaults")
        lines.append("")
    for p in with_overrides:
        lines.append(f"Package: {p.name} ({p.path})")
        lines.append("  Explicit overrides:")
        lines.extend(f"    {k}: {_value(v)}" for k, v in p.explicit_overrides.items())
        lines.append("")
    return "\n".join(lines)


def render_json(display: ConfigDisplay) -> str:
    return json.dumps(display.to_dict(), indent=2)


def _fields(values: dict[str, object], empty: str) -> list[str]:
    if not values:
        return [f"  {empty}"]
    return [f"  {k}: {_value(v)}" for k, v in values.items()]


def _value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value))
    return str(value)


def _relative(path: Path, root: Path) -> str:
    try:
        rel = path.resolve().relative_to(root.resolve())
    except ValueError:
        return str(path)
    return rel.as_posix() or "."
