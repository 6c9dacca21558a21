"""Import and subprocess policies for the unirel package."""

from __future__ import annotations

import ast
from pathlib import Path


def _package_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _source_files() -> list[Path]:
    root = _package_root()
    files: list[Path] = []
    for path in sorted(root.rglob("*.py")):
        rel = path.relative_to(root)
        if rel.parts[0] == "test" or "__pycache__" in rel.parts:
            continue
        files.append(path)
    return files


def _imports(path: Path) -> list[tuple[str, int]]:
    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    found: list[tuple[str, int]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            found.extend((alias.name, node.lineno) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
            found.append((node.module, node.lineno))
    return found


def _matches(module: str, prefix: str) -> bool:
    return module == prefix or module.startswith(prefix + ".")


def test_rich_is_only_imported_by_the_console() -> None:
    root = _package_root()
    offenders = [
        f"{path.relative_to(root)}:{line}: {module}"
        for path in _source_files()
        for module, line in _imports(path)
        if _matches(module, "rich") and path.relative_to(root).as_posix() != "output/console.py"
    ]
    assert not offenders, "direct rich imports:\n" + "\n".join(offenders)


def test_subprocess_is_only_used_by_platform_process() -> None:
    root = _package_root()
    offenders = [
        f"{path.relative_to(root)}:{line}"
        for path in _source_files()
        for module, line in _imports(path)
        if module == "subprocess"
        and path.relative_to(root).as_posix() != "platform/process.py"
    ]
    assert not offenders, "direct subprocess imports:\n" + "\n".join(offenders)


def test_release_services_do_not_import_the_cli() -> None:
    root = _package_root()
    offenders = [
        f"{path.relative_to(root)}:{line}: {module}"
        for path in _source_files()
        if path.relative_to(root).parts[0] in {"core", "services", "forge", "git"}
        for module, line in _imports(path)
        if _matches(module, "unirel.cli") or _matches(module, "typer")
    ]
    assert not offenders, "layering violations:\n" + "\n".join(offenders)
