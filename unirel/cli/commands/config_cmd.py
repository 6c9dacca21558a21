from __future__ import annotations

from enum import StrEnum
from pathlib import Path

import typer

from unirel.cli.commands.common import exit_release
from unirel.cli.context import build_context, options_from
from unirel.core.errors import ErrorCode
from unirel.services.release.config_show import build_display, render_json, render_text


class OutputFormat(StrEnum):
    text = "text"
    json = "json"


config_app = typer.Typer(add_completion=False, no_args_is_help=True)


@config_app.command("show")
def show(
    ctx: typer.Context,
    manifest_path: Path | None = typer.Option(
        None, "--manifest-path", help="pyproject.toml of the workspace root"
    ),
    package: str | None = typer.Option(None, "--package", help="Only show this package"),
    output: OutputFormat = typer.Option(OutputFormat.text, "--output", "-o", help="text or json"),
) -> None:
    """Show the effective configuration."""
    cli = build_context(options_from(ctx), manifest_path=manifest_path)
    if package is not None and cli.workspace.member(package) is None:
        exit_release(f"unknown package: {package}", code=ErrorCode.USER_ERROR)

    display = build_display(cli.config, cli.workspace, package=package)
    if output == OutputFormat.json:
        typer.echo(render_json(display))
    else:
        typer.echo(render_text(display))
