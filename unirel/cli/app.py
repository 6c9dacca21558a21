from __future__ import annotations

from enum import StrEnum
from pathlib import Path

import typer

from unirel import __version__
from unirel.cli.commands.config_cmd import config_app
from unirel.cli.commands.release_cmd import publish, release, release_pr, update
from unirel.cli.context import GlobalOptions
from unirel.forge.remote import ForgeKind


class Forge(StrEnum):
    github = "github"
    gitea = "gitea"
    gitlab = "gitlab"


_FORGE_KINDS: dict[Forge, ForgeKind] = {
    Forge.github: "github",
    Forge.gitea: "gitea",
    Forge.gitlab: "gitlab",
}


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command("release-pr")(release_pr)
app.command()(release)
app.command()(publish)
app.command()(update)

# Sub-apps
app.add_typer(config_app, name="config")


def _show_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", callback=_show_version, is_eager=True, help="Show version and exit."
    ),
    repo_path: Path = typer.Option(Path("."), "--repo-path", help="Repository root"),
    config: Path | None = typer.Option(
        None, "--config", help="Config file (default: <repo>/unirel.toml)", show_default=False
    ),
    forge: Forge | None = typer.Option(
        None, "--forge", help="Forge type (detected from the remote host)", show_default=False
    ),
    token: str | None = typer.Option(
        None,
        "--token",
        envvar="UNIREL_TOKEN",
        help="Forge API token (or GITHUB_TOKEN / GITEA_TOKEN / GITLAB_TOKEN)",
        show_default=False,
    ),
    repo_url: str | None = typer.Option(
        None, "--repo-url", help="Repository URL (default: origin remote)", show_default=False
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Read only; print planned writes"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Trace git and forge calls"),
) -> None:
    ctx.obj = GlobalOptions(
        repo_path=repo_path,
        config_path=config,
        forge=_FORGE_KINDS[forge] if forge is not None else None,
        token=token,
        repo_url=repo_url,
        dry_run=dry_run,
        verbose=verbose,
    )


def main() -> None:
    app()
