from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import typer

from unirel.core.config import Config, load_config_or_default
from unirel.core.errors import ErrorCode
from unirel.core.result import Err
from unirel.forge.gateway import HostGateway
from unirel.forge.remote import ForgeKind, make_gateway
from unirel.git.repository import Repository
from unirel.output.console import ConsoleProtocol, RichConsole
from unirel.services.release.branch import GitBranchPublisher
from unirel.services.release.manifest import MANIFEST_NAME, WorkspaceManifest, discover_workspace
from unirel.services.release.reconciler import ReconcileContext

TOKEN_ENV_VARS: dict[ForgeKind, str] = {
    "github": "GITHUB_TOKEN",
    "gitea": "GITEA_TOKEN",
    "gitlab": "GITLAB_TOKEN",
}


@dataclass(frozen=True, slots=True)
class GlobalOptions:
    """Options given before the command name."""

    repo_path: Path = Path(".")
    config_path: Path | None = None
    forge: ForgeKind | None = None
    token: str | None = None
    repo_url: str | None = None
    dry_run: bool = False
    verbose: bool = False


@dataclass(frozen=True, slots=True)
class CLIContext:
    options: GlobalOptions
    config: Config
    repo: Repository
    workspace: WorkspaceManifest
    console: ConsoleProtocol


def options_from(ctx: typer.Context) -> GlobalOptions:
    obj = ctx.find_root().obj
    return obj if isinstance(obj, GlobalOptions) else GlobalOptions()


def _exit(message: str, code: ErrorCode, hint: str | None = None) -> typer.Exit:
    typer.echo(f"error: {message}", err=True)
    if hint:
        typer.echo(f"hint: {hint}", err=True)
    return typer.Exit(code=int(code))


def build_context(options: GlobalOptions, *, manifest_path: Path | None = None) -> CLIContext:
    """Load config and workspace members; exits on failure."""
    try:
        root = options.repo_path.expanduser().resolve()
    except OSError as e:
        raise _exit(f"invalid --repo-path: {e}", ErrorCode.USER_ERROR)
    if not root.is_dir():
        raise _exit(f"--repo-path '{root}' is not a directory", ErrorCode.USER_ERROR)

    config = load_config_or_default(root, options.config_path)
    if isinstance(config, Err):
        raise _exit(str(config.error), ErrorCode.CONFIG_ERROR)

    manifest_root = root
    if manifest_path is not None:
        manifest = manifest_path if manifest_path.is_absolute() else root / manifest_path
        manifest_root = manifest.parent if manifest.name == MANIFEST_NAME else manifest

    workspace = discover_workspace(manifest_root)
    if isinstance(workspace, Err):
        raise _exit(workspace.error.message, ErrorCode.CONFIG_ERROR, workspace.error.hint)

    return CLIContext(
        options=options,
        config=config.value,
        repo=Repository(root),
        workspace=workspace.value,
        console=RichConsole(verbose=options.verbose),
    )


def resolve_token(explicit: str | None, forge: ForgeKind | None) -> str:
    """``--token``, then UNIREL_TOKEN, then the forge's own variable."""
    if explicit:
        return explicit
    token = os.environ.get("UNIREL_TOKEN")
    if token:
        return token
    names = [TOKEN_ENV_VARS[forge]] if forge is not None else list(TOKEN_ENV_VARS.values())
    for name in names:
        token = os.environ.get(name)
        if token:
            return token
    return ""


def resolve_repo_url(cli: CLIContext) -> str:
    url = cli.options.repo_url or cli.config.workspace.repo_url
    if url:
        return url
    remote = cli.repo.remote_url()
    if isinstance(remote, Err):
        raise _exit(
            "cannot find the repository URL",
            ErrorCode.USER_ERROR,
            "Pass --repo-url or set workspace.repo_url in unirel.toml.",
        )
    return remote.value


def build_gateway(cli: CLIContext) -> HostGateway:
    url = resolve_repo_url(cli)
    forge = cli.options.forge
    token = resolve_token(cli.options.token, forge)
    if not token:
        cli.console.warning("no forge token found; only public reads will work")
    gateway = make_gateway(forge, url, token, cli.console)
    if isinstance(gateway, Err):
        raise _exit(gateway.error, ErrorCode.USER_ERROR)
    return gateway.value


def reconcile_context(
    cli: CLIContext, *, gateway: HostGateway | None, with_publisher: bool = False
) -> ReconcileContext:
    publisher = None
    if with_publisher and not cli.options.dry_run:
        changelog = (
            cli.config.workspace.changelog_path if cli.config.workspace.changelog_update else None
        )
        publisher = GitBranchPublisher(
            cli.repo,
            cli.workspace,
            changelog_path=changelog,
            changelog_header=cli.config.changelog.header,
        )
    return ReconcileContext(
        config=cli.config,
        repo=cli.repo,
        workspace=cli.workspace,
        console=cli.console,
        gateway=gateway,
        publisher=publisher,
        dry_run=cli.options.dry_run,
    )


def require_clean(cli: CLIContext) -> None:
    if cli.config.workspace.allow_dirty or cli.repo.is_clean():
        return
    raise _exit(
        "the working tree has uncommitted changes",
        ErrorCode.USER_ERROR,
        "Commit or stash them, or set workspace.allow_dirty = true.",
    )
