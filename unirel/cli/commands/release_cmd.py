"""release-pr, release, publish and update commands."""

from __future__ import annotations

import typer

from unirel.cli.commands.common import finish
from unirel.cli.context import (
    build_context,
    build_gateway,
    options_from,
    reconcile_context,
    require_clean,
)
from unirel.output.console import Style
from unirel.services.release import reconciler


def release_pr(ctx: typer.Context) -> None:
    """Open or refresh the release pull request."""
    cli = build_context(options_from(ctx))
    require_clean(cli)
    cli.console.header("release-pr")
    gateway = build_gateway(cli)
    rctx = reconcile_context(cli, gateway=gateway, with_publisher=True)
    finish(reconciler.reconcile_release_pr(rctx), cli.console)


def release(ctx: typer.Context) -> None:
    """Tag and release the merged version (gated on a merged release PR)."""
    cli = build_context(options_from(ctx))
    cli.console.header("release")
    gateway = build_gateway(cli)
    rctx = reconcile_context(cli, gateway=gateway)
    finish(reconciler.reconcile_release(rctx), cli.console)


def publish(ctx: typer.Context) -> None:
    """Tag and release the current version unconditionally."""
    cli = build_context(options_from(ctx))
    cli.console.header("publish")
    gateway = build_gateway(cli)
    rctx = reconcile_context(cli, gateway=gateway)
    finish(reconciler.publish(rctx), cli.console)


def update(
    ctx: typer.Context,
    write: bool = typer.Option(
        False, "--write", help="Write versions and changelog to the working tree"
    ),
) -> None:
    """Show the next version and changelog (no forge calls)."""
    cli = build_context(options_from(ctx))
    if write:
        require_clean(cli)
    cli.console.header("update")
    rctx = reconcile_context(cli, gateway=None)
    outcome = finish(reconciler.update(rctx, write=write), cli.console)

    plan = outcome.plan
    if plan is None:
        return
    cli.console.print(f"{plan.previous_version} -> {plan.version} ({plan.tag_name})", Style.BOLD)
    for name, version in plan.package_versions.items():
        cli.console.print(f"  {name}: {version}")
    if plan.changelog_text:
        cli.console.newline()
        cli.console.print(plan.changelog_text)
