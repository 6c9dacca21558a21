from __future__ import annotations

from typing import NoReturn

import typer

from unirel.core.errors import ErrorCode
from unirel.core.result import Err, Result
from unirel.output.console import ConsoleProtocol, Style
from unirel.services.release.errors import ReleaseError
from unirel.services.release.reconciler import ReconcileOutcome, ReconcileState


def exit_release(err: str, *, code: ErrorCode, hint: str | None = None) -> NoReturn:
    typer.echo(f"error: {err}", err=True)
    if hint:
        typer.echo(f"hint: {hint}", err=True)
    raise typer.Exit(code=int(code))


def release_error_code(kind: str) -> ErrorCode:
    if kind in {"invalid_config", "invalid_manifest"}:
        return ErrorCode.CONFIG_ERROR
    if kind in {"git_failed", "auth_failed"}:
        return ErrorCode.ENV_ERROR
    if kind in {"network_failed", "run_failed"}:
        return ErrorCode.NETWORK_ERROR
    if kind == "io_failed":
        return ErrorCode.IO_ERROR
    if kind == "conflict":
        return ErrorCode.CONFLICT
    return ErrorCode.USER_ERROR


def finish(
    result: Result[ReconcileOutcome, ReleaseError], console: ConsoleProtocol
) -> ReconcileOutcome:
    """Report the outcome, or exit with the failing step and its hint."""
    if isinstance(result, Err):
        error = result.error
        exit_release(str(error), code=release_error_code(error.kind), hint=error.hint)

    outcome = result.value
    console.print("states: " + " -> ".join(outcome.states), Style.DIM)
    if outcome.state == ReconcileState.NO_PLAN:
        console.info(outcome.message or "nothing to release")
    elif outcome.message:
        console.print(outcome.message, Style.DIM)
    if outcome.changed:
        console.print(f"{len(outcome.mutations)} forge write(s)", Style.DIM)
    else:
        console.print("no changes made", Style.DIM)
    return outcome
