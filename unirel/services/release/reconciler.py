"""Release reconciliation.

Every entry point builds the desired state fresh, reads what the forge
already has and only then writes the difference:

- ``reconcile_release_pr``: keep exactly one open release PR whose content
  matches the current plan.
- ``reconcile_release``: make sure the manifest version has a tag and a
  forge release.
- ``publish``: ``reconcile_release`` without the merged-release-PR gate.
- ``update``: compute the plan locally and optionally write it to disk.

Runs are idempotent: a second run against an unchanged repository makes no
mutating gateway calls. A failing step aborts the run; steps already done
stay done and the next run picks up from there.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import StrEnum
from pathlib import Path
from typing import Protocol

from unirel.core.config import Config
from unirel.core.result import Err, Ok, Result
from unirel.forge.gateway import GatewayError, HostGateway, PrRequest, ReleaseRequest
from unirel.git.repository import GitError
from unirel.output.console import ConsoleProtocol, Style
from unirel.services.release.branch import BranchPublisher
from unirel.services.release.changelog import assemble, render_changelog
from unirel.services.release.commits import classify
from unirel.services.release.errors import ReleaseError, ReleaseErrorKind
from unirel.services.release.fingerprint import embed, fingerprint
from unirel.services.release.manifest import (
    WorkspaceManifest,
    write_changelog_file,
    write_versions,
)
from unirel.services.release.model import (
    Commit,
    ReleasePlan,
    ReleaseRecord,
    RemotePrState,
    TagRecord,
    VersionDecision,
)
from unirel.services.release.planner import (
    DEFAULT_PR_BODY_TEMPLATE,
    PlanTemplates,
    TagHistory,
    build,
    compute_history,
    plan_variables,
    release_day,
    tag_name_for,
)
from unirel.services.release.templates import render
from unirel.services.release.versioning import compute_next

DEFAULT_BASE_BRANCH = "main"


class ReconcileState(StrEnum):
    NO_PLAN = "NoPlan"
    PLAN_READY = "PlanReady"
    PR_ABSENT = "PrAbsent"
    PR_STALE_NEEDS_UPDATE = "PrStaleNeedsUpdate"
    PR_UP_TO_DATE = "PrUpToDate"
    TAG_ABSENT = "TagAbsent"
    TAG_CREATED = "TagCreated"
    RELEASE_ABSENT = "ReleaseAbsent"
    RELEASE_CREATED = "ReleaseCreated"
    DONE = "Done"


class GitReader(Protocol):
    """The local repository reads a run needs."""

    def tags(self) -> Result[list[str], GitError]: ...

    def fetch_tags(self, remote: str = "origin") -> Result[None, GitError]: ...

    def head_sha(self) -> Result[str, GitError]: ...

    def list_commits_since(
        self,
        ref: str | None,
        *,
        head: str = "HEAD",
        limit: int | None = None,
    ) -> Result[list[Commit], GitError]: ...

    def default_branch(self, remote: str = "origin") -> str | None: ...

    def current_branch(self) -> str | None: ...


@dataclass(frozen=True, slots=True)
class ReconcileContext:
    """Collaborators for one invocation.

    ``gateway`` and ``publisher`` may be None for ``update``, which never
    talks to the forge. ``today`` only dates a release whose commit range is
    empty; plans are dated by their newest commit.
    """

    config: Config
    repo: GitReader
    workspace: WorkspaceManifest
    console: ConsoleProtocol
    gateway: HostGateway | None = None
    publisher: BranchPublisher | None = None
    dry_run: bool = False
    today: date | None = None


@dataclass(frozen=True, slots=True)
class PreparedPlan:
    """A plan (or the reason there is none) plus what it was built from."""

    plan: ReleasePlan | None
    reason: str = ""
    decisions: dict[str, VersionDecision] = field(default_factory=dict[str, VersionDecision])
    base_tag: str | None = None


@dataclass(frozen=True, slots=True)
class ReconcileOutcome:
    """What a run observed and did.

    ``mutations`` lists every mutating gateway call that succeeded, in order.
    A write the forge rejected (for example a lost create race) is not listed. Pushing the
    release branch is a git operation and is reported by ``branch_pushed``.
    """

    state: ReconcileState
    states: tuple[ReconcileState, ...]
    mutations: tuple[str, ...] = ()
    plan: ReleasePlan | None = None
    pr: RemotePrState | None = None
    tag: TagRecord | None = None
    release: ReleaseRecord | None = None
    branch_pushed: bool = False
    written: tuple[Path, ...] = ()
    message: str = ""

    @property
    def changed(self) -> bool:
        return bool(self.mutations) or self.branch_pushed or bool(self.written)


class _Trace:
    """Accumulates the states and mutations of one run."""

    def __init__(self, console: ConsoleProtocol) -> None:
        self.console = console
        self.states: list[ReconcileState] = []
        self.mutations: list[str] = []

    def enter(self, state: ReconcileState) -> None:
        self.states.append(state)
        self.console.print(f"state: {state}", Style.DIM)

    def mutated(self, call: str) -> None:
        self.mutations.append(call)

    def outcome(
        self,
        state: ReconcileState,
        *,
        plan: ReleasePlan | None = None,
        pr: RemotePrState | None = None,
        tag: TagRecord | None = None,
        release: ReleaseRecord | None = None,
        branch_pushed: bool = False,
        written: tuple[Path, ...] = (),
        message: str = "",
    ) -> ReconcileOutcome:
        if not self.states or self.states[-1] != state:
            self.enter(state)
        return ReconcileOutcome(
            state=state,
            states=tuple(self.states),
            mutations=tuple(self.mutations),
            plan=plan,
            pr=pr,
            tag=tag,
            release=release,
            branch_pushed=branch_pushed,
            written=written,
            message=message,
        )


# --- errors -----------------------------------------------------------------


def gateway_error(error: GatewayError, step: str) -> ReleaseError:
    kind: ReleaseErrorKind
    hint: str | None = None
    match error.kind:
        case "transient":
            kind = "network_failed"
            hint = "The forge did not answer after retries; re-run the command."
        case "conflict":
            kind = "conflict"
        case "auth":
            kind = "auth_failed"
            hint = "Check the token passed with --token or UNIREL_TOKEN."
        case _:
            kind = "run_failed"
    return ReleaseError(kind=kind, message=str(error), hint=hint, step=step)


def git_error(error: GitError, step: str) -> ReleaseError:
    return ReleaseError(kind="git_failed", message=str(error), step=step)


def _require_gateway(ctx: ReconcileContext) -> Result[HostGateway, ReleaseError]:
    if ctx.gateway is None:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message="no forge configured",
                hint="Pass --repo-url or set workspace.repo_url in unirel.toml.",
            )
        )
    return Ok(ctx.gateway)


# --- planning ---------------------------------------------------------------


def plan_templates(config: Config) -> PlanTemplates:
    return PlanTemplates(
        tag=config.release.git_tag_name,
        pr_title=config.pr.title_template,
        pr_body=config.pr.body_template or DEFAULT_PR_BODY_TEMPLATE,
        changelog=config.changelog,
    )


def tag_history(ctx: ReconcileContext) -> Result[TagHistory, ReleaseError]:
    """Release tags known locally, after refreshing them from ``origin``.

    A failed fetch is not fatal: a shallow CI clone or an offline run still
    plans from the tags it has.
    """
    fetched = ctx.repo.fetch_tags()
    if isinstance(fetched, Err):
        ctx.console.print(f"tag fetch skipped: {fetched.error}", Style.DIM)
    tags = ctx.repo.tags()
    if isinstance(tags, Err):
        return Err(git_error(tags.error, "list_tags"))
    return Ok(compute_history(tags.value, ctx.config.release.git_tag_name))


def prepare_plan(ctx: ReconcileContext) -> Result[PreparedPlan, ReleaseError]:
    """Build the release plan from local history.

    Commits are read from the tag of the current manifest version. With no
    tag at all, history is read from the start, bounded by
    ``max_analyze_commits``. When tags exist but the manifest is already
    ahead of the newest one, a release is pending and no new plan is made.
    """
    history = tag_history(ctx)
    if isinstance(history, Err):
        return history

    current = ctx.workspace.current_version
    latest = history.value.latest
    base_tag = history.value.tag_for(current)
    if base_tag is None and latest is not None:
        if current > latest:
            tag = tag_name_for(current, ctx.config.release.git_tag_name)
            return Ok(
                PreparedPlan(
                    plan=None,
                    reason=f"{current} is not tagged yet; run `unirel release` to publish {tag}",
                )
            )
        base_tag = history.value.previous(current)

    limit = ctx.config.workspace.max_analyze_commits if base_tag is None else None
    commits = ctx.repo.list_commits_since(base_tag, limit=limit)
    if isinstance(commits, Err):
        return Err(git_error(commits.error, "list_commits"))
    ctx.console.print(
        f"{len(commits.value)} commit(s) since {base_tag or 'the start of history'}", Style.DIM
    )

    classified = classify(commits.value, ctx.config.classification)
    decisions = {
        name: compute_next(current, classified, ctx.config.bump_policy_for(name))
        for name in ctx.workspace.versions
    }
    plan = build(
        ctx.workspace.versions,
        classified,
        decisions,
        plan_templates(ctx.config),
    )
    if plan is None:
        return Ok(
            PreparedPlan(
                plan=None,
                reason=f"nothing to release since {base_tag or 'the start of history'}",
                decisions=decisions,
                base_tag=base_tag,
            )
        )
    return Ok(PreparedPlan(plan=plan, decisions=decisions, base_tag=base_tag))


def _base_branch(ctx: ReconcileContext) -> str:
    return ctx.repo.default_branch() or ctx.repo.current_branch() or DEFAULT_BASE_BRANCH


def _changelog_path(ctx: ReconcileContext) -> str | None:
    if not ctx.config.workspace.changelog_update:
        return None
    return ctx.config.workspace.changelog_path


# --- release-pr -------------------------------------------------------------


def reconcile_release_pr(ctx: ReconcileContext) -> Result[ReconcileOutcome, ReleaseError]:
    """Create, refresh or leave alone the release pull request."""
    trace = _Trace(ctx.console)
    gateway = _require_gateway(ctx)
    if isinstance(gateway, Err):
        return gateway

    prepared = prepare_plan(ctx)
    if isinstance(prepared, Err):
        return prepared
    plan = prepared.value.plan
    if plan is None:
        return Ok(trace.outcome(ReconcileState.NO_PLAN, message=prepared.value.reason))
    trace.enter(ReconcileState.PLAN_READY)

    branch = ctx.config.pr.branch_name
    desired = fingerprint(plan.pr_title, plan.pr_body)
    body = embed(plan.pr_body, desired)

    found = gateway.value.find_open_release_pr(ctx.config.pr.branch_prefix)
    if isinstance(found, Err):
        return Err(gateway_error(found.error, "find_open_release_pr"))
    current, extra = _pick_release_pr(found.value, branch)

    for pr in extra:
        if ctx.dry_run:
            ctx.console.info(f"would close superseded release PR #{pr.number}")
            continue
        closed = gateway.value.close_pr(pr.number)
        if isinstance(closed, Err):
            return Err(gateway_error(closed.error, "close_pr"))
        trace.mutated(f"close_pr #{pr.number}")
        ctx.console.warning(f"closed superseded release PR #{pr.number}")

    return _converge_pr(ctx, gateway.value, trace, plan, current, body, desired, retried=False)


def _pick_release_pr(
    prs: Sequence[RemotePrState], branch: str
) -> tuple[RemotePrState | None, list[RemotePrState]]:
    """The PR on our branch (newest first) and every other release PR."""
    ours = [pr for pr in prs if pr.branch_name == branch]
    current = ours[0] if ours else None
    return current, [pr for pr in prs if pr is not current]


def _converge_pr(
    ctx: ReconcileContext,
    gateway: HostGateway,
    trace: _Trace,
    plan: ReleasePlan,
    current: RemotePrState | None,
    body: str,
    desired: str,
    *,
    retried: bool,
) -> Result[ReconcileOutcome, ReleaseError]:
    branch = ctx.config.pr.branch_name

    if current is not None and current.head_fingerprint == desired:
        trace.enter(ReconcileState.PR_UP_TO_DATE)
        ctx.console.success(f"release PR #{current.number} is up to date ({plan.version})")
        return Ok(trace.outcome(ReconcileState.DONE, plan=plan, pr=current))

    state = (
        ReconcileState.PR_ABSENT if current is None else ReconcileState.PR_STALE_NEEDS_UPDATE
    )
    if not trace.states or trace.states[-1] != state:
        trace.enter(state)

    if ctx.dry_run:
        action = "create" if current is None else f"update #{current.number} for"
        message = f"dry run: would {action} release PR for {plan.version}"
        ctx.console.info(message)
        return Ok(trace.outcome(ReconcileState.DONE, plan=plan, pr=current, message=message))

    if retried:
        # The branch already carries this plan from before the rejected create.
        pushed: Result[bool, ReleaseError] = Ok(ctx.publisher is not None)
    else:
        pushed = _push_branch(ctx, branch, plan)
    if isinstance(pushed, Err):
        return pushed

    if current is not None:
        updated = gateway.update_pr(current.number, plan.pr_title, body)
        if isinstance(updated, Err):
            return Err(gateway_error(updated.error, "update_pr"))
        trace.mutated(f"update_pr #{current.number}")
        ctx.console.success(f"updated release PR #{current.number} to {plan.version}")
        return Ok(
            trace.outcome(
                ReconcileState.DONE,
                plan=plan,
                pr=updated.value,
                branch_pushed=pushed.value,
            )
        )

    created = gateway.create_pr(
        PrRequest(
            title=plan.pr_title,
            body=body,
            head_branch=branch,
            base_branch=_base_branch(ctx),
            draft=ctx.config.pr.draft,
            labels=ctx.config.pr.labels,
        )
    )
    if isinstance(created, Err):
        if created.error.kind != "conflict" or retried:
            return Err(gateway_error(created.error, "create_pr"))
        # Someone else opened it first: re-read and diff once more.
        ctx.console.print("create_pr conflict; re-reading open release PRs", Style.DIM)
        found = gateway.find_open_release_pr(ctx.config.pr.branch_prefix)
        if isinstance(found, Err):
            return Err(gateway_error(found.error, "find_open_release_pr"))
        again, _ = _pick_release_pr(found.value, branch)
        if again is None:
            return Err(gateway_error(created.error, "create_pr"))
        return _converge_pr(ctx, gateway, trace, plan, again, body, desired, retried=True)

    trace.mutated(f"create_pr {branch}")
    ctx.console.success(f"opened release PR #{created.value.number} for {plan.version}")
    if created.value.url:
        ctx.console.print(created.value.url)
    return Ok(
        trace.outcome(
            ReconcileState.DONE, plan=plan, pr=created.value, branch_pushed=pushed.value
        )
    )


def _push_branch(
    ctx: ReconcileContext, branch: str, plan: ReleasePlan
) -> Result[bool, ReleaseError]:
    if ctx.publisher is None:
        return Ok(False)
    sha = ctx.publisher.publish(branch, plan)
    if isinstance(sha, Err):
        return sha
    ctx.console.print(f"pushed {branch} at {sha.value[:8]}", Style.DIM)
    return Ok(True)


# --- release / publish ------------------------------------------------------


def reconcile_release(
    ctx: ReconcileContext, *, force: bool = False
) -> Result[ReconcileOutcome, ReleaseError]:
    """Tag and release the current manifest version.

    Unless ``release_always`` is set (or ``force``), only proceeds when HEAD
    is the merge of a release PR.
    """
    trace = _Trace(ctx.console)
    gateway = _require_gateway(ctx)
    if isinstance(gateway, Err):
        return gateway
    settings = ctx.config.release

    if not settings.git_tag_enable and not settings.git_release_enable:
        return Ok(trace.outcome(ReconcileState.NO_PLAN, message="tags and releases are disabled"))

    head = ctx.repo.head_sha()
    if isinstance(head, Err):
        return Err(git_error(head.error, "head_sha"))
    head_sha = head.value

    if not (settings.release_always or force):
        merged = _is_release_merge(ctx, gateway.value, head_sha)
        if isinstance(merged, Err):
            return merged
        if not merged.value:
            message = f"{head_sha[:8]} is not a merged release PR; nothing to release"
            return Ok(trace.outcome(ReconcileState.NO_PLAN, message=message))

    history = tag_history(ctx)
    if isinstance(history, Err):
        return history
    version = ctx.workspace.current_version
    tag_name = tag_name_for(version, settings.git_tag_name)
    trace.enter(ReconcileState.PLAN_READY)

    tag: TagRecord | None = None
    if settings.git_tag_enable:
        ensured = _ensure_tag(ctx, gateway.value, trace, tag_name, head_sha)
        if isinstance(ensured, Err):
            return ensured
        tag = ensured.value
        if tag is None:
            message = f"dry run: would tag {tag_name} at {head_sha[:8]}"
            ctx.console.info(message)

    release: ReleaseRecord | None = None
    if settings.git_release_enable:
        target = tag.sha if tag is not None else head_sha
        ensured_release = _ensure_release(
            ctx, gateway.value, trace, tag_name, target, history.value
        )
        if isinstance(ensured_release, Err):
            return ensured_release
        release = ensured_release.value

    if ctx.dry_run:
        return Ok(trace.outcome(ReconcileState.DONE, tag=tag, release=release, message="dry run"))
    if trace.mutations:
        ctx.console.success(f"{tag_name} is released")
    else:
        ctx.console.info(f"{tag_name} is already released")
    return Ok(trace.outcome(ReconcileState.DONE, tag=tag, release=release))


def publish(ctx: ReconcileContext) -> Result[ReconcileOutcome, ReleaseError]:
    """Tag and release the current version without the release-PR gate."""
    return reconcile_release(ctx, force=True)


def _is_release_merge(
    ctx: ReconcileContext, gateway: HostGateway, sha: str
) -> Result[bool, ReleaseError]:
    prs = gateway.prs_for_commit(sha)
    if isinstance(prs, Err):
        return Err(gateway_error(prs.error, "prs_for_commit"))
    prefix = ctx.config.pr.branch_prefix
    return Ok(any(pr.is_merged and pr.branch_name.startswith(prefix) for pr in prs.value))


def _ensure_tag(
    ctx: ReconcileContext,
    gateway: HostGateway,
    trace: _Trace,
    tag_name: str,
    sha: str,
) -> Result[TagRecord | None, ReleaseError]:
    """Existing or newly created tag; None only on a dry run."""
    existing = gateway.get_tag(tag_name)
    if isinstance(existing, Err):
        return Err(gateway_error(existing.error, "get_tag"))
    if existing.value is not None:
        if existing.value.sha != sha:
            ctx.console.warning(
                f"{tag_name} already exists at {existing.value.sha[:8]}, not at HEAD"
            )
        return Ok(existing.value)

    trace.enter(ReconcileState.TAG_ABSENT)
    if ctx.dry_run:
        return Ok(None)

    created = gateway.create_tag(tag_name, sha, f"Release {tag_name}")
    if isinstance(created, Err):
        if created.error.kind != "conflict":
            return Err(gateway_error(created.error, "create_tag"))
        # Lost a race: fine if the winner tagged the same commit.
        winner = gateway.get_tag(tag_name)
        if isinstance(winner, Err):
            return Err(gateway_error(winner.error, "get_tag"))
        if winner.value is None or winner.value.sha != sha:
            other = winner.value.sha[:8] if winner.value is not None else "unknown"
            return Err(
                ReleaseError(
                    kind="run_failed",
                    message=f"{tag_name} already exists at {other}, expected {sha[:8]}",
                    hint="Delete the stray tag or bump the version before releasing.",
                    step="create_tag",
                )
            )
        trace.enter(ReconcileState.TAG_CREATED)
        return Ok(winner.value)

    trace.mutated(f"create_tag {tag_name}")
    confirmed = gateway.get_tag(tag_name)
    if isinstance(confirmed, Err):
        return Err(gateway_error(confirmed.error, "get_tag"))
    if confirmed.value is None:
        return Err(
            ReleaseError(
                kind="run_failed",
                message=f"{tag_name} was created but is not visible yet",
                hint="Re-run the command; it will pick up from here.",
                step="confirm_tag",
            )
        )
    trace.enter(ReconcileState.TAG_CREATED)
    ctx.console.success(f"tagged {tag_name} at {sha[:8]}")
    return Ok(confirmed.value)


def _ensure_release(
    ctx: ReconcileContext,
    gateway: HostGateway,
    trace: _Trace,
    tag_name: str,
    target: str,
    history: TagHistory,
) -> Result[ReleaseRecord | None, ReleaseError]:
    existing = gateway.get_release(tag_name)
    if isinstance(existing, Err):
        return Err(gateway_error(existing.error, "get_release"))
    if existing.value is not None:
        return Ok(existing.value)

    trace.enter(ReconcileState.RELEASE_ABSENT)
    if ctx.dry_run:
        ctx.console.info(f"dry run: would create release {tag_name}")
        return Ok(None)

    request = release_request(ctx, gateway, tag_name, target, history)
    if isinstance(request, Err):
        return request
    created = gateway.create_release(request.value)
    if isinstance(created, Err):
        if created.error.kind != "conflict":
            return Err(gateway_error(created.error, "create_release"))
        again = gateway.get_release(tag_name)
        if isinstance(again, Err):
            return Err(gateway_error(again.error, "get_release"))
        if again.value is None:
            return Err(gateway_error(created.error, "create_release"))
        trace.enter(ReconcileState.RELEASE_CREATED)
        return Ok(again.value)

    trace.mutated(f"create_release {tag_name}")
    trace.enter(ReconcileState.RELEASE_CREATED)
    ctx.console.success(f"created release {tag_name}")
    if created.value.url:
        ctx.console.print(created.value.url)
    return Ok(created.value)


def release_request(
    ctx: ReconcileContext,
    gateway: HostGateway,
    tag_name: str,
    target: str,
    history: TagHistory,
) -> Result[ReleaseRequest, ReleaseError]:
    """Release payload; the body is the changelog from the previous tag to ``target``."""
    settings = ctx.config.release
    version = ctx.workspace.current_version
    previous_tag = history.previous(version)

    commits = gateway.list_commits_since(previous_tag, target)
    if isinstance(commits, Err):
        return Err(gateway_error(commits.error, "list_commits_since"))
    classified = classify(commits.value, ctx.config.classification)
    groups = assemble(classified, ctx.config.changelog)

    day = release_day(classified) or ctx.today or datetime.now(UTC).date()
    variables = plan_variables(
        version=version,
        previous=history.previous_version(version) or version,
        packages=sorted(ctx.workspace.versions),
        day=day,
        tag_template=settings.git_tag_name,
    )
    changelog = render_changelog(version, groups, day, ctx.config.changelog, variables)
    variables["changelog"] = changelog
    body = changelog
    if settings.git_release_body:
        body = render(settings.git_release_body, variables)
    name = tag_name
    if settings.git_release_name:
        name = render(settings.git_release_name, variables)

    match settings.git_release_type:
        case "pre":
            prerelease = True
        case "auto":
            prerelease = version.is_prerelease
        case _:
            prerelease = False

    return Ok(
        ReleaseRequest(
            tag_name=tag_name,
            name=name.strip() or tag_name,
            body=body.strip(),
            draft=settings.git_release_draft,
            prerelease=prerelease,
            make_latest=settings.git_release_latest,
        )
    )


# --- update -----------------------------------------------------------------


def update(
    ctx: ReconcileContext, *, write: bool = False
) -> Result[ReconcileOutcome, ReleaseError]:
    """Compute the next version and changelog; with ``write``, apply them locally."""
    trace = _Trace(ctx.console)
    prepared = prepare_plan(ctx)
    if isinstance(prepared, Err):
        return prepared
    plan = prepared.value.plan
    if plan is None:
        return Ok(trace.outcome(ReconcileState.NO_PLAN, message=prepared.value.reason))
    trace.enter(ReconcileState.PLAN_READY)

    if not write or ctx.dry_run:
        return Ok(trace.outcome(ReconcileState.DONE, plan=plan))

    written = write_versions(ctx.workspace, plan.package_versions)
    if isinstance(written, Err):
        return written
    paths = list(written.value)

    changelog_path = _changelog_path(ctx)
    if changelog_path and plan.changelog_text:
        path = ctx.workspace.root / changelog_path
        changed = write_changelog_file(
            path, plan.changelog_text, plan.version, ctx.config.changelog.header
        )
        if isinstance(changed, Err):
            return changed
        if changed.value:
            paths.append(path)

    for path in paths:
        ctx.console.print(f"wrote {path}", Style.DIM)
    ctx.console.success(f"updated {len(paths)} file(s) to {plan.version}")
    return Ok(trace.outcome(ReconcileState.DONE, plan=plan, written=tuple(paths)))
