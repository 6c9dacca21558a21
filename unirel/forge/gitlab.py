"""GitLab REST adapter (API v4).

GitLab speaks of merge requests (``iid``) and keeps the PR text in
``description``; both are mapped onto the same RemotePrState the other
adapters produce.
"""

from __future__ import annotations

from unirel.core.result import Err, Ok, Result
from unirel.core.structured import StrDict, get_str
from unirel.forge.gateway import GatewayError, PrRequest, ReleaseRequest
from unirel.forge.http import ForgeTransport
from unirel.forge.payload import (
    commit_from,
    get_number,
    invalid,
    nested_str,
    open_pr_conflict,
    quote_path,
    require_dict,
    require_dicts,
)
from unirel.services.release.fingerprint import extract
from unirel.services.release.model import Commit, ReleaseRecord, RemotePrState, TagRecord

_DRAFT_PREFIX = "Draft: "


def _mr_from(data: StrDict) -> RemotePrState | None:
    number = get_number(data, "iid")
    branch = get_str(data, "source_branch")
    if number is None or branch is None:
        return None
    body = data.get("description")
    body_text = body if isinstance(body, str) else ""
    state = get_str(data, "state")
    return RemotePrState(
        number=number,
        branch_name=branch,
        head_fingerprint=extract(body_text),
        is_open=state == "opened",
        url=get_str(data, "web_url") or "",
        title=get_str(data, "title") or "",
        body=body_text,
        is_merged=state == "merged",
    )


def _release_from(data: StrDict, tag_name: str, prerelease: bool = False) -> ReleaseRecord:
    # GitLab releases have no draft state and no prerelease flag.
    return ReleaseRecord(
        tag_name=get_str(data, "tag_name") or tag_name,
        release_id=get_str(data, "tag_name") or tag_name,
        is_draft=False,
        is_prerelease=prerelease,
        url=nested_str(data, "_links", "self") or "",
    )


def _commit_from(data: StrDict) -> Commit | None:
    message = data.get("message")
    return commit_from(
        get_str(data, "id"),
        message if isinstance(message, str) else None,
        get_str(data, "authored_date"),
    )


class GitLabGateway:
    """HostGateway over the GitLab REST API v4."""

    def __init__(self, transport: ForgeTransport, project_path: str) -> None:
        self._t = transport
        self._project = f"projects/{quote_path(project_path, safe='')}"

    def find_open_release_pr(
        self, branch_prefix: str
    ) -> Result[list[RemotePrState], GatewayError]:
        pages = self._t.get_pages(f"{self._project}/merge_requests", {"state": "opened"})
        if isinstance(pages, Err):
            return pages
        items = require_dicts(pages.value, "merge requests")
        if isinstance(items, Err):
            return items
        mrs = [mr for mr in (_mr_from(d) for d in items.value) if mr is not None]
        found = [mr for mr in mrs if mr.is_open and mr.branch_name.startswith(branch_prefix)]
        return Ok(sorted(found, key=lambda mr: mr.number, reverse=True))

    def create_pr(self, request: PrRequest) -> Result[RemotePrState, GatewayError]:
        existing = self.find_open_release_pr(request.head_branch)
        if isinstance(existing, Err):
            return existing
        for mr in existing.value:
            if mr.branch_name == request.head_branch:
                return Err(open_pr_conflict(mr))

        payload: dict[str, object] = {
            "title": f"{_DRAFT_PREFIX}{request.title}" if request.draft else request.title,
            "description": request.body,
            "source_branch": request.head_branch,
            "target_branch": request.base_branch,
            "remove_source_branch": True,
        }
        if request.labels:
            payload["labels"] = ",".join(request.labels)
        result = self._t.send("POST", f"{self._project}/merge_requests", payload)
        return self._parse_mr(result)

    def update_pr(
        self, number: int, title: str, body: str
    ) -> Result[RemotePrState, GatewayError]:
        # A title without the prefix would mark the MR ready.
        current = self._parse_mr(self._t.get(f"{self._project}/merge_requests/{number}"))
        if isinstance(current, Err):
            return current
        if current.value.title.startswith(_DRAFT_PREFIX) and not title.startswith(_DRAFT_PREFIX):
            title = f"{_DRAFT_PREFIX}{title}"

        result = self._t.send(
            "PUT",
            f"{self._project}/merge_requests/{number}",
            {"title": title, "description": body},
        )
        return self._parse_mr(result)

    def close_pr(self, number: int) -> Result[None, GatewayError]:
        result = self._t.send(
            "PUT", f"{self._project}/merge_requests/{number}", {"state_event": "close"}
        )
        if isinstance(result, Err):
            return result
        return Ok(None)

    def get_tag(self, tag_name: str) -> Result[TagRecord | None, GatewayError]:
        tag = quote_path(tag_name, safe="")
        result = self._t.get_optional(f"{self._project}/repository/tags/{tag}")
        if isinstance(result, Err):
            return result
        if result.value is None:
            return Ok(None)
        data = require_dict(result.value, "tag")
        if isinstance(data, Err):
            return data
        sha = nested_str(data.value, "commit", "id")
        if sha is None:
            return Err(invalid(f"tag {tag_name} has no commit"))
        return Ok(TagRecord(tag_name=tag_name, sha=sha))

    def create_tag(self, tag_name: str, sha: str, message: str) -> Result[TagRecord, GatewayError]:
        existing = self.get_tag(tag_name)
        if isinstance(existing, Err):
            return existing
        if existing.value is not None:
            if existing.value.sha == sha:
                return Ok(existing.value)
            return Err(
                GatewayError(
                    kind="conflict",
                    message=f"tag {tag_name} already points to {existing.value.sha[:8]}",
                )
            )

        result = self._t.send(
            "POST",
            f"{self._project}/repository/tags",
            {"tag_name": tag_name, "ref": sha, "message": message},
        )
        if isinstance(result, Err):
            return result
        return Ok(TagRecord(tag_name=tag_name, sha=sha))

    def get_release(self, tag_name: str) -> Result[ReleaseRecord | None, GatewayError]:
        tag = quote_path(tag_name, safe="")
        result = self._t.get_optional(f"{self._project}/releases/{tag}")
        if isinstance(result, Err):
            return result
        if result.value is None:
            return Ok(None)
        data = require_dict(result.value, "release")
        if isinstance(data, Err):
            return data
        return Ok(_release_from(data.value, tag_name))

    def create_release(self, request: ReleaseRequest) -> Result[ReleaseRecord, GatewayError]:
        existing = self.get_release(request.tag_name)
        if isinstance(existing, Err):
            return existing
        if existing.value is not None:
            return Ok(existing.value)

        result = self._t.send(
            "POST",
            f"{self._project}/releases",
            {"name": request.name, "tag_name": request.tag_name, "description": request.body},
        )
        if isinstance(result, Err):
            return result
        data = require_dict(result.value, "release")
        if isinstance(data, Err):
            return data
        return Ok(_release_from(data.value, request.tag_name, request.prerelease))

    def list_commits_since(
        self, ref: str | None, head: str
    ) -> Result[list[Commit], GatewayError]:
        if ref is None:
            pages = self._t.get_pages(f"{self._project}/repository/commits", {"ref_name": head})
            if isinstance(pages, Err):
                return pages
            raw: object = pages.value
        else:
            compare = self._t.get(
                f"{self._project}/repository/compare", {"from": ref, "to": head}
            )
            if isinstance(compare, Err):
                return compare
            data = require_dict(compare.value, "compare")
            if isinstance(data, Err):
                return data
            # compare lists oldest first
            commits = data.value.get("commits")
            raw = list(reversed(commits)) if isinstance(commits, list) else commits

        items = require_dicts(raw, "commits")
        if isinstance(items, Err):
            return items
        return Ok([c for c in (_commit_from(d) for d in items.value) if c is not None])

    def prs_for_commit(self, sha: str) -> Result[list[RemotePrState], GatewayError]:
        result = self._t.get(f"{self._project}/repository/commits/{sha}/merge_requests")
        if isinstance(result, Err):
            return result
        items = require_dicts(result.value, "merge requests")
        if isinstance(items, Err):
            return items
        return Ok([mr for mr in (_mr_from(d) for d in items.value) if mr is not None])

    def _parse_mr(
        self, result: Result[object, GatewayError]
    ) -> Result[RemotePrState, GatewayError]:
        if isinstance(result, Err):
            return result
        data = require_dict(result.value, "merge request")
        if isinstance(data, Err):
            return data
        mr = _mr_from(data.value)
        if mr is None:
            return Err(invalid("merge request payload without iid or source branch"))
        return Ok(mr)
