"""GitHub REST adapter (github.com and GitHub Enterprise)."""

from __future__ import annotations

from unirel.core.result import Err, Ok, Result
from unirel.core.structured import get_str, get_table
from unirel.forge.gateway import GatewayError, PrRequest, ReleaseRequest
from unirel.forge.http import ForgeTransport
from unirel.forge.payload import (
    invalid,
    nested_commit_from,
    nested_str,
    open_pr_conflict,
    parse_pr,
    pr_from,
    quote_path,
    release_from,
    require_dict,
    require_dicts,
)
from unirel.services.release.model import Commit, ReleaseRecord, RemotePrState, TagRecord


class GitHubGateway:
    """HostGateway over the GitHub REST API v3."""

    def __init__(self, transport: ForgeTransport, owner: str, repo: str) -> None:
        self._t = transport
        self._repo = f"repos/{owner}/{repo}"

    def find_open_release_pr(
        self, branch_prefix: str
    ) -> Result[list[RemotePrState], GatewayError]:
        pages = self._t.get_pages(f"{self._repo}/pulls", {"state": "open"})
        if isinstance(pages, Err):
            return pages
        items = require_dicts(pages.value, "pull requests")
        if isinstance(items, Err):
            return items
        prs = [pr for pr in (pr_from(d) for d in items.value) if pr is not None]
        found = [pr for pr in prs if pr.is_open and pr.branch_name.startswith(branch_prefix)]
        return Ok(sorted(found, key=lambda pr: pr.number, reverse=True))

    def create_pr(self, request: PrRequest) -> Result[RemotePrState, GatewayError]:
        existing = self.find_open_release_pr(request.head_branch)
        if isinstance(existing, Err):
            return existing
        for pr in existing.value:
            if pr.branch_name == request.head_branch:
                return Err(open_pr_conflict(pr))

        created = self._t.send(
            "POST",
            f"{self._repo}/pulls",
            {
                "title": request.title,
                "body": request.body,
                "head": request.head_branch,
                "base": request.base_branch,
                "draft": request.draft,
            },
        )
        pr = parse_pr(created)
        if isinstance(pr, Err) or not request.labels:
            return pr
        labeled = self._t.send(
            "POST",
            f"{self._repo}/issues/{pr.value.number}/labels",
            {"labels": list(request.labels)},
        )
        if isinstance(labeled, Err):
            return labeled
        return pr

    def update_pr(
        self, number: int, title: str, body: str
    ) -> Result[RemotePrState, GatewayError]:
        result = self._t.send(
            "PATCH", f"{self._repo}/pulls/{number}", {"title": title, "body": body}
        )
        return parse_pr(result)

    def close_pr(self, number: int) -> Result[None, GatewayError]:
        result = self._t.send("PATCH", f"{self._repo}/pulls/{number}", {"state": "closed"})
        if isinstance(result, Err):
            return result
        return Ok(None)

    def get_tag(self, tag_name: str) -> Result[TagRecord | None, GatewayError]:
        ref = self._t.get_optional(f"{self._repo}/git/ref/tags/{quote_path(tag_name)}")
        if isinstance(ref, Err):
            return ref
        if ref.value is None:
            return Ok(None)
        data = require_dict(ref.value, "tag ref")
        if isinstance(data, Err):
            return data
        obj = get_table(data.value, "object") or {}
        sha = get_str(obj, "sha")
        if sha is None:
            return Err(invalid(f"tag ref {tag_name} has no object"))
        if get_str(obj, "type") != "tag":
            return Ok(TagRecord(tag_name=tag_name, sha=sha))

        # Annotated tag: follow the tag object to the commit.
        tag_obj = self._t.get(f"{self._repo}/git/tags/{sha}")
        if isinstance(tag_obj, Err):
            return tag_obj
        tag_data = require_dict(tag_obj.value, "tag object")
        if isinstance(tag_data, Err):
            return tag_data
        target = nested_str(tag_data.value, "object", "sha")
        if target is None:
            return Err(invalid(f"tag object {sha} has no target"))
        return Ok(TagRecord(tag_name=tag_name, sha=target))

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

        tag_obj = self._t.send(
            "POST",
            f"{self._repo}/git/tags",
            {"tag": tag_name, "message": message, "object": sha, "type": "commit"},
        )
        if isinstance(tag_obj, Err):
            return tag_obj
        data = require_dict(tag_obj.value, "tag object")
        if isinstance(data, Err):
            return data
        tag_sha = get_str(data.value, "sha")
        if tag_sha is None:
            return Err(invalid("created tag object has no sha"))

        ref = self._t.send(
            "POST",
            f"{self._repo}/git/refs",
            {"ref": f"refs/tags/{tag_name}", "sha": tag_sha},
        )
        if isinstance(ref, Err):
            return ref
        return Ok(TagRecord(tag_name=tag_name, sha=sha))

    def get_release(self, tag_name: str) -> Result[ReleaseRecord | None, GatewayError]:
        result = self._t.get_optional(f"{self._repo}/releases/tags/{quote_path(tag_name)}")
        if isinstance(result, Err):
            return result
        if result.value is None:
            return Ok(None)
        data = require_dict(result.value, "release")
        if isinstance(data, Err):
            return data
        return Ok(release_from(data.value, tag_name))

    def create_release(self, request: ReleaseRequest) -> Result[ReleaseRecord, GatewayError]:
        existing = self.get_release(request.tag_name)
        if isinstance(existing, Err):
            return existing
        if existing.value is not None:
            return Ok(existing.value)

        payload: dict[str, object] = {
            "tag_name": request.tag_name,
            "name": request.name,
            "body": request.body,
            "draft": request.draft,
            "prerelease": request.prerelease,
        }
        if request.make_latest is not None:
            payload["make_latest"] = "true" if request.make_latest else "false"
        result = self._t.send("POST", f"{self._repo}/releases", payload)
        if isinstance(result, Err):
            return result
        data = require_dict(result.value, "release")
        if isinstance(data, Err):
            return data
        return Ok(release_from(data.value, request.tag_name))

    def list_commits_since(
        self, ref: str | None, head: str
    ) -> Result[list[Commit], GatewayError]:
        if ref is None:
            pages = self._t.get_pages(f"{self._repo}/commits", {"sha": head})
            if isinstance(pages, Err):
                return pages
            raw: object = pages.value
        else:
            compare = self._t.get(f"{self._repo}/compare/{quote_path(ref)}...{quote_path(head)}")
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
        return Ok([c for c in (nested_commit_from(d) for d in items.value) if c is not None])

    def prs_for_commit(self, sha: str) -> Result[list[RemotePrState], GatewayError]:
        result = self._t.get(f"{self._repo}/commits/{sha}/pulls")
        if isinstance(result, Err):
            return result
        items = require_dicts(result.value, "pull requests")
        if isinstance(items, Err):
            return items
        return Ok([pr for pr in (pr_from(d) for d in items.value) if pr is not None])
