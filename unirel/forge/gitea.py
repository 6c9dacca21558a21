"""Gitea / Forgejo REST adapter (API v1)."""

from __future__ import annotations

from unirel.core.result import Err, Ok, Result
from unirel.core.structured import get_str
from unirel.forge.gateway import GatewayError, PrRequest, ReleaseRequest
from unirel.forge.http import ForgeTransport
from unirel.forge.payload import (
    get_number,
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

# Gitea caps list endpoints at 50 items by default.
_PAGE_SIZE = 50
_DRAFT_PREFIX = "WIP: "


class GiteaGateway:
    """HostGateway over the Gitea API.

    Gitea has no native draft flag on pull requests; drafts use the
    ``WIP:`` title prefix Gitea recognizes. Labels are attached by id.
    """

    def __init__(self, transport: ForgeTransport, owner: str, repo: str) -> None:
        self._t = transport
        self._repo = f"repos/{owner}/{repo}"

    def find_open_release_pr(
        self, branch_prefix: str
    ) -> Result[list[RemotePrState], GatewayError]:
        pages = self._t.get_pages(
            f"{self._repo}/pulls", {"state": "open"}, page_size=_PAGE_SIZE, size_param="limit"
        )
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

        title = f"{_DRAFT_PREFIX}{request.title}" if request.draft else request.title
        created = self._t.send(
            "POST",
            f"{self._repo}/pulls",
            {
                "title": title,
                "body": request.body,
                "head": request.head_branch,
                "base": request.base_branch,
            },
        )
        pr = parse_pr(created)
        if isinstance(pr, Err) or not request.labels:
            return pr

        label_ids = self._label_ids(request.labels)
        if isinstance(label_ids, Err):
            return label_ids
        if label_ids.value:
            labeled = self._t.send(
                "POST",
                f"{self._repo}/issues/{pr.value.number}/labels",
                {"labels": label_ids.value},
            )
            if isinstance(labeled, Err):
                return labeled
        return pr

    def update_pr(
        self, number: int, title: str, body: str
    ) -> Result[RemotePrState, GatewayError]:
        # A title without the prefix would take the PR out of draft.
        current = parse_pr(self._t.get(f"{self._repo}/pulls/{number}"))
        if isinstance(current, Err):
            return current
        if current.value.title.startswith(_DRAFT_PREFIX) and not title.startswith(_DRAFT_PREFIX):
            title = f"{_DRAFT_PREFIX}{title}"

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
        result = self._t.get_optional(f"{self._repo}/tags/{quote_path(tag_name)}")
        if isinstance(result, Err):
            return result
        if result.value is None:
            return Ok(None)
        data = require_dict(result.value, "tag")
        if isinstance(data, Err):
            return data
        sha = nested_str(data.value, "commit", "sha")
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
            f"{self._repo}/tags",
            {"tag_name": tag_name, "target": sha, "message": message},
        )
        if isinstance(result, Err):
            return result
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

        result = self._t.send(
            "POST",
            f"{self._repo}/releases",
            {
                "tag_name": request.tag_name,
                "name": request.name,
                "body": request.body,
                "draft": request.draft,
                "prerelease": request.prerelease,
            },
        )
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
            pages = self._t.get_pages(
                f"{self._repo}/commits",
                {"sha": head, "stat": "false"},
                page_size=_PAGE_SIZE,
                size_param="limit",
            )
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
            commits = data.value.get("commits")
            raw = list(reversed(commits)) if isinstance(commits, list) else commits

        items = require_dicts(raw, "commits")
        if isinstance(items, Err):
            return items
        return Ok([c for c in (nested_commit_from(d) for d in items.value) if c is not None])

    def prs_for_commit(self, sha: str) -> Result[list[RemotePrState], GatewayError]:
        # Gitea returns the single PR that introduced the commit.
        result = self._t.get_optional(f"{self._repo}/commits/{sha}/pull")
        if isinstance(result, Err):
            return result
        if result.value is None:
            return Ok([])
        data = require_dict(result.value, "pull request")
        if isinstance(data, Err):
            return data
        pr = pr_from(data.value)
        return Ok([pr] if pr is not None else [])

    def _label_ids(self, names: tuple[str, ...]) -> Result[list[int], GatewayError]:
        pages = self._t.get_pages(
            f"{self._repo}/labels", page_size=_PAGE_SIZE, size_param="limit"
        )
        if isinstance(pages, Err):
            return pages
        items = require_dicts(pages.value, "labels")
        if isinstance(items, Err):
            return items
        by_name = {get_str(d, "name"): get_number(d, "id") for d in items.value}
        return Ok([i for n in names if (i := by_name.get(n)) is not None])
