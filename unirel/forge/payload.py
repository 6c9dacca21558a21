"""Validation helpers for forge JSON payloads."""

from __future__ import annotations

import urllib.parse
from datetime import UTC, datetime

from unirel.core.result import Err, Ok, Result
from unirel.core.structured import StrDict, as_obj_list, as_str_dict, get_str, get_table
from unirel.forge.gateway import GatewayError
from unirel.services.release.fingerprint import extract
from unirel.services.release.model import Commit, ReleaseRecord, RemotePrState


def invalid(message: str, url: str = "") -> GatewayError:
    return GatewayError(kind="invalid_response", message=message, url=url)


def require_dict(obj: object, what: str) -> Result[StrDict, GatewayError]:
    data = as_str_dict(obj)
    if data is None:
        return Err(invalid(f"unexpected {what} payload"))
    return Ok(data)


def require_dicts(obj: object, what: str) -> Result[list[StrDict], GatewayError]:
    items = as_obj_list(obj)
    if items is None:
        return Err(invalid(f"expected a list of {what}"))
    out: list[StrDict] = []
    for item in items:
        data = as_str_dict(item)
        if data is None:
            return Err(invalid(f"unexpected {what} entry"))
        out.append(data)
    return Ok(out)


def get_number(data: StrDict, key: str) -> int | None:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def get_flag(data: StrDict, key: str) -> bool:
    return data.get(key) is True


def parse_date(value: str | None) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed); epoch if missing."""
    if value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.fromtimestamp(0, UTC)


def nested_str(data: StrDict, *path: str) -> str | None:
    """``nested_str(d, "commit", "author", "date")`` -> d[commit][author][date]."""
    current: StrDict | None = data
    for key in path[:-1]:
        if current is None:
            return None
        current = get_table(current, key)
    if current is None:
        return None
    return get_str(current, path[-1])


def commit_from(sha: str | None, message: str | None, date: str | None) -> Commit | None:
    if not sha or message is None:
        return None
    return Commit(id=sha, message=message.strip(), author_date=parse_date(date))


def quote_path(value: str, safe: str = "/") -> str:
    return urllib.parse.quote(value, safe=safe)


def pr_from(data: StrDict) -> RemotePrState | None:
    """Pull request payload shared by GitHub and Gitea.

    GitHub reports a merge through ``merged_at``; Gitea also sets ``merged``.
    """
    number = get_number(data, "number")
    head = get_table(data, "head") or {}
    branch = get_str(head, "ref")
    if number is None or branch is None:
        return None
    body = data.get("body")
    body_text = body if isinstance(body, str) else ""
    return RemotePrState(
        number=number,
        branch_name=branch,
        head_fingerprint=extract(body_text),
        is_open=get_str(data, "state") == "open",
        url=get_str(data, "html_url") or "",
        title=get_str(data, "title") or "",
        body=body_text,
        is_merged=bool(data.get("merged_at")) or get_flag(data, "merged"),
    )


def parse_pr(result: Result[object, GatewayError]) -> Result[RemotePrState, GatewayError]:
    if isinstance(result, Err):
        return result
    data = require_dict(result.value, "pull request")
    if isinstance(data, Err):
        return data
    pr = pr_from(data.value)
    if pr is None:
        return Err(invalid("pull request payload without number or head"))
    return Ok(pr)


def release_from(data: StrDict, tag_name: str) -> ReleaseRecord:
    release_id = data.get("id")
    return ReleaseRecord(
        tag_name=get_str(data, "tag_name") or tag_name,
        release_id=str(release_id) if release_id is not None else "",
        is_draft=get_flag(data, "draft"),
        is_prerelease=get_flag(data, "prerelease"),
        url=get_str(data, "html_url") or "",
    )


def nested_commit_from(data: StrDict) -> Commit | None:
    """Commit entry with the message under ``commit`` (GitHub and Gitea)."""
    commit = get_table(data, "commit") or {}
    message = commit.get("message")
    return commit_from(
        get_str(data, "sha"),
        message if isinstance(message, str) else None,
        nested_str(data, "commit", "author", "date"),
    )


def open_pr_conflict(pr: RemotePrState) -> GatewayError:
    """Error for a create that finds a PR already open on its head branch."""
    return GatewayError(
        kind="conflict",
        message=f"#{pr.number} is already open for {pr.branch_name}",
        url=pr.url,
    )
