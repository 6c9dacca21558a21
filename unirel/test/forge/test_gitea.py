"""Tests for the Gitea adapter."""

from __future__ import annotations

from unirel.core.result import Err, Ok
from unirel.forge.gateway import PrRequest, ReleaseRequest
from unirel.forge.gitea import GiteaGateway
from unirel.forge.http import ForgeTransport, MockHttpClient
from unirel.output.console import MockConsole
from unirel.services.release.model import TagRecord

API = "https://codeberg.org/api/v1/repos/o/r"
OPEN_PRS = f"{API}/pulls?state=open&limit=50&page=1"


def _gateway(client: MockHttpClient) -> GiteaGateway:
    transport = ForgeTransport(
        api_root="https://codeberg.org/api/v1/",
        auth_headers={"Authorization": "token t"},
        console=MockConsole(),
        client=client,
    )
    return GiteaGateway(transport, "o", "r")


def _pr(number: int, branch: str, **extra: object) -> dict[str, object]:
    return {"number": number, "head": {"ref": branch}, "state": "open", "body": "", **extra}


class TestPullRequests:
    def test_find(self) -> None:
        client = MockHttpClient()
        client.set_json("GET", OPEN_PRS, [_pr(2, "unirel-release"), _pr(3, "main")])
        result = _gateway(client).find_open_release_pr("unirel-")
        assert isinstance(result, Ok)
        assert [pr.number for pr in result.value] == [2]

    def test_create_draft_with_labels(self) -> None:
        client = MockHttpClient()
        client.set_json("GET", OPEN_PRS, [])
        client.set_json("POST", f"{API}/pulls", _pr(6, "unirel-release"), status=201)
        client.set_json(
            "GET",
            f"{API}/labels?limit=50&page=1",
            [{"id": 11, "name": "release"}, {"id": 12, "name": "bug"}],
        )
        client.set_json("POST", f"{API}/issues/6/labels", [])
        request = PrRequest(
            title="chore: release v1.0.0",
            body="b",
            head_branch="unirel-release",
            base_branch="main",
            draft=True,
            labels=("release", "missing"),
        )
        result = _gateway(client).create_pr(request)
        assert isinstance(result, Ok)
        assert client.calls[1][2] == {
            "title": "WIP: chore: release v1.0.0",
            "body": "b",
            "head": "unirel-release",
            "base": "main",
        }
        assert client.calls[-1][2] == {"labels": [11]}

    def test_create_on_branch_with_open_pr_conflicts(self) -> None:
        client = MockHttpClient()
        client.set_json("GET", OPEN_PRS, [_pr(2, "unirel-release")])
        request = PrRequest(title="t", body="b", head_branch="unirel-release", base_branch="main")
        result = _gateway(client).create_pr(request)
        assert isinstance(result, Err)
        assert result.error.kind == "conflict"
        assert client.methods() == [f"GET {OPEN_PRS}"]

    def test_update_keeps_wip_prefix(self) -> None:
        client = MockHttpClient()
        client.set_json("GET", f"{API}/pulls/6", _pr(6, "unirel-release", title="WIP: old"))
        client.set_json("PATCH", f"{API}/pulls/6", _pr(6, "unirel-release"))
        result = _gateway(client).update_pr(6, "chore: release v1.1.0", "b")
        assert isinstance(result, Ok)
        assert client.calls[-1][2] == {"title": "WIP: chore: release v1.1.0", "body": "b"}

    def test_update_ready_pr_title_unchanged(self) -> None:
        client = MockHttpClient()
        client.set_json("GET", f"{API}/pulls/6", _pr(6, "unirel-release", title="old"))
        client.set_json("PATCH", f"{API}/pulls/6", _pr(6, "unirel-release"))
        assert isinstance(_gateway(client).update_pr(6, "new", "b"), Ok)
        assert client.calls[-1][2] == {"title": "new", "body": "b"}

    def test_prs_for_commit(self) -> None:
        client = MockHttpClient()
        merged = _pr(4, "unirel-release", state="closed", merged=True)
        client.set_json("GET", f"{API}/commits/abc/pull", merged)
        result = _gateway(client).prs_for_commit("abc")
        assert isinstance(result, Ok)
        assert result.value[0].is_merged is True

    def test_prs_for_commit_none(self) -> None:
        assert _gateway(MockHttpClient()).prs_for_commit("abc") == Ok([])


class TestTagsAndReleases:
    def test_get_tag(self) -> None:
        client = MockHttpClient()
        client.set_json("GET", f"{API}/tags/v1.0.0", {"name": "v1.0.0", "commit": {"sha": "c1"}})
        assert _gateway(client).get_tag("v1.0.0") == Ok(TagRecord("v1.0.0", "c1"))

    def test_create_tag(self) -> None:
        client = MockHttpClient()
        client.set_json("POST", f"{API}/tags", {"name": "v1.0.0"}, status=201)
        result = _gateway(client).create_tag("v1.0.0", "c1", "Release v1.0.0")
        assert result == Ok(TagRecord("v1.0.0", "c1"))
        assert client.calls[-1][2] == {
            "tag_name": "v1.0.0",
            "target": "c1",
            "message": "Release v1.0.0",
        }

    def test_create_release(self) -> None:
        client = MockHttpClient()
        client.set_json(
            "POST", f"{API}/releases", {"id": 5, "tag_name": "v1.0.0", "draft": True}, status=201
        )
        result = _gateway(client).create_release(
            ReleaseRequest("v1.0.0", "v1.0.0", "notes", draft=True, make_latest=True)
        )
        assert isinstance(result, Ok)
        assert result.value.is_draft is True
        assert "make_latest" not in client.calls[-1][2]  # type: ignore[operator]


class TestCommits:
    def test_whole_history(self) -> None:
        client = MockHttpClient()
        client.set_json(
            "GET",
            f"{API}/commits?sha=main&stat=false&limit=50&page=1",
            [{"sha": "c1", "commit": {"message": "feat: x\n"}}],
        )
        result = _gateway(client).list_commits_since(None, "main")
        assert isinstance(result, Ok)
        assert result.value[0].message == "feat: x"
