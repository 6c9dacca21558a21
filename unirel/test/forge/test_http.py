"""Tests for the forge HTTP transport."""

from __future__ import annotations

import pytest

from unirel.core.result import Err, Ok
from unirel.forge import http as http_mod
from unirel.forge.http import ForgeTransport, HttpError, MockHttpClient, classify_http_error
from unirel.output.console import MockConsole

ROOT = "https://forge.test/api/"


@pytest.fixture
def delays(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    slept: list[float] = []
    monkeypatch.setattr(http_mod, "sleep", slept.append)
    return slept


def _transport(client: MockHttpClient, **kwargs: object) -> ForgeTransport:
    return ForgeTransport(
        api_root=ROOT,
        auth_headers={"Authorization": "token t"},
        console=MockConsole(),
        client=client,
        **kwargs,  # type: ignore[arg-type]
    )


class TestClassify:
    @pytest.mark.parametrize(
        ("status", "body", "headers", "kind"),
        [
            (0, "", {}, "transient"),
            (500, "", {}, "transient"),
            (503, "", {}, "transient"),
            (429, "", {}, "transient"),
            (403, "", {"retry-after": "3"}, "transient"),
            (403, "", {"x-ratelimit-remaining": "0"}, "transient"),
            (403, "API rate limit exceeded", {}, "transient"),
            (403, "Resource not accessible", {}, "auth"),
            (401, "", {}, "auth"),
            (404, "", {}, "not_found"),
            (409, "", {}, "conflict"),
            (422, '{"message": "Reference already exists"}', {}, "conflict"),
            (422, '{"message": "Validation Failed"}', {}, "failed"),
            (400, "", {}, "failed"),
        ],
    )
    def test_kinds(self, status: int, body: str, headers: dict[str, str], kind: str) -> None:
        error = HttpError(url=ROOT, status=status, message="x", headers=headers, body=body)
        assert classify_http_error(error) == kind


class TestCall:
    def test_decodes_json_and_sends_headers(self) -> None:
        client = MockHttpClient()
        client.set_json("GET", f"{ROOT}repos/o/r", {"id": 1})
        transport = _transport(client)
        assert transport.get("/repos/o/r") == Ok({"id": 1})
        assert client.methods() == [f"GET {ROOT}repos/o/r"]

    def test_payload_is_json(self) -> None:
        client = MockHttpClient()
        client.set_json("POST", f"{ROOT}things", {"ok": True}, status=201)
        result = _transport(client).send("POST", "things", {"name": "v1"})
        assert result == Ok({"ok": True})
        assert client.calls[0][2] == {"name": "v1"}

    def test_empty_body_is_none(self) -> None:
        client = MockHttpClient()
        client.set_raw("DELETE", f"{ROOT}x", b"", status=204)
        assert _transport(client).call("DELETE", "x") == Ok(None)

    def test_invalid_json(self) -> None:
        client = MockHttpClient()
        client.set_raw("GET", f"{ROOT}x", b"<html>")
        result = _transport(client).get("x")
        assert isinstance(result, Err)
        assert result.error.kind == "invalid_response"

    def test_query_params(self) -> None:
        transport = _transport(MockHttpClient())
        assert transport.url("pulls", {"state": "open", "page": 2}) == (
            f"{ROOT}pulls?state=open&page=2"
        )

    def test_api_root_gets_trailing_slash(self) -> None:
        transport = ForgeTransport(
            api_root="https://forge.test/api",
            auth_headers={},
            console=MockConsole(),
            client=MockHttpClient(),
        )
        assert transport.url("x") == "https://forge.test/api/x"


class TestRetry:
    def test_retries_transient_then_succeeds(self, delays: list[float]) -> None:
        client = MockHttpClient()
        url = f"{ROOT}x"
        client.set_error("GET", url, 503, "Service Unavailable")
        client.set_error("GET", url, 502, "Bad Gateway")
        client.set_json("GET", url, [1])
        result = _transport(client, base_delay=1.0).get("x")
        assert result == Ok([1])
        assert delays == [1.0, 2.0]
        assert len(client.calls) == 3

    def test_gives_up_after_attempts(self, delays: list[float]) -> None:
        client = MockHttpClient()
        client.set_error("GET", f"{ROOT}x", 500, "boom")
        result = _transport(client, retry_attempts=3).get("x")
        assert isinstance(result, Err)
        assert result.error.kind == "transient"
        assert result.error.status == 500
        assert len(client.calls) == 3
        assert len(delays) == 2

    def test_retry_after_wins_and_is_capped(self, delays: list[float]) -> None:
        client = MockHttpClient()
        url = f"{ROOT}x"
        client.set_error("GET", url, 429, "slow down", headers={"retry-after": "7"})
        client.set_error("GET", url, 429, "slow down", headers={"retry-after": "90"})
        client.set_json("GET", url, {})
        _transport(client, max_delay=30.0).get("x")
        assert delays == [7.0, 30.0]

    def test_no_retry_on_client_errors(self, delays: list[float]) -> None:
        client = MockHttpClient()
        client.set_error("GET", f"{ROOT}x", 404, "Not Found")
        result = _transport(client).get("x")
        assert isinstance(result, Err)
        assert result.error.kind == "not_found"
        assert delays == []
        assert len(client.calls) == 1

    def test_error_message_from_body(self, delays: list[float]) -> None:
        client = MockHttpClient()
        client.set_error("POST", f"{ROOT}x", 422, "Unprocessable", body='{"message": "bad"}')
        result = _transport(client).send("POST", "x", {})
        assert isinstance(result, Err)
        assert result.error.message == "bad"
        assert str(result.error) == "HTTP 422: bad"


class TestPages:
    def test_follows_pages_until_short_page(self) -> None:
        client = MockHttpClient()
        client.set_json("GET", f"{ROOT}items?state=open&per_page=2&page=1", [1, 2])
        client.set_json("GET", f"{ROOT}items?state=open&per_page=2&page=2", [3])
        result = _transport(client).get_pages("items", {"state": "open"}, page_size=2)
        assert result == Ok([1, 2, 3])

    def test_max_items_stops_early(self) -> None:
        client = MockHttpClient()
        client.set_json("GET", f"{ROOT}items?limit=2&page=1", [1, 2])
        result = _transport(client).get_pages("items", page_size=2, size_param="limit", max_items=2)
        assert result == Ok([1, 2])
        assert len(client.calls) == 1

    def test_rejects_non_list(self) -> None:
        client = MockHttpClient()
        client.set_json("GET", f"{ROOT}items?per_page=100&page=1", {"items": []})
        result = _transport(client).get_pages("items")
        assert isinstance(result, Err)
        assert result.error.kind == "invalid_response"

    def test_get_optional_maps_404(self) -> None:
        assert _transport(MockHttpClient()).get_optional("missing") == Ok(None)
