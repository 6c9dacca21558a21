"""HTTP transport for forge REST APIs.

This module provides:
- HttpClient: Protocol for raw HTTP requests (injectable for tests)
- RealHttpClient: Real implementation using urllib
- MockHttpClient: Scripted responses for tests
- ForgeTransport: JSON calls with auth, retry/backoff and error classification
"""

from __future__ import annotations

import json
import ssl
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass, field
from time import sleep
from typing import Protocol, runtime_checkable

from unirel import __version__
from unirel.core.result import Err, Ok, Result
from unirel.forge.gateway import GatewayError, GatewayErrorKind
from unirel.output.console import ConsoleProtocol, Style
from unirel.services.release.timeouts import (
    FORGE_MAX_PAGES,
    FORGE_RETRY_ATTEMPTS,
    FORGE_RETRY_BASE_DELAY_SECONDS,
    FORGE_RETRY_MAX_DELAY_SECONDS,
    FORGE_TIMEOUT_SECONDS,
)

__all__ = [
    "ForgeTransport",
    "HttpClient",
    "HttpError",
    "HttpResponse",
    "MockHttpClient",
    "RealHttpClient",
    "classify_http_error",
]


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status: int
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict[str, str])


@dataclass(frozen=True, slots=True)
class HttpError:
    """HTTP error details.

    Attributes:
        url: The URL that failed
        status: HTTP status code (0 for network errors and timeouts)
        message: Human-readable error message
        headers: Response headers (lowercased names)
        body: Response body text, if any
    """

    url: str
    status: int
    message: str
    headers: Mapping[str, str] = field(default_factory=dict[str, str])
    body: str = ""

    def __str__(self) -> str:
        if self.status:
            return f"HTTP {self.status}: {self.message} ({self.url})"
        return f"{self.message} ({self.url})"


@runtime_checkable
class HttpClient(Protocol):
    """Protocol for HTTP operations."""

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        body: bytes | None = None,
        timeout: float = FORGE_TIMEOUT_SECONDS,
    ) -> Result[HttpResponse, HttpError]:
        """Send a request; any non-2xx status is an Err."""
        ...


class RealHttpClient:
    """Real HTTP client using urllib."""

    def __init__(self) -> None:
        self._ssl_context = ssl.create_default_context()

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        body: bytes | None = None,
        timeout: float = FORGE_TIMEOUT_SECONDS,
    ) -> Result[HttpResponse, HttpError]:
        req = urllib.request.Request(url, data=body, headers=dict(headers), method=method)
        try:
            with urllib.request.urlopen(req, timeout=timeout, context=self._ssl_context) as resp:
                return Ok(
                    HttpResponse(
                        status=resp.status,
                        body=resp.read(),
                        headers={k.lower(): v for k, v in resp.headers.items()},
                    )
                )
        except urllib.error.HTTPError as e:
            try:
                text = e.read().decode("utf-8", errors="replace")
            except OSError:
                text = ""
            hdrs = {k.lower(): v for k, v in e.headers.items()} if e.headers else {}
            return Err(
                HttpError(url=url, status=e.code, message=str(e.reason), headers=hdrs, body=text)
            )
        except urllib.error.URLError as e:
            return Err(HttpError(url=url, status=0, message=str(e.reason)))
        except TimeoutError:
            return Err(HttpError(url=url, status=0, message="Request timed out"))
        except ValueError as e:
            return Err(HttpError(url=url, status=0, message=str(e)))
        except OSError as e:
            return Err(HttpError(url=url, status=0, message=str(e)))


class MockHttpClient:
    """Mock HTTP client for testing.

    Responses are queued per (method, url). The last queued response keeps
    being returned once the queue is down to one; unknown URLs get a 404.

    Usage:
        client = MockHttpClient()
        client.set_json("GET", "https://api.example.com/x", {"key": "value"})
        client.set_error("POST", "https://api.example.com/y", 502, "Bad Gateway")
    """

    def __init__(self) -> None:
        self._responses: dict[tuple[str, str], list[HttpResponse | HttpError]] = {}
        self.calls: list[tuple[str, str, object]] = []

    def set_json(self, method: str, url: str, payload: object, *, status: int = 200) -> None:
        body = json.dumps(payload).encode("utf-8")
        response = HttpResponse(status=status, body=body)
        self._responses.setdefault((method, url), []).append(response)

    def set_raw(self, method: str, url: str, body: bytes, *, status: int = 200) -> None:
        response = HttpResponse(status=status, body=body)
        self._responses.setdefault((method, url), []).append(response)

    def set_error(
        self,
        method: str,
        url: str,
        status: int,
        message: str = "error",
        *,
        headers: Mapping[str, str] | None = None,
        body: str = "",
    ) -> None:
        error = HttpError(
            url=url, status=status, message=message, headers=dict(headers or {}), body=body
        )
        self._responses.setdefault((method, url), []).append(error)

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        body: bytes | None = None,
        timeout: float = FORGE_TIMEOUT_SECONDS,
    ) -> Result[HttpResponse, HttpError]:
        payload: object = json.loads(body.decode("utf-8")) if body else None
        self.calls.append((method, url, payload))

        queue = self._responses.get((method, url))
        if not queue:
            return Err(HttpError(url=url, status=404, message="Not found (mock)"))
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, HttpError):
            return Err(response)
        return Ok(response)

    def methods(self) -> list[str]:
        """``METHOD url`` for every call, in order."""
        return [f"{m} {u}" for m, u, _ in self.calls]


def _is_rate_limited(error: HttpError) -> bool:
    if "retry-after" in error.headers:
        return True
    if error.headers.get("x-ratelimit-remaining") == "0":
        return True
    return "rate limit" in error.body.lower()


def classify_http_error(error: HttpError) -> GatewayErrorKind:
    """Map an HTTP failure onto a gateway error kind."""
    status = error.status
    body = error.body.lower()
    if status == 0 or status >= 500 or status == 429:
        return "transient"
    if status == 403 and _is_rate_limited(error):
        return "transient"
    if status == 409:
        return "conflict"
    if status in (400, 422) and ("already exists" in body or "already_exists" in body):
        return "conflict"
    if status == 404:
        return "not_found"
    if status in (401, 403):
        return "auth"
    return "failed"


def _retry_after(error: HttpError) -> float | None:
    value = error.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class ForgeTransport:
    """JSON-over-HTTP calls against one forge API root.

    Transient failures are retried with exponential backoff
    (``base * 2**attempt``, capped, ``Retry-After`` wins when present).
    Everything else is returned immediately as a classified GatewayError.
    """

    def __init__(
        self,
        *,
        api_root: str,
        auth_headers: Mapping[str, str],
        console: ConsoleProtocol,
        client: HttpClient | None = None,
        retry_attempts: int = FORGE_RETRY_ATTEMPTS,
        base_delay: float = FORGE_RETRY_BASE_DELAY_SECONDS,
        max_delay: float = FORGE_RETRY_MAX_DELAY_SECONDS,
        timeout: float = FORGE_TIMEOUT_SECONDS,
    ) -> None:
        self.api_root = api_root if api_root.endswith("/") else api_root + "/"
        self._headers = {
            "Accept": "application/json",
            "User-Agent": f"unirel/{__version__}",
            **auth_headers,
        }
        self._console = console
        self._client = client or RealHttpClient()
        self._attempts = max(1, retry_attempts)
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._timeout = timeout

    def url(self, path: str, params: Mapping[str, object] | None = None) -> str:
        url = self.api_root + path.lstrip("/")
        if params:
            query = urllib.parse.urlencode({k: str(v) for k, v in params.items()})
            url = f"{url}?{query}"
        return url

    def get(
        self, path: str, params: Mapping[str, object] | None = None
    ) -> Result[object, GatewayError]:
        return self.call("GET", path, params=params)

    def get_optional(
        self, path: str, params: Mapping[str, object] | None = None
    ) -> Result[object | None, GatewayError]:
        """GET that maps 404 to Ok(None)."""
        result = self.get(path, params)
        if isinstance(result, Err) and result.error.kind == "not_found":
            return Ok(None)
        return result

    def get_pages(
        self,
        path: str,
        params: Mapping[str, object] | None = None,
        *,
        page_size: int = 100,
        size_param: str = "per_page",
        max_items: int | None = None,
    ) -> Result[list[object], GatewayError]:
        """Follow ``page=N`` pagination until a short page."""
        items: list[object] = []
        for page in range(1, FORGE_MAX_PAGES + 1):
            query = {**(params or {}), size_param: page_size, "page": page}
            result = self.get(path, query)
            if isinstance(result, Err):
                return result
            if not isinstance(result.value, list):
                return Err(self._invalid(path, "expected a JSON array"))
            items.extend(result.value)
            if len(result.value) < page_size:
                break
            if max_items is not None and len(items) >= max_items:
                break
        return Ok(items)

    def send(
        self, method: str, path: str, payload: Mapping[str, object]
    ) -> Result[object, GatewayError]:
        return self.call(method, path, payload=payload)

    def call(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, object] | None = None,
        payload: Mapping[str, object] | None = None,
    ) -> Result[object, GatewayError]:
        url = self.url(path, params)
        headers = dict(self._headers)
        body: bytes | None = None
        if payload is not None:
            body = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"

        for attempt in range(self._attempts):
            self._console.print(f"{method} {url}", Style.DIM)
            result = self._client.request(
                method, url, headers=headers, body=body, timeout=self._timeout
            )
            if isinstance(result, Ok):
                return self._decode(url, result.value)

            error = result.error
            kind = classify_http_error(error)
            if kind == "transient" and attempt < self._attempts - 1:
                delay = self._delay(attempt, error)
                self._console.print(f"retrying in {delay:.1f}s after {error}", Style.DIM)
                sleep(delay)
                continue
            return Err(
                GatewayError(kind=kind, message=_message(error), status=error.status, url=url)
            )

        return Err(GatewayError(kind="transient", message="retries exhausted", url=url))

    def _delay(self, attempt: int, error: HttpError) -> float:
        hinted = _retry_after(error)
        if hinted is not None:
            return min(hinted, self._max_delay)
        return min(self._base_delay * (2**attempt), self._max_delay)

    def _decode(self, url: str, response: HttpResponse) -> Result[object, GatewayError]:
        if not response.body.strip():
            return Ok(None)
        try:
            return Ok(json.loads(response.body.decode("utf-8")))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return Err(self._invalid(url, f"JSON parse error: {e}"))

    def _invalid(self, url: str, message: str) -> GatewayError:
        return GatewayError(kind="invalid_response", message=message, url=url)


def _message(error: HttpError) -> str:
    try:
        data: object = json.loads(error.body) if error.body else None
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict):
        detail = data.get("message") or data.get("error")
        if isinstance(detail, str) and detail:
            return detail
    return error.message
