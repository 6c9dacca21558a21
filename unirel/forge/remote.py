"""Remote URL parsing and gateway construction."""

from __future__ import annotations

import re
import urllib.parse
from dataclasses import dataclass
from typing import Literal

from unirel.core.result import Err, Ok, Result
from unirel.forge.gateway import HostGateway
from unirel.forge.gitea import GiteaGateway
from unirel.forge.github import GitHubGateway
from unirel.forge.gitlab import GitLabGateway
from unirel.forge.http import ForgeTransport, HttpClient
from unirel.output.console import ConsoleProtocol

ForgeKind = Literal["github", "gitea", "gitlab"]
FORGE_KINDS: tuple[ForgeKind, ...] = ("github", "gitea", "gitlab")

# git@host:owner/repo(.git)
_SCP_RE = re.compile(r"^(?:[\w.-]+@)?(?P<host>[\w.-]+):(?P<path>[^/].*)$")


@dataclass(frozen=True, slots=True)
class RemoteRepo:
    """A repository on a forge: ``host`` plus ``owner/name`` path.

    ``path`` may contain nested groups on GitLab (``group/sub/repo``).
    """

    scheme: str
    host: str
    path: str

    @property
    def owner(self) -> str:
        return self.path.rsplit("/", 1)[0]

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def web_root(self) -> str:
        return f"{self.scheme}://{self.host}"


def parse_remote_url(url: str) -> Result[RemoteRepo, str]:
    text = url.strip()
    if not text:
        return Err("empty remote URL")

    if "://" in text:
        parsed = urllib.parse.urlparse(text)
        host = parsed.hostname or ""
        if parsed.port and parsed.scheme in ("http", "https"):
            host = f"{host}:{parsed.port}"
        scheme = "http" if parsed.scheme == "http" else "https"
        path = parsed.path
    else:
        m = _SCP_RE.match(text)
        if m is None:
            return Err(f"unrecognized remote URL: {url}")
        host = m.group("host")
        scheme = "https"
        path = m.group("path")

    path = path.strip("/")
    path = path.removesuffix(".git")
    if not host or "/" not in path:
        return Err(f"remote URL has no owner/repository path: {url}")
    return Ok(RemoteRepo(scheme=scheme, host=host, path=path))


def detect_forge(host: str) -> ForgeKind | None:
    lowered = host.lower()
    if "github" in lowered:
        return "github"
    if "gitlab" in lowered:
        return "gitlab"
    if "gitea" in lowered or "codeberg" in lowered or "forgejo" in lowered:
        return "gitea"
    return None


def api_root(kind: ForgeKind, remote: RemoteRepo) -> str:
    if kind == "github":
        if remote.host == "github.com":
            return "https://api.github.com/"
        return f"{remote.web_root}/api/v3/"
    if kind == "gitea":
        return f"{remote.web_root}/api/v1/"
    return f"{remote.web_root}/api/v4/"


def auth_headers(kind: ForgeKind, token: str) -> dict[str, str]:
    if not token:
        return {}
    if kind == "github":
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
    if kind == "gitea":
        return {"Authorization": f"token {token}"}
    return {"PRIVATE-TOKEN": token}


def make_gateway(
    kind: ForgeKind | None,
    repo_url: str,
    token: str,
    console: ConsoleProtocol,
    client: HttpClient | None = None,
) -> Result[HostGateway, str]:
    """Build the adapter for ``repo_url``; ``kind`` None means detect from host."""
    parsed = parse_remote_url(repo_url)
    if isinstance(parsed, Err):
        return parsed
    remote = parsed.value

    forge = kind or detect_forge(remote.host)
    if forge is None:
        return Err(f"cannot tell which forge hosts {remote.host}; pass --forge")

    transport = ForgeTransport(
        api_root=api_root(forge, remote),
        auth_headers=auth_headers(forge, token),
        console=console,
        client=client,
    )
    match forge:
        case "github":
            return Ok(GitHubGateway(transport, remote.owner, remote.name))
        case "gitea":
            return Ok(GiteaGateway(transport, remote.owner, remote.name))
        case "gitlab":
            return Ok(GitLabGateway(transport, remote.path))
