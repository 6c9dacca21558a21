"""Forge (git hosting provider) adapters.

Usage:
    from unirel.forge import make_gateway

    gateway = make_gateway(None, "git@github.com:acme/widgets.git", token, console)
    if gateway.is_ok():
        prs = gateway.unwrap().find_open_release_pr("unirel-")
"""

from .gateway import GatewayError, HostGateway, PrRequest, ReleaseRequest
from .gitea import GiteaGateway
from .github import GitHubGateway
from .gitlab import GitLabGateway
from .http import ForgeTransport, HttpClient, MockHttpClient, RealHttpClient
from .remote import FORGE_KINDS, ForgeKind, RemoteRepo, make_gateway, parse_remote_url

__all__ = [
    # gateway
    "GatewayError",
    "HostGateway",
    "PrRequest",
    "ReleaseRequest",
    # adapters
    "GiteaGateway",
    "GitHubGateway",
    "GitLabGateway",
    # transport
    "ForgeTransport",
    "HttpClient",
    "MockHttpClient",
    "RealHttpClient",
    # remote
    "FORGE_KINDS",
    "ForgeKind",
    "RemoteRepo",
    "make_gateway",
    "parse_remote_url",
]
