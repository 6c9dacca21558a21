"""PR fingerprint channel.

The release PR body carries a hidden HTML comment with a sha256 over the
desired title and body:

    <!-- unirel:fingerprint:<64 hex chars> -->

A run compares the fingerprint of the plan it just built with the one
stored in the open PR; equal fingerprints mean the PR is up to date.
"""

from __future__ import annotations

import hashlib
import re

MARKER_PREFIX = "<!-- unirel:fingerprint:"
_MARKER_RE = re.compile(r"\n*<!-- unirel:fingerprint:([0-9a-f]{64}) -->\s*$")
_ANY_MARKER_RE = re.compile(r"<!-- unirel:fingerprint:([0-9a-f]{64}) -->")


def fingerprint(title: str, body: str) -> str:
    """Content hash of a PR title and body (marker excluded)."""
    payload = f"{title.strip()}\n\x00\n{strip_marker(body).strip()}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def embed(body: str, value: str) -> str:
    """Return body with exactly one trailing fingerprint marker."""
    return f"{strip_marker(body).rstrip()}\n\n{MARKER_PREFIX}{value} -->\n"


def extract(body: str | None) -> str | None:
    if not body:
        return None
    # Forges may normalize line endings; take the last marker anywhere.
    found = _ANY_MARKER_RE.findall(body)
    return found[-1] if found else None


def strip_marker(body: str) -> str:
    body = _MARKER_RE.sub("", body)
    return _ANY_MARKER_RE.sub("", body)
