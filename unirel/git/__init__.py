"""Git operations module.

Repository wraps the git CLI for the reads release planning needs (history,
tags, HEAD, remote) and the writes used to publish the release branch.
"""

from .repository import GitError, Repository

__all__ = [
    "GitError",
    "Repository",
]
