from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ReleaseErrorKind = Literal[
    "invalid_config",
    "invalid_input",
    "invalid_manifest",
    "git_failed",
    "io_failed",
    "auth_failed",
    "network_failed",
    "conflict",
    "run_failed",
]


@dataclass(frozen=True, slots=True)
class ReleaseError:
    """A release run that cannot continue.

    ``step`` names the gateway or git step that failed so the CLI can tell
    the user where a partially converged run stopped.
    """

    kind: ReleaseErrorKind
    message: str
    hint: str | None = None
    step: str | None = None

    def __str__(self) -> str:
        if self.step:
            return f"{self.step}: {self.message}"
        return self.message
