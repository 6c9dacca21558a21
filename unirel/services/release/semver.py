from __future__ import annotations

import re
from dataclasses import dataclass

from unirel.services.release.model import BumpKind


_SEMVER_RE = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[A-Za-z-][0-9A-Za-z-]*)(?:\.(?:0|[1-9]\d*|\d*[A-Za-z-][0-9A-Za-z-]*))*))?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)


def _pre_key(pre: str | None) -> tuple[tuple[int, int | str], ...]:
    # Numeric identifiers sort before alphanumeric ones.
    if pre is None:
        return ()
    key: list[tuple[int, int | str]] = []
    for ident in pre.split("."):
        if ident.isdigit():
            key.append((0, int(ident)))
        else:
            key.append((1, ident))
    return tuple(key)


@dataclass(frozen=True, slots=True)
class SemVer:
    """A semantic version. Build metadata is dropped on parse."""

    major: int
    minor: int
    patch: int
    pre: str | None = None

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{self.pre}" if self.pre else base

    def _key(self) -> tuple[int, int, int, int, tuple[tuple[int, int | str], ...]]:
        # A pre-release has lower precedence than its release.
        return (self.major, self.minor, self.patch, 0 if self.pre else 1, _pre_key(self.pre))

    def __lt__(self, other: SemVer) -> bool:
        return self._key() < other._key()

    def __le__(self, other: SemVer) -> bool:
        return self._key() <= other._key()

    def __gt__(self, other: SemVer) -> bool:
        return self._key() > other._key()

    def __ge__(self, other: SemVer) -> bool:
        return self._key() >= other._key()

    @property
    def is_prerelease(self) -> bool:
        return self.pre is not None

    def bump(self, kind: BumpKind) -> SemVer:
        match kind:
            case "major":
                return SemVer(self.major + 1, 0, 0)
            case "minor":
                return SemVer(self.major, self.minor + 1, 0)
            case "patch":
                return SemVer(self.major, self.minor, self.patch + 1)
            case "none":
                return self
            case _:
                raise AssertionError(f"unexpected bump kind: {kind}")

    def next_prerelease(self) -> SemVer:
        """``1.0.0-rc.1`` -> ``1.0.0-rc.2``; ``1.0.0-rc`` -> ``1.0.0-rc.1``."""
        if self.pre is None:
            raise ValueError(f"{self} is not a pre-release")
        idents = self.pre.split(".")
        for i in range(len(idents) - 1, -1, -1):
            if idents[i].isdigit():
                idents[i] = str(int(idents[i]) + 1)
                return SemVer(self.major, self.minor, self.patch, ".".join(idents))
        return SemVer(self.major, self.minor, self.patch, f"{self.pre}.1")


def parse_version(text: str) -> SemVer | None:
    """Parse ``1.2.3``, ``v1.2.3`` or ``1.2.3-rc.1+build``."""
    m = _SEMVER_RE.match(text.strip())
    if m is None:
        return None
    return SemVer(int(m.group(1)), int(m.group(2)), int(m.group(3)), m.group(4))
