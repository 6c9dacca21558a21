"""Error codes for CLI exit status.

Commands exit with one of these codes. A no-op run (nothing to release,
everything already released) is a success.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    These values are used as process exit codes and should remain stable:
    - 0: Success, including "nothing to do"
    - 1: User error (bad input, invalid arguments)
    - 2: Environment error (not a git repository, missing token)
    - 3: Config error (invalid unirel.toml)
    - 4: Network error (forge unreachable after retries)
    - 5: I/O error (manifest or changelog write failed)
    - 6: Conflict (remote state diverged and could not be reconciled)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    CONFIG_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5
    CONFLICT = 6

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK
