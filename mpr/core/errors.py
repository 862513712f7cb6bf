"""Error codes for CLI exit status.

A pipeline run reports pass/fail per stage; the process itself exits with one
of these codes so callers (CI hosts, shell scripts) can tell failure classes
apart without parsing output.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    These values are used as process exit codes and should remain stable:
    - 0: Success (every stage succeeded or was skipped by its gate)
    - 1: User error (bad option, missing module name)
    - 2: Environment error (shallow history, missing tool, channel busy)
    - 3: Build error (a stage failed or was blocked)
    - 4: Network error (store or host API unreachable after retries)
    - 5: I/O error (artifact missing, file not writable)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    BUILD_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK
