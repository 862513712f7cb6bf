"""Error types for release stages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

StageErrorKind = Literal[
    "missing_metadata",
    "missing_artifact",
    "artifact_exists",
    "shallow_history",
    "version_file_missing",
    "secret_missing",
    "secret_invalid",
    "tool_failed",
    "upload_failed",
    "invalid_input",
    "graph_invalid",
    "lock_busy",
    "cancelled",
    "io_failed",
    "unexpected",
]


@dataclass(frozen=True, slots=True)
class StageError:
    """Canonical error payload for stages and the services around them.

    Rendered by output adapters without importing stage internals.
    """

    kind: StageErrorKind
    message: str
    hint: str | None = None

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message
