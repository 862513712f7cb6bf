"""External tool invocation.

Stages never build, sign or upload anything themselves; they ask Gradle,
Fastlane or the GitHub CLI to do it. ``ToolRunner`` is the seam: production
runs real subprocesses, tests record calls.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from mpr.core.config import ToolsConfig
from mpr.core.result import Err, Ok, Result
from mpr.platform.process import ProcessError, merged_env
from mpr.platform.process import run as run_process
from mpr.release.errors import StageError, StageErrorKind
from mpr.release.timeouts import BUNDLE_INSTALL_TIMEOUT_SECONDS, GH_TIMEOUT_SECONDS

FASTLANE_PLUGINS = ("firebase_app_distribution", "increment_build_number")


class ToolRunner(Protocol):
    def run(
        self,
        cmd: list[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Result[str, ProcessError]: ...


class SubprocessToolRunner:
    """Runs commands for real, overlaying ``env`` on the current environment."""

    def run(
        self,
        cmd: list[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Result[str, ProcessError]:
        return run_process(cmd, cwd=cwd, env=merged_env(env), timeout=timeout)


@dataclass
class ToolSession:
    """Tool commands bound to one project checkout and one runner.

    Failures are mapped to ``StageError(kind="tool_failed")`` carrying the
    tail of the tool's output as hint.
    """

    runner: ToolRunner
    tools: ToolsConfig
    cwd: Path
    _fastlane_ready: bool = field(default=False, init=False)
    _fastlane_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def gradle(self, *args: str, env: Mapping[str, str] | None = None) -> Result[str, StageError]:
        return self._call(
            [*self.tools.gradle, *args],
            label=f"gradle {' '.join(args)}",
            env=env,
            timeout=self.tools.gradle_timeout,
        )

    def fastlane(
        self,
        *lane: str,
        env: Mapping[str, str] | None = None,
        kind: StageErrorKind = "tool_failed",
    ) -> Result[str, StageError]:
        ready = self.ensure_fastlane()
        if isinstance(ready, Err):
            return ready
        return self._call(
            [*self.tools.fastlane, *lane],
            label=f"fastlane {' '.join(lane)}",
            env=env,
            timeout=self.tools.fastlane_timeout,
            kind=kind,
        )

    def gh(
        self,
        *args: str,
        env: Mapping[str, str] | None = None,
        timeout: float = GH_TIMEOUT_SECONDS,
    ) -> Result[str, StageError]:
        label = f"gh {' '.join(args[:2])}".strip()
        return self._call([*self.tools.gh, *args], label=label, env=env, timeout=timeout)

    def ensure_fastlane(self) -> Result[None, StageError]:
        """Install the Fastlane bundle and plugins once per run.

        Only applies when Fastlane is invoked through bundler.
        """
        if self.tools.fastlane[:2] != ("bundle", "exec"):
            return Ok(None)
        with self._fastlane_lock:
            if self._fastlane_ready:
                return Ok(None)
            install = self._call(
                ["bundle", "install", "--jobs", "4", "--retry", "3"],
                label="bundle install",
                timeout=BUNDLE_INSTALL_TIMEOUT_SECONDS,
            )
            if isinstance(install, Err):
                return install
            for plugin in FASTLANE_PLUGINS:
                added = self._call(
                    [*self.tools.fastlane, "add_plugin", plugin],
                    label=f"fastlane add_plugin {plugin}",
                    timeout=BUNDLE_INSTALL_TIMEOUT_SECONDS,
                )
                if isinstance(added, Err):
                    return added
            self._fastlane_ready = True
        return Ok(None)

    def _call(
        self,
        cmd: list[str],
        *,
        label: str,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        kind: StageErrorKind = "tool_failed",
    ) -> Result[str, StageError]:
        result = self.runner.run(cmd, cwd=self.cwd, env=env, timeout=timeout)
        if isinstance(result, Ok):
            return result
        e = result.error
        return Err(
            StageError(
                kind=kind,
                message=f"{label} failed (exit {e.returncode})",
                hint=e.tail() or None,
            )
        )
