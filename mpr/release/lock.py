"""Run-level channel locks.

At most one run per channel is in flight. Two policies exist:

- ``queue``: a second run waits for the first to finish (or gives up after a
  timeout). The in-flight run is never preempted. Used by release channels.
- ``cancel``: the newest run always proceeds; an older run notices it was
  superseded and stops scheduling new stages. Used by pull-request checks.

Locks are plain files under ``<project>/.mpr/locks``; a lock whose owning
process is gone is treated as stale and taken over by one waiter at a time.
"""

from __future__ import annotations

import json
import os
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from mpr.core.result import Err, Ok, Result
from mpr.core.structured import as_str_dict, get_int, get_str
from mpr.release.errors import StageError
from mpr.release.timeouts import LOCK_POLL_SECONDS, TAKEOVER_GUARD_STALE_SECONDS

LockMode = Literal["queue", "cancel"]

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def channel_filename(channel: str) -> str:
    return _UNSAFE.sub("_", channel).strip("_") or "default"


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


@dataclass
class ChannelLock:
    locks_dir: Path
    channel: str
    run_id: str
    mode: LockMode = "queue"
    pid: int = field(default_factory=os.getpid)
    is_alive: Callable[[int], bool] = _pid_alive
    _held: bool = field(default=False, init=False)

    @property
    def path(self) -> Path:
        suffix = "current" if self.mode == "cancel" else "lock"
        return self.locks_dir / f"{channel_filename(self.channel)}.{suffix}"

    def acquire(
        self,
        *,
        wait: bool = True,
        timeout: float = 3600.0,
        poll: float = LOCK_POLL_SECONDS,
        sleep_fn: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        on_wait: Callable[[str], None] | None = None,
    ) -> Result[None, StageError]:
        try:
            self.locks_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return Err(StageError(kind="io_failed", message=f"cannot create lock dir: {e}"))

        if self.mode == "cancel":
            return self._claim_latest()

        deadline = clock() + timeout
        announced = False
        while True:
            created = self._try_create()
            if isinstance(created, Err):
                return created
            if created.value:
                self._held = True
                return Ok(None)

            holder = self._read_holder()
            if holder is not None and not self.is_alive(holder[1]):
                # Owner died without releasing.
                took = self._take_over(holder)
                if isinstance(took, Err):
                    return took
                if took.value:
                    continue

            holder_id = holder[0] if holder is not None else "unknown"
            if not wait or clock() >= deadline:
                return Err(
                    StageError(
                        kind="lock_busy",
                        message=f"channel '{self.channel}' is busy (run {holder_id})",
                        hint="Wait for the in-flight run to finish",
                    )
                )
            if on_wait is not None and not announced:
                on_wait(holder_id)
                announced = True
            sleep_fn(poll)

    def is_superseded(self) -> bool:
        """True once a newer run claimed this channel (cancel mode only)."""
        if self.mode != "cancel":
            return False
        holder = self._read_holder()
        return holder is not None and holder[0] != self.run_id

    def release(self) -> None:
        if self.mode == "cancel":
            holder = self._read_holder()
            if holder is not None and holder[0] == self.run_id:
                self.path.unlink(missing_ok=True)
            return
        if self._held:
            self.path.unlink(missing_ok=True)
            self._held = False

    def _payload(self) -> str:
        return json.dumps({"run_id": self.run_id, "pid": self.pid, "started": time.time()})

    def _try_create(self) -> Result[bool, StageError]:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return Ok(False)
        except OSError as e:
            return Err(StageError(kind="io_failed", message=f"cannot create lock: {e}"))
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(self._payload())
        return Ok(True)

    @property
    def _guard_path(self) -> Path:
        return self.path.with_name(f"{self.path.name}.takeover")

    def _take_over(self, stale: tuple[str, int]) -> Result[bool, StageError]:
        """Remove a dead owner's lock.

        Only the waiter holding the takeover guard may delete, and only if the
        lock still names ``stale``. Another waiter may already have replaced
        it with a live lock between our read and now.

        Returns False while a different waiter holds the guard.
        """
        guard = self._guard_path
        try:
            fd = os.open(guard, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            self._clear_abandoned_guard()
            return Ok(False)
        except OSError as e:
            return Err(StageError(kind="io_failed", message=f"cannot take over lock: {e}"))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(self._payload())
            if self._read_holder() == stale:
                self.path.unlink(missing_ok=True)
        finally:
            guard.unlink(missing_ok=True)
        return Ok(True)

    def _clear_abandoned_guard(self) -> None:
        # The guard is held for one read and one unlink; an old one was left by
        # a waiter that died mid-takeover.
        guard = self._guard_path
        try:
            age = time.time() - guard.stat().st_mtime
        except OSError:
            return
        if age > TAKEOVER_GUARD_STALE_SECONDS:
            guard.unlink(missing_ok=True)

    def _claim_latest(self) -> Result[None, StageError]:
        tmp = self.path.with_name(f"{self.path.name}.{self.run_id}.tmp")
        try:
            tmp.write_text(self._payload(), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            return Err(StageError(kind="io_failed", message=f"cannot claim channel: {e}"))
        self._held = True
        return Ok(None)

    def _read_holder(self) -> tuple[str, int] | None:
        try:
            obj: object = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return None
        data = as_str_dict(obj)
        if data is None:
            return None
        run_id = get_str(data, "run_id")
        pid = get_int(data, "pid")
        if run_id is None or pid is None:
            return None
        return (run_id, pid)
