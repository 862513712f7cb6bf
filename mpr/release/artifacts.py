"""Write-once artifact store.

The only channel between stages. A producer stores files under a name; any
number of consumers read them back. Names are never overwritten within a
store, and each artifact expires after its retention period.

Layout::

    <root>/<name>/.artifact.json
    <root>/<name>/<relpath...>

An artifact becomes visible atomically: files are copied into a hidden
staging directory which is renamed into place once the manifest is written.
"""

from __future__ import annotations

import json
import shutil
import uuid
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from fnmatch import fnmatchcase
from pathlib import Path

from mpr.core.result import Err, Ok, Result
from mpr.core.structured import as_obj_list, as_str_dict, get_int, get_str
from mpr.release.errors import StageError
from mpr.release.model import ArtifactPlatform, BuildArtifact

MANIFEST_NAME = ".artifact.json"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ArtifactStore:
    def __init__(
        self,
        root: Path,
        *,
        default_retention_days: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.root = root
        self.default_retention_days = default_retention_days
        self._clock = clock

    def put(
        self,
        name: str,
        files: Sequence[tuple[Path, str]],
        *,
        platform: ArtifactPlatform | None = None,
        variant: str = "",
        retention_days: int | None = None,
    ) -> Result[BuildArtifact, StageError]:
        """Store ``(source, relpath)`` pairs under ``name``.

        Fails with ``missing_artifact`` when there is nothing to store and
        with ``artifact_exists`` when the name was already written.
        """
        if not files:
            return Err(
                StageError(
                    kind="missing_artifact",
                    message=f"no files to store for artifact '{name}'",
                )
            )
        final = self.root / name
        if final.exists():
            return Err(self._exists(name))

        retention = retention_days if retention_days is not None else self.default_retention_days
        created = self._clock()
        staging = self.root / f".{name}.{uuid.uuid4().hex}.tmp"
        try:
            staging.mkdir(parents=True)
            rels: list[str] = []
            for src, rel in files:
                dest = staging / rel
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(src, dest)
                rels.append(Path(rel).as_posix())
            manifest = {
                "name": name,
                "platform": platform,
                "variant": variant,
                "retention_days": retention,
                "created_at": created.isoformat(),
                "files": sorted(rels),
            }
            (staging / MANIFEST_NAME).write_text(
                json.dumps(manifest, indent=2) + "\n", encoding="utf-8"
            )
            # Rename fails if another writer got there first.
            staging.rename(final)
        except FileExistsError:
            shutil.rmtree(staging, ignore_errors=True)
            return Err(self._exists(name))
        except OSError as e:
            shutil.rmtree(staging, ignore_errors=True)
            if final.exists():
                return Err(self._exists(name))
            return Err(StageError(kind="io_failed", message=f"failed to store '{name}': {e}"))

        return Ok(
            BuildArtifact(
                name=name,
                platform=platform,
                variant=variant,
                root=final,
                files=tuple(final / r for r in sorted(rels)),
                retention_days=retention,
                created_at=created,
            )
        )

    def put_dir(
        self,
        name: str,
        src_dir: Path,
        *,
        platform: ArtifactPlatform | None = None,
        variant: str = "",
        retention_days: int | None = None,
    ) -> Result[BuildArtifact, StageError]:
        """Store every file below ``src_dir``, keeping relative paths."""
        if not src_dir.is_dir():
            return Err(
                StageError(
                    kind="missing_artifact",
                    message=f"output directory not found for '{name}'",
                    hint=str(src_dir),
                )
            )
        files = [
            (p, p.relative_to(src_dir).as_posix())
            for p in sorted(src_dir.rglob("*"))
            if p.is_file()
        ]
        return self.put(
            name, files, platform=platform, variant=variant, retention_days=retention_days
        )

    def put_text(self, name: str, filename: str, text: str) -> Result[BuildArtifact, StageError]:
        staging = self.root / f".{name}.{uuid.uuid4().hex}.src"
        try:
            staging.mkdir(parents=True)
            src = staging / filename
            src.write_text(text, encoding="utf-8")
            return self.put(name, [(src, filename)])
        except OSError as e:
            return Err(StageError(kind="io_failed", message=f"failed to store '{name}': {e}"))
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    def get(self, name: str) -> Result[BuildArtifact, StageError]:
        """Read an artifact back. Expired artifacts count as missing."""
        root = self.root / name
        manifest_path = root / MANIFEST_NAME
        if not manifest_path.is_file():
            return Err(
                StageError(
                    kind="missing_artifact",
                    message=f"artifact not found: {name}",
                    hint="Was the producing stage skipped or did it fail?",
                )
            )
        artifact = self._load(name, root, manifest_path)
        if isinstance(artifact, Err):
            return artifact
        if self._is_expired(artifact.value):
            return Err(
                StageError(
                    kind="missing_artifact",
                    message=f"artifact expired: {name}",
                    hint=f"retention was {artifact.value.retention_days} day(s)",
                )
            )
        return artifact

    def read_text(self, name: str, filename: str) -> Result[str, StageError]:
        artifact = self.get(name)
        if isinstance(artifact, Err):
            return artifact
        path = artifact.value.file(filename)
        if path is None:
            return Err(
                StageError(kind="missing_artifact", message=f"{name} has no file {filename}")
            )
        try:
            return Ok(path.read_text(encoding="utf-8"))
        except OSError as e:
            return Err(StageError(kind="io_failed", message=f"failed to read {path}: {e}"))

    def names(self, pattern: str = "*") -> list[str]:
        """Names of stored artifacts matching a glob pattern."""
        if not self.root.is_dir():
            return []
        return sorted(
            p.name
            for p in self.root.iterdir()
            if p.is_dir()
            and not p.name.startswith(".")
            and (p / MANIFEST_NAME).is_file()
            and fnmatchcase(p.name, pattern)
        )

    def purge_expired(self) -> list[str]:
        """Delete expired artifacts. Returns the names removed."""
        removed: list[str] = []
        for name in self.names():
            root = self.root / name
            loaded = self._load(name, root, root / MANIFEST_NAME)
            if isinstance(loaded, Ok) and not self._is_expired(loaded.value):
                continue
            shutil.rmtree(root, ignore_errors=True)
            removed.append(name)
        return removed

    def _is_expired(self, artifact: BuildArtifact) -> bool:
        expires = artifact.created_at + timedelta(days=artifact.retention_days)
        return self._clock() >= expires

    def _exists(self, name: str) -> StageError:
        return StageError(
            kind="artifact_exists",
            message=f"artifact already stored: {name}",
            hint="Artifacts are write-once; use a new store for a new run",
        )

    def _load(self, name: str, root: Path, manifest_path: Path) -> Result[BuildArtifact, StageError]:
        try:
            data_obj: object = json.loads(manifest_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            return Err(StageError(kind="io_failed", message=f"unreadable manifest for {name}: {e}"))

        data = as_str_dict(data_obj)
        files_obj = as_obj_list(data.get("files")) if data is not None else None
        created_raw = get_str(data, "created_at") if data is not None else None
        if data is None or files_obj is None or created_raw is None:
            return Err(StageError(kind="io_failed", message=f"invalid manifest for {name}"))

        try:
            created = datetime.fromisoformat(created_raw)
        except ValueError:
            return Err(StageError(kind="io_failed", message=f"invalid created_at for {name}"))

        retention = get_int(data, "retention_days")
        platform = get_str(data, "platform")
        return Ok(
            BuildArtifact(
                name=name,
                platform=platform if platform in ("android", "ios", "desktop", "web") else None,  # type: ignore[arg-type]
                variant=get_str(data, "variant") or "",
                root=root,
                files=tuple(root / str(f) for f in files_obj if isinstance(f, str)),
                retention_days=retention if retention is not None else self.default_retention_days,
                created_at=created,
            )
        )
