"""Scoped signing and publishing credentials.

Secrets are read once from the environment into frozen values and handed to
the stages that need them. Nothing here is process-global: a stage only sees
the keystore it signs with and writes credential files only into its own
module directory.
"""

from __future__ import annotations

import base64
import binascii
import shutil
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from mpr.core.result import Err, Ok, Result
from mpr.release.errors import StageError

KEYSTORE_FILENAME = "release_keystore.keystore"
GOOGLE_SERVICES_FILENAME = "google-services.json"
PLAYSTORE_CREDS_FILENAME = "playStorePublishServiceCredentialsFile.json"
FIREBASE_CREDS_FILENAME = "firebaseAppDistributionServiceCredentialsFile.json"
MOCK_GOOGLE_SERVICES = Path(".github") / "mock-google-services.json"


@dataclass(frozen=True, slots=True)
class KeystoreSecrets:
    """A signing keystore (base64) and the values needed to unlock it."""

    file_b64: str | None = field(default=None, repr=False)
    password: str | None = field(default=None, repr=False)
    alias: str | None = field(default=None, repr=False)
    alias_password: str | None = field(default=None, repr=False)

    @classmethod
    def from_env(cls, environ: Mapping[str, str], prefix: str) -> KeystoreSecrets:
        return cls(
            file_b64=_env(environ, f"{prefix}_KEYSTORE_FILE"),
            password=_env(environ, f"{prefix}_KEYSTORE_FILE_PASSWORD"),
            alias=_env(environ, f"{prefix}_KEYSTORE_ALIAS"),
            alias_password=_env(environ, f"{prefix}_KEYSTORE_ALIAS_PASSWORD"),
        )

    def env(self) -> dict[str, str]:
        """Variables the Gradle signing config reads."""
        out: dict[str, str] = {}
        if self.password is not None:
            out["KEYSTORE_PASSWORD"] = self.password
        if self.alias is not None:
            out["KEYSTORE_ALIAS"] = self.alias
        if self.alias_password is not None:
            out["KEYSTORE_ALIAS_PASSWORD"] = self.alias_password
        return out


@dataclass(frozen=True, slots=True)
class NotarizationSecrets:
    apple_id: str | None = field(default=None, repr=False)
    password: str | None = field(default=None, repr=False)
    team_id: str | None = field(default=None, repr=False)

    def env(self) -> dict[str, str]:
        out: dict[str, str] = {}
        if self.apple_id is not None:
            out["NOTARIZATION_APPLE_ID"] = self.apple_id
        if self.password is not None:
            out["NOTARIZATION_PASSWORD"] = self.password
        if self.team_id is not None:
            out["NOTARIZATION_TEAM_ID"] = self.team_id
        return out


@dataclass(frozen=True, slots=True)
class Secrets:
    """All credentials a release run may consume. Values never appear in repr."""

    original_keystore: KeystoreSecrets = field(default_factory=KeystoreSecrets)
    upload_keystore: KeystoreSecrets = field(default_factory=KeystoreSecrets)
    google_services: str | None = field(default=None, repr=False)
    playstore_creds: str | None = field(default=None, repr=False)
    firebase_creds: str | None = field(default=None, repr=False)
    notarization: NotarizationSecrets = field(default_factory=NotarizationSecrets)

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> Secrets:
        return cls(
            original_keystore=KeystoreSecrets.from_env(environ, "ORIGINAL"),
            upload_keystore=KeystoreSecrets.from_env(environ, "UPLOAD"),
            google_services=_env(environ, "GOOGLESERVICES"),
            playstore_creds=_env(environ, "PLAYSTORECREDS"),
            firebase_creds=_env(environ, "FIREBASECREDS"),
            notarization=NotarizationSecrets(
                apple_id=_env(environ, "NOTARIZATION_APPLE_ID"),
                password=_env(environ, "NOTARIZATION_PASSWORD"),
                team_id=_env(environ, "NOTARIZATION_TEAM_ID"),
            ),
        )


def _env(environ: Mapping[str, str], key: str) -> str | None:
    value = environ.get(key)
    if value is None or not value.strip():
        return None
    return value


def decode_keystore(file_b64: str) -> Result[bytes, StageError]:
    # `base64 --decode` tolerates line wrapping; so do we.
    compact = "".join(file_b64.split())
    try:
        return Ok(base64.b64decode(compact, validate=True))
    except (binascii.Error, ValueError) as e:
        return Err(
            StageError(
                kind="secret_invalid",
                message=f"keystore is not valid base64: {e}",
                hint="Re-encode the keystore with `base64 -w0`",
            )
        )


def _write(path: Path, content: str | bytes) -> Result[Path, StageError]:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    except OSError as e:
        return Err(StageError(kind="io_failed", message=f"failed to write {path.name}: {e}"))
    return Ok(path)


def inflate_playstore_creds(module_dir: Path, secrets: Secrets) -> Result[Path, StageError]:
    return _write(module_dir / PLAYSTORE_CREDS_FILENAME, secrets.playstore_creds or "")


def inflate_firebase_creds(module_dir: Path, secrets: Secrets) -> Result[Path, StageError]:
    return _write(module_dir / FIREBASE_CREDS_FILENAME, secrets.firebase_creds or "")


def inflate_android_secrets(
    *,
    project_root: Path,
    module_dir: Path,
    keystore: KeystoreSecrets,
    secrets: Secrets,
) -> Result[tuple[Path, ...], StageError]:
    """Materialize credential files the Android build and Fastlane lanes read.

    Order matters: the mock google-services file is copied first so a debug
    build has something to read, then replaced by the real one if present.
    """
    written: list[Path] = []
    google_services = module_dir / GOOGLE_SERVICES_FILENAME

    mock = project_root / MOCK_GOOGLE_SERVICES
    if mock.is_file():
        try:
            module_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(mock, google_services)
        except OSError as e:
            return Err(StageError(kind="io_failed", message=f"failed to copy {mock}: {e}"))
        written.append(google_services)

    if keystore.file_b64 is None:
        return Err(
            StageError(
                kind="secret_missing",
                message="signing keystore is not configured",
                hint="Set ORIGINAL_KEYSTORE_FILE / UPLOAD_KEYSTORE_FILE (base64)",
            )
        )
    decoded = decode_keystore(keystore.file_b64)
    if isinstance(decoded, Err):
        return decoded

    steps: list[tuple[Path, str | bytes | None]] = [
        (module_dir / KEYSTORE_FILENAME, decoded.value),
        (google_services, secrets.google_services),
        (module_dir / PLAYSTORE_CREDS_FILENAME, secrets.playstore_creds or ""),
        (module_dir / FIREBASE_CREDS_FILENAME, secrets.firebase_creds or ""),
    ]
    for path, content in steps:
        if content is None:
            continue
        result = _write(path, content)
        if isinstance(result, Err):
            return result
        if path not in written:
            written.append(path)

    return Ok(tuple(written))
