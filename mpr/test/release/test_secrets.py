from __future__ import annotations

from pathlib import Path

from mpr.core.result import Err, Ok
from mpr.release.secrets import (
    FIREBASE_CREDS_FILENAME,
    GOOGLE_SERVICES_FILENAME,
    KEYSTORE_FILENAME,
    MOCK_GOOGLE_SERVICES,
    PLAYSTORE_CREDS_FILENAME,
    KeystoreSecrets,
    Secrets,
    decode_keystore,
    inflate_android_secrets,
    inflate_playstore_creds,
)
from mpr.test._fakes import SECRETS_ENV


class TestFromEnv:
    def test_reads_both_keystores(self) -> None:
        secrets = Secrets.from_env(SECRETS_ENV)

        assert secrets.original_keystore.alias == "orig-alias"
        assert secrets.upload_keystore.alias == "upload-alias"
        assert secrets.notarization.team_id == "TEAM123"

    def test_blank_values_are_missing(self) -> None:
        secrets = Secrets.from_env({"PLAYSTORECREDS": "   "})
        assert secrets.playstore_creds is None

    def test_values_never_in_repr(self) -> None:
        text = repr(Secrets.from_env(SECRETS_ENV))
        assert "upload-pass" not in text
        assert "service_account" not in text

    def test_keystore_env(self) -> None:
        env = KeystoreSecrets.from_env(SECRETS_ENV, "UPLOAD").env()
        assert env == {
            "KEYSTORE_PASSWORD": "upload-pass",
            "KEYSTORE_ALIAS": "upload-alias",
            "KEYSTORE_ALIAS_PASSWORD": "upload-alias-pass",
        }


class TestDecodeKeystore:
    def test_wrapped_base64(self) -> None:
        assert decode_keystore("a2V5\nc3Rv\ncmU=\n") == Ok(b"keystore")

    def test_invalid(self) -> None:
        result = decode_keystore("!!not base64!!")
        assert isinstance(result, Err)
        assert result.error.kind == "secret_invalid"


class TestInflate:
    def test_writes_all_files(self, tmp_path: Path) -> None:
        secrets = Secrets.from_env(SECRETS_ENV)
        module = tmp_path / "cmp-android"

        result = inflate_android_secrets(
            project_root=tmp_path,
            module_dir=module,
            keystore=secrets.original_keystore,
            secrets=secrets,
        )

        assert isinstance(result, Ok)
        assert (module / KEYSTORE_FILENAME).read_bytes() == b"original-keystore"
        assert (module / GOOGLE_SERVICES_FILENAME).read_text() == SECRETS_ENV["GOOGLESERVICES"]
        assert (module / PLAYSTORE_CREDS_FILENAME).is_file()
        assert (module / FIREBASE_CREDS_FILENAME).is_file()

    def test_mock_google_services_when_secret_absent(self, tmp_path: Path) -> None:
        mock = tmp_path / MOCK_GOOGLE_SERVICES
        mock.parent.mkdir(parents=True)
        mock.write_text('{"mock": true}', encoding="utf-8")
        env = {k: v for k, v in SECRETS_ENV.items() if k != "GOOGLESERVICES"}
        secrets = Secrets.from_env(env)
        module = tmp_path / "cmp-android"

        result = inflate_android_secrets(
            project_root=tmp_path,
            module_dir=module,
            keystore=secrets.upload_keystore,
            secrets=secrets,
        )

        assert isinstance(result, Ok)
        assert (module / GOOGLE_SERVICES_FILENAME).read_text() == '{"mock": true}'
        assert (module / KEYSTORE_FILENAME).read_bytes() == b"upload-keystore"

    def test_missing_keystore(self, tmp_path: Path) -> None:
        secrets = Secrets.from_env({})

        result = inflate_android_secrets(
            project_root=tmp_path,
            module_dir=tmp_path / "m",
            keystore=secrets.original_keystore,
            secrets=secrets,
        )

        assert isinstance(result, Err)
        assert result.error.kind == "secret_missing"
        assert not (tmp_path / "m" / KEYSTORE_FILENAME).exists()

    def test_playstore_creds_only(self, tmp_path: Path) -> None:
        result = inflate_playstore_creds(tmp_path, Secrets.from_env(SECRETS_ENV))

        assert result == Ok(tmp_path / PLAYSTORE_CREDS_FILENAME)
        assert "service_account" in (tmp_path / PLAYSTORE_CREDS_FILENAME).read_text()
