from __future__ import annotations

import threading

import pytest

from mpr.core.result import Err, Ok, Result
from mpr.output.console import MockConsole
from mpr.release.artifacts import ArtifactStore
from mpr.release.changelog import (
    BETA_CHANGELOG_ARTIFACT,
    BETA_CHANGELOG_FILE,
    GITHUB_CHANGELOG_ARTIFACT,
    GITHUB_CHANGELOG_FILE,
)
from mpr.release.context import CheckoutLocks, StageContext
from mpr.release.errors import StageError
from mpr.release.model import BuildArtifact, ReleaseMetadata
from mpr.release.secrets import KEYSTORE_FILENAME, PLAYSTORE_CREDS_FILENAME
from mpr.release.stages.build import build_android, build_ios, build_web
from mpr.release.stages.publish import (
    AAB_ARTIFACT,
    play_promote_production,
    publish_android_on_firebase,
    publish_android_on_playstore,
    publish_desktop,
    publish_ios_app_to_app_center,
    publish_ios_app_to_firebase,
    publish_web,
    store_upload,
)
from mpr.test._fakes import MODULES, FakeToolRunner, install_release_tools

META = ReleaseMetadata(
    version="2024.10.1",
    version_code=244,
    changelog_text="notes",
    changelog_beta_text="* Fix login crash\n",
)


@pytest.fixture
def built(stage_ctx: StageContext, runner: FakeToolRunner, store: ArtifactStore) -> StageContext:
    """A context whose store already holds the outputs of the build stages."""
    install_release_tools(runner, stage_ctx.root)
    store.put_text(BETA_CHANGELOG_ARTIFACT, BETA_CHANGELOG_FILE, META.changelog_beta_text)
    store.put_text(GITHUB_CHANGELOG_ARTIFACT, GITHUB_CHANGELOG_FILE, META.changelog_text)
    assert isinstance(build_android(stage_ctx, META, module=MODULES.android), Ok)
    assert isinstance(build_ios(stage_ctx, module=MODULES.ios, enabled=True), Ok)
    assert isinstance(build_web(stage_ctx, module=MODULES.web), Ok)
    runner.calls.clear()
    return stage_ctx


class TestStoreUpload:
    def test_four_failures_then_success(self, built: StageContext, runner: FakeToolRunner) -> None:
        runner.on("deploy_internal", failures=4)

        result = store_upload(built, "deploy_internal")

        assert result == Ok(5)
        assert runner.count("deploy_internal") == 5

    def test_five_failures_fail(
        self, built: StageContext, runner: FakeToolRunner, console: MockConsole
    ) -> None:
        runner.on("deploy_internal", failures=5)

        result = store_upload(built, "deploy_internal")

        assert isinstance(result, Err)
        assert result.error.kind == "upload_failed"
        assert "after 5 attempt(s)" in result.error.message
        assert runner.count("deploy_internal") == 5
        assert len(console.find("retrying")) == 4


class TestFirebase:
    def test_android_lane_reads_copied_outputs(
        self, built: StageContext, runner: FakeToolRunner
    ) -> None:
        result = publish_android_on_firebase(built, META, module=MODULES.android)

        assert result == Ok(None)
        [call] = runner.find("android", "deploy_on_firebase")
        assert call.env == {"VERSION_CODE": "244"}
        outputs = built.module_dir(MODULES.android) / "build" / "outputs"
        assert (outputs / BETA_CHANGELOG_FILE).read_text() == META.changelog_beta_text
        assert (outputs / "apk" / "prod" / "release" / "app-android-prod-release.apk").is_file()

    def test_android_upload_is_not_retried(
        self, built: StageContext, runner: FakeToolRunner
    ) -> None:
        runner.on("android", "deploy_on_firebase", failures=1)

        result = publish_android_on_firebase(built, META, module=MODULES.android)

        assert isinstance(result, Err)
        assert result.error.kind == "upload_failed"
        assert runner.count("deploy_on_firebase") == 1

    def test_android_needs_build_artifact(self, stage_ctx: StageContext) -> None:
        result = publish_android_on_firebase(stage_ctx, META, module=MODULES.android)

        assert isinstance(result, Err)
        assert result.error.kind == "missing_artifact"

    def test_ios(self, built: StageContext, runner: FakeToolRunner) -> None:
        result = publish_ios_app_to_firebase(
            built, ios_module=MODULES.ios, android_module=MODULES.android
        )

        assert result == Ok(None)
        assert runner.lines() == ["fastlane ios deploy_on_firebase"]
        android_outputs = built.module_dir(MODULES.android) / "build" / "outputs"
        assert (android_outputs / BETA_CHANGELOG_FILE).is_file()


class TestPlayStore:
    def test_internal_release(self, built: StageContext, runner: FakeToolRunner) -> None:
        result = publish_android_on_playstore(
            built, META, module=MODULES.android, release_type="internal"
        )

        assert isinstance(result, Ok)
        assert result.value.name == AAB_ARTIFACT
        assert runner.count("deploy_internal") == 1
        assert runner.count("promote_to_beta") == 0

    def test_beta_release_promotes(self, built: StageContext, runner: FakeToolRunner) -> None:
        publish_android_on_playstore(built, META, module=MODULES.android, release_type="beta")

        lines = runner.lines()
        assert lines.index("fastlane deploy_internal") < lines.index("fastlane promote_to_beta")

    def test_signs_with_upload_keystore(self, built: StageContext, runner: FakeToolRunner) -> None:
        publish_android_on_playstore(
            built, META, module=MODULES.android, release_type="internal"
        )

        [call] = runner.find(":app-android:bundleRelease")
        assert call.env["KEYSTORE_ALIAS"] == "upload-alias"
        keystore = built.module_dir(MODULES.android) / KEYSTORE_FILENAME
        assert keystore.read_bytes() == b"upload-keystore"

    def test_no_bundle(self, stage_ctx: StageContext, runner: FakeToolRunner) -> None:
        result = publish_android_on_playstore(
            stage_ctx, META, module=MODULES.android, release_type="internal"
        )

        assert isinstance(result, Err)
        assert result.error.kind == "missing_artifact"
        assert runner.count("deploy_internal") == 0

    def test_waits_for_firebase_in_the_same_checkout(
        self, built: StageContext, runner: FakeToolRunner
    ) -> None:
        results: list[Result[BuildArtifact, StageError]] = []
        playstore = threading.Thread(
            target=lambda: results.append(
                publish_android_on_playstore(
                    built, META, module=MODULES.android, release_type="internal"
                )
            )
        )
        blocked: list[bool] = []

        def firebase_lane(cmd: list[str]) -> None:
            playstore.start()
            playstore.join(timeout=0.2)
            blocked.append(playstore.is_alive())

        runner.on("android", "deploy_on_firebase", effect=firebase_lane)

        assert publish_android_on_firebase(built, META, module=MODULES.android) == Ok(None)
        playstore.join(timeout=5)

        assert blocked == [True]
        assert len(results) == 1
        assert isinstance(results[0], Ok)
        lines = runner.lines()
        assert lines.index("fastlane android deploy_on_firebase") < next(
            i for i, line in enumerate(lines) if line.endswith(":app-android:bundleRelease")
        )

    def test_promote_production(self, built: StageContext, runner: FakeToolRunner) -> None:
        runner.on("promote_to_production", failures=2)

        result = play_promote_production(built, module=MODULES.android)

        assert result == Ok(3)
        assert (built.module_dir(MODULES.android) / PLAYSTORE_CREDS_FILENAME).is_file()


class TestStubs:
    def test_app_center_warns(self, built: StageContext, console: MockConsole) -> None:
        assert publish_ios_app_to_app_center(built) == Ok(None)
        assert console.find("App Center publishing is not implemented")

    def test_app_center_needs_ipa(self, stage_ctx: StageContext) -> None:
        result = publish_ios_app_to_app_center(stage_ctx)

        assert isinstance(result, Err)
        assert result.error.kind == "missing_artifact"

    def test_desktop_needs_every_target(self, built: StageContext) -> None:
        result = publish_desktop(built, targets=("windows",))

        assert isinstance(result, Err)
        assert "desktop-app-windows" in result.error.message

    def test_desktop_without_targets(self, built: StageContext, console: MockConsole) -> None:
        assert publish_desktop(built, targets=()) == Ok(None)
        assert console.has_warning()


class TestPublishWeb:
    def test_replaces_pages(self, built: StageContext) -> None:
        pages = built.project.pages_dir(built.config)
        pages.mkdir(parents=True)
        (pages / "stale.html").write_text("old")

        result = publish_web(built)

        assert result == Ok(pages)
        assert sorted(p.name for p in pages.iterdir()) == ["app.js", "index.html"]

    def test_needs_web_artifact(self, stage_ctx: StageContext) -> None:
        result = publish_web(stage_ctx)

        assert isinstance(result, Err)
        assert result.error.kind == "missing_artifact"


def test_checkout_locks_are_per_module() -> None:
    locks = CheckoutLocks()

    assert locks("app-android") is locks("app-android")
    assert locks("app-android") is not locks("app-ios")
