from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import pytest
import typer

from mpr.cli.context import CLIContext
from mpr.core.config import Config
from mpr.core.errors import ErrorCode
from mpr.core.project import Project
from mpr.output.console import MockConsole
from mpr.release.service import ReleaseService
from mpr.test._fakes import FakeToolRunner, install_release_tools


def _patch(
    monkeypatch: pytest.MonkeyPatch,
    ctx: CLIContext,
    service: ReleaseService | None = None,
) -> None:
    import mpr.cli.commands.release_cmd as release_cmd

    monkeypatch.setattr(release_cmd, "build_context", lambda: ctx)
    if service is not None:
        monkeypatch.setattr(release_cmd, "release_service", lambda _ctx: service)


def _release(**overrides: Any) -> None:
    from mpr.cli.commands.release_cmd import DesktopOS, ReleaseKind, release

    args: dict[str, Any] = {
        "release_type": ReleaseKind.internal,
        "target_branch": "dev",
        "android_module": None,
        "ios_module": None,
        "desktop_module": None,
        "web_module": None,
        "desktop_target": [DesktopOS.ubuntu],
        "publish_android": False,
        "publish_android_firebase": True,
        "build_ios": False,
        "publish_ios": False,
        "publish_desktop": False,
        "publish_web": True,
        "dry_run": False,
        "no_wait": False,
        "max_workers": None,
    }
    args.update(overrides)
    release(**args)


@pytest.fixture
def cli_ctx(project: Project, config: Config, console: MockConsole) -> CLIContext:
    return CLIContext(project=project, config=config, console=console)


class TestRelease:
    def test_dry_run_prints_plan(
        self,
        monkeypatch: pytest.MonkeyPatch,
        cli_ctx: CLIContext,
        console: MockConsole,
        service: ReleaseService,
        runner: FakeToolRunner,
    ) -> None:
        _patch(monkeypatch, cli_ctx, service)

        _release(dry_run=True)

        assert console.find("release plan")
        assert console.find("github_release")
        assert console.find("gated off:")
        assert runner.calls == []

    def test_internal_run_exits_ok(
        self,
        monkeypatch: pytest.MonkeyPatch,
        cli_ctx: CLIContext,
        console: MockConsole,
        service: ReleaseService,
        runner: FakeToolRunner,
        project: Project,
    ) -> None:
        _patch(monkeypatch, cli_ctx, service)
        install_release_tools(runner, project.root)

        with pytest.raises(typer.Exit) as exc:
            _release()

        assert exc.value.exit_code == int(ErrorCode.OK)
        assert console.find("OK release: ok")

    def test_failed_build_exits_with_build_error(
        self,
        monkeypatch: pytest.MonkeyPatch,
        cli_ctx: CLIContext,
        console: MockConsole,
        service: ReleaseService,
        runner: FakeToolRunner,
        project: Project,
    ) -> None:
        _patch(monkeypatch, cli_ctx, service)
        install_release_tools(runner, project.root)
        runner.on(":app-android:assembleRelease", failures=1)

        with pytest.raises(typer.Exit) as exc:
            _release()

        assert exc.value.exit_code == int(ErrorCode.BUILD_ERROR)
        assert console.find("release: 1 failed, 3 blocked")

    def test_missing_modules_is_user_error(
        self, monkeypatch: pytest.MonkeyPatch, project: Project, console: MockConsole
    ) -> None:
        _patch(monkeypatch, CLIContext(project=project, config=Config(), console=console))

        with pytest.raises(typer.Exit) as exc:
            _release(android_module="app-android")

        assert exc.value.exit_code == int(ErrorCode.USER_ERROR)
        assert console.has_error()


class TestPromote:
    def test_requires_android_module(
        self, monkeypatch: pytest.MonkeyPatch, project: Project, console: MockConsole
    ) -> None:
        import mpr.cli.commands.release_cmd as release_cmd

        _patch(monkeypatch, CLIContext(project=project, config=Config(), console=console))

        with pytest.raises(typer.Exit) as exc:
            release_cmd.promote(android_module=None, no_wait=False)

        assert exc.value.exit_code == int(ErrorCode.USER_ERROR)
        assert console.find("missing module name: android")

    def test_upload_failure_is_network_error(
        self,
        monkeypatch: pytest.MonkeyPatch,
        cli_ctx: CLIContext,
        service: ReleaseService,
        runner: FakeToolRunner,
    ) -> None:
        import mpr.cli.commands.release_cmd as release_cmd

        _patch(monkeypatch, cli_ctx, service)
        runner.on("promote_to_production", failures=5)

        with pytest.raises(typer.Exit) as exc:
            release_cmd.promote(android_module=None, no_wait=False)

        assert exc.value.exit_code == int(ErrorCode.NETWORK_ERROR)


def test_info_prints_metadata(
    monkeypatch: pytest.MonkeyPatch,
    cli_ctx: CLIContext,
    console: MockConsole,
    service: ReleaseService,
    runner: FakeToolRunner,
    project: Project,
) -> None:
    import mpr.cli.commands.release_cmd as release_cmd

    _patch(monkeypatch, cli_ctx, service)
    install_release_tools(runner, project.root)

    release_cmd.info(target_branch="main")

    assert console.find("version: 2024.10.1")
    assert console.find("Fix login crash")


@pytest.mark.parametrize(
    ("pipeline", "stage"),
    [
        ("release", "github_release"),
        ("check", "dependency_guard"),
        ("promote", "play_promote_production"),
    ],
)
def test_graph(
    monkeypatch: pytest.MonkeyPatch,
    cli_ctx: CLIContext,
    console: MockConsole,
    service: ReleaseService,
    runner: FakeToolRunner,
    pipeline: str,
    stage: str,
) -> None:
    import mpr.cli.commands.release_cmd as release_cmd

    _patch(monkeypatch, cli_ctx, service)

    release_cmd.graph(pipeline=release_cmd.Pipeline(pipeline))

    assert console.find(f"{pipeline} pipeline")
    assert console.find(stage)
    assert runner.calls == []


class TestMain:
    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        from mpr import __version__
        from mpr.cli import app as app_module

        with pytest.raises(typer.Exit) as exc:
            app_module._main(version=True, project=None)  # pyright: ignore[reportPrivateUsage]

        assert exc.value.exit_code == 0
        assert capsys.readouterr().out.strip() == __version__

    def test_project_must_be_a_project_root(self, tmp_path: Path) -> None:
        from mpr.cli import app as app_module

        with pytest.raises(typer.Exit) as exc:
            app_module._main(version=False, project=tmp_path)  # pyright: ignore[reportPrivateUsage]

        assert exc.value.exit_code == int(ErrorCode.ENV_ERROR)

    def test_project_sets_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        from mpr.cli import app as app_module
        from mpr.core.project import PROJECT_ENV_VAR

        monkeypatch.delenv(PROJECT_ENV_VAR, raising=False)
        (tmp_path / "mpr.toml").write_text("", encoding="utf-8")

        app_module._main(version=False, project=tmp_path)  # pyright: ignore[reportPrivateUsage]

        assert os.environ[PROJECT_ENV_VAR] == str(tmp_path.resolve())
