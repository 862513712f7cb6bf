from __future__ import annotations

from pathlib import Path

import pytest

from mpr.core.config import Config, ModulesConfig, PublishConfig, ToolsConfig
from mpr.core.project import Project
from mpr.output.console import MockConsole
from mpr.release.artifacts import ArtifactStore
from mpr.release.context import StageContext
from mpr.release.secrets import Secrets
from mpr.release.service import ReleaseService
from mpr.release.tools import ToolSession
from mpr.test._fakes import MODULES, SECRETS_ENV, FakeHistory, FakeToolRunner


def _no_sleep(seconds: float) -> None:
    del seconds


@pytest.fixture
def project(tmp_path: Path) -> Project:
    root = tmp_path / "app"
    root.mkdir()
    return Project(root=root)


@pytest.fixture
def config() -> Config:
    return Config(
        modules=ModulesConfig(
            android=MODULES.android,
            ios=MODULES.ios,
            desktop=MODULES.desktop,
            web=MODULES.web,
        ),
        publish=PublishConfig(upload_retry_delay=0.0),
        # Plain fastlane: no bundle install in tests.
        tools=ToolsConfig(fastlane=("fastlane",)),
    )


@pytest.fixture
def console() -> MockConsole:
    return MockConsole()


@pytest.fixture
def runner() -> FakeToolRunner:
    return FakeToolRunner()


@pytest.fixture
def history() -> FakeHistory:
    return FakeHistory()


@pytest.fixture
def store(project: Project, config: Config) -> ArtifactStore:
    return ArtifactStore(
        project.artifacts_dir(config) / "test-run",
        default_retention_days=config.artifacts.retention_days,
    )


@pytest.fixture
def stage_ctx(
    project: Project,
    config: Config,
    console: MockConsole,
    runner: FakeToolRunner,
    history: FakeHistory,
    store: ArtifactStore,
) -> StageContext:
    return StageContext(
        project=project,
        config=config,
        session=ToolSession(runner=runner, tools=config.tools, cwd=project.root),
        store=store,
        secrets=Secrets.from_env(SECRETS_ENV),
        history=history,
        console=console,
    )


@pytest.fixture
def service(
    project: Project,
    config: Config,
    console: MockConsole,
    runner: FakeToolRunner,
    history: FakeHistory,
) -> ReleaseService:
    return ReleaseService(
        project=project,
        config=config,
        console=console,
        runner=runner,
        history=history,
        environ=SECRETS_ENV,
        run_id="test-run",
        sleep_fn=_no_sleep,
    )
