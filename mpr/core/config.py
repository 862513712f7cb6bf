"""Typed configuration loading and access.

The optional ``mpr.toml`` at the project root is parsed into frozen
dataclasses. Every section and key is optional; missing values fall back to
the defaults below. CLI options override whatever is configured here.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .result import Err, Ok, Result
from .structured import (
    StrDict,
    as_str_dict,
    get_float,
    get_int,
    get_str,
    get_str_list,
    get_table,
)

__all__ = [
    "ArtifactsConfig",
    "Config",
    "ConfigError",
    "DesktopConfig",
    "ModulesConfig",
    "ProjectConfig",
    "PublishConfig",
    "RunConfig",
    "ToolsConfig",
    "load_config",
    "load_config_or_default",
    "CONFIG_FILENAME",
    "DEFAULT_MAX_WORKERS",
    "DEFAULT_RETENTION_DAYS",
    "DEFAULT_UPLOAD_MAX_RETRIES",
]

CONFIG_FILENAME = "mpr.toml"

DEFAULT_MAX_WORKERS = 4
DEFAULT_LOCK_TIMEOUT_SECONDS = 60 * 60.0
# Matches the CI host's default retention for artifacts without an explicit value.
DEFAULT_RETENTION_DAYS = 90
# Store uploads are the only path with a retry bound.
DEFAULT_UPLOAD_MAX_RETRIES = 5


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    """Where release metadata comes from."""

    repository: str | None = None  # owner/name; None means "ask the origin remote"
    version_file: str = "version.txt"
    version_task: str = "versionFile"


@dataclass(frozen=True, slots=True)
class ModulesConfig:
    """Build-system module names per platform."""

    android: str | None = None
    ios: str | None = None
    desktop: str | None = None
    web: str | None = None


@dataclass(frozen=True, slots=True)
class DesktopConfig:
    # Empty means "the host OS only".
    targets: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RunConfig:
    max_workers: int = DEFAULT_MAX_WORKERS
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS


@dataclass(frozen=True, slots=True)
class ArtifactsConfig:
    dir: str = ".mpr/artifacts"
    retention_days: int = DEFAULT_RETENTION_DAYS


@dataclass(frozen=True, slots=True)
class PublishConfig:
    upload_max_retries: int = DEFAULT_UPLOAD_MAX_RETRIES
    upload_retry_delay: float = 10.0
    pages_dir: str = ".mpr/pages"


@dataclass(frozen=True, slots=True)
class ToolsConfig:
    """Command prefixes for the external tools every stage delegates to."""

    gradle: tuple[str, ...] = ("./gradlew",)
    fastlane: tuple[str, ...] = ("bundle", "exec", "fastlane")
    gh: tuple[str, ...] = ("gh",)
    gradle_timeout: float = 60 * 60.0
    fastlane_timeout: float = 60 * 60.0


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    project: ProjectConfig = field(default_factory=ProjectConfig)
    modules: ModulesConfig = field(default_factory=ModulesConfig)
    desktop: DesktopConfig = field(default_factory=DesktopConfig)
    run: RunConfig = field(default_factory=RunConfig)
    artifacts: ArtifactsConfig = field(default_factory=ArtifactsConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Config:
        """Create Config from a mapping (parsed TOML)."""
        project: StrDict = get_table(data, "project") or {}
        modules: StrDict = get_table(data, "modules") or {}
        desktop: StrDict = get_table(data, "desktop") or {}
        run: StrDict = get_table(data, "run") or {}
        artifacts: StrDict = get_table(data, "artifacts") or {}
        publish: StrDict = get_table(data, "publish") or {}
        tools: StrDict = get_table(data, "tools") or {}

        defaults_tools = ToolsConfig()
        defaults_publish = PublishConfig()

        return cls(
            project=ProjectConfig(
                repository=get_str(project, "repository"),
                version_file=get_str(project, "version_file") or "version.txt",
                version_task=get_str(project, "version_task") or "versionFile",
            ),
            modules=ModulesConfig(
                android=get_str(modules, "android"),
                ios=get_str(modules, "ios"),
                desktop=get_str(modules, "desktop"),
                web=get_str(modules, "web"),
            ),
            desktop=DesktopConfig(targets=get_str_list(desktop, "targets") or ()),
            run=RunConfig(
                max_workers=_positive(get_int(run, "max_workers"), DEFAULT_MAX_WORKERS),
                lock_timeout=get_float(run, "lock_timeout") or DEFAULT_LOCK_TIMEOUT_SECONDS,
            ),
            artifacts=ArtifactsConfig(
                dir=get_str(artifacts, "dir") or ".mpr/artifacts",
                retention_days=_positive(
                    get_int(artifacts, "retention_days"), DEFAULT_RETENTION_DAYS
                ),
            ),
            publish=PublishConfig(
                upload_max_retries=_positive(
                    get_int(publish, "upload_max_retries"), DEFAULT_UPLOAD_MAX_RETRIES
                ),
                upload_retry_delay=_non_negative(
                    get_float(publish, "upload_retry_delay"),
                    defaults_publish.upload_retry_delay,
                ),
                pages_dir=get_str(publish, "pages_dir") or defaults_publish.pages_dir,
            ),
            tools=ToolsConfig(
                gradle=get_str_list(tools, "gradle") or defaults_tools.gradle,
                fastlane=get_str_list(tools, "fastlane") or defaults_tools.fastlane,
                gh=get_str_list(tools, "gh") or defaults_tools.gh,
                gradle_timeout=get_float(tools, "gradle_timeout") or defaults_tools.gradle_timeout,
                fastlane_timeout=get_float(tools, "fastlane_timeout")
                or defaults_tools.fastlane_timeout,
            ),
        )


def _positive(value: int | None, default: int) -> int:
    if value is None or value < 1:
        return default
    return value


def _non_negative(value: float | None, default: float) -> float:
    if value is None or value < 0:
        return default
    return value


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling read and parse errors."""
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and parse configuration from a TOML file.

    Args:
        path: Path to mpr.toml

    Returns:
        Ok(Config) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(Config.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))


def load_config_or_default(path: Path) -> Config:
    """Load config from file, or return the default config if it can't be read."""
    result = load_config(path)
    if isinstance(result, Ok):
        return result.value
    return Config()
