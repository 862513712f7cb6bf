from __future__ import annotations

from dataclasses import dataclass

import typer

from mpr.core.config import Config, load_config
from mpr.core.errors import ErrorCode
from mpr.core.project import Project, detect_project
from mpr.core.result import Err
from mpr.output.console import ConsoleProtocol, RichConsole


@dataclass(frozen=True, slots=True)
class CLIContext:
    project: Project
    config: Config
    console: ConsoleProtocol


def build_context() -> CLIContext:
    project_result = detect_project()
    if isinstance(project_result, Err):
        typer.echo(f"error: {project_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    project = project_result.value

    config = Config()
    if project.config_path.exists():
        config_result = load_config(project.config_path)
        if isinstance(config_result, Err):
            typer.echo(f"error: {config_result.error.message}", err=True)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))
        config = config_result.value

    return CLIContext(project=project, config=config, console=RichConsole())
