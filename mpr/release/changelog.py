from __future__ import annotations

import json

from mpr.core.result import Err, Ok, Result
from mpr.core.structured import as_str_dict, get_str
from mpr.release.errors import StageError
from mpr.release.tools import ToolSession

GITHUB_CHANGELOG_ARTIFACT = "git-changelog"
GITHUB_CHANGELOG_FILE = "changelogGithub"
BETA_CHANGELOG_ARTIFACT = "beta-changelog"
BETA_CHANGELOG_FILE = "changelogBeta"

# Subject of the most recent commit; also valid on a root commit.
BETA_LOG_REVISION = "HEAD"
BETA_LOG_FORMAT = "* %s"


def sanitize_notes(text: str) -> str:
    """Replace backticks and double quotes with single quotes.

    Downstream tools pass the notes through shell arguments and JSON.
    """
    return text.replace("`", "'").replace('"', "'")


def generate_github_notes(
    session: ToolSession,
    *,
    repo_slug: str,
    tag: str,
    target_branch: str,
) -> Result[str, StageError]:
    """Ask the hosting service to generate release notes for ``tag``."""
    raw = session.gh(
        "api",
        "--method",
        "POST",
        f"repos/{repo_slug}/releases/generate-notes",
        "-f",
        f"tag_name={tag}",
        "-f",
        f"target_commitish={target_branch}",
    )
    if isinstance(raw, Err):
        return raw

    try:
        obj: object = json.loads(raw.value)
    except json.JSONDecodeError as e:
        return Err(
            StageError(
                kind="tool_failed",
                message=f"invalid JSON from generate-notes: {e}",
                hint=repo_slug,
            )
        )

    data = as_str_dict(obj)
    if data is None:
        return Err(StageError(kind="tool_failed", message="unexpected generate-notes payload"))
    return Ok(sanitize_notes(get_str(data, "body") or ""))
