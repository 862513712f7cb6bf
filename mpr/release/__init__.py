"""Release pipelines.

This package is split into:
- graph / scheduler: the stage DAG and its executor
- stages: stage bodies that delegate to Gradle, Fastlane and gh
- pipelines: the release, check and promote graphs
- artifacts / lock / secrets: what stages share, and how runs exclude each other
- service: entry point used by the CLI
"""

from __future__ import annotations
