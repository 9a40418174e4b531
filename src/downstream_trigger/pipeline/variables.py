"""Build the variable set passed to a downstream trigger.

Layers, later wins:
- base variables describing the upstream job
- target overrides
- `*_VERSION` sidecar files
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING

from downstream_trigger.pipeline.targets import Target, target_overrides

if TYPE_CHECKING:
    from downstream_trigger.pipeline.config import TriggerContext, TriggerSettings

logger = logging.getLogger(__name__)

VERSION_FILE_GLOB = "*_VERSION"

SEMVER_TAG_PATTERN = re.compile(r"^\d+\.\d+\.\d+(-rc\d+)?(-ee)?$")


def _non_empty(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value


def _compact(values: Mapping[str, str | None]) -> dict[str, str]:
    return {key: value for key, value in values.items() if value is not None}


def source_sha(settings: TriggerSettings) -> str | None:
    """Merged-results pipelines check out the MR source branch SHA, not the merge commit."""

    return _non_empty(settings.merge_request_source_branch_sha) or _non_empty(
        settings.commit_sha
    )


def base_variables(settings: TriggerSettings) -> dict[str, str]:
    ref_slug = settings.commit_ref_name if settings.commit_tag else settings.commit_ref_slug
    return _compact(
        {
            "GITLAB_REF_SLUG": ref_slug,
            "TRIGGERED_USER": _non_empty(settings.triggered_user) or settings.user_name,
            "TRIGGER_SOURCE": settings.job_url,
            "GITLAB_VERSION": source_sha(settings),
            "TOP_UPSTREAM_SOURCE_PROJECT": settings.project_path,
            "TOP_UPSTREAM_SOURCE_JOB": settings.job_url,
            "TOP_UPSTREAM_SOURCE_REF": settings.commit_ref_name,
            "TOP_UPSTREAM_MERGE_REQUEST_PROJECT_ID": _non_empty(
                settings.merge_request_project_id
            ),
            "TOP_UPSTREAM_MERGE_REQUEST_IID": _non_empty(settings.merge_request_iid),
        }
    )


def normalize_version_tag(raw: str) -> str:
    """Prefix strict semantic versions with `v` so they resolve as tags."""

    if SEMVER_TAG_PATTERN.match(raw):
        return f"v{raw}"
    return raw


def read_version_value(path: Path, environ: Mapping[str, str]) -> str:
    override = environ.get(path.name)
    if override is not None:
        return override.strip()
    return path.read_text(encoding="utf-8").strip()


def discover_version_files(workdir: Path, environ: Mapping[str, str]) -> dict[str, str]:
    """Return `{FILE_NAME: value}` for every `*_VERSION` file in `workdir`."""

    if not workdir.is_dir():
        return {}

    versions: dict[str, str] = {}
    for path in sorted(workdir.glob(VERSION_FILE_GLOB), key=lambda p: p.name):
        if not path.is_file():
            continue
        versions[path.name] = read_version_value(path, environ)
    return versions


def version_variables(target: Target, version_files: Mapping[str, str]) -> dict[str, str]:
    if not target.normalize_versions:
        return dict(version_files)
    return {name: normalize_version_tag(value) for name, value in version_files.items()}


def build_variables(target: Target, context: TriggerContext) -> Mapping[str, str]:
    """Merge all variable layers into a read-only mapping."""

    merged: dict[str, str] = {}
    merged.update(base_variables(context.settings))
    merged.update(_compact(target_overrides(target, context)))
    merged.update(version_variables(target, context.version_files))
    logger.debug(
        "Built trigger variables",
        extra={"target": target.kind.value, "variable_names": sorted(merged)},
    )
    return MappingProxyType(merged)
