"""Configuration for the downstream trigger.

Configuration is loaded once at startup from:
- environment variables (the CI job's predefined variables plus overrides)
- and a local `.env` file (if present)

Components never read the environment themselves; they receive a
`TriggerSettings` / `TriggerContext` explicitly.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from downstream_trigger.pipeline.gitlab.client import DEFAULT_API_URL
from downstream_trigger.pipeline.variables import discover_version_files

logger = logging.getLogger(__name__)

EE_CHANGELOG_FILE = "CHANGELOG-EE.md"


class TriggerSettings(BaseSettings):
    """Settings for a single trigger invocation.

    Missing CI context values are allowed: they become absent trigger variables and
    the downstream project decides whether that is acceptable.

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `TriggerSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    api_url: str = Field(
        default=DEFAULT_API_URL,
        validation_alias="CI_API_V4_URL",
        description="GitLab REST API base URL",
    )

    # Ambient CI context.
    project_path: str | None = Field(default=None, validation_alias="CI_PROJECT_PATH")
    project_name: str | None = Field(default=None, validation_alias="CI_PROJECT_NAME")
    commit_sha: str | None = Field(default=None, validation_alias="CI_COMMIT_SHA")
    commit_ref_name: str | None = Field(default=None, validation_alias="CI_COMMIT_REF_NAME")
    commit_ref_slug: str | None = Field(default=None, validation_alias="CI_COMMIT_REF_SLUG")
    commit_tag: str | None = Field(default=None, validation_alias="CI_COMMIT_TAG")
    job_name: str | None = Field(default=None, validation_alias="CI_JOB_NAME")
    job_url: str | None = Field(default=None, validation_alias="CI_JOB_URL")
    job_token: str | None = Field(default=None, validation_alias="CI_JOB_TOKEN")
    pipeline_url: str | None = Field(default=None, validation_alias="CI_PIPELINE_URL")
    user_name: str | None = Field(default=None, validation_alias="GITLAB_USER_NAME")
    triggered_user: str | None = Field(default=None, validation_alias="TRIGGERED_USER")
    merge_request_source_branch_sha: str | None = Field(
        default=None, validation_alias="CI_MERGE_REQUEST_SOURCE_BRANCH_SHA"
    )
    merge_request_project_id: str | None = Field(
        default=None, validation_alias="CI_MERGE_REQUEST_PROJECT_ID"
    )
    merge_request_iid: str | None = Field(default=None, validation_alias="CI_MERGE_REQUEST_IID")
    force_ee: bool = Field(
        default=False,
        validation_alias="EE",
        description="Force the EE edition flag regardless of project detection",
    )

    @field_validator("force_ee", mode="before")
    @classmethod
    def _blank_ee_is_unset(cls, value: object) -> object:
        # An empty `EE=` reads as unset.
        if value is None or (isinstance(value, str) and not value.strip()):
            return False
        return value

    # omnibus
    omnibus_project_path: str = Field(
        default="gitlab-org/build/omnibus-gitlab-mirror",
        validation_alias="OMNIBUS_PROJECT_PATH",
    )
    omnibus_branch: str = Field(default="master", validation_alias="OMNIBUS_BRANCH")
    qa_branch: str = Field(default="master", validation_alias="QA_BRANCH")
    omnibus_cache_update: str | None = Field(
        default=None, validation_alias="OMNIBUS_GITLAB_CACHE_UPDATE"
    )
    polling_token: str = Field(
        default="",
        validation_alias="GITLAB_BOT_MULTI_PROJECT_PIPELINE_POLLING_TOKEN",
        description="Token used by the omnibus/cng targets for API calls and polling",
    )

    # cng
    cng_project_path: str = Field(
        default="gitlab-org/build/CNG-mirror", validation_alias="CNG_PROJECT_PATH"
    )
    cng_branch: str | None = Field(default=None, validation_alias="CNG_BRANCH")

    # docs
    docs_project_path: str = Field(
        default="gitlab-org/gitlab-docs", validation_alias="DOCS_PROJECT_PATH"
    )
    docs_trigger_token: str = Field(default="", validation_alias="DOCS_TRIGGER_TOKEN")
    docs_api_token: str = Field(default="", validation_alias="DOCS_PROJECT_API_TOKEN")
    docs_review_apps_domain: str = Field(
        default="docs.gitlab-review.app", validation_alias="DOCS_REVIEW_APPS_DOMAIN"
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )


@dataclass(frozen=True, slots=True)
class TriggerContext:
    """Everything the variable builder needs, captured once at startup."""

    settings: TriggerSettings
    ee: bool = False
    version_files: Mapping[str, str] = field(default_factory=dict)


def detect_ee(settings: TriggerSettings, workdir: Path) -> bool:
    """Return True when the upstream project builds the EE edition."""

    if settings.force_ee:
        return True
    if settings.project_name == "gitlab":
        return True
    return (workdir / EE_CHANGELOG_FILE).exists()


def load_context(
    settings: TriggerSettings,
    *,
    workdir: Path,
    environ: Mapping[str, str],
) -> TriggerContext:
    """Build the immutable invocation context from settings and the working directory."""

    version_files = discover_version_files(workdir, environ)
    ee = detect_ee(settings, workdir)
    logger.debug(
        "Loaded trigger context",
        extra={"ee": ee, "version_files": sorted(version_files)},
    )
    return TriggerContext(settings=settings, ee=ee, version_files=version_files)
