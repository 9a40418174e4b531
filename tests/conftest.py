"""Test configuration and fixtures."""

from pathlib import Path

import pytest

from downstream_trigger.pipeline.config import TriggerContext, TriggerSettings

_CI_ENV_VARS = (
    "LOG_LEVEL",
    "CI_API_V4_URL",
    "CI_PROJECT_PATH",
    "CI_PROJECT_NAME",
    "CI_COMMIT_SHA",
    "CI_COMMIT_REF_NAME",
    "CI_COMMIT_REF_SLUG",
    "CI_COMMIT_TAG",
    "CI_JOB_NAME",
    "CI_JOB_URL",
    "CI_JOB_TOKEN",
    "CI_PIPELINE_URL",
    "GITLAB_USER_NAME",
    "TRIGGERED_USER",
    "CI_MERGE_REQUEST_SOURCE_BRANCH_SHA",
    "CI_MERGE_REQUEST_PROJECT_ID",
    "CI_MERGE_REQUEST_IID",
    "EE",
    "OMNIBUS_PROJECT_PATH",
    "OMNIBUS_BRANCH",
    "QA_BRANCH",
    "OMNIBUS_GITLAB_CACHE_UPDATE",
    "GITLAB_BOT_MULTI_PROJECT_PIPELINE_POLLING_TOKEN",
    "CNG_PROJECT_PATH",
    "CNG_BRANCH",
    "DOCS_PROJECT_PATH",
    "DOCS_TRIGGER_TOKEN",
    "DOCS_PROJECT_API_TOKEN",
    "DOCS_REVIEW_APPS_DOMAIN",
)


@pytest.fixture(autouse=True)
def clean_ci_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Isolate tests from a real CI environment and any local .env file."""
    for name in _CI_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings() -> TriggerSettings:
    """Provide settings describing a typical merge request pipeline."""
    return TriggerSettings(
        _env_file=None,
        project_path="gitlab-org/gitlab",
        project_name="gitlab",
        commit_sha="abc123",
        commit_ref_name="feature/add-widgets",
        commit_ref_slug="feature-add-widgets",
        job_name="package-and-qa",
        job_url="https://gitlab.example.com/gitlab-org/gitlab/-/jobs/1",
        job_token="job-token",
        pipeline_url="https://gitlab.example.com/gitlab-org/gitlab/-/pipelines/10",
        user_name="Jane Doe",
        polling_token="polling-token",
        docs_trigger_token="docs-trigger-token",
        docs_api_token="docs-api-token",
    )


@pytest.fixture
def context(settings: TriggerSettings) -> TriggerContext:
    """Provide an EE context without version files."""
    return TriggerContext(settings=settings, ee=True, version_files={})
