"""Trigger targets: the fixed set of downstream projects a pipeline can be submitted to.

Each target is a frozen dataclass tagged with its `TargetKind`. Target-specific
behaviour lives in plain functions selected by the tag, not in subclasses.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from downstream_trigger.pipeline.config import TriggerContext, TriggerSettings

STABLE_BRANCH_PATTERN = re.compile(r"^[\d-]+-stable(-ee)?$")

OMNIBUS_QA_JOB_NAME = "Trigger:qa-test"

DOCS_PROJECT_SLUGS: dict[str, str] = {
    "gitlab-org/gitlab-foss": "ce",
    "gitlab-org/gitlab": "ee",
    "gitlab-org/gitlab-runner": "runner",
    "gitlab-org/omnibus-gitlab": "omnibus",
    "gitlab-org/charts/gitlab": "charts",
}


class TargetKind(str, Enum):
    OMNIBUS = "omnibus"
    CNG = "cng"
    DOCS = "docs"


@dataclass(frozen=True, slots=True)
class OmnibusTarget:
    """Builds the omnibus-gitlab package and runs QA against it."""

    project_path: str
    ref: str
    trigger_token: str
    access_token: str
    qa_branch: str
    cache_update: str | None = None
    post_comment: bool = True
    downstream_job_name: str | None = OMNIBUS_QA_JOB_NAME
    normalize_versions: bool = False
    kind: TargetKind = TargetKind.OMNIBUS


@dataclass(frozen=True, slots=True)
class CngTarget:
    """Builds the cloud-native images used by the Helm chart."""

    project_path: str
    ref: str
    trigger_token: str
    access_token: str
    post_comment: bool = False
    downstream_job_name: str | None = None
    normalize_versions: bool = True
    kind: TargetKind = TargetKind.CNG


@dataclass(frozen=True, slots=True)
class DocsTarget:
    """Builds a docs review app from a per-merge-request branch."""

    project_path: str
    ref: str
    trigger_token: str
    access_token: str
    project_slug: str
    review_apps_domain: str
    post_comment: bool = False
    downstream_job_name: str | None = None
    normalize_versions: bool = False
    kind: TargetKind = TargetKind.DOCS

    @property
    def review_branch(self) -> str:
        return self.ref

    @property
    def preview_url(self) -> str:
        return f"http://{self.review_branch}.{self.review_apps_domain}/{self.project_slug}/index.html"


Target = OmnibusTarget | CngTarget | DocsTarget


def _present(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value


def cng_ref(settings: TriggerSettings) -> str:
    """Explicit CNG branch, else the upstream stable branch, else master."""

    explicit = _present(settings.cng_branch)
    if explicit is not None:
        return explicit
    ref_name = settings.commit_ref_name or ""
    if STABLE_BRANCH_PATTERN.match(ref_name):
        return ref_name
    return "master"


def docs_project_slug(project_path: str | None) -> str:
    path = (project_path or "").strip().strip("/")
    slug = DOCS_PROJECT_SLUGS.get(path)
    if slug is not None:
        return slug
    return path.rsplit("/", 1)[-1]


def resolve_target(kind: TargetKind, settings: TriggerSettings) -> Target:
    """Build the configuration of one target from the startup settings."""

    if kind == TargetKind.OMNIBUS:
        return OmnibusTarget(
            project_path=settings.omnibus_project_path,
            ref=settings.omnibus_branch,
            trigger_token=settings.job_token or "",
            access_token=settings.polling_token,
            qa_branch=settings.qa_branch,
            cache_update=_present(settings.omnibus_cache_update),
        )
    if kind == TargetKind.CNG:
        return CngTarget(
            project_path=settings.cng_project_path,
            ref=cng_ref(settings),
            trigger_token=settings.job_token or "",
            access_token=settings.polling_token,
        )
    if kind == TargetKind.DOCS:
        slug = docs_project_slug(settings.project_path)
        return DocsTarget(
            project_path=settings.docs_project_path,
            ref=f"{slug}-{settings.commit_ref_slug or ''}",
            trigger_token=settings.docs_trigger_token,
            access_token=settings.docs_api_token,
            project_slug=slug,
            review_apps_domain=settings.docs_review_apps_domain,
        )
    raise ValueError(f"Unknown trigger target: {kind!r}")


def _flag(value: bool) -> str:
    return "true" if value else "false"


def _omnibus_overrides(target: OmnibusTarget, context: TriggerContext) -> dict[str, str | None]:
    return {
        "ALTERNATIVE_SOURCES": "true",
        "ee": _flag(context.ee),
        "QA_BRANCH": target.qa_branch,
        "CACHE_UPDATE": target.cache_update,
    }


def _cng_overrides(target: CngTarget, context: TriggerContext) -> dict[str, str | None]:
    settings = context.settings
    edition = "EE" if context.ee else "CE"
    tag = _present(settings.commit_tag)
    return {
        "ee": _flag(context.ee),
        "GITLAB_VERSION": settings.commit_sha,
        "GITLAB_TAG": tag,
        "GITLAB_ASSETS_TAG": settings.commit_ref_name if tag else settings.commit_sha,
        "FORCE_RAILS_IMAGE_BUILDS": "true",
        f"{edition}_PIPELINE": "true",
    }


def _docs_overrides(target: DocsTarget, context: TriggerContext) -> dict[str, str | None]:
    return {f"BRANCH_{target.project_slug.upper()}": context.settings.commit_ref_name}


_OVERRIDES: dict[TargetKind, Callable[..., dict[str, str | None]]] = {
    TargetKind.OMNIBUS: _omnibus_overrides,
    TargetKind.CNG: _cng_overrides,
    TargetKind.DOCS: _docs_overrides,
}


def target_overrides(target: Target, context: TriggerContext) -> dict[str, str | None]:
    """Return the target's variable overrides (None marks an absent value)."""

    return _OVERRIDES[target.kind](target, context)
