"""Submit a downstream trigger and produce a handle to poll."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from downstream_trigger.pipeline.config import TriggerSettings
from downstream_trigger.pipeline.errors import RemoteRequestError, StepOutcome
from downstream_trigger.pipeline.gitlab.client import GitLabClient, JobInfo, PipelineInfo
from downstream_trigger.pipeline.poller import HandleKind, PipelineHandle
from downstream_trigger.pipeline.targets import Target

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TriggerRequest:
    downstream_project: str
    ref: str
    trigger_token: str
    variables: Mapping[str, str]

    @classmethod
    def for_target(cls, target: Target, variables: Mapping[str, str]) -> TriggerRequest:
        return cls(
            downstream_project=target.project_path,
            ref=target.ref,
            trigger_token=target.trigger_token,
            variables=variables,
        )


def find_job_by_name(jobs: list[JobInfo], name: str) -> JobInfo | None:
    """First job whose name matches exactly."""

    for job in jobs:
        if job.name == name:
            return job
    return None


def commit_comment_note(settings: TriggerSettings, downstream: PipelineInfo) -> str:
    return (
        f"The [`{settings.job_name or ''}`]({settings.job_url or ''}) job from pipeline "
        f"{settings.pipeline_url or ''} triggered {downstream.web_url} downstream."
    )


class PipelineTrigger:
    """Trigger a downstream pipeline and resolve what to poll."""

    def __init__(
        self,
        *,
        client: GitLabClient,
        settings: TriggerSettings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._settings = settings
        self._clock = clock

    def invoke(self, target: Target, variables: Mapping[str, str]) -> PipelineHandle:
        request = TriggerRequest.for_target(target, variables)
        _print_request(target, request)

        pipeline = self._client.trigger_pipeline(
            project=request.downstream_project,
            ref=request.ref,
            trigger_token=request.trigger_token,
            variables=dict(request.variables),
        )
        started_at = self._clock()
        logger.info(
            "Triggered downstream pipeline",
            extra={
                "target": target.kind.value,
                "project": request.downstream_project,
                "pipeline_id": pipeline.id,
                "ref": pipeline.ref or request.ref,
                "web_url": pipeline.web_url,
            },
        )
        print(f"Triggered downstream pipeline: {pipeline.web_url}")
        print("Waiting for downstream pipeline status")

        if target.post_comment:
            self.post_commit_comment(pipeline).settle()

        if target.downstream_job_name:
            job = self.resolve_job(
                project=request.downstream_project,
                pipeline_id=pipeline.id,
                job_name=target.downstream_job_name,
            )
            if job is not None:
                return PipelineHandle(
                    project=request.downstream_project,
                    id=job.id,
                    kind=HandleKind.JOB,
                    started_at=started_at,
                    web_url=job.web_url,
                )

        return PipelineHandle(
            project=request.downstream_project,
            id=pipeline.id,
            kind=HandleKind.PIPELINE,
            started_at=started_at,
            web_url=pipeline.web_url,
        )

    def resolve_job(self, *, project: str, pipeline_id: int, job_name: str) -> JobInfo | None:
        jobs = self._client.list_pipeline_jobs(project=project, pipeline_id=pipeline_id)
        job = find_job_by_name(jobs, job_name)
        if job is None:
            logger.info(
                "Downstream job not found; polling the pipeline instead",
                extra={"pipeline_id": pipeline_id, "job_name": job_name},
            )
        else:
            logger.info(
                "Polling downstream job",
                extra={"pipeline_id": pipeline_id, "job_name": job_name, "job_id": job.id},
            )
        return job

    def post_commit_comment(self, downstream: PipelineInfo) -> StepOutcome:
        """Cross-reference the downstream pipeline on the upstream commit (best-effort)."""

        step = "commit-comment"
        project = self._settings.project_path or ""
        sha = self._settings.commit_sha or ""
        if not project.strip() or not sha.strip():
            return StepOutcome.ignorable(step, "Upstream project or commit SHA is not set")
        try:
            self._client.create_commit_comment(
                project=project,
                sha=sha,
                note=commit_comment_note(self._settings, downstream),
            )
        except RemoteRequestError as e:
            print(f"Ignoring the following error: {e}")
            return StepOutcome.ignorable(step, "Could not post commit comment", e)
        return StepOutcome.ok(step, f"Commented on {project}@{sha}")


def _print_request(target: Target, request: TriggerRequest) -> None:
    print(
        f"Triggering {target.kind.value} pipeline in {request.downstream_project} "
        f"(ref: {request.ref}) with variables:"
    )
    for key in sorted(request.variables):
        print(f"  {key}={request.variables[key]}")
