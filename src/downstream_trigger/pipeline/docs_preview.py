"""Deploy and clean up docs review apps.

Deploying creates a review branch in the docs project, triggers a pipeline for it
and waits. Creating the branch also starts a pipeline of its own, so the first
deploy for a branch cancels that one.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from downstream_trigger.pipeline.errors import RemoteRequestError, StepOutcome
from downstream_trigger.pipeline.gitlab.client import GitLabClient
from downstream_trigger.pipeline.poller import PollOutcome, StatusPoller
from downstream_trigger.pipeline.service import PipelineTrigger
from downstream_trigger.pipeline.targets import DocsTarget

logger = logging.getLogger(__name__)

DOCS_BASE_BRANCH = "master"

# HTTP statuses GitLab uses for "branch already exists".
_BRANCH_EXISTS_STATUSES = {400, 409}

SUCCESS_MESSAGE = """\
=> You should now be able to preview your changes under the following URL:

{preview_url}

=> For more information, see
https://docs.gitlab.com/ee/development/documentation/#previewing-the-changes-live

=> If something doesn't work, drop a line in the #docs chat channel.
"""


class DocsPreview:
    def __init__(
        self,
        *,
        client: GitLabClient,
        trigger: PipelineTrigger,
        poller: StatusPoller,
        target: DocsTarget,
    ) -> None:
        self._client = client
        self._trigger = trigger
        self._poller = poller
        self._target = target

    def deploy(self, variables: Mapping[str, str]) -> PollOutcome:
        created = self.create_remote_branch().settle()
        if created.succeeded:
            self.cancel_latest_pipeline()

        handle = self._trigger.invoke(self._target, variables)
        outcome = self._poller.wait(handle)
        print(SUCCESS_MESSAGE.format(preview_url=self._target.preview_url))
        return outcome

    def cleanup(self) -> None:
        self._client.delete_branch(
            project=self._target.project_path, branch=self._target.review_branch
        )
        logger.info(
            "Deleted docs review branch",
            extra={"project": self._target.project_path, "branch": self._target.review_branch},
        )
        print(f"=> Remote branch '{self._target.review_branch}' deleted")

    def create_remote_branch(self) -> StepOutcome:
        step = "create-branch"
        branch = self._target.review_branch
        try:
            self._client.create_branch(
                project=self._target.project_path, branch=branch, ref=DOCS_BASE_BRANCH
            )
        except RemoteRequestError as e:
            if e.status_code in _BRANCH_EXISTS_STATUSES:
                print(f"=> Remote branch '{branch}' already exists!")
                return StepOutcome.ignorable(step, f"Branch {branch!r} already exists", e)
            return StepOutcome.fatal(step, e)
        print(f"=> Remote branch '{branch}' created")
        return StepOutcome.ok(step, f"Created branch {branch!r}")

    def cancel_latest_pipeline(self) -> int | None:
        """Cancel the newest pipeline on the review branch; return its id, if any."""

        pipelines = self._client.list_pipelines(
            project=self._target.project_path,
            ref=self._target.review_branch,
            order_by="id",
            sort="desc",
        )
        if not pipelines:
            logger.info(
                "No pipeline to cancel for docs review branch",
                extra={"branch": self._target.review_branch},
            )
            return None

        latest = pipelines[0]
        self._client.cancel_pipeline(project=self._target.project_path, pipeline_id=latest.id)
        print(f"=> Canceled unneeded pipeline {latest.id} for '{self._target.review_branch}'")
        return latest.id
