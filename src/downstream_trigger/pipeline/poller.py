"""Poll a downstream pipeline or job until it reaches a terminal state."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from downstream_trigger.pipeline.errors import (
    PollTimeoutError,
    RemoteRequestError,
    TerminalFailureError,
)
from downstream_trigger.pipeline.gitlab.client import GitLabClient

logger = logging.getLogger(__name__)

INTERVAL_SECONDS = 60.0
MAX_DURATION_SECONDS = 3 * 60 * 60
MAX_TICKS = int(MAX_DURATION_SECONDS // INTERVAL_SECONDS)


class HandleKind(str, Enum):
    PIPELINE = "pipeline"
    JOB = "job"


class PollResult(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self not in {PollResult.PENDING, PollResult.RUNNING}


# Remote statuses that mean "keep waiting". Everything else that is not
# "success" counts as a failure.
_PENDING_STATUSES = {"created", "pending", "waiting_for_resource", "preparing", "scheduled"}
_RUNNING_STATUSES = {"running"}


def classify_status(status: str) -> PollResult:
    normalized = status.strip().lower()
    if normalized in _PENDING_STATUSES:
        return PollResult.PENDING
    if normalized in _RUNNING_STATUSES:
        return PollResult.RUNNING
    if normalized == "success":
        return PollResult.SUCCESS
    return PollResult.FAILED


@dataclass(frozen=True, slots=True)
class PipelineHandle:
    """Reference to a remote pipeline or job that can be polled."""

    project: str
    id: int
    kind: HandleKind = HandleKind.PIPELINE
    started_at: float = 0.0
    web_url: str = ""

    @property
    def label(self) -> str:
        return "Pipeline" if self.kind == HandleKind.PIPELINE else "Job"


@dataclass(frozen=True, slots=True)
class PollOutcome:
    handle: PipelineHandle
    result: PollResult
    ticks: int
    duration_seconds: float

    @property
    def duration_minutes(self) -> int:
        return int(self.duration_seconds // 60)


class StatusPoller:
    """Blocking fixed-interval poller with a bounded number of ticks.

    A failed status fetch is logged and counted as still running; a real outage
    ends up hitting the tick ceiling.
    """

    def __init__(
        self,
        client: GitLabClient,
        *,
        interval_seconds: float = INTERVAL_SECONDS,
        max_ticks: int = MAX_TICKS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        if max_ticks <= 0:
            raise ValueError("max_ticks must be > 0")
        self._client = client
        self._interval = interval_seconds
        self._max_ticks = max_ticks
        self._sleep = sleep
        self._clock = clock

    def fetch_status(self, handle: PipelineHandle) -> str:
        if handle.kind == HandleKind.JOB:
            return self._client.get_job(project=handle.project, job_id=handle.id).status
        return self._client.get_pipeline(project=handle.project, pipeline_id=handle.id).status

    def observe(self, handle: PipelineHandle) -> tuple[str, PollResult]:
        """Fetch the current status once; a failed fetch reads as still running."""

        try:
            status = self.fetch_status(handle)
        except RemoteRequestError as e:
            logger.warning(
                "Ignoring status fetch error",
                extra={"kind": handle.kind.value, "id": handle.id, "error": str(e)},
            )
            status = PollResult.RUNNING.value
        return status, classify_status(status)

    def wait(self, handle: PipelineHandle) -> PollOutcome:
        """Block until `handle` succeeds.

        Raises:
            TerminalFailureError: the remote resource finished without success.
            PollTimeoutError: `max_ticks` ticks passed without a terminal status.
        """

        last = PollResult.PENDING
        for tick in range(1, self._max_ticks + 1):
            status, last = self.observe(handle)

            if not last.is_terminal:
                logger.info(
                    "Waiting for downstream resource",
                    extra={
                        "kind": handle.kind.value,
                        "id": handle.id,
                        "status": status,
                        "tick": tick,
                    },
                )
                self._sleep(self._interval)
                continue

            if last == PollResult.SUCCESS:
                outcome = PollOutcome(
                    handle=handle,
                    result=last,
                    ticks=tick,
                    duration_seconds=self._elapsed(handle),
                )
                logger.info(
                    "Downstream resource succeeded",
                    extra={
                        "kind": handle.kind.value,
                        "id": handle.id,
                        "ticks": tick,
                        "duration_seconds": outcome.duration_seconds,
                    },
                )
                print(f"{handle.label} succeeded in {outcome.duration_minutes} minutes!")
                return outcome

            logger.error(
                "Downstream resource did not succeed",
                extra={"kind": handle.kind.value, "id": handle.id, "status": status},
            )
            raise TerminalFailureError(
                f"{handle.label} did not succeed! (status: {status})", status=status
            )

        minutes = int(self._elapsed(handle) // 60)
        logger.error(
            "Timed out waiting for downstream resource",
            extra={
                "kind": handle.kind.value,
                "id": handle.id,
                "result": PollResult.TIMED_OUT.value,
                "last_result": last.value,
            },
        )
        raise PollTimeoutError(f"{handle.label} timed out after waiting for {minutes} minutes!")

    def _elapsed(self, handle: PipelineHandle) -> float:
        return max(0.0, self._clock() - handle.started_at)
