"""Error taxonomy for triggering and polling downstream pipelines."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class RemoteRequestError(Exception):
    """Raised when an outbound GitLab API call fails (transport error or non-2xx)."""

    def __init__(
        self,
        message: str,
        *,
        method: str = "",
        url: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.url = url
        self.status_code = status_code

    def __str__(self) -> str:
        base = super().__str__()
        target = " ".join(part for part in (self.method, self.url) if part)
        if not target:
            return base
        if self.status_code is None:
            return f"{base} ({target})"
        return f"{base} ({target} -> HTTP {self.status_code})"


class PollTimeoutError(Exception):
    """Raised when the tick ceiling is reached without a terminal status."""


class TerminalFailureError(Exception):
    """Raised when the remote resource reaches a non-success terminal status."""

    def __init__(self, message: str, *, status: str) -> None:
        super().__init__(message)
        self.status = status


class UsageError(Exception):
    """Raised for an invalid command-line invocation."""


class Severity(str, Enum):
    OK = "ok"
    IGNORABLE = "ignorable"
    FATAL = "fatal"


@dataclass(frozen=True, slots=True)
class StepOutcome:
    """Result of a best-effort remote step.

    Ignorable outcomes are logged and dropped by the caller; fatal outcomes carry
    the error that `settle()` re-raises.
    """

    step: str
    severity: Severity
    message: str
    error: RemoteRequestError | None = None

    @classmethod
    def ok(cls, step: str, message: str) -> StepOutcome:
        return cls(step=step, severity=Severity.OK, message=message)

    @classmethod
    def ignorable(
        cls, step: str, message: str, error: RemoteRequestError | None = None
    ) -> StepOutcome:
        return cls(step=step, severity=Severity.IGNORABLE, message=message, error=error)

    @classmethod
    def fatal(cls, step: str, error: RemoteRequestError) -> StepOutcome:
        return cls(step=step, severity=Severity.FATAL, message=str(error), error=error)

    @property
    def succeeded(self) -> bool:
        return self.severity == Severity.OK

    def settle(self) -> StepOutcome:
        """Log an ignorable outcome, raise a fatal one, and return self otherwise."""

        if self.severity == Severity.FATAL:
            assert self.error is not None
            raise self.error
        if self.severity == Severity.IGNORABLE:
            logger.warning(
                "Ignoring failed step",
                extra={"step": self.step, "reason": self.message, "error": str(self.error)},
            )
        return self
