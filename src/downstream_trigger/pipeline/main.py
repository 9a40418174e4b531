"""CLI entrypoint: trigger a downstream pipeline and wait for it.

    trigger-build omnibus
    trigger-build cng
    trigger-build docs <deploy|cleanup>
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pydantic import ValidationError

from downstream_trigger import __version__
from downstream_trigger.pipeline.config import TriggerSettings, load_context
from downstream_trigger.pipeline.docs_preview import DocsPreview
from downstream_trigger.pipeline.errors import (
    PollTimeoutError,
    RemoteRequestError,
    TerminalFailureError,
    UsageError,
)
from downstream_trigger.pipeline.gitlab.client import GitLabClient
from downstream_trigger.pipeline.logging import configure_logging
from downstream_trigger.pipeline.poller import StatusPoller
from downstream_trigger.pipeline.service import PipelineTrigger
from downstream_trigger.pipeline.targets import DocsTarget, TargetKind, resolve_target
from downstream_trigger.pipeline.variables import build_variables

logger = logging.getLogger(__name__)

USAGE = """\
Please provide a valid option:
  omnibus        - Triggers a pipeline that builds the omnibus-gitlab package
  cng            - Triggers a pipeline that builds images used by the GitLab helm chart
  docs deploy    - Creates a docs review app for the current branch
  docs cleanup   - Deletes the docs review app branch
"""

DOCS_USAGE = "usage: trigger-build docs <deploy|cleanup>"


class Action(str, Enum):
    TRIGGER = "trigger"
    DEPLOY = "deploy"
    CLEANUP = "cleanup"


@dataclass(frozen=True, slots=True)
class Command:
    target: TargetKind
    action: Action


def parse_command(target: str, action: str | None) -> Command:
    """Map `<target> [<action>]` onto a command.

    Raises:
        UsageError: unknown target, a missing/unknown docs action, or an action
            given to a target that takes none.
    """

    try:
        kind = TargetKind(target)
    except ValueError:
        raise UsageError(USAGE) from None

    if kind == TargetKind.DOCS:
        if action == Action.DEPLOY.value:
            return Command(target=kind, action=Action.DEPLOY)
        if action == Action.CLEANUP.value:
            return Command(target=kind, action=Action.CLEANUP)
        raise UsageError(DOCS_USAGE)

    if action is not None:
        raise UsageError(USAGE)
    return Command(target=kind, action=Action.TRIGGER)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trigger-build",
        description="Trigger a downstream GitLab pipeline and wait for it to finish",
    )
    parser.add_argument(
        "--version", action="version", version=f"downstream-trigger {__version__}"
    )
    parser.add_argument("target", nargs="?", default="", help="omnibus | cng | docs")
    parser.add_argument(
        "action", nargs="?", default=None, help="docs only: deploy | cleanup"
    )
    return parser


def run(command: Command, settings: TriggerSettings, *, workdir: Path) -> int:
    context = load_context(settings, workdir=workdir, environ=os.environ)
    target = resolve_target(command.target, settings)

    client = GitLabClient(token=target.access_token, base_url=settings.api_url)
    logger.debug(
        "Using GitLab API",
        extra={"api_url": client.api_url, "target": target.kind.value},
    )
    try:
        trigger = PipelineTrigger(client=client, settings=settings)
        poller = StatusPoller(client)

        if command.action == Action.TRIGGER:
            handle = trigger.invoke(target, build_variables(target, context))
            poller.wait(handle)
            return 0

        assert isinstance(target, DocsTarget)
        preview = DocsPreview(client=client, trigger=trigger, poller=poller, target=target)
        if command.action == Action.DEPLOY:
            preview.deploy(build_variables(target, context))
        else:
            preview.cleanup()
        return 0
    finally:
        client.close()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args, extra = parser.parse_known_args(argv)

    try:
        if extra:
            raise UsageError(USAGE)
        command = parse_command(args.target, args.action)
    except UsageError as e:
        print(str(e), file=sys.stderr)
        return 1

    try:
        settings = TriggerSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check the CI variables or your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        return run(command, settings, workdir=Path.cwd())

    except (TerminalFailureError, PollTimeoutError) as e:
        print(str(e), file=sys.stderr)
        return 1

    except RemoteRequestError as e:
        logger.error(
            "GitLab API request failed",
            extra={"status_code": e.status_code, "url": e.url, "method": e.method},
        )
        print(str(e), file=sys.stderr)
        return 1

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
