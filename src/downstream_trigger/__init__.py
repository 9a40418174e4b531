"""Downstream pipeline trigger.

Triggers a pipeline in a downstream GitLab project from a CI job and waits for it:
- configuration loaded from CI variables (and `.env`)
- structured logging
- omnibus, cng and docs trigger targets
"""

__version__ = "0.1.0"

from downstream_trigger.pipeline.config import TriggerSettings

__all__ = ["__version__", "TriggerSettings"]
