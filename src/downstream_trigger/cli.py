"""Console script entrypoint.

The CLI itself lives in `downstream_trigger.pipeline.main`.
"""

from __future__ import annotations

from downstream_trigger.pipeline.main import main

__all__ = ["main"]


if __name__ == "__main__":
    raise SystemExit(main())
