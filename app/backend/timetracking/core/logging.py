"""Logging setup shared by the API process and maintenance jobs."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger."""

    root = logging.getLogger()
    root.setLevel(level.upper())
    if any(getattr(handler, "_timetracking", False) for handler in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._timetracking = True  # type: ignore[attr-defined]
    root.addHandler(handler)
