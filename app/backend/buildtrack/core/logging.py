"""Logging setup shared by the API process and scripts."""

from __future__ import annotations

import logging

from buildtrack.core.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings) -> None:
    """Install the root handler once; later calls only adjust the level."""

    level = logging.getLevelName(settings.log_level)
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)
