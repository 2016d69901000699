from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str | int = logging.INFO) -> None:
    """Configure the root logger with a single stream handler.

    Safe to call more than once; existing handlers are replaced so reloads
    (uvicorn --reload, test sessions) do not duplicate output.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if root_logger.handlers:
        root_logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    root_logger.addHandler(handler)
