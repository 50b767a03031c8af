"""JSON structured logging configuration."""

import logging
import sys
from typing import TextIO

from pythonjsonlogger.json import JsonFormatter

# Per-request INFO lines from httpx and PNG chunk DEBUG lines from Pillow drown out capture logs
_NOISY_LOGGERS = {"httpx": logging.WARNING, "httpcore": logging.WARNING, "PIL": logging.INFO}


def setup_logging(log_level: str = "INFO", stream: TextIO | None = None) -> None:
    """Send root and uvicorn logs to *stream* (stdout by default) as JSON lines.

    The CLI passes stderr so its human-readable summary owns stdout.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    formatter = JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={
            "asctime": "timestamp",
            "levelname": "level",
            "name": "logger",
        },
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.addHandler(handler)
        uv_logger.propagate = False

    for name, floor in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, floor))
