"""Logging setup and TOML configuration loading."""

import logging
import os
import sys
import tomllib
from typing import Any

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("coheredb")


class _ConsoleHandler(logging.StreamHandler):
    """Handler installed by setup_logging."""


def setup_logging() -> logging.Logger:
    """Send every level of the package logger to stderr with timestamps."""
    for handler in [h for h in logger.handlers if isinstance(h, _ConsoleHandler)]:
        logger.removeHandler(handler)
    handler = _ConsoleHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(message)s", datefmt=TIME_FORMAT)
    )
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger


def load_toml_config(path: str | os.PathLike[str]) -> dict[str, Any]:
    """Read a TOML file and return its contents as a dictionary."""
    with open(path, "rb") as handle:
        return tomllib.load(handle)