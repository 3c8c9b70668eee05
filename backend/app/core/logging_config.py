"""Root logging configuration for the backend process."""
from __future__ import annotations

import logging
import sys

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
HANDLER_NAME = "netverse-console"


def setup_logging(level: str | int = logging.INFO, log_format: str = DEFAULT_LOG_FORMAT) -> None:
    """Configure the root logger with a stdout handler.

    Only the handler installed by a previous call is replaced, so repeated
    calls (tests, reloads) neither duplicate output nor drop handlers that
    other tooling attached.
    """

    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        level = resolved if isinstance(resolved, int) else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        if handler.get_name() == HANDLER_NAME:
            root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(log_format))
    root_logger.addHandler(handler)

    logging.getLogger(__name__).debug(
        "Logging configured", extra={"level": logging.getLevelName(level)}
    )


__all__ = ["setup_logging", "DEFAULT_LOG_FORMAT"]
