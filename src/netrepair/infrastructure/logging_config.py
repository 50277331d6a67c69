"""Logging setup for the CLI.

Library modules only call ``logging.getLogger(__name__)``; the CLI calls
:func:`configure_logging` once to attach handlers to the ``netrepair``
logger.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

_FILE_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    level: str | int = "INFO",
    log_file: str | Path | None = None,
    console: Console | None = None,
) -> logging.Logger:
    """Attach a rich console handler and an optional file handler.

    Calling it again replaces the handlers installed by a previous call.
    """
    logger = logging.getLogger("netrepair")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.addHandler(
        RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )
    )

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, _FILE_DATEFMT))
        logger.addHandler(file_handler)

    return logger
