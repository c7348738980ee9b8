"""Logging configuration for demandgen.

Every module logs through ``get_logger(__name__)``, so all pipeline loggers
(``demandgen.blocks``, ``demandgen.employment``, ``demandgen.clusters``,
``demandgen.flows``, ``demandgen.pipeline`` and the rest) sit under the
``demandgen`` package logger. Stage counts are logged at INFO, per-record
drops and skipped origins at WARNING or DEBUG. Setting the package level
controls all of them at once.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%H:%M:%S"
PACKAGE_LOGGER = "demandgen"


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a demandgen module.

    Args:
        name: Module name, normally ``__name__``; names outside the
            ``demandgen`` hierarchy are not affected by
            ``set_global_log_level``'s package level.

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)


def set_global_log_level(level: int) -> None:
    """Route log records to stderr and set the demandgen package level.

    Replaces any handlers already on the root logger, so repeated calls
    (e.g., one per CLI invocation) do not stack handlers.

    Args:
        level: Logging level (e.g., logging.DEBUG, logging.INFO).
    """
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        stream=sys.stderr,
        force=True,
    )
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)
