"""Logging configuration for AlignForge.

Two kinds of process log through this module:

- the driver (``alignforge run`` / ``status``), usually started from a
  terminal on a login node, where rich console output is wanted;
- the job runner (``alignforge run-task``), whose output ends up in
  ``job.log`` or ``slurm-<id>.out``, where plain timestamped lines are
  easier to grep than rich's wrapped columns.

``setup_logging`` picks between the two from whether stderr is a
terminal unless told otherwise. A log file, if given, always receives
DEBUG detail.

Example:
    >>> from alignforge.utils.logging import setup_logging, Timer
    >>> setup_logging(verbosity=2)
    >>> with Timer("Input preparation", logger):
    ...     prepare_inputs()
"""

import logging
import sys
import time
from pathlib import Path
from typing import Any

from rich.logging import RichHandler

# =============================================================================
# Constants
# =============================================================================

PACKAGE_LOGGER = "alignforge"

# Job logs and log files
PLAIN_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

# Rich adds time and level columns itself
RICH_FORMAT = "%(message)s"

VERBOSITY_LEVELS = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
}


# =============================================================================
# Setup Functions
# =============================================================================


def _console_handler(use_rich: bool) -> logging.Handler:
    if use_rich:
        handler: logging.Handler = RichHandler(
            rich_tracebacks=True,
            show_time=True,
            show_path=False,
        )
        handler.setFormatter(logging.Formatter(RICH_FORMAT))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    return handler


def setup_logging(
    verbosity: int = 1,
    log_file: Path | str | None = None,
    use_rich: bool | None = None,
) -> logging.Logger:
    """Configure the ``alignforge`` logger.

    Calling it again replaces the handlers of the previous call.

    Args:
        verbosity: Console verbosity (0=warning, 1=info, 2=debug).
        log_file: Optional file receiving DEBUG output.
        use_rich: Rich console output; None decides from whether stderr
            is a terminal.

    Returns:
        The configured package logger.
    """
    level = VERBOSITY_LEVELS.get(verbosity, logging.DEBUG)
    if use_rich is None:
        use_rich = sys.stderr.isatty()

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG if log_file is not None else level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = _console_handler(use_rich)
    console.setLevel(level)
    logger.addHandler(console)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
        file_handler.setLevel(logging.DEBUG)
        logger.addHandler(file_handler)

    return logger


# =============================================================================
# Timing Utilities
# =============================================================================


class Timer:
    """Context manager that logs how long a step took.

    Example:
        >>> with Timer("Input preparation", logger) as timer:
        ...     prepare_inputs()
        >>> timer.elapsed
        1.23
    """

    def __init__(self, description: str, logger: logging.Logger) -> None:
        self.description = description
        self.logger = logger
        self.start_time: float = 0
        self.elapsed: float = 0

    def __enter__(self) -> "Timer":
        self.logger.debug(f"{self.description} started")
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, *args: Any) -> None:
        self.elapsed = time.perf_counter() - self.start_time
        if exc_type is None:
            self.logger.info(f"{self.description} completed in {self.elapsed:.2f}s")
        else:
            self.logger.info(f"{self.description} failed after {self.elapsed:.2f}s")
