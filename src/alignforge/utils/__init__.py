"""Utility functions for AlignForge.

Example:
    >>> from alignforge.utils import setup_logging
    >>> setup_logging(verbosity=1, log_file="alignforge.log")
"""

from alignforge.utils.logging import Timer, setup_logging

__all__ = [
    "Timer",
    "setup_logging",
]
