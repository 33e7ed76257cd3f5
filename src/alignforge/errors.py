"""Exception types raised by AlignForge.

Each error subclasses the closest builtin so callers that only know
about ``ValueError`` or ``RuntimeError`` still catch them.

Example:
    >>> from alignforge.errors import InvalidArgumentError
    >>> try:
    ...     raise InvalidArgumentError("chunk count must be positive")
    ... except ValueError as e:
    ...     print(e)
    chunk count must be positive
"""


class AlignForgeError(Exception):
    """Base class for all AlignForge errors."""


class InvalidArgumentError(AlignForgeError, ValueError):
    """A count, size or configuration value is out of range."""


class PreconditionFailedError(AlignForgeError):
    """A required file is missing or its size cannot be determined."""


class SubmissionError(AlignForgeError, RuntimeError):
    """The scheduler rejected a job or could not be reached."""


class StaleHandleError(AlignForgeError):
    """A persisted job handle no longer resolves to a live job."""


class SchedulerUnavailableError(AlignForgeError, RuntimeError):
    """The scheduler could not be asked about a job right now."""


__all__ = [
    "AlignForgeError",
    "InvalidArgumentError",
    "PreconditionFailedError",
    "SubmissionError",
    "StaleHandleError",
    "SchedulerUnavailableError",
]
