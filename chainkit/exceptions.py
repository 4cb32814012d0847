"""Exception hierarchy for chainkit

Composition code (sequences, batch, streams, adapters) never wraps these or
any other exception: the object raised by a unit reaches the caller unchanged.
Collaborators (models, parsers, templates) wrap their own failures into
ExecutionError at the boundary.
"""

from typing import Optional


class ChainkitError(Exception):
    """Base class for all chainkit errors"""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ChainkitError):
    """Malformed composition or mismatched positional options"""


class ExecutionError(ChainkitError):
    """Failure of an underlying collaborator

    The original exception is chained (``raise ... from cause``) and also
    available as ``cause``.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class ConcatenationError(ChainkitError):
    """Two streamed values have no concatenation operation"""
