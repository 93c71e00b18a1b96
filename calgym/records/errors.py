"""Error taxonomy for the record store.

Expected, recoverable outcomes are reported as an ``ErrorCode`` inside an
``OperationResult``. Only environment faults are raised.
"""

from enum import Enum


class ErrorCode(str, Enum):
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    HAS_DEPENDENTS = "has_dependents"
    LIMIT_EXCEEDED = "limit_exceeded"
    UNAUTHORIZED = "unauthorized"
    STORAGE_ERROR = "storage_error"


class CalGymError(Exception):
    """Base class for errors raised by calgym."""

    code: ErrorCode


class UnauthorizedError(CalGymError):
    """The store was used without an active teacher identity."""

    code = ErrorCode.UNAUTHORIZED


class StorageError(CalGymError):
    """The persistence collaborator failed or returned unreadable data."""

    code = ErrorCode.STORAGE_ERROR
