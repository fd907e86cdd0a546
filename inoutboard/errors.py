"""In/Out Board error hierarchy.

Every error raised on purpose by the service inherits from InOutBoardError.
The ``kind`` attribute is the machine-readable tag reported to callers.
"""


class InOutBoardError(Exception):
    """Base error for all board operations."""

    kind = "internal"
    status_code = 500


class ValidationError(InOutBoardError):
    """Missing required field or an update touching no recognized field."""

    kind = "validation"
    status_code = 400


class NotFoundError(InOutBoardError):
    """Mutation target does not exist."""

    kind = "not_found"
    status_code = 404


class PayloadError(InOutBoardError):
    """Malformed or oversized upload payload."""

    kind = "payload"
    status_code = 400


class AuthError(InOutBoardError):
    """Admin credentials missing or wrong."""

    kind = "unauthorized"
    status_code = 401


class PersistenceError(InOutBoardError):
    """The underlying store failed a call."""
