"""
Typed errors raised by the workflow engine.

Routers never build HTTP errors for workflow failures themselves; the
exception handler registered in ``fieldtrack.main`` renders any
``FieldTrackError`` using its ``status_code``.
"""

from fastapi import status


class FieldTrackError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class NotFoundError(FieldTrackError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ValidationError(FieldTrackError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"


class PermissionDeniedError(FieldTrackError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class ConflictError(FieldTrackError):
    """An invariant would be violated (duplicate active placement, taken email)."""

    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class StaleStatusError(ConflictError):
    """Raised by the store when a compare-and-swap on ``status`` loses."""

    code = "stale_status"


class InvalidStateError(FieldTrackError):
    """Transition attempted from a state that does not allow it."""

    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state"


class PreconditionFailedError(FieldTrackError):
    status_code = status.HTTP_412_PRECONDITION_FAILED
    code = "precondition_failed"


class SupervisorNotAssignedError(PreconditionFailedError):
    code = "supervisor_not_assigned"


class UpstreamUnavailableError(FieldTrackError):
    """An external identity or mail provider refused or failed the call."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "upstream_unavailable"
