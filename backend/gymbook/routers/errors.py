import logging

from fastapi import HTTPException, status

from ..domain.errors import (
    AuthenticationError,
    CancelNotAllowedError,
    CapacityExceededError,
    ClassInactiveError,
    ClassInUseError,
    DomainError,
    DuplicateReservationError,
    EmailAlreadyRegisteredError,
    InvalidOccurrenceError,
    InvalidStatusTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ReservationLimitExceededError,
    StoreError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)

_CONFLICTS: dict[type[DomainError], str] = {
    ReservationLimitExceededError: "You have reached the limit of active reservations",
    CapacityExceededError: "Class is full",
    DuplicateReservationError: "You already have a reservation for this class",
    CancelNotAllowedError: "The cancellation window for this reservation has closed",
    InvalidStatusTransitionError: "This reservation can no longer be changed",
    ClassInactiveError: "Class is not accepting reservations",
    ClassInUseError: "Class has reservations; deactivate it instead",
    EmailAlreadyRegisteredError: "This email is already registered",
}


def to_http(exc: DomainError) -> HTTPException:
    """Translate a domain error into the HTTP response the client sees."""
    if isinstance(exc, ValidationFailedError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail={"errors": exc.errors})
    if isinstance(exc, InvalidOccurrenceError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail={"errors": [str(exc)]})
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Resource not found")
    if isinstance(exc, PermissionDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, AuthenticationError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    if isinstance(exc, StoreError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Something went wrong. Try again.")
    for error_type, message in _CONFLICTS.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=message)
    logger.error("unmapped domain error %s: %s", type(exc).__name__, exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Something went wrong. Try again.")
