class DomainError(Exception):
    """Base class for errors raised by the booking rules."""


class NotFoundError(DomainError):
    pass


class PermissionDeniedError(DomainError):
    pass


class AuthenticationError(DomainError):
    pass


class EmailAlreadyRegisteredError(DomainError):
    pass


class ValidationFailedError(DomainError):
    """Carries the aggregated field messages of a composite validator."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = list(errors)


class CapacityExceededError(DomainError):
    pass


class ClassFullError(CapacityExceededError):
    pass


class ClassInactiveError(DomainError):
    pass


class ClassInUseError(DomainError):
    pass


class InvalidOccurrenceError(DomainError):
    pass


class ReservationLimitExceededError(DomainError):
    pass


class DuplicateReservationError(DomainError):
    pass


class CancelNotAllowedError(DomainError):
    pass


class InvalidStatusTransitionError(DomainError):
    pass


class StoreError(DomainError):
    """The database failed or was unreachable."""
