from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(ServiceError):
    """Bad payment input (amount, student, category, mode). Raised before any store call."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class PersistenceError(ServiceError):
    """The transaction store failed or returned an unusable record."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)


class ConflictError(ServiceError):
    """A confirm is already in flight, or an idempotency key was reused for a different payment."""

    def __init__(self, message: str = "A payment confirmation is already in progress") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class InvalidStateTransitionError(ServiceError):
    """Workflow operation called from a state that does not allow it."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)
