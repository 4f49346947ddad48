"""Shared exceptions for service layer operations."""


class ServiceError(Exception):
    """
    Base class for errors raised by the service layer.

    Carries a stable machine-readable code alongside the human message so the
    API layer can map errors without parsing strings.
    """

    code = "internal_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)


class NotFoundError(ServiceError):
    """Raised when a referenced user, event, or registration does not exist."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: object) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} not found: {entity_id}", f"{entity}_not_found")


class ConflictError(ServiceError):
    """Raised on a duplicate follow or a duplicate active registration."""

    code = "conflict"


class InvalidOperationError(ServiceError):
    """Raised for requests that can never succeed (self-follow, bad status transition)."""

    code = "invalid_operation"


class TransientError(ServiceError):
    """
    Raised when the store is unavailable or an operation timed out.

    The transaction has been rolled back. Idempotent operations (unfollow, cancel)
    may be retried as-is; non-idempotent ones should re-read state first.
    """

    code = "transient_failure"
