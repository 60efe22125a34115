"""Error taxonomy shared by the tracking services.

Every error carries a human-readable ``message`` and a stable ``code``
that the HTTP layer maps to a status. None of them is swallowed: a
mutation either fully applies or raises one of these.
"""


class TrackingError(Exception):
    """Base tracking error."""

    def __init__(self, message: str, code: str = "tracking_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(TrackingError):
    """Malformed input, rejected before any store access."""

    def __init__(self, message: str):
        super().__init__(message, "validation_error")


class NotFoundError(TrackingError):
    """Referenced entity does not exist."""

    def __init__(self, message: str, code: str = "not_found"):
        super().__init__(message, code)


class ContentNotFoundError(NotFoundError):
    def __init__(self, message: str = "Content item not found"):
        super().__init__(message, "content_not_found")


class ModuleNotFoundError(NotFoundError):  # noqa: A001
    def __init__(self, message: str = "Module not found"):
        super().__init__(message, "module_not_found")


class EnrollmentNotFoundError(NotFoundError):
    def __init__(self, message: str = "Enrollment not found"):
        super().__init__(message, "enrollment_not_found")


class AuthorizationError(TrackingError):
    """Caller may not act on this record.

    Kept distinct from NotFoundError so clients can tell "join this module"
    apart from "doesn't exist".
    """

    def __init__(self, message: str, code: str = "forbidden"):
        super().__init__(message, code)


class NotEnrolledError(AuthorizationError):
    def __init__(self, message: str = "User is not enrolled in this module"):
        super().__init__(message, "not_enrolled")


class ConflictError(TrackingError):
    """Request conflicts with the current state; caller must re-fetch."""

    def __init__(self, message: str, code: str = "conflict"):
        super().__init__(message, code)


class AlreadyEnrolledError(ConflictError):
    def __init__(self, status: str):
        self.current_status = status
        super().__init__(
            f"User is already enrolled in this module (status: {status})",
            "already_enrolled",
        )


class InvalidTransitionError(ConflictError):
    """Illegal state-machine transition, naming both states."""

    def __init__(self, entity: str, current: str, attempted: str):
        self.entity = entity
        self.current = current
        self.attempted = attempted
        super().__init__(
            f"cannot {attempted} {entity} with status {current}",
            "invalid_transition",
        )


class ConcurrencyConflictError(TrackingError):
    """A compare-and-set kept losing to concurrent writers.

    Raised only after the bounded internal retries are exhausted; the
    condition is transient and safe for the client to retry.
    """

    def __init__(self, message: str = "Concurrent update conflict, please retry"):
        super().__init__(message, "concurrency_conflict")
