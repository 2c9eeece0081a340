"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """A required field is missing or a value is out of range"""

    pass


class InvalidTransition(DomainException):
    """The requested status change is not legal from the current status"""

    def __init__(self, message: str, from_status: str | None = None, to_status: str | None = None):
        super().__init__(message)
        self.from_status = from_status
        self.to_status = to_status


class ConflictError(DomainException):
    """Concurrent write detected: the stored version moved since it was read"""

    def __init__(self, message: str, expected_version: int | None = None, actual_version: int | None = None):
        super().__init__(message)
        self.expected_version = expected_version
        self.actual_version = actual_version


class NotFoundError(DomainException):
    """Authorization request does not exist"""

    pass


class PersistenceError(DomainException):
    """Store or transport failure with an opaque cause"""

    pass
