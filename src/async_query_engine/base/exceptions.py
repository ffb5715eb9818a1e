from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Stable, dialect-independent error codes returned to callers."""

    NOT_FOUND = "RECORD_NOT_FOUND"
    DUPLICATE = "DUPLICATE_ENTRY"
    FOREIGN_KEY = "FOREIGN_KEY_CONSTRAINT"
    NULL_CONSTRAINT = "NULL_CONSTRAINT"
    DATA_TOO_LONG = "DATA_TOO_LONG"
    CONSTRAINT_FAILED = "CONSTRAINT_FAILED"
    DATABASE_ERROR = "DATABASE_ERROR"
    TIMEOUT = "QUERY_TIMEOUT"


class QueryEngineException(Exception):
    """Root of every exception raised by this package."""


class DatabaseException(QueryEngineException):
    """A storage failure, classified into an ErrorKind and optionally tied to a field."""

    kind: ErrorKind = ErrorKind.DATABASE_ERROR
    default_message = "Database operation failed."

    def __init__(
        self,
        message: Optional[str] = None,
        field: Optional[str] = None,
        value: Any = None,
    ):
        self.message = message or self.default_message
        self.field = field
        self.value = value
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.kind.value

    def __str__(self) -> str:
        if self.field:
            return f"{self.code}: {self.message} (field: {self.field})"
        return f"{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        data = {"code": self.code, "message": self.message}
        if self.field:
            data["field"] = self.field
        return data


class ObjectNotFoundException(DatabaseException):
    """Exception raised when an object with the specified identifier does not exist."""

    kind = ErrorKind.NOT_FOUND
    default_message = "The requested object was not found."


class KeyAlreadyExistsException(DatabaseException):
    """Exception raised when trying to write an entity that would violate a unique constraint."""

    kind = ErrorKind.DUPLICATE
    default_message = "An object with the same key already exists."


class ForeignKeyViolationException(DatabaseException):
    kind = ErrorKind.FOREIGN_KEY
    default_message = "Foreign key constraint violation."


class NullConstraintViolationException(DatabaseException):
    kind = ErrorKind.NULL_CONSTRAINT
    default_message = "Required field is missing."


class DataTooLongException(DatabaseException):
    kind = ErrorKind.DATA_TOO_LONG
    default_message = "Data exceeds maximum length."


class ConstraintFailedException(DatabaseException):
    kind = ErrorKind.CONSTRAINT_FAILED
    default_message = "Constraint check failed."


class GenericDatabaseException(DatabaseException):
    """Fallback for native errors that match no known pattern; keeps the raw message."""

    kind = ErrorKind.DATABASE_ERROR


class QueryTimeoutException(DatabaseException):
    """Exception raised when a store round-trip exceeds its timeout."""

    kind = ErrorKind.TIMEOUT
    default_message = "The database operation timed out."
