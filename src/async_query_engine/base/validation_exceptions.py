# validation_exceptions.py
from typing import Optional


class QueryValidationError(ValueError):
    """Base class for errors detected purely from a Query value, before any statement runs."""

    code = "INVALID_QUERY"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class InvalidFieldError(QueryValidationError):
    """Error raised when an identifier (field, order-by column, include path) is not whitelisted."""

    code = "INVALID_FIELD"


class InvalidOperatorError(QueryValidationError):
    """Error raised when an operator is outside the closed operator set."""

    code = "INVALID_OPERATOR"


class InvalidConditionError(QueryValidationError):
    """Error raised when a condition has the wrong shape or its value the wrong arity."""

    code = "INVALID_CONDITION"


class MissingRequiredFieldError(QueryValidationError):
    """Error raised when a required field never appears in the search conditions."""

    code = "MISSING_REQUIRED_FIELD"

    def __init__(self, field: str):
        super().__init__(
            f"required field '{field}' is missing in search conditions", field=field
        )
