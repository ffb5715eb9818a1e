# src/async_query_engine/base/error_handler.py
"""
Classification of driver-native errors into the DatabaseException taxonomy.

Drivers are recognised by shape rather than by import, so the core does not
depend on any particular driver being installed:
  - asyncpg errors carry a five-character `sqlstate`.
  - aiomysql/PyMySQL errors carry the numeric server code as `args[0]`.
  - sqlite3/aiosqlite errors are recognised from their message text.
Anything unrecognised falls back to message patterns, then to
GenericDatabaseException with the raw message preserved.
"""

import asyncio
import logging
import re
from typing import Callable, Dict, Optional, Tuple

from .exceptions import (
    ConstraintFailedException,
    DatabaseException,
    DataTooLongException,
    ForeignKeyViolationException,
    GenericDatabaseException,
    KeyAlreadyExistsException,
    NullConstraintViolationException,
    QueryEngineException,
    QueryTimeoutException,
)
from .validation_exceptions import QueryValidationError

log = logging.getLogger(__name__)

# --- MySQL message formats ---
_MYSQL_DUPLICATE_RE = re.compile(r"Duplicate entry '([^']*)' for key '([^']+)'")
_MYSQL_FOREIGN_KEY_RE = re.compile(r"FOREIGN KEY \(`([^`]+)`\)")
_MYSQL_NULL_RE = re.compile(r"Column '([^']+)' cannot be null")
_MYSQL_TOO_LONG_RE = re.compile(r"Data too long for column '([^']+)'")
_MYSQL_CHECK_RE = re.compile(r"Check constraint '([^']+)' is violated")

# --- PostgreSQL detail formats ---
_PG_KEY_DETAIL_RE = re.compile(r"Key \((?P<field>[^)]+)\)=\((?P<value>.*)\)")

# --- SQLite message formats ---
_SQLITE_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: ([\w.]+)")
_SQLITE_NULL_RE = re.compile(r"NOT NULL constraint failed: ([\w.]+)")
_SQLITE_CHECK_RE = re.compile(r"CHECK constraint failed: ?(\w*)")

_KEY_PREFIXES = ("uk_", "idx_", "uniq_")

MYSQL_DUPLICATE = 1062
MYSQL_FOREIGN_KEY = 1452
MYSQL_ROW_IS_REFERENCED = 1451
MYSQL_NULL = 1048
MYSQL_DATA_TOO_LONG = 1406
MYSQL_CHECK = 3819


def extract_field_from_key(key: str) -> str:
    """
    Derives a field name from a unique index name.

    'PRIMARY' maps to 'id'; 'users.email' to 'email'; 'uk_users_email' to
    'email' (known prefixes stripped, last underscore segment kept).
    """
    if key == "PRIMARY" or key.endswith(".PRIMARY"):
        return "id"
    if "." in key:
        key = key.rsplit(".", 1)[1]
    for prefix in _KEY_PREFIXES:
        if key.startswith(prefix):
            key = key[len(prefix):]
            break
    return key.rsplit("_", 1)[-1]


def _column_of(qualified: str) -> str:
    """'users.email' -> 'email'."""
    return qualified.rsplit(".", 1)[-1]


# --- MySQL ---
def _mysql_duplicate(message: str) -> DatabaseException:
    match = _MYSQL_DUPLICATE_RE.search(message)
    if match:
        value, key = match.group(1), match.group(2)
        field = extract_field_from_key(key)
        return KeyAlreadyExistsException(
            f"duplicate value '{value}' for field '{field}'", field=field, value=value
        )
    return KeyAlreadyExistsException()


def _mysql_foreign_key(message: str) -> DatabaseException:
    match = _MYSQL_FOREIGN_KEY_RE.search(message)
    if match:
        field = match.group(1)
        return ForeignKeyViolationException(
            f"referenced record for '{field}' does not exist", field=field
        )
    return ForeignKeyViolationException()


def _mysql_referenced(message: str) -> DatabaseException:
    match = _MYSQL_FOREIGN_KEY_RE.search(message)
    field = match.group(1) if match else None
    return ConstraintFailedException(
        "record is still referenced by other records", field=field
    )


def _mysql_null(message: str) -> DatabaseException:
    match = _MYSQL_NULL_RE.search(message)
    if match:
        field = match.group(1)
        return NullConstraintViolationException(f"field '{field}' cannot be null", field=field)
    return NullConstraintViolationException()


def _mysql_too_long(message: str) -> DatabaseException:
    match = _MYSQL_TOO_LONG_RE.search(message)
    if match:
        field = match.group(1)
        return DataTooLongException(f"value too long for field '{field}'", field=field)
    return DataTooLongException()


def _mysql_check(message: str) -> DatabaseException:
    match = _MYSQL_CHECK_RE.search(message)
    name = match.group(1) if match else None
    return ConstraintFailedException(
        f"check constraint '{name}' failed" if name else None, field=name
    )


_MYSQL_HANDLERS: Dict[int, Callable[[str], DatabaseException]] = {
    MYSQL_DUPLICATE: _mysql_duplicate,
    MYSQL_FOREIGN_KEY: _mysql_foreign_key,
    MYSQL_ROW_IS_REFERENCED: _mysql_referenced,
    MYSQL_NULL: _mysql_null,
    MYSQL_DATA_TOO_LONG: _mysql_too_long,
    MYSQL_CHECK: _mysql_check,
}


def _classify_mysql(error: Exception) -> Optional[DatabaseException]:
    args = getattr(error, "args", ())
    if len(args) < 2 or not isinstance(args[0], int):
        return None
    handler = _MYSQL_HANDLERS.get(args[0])
    if handler is None:
        return None
    return handler(str(args[1]))


# --- PostgreSQL ---
def _pg_key_detail(error: Exception) -> Tuple[Optional[str], Optional[str]]:
    detail = getattr(error, "detail", None) or ""
    match = _PG_KEY_DETAIL_RE.search(detail)
    if not match:
        return None, None
    return match.group("field"), match.group("value")


def _pg_constraint_field(constraint: str) -> Optional[str]:
    """'users_pkey' -> 'id', 'users_email_key' -> 'email'."""
    if constraint.endswith("_pkey"):
        return "id"
    if constraint.endswith("_key"):
        return extract_field_from_key(constraint[: -len("_key")])
    return None


def _classify_postgres(error: Exception) -> Optional[DatabaseException]:
    sqlstate = getattr(error, "sqlstate", None)
    if not isinstance(sqlstate, str):
        return None

    if sqlstate == "23505":
        field, value = _pg_key_detail(error)
        if field is None:
            field = _pg_constraint_field(getattr(error, "constraint_name", None) or "")
        message = f"duplicate value '{value}' for field '{field}'" if value else None
        return KeyAlreadyExistsException(message, field=field, value=value)

    if sqlstate == "23503":
        field, _ = _pg_key_detail(error)
        detail = getattr(error, "detail", None) or ""
        if "still referenced" in detail:
            return ConstraintFailedException(
                "record is still referenced by other records", field=field
            )
        return ForeignKeyViolationException(
            f"referenced record for '{field}' does not exist" if field else None,
            field=field,
        )

    if sqlstate == "23502":
        field = getattr(error, "column_name", None)
        return NullConstraintViolationException(
            f"field '{field}' cannot be null" if field else None, field=field
        )

    if sqlstate == "22001":
        field = getattr(error, "column_name", None)
        return DataTooLongException(
            f"value too long for field '{field}'" if field else None, field=field
        )

    if sqlstate == "23514":
        name = getattr(error, "constraint_name", None)
        return ConstraintFailedException(
            f"check constraint '{name}' failed" if name else None, field=name
        )

    return None


# --- SQLite ---
def _classify_sqlite(message: str) -> Optional[DatabaseException]:
    match = _SQLITE_UNIQUE_RE.search(message)
    if match:
        field = _column_of(match.group(1))
        return KeyAlreadyExistsException(f"duplicate value for field '{field}'", field=field)

    if "FOREIGN KEY constraint failed" in message:
        return ForeignKeyViolationException()

    match = _SQLITE_NULL_RE.search(message)
    if match:
        field = _column_of(match.group(1))
        return NullConstraintViolationException(f"field '{field}' cannot be null", field=field)

    match = _SQLITE_CHECK_RE.search(message)
    if match:
        name = match.group(1) or None
        return ConstraintFailedException(
            f"check constraint '{name}' failed" if name else None, field=name
        )
    return None


# --- Message fallbacks ---
_FALLBACKS: Tuple[Tuple[Tuple[str, ...], Callable[[str], DatabaseException]], ...] = (
    (("Error 1062", "Duplicate entry"), _mysql_duplicate),
    (("Error 1452", "a foreign key constraint fails"), _mysql_foreign_key),
    (("Error 1451", "Cannot delete or update a parent row"), _mysql_referenced),
    (("Error 1048", "cannot be null"), _mysql_null),
    (("Error 1406", "Data too long"), _mysql_too_long),
)


def _classify_message(message: str) -> Optional[DatabaseException]:
    for needles, handler in _FALLBACKS:
        if any(needle in message for needle in needles):
            return handler(message)
    return None


def classify_db_error(error: BaseException) -> DatabaseException:
    """Maps `error` to a DatabaseException without raising or logging."""
    if isinstance(error, DatabaseException):
        return error
    if isinstance(error, asyncio.TimeoutError):
        return QueryTimeoutException()

    message = str(error)
    wrapped = (
        _classify_postgres(error)
        or _classify_mysql(error)
        or _classify_sqlite(message)
        or _classify_message(message)
    )
    if wrapped is None:
        wrapped = GenericDatabaseException(message or type(error).__name__)
    return wrapped


def wrap_db_error(error: BaseException, context: str = "") -> BaseException:
    """
    Classifies a driver-native error into the DatabaseException taxonomy.

    Args:
        error: The exception caught around a store round-trip.
        context: Operation description used in the log line.

    Returns:
        A DatabaseException with `__cause__` set to `error`. Exceptions that
        already belong to this package, and cancellation, are returned as-is.
    """
    if isinstance(error, (QueryEngineException, QueryValidationError, asyncio.CancelledError)):
        return error
    wrapped = classify_db_error(error)
    wrapped.__cause__ = error
    log.error(
        f"Error during {context or 'database operation'}: {type(error).__name__}: {error} "
        f"-> {wrapped.code}"
    )
    return wrapped
