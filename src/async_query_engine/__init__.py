# src/async_query_engine/__init__.py

"""
Async Query Engine Library Initialization.

This package compiles declarative Query values (filters, search groups,
ordering, paging, required fields, includes) into parameterized SQL and
runs them through per-driver execution adapters, classifying storage
failures into a stable error vocabulary.

It initializes a logger with a NullHandler and makes the query model,
builders, exceptions and driver adapters available at the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging for this logger.
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False

# --------------------------------------------------------------------------
# Query Model Exports
# --------------------------------------------------------------------------
from .base.query import Condition, ConditionGroup, Operator, OrderBy, Pager, Query
from .base.query_string import parse_query_string

# --------------------------------------------------------------------------
# Exception Exports
# --------------------------------------------------------------------------
from .base.exceptions import (
    ConstraintFailedException,
    DatabaseException,
    DataTooLongException,
    ErrorKind,
    ForeignKeyViolationException,
    GenericDatabaseException,
    KeyAlreadyExistsException,
    NullConstraintViolationException,
    ObjectNotFoundException,
    QueryEngineException,
    QueryTimeoutException,
)
from .base.validation_exceptions import (
    InvalidConditionError,
    InvalidFieldError,
    InvalidOperatorError,
    MissingRequiredFieldError,
    QueryValidationError,
)
from .base.error_handler import wrap_db_error

# --------------------------------------------------------------------------
# Configuration and Schema Exports
# --------------------------------------------------------------------------
from .base.config import EngineSettings, get_settings
from .base.schema import Relation, TableSpec

# --------------------------------------------------------------------------
# Builder Exports
# --------------------------------------------------------------------------
# QueryBuilder covers reads and aggregates; Create/Update/DeleteBuilder the
# writes. CrudService composes all of them for one table.
from .base.interfaces import ExecutionAdapter, ExecutionResult
from .base.query_builder import QueryBuilder
from .base.create import CreateBuilder
from .base.update import UpdateBuilder
from .base.delete import DeleteBuilder
from .base.service import CrudConfig, CrudService

# --------------------------------------------------------------------------
# Execution Adapter Implementations
# --------------------------------------------------------------------------
from .db_implementations.sqlite_executor import SqliteExecutor
from .db_implementations.mysql_executor import MySQLExecutor
from .db_implementations.postgresql_executor import PostgresExecutor

# --------------------------------------------------------------------------
# __all__ Definition
# --------------------------------------------------------------------------
__all__ = [
    # Query model
    "Condition",
    "ConditionGroup",
    "Operator",
    "OrderBy",
    "Pager",
    "Query",
    "parse_query_string",
    # Exceptions
    "QueryEngineException",
    "DatabaseException",
    "ErrorKind",
    "ObjectNotFoundException",
    "KeyAlreadyExistsException",
    "ForeignKeyViolationException",
    "NullConstraintViolationException",
    "DataTooLongException",
    "ConstraintFailedException",
    "GenericDatabaseException",
    "QueryTimeoutException",
    "QueryValidationError",
    "InvalidFieldError",
    "InvalidOperatorError",
    "InvalidConditionError",
    "MissingRequiredFieldError",
    "wrap_db_error",
    # Configuration and schema
    "EngineSettings",
    "get_settings",
    "Relation",
    "TableSpec",
    # Builders
    "ExecutionAdapter",
    "ExecutionResult",
    "QueryBuilder",
    "CreateBuilder",
    "UpdateBuilder",
    "DeleteBuilder",
    "CrudConfig",
    "CrudService",
    # Implementations
    "SqliteExecutor",
    "MySQLExecutor",
    "PostgresExecutor",
    # Logging
    "logger",
]

__version__ = "0.1.0"
