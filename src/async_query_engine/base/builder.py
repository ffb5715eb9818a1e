# src/async_query_engine/base/builder.py

import copy
import logging
from logging import LoggerAdapter
from typing import Any, Generic, Optional, Tuple, Type, TypeVar, Union

from .compiler import ConditionParser, Predicate, not_deleted
from .config import EngineSettings
from .interfaces import ExecutionAdapter
from .query import Query
from .schema import TableSpec, as_table_spec

T = TypeVar("T")
B = TypeVar("B", bound="StatementBuilder")

LoggerLike = Union[logging.Logger, LoggerAdapter]


class StatementBuilder(Generic[T]):
    """
    Shared state of the read and write builders.

    A builder is bound to one execution adapter and one table. Chaining
    methods (`where`, `with_query`, `unscoped`, `with_timeout`) never
    modify the builder they are called on; they return a configured copy.
    """

    def __init__(
        self,
        executor: ExecutionAdapter,
        table: Union[TableSpec, str],
        entity_type: Optional[Type[T]] = None,
        query: Optional[Query] = None,
        settings: Optional[EngineSettings] = None,
        logger: Optional[LoggerLike] = None,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            executor: The execution adapter statements run through.
            table: TableSpec, or a bare table name with default settings.
            entity_type: Pydantic model rows are returned as; None returns dicts.
            query: Initial Query; defaults to an empty one.
            settings: Engine settings; defaults to the process-wide settings.
            logger: Logger or LoggerAdapter for this builder's log lines.
            timeout: Default per-call timeout in seconds.
        """
        if not isinstance(executor, ExecutionAdapter):
            raise TypeError("executor must be an instance of ExecutionAdapter")
        self._executor = executor
        self._table = as_table_spec(table)
        self._entity_type = entity_type
        self._query = query or Query()
        self._settings = settings or executor.settings
        self._parser = ConditionParser(executor.dialect, self._settings)
        self._raw: Tuple[Predicate, ...] = ()
        self._scoped = True
        self._timeout = timeout
        entity_name = entity_type.__name__ if entity_type is not None else "dict"
        self._logger = logger or logging.getLogger(
            f"{__name__}.{self.__class__.__name__}[{self._table.table}:{entity_name}]"
        )

    # --- Properties ---
    @property
    def table(self) -> TableSpec:
        return self._table

    @property
    def entity_type(self) -> Optional[Type[T]]:
        return self._entity_type

    @property
    def query(self) -> Query:
        return self._query

    @property
    def executor(self) -> ExecutionAdapter:
        return self._executor

    # --- Chaining ---
    def _clone(self: B) -> B:
        return copy.copy(self)

    def with_query(self: B, query: Optional[Query]) -> B:
        clone = self._clone()
        clone._query = query or Query()
        return clone

    def where(self: B, sql: str, *args: Any) -> B:
        """
        Adds a raw predicate with `?` placeholders.

        Raw predicates are parenthesized and ANDed with the builder's own
        conditions; they never replace them.
        """
        clone = self._clone()
        clone._raw = self._raw + (Predicate.raw(sql, *args),)
        return clone

    def unscoped(self: B) -> B:
        """Copy that also sees soft-deleted rows."""
        clone = self._clone()
        clone._scoped = False
        return clone

    def with_timeout(self: B, timeout: Optional[float]) -> B:
        clone = self._clone()
        clone._timeout = timeout
        return clone

    # --- Helpers ---
    def _call_timeout(self, timeout: Optional[float]) -> Optional[float]:
        return timeout if timeout is not None else self._timeout

    def _scope(self) -> Predicate:
        if not self._scoped:
            return Predicate()
        return not_deleted(self._table, self._executor.dialect)

    def _predicate(self, query: Query) -> Predicate:
        """Search, required, raw predicates and soft-delete scope, ANDed."""
        return Predicate.join((self._parser.parse(query),) + self._raw + (self._scope(),))

    def _q(self, name: str) -> str:
        return self._executor.dialect.quote(name)

    def _share_scope(self, other: B) -> B:
        """Gives `other` this builder's raw predicates and soft-delete scope."""
        other._raw = self._raw
        other._scoped = self._scoped
        return other
