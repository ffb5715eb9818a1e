# src/async_query_engine/base/create.py

from typing import Any, Dict, Optional, Sequence, Tuple, TypeVar

from .builder import StatementBuilder
from .columns import ColumnSelection
from .mapping import decode_row, record_values, to_model
from .query_builder import QueryBuilder
from .uniqueness import UniqueRule, UniquenessChecker, build_rules
from .utils import generate_id, utc_now

T = TypeVar("T")


class WriteBuilder(StatementBuilder[T]):
    """Column allow/deny lists and uniqueness rules shared by create and update."""

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._columns = ColumnSelection()
        self._rules: Tuple[UniqueRule, ...] = ()

    def only(self, *columns: str):
        """Writes only `columns`; takes precedence over `omit`."""
        clone = self._clone()
        clone._columns = ColumnSelection(tuple(columns), self._columns.omit)
        return clone

    def omit(self, *columns: str):
        """Writes every column except `columns`."""
        clone = self._clone()
        clone._columns = ColumnSelection(self._columns.only, tuple(columns))
        return clone

    def unique(self, *fields: str):
        """Each of `fields` must be unique on its own."""
        clone = self._clone()
        clone._rules = self._rules + build_rules(unique=fields)
        return clone

    def unique_together(self, *fields: str):
        """`fields` must be unique as a combination."""
        clone = self._clone()
        clone._rules = self._rules + build_rules(unique_together=[fields])
        return clone

    def with_rules(self, rules: Sequence[UniqueRule]):
        clone = self._clone()
        clone._rules = self._rules + tuple(rules)
        return clone

    def _writable(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Drops preloaded relation payloads, which are not columns."""
        for relation in self._table.relations:
            values.pop(relation.name, None)
        return values

    def _checker(self) -> UniquenessChecker:
        return UniquenessChecker(
            self._executor, self._table, self._rules, self._entity_type, self._logger
        )

    def _reader(self) -> QueryBuilder[T]:
        """Read builder on the same table."""
        return QueryBuilder(
            self._executor,
            self._table,
            self._entity_type,
            settings=self._settings,
            logger=self._logger,
            timeout=self._timeout,
        )


class CreateBuilder(WriteBuilder[T]):
    """
    Inserts one record.

    Example:
        user = await CreateBuilder(executor, users_table, User).unique("email").create(new_user)
    """

    def _insert_values(self, record: Any) -> Dict[str, Any]:
        table = self._table
        values = self._writable(record_values(record))
        pk = table.primary_key

        if values.get(pk) is None:
            generated = generate_id(table.id_generator)
            if generated is None:
                values.pop(pk, None)
            else:
                values[pk] = generated

        now = utc_now()
        for column in (table.created_at, table.updated_at):
            if column and values.get(column) is None:
                values[column] = now
        if table.soft_delete_column:
            values.pop(table.soft_delete_column, None)

        keep = [c for c in (pk, table.created_at, table.updated_at) if c]
        return self._columns.apply(values, keep=keep)

    async def create(self, record: Any, timeout: Optional[float] = None) -> T:
        """
        Validates uniqueness, inserts `record` and returns the stored row.

        Args:
            record: A pydantic model or a column -> value mapping.
            timeout: Per-call timeout in seconds.

        Returns:
            The inserted row, including store-generated columns.

        Raises:
            KeyAlreadyExistsException: A uniqueness rule or unique index is violated.
            DatabaseException: Any other storage failure, classified.
            ValueError: No column is left to insert.
        """
        timeout = self._call_timeout(timeout)
        values = self._insert_values(record)
        if not values:
            raise ValueError(f"no columns left to insert into '{self._table.table}'")

        await self._checker().check(values, timeout=timeout)

        dialect = self._executor.dialect
        columns = list(values)
        sql = (
            f"INSERT INTO {self._q(self._table.table)} "
            f"({', '.join(self._q(c) for c in columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        params = [values[c] for c in columns]

        if dialect.supports_returning:
            result = await self._executor.execute(
                sql + " RETURNING *", params, timeout, returning=True
            )
            self._logger.info(f"Inserted row into '{self._table.table}'")
            row = decode_row(result.rows[0], self._entity_type)
            if self._entity_type is None:
                return row
            return to_model(row, self._entity_type)

        result = await self._executor.execute(sql, params, timeout)
        pk_value = values.get(self._table.primary_key, result.lastrowid)
        self._logger.info(
            f"Inserted row into '{self._table.table}' ({self._table.primary_key}={pk_value!r})"
        )
        return await self._reader().unscoped().find(pk_value, timeout)
