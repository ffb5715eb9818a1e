# src/async_query_engine/base/delete.py

from typing import Any, Optional, TypeVar

from .builder import StatementBuilder
from .compiler import Predicate
from .exceptions import ObjectNotFoundException
from .query import Query
from .query_builder import QueryBuilder
from .utils import utc_now

T = TypeVar("T")


class DeleteBuilder(StatementBuilder[T]):
    """
    Deletes rows matched by the builder's Query and raw predicates, or one row by id.

    Tables with a soft-delete column get their rows stamped instead of
    removed; `unscoped()` deletes permanently and also reaches rows that
    were already soft-deleted.
    """

    async def _run_delete(self, where: Predicate, timeout: Optional[float]) -> int:
        table = self._table
        if table.soft_delete_column and self._scoped:
            sql = (
                f"UPDATE {self._q(table.table)} SET {self._q(table.soft_delete_column)} = ?"
                f"{where.where_clause()}"
            )
            params = (utc_now(),) + where.params
        else:
            sql = f"DELETE FROM {self._q(table.table)}{where.where_clause()}"
            params = where.params
        result = await self._executor.execute(sql, params, timeout)
        return result.rowcount

    async def delete(self, timeout: Optional[float] = None) -> int:
        """
        Deletes every row matched by the Query search and raw predicates.

        Returns:
            Number of rows deleted.

        Raises:
            ValueError: Neither search conditions nor raw predicates restrict the delete.
        """
        timeout = self._call_timeout(timeout)
        self._parser.validate(self._query)
        if not self._parser.parse(self._query) and not self._raw:
            raise ValueError(
                f"Cannot delete from '{self._table.table}' without a filter (safety check)."
            )
        count = await self._run_delete(self._predicate(self._query), timeout)
        self._logger.info(f"Deleted {count} rows from '{self._table.table}'")
        return count

    async def delete_by_id(
        self, id: Any, extra: Optional[Query] = None, timeout: Optional[float] = None
    ) -> int:
        """
        Deletes the row whose primary key equals `id`.

        Args:
            id: Primary key value.
            extra: Additional Query composed onto the id condition: search
                   groups are appended, filter and required replace the
                   builder's when non-empty.
            timeout: Per-call timeout in seconds.

        Returns:
            Number of rows deleted.

        Raises:
            ObjectNotFoundException: No row matches; no DELETE is issued.
        """
        timeout = self._call_timeout(timeout)
        by_id = Query.by_id(id, self._table.primary_key)
        query = self._query.with_search(*by_id.search).merge(extra)
        self._parser.validate(query)
        where = self._predicate(query)

        reader = QueryBuilder(
            self._executor,
            self._table,
            query=query,
            settings=self._settings,
            logger=self._logger,
        )
        if not await self._share_scope(reader).exists(timeout):
            self._logger.info(
                f"No row in '{self._table.table}' with {self._table.primary_key}={id!r} to delete"
            )
            raise ObjectNotFoundException(
                f"record not found in '{self._table.table}'",
                field=self._table.primary_key,
                value=id,
            )

        count = await self._run_delete(where, timeout)
        self._logger.info(
            f"Deleted {count} rows from '{self._table.table}' ({self._table.primary_key}={id!r})"
        )
        return count
