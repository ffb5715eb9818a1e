# src/async_query_engine/base/update.py

from typing import Any, Dict, Optional, Tuple, TypeVar

from .compiler import Predicate
from .create import WriteBuilder
from .exceptions import ObjectNotFoundException
from .interfaces import Row
from .mapping import record_values
from .query import Query
from .utils import utc_now

T = TypeVar("T")


class UpdateBuilder(WriteBuilder[T]):
    """
    Updates rows matched by the builder's Query and raw predicates, or one row by id.

    A pydantic record contributes only the fields explicitly set on it; a
    mapping contributes all of its keys. The primary key is never written.

    Example:
        await UpdateBuilder(executor, users_table, User).unique("email").update_by_id(7, {"email": new})
    """

    def _set_values(self, values: Any) -> Dict[str, Any]:
        table = self._table
        data = self._writable(record_values(values, exclude_unset=True))
        data.pop(table.primary_key, None)
        if table.created_at:
            data.pop(table.created_at, None)
        data = self._columns.apply(data)
        if data and table.updated_at:
            data[table.updated_at] = utc_now()
        return data

    def _set_clause(self, data: Dict[str, Any]) -> Tuple[str, Tuple[Any, ...]]:
        columns = list(data)
        clause = ", ".join(f"{self._q(c)} = ?" for c in columns)
        return clause, tuple(data[c] for c in columns)

    async def _run_update(
        self, data: Dict[str, Any], where: Predicate, timeout: Optional[float]
    ) -> int:
        clause, params = self._set_clause(data)
        sql = f"UPDATE {self._q(self._table.table)} SET {clause}{where.where_clause()}"
        result = await self._executor.execute(sql, params + where.params, timeout)
        return result.rowcount

    async def _current_row(self, where: Predicate, timeout: Optional[float]) -> Optional[Row]:
        sql = f"SELECT * FROM {self._q(self._table.table)}{where.where_clause()} LIMIT 1"
        return await self._executor.fetch_one(sql, where.params, timeout)

    async def _check_targets(
        self, data: Dict[str, Any], where: Predicate, timeout: Optional[float]
    ) -> None:
        """
        Uniqueness for an update by filter.

        Rows matched by `where` are excluded from the duplicate count. A
        rule fully covered by `data` also fails when more than one row is
        matched, since every matched row would receive the same values.
        """
        checker = self._checker()
        enforced = checker.enforced(data)
        if not enforced:
            return
        await checker.check(data, timeout=timeout, exclude=where)
        sql = f"SELECT COUNT(*) FROM {self._q(self._table.table)}{where.where_clause()}"
        targets = int(await self._executor.fetch_value(sql, where.params, timeout) or 0)
        if targets > 1:
            rule, pairs = enforced[0]
            raise checker.duplicate(rule, pairs)

    async def update(self, values: Any, timeout: Optional[float] = None) -> int:
        """
        Updates every row matched by the Query search and raw predicates.

        Returns:
            Number of rows updated.

        Raises:
            ValueError: Neither search conditions nor raw predicates restrict the update.
            KeyAlreadyExistsException: A uniqueness rule is violated.
        """
        timeout = self._call_timeout(timeout)
        self._parser.validate(self._query)
        if not self._parser.parse(self._query) and not self._raw:
            raise ValueError(
                f"Cannot update '{self._table.table}' without a filter (safety check)."
            )

        data = self._set_values(values)
        if not data:
            self._logger.warning("Update resulted in no SET clauses, skipping DB call.")
            return 0

        where = self._predicate(self._query)
        await self._check_targets(data, where, timeout)
        count = await self._run_update(data, where, timeout)
        self._logger.info(f"Updated {count} rows in '{self._table.table}'")
        return count

    async def update_by_id(self, id: Any, values: Any, timeout: Optional[float] = None) -> T:
        """
        Updates the row whose primary key equals `id` and returns it.

        The builder's Query and raw predicates are ANDed with the id
        condition. Existence is probed first: a missing row fails without
        any UPDATE being issued. Uniqueness rules exclude the row itself;
        group members not being written are checked with their stored values.

        Raises:
            ObjectNotFoundException: No row matches the id and predicates.
            KeyAlreadyExistsException: A uniqueness rule is violated.
        """
        timeout = self._call_timeout(timeout)
        query = self._query.with_search(*Query.by_id(id, self._table.primary_key).search)
        self._parser.validate(query)
        where = self._predicate(query)

        current = await self._current_row(where, timeout)
        if current is None:
            self._logger.info(
                f"No row in '{self._table.table}' with {self._table.primary_key}={id!r} to update"
            )
            raise ObjectNotFoundException(
                f"record not found in '{self._table.table}'",
                field=self._table.primary_key,
                value=id,
            )

        data = self._set_values(values)
        if data:
            # Group members not being written keep their stored values.
            checker = self._checker().touched_by(data)
            await checker.check({**current, **data}, exclude_id=id, timeout=timeout)
            count = await self._run_update(data, where, timeout)
            self._logger.info(
                f"Updated {count} rows in '{self._table.table}' ({self._table.primary_key}={id!r})"
            )
        else:
            self._logger.warning("Update resulted in no SET clauses, skipping DB call.")
        return await self._reader().find(id, timeout)

