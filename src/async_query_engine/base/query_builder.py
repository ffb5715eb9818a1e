# src/async_query_engine/base/query_builder.py

from dataclasses import replace
from typing import Any, Dict, List, Optional, TypeVar, Union

from .builder import StatementBuilder
from .compiler import SelectStatement, columns_for
from .exceptions import ObjectNotFoundException
from .include import IncludeTree, local_keys, preload, resolve_includes
from .mapping import decode_row, to_model
from .query import Pager, Query, compute_last_page

T = TypeVar("T")

Number = Union[int, float]


class QueryBuilder(StatementBuilder[T]):
    """
    Read side: fetches, paging, aggregates and existence checks.

    Every method validates the whole Query (identifiers, operators,
    required fields, include paths) before the first statement is issued.

    Example:
        users = QueryBuilder(executor, users_table, User, Query.from_dict(payload))
        pager = await users.page()
    """

    # --- Validation and statement assembly ---
    def _prepare(self, query: Query) -> IncludeTree:
        self._parser.validate(query)
        return resolve_includes(self._table, query.include)

    def _select(self, query: Query, tree: IncludeTree) -> SelectStatement:
        return SelectStatement(
            table=self._table.table,
            columns=columns_for(query, local_keys(tree)),
            where=self._predicate(query),
            order_by=query.order_by,
        )

    def _aggregate_statement(self) -> SelectStatement:
        query = self._query.for_aggregate()
        self._prepare(self._query)
        return SelectStatement(table=self._table.table, where=self._predicate(query))

    async def _fetch(
        self, statement: SelectStatement, query: Query, tree: IncludeTree, timeout: Optional[float]
    ) -> List[T]:
        sql, params = statement.select_sql(self._executor.dialect)
        rows = await self._executor.fetch_all(sql, params, timeout)
        records = [decode_row(row, self._entity_type) for row in rows]
        await preload(self._executor, records, tree, timeout)
        return [self._to_entity(record, query) for record in records]

    def _to_entity(self, record: Dict[str, Any], query: Query) -> Any:
        if self._entity_type is None:
            return record
        return to_model(record, self._entity_type, partial=bool(query.filter))

    # --- Reads ---
    async def get(self, timeout: Optional[float] = None) -> List[T]:
        """
        Fetches every matching row.

        Filter, search, order and required fields apply. Rows are capped
        only by an explicit limit (clamped to the configured maximum) or,
        when a page is given, by that page's window.
        """
        query = self._query
        tree = self._prepare(query)
        statement = self._select(query, tree)
        if query.page:
            size = query.effective_page_size(self._settings)
            statement = replace(statement, limit=size, offset=(query.page - 1) * size)
        elif query.limit:
            statement = replace(statement, limit=query.effective_limit(self._settings))
        result = await self._fetch(statement, query, tree, self._call_timeout(timeout))
        self._logger.debug(f"get on '{self._table.table}' returned {len(result)} rows")
        return result

    async def page(self, timeout: Optional[float] = None) -> Pager[T]:
        """
        Fetches one page plus the total match count.

        The count honors only filter, search and required fields; the page
        query applies the whole Query with offset (page - 1) * page_size.

        Returns:
            Pager with current_page, total, last_page (never below 1) and data.
        """
        query = self._query
        tree = self._prepare(query)
        timeout = self._call_timeout(timeout)
        page = query.effective_page(self._settings)
        size = query.effective_page_size(self._settings)

        total = await self._count(timeout)
        statement = replace(self._select(query, tree), limit=size, offset=(page - 1) * size)
        data = await self._fetch(statement, query, tree, timeout)
        last_page = compute_last_page(total, size)
        self._logger.debug(
            f"page {page}/{last_page} on '{self._table.table}': {len(data)} of {total} rows"
        )
        return Pager(current_page=page, total=total, last_page=last_page, data=data)

    async def first(self, timeout: Optional[float] = None) -> T:
        """
        Fetches the first matching row in the query's order.

        Raises:
            ObjectNotFoundException: No row matches.
        """
        query = self._query
        tree = self._prepare(query)
        statement = replace(self._select(query, tree), limit=1)
        rows = await self._fetch(statement, query, tree, self._call_timeout(timeout))
        if not rows:
            self._logger.info(f"No row in '{self._table.table}' matches the query")
            raise ObjectNotFoundException(f"no record in '{self._table.table}' matches the query")
        return rows[0]

    async def find(self, id: Any, timeout: Optional[float] = None) -> T:
        """first() restricted to the row whose primary key equals `id`."""
        by_id = Query.by_id(id, self._table.primary_key).search
        return await self.with_query(self._query.with_search(*by_id)).first(timeout)

    # --- Aggregates ---
    async def _count(self, timeout: Optional[float]) -> int:
        statement = self._aggregate_statement()
        sql, params = statement.count_sql(self._executor.dialect)
        value = await self._executor.fetch_value(sql, params, timeout)
        return int(value or 0)

    async def count(self, timeout: Optional[float] = None) -> int:
        """Number of matching rows; order, limit and page are ignored."""
        return await self._count(self._call_timeout(timeout))

    async def _aggregate(self, function: str, field: str, timeout: Optional[float]) -> Any:
        statement = self._aggregate_statement()
        sql, params = statement.aggregate_sql(self._executor.dialect, function, field)
        return await self._executor.fetch_value(sql, params, self._call_timeout(timeout))

    async def sum(self, field: str, timeout: Optional[float] = None) -> Number:
        """SUM(field) over matching rows; 0 when nothing (or only NULL) matches."""
        value = await self._aggregate("SUM", field, timeout)
        return _number(value)

    async def avg(self, field: str, timeout: Optional[float] = None) -> float:
        """AVG(field) over matching rows; 0 when nothing (or only NULL) matches."""
        value = await self._aggregate("AVG", field, timeout)
        return float(value or 0)

    async def exists(self, timeout: Optional[float] = None) -> bool:
        return await self.count(timeout) > 0

    async def exists_by_id(self, id: Any, timeout: Optional[float] = None) -> bool:
        by_id = Query.by_id(id, self._table.primary_key).search
        return await self.with_query(self._query.with_search(*by_id)).exists(timeout)


def _number(value: Any) -> Number:
    if value is None:
        return 0
    if isinstance(value, (int, float)):
        return value
    # Decimal and driver-specific numeric types
    as_float = float(value)
    return int(as_float) if as_float.is_integer() else as_float
