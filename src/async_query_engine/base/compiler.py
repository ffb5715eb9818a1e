# src/async_query_engine/base/compiler.py
"""
Compiles Query values into parameterized SQL.

The ConditionParser turns the search tree into a Predicate (text with `?`
placeholders plus bound values). SelectStatement assembles projection,
predicate, ordering and paging into SELECT / COUNT / aggregate text. All
identifiers are whitelisted and escaped by the dialect before they are
interpolated; values are only ever bound.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from .config import EngineSettings, get_settings
from .dialect import GENERIC, Dialect, InValues
from .query import Condition, ConditionGroup, Operator, OrderBy, Query, is_empty_value
from .schema import TableSpec
from .validation_exceptions import MissingRequiredFieldError
from .validator import validate_field, validate_fields, validate_include

log = logging.getLogger(__name__)


# --- Predicate ---
@dataclass(frozen=True)
class Predicate:
    """A boolean SQL fragment with `?` placeholders and its bound values."""

    sql: str = ""
    params: Tuple[Any, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.sql)

    def grouped(self) -> "Predicate":
        if not self.sql:
            return self
        return Predicate(f"({self.sql})", self.params)

    def and_(self, *others: "Predicate") -> "Predicate":
        return Predicate.join((self,) + others, "AND")

    @staticmethod
    def join(predicates: Iterable["Predicate"], operator: str = "AND") -> "Predicate":
        parts = [p for p in predicates if p]
        if not parts:
            return Predicate()
        if len(parts) == 1:
            return parts[0]
        sql = f" {operator} ".join(p.sql for p in parts)
        params: Tuple[Any, ...] = ()
        for p in parts:
            params += p.params
        return Predicate(sql, params)

    @classmethod
    def raw(cls, sql: str, *args: Any) -> "Predicate":
        """Caller-supplied fragment; always parenthesized when combined."""
        return cls(sql.strip(), tuple(args)).grouped()

    def where_clause(self) -> str:
        return f" WHERE {self.sql}" if self.sql else ""


# --- Condition Parser ---
class ConditionParser:
    """
    Validates a Query and compiles its search tree and required fields.

    Every identifier and operator is checked before anything is built, so a
    rejected Query never produces a statement.
    """

    def __init__(
        self,
        dialect: Dialect = GENERIC,
        settings: Optional[EngineSettings] = None,
    ):
        self.dialect = dialect
        self.settings = settings or get_settings()

    # --- Validation ---
    def check_required(self, query: Query) -> None:
        """Fails with MissingRequiredFieldError if a required field never appears in search."""
        if not query.required:
            return
        present = set(query.search_fields())
        for name in query.required:
            if name not in present:
                log.debug(f"Required field '{name}' missing from search {sorted(present)}")
                raise MissingRequiredFieldError(name)

    def validate(self, query: Query) -> None:
        """Whitelists every identifier a Query can carry into a statement."""
        self.check_required(query)
        validate_fields(query.filter, "filter field")
        validate_fields(query.required, "required field")
        for group in query.search:
            for condition in group.conditions:
                validate_field(condition.field, "search field")
        for order in query.order_by:
            validate_field(order.field, "order field")
        for path in query.include:
            validate_include(path)

    # --- Compilation ---
    def is_skipped(self, condition: Condition) -> bool:
        if condition.operator.is_null_check:
            return False
        if not is_empty_value(condition.value):
            return False
        return condition.field not in self.settings.empty_value_fields

    def compile_condition(self, condition: Condition) -> Optional[Predicate]:
        """Builds one `field OP ?` fragment, or None when the condition is skipped."""
        validate_field(condition.field, "search field")
        if self.is_skipped(condition):
            log.debug(f"Skipping condition on '{condition.field}' with empty value")
            return None

        column = self.dialect.quote(condition.field)
        op = condition.operator
        value = condition.value

        if op.is_null_check:
            return Predicate(f"{column} {op.value}")

        if op.is_membership:
            items = value if isinstance(value, tuple) else (value,)
            if not items:
                # Empty IN matches nothing; empty NOT IN matches everything.
                return Predicate("1=0" if op is Operator.IN else "1=1")
            return Predicate(f"{column} {op.value} (?)", (InValues(items),))

        if op.is_range:
            low, high = value
            return Predicate(f"{column} {op.value} ? AND ?", (low, high))

        if op in (Operator.LIKE, Operator.NOT_LIKE):
            text = str(value)
            if "%" not in text:
                text = f"%{text}%"
            return Predicate(f"{column} {op.value} ?", (text,))

        if op is Operator.LEFT_LIKE:
            return Predicate(f"{column} LIKE ?", (f"%{value}",))

        if op is Operator.RIGHT_LIKE:
            return Predicate(f"{column} LIKE ?", (f"{value}%",))

        return Predicate(f"{column} {op.value} ?", (value,))

    def compile_group(self, group: ConditionGroup) -> Predicate:
        fragments = []
        for condition in group.conditions:
            fragment = self.compile_condition(condition)
            if fragment is not None:
                fragments.append(fragment)
        return Predicate.join(fragments, group.operator).grouped()

    def compile_search(self, groups: Sequence[ConditionGroup]) -> Predicate:
        """Each group is parenthesized; groups are ANDed."""
        return Predicate.join((self.compile_group(g) for g in groups), "AND")

    def compile_required(self, required: Sequence[str]) -> Predicate:
        return Predicate.join(
            (
                Predicate(self.dialect.not_blank(self.dialect.quote(validate_field(name, "required field"))))
                for name in required
            ),
            "AND",
        )

    def parse(self, query: Query) -> Predicate:
        """
        Compiles the search tree and required fields of `query`.

        Raises:
            MissingRequiredFieldError: A required field never appears in search.
            InvalidFieldError: An identifier is outside the field charset.
        """
        self.check_required(query)
        predicate = Predicate.join(
            (self.compile_search(query.search), self.compile_required(query.required)),
            "AND",
        )
        log.debug(f"Compiled predicate: {predicate.sql!r} params={list(predicate.params)}")
        return predicate


# --- Select Statement ---
@dataclass(frozen=True)
class SelectStatement:
    """A SELECT against one table, rendered with `?` placeholders."""

    table: str
    columns: Tuple[str, ...] = ()
    where: Predicate = field(default_factory=Predicate)
    order_by: Tuple[OrderBy, ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None

    def with_where(self, *predicates: Predicate) -> "SelectStatement":
        return replace(self, where=self.where.and_(*predicates))

    def _from(self, dialect: Dialect) -> str:
        return f"FROM {dialect.quote(self.table)}{self.where.where_clause()}"

    def _order(self, dialect: Dialect) -> str:
        if not self.order_by:
            return ""
        parts = [f"{dialect.quote(o.field)} {o.direction.upper()}" for o in self.order_by]
        return " ORDER BY " + ", ".join(parts)

    def _paging(self) -> Tuple[str, Tuple[Any, ...]]:
        if self.limit is None:
            return "", ()
        if self.offset:
            return " LIMIT ? OFFSET ?", (self.limit, self.offset)
        return " LIMIT ?", (self.limit,)

    def select_sql(self, dialect: Dialect) -> Tuple[str, Tuple[Any, ...]]:
        if self.columns:
            projection = ", ".join(dialect.quote(c) for c in self.columns)
        else:
            projection = "*"
        paging, paging_params = self._paging()
        sql = f"SELECT {projection} {self._from(dialect)}{self._order(dialect)}{paging}"
        return sql, self.where.params + paging_params

    def count_sql(self, dialect: Dialect) -> Tuple[str, Tuple[Any, ...]]:
        """COUNT(*) over the predicate; projection, ordering and paging are ignored."""
        return f"SELECT COUNT(*) {self._from(dialect)}", self.where.params

    def aggregate_sql(self, dialect: Dialect, function: str, column: str) -> Tuple[str, Tuple[Any, ...]]:
        """SUM/AVG of `column`, with NULL results coalesced to 0."""
        quoted = dialect.quote(validate_field(column, "aggregate field"))
        sql = f"SELECT COALESCE({function}({quoted}), 0) {self._from(dialect)}"
        return sql, self.where.params


def not_deleted(table: TableSpec, dialect: Dialect) -> Predicate:
    """`<soft delete column> IS NULL` for soft-deleting tables, else an empty predicate."""
    if not table.soft_delete_column:
        return Predicate()
    return Predicate(f"{dialect.quote(table.soft_delete_column)} IS NULL")


def columns_for(query: Query, extra: Iterable[str] = ()) -> Tuple[str, ...]:
    """Projected columns plus any extra columns not already listed; empty means '*'."""
    if not query.filter:
        return ()
    columns: List[str] = list(query.filter)
    for name in extra:
        if name not in columns:
            columns.append(name)
    return tuple(columns)
