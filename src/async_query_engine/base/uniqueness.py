# src/async_query_engine/base/uniqueness.py

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel

from .compiler import Predicate, not_deleted
from .exceptions import KeyAlreadyExistsException
from .interfaces import ExecutionAdapter
from .mapping import column_for, lookup_value
from .schema import TableSpec
from .utils import is_zero_value
from .validator import validate_field

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class UniqueRule:
    """One uniqueness constraint: a single field, or a group that must be jointly unique."""

    fields: Tuple[str, ...]

    def __post_init__(self):
        if not self.fields:
            raise ValueError("a uniqueness rule needs at least one field")
        for name in self.fields:
            validate_field(name, "unique field")

    @property
    def label(self) -> str:
        return ",".join(self.fields)


def build_rules(
    unique: Iterable[str] = (),
    unique_together: Iterable[Sequence[str]] = (),
) -> Tuple[UniqueRule, ...]:
    rules = [UniqueRule((name,)) for name in unique]
    rules.extend(UniqueRule(tuple(group)) for group in unique_together)
    return tuple(rules)


class UniquenessChecker:
    """
    Pre-write duplicate detection.

    For each rule a COUNT(*) is issued over the rule's columns, excluding
    the row being updated. A field holding its type's zero value is not
    enforced; a group is enforced only when every member holds a value.

    The check and the subsequent write are separate round-trips. Run both
    inside the caller's transaction when atomicity is needed.
    """

    def __init__(
        self,
        executor: ExecutionAdapter,
        table: TableSpec,
        rules: Sequence[UniqueRule],
        model_type: Optional[type] = None,
        logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
    ):
        self._executor = executor
        self._table = table
        self._rules = tuple(rules)
        self._model_type = model_type
        self._logger = logger or log

    @property
    def rules(self) -> Tuple[UniqueRule, ...]:
        return self._rules

    def touched_by(self, record: Any) -> "UniquenessChecker":
        """Copy keeping only the rules with at least one member present in `record`."""
        rules = [
            rule for rule in self._rules
            if any(self._lookup(record, name)[0] for name in rule.fields)
        ]
        return UniquenessChecker(
            self._executor, self._table, rules, self._model_type, self._logger
        )

    def _lookup(self, record: Any, name: str) -> Tuple[bool, Any]:
        column = self._column(record, name)
        found, value = lookup_value(record, name)
        if not found and column != name:
            found, value = lookup_value(record, column)
        return found, value

    def _values(self, record: Any, rule: UniqueRule) -> Optional[List[Tuple[str, Any]]]:
        """Column/value pairs for `rule`, or None when the rule is not enforced for `record`."""
        pairs = []
        for name in rule.fields:
            column = self._column(record, name)
            found, value = self._lookup(record, name)
            if not found or is_zero_value(value):
                return None
            pairs.append((column, value))
        return pairs

    def _column(self, record: Any, name: str) -> str:
        model_type = type(record) if isinstance(record, BaseModel) else self._model_type
        if isinstance(model_type, type) and issubclass(model_type, BaseModel):
            return column_for(model_type, name)
        return name

    def enforced(self, record: Any) -> List[Tuple[UniqueRule, List[Tuple[str, Any]]]]:
        """Rules that apply to `record`, each with its column/value pairs."""
        enforced = []
        for rule in self._rules:
            pairs = self._values(record, rule)
            if pairs is None:
                self._logger.debug(f"Skipping uniqueness rule '{rule.label}': no value to check")
                continue
            enforced.append((rule, pairs))
        return enforced

    def duplicate(self, rule: UniqueRule, pairs: List[Tuple[str, Any]]) -> KeyAlreadyExistsException:
        value = pairs[0][1] if len(pairs) == 1 else tuple(v for _, v in pairs)
        self._logger.warning(f"Duplicate value for '{rule.label}' in '{self._table.table}'")
        return KeyAlreadyExistsException(
            f"{rule.label} already exists", field=rule.label, value=value
        )

    async def check(
        self,
        record: Any,
        exclude_id: Any = None,
        timeout: Optional[float] = None,
        exclude: Optional[Predicate] = None,
    ) -> None:
        """
        Args:
            record: Candidate values, a pydantic model or a column mapping.
            exclude_id: Primary key of the row being updated, never counted.
            timeout: Per-call timeout in seconds.
            exclude: Predicate selecting the rows being updated, never counted.
                Rows where it is NULL still count.

        Raises:
            KeyAlreadyExistsException: Another row already holds the values of
                a rule; `field` names the field or comma-joined group.
        """
        dialect = self._executor.dialect
        for rule, pairs in self.enforced(record):
            where = Predicate.join(
                Predicate(f"{dialect.quote(column)} = ?", (value,)) for column, value in pairs
            )
            if exclude_id is not None:
                where = where.and_(
                    Predicate(f"{dialect.quote(self._table.primary_key)} != ?", (exclude_id,))
                )
            if exclude:
                where = where.and_(
                    Predicate(f"(CASE WHEN {exclude.sql} THEN 1 ELSE 0 END) = 0", exclude.params)
                )
            where = where.and_(not_deleted(self._table, dialect))

            sql = f"SELECT COUNT(*) FROM {dialect.quote(self._table.table)} WHERE {where.sql}"
            count = int(await self._executor.fetch_value(sql, where.params, timeout) or 0)
            if count > 0:
                raise self.duplicate(rule, pairs)
