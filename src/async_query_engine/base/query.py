# src/async_query_engine/base/query.py
import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import (
    Any,
    Dict,
    Generic,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
    TypeVar,
    Union,
)
from uuid import UUID

from .config import EngineSettings
from .validation_exceptions import InvalidConditionError, QueryValidationError
from .validator import (
    normalize_direction,
    normalize_group_operator,
    validate_operator,
)


T = TypeVar("T")

# --- Condition values: a closed variant of scalars and sequences of scalars ---
SCALAR_TYPES = (str, bytes, bool, int, float, Decimal, date, datetime, time, UUID)
SEQUENCE_TYPES = (list, tuple, set, frozenset)

Scalar = Union[None, str, bytes, bool, int, float, Decimal, date, datetime, time, UUID]
ConditionValue = Union[Scalar, Tuple[Scalar, ...]]


def is_empty_value(value: Any) -> bool:
    """Nil and the empty string are 'no value' for search purposes."""
    return value is None or (isinstance(value, str) and value == "")


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, SCALAR_TYPES)


# --- Query Operator Enum ---
class Operator(Enum):
    """Closed set of search operators, keyed by their canonical spelling."""

    EQ = "="
    NE = "!="
    NE_ALT = "<>"
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    LIKE = "LIKE"
    NOT_LIKE = "NOT LIKE"
    LEFT_LIKE = "LEFT LIKE"
    RIGHT_LIKE = "RIGHT LIKE"
    IN = "IN"
    NOT_IN = "NOT IN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"
    BETWEEN = "BETWEEN"
    NOT_BETWEEN = "NOT BETWEEN"

    @staticmethod
    def normalize(raw: Any) -> str:
        """Canonical spelling of `raw`; raises InvalidOperatorError outside the set."""
        return validate_operator(raw)

    @classmethod
    def parse(cls, raw: Any) -> "Operator":
        """Accepts an Operator or any spelling that normalizes into the closed set."""
        if isinstance(raw, cls):
            return raw
        return cls(validate_operator(raw))

    @property
    def is_null_check(self) -> bool:
        return self in (Operator.IS_NULL, Operator.IS_NOT_NULL)

    @property
    def is_membership(self) -> bool:
        return self in (Operator.IN, Operator.NOT_IN)

    @property
    def is_range(self) -> bool:
        return self in (Operator.BETWEEN, Operator.NOT_BETWEEN)

    @property
    def is_pattern(self) -> bool:
        return self in (
            Operator.LIKE,
            Operator.NOT_LIKE,
            Operator.LEFT_LIKE,
            Operator.RIGHT_LIKE,
        )


# --- Structured Query Values ---
@dataclass(frozen=True)
class Condition:
    """
    A single `field <operator> value` test.

    Arity is checked on construction: IN/NOT IN take a sequence,
    BETWEEN/NOT BETWEEN exactly two values, every other operator a single
    scalar. Nil or empty-string values are accepted for any operator, since
    the compiler skips such conditions.
    """

    field: str
    value: ConditionValue = None
    operator: Operator = Operator.EQ

    def __post_init__(self):
        if not isinstance(self.field, str):
            raise InvalidConditionError("invalid condition: field must be string")
        operator = Operator.parse(self.operator)
        object.__setattr__(self, "operator", operator)

        value = self.value
        if isinstance(value, SEQUENCE_TYPES):
            value = tuple(value)
            object.__setattr__(self, "value", value)

        if operator.is_null_check or is_empty_value(value):
            return

        if operator.is_membership:
            if not isinstance(value, tuple):
                raise InvalidConditionError(
                    f"invalid condition: {operator.value} operator requires a sequence value",
                    field=self.field,
                )
        elif operator.is_range:
            if not isinstance(value, tuple) or len(value) != 2:
                raise InvalidConditionError(
                    f"invalid condition: {operator.value} operator requires a sequence value with 2 elements",
                    field=self.field,
                )
        elif not _is_scalar(value):
            raise InvalidConditionError(
                f"invalid condition: {operator.value} operator requires a scalar value, "
                f"got {type(value).__name__}",
                field=self.field,
            )

        if isinstance(value, tuple):
            for item in value:
                if not _is_scalar(item):
                    raise InvalidConditionError(
                        f"invalid condition: {operator.value} values must be scalars, "
                        f"got {type(item).__name__}",
                        field=self.field,
                    )

    @classmethod
    def from_raw(cls, raw: Any) -> "Condition":
        """Builds a Condition from the wire triple `[field, value, operator?]`."""
        if isinstance(raw, Condition):
            return raw
        if isinstance(raw, Mapping):
            if "field" not in raw or "value" not in raw:
                raise InvalidConditionError(
                    "invalid condition: each condition must have at least 2 elements"
                )
            return cls(raw["field"], raw["value"], raw.get("operator") or Operator.EQ)
        if not isinstance(raw, (list, tuple)) or len(raw) < 2:
            raise InvalidConditionError(
                "invalid condition: each condition must have at least 2 elements"
            )
        operator = Operator.EQ
        if len(raw) > 2 and isinstance(raw[2], (str, Operator)):
            operator = raw[2]
        return cls(raw[0], raw[1], operator)

    def to_list(self) -> List[Any]:
        value = list(self.value) if isinstance(self.value, tuple) else self.value
        return [self.field, value, self.operator.value]


@dataclass(frozen=True)
class ConditionGroup:
    """Conditions joined by one boolean operator; sibling groups are always ANDed."""

    conditions: Tuple[Condition, ...] = ()
    operator: str = "AND"

    def __post_init__(self):
        object.__setattr__(
            self,
            "conditions",
            tuple(Condition.from_raw(c) for c in self.conditions),
        )
        object.__setattr__(self, "operator", normalize_group_operator(self.operator))

    @classmethod
    def from_raw(cls, raw: Any) -> "ConditionGroup":
        if isinstance(raw, ConditionGroup):
            return raw
        if isinstance(raw, Mapping):
            conditions = raw.get("conditions") or ()
            if not isinstance(conditions, (list, tuple)):
                raise InvalidConditionError(
                    "invalid condition group: 'conditions' must be a list"
                )
            return cls(tuple(conditions), raw.get("operator") or "AND")
        if isinstance(raw, (list, tuple)):
            # A bare list of conditions is an AND group.
            return cls(tuple(raw))
        raise InvalidConditionError(
            f"invalid condition group: expected an object, got {type(raw).__name__}"
        )

    def fields(self) -> List[str]:
        return [c.field for c in self.conditions]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conditions": [c.to_list() for c in self.conditions],
            "operator": self.operator,
        }


@dataclass(frozen=True)
class OrderBy:
    field: str
    direction: str = "asc"

    def __post_init__(self):
        object.__setattr__(self, "direction", normalize_direction(self.direction))

    @classmethod
    def from_raw(cls, raw: Any) -> "OrderBy":
        if isinstance(raw, OrderBy):
            return raw
        if isinstance(raw, str):
            return cls(raw)
        if not isinstance(raw, (list, tuple)) or len(raw) not in (1, 2):
            raise InvalidConditionError(
                "invalid order condition: each order condition must have exactly 1 or 2 elements"
            )
        return cls(*raw)

    def to_list(self) -> List[str]:
        return [self.field, self.direction]


def _as_tuple(value: Any, name: str) -> Tuple[Any, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        raise QueryValidationError(f"'{name}' must be a list, got {type(value).__name__}")
    return tuple(value)


def _as_count(value: Any, name: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise QueryValidationError(f"'{name}' must be a non-negative integer")
    return value or None


# --- Query ---
@dataclass(frozen=True)
class Query:
    """
    Declarative description of a read/aggregate/filter intent.

    Values are immutable; every transformation returns a new Query.
    `filter` projects columns (empty projects all), `search` holds ANDed
    condition groups, `required` names fields that must appear in `search`,
    and `include` names relations to preload.
    """

    filter: Tuple[str, ...] = ()
    search: Tuple[ConditionGroup, ...] = ()
    order_by: Tuple[OrderBy, ...] = ()
    limit: Optional[int] = None
    page: Optional[int] = None
    page_size: Optional[int] = None
    required: Tuple[str, ...] = ()
    include: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "filter", _as_tuple(self.filter, "filter"))
        object.__setattr__(
            self,
            "search",
            tuple(ConditionGroup.from_raw(g) for g in _as_tuple(self.search, "search")),
        )
        object.__setattr__(
            self,
            "order_by",
            tuple(OrderBy.from_raw(o) for o in _as_tuple(self.order_by, "order_by")),
        )
        object.__setattr__(self, "limit", _as_count(self.limit, "limit"))
        object.__setattr__(self, "page", _as_count(self.page, "page"))
        object.__setattr__(self, "page_size", _as_count(self.page_size, "page_size"))
        object.__setattr__(self, "required", _as_tuple(self.required, "required"))
        object.__setattr__(self, "include", _as_tuple(self.include, "include"))

    # --- Wire format ---
    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Query":
        """Parses the JSON wire shape. `orderby` is accepted as an alias of `order_by`."""
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise QueryValidationError(
                f"query must be an object, got {type(data).__name__}"
            )
        order_by = data.get("order_by")
        if order_by is None:
            order_by = data.get("orderby")
        return cls(
            filter=data.get("filter"),
            search=data.get("search"),
            order_by=order_by,
            limit=data.get("limit"),
            page=data.get("page"),
            page_size=data.get("page_size"),
            required=data.get("required"),
            include=data.get("include"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "filter": list(self.filter),
            "search": [g.to_dict() for g in self.search],
            "order_by": [o.to_list() for o in self.order_by],
            "required": list(self.required),
            "include": list(self.include),
        }
        for key in ("limit", "page", "page_size"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    # --- Derived queries ---
    def search_fields(self) -> List[str]:
        return [f for group in self.search for f in group.fields()]

    def with_search(self, *groups: Any) -> "Query":
        """Returns a copy with `groups` appended to the search."""
        return replace(self, search=self.search + tuple(groups))

    def for_aggregate(self) -> "Query":
        """Only the parts that affect which rows match: filter, search, required."""
        return Query(filter=self.filter, search=self.search, required=self.required)

    def merge(self, extra: Optional["Query"]) -> "Query":
        """
        Composes an extra caller query onto this one.

        Search groups are concatenated; filter and required from `extra`
        replace this query's when they are non-empty.
        """
        if extra is None:
            return self
        return replace(
            self,
            search=self.search + extra.search,
            filter=extra.filter or self.filter,
            required=extra.required or self.required,
        )

    @classmethod
    def by_id(cls, id_value: Any, field_name: str = "id") -> "Query":
        return cls(search=(ConditionGroup((Condition(field_name, id_value),)),))

    # --- Paging arithmetic ---
    def effective_limit(self, settings: EngineSettings) -> Optional[int]:
        if not self.limit:
            return None
        return min(self.limit, settings.max_limit)

    def effective_page(self, settings: EngineSettings) -> int:
        return self.page or settings.default_page

    def effective_page_size(self, settings: EngineSettings) -> int:
        size = self.page_size or self.limit or settings.default_page_size
        return min(size, settings.max_limit)


# --- Pager ---
def compute_last_page(total: int, page_size: int) -> int:
    """ceil(total / page_size), never less than 1."""
    if page_size <= 0:
        return 1
    return max(1, math.ceil(total / page_size))


@dataclass
class Pager(Generic[T]):
    """Result envelope for paged reads."""

    current_page: int
    total: int
    last_page: int
    data: List[T] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_page": self.current_page,
            "total": self.total,
            "last_page": self.last_page,
            "data": [_dump(item) for item in self.data],
        }


def _dump(item: Any) -> Any:
    if hasattr(item, "model_dump") and callable(getattr(item, "model_dump")):
        return item.model_dump(mode="json", by_alias=True)
    return item


def query_from_iterable(groups: Iterable[Any]) -> Query:
    """Shortcut for a Query that only carries search groups."""
    return Query(search=tuple(groups))
