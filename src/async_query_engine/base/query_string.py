"""
Query-string form of a Query.

    filter=a,b
    search=field:value:op|field2:value2      (one AND group)
    orderby=field:dir|field2
    limit=N  page=N  page_size=N
    include=a|b
    required=a,b
    query=<json wire shape>                  (takes precedence over the rest)

IN / NOT IN / BETWEEN values are comma separated: `search=id:1,2,3:in`.
"""

import json
from typing import Any, List, Mapping, Optional

from .query import Condition, ConditionGroup, OrderBy, Query
from .validation_exceptions import QueryValidationError
from .validator import is_valid_operator, normalize_operator

_SEQUENCE_OPERATORS = {"IN", "NOT IN", "BETWEEN", "NOT BETWEEN"}


def _param(params: Mapping[str, Any], *names: str) -> Optional[str]:
    for name in names:
        value = params.get(name)
        if isinstance(value, (list, tuple)):
            value = value[-1] if value else None
        if value not in (None, ""):
            return str(value)
    return None


def _int_param(params: Mapping[str, Any], name: str) -> Optional[int]:
    raw = _param(params, name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        raise QueryValidationError(f"'{name}' must be an integer, got '{raw}'") from None


def _split(raw: Optional[str], sep: str) -> List[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(sep) if part.strip()]


def parse_condition(item: str) -> Condition:
    """`field:value[:op]`; a trailing segment that is not an operator belongs to the value."""
    parts = item.split(":")
    if len(parts) < 2:
        raise QueryValidationError(
            f"invalid search item '{item}': expected field:value[:operator]"
        )
    field = parts[0]
    if len(parts) >= 3 and is_valid_operator(parts[-1]):
        operator = normalize_operator(parts[-1])
        value: Any = ":".join(parts[1:-1])
    else:
        operator = "="
        value = ":".join(parts[1:])
    if operator in _SEQUENCE_OPERATORS:
        value = [v.strip() for v in value.split(",")] if value else []
    return Condition(field, value, operator)


def parse_order(item: str) -> OrderBy:
    field, _, direction = item.partition(":")
    return OrderBy(field, direction or "asc")


def parse_query_string(params: Mapping[str, Any]) -> Query:
    """
    Builds a Query from decoded query-string parameters.

    Args:
        params: Parameter name -> value (or list of values, the last wins).

    Raises:
        QueryValidationError: A parameter is malformed.
    """
    raw_json = _param(params, "query")
    if raw_json is not None:
        try:
            data = json.loads(raw_json)
        except json.JSONDecodeError as e:
            raise QueryValidationError(f"'query' is not valid JSON: {e}") from e
        return Query.from_dict(data)

    conditions = tuple(parse_condition(item) for item in _split(_param(params, "search"), "|"))
    return Query(
        filter=tuple(_split(_param(params, "filter"), ",")),
        search=(ConditionGroup(conditions),) if conditions else (),
        order_by=tuple(
            parse_order(item) for item in _split(_param(params, "orderby", "order_by"), "|")
        ),
        limit=_int_param(params, "limit"),
        page=_int_param(params, "page"),
        page_size=_int_param(params, "page_size"),
        required=tuple(_split(_param(params, "required"), ",")),
        include=tuple(_split(_param(params, "include"), "|")),
    )
