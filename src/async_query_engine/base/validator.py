"""
Identifier and operator whitelisting.

Every string that is interpolated into a statement (projected column,
search field, order-by column, include path segment, aggregate column)
passes through this module first. Nothing here touches storage.
"""

import logging
import re
from typing import Any, Iterable

from .validation_exceptions import InvalidFieldError, InvalidOperatorError

log = logging.getLogger(__name__)

_FIELD_RE = re.compile(r"[A-Za-z0-9_.]+")
_WHITESPACE_RE = re.compile(r"\s+")

VALID_OPERATORS = frozenset(
    {
        "=",
        "!=",
        "<>",
        ">",
        ">=",
        "<",
        "<=",
        "LIKE",
        "NOT LIKE",
        "LEFT LIKE",
        "RIGHT LIKE",
        "IN",
        "NOT IN",
        "IS NULL",
        "IS NOT NULL",
        "BETWEEN",
        "NOT BETWEEN",
    }
)

VALID_DIRECTIONS = frozenset({"asc", "desc"})
VALID_GROUP_OPERATORS = frozenset({"AND", "OR"})


def is_valid_field(name: Any) -> bool:
    """Checks that `name` is a non-empty string made only of letters, digits, '_' and '.'."""
    return isinstance(name, str) and bool(_FIELD_RE.fullmatch(name))


def is_valid_include(path: Any) -> bool:
    """Checks a dot-separated relation path; every segment must be a valid field name."""
    if not isinstance(path, str) or not path:
        return False
    return all(is_valid_field(part) for part in path.split("."))


def normalize_operator(operator: Any) -> str:
    """
    Returns the canonical spelling of an operator.

    Matching is case-insensitive and treats '_' and whitespace alike, so
    'not_like', 'Not Like' and 'NOT  LIKE' all normalize to 'NOT LIKE'.
    Non-string input is returned as its string form and will fail
    `is_valid_operator`.
    """
    if not isinstance(operator, str):
        return str(operator)
    spaced = operator.replace("_", " ").strip()
    return _WHITESPACE_RE.sub(" ", spaced).upper()


def is_valid_operator(operator: Any) -> bool:
    return normalize_operator(operator) in VALID_OPERATORS


def validate_field(name: Any, context: str = "field") -> str:
    if not is_valid_field(name):
        log.debug(f"Rejected {context} name: {name!r}")
        raise InvalidFieldError(f"invalid {context} name: {name}", field=str(name))
    return name


def validate_fields(names: Iterable[Any], context: str = "field") -> None:
    for name in names:
        validate_field(name, context)


def validate_include(path: Any) -> str:
    if not is_valid_include(path):
        log.debug(f"Rejected include path: {path!r}")
        raise InvalidFieldError(f"invalid include name: {path}", field=str(path))
    return path


def validate_operator(operator: Any) -> str:
    normalized = normalize_operator(operator)
    if normalized not in VALID_OPERATORS:
        raise InvalidOperatorError(
            f"invalid operator: '{operator}' is not a valid operator"
        )
    return normalized


def normalize_direction(direction: Any) -> str:
    if not isinstance(direction, str) or direction.lower() not in VALID_DIRECTIONS:
        raise InvalidOperatorError(
            f"invalid order direction: '{direction}' is not a valid direction"
        )
    return direction.lower()


def normalize_group_operator(operator: Any) -> str:
    if operator is None or operator == "":
        return "AND"
    normalized = normalize_operator(operator)
    if normalized not in VALID_GROUP_OPERATORS:
        raise InvalidOperatorError(
            f"invalid group operator: '{operator}' must be AND or OR"
        )
    return normalized
