# src/async_query_engine/base/mapping.py
"""
Field-name mapping between rows, pydantic models and DTOs.

Mappings are derived once per type (or per source/target type pair) from
the declared pydantic fields and kept for the life of the process. Reads
never take the lock; a miss takes it and checks again before populating.
"""

import json
import logging
import re
import threading
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Generic,
    Hashable,
    Mapping,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
    get_args,
    get_origin,
)

from pydantic import BaseModel

log = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")
M = TypeVar("M", bound=BaseModel)

_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


class MappingCache(Generic[K, V]):
    """Populate-once, never-invalidated lookup table."""

    def __init__(self, name: str):
        self._name = name
        self._entries: Dict[K, V] = {}
        self._lock = threading.Lock()

    def get_or_create(self, key: K, factory: Callable[[], V]) -> V:
        try:
            return self._entries[key]
        except KeyError:
            pass
        with self._lock:
            # Double check after acquiring lock
            if key in self._entries:
                return self._entries[key]
            value = factory()
            self._entries[key] = value
            log.debug(f"{self._name}: cached mapping for {key!r}")
            return value

    def __contains__(self, key: K) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def to_snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY_RE.sub("_", name).lower()


# --- Model shape ---
@dataclass(frozen=True)
class ModelShape:
    """Column layout of one pydantic model."""

    columns: Tuple[Tuple[str, str], ...]
    json_columns: FrozenSet[str]

    @property
    def field_to_column(self) -> Dict[str, str]:
        return dict(self.columns)

    @property
    def column_to_field(self) -> Dict[str, str]:
        return {column: field for field, column in self.columns}


def _is_complex(annotation: Any) -> bool:
    origin = get_origin(annotation)
    if origin is Union:
        return any(_is_complex(arg) for arg in get_args(annotation) if arg is not type(None))
    if origin in (list, dict, set, frozenset, tuple):
        return True
    if isinstance(annotation, type):
        return issubclass(annotation, (list, dict, set, frozenset, tuple, BaseModel))
    return False


def _build_shape(model_type: Type[BaseModel]) -> ModelShape:
    columns = []
    json_columns = set()
    for name, info in model_type.model_fields.items():
        column = info.alias or name
        columns.append((name, column))
        if _is_complex(info.annotation):
            json_columns.add(column)
    return ModelShape(tuple(columns), frozenset(json_columns))


_SHAPES: MappingCache[type, ModelShape] = MappingCache("model shapes")


def model_shape(model_type: Type[BaseModel]) -> ModelShape:
    return _SHAPES.get_or_create(model_type, lambda: _build_shape(model_type))


def column_for(model_type: Optional[Type[BaseModel]], name: str) -> str:
    """Column for a model field name; names that are already columns pass through."""
    if model_type is None:
        return name
    return model_shape(model_type).field_to_column.get(name, name)


# --- Row decoding ---
def _looks_like_json(value: Any) -> bool:
    return isinstance(value, str) and value[:1] in ("{", "[")


def _decode_json(column: str, value: Any) -> Any:
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        log.warning(
            f"Failed to JSON decode field '{column}'. Value: '{str(value)[:100]}'. "
            f"Falling back to raw string value."
        )
        return value


def decode_row(row: Mapping[str, Any], model_type: Optional[Type[BaseModel]] = None) -> Dict[str, Any]:
    """
    Decodes JSON text columns of a raw row.

    With a model only columns declared as containers or nested models are
    decoded; without one any JSON-looking string is.
    """
    decoded = dict(row)
    if model_type is None:
        for column, value in decoded.items():
            if _looks_like_json(value):
                try:
                    decoded[column] = json.loads(value)
                except json.JSONDecodeError:
                    pass
        return decoded

    for column in model_shape(model_type).json_columns:
        value = decoded.get(column)
        if isinstance(value, (str, bytes)):
            decoded[column] = _decode_json(column, value)
    return decoded


def to_model(row: Mapping[str, Any], model_type: Type[M], partial: bool = False) -> M:
    """
    Builds a model instance from a decoded row.

    `partial` rows (a column projection) skip validation, since required
    fields may be missing.
    """
    if partial:
        names = model_shape(model_type).column_to_field
        return model_type.model_construct(**{names.get(k, k): v for k, v in row.items()})
    return model_type.model_validate(dict(row))


# --- Record values ---
def record_values(record: Any, exclude_unset: bool = False) -> Dict[str, Any]:
    """Column -> value dict for a pydantic model or mapping."""
    if isinstance(record, BaseModel):
        return record.model_dump(by_alias=True, exclude_unset=exclude_unset)
    if isinstance(record, Mapping):
        return dict(record)
    raise TypeError(
        f"record must be a pydantic model or a mapping, got {type(record).__name__}"
    )


def lookup_value(record: Any, name: str) -> Tuple[bool, Any]:
    """
    Finds `name` on a record, first as a field name, then as a column name.

    Returns:
        (found, value)
    """
    if isinstance(record, Mapping):
        if name in record:
            return True, record[name]
        return False, None
    if isinstance(record, BaseModel):
        model_type = type(record)
        if name in model_type.model_fields:
            return True, getattr(record, name)
        field = model_shape(model_type).column_to_field.get(name)
        if field is not None:
            return True, getattr(record, field)
        return False, None
    if hasattr(record, name):
        return True, getattr(record, name)
    return False, None


# --- DTO conversion ---
def _build_pair_mapping(source_type: type, target_type: Type[BaseModel]) -> Tuple[Tuple[str, str], ...]:
    target_shape = model_shape(target_type)
    target_fields = {name for name, _ in target_shape.columns}
    by_column = target_shape.column_to_field
    by_snake = {to_snake_case(name): name for name in target_fields}

    if isinstance(source_type, type) and issubclass(source_type, BaseModel):
        source_names = [
            (name, info.alias or name) for name, info in source_type.model_fields.items()
        ]
    else:
        source_names = []

    pairs = []
    for name, column in source_names:
        if name in target_fields:
            pairs.append((name, name))
        elif column in by_column:
            pairs.append((name, by_column[column]))
        elif to_snake_case(name) in by_snake:
            pairs.append((name, by_snake[to_snake_case(name)]))
    return tuple(pairs)


_PAIRS: MappingCache[Tuple[type, type], Tuple[Tuple[str, str], ...]] = MappingCache("dto mappings")


def field_mapping(source_type: type, target_type: Type[BaseModel]) -> Dict[str, str]:
    """Source attribute -> target field, matched by name, then column, then snake_case."""
    key = (source_type, target_type)
    return dict(_PAIRS.get_or_create(key, lambda: _build_pair_mapping(source_type, target_type)))


def convert(source: Any, target_type: Type[M]) -> M:
    """
    Copies matching fields of `source` into a new `target_type` instance.

    Mappings are matched the same way rows are: first by field name, then
    by column name (alias), then by snake_case name.
    """
    if isinstance(source, Mapping):
        shape = model_shape(target_type)
        by_column = shape.column_to_field
        by_snake = {to_snake_case(name): name for name, _ in shape.columns}
        data = {}
        for key, value in source.items():
            if key in shape.field_to_column:
                data[key] = value
            elif key in by_column:
                data[by_column[key]] = value
            elif to_snake_case(key) in by_snake:
                data[by_snake[to_snake_case(key)]] = value
        return _validate_by_name(target_type, data)
    mapping = field_mapping(type(source), target_type)
    data = {target: getattr(source, name) for name, target in mapping.items()}
    return _validate_by_name(target_type, data)


def _validate_by_name(model_type: Type[M], data: Dict[str, Any]) -> M:
    columns = model_shape(model_type).field_to_column
    return model_type.model_validate({columns.get(k, k): v for k, v in data.items()})
