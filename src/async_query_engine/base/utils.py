import logging
import uuid
from dataclasses import asdict, is_dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Mapping, Optional
from uuid import UUID

logger = logging.getLogger(__name__)


def prepare_for_storage(data: Any) -> Any:
    """
    Recursively convert Pydantic models, dataclasses and special types to JSON-compatible values.

    Used for values that end up inside a JSON column: nested dicts, lists,
    sets and tuples are walked, models are dumped by alias, and dates,
    UUIDs, Decimals and Enums are turned into their string or primitive
    forms.

    Args:
        data: The data to convert

    Returns:
        The converted data, ready for json.dumps
    """
    if data is None:
        return None

    if is_dataclass(data) and not isinstance(data, type):
        return prepare_for_storage(asdict(data))

    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        return data.model_dump(mode="json", by_alias=True)

    if isinstance(data, Mapping):
        return {k: prepare_for_storage(v) for k, v in data.items()}

    if isinstance(data, (list, tuple, set, frozenset)):
        return [prepare_for_storage(item) for item in data]

    if isinstance(data, Enum):
        return prepare_for_storage(data.value)

    if isinstance(data, (datetime, date, time)):
        return data.isoformat()

    if isinstance(data, (UUID, Decimal)):
        return str(data)

    # Pydantic URL types and similar
    if data.__class__.__module__.startswith("pydantic"):
        return str(data)

    return data


def is_zero_value(value: Any) -> bool:
    """
    True for a type's zero value: None, empty string/bytes/collection, 0 and False.

    Uniqueness checks skip fields holding a zero value.
    """
    if value is None:
        return True
    if isinstance(value, (str, bytes, list, tuple, dict, set, frozenset)):
        return len(value) == 0
    if isinstance(value, (bool, int, float, Decimal)):
        return value == 0
    return False


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_id(generator: Optional[Callable[[], Any]]) -> Any:
    """Calls `generator` if one is configured, else returns None (store-generated key)."""
    if generator is None:
        return None
    value = generator()
    logger.debug(f"Generated id {value!r}")
    return value
