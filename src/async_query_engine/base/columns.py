from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

from .validator import validate_fields


@dataclass(frozen=True)
class ColumnSelection:
    """
    Allow-list / deny-list of writable columns.

    `only` and `omit` are mutually exclusive; when both are given the
    allow-list wins and `omit` is ignored. An empty selection writes every
    column.
    """

    only: Tuple[str, ...] = ()
    omit: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "only", tuple(self.only))
        object.__setattr__(self, "omit", tuple(self.omit))
        validate_fields(self.only, "column")
        validate_fields(self.omit, "column")

    @classmethod
    def of(
        cls,
        only: Optional[Iterable[str]] = None,
        omit: Optional[Iterable[str]] = None,
    ) -> "ColumnSelection":
        return cls(tuple(only or ()), tuple(omit or ()))

    def allows(self, column: str) -> bool:
        if self.only:
            return column in self.only
        return column not in self.omit

    def apply(self, values: Dict[str, Any], keep: Iterable[str] = ()) -> Dict[str, Any]:
        """Filters `values` by column; columns in `keep` always survive."""
        keep = set(keep)
        return {k: v for k, v in values.items() if k in keep or self.allows(k)}
