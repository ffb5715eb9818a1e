from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional, Tuple

from .validation_exceptions import InvalidFieldError
from .validator import validate_field


@dataclass(frozen=True)
class Relation:
    """
    A preloadable association from one table to another.

    Rows of `target` whose `remote_key` equals the parent's `local_key` are
    attached to the parent under `name`: a list when `many`, else a single
    row or None.

    Examples:
        has-many:   Relation("posts", posts_table, local_key="id", remote_key="user_id")
        belongs-to: Relation("author", users_table, local_key="author_id", remote_key="id", many=False)
    """

    name: str
    target: "TableSpec"
    local_key: str = "id"
    remote_key: str = "id"
    many: bool = True

    def __post_init__(self):
        validate_field(self.name, "relation")
        validate_field(self.local_key, "relation key")
        validate_field(self.remote_key, "relation key")


@dataclass(frozen=True)
class TableSpec:
    """
    Storage description of one table.

    Attributes:
        table: Table name.
        primary_key: Primary key column.
        id_generator: Called for a primary key value when a created record
                      has none; None leaves the key to the store.
        created_at: Column filled with the current UTC time on create.
        updated_at: Column filled with the current UTC time on create and update.
        soft_delete_column: When set, deletes stamp this column instead of
                            removing rows, and reads skip stamped rows.
        relations: Associations available to `include`.
    """

    table: str
    primary_key: str = "id"
    id_generator: Optional[Callable[[], Any]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    soft_delete_column: Optional[str] = None
    relations: Tuple[Relation, ...] = field(default_factory=tuple)

    def __post_init__(self):
        validate_field(self.table, "table")
        validate_field(self.primary_key, "primary key")
        for column in (self.created_at, self.updated_at, self.soft_delete_column):
            if column is not None:
                validate_field(column, "column")
        object.__setattr__(self, "relations", tuple(self.relations))

    def relation(self, name: str) -> Relation:
        for relation in self.relations:
            if relation.name == name:
                return relation
        raise InvalidFieldError(
            f"invalid include name: '{name}' is not a relation of '{self.table}'",
            field=name,
        )

    def with_relations(self, *relations: Relation) -> "TableSpec":
        """Copy of this TableSpec with `relations` added."""
        return replace(self, relations=self.relations + tuple(relations))


def as_table_spec(table: Any) -> TableSpec:
    """Accepts a TableSpec or a bare table name."""
    if isinstance(table, TableSpec):
        return table
    if isinstance(table, str):
        return TableSpec(table)
    raise TypeError(f"table must be a TableSpec or str, got {type(table).__name__}")
