# src/async_query_engine/base/include.py
"""
Relation preloading for `Query.include`.

Include paths are resolved against the TableSpec relations before any
statement runs. Each relation level then costs one `IN` query, and the
related rows are attached to their parents as plain dicts.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from .compiler import Predicate
from .dialect import InValues
from .interfaces import ExecutionAdapter
from .mapping import decode_row
from .schema import Relation, TableSpec
from .validator import validate_include

log = logging.getLogger(__name__)

IncludeTree = Dict[str, "IncludeNode"]


class IncludeNode:
    __slots__ = ("relation", "children")

    def __init__(self, relation: Relation):
        self.relation = relation
        self.children: IncludeTree = {}


def resolve_includes(table: TableSpec, paths: Sequence[str]) -> IncludeTree:
    """
    Resolves dotted include paths into a tree of relations.

    Raises:
        InvalidFieldError: A path segment is malformed or names no relation.
    """
    tree: IncludeTree = {}
    for path in paths:
        validate_include(path)
        level, spec = tree, table
        for segment in path.split("."):
            node = level.get(segment)
            if node is None:
                node = IncludeNode(spec.relation(segment))
                level[segment] = node
            level, spec = node.children, node.relation.target
    return tree


def local_keys(tree: IncludeTree) -> List[str]:
    """Parent columns the top level of `tree` needs in the projection."""
    keys: List[str] = []
    for node in tree.values():
        if node.relation.local_key not in keys:
            keys.append(node.relation.local_key)
    return keys


async def preload(
    executor: ExecutionAdapter,
    rows: List[Dict[str, Any]],
    tree: IncludeTree,
    timeout: Optional[float] = None,
) -> None:
    """Attaches related rows to `rows` in place, level by level."""
    if not rows or not tree:
        return
    for name, node in tree.items():
        await _load_relation(executor, rows, name, node, timeout)


async def _load_relation(
    executor: ExecutionAdapter,
    rows: List[Dict[str, Any]],
    name: str,
    node: IncludeNode,
    timeout: Optional[float],
) -> None:
    relation = node.relation
    target = relation.target
    keys = []
    for row in rows:
        key = row.get(relation.local_key)
        if key is not None and key not in keys:
            keys.append(key)

    children: List[Dict[str, Any]] = []
    if keys:
        dialect = executor.dialect
        where = Predicate(f"{dialect.quote(relation.remote_key)} IN (?)", (InValues(tuple(keys)),))
        if target.soft_delete_column:
            where = where.and_(Predicate(f"{dialect.quote(target.soft_delete_column)} IS NULL"))
        sql = f"SELECT * FROM {dialect.quote(target.table)} WHERE {where.sql}"
        log.debug(f"Preloading '{name}' from '{target.table}' for {len(keys)} keys")
        children = [decode_row(r) for r in await executor.fetch_all(sql, where.params, timeout)]
        if node.children:
            await preload(executor, children, node.children, timeout)

    grouped: Dict[Any, List[Dict[str, Any]]] = {}
    for child in children:
        grouped.setdefault(child.get(relation.remote_key), []).append(child)

    for row in rows:
        matches = grouped.get(row.get(relation.local_key), [])
        if relation.many:
            row[name] = list(matches)
        else:
            row[name] = matches[0] if matches else None
