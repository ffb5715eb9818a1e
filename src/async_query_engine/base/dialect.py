# src/async_query_engine/base/dialect.py
"""
Per-driver SQL rendering.

Compiled statements use `?` as their only placeholder. A Dialect turns that
into the driver's parameter style, expands IN sequences into one
placeholder per element, escapes identifiers and adapts bound values into
shapes the driver accepts.
"""

import json
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, List, Sequence, Tuple
from uuid import UUID

from .utils import prepare_for_storage


@dataclass(frozen=True)
class InValues:
    """A bound sequence that renders as `(?, ?, ...)`, one placeholder per item."""

    items: Tuple[Any, ...]


class Dialect:
    """Generic dialect: identifiers pass through, `?` placeholders."""

    name = "generic"
    supports_returning = False

    # --- Identifiers ---
    def quote_identifier(self, name: str) -> str:
        return name

    def quote(self, name: str) -> str:
        """Escapes a possibly dotted identifier segment by segment; `*` is left alone."""
        if name == "*":
            return name
        return ".".join(
            part if part == "*" else self.quote_identifier(part)
            for part in name.split(".")
        )

    def not_blank(self, column: str) -> str:
        """Predicate text for 'column holds a non-empty value'."""
        return f"{column} IS NOT NULL AND {column} != ''"

    # --- Placeholders ---
    def placeholder(self, index: int) -> str:
        """Placeholder for the 1-based parameter `index`."""
        return "?"

    def escape_literal_text(self, text: str) -> str:
        """Escapes SQL text outside placeholders for the driver's formatting rules."""
        return text

    def render(self, sql: str, params: Sequence[Any]) -> Tuple[str, List[Any]]:
        """
        Renders `?` placeholders into the driver's parameter style.

        Args:
            sql: Statement text using `?` placeholders.
            params: One value per placeholder; InValues expands in place.

        Returns:
            The driver-ready statement text and flat, adapted parameter list.

        Raises:
            ValueError: If the placeholder and parameter counts differ.
        """
        out: List[str] = []
        flat: List[Any] = []
        chunk: List[str] = []
        param_iter = iter(params)
        consumed = 0
        in_quote = None

        for char in sql:
            if in_quote:
                chunk.append(char)
                if char == in_quote:
                    in_quote = None
                continue
            if char in ("'", '"', "`"):
                in_quote = char
                chunk.append(char)
                continue
            if char != "?":
                chunk.append(char)
                continue

            out.append(self.escape_literal_text("".join(chunk)))
            chunk = []
            try:
                value = next(param_iter)
            except StopIteration:
                raise ValueError(
                    f"statement has more placeholders than parameters ({consumed})"
                ) from None
            consumed += 1
            if isinstance(value, InValues):
                marks = []
                for item in value.items:
                    flat.append(self.adapt_value(item))
                    marks.append(self.placeholder(len(flat)))
                out.append(", ".join(marks))
            else:
                flat.append(self.adapt_value(value))
                out.append(self.placeholder(len(flat)))

        out.append(self.escape_literal_text("".join(chunk)))
        leftover = sum(1 for _ in param_iter)
        if leftover:
            raise ValueError(
                f"statement has {consumed} placeholders but {consumed + leftover} parameters"
            )
        return "".join(out), flat

    # --- Values ---
    def adapt_value(self, value: Any) -> Any:
        if isinstance(value, Enum):
            value = value.value
        if isinstance(value, (dict, list, set)) or hasattr(value, "model_dump"):
            return json.dumps(prepare_for_storage(value))
        if isinstance(value, tuple):
            return json.dumps(prepare_for_storage(list(value)))
        return value


class SQLiteDialect(Dialect):
    """aiosqlite: `?` placeholders, double-quoted identifiers, ISO-8601 dates."""

    name = "sqlite"
    supports_returning = False

    def quote_identifier(self, name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    def adapt_value(self, value: Any) -> Any:
        value = super().adapt_value(value)
        if isinstance(value, (datetime, date, time)):
            return value.isoformat()
        if isinstance(value, Decimal):
            return float(value)
        if isinstance(value, UUID):
            return str(value)
        return value


class MySQLDialect(Dialect):
    """aiomysql: `%s` placeholders, backtick identifiers."""

    name = "mysql"
    supports_returning = False

    def quote_identifier(self, name: str) -> str:
        return "`" + name.replace("`", "``") + "`"

    def placeholder(self, index: int) -> str:
        return "%s"

    def escape_literal_text(self, text: str) -> str:
        # The driver %-formats the statement, so literal percent signs are doubled.
        return text.replace("%", "%%")

    def adapt_value(self, value: Any) -> Any:
        value = super().adapt_value(value)
        if isinstance(value, UUID):
            return str(value)
        return value


class PostgresDialect(Dialect):
    """asyncpg: `$n` placeholders, double-quoted identifiers, RETURNING support."""

    name = "postgresql"
    supports_returning = True

    def quote_identifier(self, name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    def placeholder(self, index: int) -> str:
        return f"${index}"

    def not_blank(self, column: str) -> str:
        # Non-text columns must be cast before comparing with ''.
        return f"{column} IS NOT NULL AND CAST({column} AS TEXT) != ''"


GENERIC = Dialect()
SQLITE = SQLiteDialect()
MYSQL = MySQLDialect()
POSTGRES = PostgresDialect()
