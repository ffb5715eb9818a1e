# src/async_query_engine/base/interfaces.py

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .config import EngineSettings, get_settings
from .dialect import Dialect
from .error_handler import wrap_db_error
from .exceptions import QueryTimeoutException

Row = Dict[str, Any]


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of a mutating statement."""

    rowcount: int = 0
    lastrowid: Any = None
    rows: Tuple[Row, ...] = ()


class ExecutionAdapter(ABC):
    """
    Runs rendered statements against one relational driver.

    Builders hand statements to the public methods with `?` placeholders;
    the adapter renders them through its dialect, applies the per-call
    timeout and converts driver errors into the DatabaseException taxonomy.
    Subclasses implement only the underscore-prefixed driver calls.

    Cancellation of the calling task is never converted; it propagates as
    asyncio.CancelledError.
    """

    dialect: Dialect

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or get_settings()
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    # --- Driver hooks ---
    @abstractmethod
    async def _fetch_all(self, sql: str, params: List[Any]) -> List[Row]:
        """
        Execute a query and return every row as a dict.

        Args:
            sql: Statement text in the driver's parameter style.
            params: Adapted parameters.

        Returns:
            A list of column-name -> value dicts.
        """
        pass

    @abstractmethod
    async def _fetch_value(self, sql: str, params: List[Any]) -> Any:
        """Execute a query and return the first column of the first row, or None."""
        pass

    @abstractmethod
    async def _execute(
        self, sql: str, params: List[Any], returning: bool = False
    ) -> ExecutionResult:
        """
        Execute a mutating statement.

        Args:
            sql: Statement text in the driver's parameter style.
            params: Adapted parameters.
            returning: True when the statement ends in RETURNING and the
                       produced rows must be collected.

        Returns:
            ExecutionResult with the affected row count, the last inserted
            row id where the driver reports one, and any returned rows.
        """
        pass

    # --- Public API ---
    def _timeout(self, timeout: Optional[float]) -> Optional[float]:
        return timeout if timeout is not None else self.settings.default_timeout

    def _log_statement(self, sql: str, params: Sequence[Any]) -> None:
        if self.settings.log_sql:
            self._logger.debug(f"SQL: {sql} | params={list(params)}")
        else:
            self._logger.debug(f"SQL: {sql}")

    async def _run(self, context: str, coro_factory, sql: str, params: Sequence[Any], timeout: Optional[float]):
        rendered, flat = self.dialect.render(sql, params)
        self._log_statement(rendered, flat)
        try:
            return await asyncio.wait_for(coro_factory(rendered, flat), self._timeout(timeout))
        except asyncio.TimeoutError as e:
            self._logger.warning(f"Timed out during {context} after {self._timeout(timeout)}s")
            raise QueryTimeoutException(
                f"{context} exceeded timeout of {self._timeout(timeout)}s"
            ) from e
        except asyncio.CancelledError:
            raise
        except Exception as e:
            wrapped = wrap_db_error(e, context)
            if wrapped is e:
                raise
            raise wrapped from e

    async def fetch_all(
        self, sql: str, params: Sequence[Any] = (), timeout: Optional[float] = None
    ) -> List[Row]:
        return await self._run("select", self._fetch_all, sql, params, timeout)

    async def fetch_one(
        self, sql: str, params: Sequence[Any] = (), timeout: Optional[float] = None
    ) -> Optional[Row]:
        rows = await self.fetch_all(sql, params, timeout)
        return rows[0] if rows else None

    async def fetch_value(
        self, sql: str, params: Sequence[Any] = (), timeout: Optional[float] = None
    ) -> Any:
        return await self._run("scalar select", self._fetch_value, sql, params, timeout)

    async def execute(
        self,
        sql: str,
        params: Sequence[Any] = (),
        timeout: Optional[float] = None,
        returning: bool = False,
    ) -> ExecutionResult:
        async def call(rendered: str, flat: List[Any]) -> ExecutionResult:
            return await self._execute(rendered, flat, returning=returning)

        return await self._run("execute", call, sql, params, timeout)
