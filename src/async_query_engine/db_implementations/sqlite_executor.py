# src/async_query_engine/db_implementations/sqlite_executor.py

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, List, Optional

# --- aiosqlite Driver Import ---
import aiosqlite

# --- Framework Imports ---
from async_query_engine.base.config import EngineSettings
from async_query_engine.base.dialect import SQLITE
from async_query_engine.base.interfaces import ExecutionAdapter, ExecutionResult, Row


class SqliteExecutor(ExecutionAdapter):
    """
    Execution adapter for aiosqlite.

    Expects an active `aiosqlite.Connection`, typically owned by a Unit of
    Work that handles transaction boundaries (commit/rollback). Pass
    `autocommit=True` to commit after every mutating statement instead.

    Containers are stored as JSON text and dates as ISO 8601 text.
    """

    dialect = SQLITE

    def __init__(
        self,
        db_connection: aiosqlite.Connection,
        autocommit: bool = False,
        settings: Optional[EngineSettings] = None,
    ):
        """
        Args:
            db_connection: An active aiosqlite.Connection managed externally.
            autocommit: Commit after each INSERT/UPDATE/DELETE.
            settings: Engine settings; defaults to the process-wide settings.
        """
        if not isinstance(db_connection, aiosqlite.Connection):
            raise TypeError("db_connection must be an instance of aiosqlite.Connection")
        super().__init__(settings)
        self._conn = db_connection
        # Ensure connection uses dict-like rows for convenience
        self._conn.row_factory = aiosqlite.Row
        self._autocommit = autocommit

    @property
    def connection(self) -> aiosqlite.Connection:
        return self._conn

    # --- Connection/Session Management (UoW Aware) ---
    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        """
        Provides the externally managed connection within a context.
        Does NOT handle commit/rollback unless autocommit is enabled.
        """
        try:
            yield self._conn
        except Exception as e:
            self._logger.debug(f"Statement failed on external connection: {e}")
            raise

    async def _fetch_all(self, sql: str, params: List[Any]) -> List[Row]:
        async with self._get_session() as conn:
            async with conn.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def _fetch_value(self, sql: str, params: List[Any]) -> Any:
        async with self._get_session() as conn:
            async with conn.execute(sql, params) as cursor:
                row = await cursor.fetchone()
        return row[0] if row is not None else None

    async def _execute(
        self, sql: str, params: List[Any], returning: bool = False
    ) -> ExecutionResult:
        async with self._get_session() as conn:
            async with conn.execute(sql, params) as cursor:
                rows = await cursor.fetchall() if returning else []
                result = ExecutionResult(
                    rowcount=len(rows) if returning else cursor.rowcount,
                    lastrowid=cursor.lastrowid,
                    rows=tuple(dict(row) for row in rows),
                )
            if self._autocommit:
                await conn.commit()
        return result
