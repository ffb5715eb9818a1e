# src/async_query_engine/db_implementations/mysql_executor.py

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, List, Optional, Tuple, Union

# --- aiomysql Driver Import ---
import aiomysql

# --- Framework Imports ---
from async_query_engine.base.config import EngineSettings
from async_query_engine.base.dialect import MYSQL
from async_query_engine.base.interfaces import ExecutionAdapter, ExecutionResult, Row

DB_POOL_TYPE = aiomysql.Pool
DB_CURSOR_TYPE = aiomysql.DictCursor


class MySQLExecutor(ExecutionAdapter):
    """
    Execution adapter for aiomysql.

    With an `aiomysql.Pool` each statement acquires its own connection and
    mutating statements are committed before the connection is released.
    With an `aiomysql.Connection` (an externally managed transaction)
    nothing is committed or rolled back here.
    """

    dialect = MYSQL

    def __init__(
        self,
        db: Union[aiomysql.Pool, aiomysql.Connection],
        settings: Optional[EngineSettings] = None,
    ):
        """
        Args:
            db: An active aiomysql.Pool, or a Connection owned by the caller.
            settings: Engine settings; defaults to the process-wide settings.
        """
        if isinstance(db, aiomysql.Pool):
            self._pool, self._conn = db, None
        elif isinstance(db, aiomysql.Connection):
            self._pool, self._conn = None, db
        else:
            raise TypeError("db must be an instance of aiomysql.Pool or aiomysql.Connection")
        super().__init__(settings)

    # --- Connection/Session Management ---
    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[
        Tuple[aiomysql.Connection, aiomysql.DictCursor], None]:
        """
        Acquire a connection (pooled mode) and create a DictCursor.
        Handles cursor close and connection release.
        """
        conn = None
        cursor = None
        try:
            if self._pool is not None:
                conn = await self._pool.acquire()
                self._logger.debug("Acquired connection from pool.")
            else:
                conn = self._conn
            cursor = await conn.cursor(aiomysql.DictCursor)
            yield conn, cursor
        except Exception:
            if self._pool is not None and conn is not None:
                await conn.rollback()
            raise
        finally:
            if cursor:
                await cursor.close()
            if conn is not None and self._pool is not None:
                try:
                    self._pool.release(conn)
                    self._logger.debug("Released connection back to pool.")
                except Exception as release_error:
                    self._logger.error(
                        f"Error releasing connection: {release_error}",
                        exc_info=True,
                    )

    async def _fetch_all(self, sql: str, params: List[Any]) -> List[Row]:
        async with self._get_session() as (conn, cursor):
            await cursor.execute(sql, tuple(params))
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def _fetch_value(self, sql: str, params: List[Any]) -> Any:
        async with self._get_session() as (conn, cursor):
            await cursor.execute(sql, tuple(params))
            row = await cursor.fetchone()
        if not row:
            return None
        return next(iter(row.values()))

    async def _execute(
        self, sql: str, params: List[Any], returning: bool = False
    ) -> ExecutionResult:
        async with self._get_session() as (conn, cursor):
            await cursor.execute(sql, tuple(params))
            rows = await cursor.fetchall() if returning else []
            result = ExecutionResult(
                rowcount=cursor.rowcount,
                lastrowid=cursor.lastrowid,
                rows=tuple(dict(row) for row in rows),
            )
            if self._pool is not None:
                await conn.commit()
        return result
