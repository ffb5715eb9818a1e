# src/async_query_engine/db_implementations/postgresql_executor.py

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, List, Optional, Set, Union

# --- asyncpg Driver Import ---
import asyncpg

# --- Framework Imports ---
from async_query_engine.base.config import EngineSettings
from async_query_engine.base.dialect import POSTGRES
from async_query_engine.base.interfaces import ExecutionAdapter, ExecutionResult, Row

DB_POOL_TYPE = asyncpg.Pool
DB_RECORD_TYPE = asyncpg.Record

logger = logging.getLogger(__name__)


# --- Codec Setup ---
# Server PIDs of connections whose JSON codecs are already registered
_codec_set_conn_ids: Set[int] = set()
_codec_lock: Optional[asyncio.Lock] = None
_codec_lock_loop: Optional[asyncio.AbstractEventLoop] = None


def _get_codec_lock() -> asyncio.Lock:
    """The codec lock of the running event loop, created on first use in that loop."""
    global _codec_lock, _codec_lock_loop
    loop = asyncio.get_running_loop()
    if _codec_lock is None or _codec_lock_loop is not loop:
        _codec_lock = asyncio.Lock()
        _codec_lock_loop = loop
    return _codec_lock


def _encode_json(value: Any) -> str:
    # Values arrive already JSON encoded by the dialect.
    return value if isinstance(value, str) else json.dumps(value)


async def _ensure_postgres_codecs(conn: asyncpg.Connection) -> None:
    """Registers json/jsonb codecs on a connection if not already tracked as set."""
    conn_id = conn.get_server_pid()
    if conn_id in _codec_set_conn_ids:
        return

    async with _get_codec_lock():
        # Double check after acquiring lock
        if conn_id in _codec_set_conn_ids:
            return

        logger.debug(f"Setting JSON codecs for connection {conn} (ID: {conn_id})")
        try:
            for type_name in ("json", "jsonb"):
                await conn.set_type_codec(
                    type_name,
                    encoder=_encode_json,
                    decoder=json.loads,
                    schema="pg_catalog",
                    format="text",
                )
            _codec_set_conn_ids.add(conn_id)
        except Exception as e:
            logger.error(f"Failed to set JSON codecs on {conn}: {e}", exc_info=True)
            raise RuntimeError("Failed to configure necessary PostgreSQL codecs.") from e


def _status_rowcount(status: str) -> int:
    """'UPDATE 3' -> 3, 'INSERT 0 1' -> 1."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError, IndexError):
        return 0


class PostgresExecutor(ExecutionAdapter):
    """
    Execution adapter for asyncpg.

    With an `asyncpg.Pool` each statement acquires and releases its own
    connection and runs in autocommit mode. With an `asyncpg.Connection`
    (an externally managed transaction) statements run on that connection.
    Inserts use `RETURNING *`, so store-generated columns come back without
    a second query.
    """

    dialect = POSTGRES

    def __init__(
        self,
        db: Union[asyncpg.Pool, asyncpg.Connection],
        settings: Optional[EngineSettings] = None,
    ):
        """
        Args:
            db: An active asyncpg.Pool, or a Connection owned by the caller.
            settings: Engine settings; defaults to the process-wide settings.
        """
        if isinstance(db, asyncpg.Pool):
            self._pool, self._conn = db, None
        elif isinstance(db, asyncpg.Connection):
            self._pool, self._conn = None, db
        else:
            raise TypeError("db must be an instance of asyncpg.Pool or asyncpg.Connection")
        super().__init__(settings)

    # --- Connection/Session Management ---
    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[asyncpg.Connection, None]:
        """
        Acquire connection from the pool (or use the external one), ensure codecs, and release.
        """
        if self._pool is None:
            await _ensure_postgres_codecs(self._conn)
            yield self._conn
            return

        conn: Optional[asyncpg.Connection] = None
        try:
            conn = await self._pool.acquire()
            self._logger.debug(f"Acquired connection {conn} from pool.")
            await _ensure_postgres_codecs(conn)
            yield conn
        finally:
            if conn is not None:
                try:
                    await self._pool.release(conn)
                    self._logger.debug(f"Released connection {conn} back to pool.")
                except Exception as release_error:
                    self._logger.error(
                        f"Error releasing connection {conn}: {release_error}",
                        exc_info=True,
                    )

    async def _fetch_all(self, sql: str, params: List[Any]) -> List[Row]:
        async with self._get_session() as conn:
            records = await conn.fetch(sql, *params)
        return [dict(record) for record in records]

    async def _fetch_value(self, sql: str, params: List[Any]) -> Any:
        async with self._get_session() as conn:
            return await conn.fetchval(sql, *params)

    async def _execute(
        self, sql: str, params: List[Any], returning: bool = False
    ) -> ExecutionResult:
        async with self._get_session() as conn:
            if returning:
                records = await conn.fetch(sql, *params)
                rows = tuple(dict(record) for record in records)
                return ExecutionResult(rowcount=len(rows), rows=rows)
            status = await conn.execute(sql, *params)
        return ExecutionResult(rowcount=_status_rowcount(status))
