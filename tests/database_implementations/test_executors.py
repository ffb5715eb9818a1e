# tests/database_implementations/test_executors.py
import asyncio

import aiosqlite
import pytest

from async_query_engine.base.config import EngineSettings
from async_query_engine.base.create import CreateBuilder
from async_query_engine.base.dialect import InValues
from async_query_engine.base.exceptions import (
    GenericDatabaseException,
    KeyAlreadyExistsException,
    QueryTimeoutException,
)
from async_query_engine.base.query import Query
from async_query_engine.base.query_builder import QueryBuilder
from async_query_engine.base.update import UpdateBuilder
from async_query_engine.db_implementations.postgresql_executor import _get_codec_lock
from async_query_engine.db_implementations.sqlite_executor import SqliteExecutor
from tests.conftest import USERS, SlowExecutor
from tests.models import User


# --- Timeouts ---
async def test_per_call_timeout(slow_executor, seeded_users):
    with pytest.raises(QueryTimeoutException) as exc_info:
        await QueryBuilder(slow_executor, USERS, User).get(timeout=0.05)
    assert exc_info.value.code == "QUERY_TIMEOUT"
    assert isinstance(exc_info.value.__cause__, asyncio.TimeoutError)


async def test_builder_timeout(slow_executor, seeded_users):
    builder = QueryBuilder(slow_executor, USERS, User).with_timeout(0.05)
    with pytest.raises(QueryTimeoutException):
        await builder.count()


async def test_settings_default_timeout(sqlite_memory_db_conn):
    executor = SlowExecutor(sqlite_memory_db_conn, settings=EngineSettings(default_timeout=0.05))
    with pytest.raises(QueryTimeoutException):
        await UpdateBuilder(executor, USERS, User).update_by_id(1, {"name": "x"})


async def test_cancellation_is_not_converted(slow_executor, seeded_users):
    task = asyncio.ensure_future(QueryBuilder(slow_executor, USERS, User).get())
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


# --- SQLite adapter ---
async def test_sqlite_executor_requires_connection():
    with pytest.raises(TypeError):
        SqliteExecutor("not a connection")


async def test_sqlite_external_transaction(sqlite_memory_db_conn):
    executor = SqliteExecutor(sqlite_memory_db_conn)
    await CreateBuilder(executor, USERS, User).create(User(name="Ann"))
    assert sqlite_memory_db_conn.in_transaction
    await sqlite_memory_db_conn.rollback()
    assert await QueryBuilder(executor, USERS).count() == 0


async def test_sqlite_raw_statements(executor, seeded_users):
    row = await executor.fetch_one('SELECT "name" FROM "users" WHERE "id" IN (?)', [InValues((1,))])
    assert row == {"name": "Ann"}
    assert await executor.fetch_value("SELECT COUNT(*) FROM users WHERE age > ?", [30]) == 3
    assert await executor.fetch_one("SELECT * FROM users WHERE id = ?", [99]) is None
    result = await executor.execute("UPDATE users SET age = age + 1 WHERE age > ?", [30])
    assert result.rowcount == 3


async def test_unclassified_driver_error(executor):
    with pytest.raises(GenericDatabaseException) as exc_info:
        await executor.fetch_all("SELECT * FROM missing_table")
    assert "missing_table" in exc_info.value.message
    assert isinstance(exc_info.value.__cause__, aiosqlite.OperationalError)


async def test_timeout_then_recovers(slow_executor, seeded_users):
    with pytest.raises(QueryTimeoutException):
        await QueryBuilder(slow_executor, USERS).get(timeout=0.01)
    slow_executor.delay = 0
    assert await QueryBuilder(slow_executor, USERS).count() == 5


# --- PostgreSQL codec lock ---
def test_codec_lock_follows_event_loop():
    async def acquire_twice():
        first, second = _get_codec_lock(), _get_codec_lock()
        async with first:
            pass
        return first, second

    first, second = asyncio.run(acquire_twice())
    assert first is second
    other, _ = asyncio.run(acquire_twice())
    assert other is not first


# --- MySQL / PostgreSQL adapters ---
async def _exercise_store(executor):
    creator = CreateBuilder(executor, USERS, User)
    ann = await creator.create(User(name="Ann", email="ann@example.com", tags=["a"], age=30))
    assert ann.id is not None
    assert ann.tags == ["a"]
    await creator.create(User(name="Bob", email="bob@example.com", age=20))

    with pytest.raises(KeyAlreadyExistsException) as exc_info:
        await creator.create(User(name="Ann2", email="ann@example.com"))
    assert exc_info.value.field == "email"

    query = Query.from_dict(
        {"search": [[["age", [10, 40], "BETWEEN"], ["name", "n", "LIKE"]]], "required": ["name"]}
    )
    rows = await QueryBuilder(executor, USERS, User, query).get()
    assert [u.name for u in rows] == ["Ann"]
    assert await QueryBuilder(executor, USERS, User).sum("age") == 50

    updated = await UpdateBuilder(executor, USERS, User).update_by_id(ann.id, {"age": 31})
    assert updated.age == 31


async def test_mysql_executor(mysql_executor):
    await _exercise_store(mysql_executor)


async def test_postgres_executor(postgres_executor):
    await _exercise_store(postgres_executor)
