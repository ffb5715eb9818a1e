# tests/conftest.py
import asyncio
import logging
import os
import uuid
from typing import Any, List, Tuple

import aiomysql
import aiosqlite
import asyncpg
import pytest
import pytest_asyncio

from async_query_engine.base.config import EngineSettings
from async_query_engine.base.interfaces import ExecutionResult
from async_query_engine.base.schema import Relation, TableSpec
from async_query_engine.db_implementations.mysql_executor import MySQLExecutor
from async_query_engine.db_implementations.postgresql_executor import PostgresExecutor
from async_query_engine.db_implementations.sqlite_executor import SqliteExecutor

# Silence verbose loggers
logging.getLogger("aiomysql").setLevel(logging.WARNING)
logging.getLogger("asyncpg").setLevel(logging.WARNING)


# --- Constants ---
MYSQL_HOST = os.getenv("TEST_MYSQL_HOST")
MYSQL_PORT = int(os.getenv("TEST_MYSQL_PORT", "3306"))
MYSQL_USER = os.getenv("TEST_MYSQL_USER", "testuser")
MYSQL_PASSWORD = os.getenv("TEST_MYSQL_PASSWORD", "password")
POSTGRES_DSN = os.getenv("TEST_POSTGRES_DSN")


# --- Availability Checks ---
def is_mysql_available() -> bool:
    return bool(MYSQL_HOST)


def is_postgres_available() -> bool:
    return bool(POSTGRES_DSN)


# --- Schema ---
SQLITE_SCHEMA = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT,
    age INTEGER,
    score REAL,
    status TEXT,
    tags TEXT NOT NULL DEFAULT '[]',
    created_at TEXT,
    updated_at TEXT,
    deleted_at TEXT
);
CREATE TABLE posts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER,
    title TEXT NOT NULL DEFAULT '',
    views INTEGER
);
CREATE TABLE comments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    post_id INTEGER,
    body TEXT NOT NULL DEFAULT ''
);
CREATE TABLE memberships (
    id TEXT PRIMARY KEY,
    org TEXT NOT NULL,
    member TEXT NOT NULL,
    role TEXT,
    UNIQUE (org, member)
);
"""

COMMENTS = TableSpec("comments")
POSTS = TableSpec(
    "posts",
    relations=(Relation("comments", COMMENTS, local_key="id", remote_key="post_id"),),
)
USERS = TableSpec(
    "users",
    created_at="created_at",
    updated_at="updated_at",
    soft_delete_column="deleted_at",
    relations=(Relation("posts", POSTS, local_key="id", remote_key="user_id"),),
)
POSTS_WITH_AUTHOR = POSTS.with_relations(
    Relation("author", USERS, local_key="user_id", remote_key="id", many=False)
)
MEMBERSHIPS = TableSpec("memberships", id_generator=lambda: str(uuid.uuid4()))


class RecordingExecutor(SqliteExecutor):
    """SqliteExecutor that keeps every statement it was asked to run."""

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.statements: List[Tuple[str, List[Any]]] = []

    def reset(self) -> None:
        self.statements = []

    def mutations(self) -> List[str]:
        return [
            sql for sql, _ in self.statements
            if sql.split(" ", 1)[0] in ("INSERT", "UPDATE", "DELETE")
        ]

    async def _fetch_all(self, sql: str, params: List[Any]):
        self.statements.append((sql, list(params)))
        return await super()._fetch_all(sql, params)

    async def _fetch_value(self, sql: str, params: List[Any]) -> Any:
        self.statements.append((sql, list(params)))
        return await super()._fetch_value(sql, params)

    async def _execute(
        self, sql: str, params: List[Any], returning: bool = False
    ) -> ExecutionResult:
        self.statements.append((sql, list(params)))
        return await super()._execute(sql, params, returning)


class SlowExecutor(SqliteExecutor):
    """Every read stalls, so per-call timeouts can be exercised."""

    delay = 1.0

    async def _fetch_all(self, sql: str, params: List[Any]):
        await asyncio.sleep(self.delay)
        return await super()._fetch_all(sql, params)

    async def _fetch_value(self, sql: str, params: List[Any]) -> Any:
        await asyncio.sleep(self.delay)
        return await super()._fetch_value(sql, params)


# --- Settings ---
@pytest.fixture
def settings():
    return EngineSettings(default_page=1, default_page_size=10, max_limit=100)


# --- SQLite Fixtures (Function Scoped) ---
@pytest_asyncio.fixture(scope="function")
async def sqlite_memory_db_conn():
    """Provides an in-memory aiosqlite database connection with the test schema."""
    conn = None
    try:
        conn = await aiosqlite.connect(":memory:")
        conn.row_factory = aiosqlite.Row
        await conn.executescript(SQLITE_SCHEMA)
        await conn.commit()
        yield conn
    finally:
        if conn:
            await conn.close()


@pytest.fixture
def executor(sqlite_memory_db_conn, settings):
    return RecordingExecutor(sqlite_memory_db_conn, autocommit=True, settings=settings)


@pytest.fixture
def slow_executor(sqlite_memory_db_conn, settings):
    return SlowExecutor(sqlite_memory_db_conn, autocommit=True, settings=settings)


async def insert_rows(conn: aiosqlite.Connection, table: str, rows: List[dict]) -> None:
    """Seeds `table` directly, bypassing the engine."""
    for row in rows:
        columns = ", ".join(f'"{c}"' for c in row)
        marks = ", ".join("?" for _ in row)
        await conn.execute(
            f'INSERT INTO "{table}" ({columns}) VALUES ({marks})', list(row.values())
        )
    await conn.commit()


@pytest_asyncio.fixture
async def seeded_users(sqlite_memory_db_conn):
    """Five users, two posts for Ann, one for Bob, comments on Ann's first post."""
    await insert_rows(
        sqlite_memory_db_conn,
        "users",
        [
            {"id": 1, "name": "Ann", "email": "ann@example.com", "age": 31, "score": 4.5, "status": "active", "tags": '["admin"]'},
            {"id": 2, "name": "Bob", "email": "bob@example.com", "age": 25, "score": 3.0, "status": "active", "tags": "[]"},
            {"id": 3, "name": "Cid", "email": "cid@example.com", "age": 42, "score": None, "status": "banned", "tags": "[]"},
            {"id": 4, "name": "Dee", "email": "", "age": 19, "score": 2.5, "status": None, "tags": "[]"},
            {"id": 5, "name": "Eve", "email": "eve@example.com", "age": 55, "score": 5.0, "status": "active", "tags": "[]"},
        ],
    )
    await insert_rows(
        sqlite_memory_db_conn,
        "posts",
        [
            {"id": 10, "user_id": 1, "title": "first", "views": 3},
            {"id": 11, "user_id": 1, "title": "second", "views": 7},
            {"id": 12, "user_id": 2, "title": "hello", "views": None},
        ],
    )
    await insert_rows(
        sqlite_memory_db_conn,
        "comments",
        [
            {"id": 100, "post_id": 10, "body": "nice"},
            {"id": 101, "post_id": 10, "body": "agreed"},
        ],
    )
    return sqlite_memory_db_conn


# --- MySQL / PostgreSQL Fixtures (Function Scoped) ---
@pytest_asyncio.fixture(scope="function")
async def mysql_executor():
    """MySQLExecutor over a pool on a temporary database, dropped afterwards."""
    if not is_mysql_available():
        pytest.skip("MySQL not configured (set TEST_MYSQL_HOST).")

    temp_db_name = f"test_db_{uuid.uuid4().hex[:8]}"
    admin_conn = await aiomysql.connect(
        host=MYSQL_HOST, port=MYSQL_PORT, user=MYSQL_USER, password=MYSQL_PASSWORD, autocommit=True
    )
    try:
        async with admin_conn.cursor() as cursor:
            await cursor.execute(f"CREATE DATABASE `{temp_db_name}`")
        pool = await aiomysql.create_pool(
            host=MYSQL_HOST,
            port=MYSQL_PORT,
            user=MYSQL_USER,
            password=MYSQL_PASSWORD,
            db=temp_db_name,
            autocommit=True,
        )
        try:
            async with pool.acquire() as conn:
                async with conn.cursor() as cursor:
                    await cursor.execute(
                        "CREATE TABLE users ("
                        " id INT AUTO_INCREMENT PRIMARY KEY,"
                        " name VARCHAR(20) NOT NULL,"
                        " email VARCHAR(100),"
                        " age INT,"
                        " score DOUBLE,"
                        " status VARCHAR(20),"
                        " tags JSON,"
                        " created_at DATETIME(6),"
                        " updated_at DATETIME(6),"
                        " deleted_at DATETIME(6),"
                        " UNIQUE KEY uk_users_email (email))"
                    )
            yield MySQLExecutor(pool)
        finally:
            pool.close()
            await pool.wait_closed()
            async with admin_conn.cursor() as cursor:
                await cursor.execute(f"DROP DATABASE `{temp_db_name}`")
    finally:
        admin_conn.close()


@pytest_asyncio.fixture(scope="function")
async def postgres_executor():
    """PostgresExecutor over a pool on a temporary schema, dropped afterwards."""
    if not is_postgres_available():
        pytest.skip("PostgreSQL not configured (set TEST_POSTGRES_DSN).")

    schema = f"test_{uuid.uuid4().hex[:8]}"
    pool = await asyncpg.create_pool(
        POSTGRES_DSN, server_settings={"search_path": schema}, min_size=1, max_size=2
    )
    try:
        async with pool.acquire() as conn:
            await conn.execute(f'CREATE SCHEMA "{schema}"')
            await conn.execute(
                f'CREATE TABLE "{schema}".users ('
                " id SERIAL PRIMARY KEY,"
                " name VARCHAR(20) NOT NULL,"
                " email TEXT UNIQUE,"
                " age INT,"
                " score DOUBLE PRECISION,"
                " status TEXT,"
                " tags JSONB,"
                " created_at TIMESTAMPTZ,"
                " updated_at TIMESTAMPTZ,"
                " deleted_at TIMESTAMPTZ)"
            )
        yield PostgresExecutor(pool)
    finally:
        async with pool.acquire() as conn:
            await conn.execute(f'DROP SCHEMA "{schema}" CASCADE')
        await pool.close()


@pytest.fixture
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_query_engine_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {"test": True})
