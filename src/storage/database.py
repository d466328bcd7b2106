"""Storage substrate for automation entities.

:class:`DatabaseAdapter` is the narrow interface the services consume. Two
SQLAlchemy-backed implementations are provided: :class:`SqlAlchemyAdapter`
for file or server databases and :class:`InMemoryAdapter` for a private
in-process SQLite database. :func:`create_adapter` picks one from a URL.

:class:`AutomationDatabase` layers schema bootstrap, record insertion, and
explicit transactions on top of an adapter.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    TypeVar,
)

from pydantic import BaseModel
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine, RootTransaction, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from domain.errors import DatabaseError, DatabaseInitializationError

from .schema import DELETE_ORDER, TABLES, schema_statements

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
T = TypeVar("T")

IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:", ":memory:")


class DatabaseAdapter(Protocol):
    """Minimal async interface shared by the storage backends."""

    async def initialize(self) -> None:
        """Open the underlying connection."""

    async def execute(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> List[Row]:
        """Run ``sql`` with named parameters and return result rows as dicts."""

    async def begin(self) -> None:
        """Start an explicit transaction."""

    async def commit(self) -> None:
        """Commit the explicit transaction."""

    async def rollback(self) -> None:
        """Discard the explicit transaction."""

    async def close(self) -> None:
        """Release the connection and dispose of the engine."""


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SqlAlchemyAdapter(DatabaseAdapter):
    """Adapter holding a single SQLAlchemy connection for the session.

    SQLAlchemy calls block, so each one runs in a worker thread via
    :func:`asyncio.to_thread` while a lock keeps the connection to one caller
    at a time. Statements outside an explicit transaction are committed
    immediately.
    """

    def __init__(self, url: str, **engine_options: Any) -> None:
        self._url = url
        self._engine_options = engine_options
        self._engine: Engine | None = None
        self._connection: Connection | None = None
        self._transaction: RootTransaction | None = None
        self._lock = asyncio.Lock()

    @property
    def url(self) -> str:
        return self._url

    def _create_engine(self) -> Engine:
        options = dict(self._engine_options)
        if make_url(self._url).get_backend_name() == "sqlite":
            # The connection is handed between worker threads.
            connect_args = dict(options.get("connect_args", {}))
            connect_args.setdefault("check_same_thread", False)
            options["connect_args"] = connect_args
        engine = create_engine(self._url, **options)
        if engine.dialect.name == "sqlite":
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    def _require_connection(self) -> Connection:
        if self._connection is None:
            raise DatabaseInitializationError("Database adapter has not been initialised")
        return self._connection

    async def _call(self, function: Callable[..., T], *args: Any) -> T:
        async with self._lock:
            return await asyncio.to_thread(function, *args)

    # ------------------------------------------------------------------
    # DatabaseAdapter
    # ------------------------------------------------------------------
    async def initialize(self) -> None:
        await self._call(self._initialize_sync)

    async def execute(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> List[Row]:
        return await self._call(self._execute_sync, sql, dict(params or {}))

    async def begin(self) -> None:
        await self._call(self._begin_sync)

    async def commit(self) -> None:
        await self._call(self._commit_sync)

    async def rollback(self) -> None:
        await self._call(self._rollback_sync)

    async def close(self) -> None:
        await self._call(self._close_sync)

    # ------------------------------------------------------------------
    # Blocking implementations, run in worker threads
    # ------------------------------------------------------------------
    def _initialize_sync(self) -> None:
        if self._connection is not None:
            return
        try:
            self._engine = self._create_engine()
            self._connection = self._engine.connect()
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Unable to connect to {self._url!r}: {exc}") from exc
        logger.debug("Opened database connection to %s", self._url)

    def _execute_sync(self, sql: str, params: Dict[str, Any]) -> List[Row]:
        connection = self._require_connection()
        try:
            result = connection.execute(text(sql), params)
            rows = [dict(row) for row in result.mappings()] if result.returns_rows else []
        except SQLAlchemyError as exc:
            if self._transaction is None:
                connection.rollback()
            raise DatabaseError(str(exc)) from exc
        if self._transaction is None:
            connection.commit()
        return rows

    def _begin_sync(self) -> None:
        connection = self._require_connection()
        if self._transaction is not None:
            raise DatabaseError("A transaction is already in progress")
        self._transaction = connection.begin()

    def _commit_sync(self) -> None:
        if self._transaction is None:
            raise DatabaseError("No transaction in progress")
        transaction, self._transaction = self._transaction, None
        try:
            transaction.commit()
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Commit failed: {exc}") from exc

    def _rollback_sync(self) -> None:
        if self._transaction is None:
            return
        transaction, self._transaction = self._transaction, None
        transaction.rollback()

    def _close_sync(self) -> None:
        self._rollback_sync()
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None


class InMemoryAdapter(SqlAlchemyAdapter):
    """Private SQLite database living for the lifetime of the adapter."""

    def __init__(self) -> None:
        super().__init__("sqlite://", poolclass=StaticPool)


def create_adapter(url: str) -> DatabaseAdapter:
    """Select the in-memory backend for memory URLs, else an engine-backed one."""

    if url in IN_MEMORY_URLS:
        return InMemoryAdapter()
    return SqlAlchemyAdapter(url)


def expand_in(prefix: str, values: Sequence[Any]) -> Tuple[str, Dict[str, Any]]:
    """Build ``:prefix0, :prefix1`` placeholders and their parameter mapping."""

    names = [f"{prefix}{index}" for index in range(len(values))]
    placeholders = ", ".join(f":{name}" for name in names)
    return placeholders, dict(zip(names, values))


class AutomationDatabase:
    """Schema-aware facade over a :class:`DatabaseAdapter`."""

    def __init__(self, adapter: DatabaseAdapter) -> None:
        self._adapter = adapter
        self._initialized = False
        self._initializing = False

    @classmethod
    def from_url(cls, url: str) -> AutomationDatabase:
        return cls(create_adapter(url))

    @property
    def adapter(self) -> DatabaseAdapter:
        return self._adapter

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Open the adapter and create tables; concurrent callers are rejected."""

        if self._initialized:
            return
        if self._initializing:
            raise DatabaseInitializationError("Database initialisation already in progress")
        self._initializing = True
        try:
            await self._adapter.initialize()
            for statement in schema_statements():
                await self._adapter.execute(statement)
            self._initialized = True
            logger.info("Automation database initialised")
        finally:
            self._initializing = False

    async def run(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> List[Row]:
        if not self._initialized:
            raise DatabaseInitializationError("Call initialize() before running queries")
        return await self._adapter.execute(sql, params)

    async def insert_record(self, table: str, record: BaseModel) -> None:
        if table not in TABLES:
            raise DatabaseError(f"Unknown table {table!r}")
        payload = record.model_dump(mode="json")
        columns = ", ".join(payload)
        placeholders = ", ".join(f":{column}" for column in payload)
        await self.run(f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", payload)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AutomationDatabase]:
        """Wrap a block in begin/commit, rolling back if it raises."""

        if not self._initialized:
            raise DatabaseInitializationError("Call initialize() before opening a transaction")
        await self._adapter.begin()
        try:
            yield self
        except BaseException:
            await self._adapter.rollback()
            raise
        await self._adapter.commit()

    async def clear_all_data(self) -> None:
        for table in DELETE_ORDER:
            await self.run(f"DELETE FROM {table}")

    async def summary(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for table in TABLES:
            rows = await self.run(f"SELECT COUNT(*) AS row_count FROM {table}")
            counts[table] = int(rows[0]["row_count"])
        return counts

    async def close(self) -> None:
        await self._adapter.close()
        self._initialized = False


__all__ = [
    "AutomationDatabase",
    "DatabaseAdapter",
    "InMemoryAdapter",
    "SqlAlchemyAdapter",
    "create_adapter",
    "expand_in",
]
