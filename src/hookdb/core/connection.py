"""SQLite connection management for hookdb."""

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Union

from hookdb.core.query import DeleteQuery, ExecuteResult, InsertQuery, SelectQuery, UpdateQuery
from hookdb.dialects import DialectAdapter, SQLiteAdapter
from hookdb.health.types import PoolMetrics


# Custom datetime adapter and converter for SQLite
def adapt_datetime(dt):
    """Convert datetime to ISO 8601 string."""
    return dt.isoformat()


def convert_datetime(val):
    """Convert ISO 8601 string to datetime."""
    return datetime.fromisoformat(val.decode())


# Register the adapter and converter
sqlite3.register_adapter(datetime, adapt_datetime)
sqlite3.register_converter("TIMESTAMP", convert_datetime)
sqlite3.register_converter("DATETIME", convert_datetime)


class _BuilderMixin:
    """Query builder entry points shared by connections and transactions."""

    adapter: DialectAdapter

    def select(self, table: str) -> SelectQuery:
        return SelectQuery(self, table)

    def insert(self, table: str) -> InsertQuery:
        return InsertQuery(self, table)

    def update(self, table: str) -> UpdateQuery:
        return UpdateQuery(self, table)

    def delete(self, table: str) -> DeleteQuery:
        return DeleteQuery(self, table)


class DatabaseConnection(_BuilderMixin):
    """Manages a single SQLite connection behind an asyncio lock.

    Statements run in a worker thread so the event loop never blocks. The
    lock serializes access: a transaction holds it for its whole duration.
    """

    def __init__(self, path: Union[str, Path], adapter: Optional[DialectAdapter] = None):
        """Initialize database connection.

        Args:
            path: Path to SQLite database file, or ":memory:"
            adapter: Dialect adapter (defaults to SQLiteAdapter)
        """
        self.path = path if path == ":memory:" else Path(path)
        self.adapter = adapter or SQLiteAdapter()
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()
        self._waiting = 0
        self._connect()

    def _connect(self) -> None:
        """Establish database connection and configure WAL mode."""
        if isinstance(self.path, Path):
            # Ensure directory exists
            self.path.parent.mkdir(parents=True, exist_ok=True)

        # isolation_level=None: autocommit, transactions are explicit BEGIN/COMMIT
        self._conn = sqlite3.connect(
            str(self.path),
            detect_types=sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
            isolation_level=None,
            check_same_thread=False,
        )

        try:
            if isinstance(self.path, Path):
                self._conn.execute("PRAGMA journal_mode = WAL")
                self._conn.execute("PRAGMA synchronous = NORMAL")
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.OperationalError:
            self._conn.close()
            self._conn = None
            raise

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def _require_open(self) -> sqlite3.Connection:
        if not self._conn:
            raise RuntimeError("Connection is closed")
        return self._conn

    def _run_sync(self, sql: str, params: Sequence[Any], fetch: bool) -> Any:
        conn = self._require_open()
        cursor = conn.execute(sql, tuple(params))
        try:
            if fetch:
                return [dict(row) for row in cursor.fetchall()]
            return ExecuteResult(rowcount=cursor.rowcount, last_row_id=cursor.lastrowid)
        finally:
            cursor.close()

    async def _run_unlocked(self, sql: str, params: Sequence[Any], fetch: bool) -> Any:
        return await asyncio.to_thread(self._run_sync, sql, params, fetch)

    @asynccontextmanager
    async def _acquire(self) -> AsyncIterator[None]:
        self._waiting += 1
        try:
            await self._lock.acquire()
        finally:
            self._waiting -= 1
        try:
            yield
        finally:
            self._lock.release()

    async def run(self, sql: str, params: Sequence[Any] = (), fetch: bool = False) -> Any:
        """Execute a compiled statement.

        Args:
            sql: SQL statement to execute
            params: Positional parameters
            fetch: Return rows as dicts instead of an ExecuteResult
        """
        self._require_open()
        async with self._acquire():
            return await self._run_unlocked(sql, params, fetch)

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Execute raw SQL and return any rows it produces."""
        return await self.run(sql, params or (), fetch=True)

    async def ping(self) -> None:
        """Issue a trivial query to check the connection is alive."""
        await self.run("SELECT 1", fetch=True)

    async def server_version(self) -> str:
        rows = await self.run("SELECT sqlite_version() AS version", fetch=True)
        return f"SQLite {rows[0]['version']}"

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["TransactionConnection"]:
        """Context manager for database transactions.

        Automatically commits on success or rolls back on exception.
        """
        self._require_open()
        async with self._acquire():
            await self._run_unlocked("BEGIN", (), False)
            trx = TransactionConnection(self)
            try:
                yield trx
            except BaseException:
                await self._run_unlocked("ROLLBACK", (), False)
                raise
            else:
                await self._run_unlocked("COMMIT", (), False)
            finally:
                trx._closed = True

    def get_pool_metrics(self) -> PoolMetrics:
        """Report pool-style metrics (single connection, no pooling)."""
        if not self._conn:
            return PoolMetrics(total=0, active=0, idle=0, waiting=0)
        active = 1 if self._lock.locked() else 0
        return PoolMetrics(total=1, active=active, idle=1 - active, waiting=self._waiting)

    async def destroy(self) -> None:
        """Close the connection once any in-flight statement has finished."""
        if not self._conn:
            return
        async with self._acquire():
            self.close()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    async def __aenter__(self):
        """Enter context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager."""
        # Parameters are required by context manager protocol but not used
        _ = (exc_type, exc_val, exc_tb)
        await self.destroy()
        return False


class TransactionConnection(_BuilderMixin):
    """Transaction-scoped view of a DatabaseConnection.

    Runs statements without re-acquiring the lock the transaction holds.
    Only valid inside the ``transaction()`` block that created it.
    """

    def __init__(self, parent: DatabaseConnection):
        self.parent = parent
        self.adapter = parent.adapter
        self._closed = False

    async def run(self, sql: str, params: Sequence[Any] = (), fetch: bool = False) -> Any:
        if self._closed:
            raise RuntimeError("Transaction has already finished")
        return await self.parent._run_unlocked(sql, params, fetch)

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        return await self.run(sql, params or (), fetch=True)
