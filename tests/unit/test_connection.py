"""Tests for the SQLite connection, query builders and dialect adapter."""

import sqlite3

import pytest

from hookdb.core.connection import DatabaseConnection
from hookdb.core.query import ExecuteResult, SelectQuery
from hookdb.dialects import (
    InvalidIdentifierError,
    SQLiteAdapter,
    get_adapter,
    validate_identifier,
)


class TestDatabaseConnection:
    """Test database connection management."""

    def test_connection_init(self, temp_db):
        """Test initializing a database connection."""
        conn = DatabaseConnection(temp_db)

        assert conn.path == temp_db
        assert conn.is_open

        # Check WAL mode is enabled
        cursor = conn._conn.execute("PRAGMA journal_mode")
        assert cursor.fetchone()[0] == "wal"

        conn.close()
        assert not conn.is_open

    def test_creates_parent_directory(self, temp_dir):
        conn = DatabaseConnection(temp_dir / "nested" / "dir" / "app.db")
        assert (temp_dir / "nested" / "dir").exists()
        conn.close()

    @pytest.mark.asyncio
    async def test_memory_database(self):
        conn = DatabaseConnection(":memory:")
        await conn.execute("CREATE TABLE t (x INTEGER)")
        await conn.insert("t").values({"x": 1}).execute()

        assert await conn.select("t").execute() == [{"x": 1}]
        await conn.destroy()

    @pytest.mark.asyncio
    async def test_insert_and_select(self, db):
        result = await db.insert("users").values({"name": "Ada", "email": "ada@example.com"}).execute()

        assert isinstance(result, ExecuteResult)
        assert result.rowcount == 1
        assert result.last_row_id == 1

        rows = await db.select("users").columns("id", "name").execute()
        assert rows == [{"id": 1, "name": "Ada"}]

    @pytest.mark.asyncio
    async def test_update_and_delete(self, db):
        await db.insert("users").values([{"name": "Ada"}, {"name": "Grace"}]).execute()

        updated = await db.update("users").set({"email": "g@example.com"}).where("name", "=", "Grace").execute()
        deleted = await db.delete("users").where("name", "=", "Ada").execute()

        assert updated.rowcount == 1
        assert deleted.rowcount == 1
        assert await db.select("users").columns("name", "email").execute() == [
            {"name": "Grace", "email": "g@example.com"}
        ]

    @pytest.mark.asyncio
    async def test_operators(self, db):
        await db.insert("users").values(
            [{"id": i, "name": f"user{i}"} for i in range(1, 6)]
        ).execute()

        async def ids(query):
            return [row["id"] for row in await query.order_by("id").execute()]

        assert await ids(db.select("users").where("id", "in", [2, 4])) == [2, 4]
        assert await ids(db.select("users").where("id", "not in", [1, 2, 3])) == [4, 5]
        assert await ids(db.select("users").where("id", "in", [])) == []
        assert await ids(db.select("users").where("id", ">=", 4)) == [4, 5]
        assert await ids(db.select("users").where("name", "like", "user_")) == [1, 2, 3, 4, 5]
        assert await ids(db.select("users").where("deleted_at", "is", None).where("id", "<", 3)) == [1, 2]

    @pytest.mark.asyncio
    async def test_order_limit_first(self, db):
        await db.insert("users").values([{"name": "b"}, {"name": "a"}, {"name": "c"}]).execute()

        rows = await db.select("users").order_by("name", "desc").limit(2).execute()
        assert [row["name"] for row in rows] == ["c", "b"]

        first = await db.select("users").order_by("name").first()
        assert first["name"] == "a"
        assert await db.select("users").where("name", "=", "zzz").first() is None

    @pytest.mark.asyncio
    async def test_raw_execute(self, db):
        await db.execute("INSERT INTO users (name) VALUES (?)", ["Ada"])
        rows = await db.execute("SELECT COUNT(*) AS n FROM users")
        assert rows == [{"n": 1}]

    @pytest.mark.asyncio
    async def test_transaction_commit(self, db):
        async with db.transaction() as trx:
            await trx.insert("users").values({"name": "Ada"}).execute()

        assert len(await db.select("users").execute()) == 1

    @pytest.mark.asyncio
    async def test_transaction_rollback(self, db):
        with pytest.raises(ValueError):
            async with db.transaction() as trx:
                await trx.insert("users").values({"name": "Ada"}).execute()
                raise ValueError("abort")

        assert await db.select("users").execute() == []

    @pytest.mark.asyncio
    async def test_transaction_handle_closed_after_block(self, db):
        async with db.transaction() as trx:
            pass

        with pytest.raises(RuntimeError, match="already finished"):
            await trx.select("users").execute()

    @pytest.mark.asyncio
    async def test_ping_and_version(self, db):
        await db.ping()
        assert (await db.server_version()).startswith("SQLite 3.")

    @pytest.mark.asyncio
    async def test_pool_metrics(self, db):
        metrics = db.get_pool_metrics()
        assert (metrics.total, metrics.active, metrics.idle, metrics.waiting) == (1, 0, 1, 0)

        async with db.transaction():
            busy = db.get_pool_metrics()
        assert busy.active == 1

        await db.destroy()
        assert db.get_pool_metrics().total == 0

    @pytest.mark.asyncio
    async def test_closed_connection_rejects_queries(self, db):
        await db.destroy()
        await db.destroy()

        with pytest.raises(RuntimeError, match="closed"):
            await db.select("users").execute()

    @pytest.mark.asyncio
    async def test_async_context_manager(self, temp_db):
        async with DatabaseConnection(temp_db) as conn:
            await conn.ping()
        assert not conn.is_open


class TestQueryBuilders:
    """Test SQL compilation of builders."""

    def test_builders_are_immutable(self, db):
        base = db.select("users")
        filtered = base.where("id", "=", 1)

        assert filtered is not base
        assert base.conditions == ()
        assert len(filtered.conditions) == 1

    def test_select_sql(self, db):
        sql, params = (
            db.select("users")
            .columns("id", "name")
            .where("id", "in", [1, 2])
            .where("deleted_at", "is", None)
            .order_by("name", "desc")
            .limit(10)
            .compile()
        )

        assert sql == (
            'SELECT "id", "name" FROM "users" WHERE "id" IN (?, ?) AND "deleted_at" IS NULL '
            'ORDER BY "name" DESC LIMIT 10'
        )
        assert params == [1, 2]

    def test_update_sql(self, db):
        sql, params = db.update("users").set({"name": "x"}).where("id", "=", 3).compile()
        assert sql == 'UPDATE "users" SET "name" = ? WHERE "id" = ?'
        assert params == ["x", 3]

    def test_insert_multiple_rows_sql(self, db):
        sql, params = db.insert("users").values([{"name": "a"}, {"name": "b"}]).compile()
        assert sql == 'INSERT INTO "users" ("name") VALUES (?), (?)'
        assert params == ["a", "b"]

    def test_insert_requires_matching_columns(self, db):
        query = db.insert("users").values([{"name": "a"}, {"email": "b"}])
        with pytest.raises(ValueError, match="same columns"):
            query.compile()

    def test_insert_rejects_where(self, db):
        with pytest.raises(TypeError):
            db.insert("users").where("id", "=", 1)

    def test_update_requires_values(self, db):
        with pytest.raises(ValueError, match="No values"):
            db.update("users").compile()

    def test_invalid_operator(self, db):
        with pytest.raises(ValueError, match="Unsupported operator"):
            db.select("users").where("id", "~", 1)

    def test_in_requires_list(self, db):
        with pytest.raises(ValueError):
            db.select("users").where("id", "in", 1)

    def test_invalid_identifier_rejected_at_compile(self, db):
        query = db.select("users; DROP TABLE users")
        assert isinstance(query, SelectQuery)
        with pytest.raises(InvalidIdentifierError):
            query.compile()

    def test_negative_limit(self, db):
        with pytest.raises(ValueError):
            db.select("users").limit(-1)


class TestSQLiteAdapter:
    """Test dialect adapter behavior."""

    def test_escape_identifier(self):
        adapter = SQLiteAdapter()
        assert adapter.escape_identifier("users") == '"users"'
        assert adapter.escape_identifier("main.users") == '"main"."users"'

    def test_current_timestamp(self):
        assert SQLiteAdapter().current_timestamp_sql() == "datetime('now')"

    @pytest.mark.asyncio
    async def test_classifies_constraint_errors(self, db):
        adapter = db.adapter
        await db.insert("users").values({"id": 1, "name": "Ada", "email": "a@example.com"}).execute()

        with pytest.raises(sqlite3.IntegrityError) as unique:
            await db.insert("users").values({"name": "Copy", "email": "a@example.com"}).execute()
        with pytest.raises(sqlite3.IntegrityError) as not_null:
            await db.insert("users").values({"email": "b@example.com"}).execute()
        with pytest.raises(sqlite3.IntegrityError) as foreign_key:
            await db.insert("posts").values({"user_id": 99, "title": "Orphan"}).execute()

        assert adapter.is_unique_constraint_error(unique.value)
        assert not adapter.is_unique_constraint_error(not_null.value)
        assert adapter.is_not_null_error(not_null.value)
        assert adapter.is_foreign_key_error(foreign_key.value)
        assert not adapter.is_foreign_key_error(ValueError("FOREIGN KEY constraint failed"))

    def test_get_adapter(self):
        assert isinstance(get_adapter(), SQLiteAdapter)
        assert isinstance(get_adapter("SQLite3"), SQLiteAdapter)
        with pytest.raises(ValueError, match="Unsupported dialect"):
            get_adapter("oracle")


class TestValidateIdentifier:
    """Test identifier validation."""

    @pytest.mark.parametrize("name", ["users", "_private", "Table_2", "main.users", "a" * 63])
    def test_valid(self, name):
        validate_identifier(name)

    @pytest.mark.parametrize(
        "name",
        ["", "2fast", "user-name", "users table", "a.b.c", "a" * 64, "bad\x00name", "naïve"],
    )
    def test_invalid(self, name):
        with pytest.raises(InvalidIdentifierError):
            validate_identifier(name, "table")
