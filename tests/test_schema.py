"""Tests for the migration runner."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from pellernation.db.schema.migrate import (
    MIGRATIONS_DIR,
    migrate,
    pending_migrations,
    schema_version,
    split_sql_statements,
)


def mock_pool(conn):
    """Pool whose acquire() yields conn and whose transaction() is a no-op."""
    acquire = MagicMock()
    acquire.__aenter__.return_value = conn
    acquire.__aexit__.return_value = None
    pool = MagicMock()
    pool.acquire.return_value = acquire

    transaction = MagicMock()
    transaction.__aenter__.return_value = None
    transaction.__aexit__.return_value = None
    conn.transaction = MagicMock(return_value=transaction)
    return pool


class TestSplitStatements:
    def test_splits_on_semicolons_and_drops_comments(self):
        sql = """
            -- header comment
            CREATE TABLE a (id INT);
            /* block
               comment */
            CREATE INDEX a_idx ON a (id);
        """

        assert split_sql_statements(sql) == [
            "CREATE TABLE a (id INT)",
            "CREATE INDEX a_idx ON a (id)",
        ]

    def test_semicolons_inside_literals_and_dollar_quotes(self):
        sql = (
            "INSERT INTO t VALUES ('a;b');\n"
            "CREATE FUNCTION f() RETURNS void AS $$ BEGIN PERFORM 1; END $$ LANGUAGE plpgsql;"
        )

        statements = split_sql_statements(sql)

        assert len(statements) == 2
        assert statements[0] == "INSERT INTO t VALUES ('a;b')"
        assert "PERFORM 1; END" in statements[1]

    def test_trailing_statement_without_semicolon(self):
        assert split_sql_statements("SELECT 1; SELECT 2") == ["SELECT 1", "SELECT 2"]

    def test_members_migration_parses(self):
        sql = (MIGRATIONS_DIR / "001_members.sql").read_text(encoding="utf-8")

        statements = split_sql_statements(sql)

        assert statements[0].startswith("CREATE TABLE IF NOT EXISTS members")
        assert "is_paid BOOLEAN NOT NULL DEFAULT FALSE" in statements[0]
        assert "is_active BOOLEAN NOT NULL DEFAULT TRUE" in statements[0]


class TestPendingMigrations:
    def test_orders_by_version_and_skips_applied(self, tmp_path: Path):
        for name in ("002_b.sql", "001_a.sql", "010_c.sql", "notes.sql", "readme.txt"):
            (tmp_path / name).write_text("SELECT 1;")

        pending = pending_migrations(tmp_path, applied={1})

        assert [(version, path.name) for version, path in pending] == [
            (2, "002_b.sql"),
            (10, "010_c.sql"),
        ]

    def test_shipped_migrations_present(self):
        versions = [version for version, _ in pending_migrations(MIGRATIONS_DIR, applied=set())]

        assert versions[0] == 1


class TestMigrate:
    @pytest.mark.asyncio
    async def test_applies_pending_and_releases_lock(self):
        conn = AsyncMock()
        conn.fetchval.return_value = True
        conn.fetch.return_value = []
        pool = mock_pool(conn)

        applied = await migrate(pool)

        assert applied == len(pending_migrations(MIGRATIONS_DIR, applied=set()))
        executed = [call.args[0] for call in conn.execute.call_args_list]
        assert any("CREATE TABLE IF NOT EXISTS members" in sql for sql in executed)
        assert executed[-1].startswith("SELECT pg_advisory_unlock")

    @pytest.mark.asyncio
    async def test_nothing_pending(self):
        conn = AsyncMock()
        conn.fetchval.return_value = True
        conn.fetch.return_value = [
            {"version": version} for version, _ in pending_migrations(MIGRATIONS_DIR, set())
        ]
        pool = mock_pool(conn)

        assert await migrate(pool) == 0

    @pytest.mark.asyncio
    async def test_lock_held_elsewhere(self):
        conn = AsyncMock()
        conn.fetchval.return_value = False
        pool = mock_pool(conn)

        with pytest.raises(RuntimeError, match="Another migration"):
            await migrate(pool)

        conn.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_schema_version(self):
        conn = AsyncMock()
        conn.fetchval.return_value = 1
        pool = mock_pool(conn)

        assert await schema_version(pool) == 1
