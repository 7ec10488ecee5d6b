"""Tests for pool lifecycle and server startup/shutdown ownership of it."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pellernation.api.server import run_server
from pellernation.db import pool as pool_module
from pellernation.db.pool import close_pool, create_pool


def fake_pool(select_one=1):
    conn = AsyncMock()
    conn.fetchval.return_value = select_one
    acquire = MagicMock()
    acquire.__aenter__.return_value = conn
    acquire.__aexit__.return_value = None

    pool = MagicMock()
    pool.acquire.return_value = acquire
    pool.close = AsyncMock()
    return pool


@pytest.fixture
def runner():
    runner = MagicMock()
    runner.setup = AsyncMock()
    runner.cleanup = AsyncMock()
    with patch("pellernation.api.server.web.AppRunner", return_value=runner):
        yield runner


@pytest.fixture
def site():
    site = MagicMock()
    site.start = AsyncMock()
    with patch("pellernation.api.server.web.TCPSite", return_value=site):
        yield site


class TestCreatePool:
    @pytest.mark.asyncio
    async def test_opens_pool_from_config(self, app_config):
        pool = fake_pool()

        with patch("pellernation.db.pool.asyncpg.create_pool", AsyncMock(return_value=pool)) as create:
            assert await create_pool(app_config) is pool

        create.assert_awaited_once_with(
            str(app_config.db_dsn),
            min_size=app_config.db_pool_min,
            max_size=app_config.db_pool_max,
        )
        pool.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_health_check_closes_pool(self, app_config):
        pool = fake_pool(select_one=0)

        with patch("pellernation.db.pool.asyncpg.create_pool", AsyncMock(return_value=pool)):
            with pytest.raises(RuntimeError, match="health check failed"):
                await create_pool(app_config)

        pool.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connect_timeout(self, app_config, monkeypatch):
        async def never_connects(*args, **kwargs):
            await asyncio.sleep(10)

        monkeypatch.setattr(pool_module, "CONNECT_TIMEOUT_SECONDS", 0.01)

        with patch("pellernation.db.pool.asyncpg.create_pool", never_connects):
            with pytest.raises(asyncio.TimeoutError, match="PostgreSQL"):
                await create_pool(app_config)


class TestClosePool:
    @pytest.mark.asyncio
    async def test_graceful_close(self):
        pool = fake_pool()

        await close_pool(pool)

        pool.close.assert_awaited_once()
        pool.terminate.assert_not_called()

    @pytest.mark.asyncio
    async def test_slow_close_terminates(self):
        pool = fake_pool()
        pool.close = AsyncMock(side_effect=asyncio.TimeoutError)

        await close_pool(pool)

        pool.terminate.assert_called_once()


class TestRunServerLifecycle:
    @pytest.mark.asyncio
    async def test_serves_until_shutdown_then_releases(self, runner, site):
        pool = fake_pool()
        shutdown = asyncio.Event()
        shutdown.set()

        with patch("pellernation.api.server.create_pool", AsyncMock(return_value=pool)), patch(
            "pellernation.api.server.close_pool", AsyncMock()
        ) as close, patch("pellernation.api.server.migrate", AsyncMock(return_value=1)) as migrate:
            await run_server(shutdown_event=shutdown, apply_migrations=True)

        migrate.assert_awaited_once_with(pool)
        site.start.assert_awaited_once()
        runner.cleanup.assert_awaited_once()
        close.assert_awaited_once_with(pool)

    @pytest.mark.asyncio
    async def test_port_in_use_still_releases(self, runner, site):
        pool = fake_pool()
        site.start.side_effect = OSError("address already in use")

        with patch("pellernation.api.server.create_pool", AsyncMock(return_value=pool)), patch(
            "pellernation.api.server.close_pool", AsyncMock()
        ) as close:
            with pytest.raises(OSError):
                await run_server(shutdown_event=asyncio.Event())

        runner.cleanup.assert_awaited_once()
        close.assert_awaited_once_with(pool)

    @pytest.mark.asyncio
    async def test_migration_failure_closes_pool(self, runner, site):
        pool = fake_pool()

        with patch("pellernation.api.server.create_pool", AsyncMock(return_value=pool)), patch(
            "pellernation.api.server.close_pool", AsyncMock()
        ) as close, patch(
            "pellernation.api.server.migrate",
            AsyncMock(side_effect=RuntimeError("Another migration is currently running")),
        ):
            with pytest.raises(RuntimeError):
                await run_server(shutdown_event=asyncio.Event(), apply_migrations=True)

        runner.setup.assert_not_awaited()
        runner.cleanup.assert_not_awaited()
        close.assert_awaited_once_with(pool)
