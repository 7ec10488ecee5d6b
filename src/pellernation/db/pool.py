"""asyncpg pool lifecycle.

The pool is owned by whoever opens it (``run_server`` or the migration
CLI) and is passed explicitly to ``MemberStore`` and ``migrate``.
"""

import asyncio
import logging
from typing import Optional

import asyncpg

from pellernation.config import AppConfig, get_config

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 5.0
CLOSE_TIMEOUT_SECONDS = 5.0


async def create_pool(config: Optional[AppConfig] = None) -> asyncpg.Pool:
    """
    Open a pool against config.db_dsn and prove it with ``SELECT 1``.

    Raises:
        asyncio.TimeoutError: PostgreSQL did not accept connections in time
        RuntimeError: The pool opened but the round trip failed
    """
    config = config or get_config()

    try:
        pool = await asyncio.wait_for(
            asyncpg.create_pool(
                str(config.db_dsn),
                min_size=config.db_pool_min,
                max_size=config.db_pool_max,
            ),
            timeout=CONNECT_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        raise asyncio.TimeoutError(
            f"No database connection within {CONNECT_TIMEOUT_SECONDS:g}s; "
            "check that PostgreSQL is reachable at DB_DSN"
        )

    try:
        async with pool.acquire() as conn:
            result = await conn.fetchval("SELECT 1")
        if result != 1:
            raise RuntimeError(f"unexpected SELECT 1 result {result!r}")
    except Exception as e:
        await pool.close()
        raise RuntimeError(f"Database health check failed: {e}") from e

    logger.info(
        f"Members database pool open (min={config.db_pool_min}, max={config.db_pool_max})"
    )
    return pool


async def close_pool(pool: asyncpg.Pool) -> None:
    """Close the pool, terminating it if a handler still holds a connection."""
    try:
        await asyncio.wait_for(pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.warning("Pool close timed out; terminating remaining connections")
        pool.terminate()
    else:
        logger.info("Members database pool closed")
