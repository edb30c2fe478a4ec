"""PostgreSQL connection pool for the postgres store backend.

Supabase connection modes:
  - Session Pooler  (port 5432) : persistent servers, supports prepared statements
  - Transaction Pooler (port 6543) : serverless/edge, no prepared statement support
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, fields
from typing import Any, ClassVar

import asyncpg

logger = logging.getLogger(__name__)


@dataclass
class PoolConfig:
    """Pool sizing, timeouts and connect retry policy."""

    min_size: int = 1
    max_size: int = 5
    timeout: float = 5.0
    command_timeout: float = 15.0
    max_inactive_connection_lifetime: float = 30.0
    max_retries: int = 3
    retry_delay: float = 3.0
    ssl: str = "prefer"

    # - edge: bursts of short snapshot and match reads, idle otherwise
    # - aggregator: one pass per interval with a few concurrent vote cache lookups
    _SERVICE_PRESETS: ClassVar[dict[str, dict]] = {
        "edge": {"min_size": 0, "max_size": 10},
        "aggregator": {"min_size": 1, "max_size": 4},
    }

    @classmethod
    def for_service(cls, service: str, **overrides) -> PoolConfig:
        """Preset for *service* (``edge`` or ``aggregator``) with *overrides* applied."""
        known = {f.name for f in fields(cls)}
        values = {**cls._SERVICE_PRESETS.get(service, {}), **overrides}
        return cls(**{k: v for k, v in values.items() if k in known})


async def _init_connection(conn: asyncpg.Connection) -> None:
    # Documents go in and out of JSONB columns as plain dicts
    await conn.set_type_codec(
        "jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
    )


class DatabaseManager:
    """Owns the asyncpg pool used by the document store.

    Detects the Supabase pooler mode from the port and retries the initial
    connection with exponential backoff.
    """

    def __init__(self, database_url: str, config: PoolConfig | None = None):
        self.database_url = database_url
        self.config = config or PoolConfig()
        self.pooler_mode = "transaction" if ":6543" in database_url else "session"
        self._pool: asyncpg.Pool | None = None

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    def _pool_kwargs(self) -> dict[str, Any]:
        """asyncpg.create_pool arguments for the detected pooler mode.

        PgBouncer in transaction mode cannot keep prepared statements or idle
        connections, so the statement cache and min_size drop to zero.
        """
        cfg = self.config
        kwargs: dict[str, Any] = {
            "dsn": self.database_url,
            "min_size": cfg.min_size,
            "max_size": cfg.max_size,
            "timeout": cfg.timeout,
            "command_timeout": cfg.command_timeout,
            "ssl": cfg.ssl,
            "statement_cache_size": 100,
            "max_inactive_connection_lifetime": cfg.max_inactive_connection_lifetime,
            "init": _init_connection,
        }
        if self.pooler_mode == "transaction":
            kwargs.update(min_size=0, statement_cache_size=0, max_inactive_connection_lifetime=0)
        return kwargs

    async def _open_pool(self) -> asyncpg.Pool:
        pool = await asyncpg.create_pool(**self._pool_kwargs())
        try:
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
        except BaseException:
            await pool.close()
            raise
        return pool

    async def connect(self) -> None:
        """Open and verify the pool, retrying with backoff."""
        if self._pool is not None:
            return

        cfg = self.config
        logger.info(f"Connecting to PostgreSQL ({self.pooler_mode} pooler)")
        for attempt in range(1, cfg.max_retries + 1):
            try:
                self._pool = await self._open_pool()
            except Exception as e:
                if attempt == cfg.max_retries:
                    logger.error(
                        f"PostgreSQL unreachable after {attempt} attempts: "
                        f"{type(e).__name__}: {e or repr(e)}"
                    )
                    raise
                delay = cfg.retry_delay * 2 ** (attempt - 1)
                logger.warning(
                    f"PostgreSQL connect attempt {attempt}/{cfg.max_retries} failed: "
                    f"{type(e).__name__}: {e or repr(e)}, retrying in {delay}s"
                )
                await asyncio.sleep(delay)
            else:
                logger.info(
                    f"PostgreSQL pool ready (size={cfg.min_size}-{cfg.max_size}, "
                    f"mode={self.pooler_mode})"
                )
                return

    async def disconnect(self) -> None:
        pool, self._pool = self._pool, None
        if pool is None:
            return
        try:
            await pool.close()
            logger.info("PostgreSQL pool closed")
        except Exception as e:
            logger.exception(f"Error closing PostgreSQL pool: {e}")

    async def check_health(self) -> bool:
        """True if the pool can run a trivial query."""
        if self._pool is None:
            return False
        try:
            async with self._pool.acquire(timeout=2.0) as conn:
                await conn.fetchval("SELECT 1")
            return True
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, TimeoutError):
            return False

    def acquire(self):
        """Pool connection context manager. Raises if not connected."""
        if self._pool is None:
            raise RuntimeError("PostgreSQL pool not initialized, call connect() first")
        return self._pool.acquire()
