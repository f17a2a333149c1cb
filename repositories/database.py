# ============================================================================
# DATABASE CONNECTION POOL
# ============================================================================
# STATUS: Core - Async PostgreSQL connection management
# PURPOSE: Provide connection pooling for psycopg3 async
# CREATED: 07 OCT 2026
# ============================================================================
"""
Database Connection Pool

Manages async PostgreSQL connections using psycopg3 and psycopg_pool.
The pool is created explicitly and passed to repositories at construction
time; nothing in the orchestrator reaches for a process-wide pool.

Every connection carries a statement_timeout and pool checkout is bounded
by ``pool_timeout_seconds``, so no record store call blocks indefinitely.

Usage:
    from repositories.database import DatabaseConfig, DatabasePool

    async with DatabasePool(DatabaseConfig.from_env()) as pool:
        leases = LeaseRepository(pool)
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from psycopg import sql as psycopg_sql
from psycopg_pool import AsyncConnectionPool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatabaseConfig:
    """PostgreSQL connection settings."""
    connection_string: str
    min_size: int = 2
    max_size: int = 10
    pool_timeout_seconds: float = 10.0
    statement_timeout_ms: int = 15000

    @property
    def safe_connection_string(self) -> str:
        """Connection string with credentials removed, for logs."""
        if "@" in self.connection_string:
            return self.connection_string.split("@")[-1]
        return "<redacted>"

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """
        Build from environment.

        Priority:
        1. DATABASE_URL
        2. Individual POSTGRES_* components
        """
        url = os.environ.get("DATABASE_URL")
        if not url:
            host = os.environ.get("POSTGRES_HOST", "localhost")
            port = os.environ.get("POSTGRES_PORT", "5432")
            name = os.environ.get("POSTGRES_DB", "postgres")
            user = os.environ.get("POSTGRES_USER", "postgres")
            password = os.environ.get("POSTGRES_PASSWORD", "")
            sslmode = os.environ.get("POSTGRES_SSLMODE", "require")
            url = f"postgresql://{user}:{password}@{host}:{port}/{name}?sslmode={sslmode}"

        return cls(
            connection_string=url,
            min_size=int(os.environ.get("POSTGRES_POOL_MIN", 2)),
            max_size=int(os.environ.get("POSTGRES_POOL_MAX", 10)),
            pool_timeout_seconds=float(os.environ.get("POSTGRES_POOL_TIMEOUT_SECONDS", 10.0)),
            statement_timeout_ms=int(os.environ.get("POSTGRES_STATEMENT_TIMEOUT_MS", 15000)),
        )


async def open_pool(config: DatabaseConfig) -> AsyncConnectionPool:
    """
    Create and open a connection pool.

    Args:
        config: Connection settings

    Returns:
        Opened AsyncConnectionPool
    """
    logger.info(f"Initializing connection pool: {config.safe_connection_string}")

    pool = AsyncConnectionPool(
        conninfo=config.connection_string,
        min_size=config.min_size,
        max_size=config.max_size,
        timeout=config.pool_timeout_seconds,
        kwargs={"options": f"-c statement_timeout={config.statement_timeout_ms}"},
        open=False,  # opened explicitly below
    )

    await pool.open()
    logger.info(f"Connection pool opened (min={config.min_size}, max={config.max_size})")
    return pool


class DatabasePool:
    """
    Context manager for pool lifecycle.

    Usage:
        async with DatabasePool(config) as pool:
            async with pool.connection() as conn:
                ...
    """

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self.config = config or DatabaseConfig.from_env()
        self._pool: Optional[AsyncConnectionPool] = None

    async def __aenter__(self) -> AsyncConnectionPool:
        self._pool = await open_pool(self.config)
        return self._pool

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Connection pool closed")


# ============================================================================
# SCHEMA CONSTANTS
# ============================================================================

SCHEMA = os.environ.get("SANDBOX_DB_SCHEMA", "sandbox")

# Table identifiers: use with psycopg sql.SQL().format() for injection-safe queries
TABLE_LEASES = psycopg_sql.Identifier(SCHEMA, "leases")
TABLE_ACCOUNTS = psycopg_sql.Identifier(SCHEMA, "sandbox_accounts")
