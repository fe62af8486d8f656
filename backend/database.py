"""
Database Module - Order Hash Persistence
========================================
AsyncPG connection pool and schema migrations for the order hash store.

This module provides:
- DatabaseConfig read from the environment
- Database: lazily created asyncpg pool, bounded by connect/command timeouts
- Translation of connectivity/configuration failures into StoreUnavailable
- Idempotent, additive migrations serialized with an advisory lock

pip install asyncpg
"""

import os
import asyncio
from dataclasses import dataclass
from typing import Optional, List
from contextlib import asynccontextmanager

import structlog
import asyncpg

from errors import StoreUnavailable

# Configure logger
logger = structlog.get_logger().bind(component="database")


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class DatabaseConfig:
    """Database configuration from environment"""

    database_url: Optional[str] = None
    min_pool_size: int = 1
    max_pool_size: int = 10
    command_timeout: float = 10.0
    connect_timeout: float = 5.0

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            min_pool_size=int(os.getenv("DB_MIN_POOL_SIZE", "1")),
            max_pool_size=int(os.getenv("DB_MAX_POOL_SIZE", "10")),
            command_timeout=float(os.getenv("DB_COMMAND_TIMEOUT", "10.0")),
            connect_timeout=float(os.getenv("DB_CONNECT_TIMEOUT", "5.0")),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.database_url)


# =============================================================================
# SCHEMA
# =============================================================================

# Arbitrary constant identifying the migration advisory lock
SCHEMA_LOCK_KEY = 7_311_402_118

MIGRATIONS = [
    # Order hash mappings
    """
    CREATE TABLE IF NOT EXISTS order_hashes (
        id BIGSERIAL PRIMARY KEY,
        order_id TEXT UNIQUE NOT NULL,
        order_hash TEXT UNIQUE NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,

    # Multi-tenancy: stores created before it lack the Saleor API URL
    "ALTER TABLE order_hashes ADD COLUMN IF NOT EXISTS saleor_api_url TEXT NOT NULL DEFAULT ''",

    "CREATE INDEX IF NOT EXISTS idx_order_hashes_created_at ON order_hashes(created_at DESC)",
]

# Failures that mean "the store cannot serve us", as opposed to query errors
UNAVAILABLE_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.InterfaceError,
    asyncpg.PostgresConnectionError,
    asyncpg.InvalidAuthorizationSpecificationError,
    asyncpg.InvalidPasswordError,
    asyncpg.InvalidCatalogNameError,
    asyncpg.CannotConnectNowError,
    asyncpg.TooManyConnectionsError,
    asyncpg.QueryCanceledError,
    asyncpg.UndefinedTableError,
)


# =============================================================================
# CONNECTION POOL
# =============================================================================

class Database:
    """Async database connection pool manager"""

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self.config = config or DatabaseConfig.from_env()
        self._pool: Optional[asyncpg.Pool] = None
        self._init_lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._pool is not None

    async def initialize(self):
        """Initialize the connection pool"""
        if self._pool is not None:
            return

        if not self.config.is_configured:
            raise StoreUnavailable("DATABASE_URL is not configured")

        async with self._init_lock:
            if self._pool is not None:
                return
            try:
                self._pool = await asyncpg.create_pool(
                    self.config.database_url,
                    min_size=self.config.min_pool_size,
                    max_size=self.config.max_pool_size,
                    command_timeout=self.config.command_timeout,
                    timeout=self.config.connect_timeout,
                )
            except UNAVAILABLE_ERRORS as e:
                logger.error("database_pool_init_failed", error=str(e), error_type=type(e).__name__)
                raise StoreUnavailable(f"Cannot connect to database: {e}") from e

            logger.info("database_pool_initialized",
                        min_size=self.config.min_pool_size,
                        max_size=self.config.max_pool_size)

    async def close(self):
        """Close the connection pool"""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("database_pool_closed")

    @asynccontextmanager
    async def acquire(self):
        """Acquire a connection; connectivity failures surface as StoreUnavailable"""
        await self.initialize()

        try:
            async with self._pool.acquire(timeout=self.config.connect_timeout) as conn:
                yield conn
        except UNAVAILABLE_ERRORS as e:
            logger.warning("database_unavailable", error=str(e), error_type=type(e).__name__)
            raise StoreUnavailable(f"Database unavailable: {e}") from e

    async def execute(self, query: str, *args) -> str:
        """Execute a query"""
        async with self.acquire() as conn:
            return await conn.execute(query, *args)

    async def fetch_one(self, query: str, *args) -> Optional[asyncpg.Record]:
        """Fetch a single row"""
        async with self.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def fetch_all(self, query: str, *args) -> List[asyncpg.Record]:
        """Fetch all rows"""
        async with self.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetch_value(self, query: str, *args):
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args)

    async def run_migrations(self):
        """
        Run schema migrations.

        Every statement is idempotent. The advisory lock serializes
        concurrent startups, which would otherwise race on CREATE TABLE.
        """
        async with self.acquire() as conn:
            async with conn.transaction():
                await conn.execute("SELECT pg_advisory_xact_lock($1)", SCHEMA_LOCK_KEY)
                for migration in MIGRATIONS:
                    await conn.execute(migration)

        logger.info("database_migrations_complete", migrations=len(MIGRATIONS))


def rows_affected(status: str) -> int:
    """Parse asyncpg command status, e.g. 'DELETE 3' -> 3"""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0
