"""
PostgreSQL Database Connection Module
Provides async PostgreSQL connection management with asyncpg
"""
import asyncpg
import logging
import time
from typing import Optional

from config import settings
from utils.debug import Loggers

logger = logging.getLogger(__name__)

# Global database connection pool
_pool: Optional[asyncpg.Pool] = None

# SQL Schema
SCHEMA = """
-- One row per shopping list; items are stored as a JSON array and always
-- written back whole
CREATE TABLE IF NOT EXISTS shopping_lists (
    id VARCHAR(255) PRIMARY KEY,
    name VARCHAR(255) NOT NULL,
    icon VARCHAR(32) DEFAULT '',
    owner_id VARCHAR(255) NOT NULL,
    collaborators TEXT NOT NULL DEFAULT '[]',
    items TEXT NOT NULL DEFAULT '[]',
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);
"""

INDICES = """
CREATE INDEX IF NOT EXISTS idx_shopping_lists_owner ON shopping_lists(owner_id);
"""


async def init_db() -> asyncpg.Pool:
    """Initialize the database connection pool and create tables"""
    global _pool

    start_time = time.time()
    logger.info("Initializing PostgreSQL connection pool")
    Loggers.db.info("Starting database initialization", database_url=settings.database_url.split("@")[-1])  # Log without credentials

    try:
        _pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=2,
            max_size=10,
            command_timeout=60
        )
        pool_time = (time.time() - start_time) * 1000
        Loggers.db.debug("Connection pool created", duration_ms=f"{pool_time:.2f}", min_size=2, max_size=10)
    except Exception as e:
        Loggers.db.error(f"Failed to create connection pool: {e}", exc_info=True)
        raise

    schema_start = time.time()
    async with _pool.acquire() as conn:
        await conn.execute(SCHEMA)
        await conn.execute(INDICES)
        schema_time = (time.time() - schema_start) * 1000
        Loggers.db.debug("Schema created", duration_ms=f"{schema_time:.2f}")

    total_time = (time.time() - start_time) * 1000
    logger.info("Database initialized successfully")
    Loggers.db.info("Database initialization complete", total_duration_ms=f"{total_time:.2f}")

    return _pool


async def get_db() -> asyncpg.Pool:
    """Get the database connection pool"""
    global _pool
    if _pool is None:
        _pool = await init_db()
    return _pool


async def close_db():
    """Close the database connection pool"""
    global _pool
    if _pool is not None:
        Loggers.db.info("Closing database connection pool...")
        await _pool.close()
        _pool = None
        logger.info("Database connection pool closed")


def dict_from_row(row) -> dict:
    """Convert a Record object to a dictionary"""
    if row is None:
        return None
    return dict(row)


def rows_to_dicts(rows: list) -> list:
    """Convert a list of Record objects to dictionaries"""
    return [dict_from_row(row) for row in rows]
