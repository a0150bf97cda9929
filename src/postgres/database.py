"""
Connection pool for the Safecast PostgreSQL/PostGIS database.

The pool is optional: when DATABASE_URL is unset or the first connection
fails, the database stays unavailable and the router falls back to the
REST API where it can.
"""

import os
from typing import Any, Dict, List, Optional

import asyncpg
from asyncpg import Pool

from src.logging import db_logger
from src.routing.router import BackendRequiredError
from src.telemetry.decorators import trace_database_operation
from src.telemetry.utils import add_database_context

from .queries import LIST_TABLES_SQL, REALTIME_TABLES
from .sql_builder import Statement


def get_database_config() -> Dict[str, Any]:
    """Pool settings from the environment."""
    return {
        "dsn": os.getenv("DATABASE_URL") or None,
        "min_size": int(os.getenv("DB_POOL_MIN_SIZE", "1")),
        "max_size": int(os.getenv("DB_POOL_MAX_SIZE", "10")),
        "command_timeout": float(os.getenv("DB_COMMAND_TIMEOUT", "30")),
    }


def is_database_configured() -> bool:
    return bool(os.getenv("DATABASE_URL"))


def validate_database_config() -> Optional[str]:
    """Return a description of the configuration problem, or None."""
    if not is_database_configured():
        return "DATABASE_URL not set; database tools unavailable, REST API fallback active"
    try:
        config = get_database_config()
    except ValueError as e:
        return f"invalid pool setting: {e}"
    if config["min_size"] < 1 or config["max_size"] < config["min_size"]:
        return f"invalid pool size range: {config['min_size']}..{config['max_size']}"
    return None


class RadiationDatabase:
    """Pooled read access to markers, uploads, spectra and realtime tables"""

    def __init__(self, dsn: Optional[str] = None, min_size: int = 1, max_size: int = 10,
                 command_timeout: float = 30.0):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.pool: Optional[Pool] = None
        self._realtime_table: Optional[str] = None

    @classmethod
    def from_env(cls) -> "RadiationDatabase":
        return cls(**get_database_config())

    @property
    def available(self) -> bool:
        return self.pool is not None

    async def initialize(self) -> bool:
        """Create the pool. Returns False (and stays unavailable) on any failure."""
        if not self.dsn:
            db_logger.warning("database not configured | DATABASE_URL unset | REST API fallback active")
            return False

        try:
            self.pool = await asyncpg.create_pool(
                dsn=self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout,
            )
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            db_logger.info(f"database pool ready | min:{self.min_size} | max:{self.max_size}")
            return True
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            db_logger.error(f"database unavailable | error:{e} | REST API fallback active")
            if self.pool is not None:
                await self.pool.close()
            self.pool = None
            return False

    async def close(self) -> None:
        if self.pool:
            await self.pool.close()
            self.pool = None
            db_logger.info("database pool closed")

    def _require_pool(self) -> Pool:
        if self.pool is None:
            raise BackendRequiredError("database connection required")
        return self.pool

    @trace_database_operation(operation="fetch")
    async def fetch(self, statement: str, *args: Any) -> List[Dict[str, Any]]:
        pool = self._require_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(statement, *args)
        add_database_context(row_count=len(rows), arg_count=len(args))
        return [dict(row) for row in rows]

    @trace_database_operation(operation="fetchrow")
    async def fetchrow(self, statement: str, *args: Any) -> Optional[Dict[str, Any]]:
        pool = self._require_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(statement, *args)
        return dict(row) if row is not None else None

    @trace_database_operation(operation="fetchval")
    async def fetchval(self, statement: str, *args: Any) -> Any:
        pool = self._require_pool()
        async with pool.acquire() as conn:
            return await conn.fetchval(statement, *args)

    async def run(self, statement: Statement) -> List[Dict[str, Any]]:
        sql, args = statement.build()
        return await self.fetch(sql, *args)

    async def count(self, statement: Statement) -> int:
        sql, args = statement.build_count()
        total = await self.fetchval(sql, *args)
        return int(total or 0)

    async def table_names(self) -> List[str]:
        rows = await self.fetch(LIST_TABLES_SQL)
        return [row["table_name"] for row in rows]

    async def realtime_table(self) -> Optional[str]:
        """First realtime sensor table present in the public schema, cached once found."""
        if self._realtime_table:
            return self._realtime_table

        present = set(await self.table_names())
        for name in REALTIME_TABLES:
            if name in present:
                self._realtime_table = name
                db_logger.info(f"realtime table found | table:{name}")
                return name
        return None
